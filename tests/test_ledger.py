"""Tests for the activity ledger."""

from maintrisk.analyzers.ledger import ActivityLedger, normalize_handle


def make_ledger(*users: str) -> ActivityLedger:
    ledger = ActivityLedger()
    ledger.initialize(users)
    return ledger


class TestNormalizeHandle:
    def test_trims_and_lowercases(self):
        assert normalize_handle("  Alice ") == "alice"

    def test_none_and_blank(self):
        assert normalize_handle(None) == ""
        assert normalize_handle("   ") == ""


class TestActivityLedger:
    def test_initialize_seeds_everyone_inactive(self):
        ledger = make_ledger("alice", "Bob")
        assert ledger.snapshot() == {"alice": False, "bob": False}
        assert ledger.elevated == frozenset({"alice", "bob"})

    def test_initialize_drops_blank_handles(self):
        ledger = make_ledger("alice", "", "  ")
        assert ledger.elevated == frozenset({"alice"})

    def test_mark_active_normalizes(self):
        ledger = make_ledger("alice", "bob")
        assert ledger.mark_active("Alice ") is True
        assert ledger.is_active("alice") is True
        assert ledger.is_active("ALICE") is True

    def test_mark_active_is_idempotent(self):
        ledger = make_ledger("alice", "bob")
        assert ledger.mark_active("alice") is True
        once = ledger.snapshot()
        assert ledger.mark_active("alice") is False
        assert ledger.snapshot() == once

    def test_mark_active_ignores_unknown_and_empty(self):
        ledger = make_ledger("alice")
        before = ledger.snapshot()
        assert ledger.mark_active("mallory") is False
        assert ledger.mark_active("") is False
        assert ledger.mark_active(None) is False
        assert ledger.snapshot() == before
        assert "mallory" not in ledger.snapshot()

    def test_all_active(self):
        ledger = make_ledger("alice", "bob")
        assert ledger.all_active() is False
        ledger.mark_active("alice")
        assert ledger.all_active() is False
        ledger.mark_active("bob")
        assert ledger.all_active() is True

    def test_all_active_when_empty(self):
        assert make_ledger().all_active() is True
        assert ActivityLedger().all_active() is True

    def test_pending_is_sorted(self):
        ledger = make_ledger("carol", "alice", "bob")
        ledger.mark_active("bob")
        assert ledger.pending() == ["alice", "carol"]

    def test_snapshot_is_a_copy(self):
        ledger = make_ledger("alice")
        snap = ledger.snapshot()
        snap["alice"] = True
        snap["mallory"] = True
        assert ledger.snapshot() == {"alice": False}

    def test_evidence_records_first_source(self):
        ledger = make_ledger("alice", "bob")
        ledger.mark_active("alice", "merge_requests")
        ledger.mark_active("alice", "releases")
        assert ledger.evidence() == {"alice": "merge_requests", "bob": None}

    def test_reinitialize_resets_state(self):
        ledger = make_ledger("alice")
        ledger.mark_active("alice", "releases")
        ledger.initialize(["bob"])
        assert ledger.snapshot() == {"bob": False}
        assert ledger.evidence() == {"bob": None}
