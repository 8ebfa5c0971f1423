"""In-memory record of which privileged accounts have shown activity."""

from collections.abc import Iterable


def normalize_handle(handle: str | None) -> str:
    """Trim and lower-case an account handle for case-insensitive matching."""
    return (handle or "").strip().lower()


class ActivityLedger:
    """Tracks privileged accounts and whether each has been confirmed active.

    The elevated set is fixed by ``initialize``. Activity only ever flips
    from False to True, and every elevated account always has an entry.
    """

    def __init__(self) -> None:
        self.elevated: frozenset[str] = frozenset()
        self._active: dict[str, bool] = {}
        self._evidence: dict[str, str] = {}

    def initialize(self, elevated: Iterable[str]) -> None:
        """Set the elevated accounts and mark all of them inactive."""
        self.elevated = frozenset(
            h for h in (normalize_handle(u) for u in elevated) if h
        )
        self._active = {u: False for u in self.elevated}
        self._evidence = {}

    def mark_active(self, handle: str | None, source: str | None = None) -> bool:
        """Mark an elevated account active.

        Args:
            handle: Account handle as reported by the signal source.
            source: Name of the signal that produced the evidence.

        Returns:
            True if the account was newly marked, False if the handle is empty,
            not elevated, or already active.
        """
        user = normalize_handle(handle)
        if not user or user not in self.elevated:
            return False
        if self._active[user]:
            return False
        self._active[user] = True
        if source:
            self._evidence[user] = source
        return True

    def is_active(self, handle: str | None) -> bool:
        return self._active.get(normalize_handle(handle), False)

    def all_active(self) -> bool:
        """True when every elevated account is active (vacuously for none)."""
        return all(self._active.values())

    def pending(self) -> list[str]:
        """Elevated accounts not yet confirmed active, sorted."""
        return sorted(u for u, active in self._active.items() if not active)

    def snapshot(self) -> dict[str, bool]:
        """Copy of the activity map, safe for callers to mutate."""
        return dict(self._active)

    def evidence(self) -> dict[str, str | None]:
        """Signal source that first confirmed each account, None if inactive."""
        return {u: self._evidence.get(u) for u in self._active}

    def __len__(self) -> int:
        return len(self.elevated)
