"""Ordered cascade of activity signals for privileged GitLab accounts.

Signals are tried from the most reliable and cheapest to the noisiest and
most expensive, and the cascade stops as soon as every privileged account
has been confirmed active:

Primary (a fetch failure aborts the whole run):
    1. merge request merges
    2. release authorship
    3. award emoji on project snippets

Secondary (best-effort, may need scopes the token lacks):
    4. project audit events
    5. CI/CD jobs run by a user
    6. pipeline schedule ownership

Extended (best-effort, raw REST, many requests per issue/MR):
    7. per-user contribution events scoped to the project
    8. resource label events on issues and MRs
    9. resource state and milestone events on issues and MRs
    10. award emoji on issues/MRs, on MR commits and on snippets
    11. generic project event feed (wiki edits and anything else)
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, TypeVar

from maintrisk.analyzers.ledger import ActivityLedger
from maintrisk.clients.base import FETCH_ERRORS, Page, UserNotFoundError, paginate
from maintrisk.clients.gitlab import ISSUES, MERGE_REQUESTS, SNIPPETS, GitLabClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Evidence(Protocol):
    """Any record exposing who did something and when."""

    @property
    def actor(self) -> str: ...

    @property
    def timestamp(self) -> datetime | None: ...


class SignalTier(str, Enum):
    """How a signal source's fetch failures are treated."""

    PRIMARY = "primary"  # failure aborts the cascade
    SECONDARY = "secondary"  # failure skips the step
    EXTENDED = "extended"  # failure skips the step


@dataclass
class SignalStep:
    """One stage of the cascade."""

    name: str
    tier: SignalTier
    collect: Callable[[], Awaitable[None]]

    @property
    def fatal(self) -> bool:
        return self.tier == SignalTier.PRIMARY


class SignalSourceError(Exception):
    """A primary signal source could not be fetched."""

    def __init__(self, source: str, cause: Exception) -> None:
        self.source = source
        self.cause = cause
        super().__init__(f"{source}: {cause}")


class SignalCascade:
    """Walks the signal sources in priority order, feeding an ActivityLedger.

    Usage:
        ledger = ActivityLedger()
        ledger.initialize({"alice", "bob"})
        cascade = SignalCascade(client, project_id=42, ledger=ledger, cutoff=cutoff)
        await cascade.run()
        ledger.snapshot()  # {"alice": True, "bob": False}
    """

    # Outer listings that fan out into one sub-query per item use smaller pages.
    LIST_PAGE_SIZE = 50
    EVENT_PAGE_SIZE = 100

    def __init__(
        self,
        client: GitLabClient,
        project_id: int,
        ledger: ActivityLedger,
        cutoff: datetime,
        page_size: int = 100,
    ) -> None:
        """Initialize the cascade.

        Args:
            client: GitLab API client.
            project_id: Numeric project ID.
            ledger: Ledger already initialized with the privileged accounts.
            cutoff: Aware UTC instant; only events strictly after it count.
            page_size: Page size for top-level listings.
        """
        self.client = client
        self.project_id = project_id
        self.ledger = ledger
        self.cutoff = cutoff
        self.page_size = page_size

    def steps(self) -> list[SignalStep]:
        """The cascade, in execution order."""
        return [
            SignalStep("merge_requests", SignalTier.PRIMARY, self.collect_merge_requests),
            SignalStep("releases", SignalTier.PRIMARY, self.collect_releases),
            SignalStep("snippet_awards", SignalTier.PRIMARY, self.collect_snippet_awards),
            SignalStep("audit_events", SignalTier.SECONDARY, self.collect_audit_events),
            SignalStep("ci_jobs", SignalTier.SECONDARY, self.collect_manual_jobs),
            SignalStep(
                "pipeline_schedules", SignalTier.SECONDARY, self.collect_pipeline_schedules
            ),
            SignalStep("user_events", SignalTier.EXTENDED, self.collect_user_events),
            SignalStep("label_events", SignalTier.EXTENDED, self.collect_label_events),
            SignalStep(
                "state_milestone_events",
                SignalTier.EXTENDED,
                self.collect_state_milestone_events,
            ),
            SignalStep(
                "award_emoji_issues_mrs", SignalTier.EXTENDED, self.collect_issue_mr_awards
            ),
            SignalStep("award_emoji_commits", SignalTier.EXTENDED, self.collect_commit_awards),
            SignalStep(
                "award_emoji_snippets", SignalTier.EXTENDED, self.collect_snippet_emoji
            ),
            SignalStep("project_events", SignalTier.EXTENDED, self.collect_project_events),
        ]

    async def run(self) -> None:
        """Run every step until all privileged accounts are active.

        Raises:
            SignalSourceError: If a primary signal source fails to fetch.
        """
        for step in self.steps():
            if self.ledger.all_active():
                logger.debug(f"All privileged accounts active; skipping from {step.name}")
                return

            if step.fatal:
                try:
                    await step.collect()
                except FETCH_ERRORS as e:
                    raise SignalSourceError(step.name, e) from e
            else:
                try:
                    await step.collect()
                except FETCH_ERRORS as e:
                    logger.debug(f"Signal {step.name} unavailable, continuing: {e}")
                    continue

            logger.debug(f"Signal {step.name} done; pending: {self.ledger.pending()}")

    # --- Helpers ---

    def is_recent(self, when: datetime | None) -> bool:
        """Strictly after the cutoff; an event exactly at the cutoff is not recent."""
        return when is not None and when > self.cutoff

    def _credit(self, record: Evidence, source: str) -> bool:
        """Mark the record's actor active if it is recent. True if newly marked."""
        if not record.actor or not self.is_recent(record.timestamp):
            return False
        return self.ledger.mark_active(record.actor, source)

    async def _credit_all(self, records: AsyncIterator[Evidence], source: str) -> bool:
        """Credit every record. Returns True as soon as all accounts are active."""
        async for record in records:
            if self._credit(record, source) and self.ledger.all_active():
                return True
        return False

    def _walk(
        self,
        fetch: Callable[..., Awaitable[Page[T]]],
        *args: Any,
        per_page: int,
        **kwargs: Any,
    ) -> AsyncIterator[T]:
        """Paginate a client list method, binding everything but the page number."""

        async def fetch_page(page: int) -> Page[T]:
            return await fetch(*args, page=page, per_page=per_page, **kwargs)

        return paginate(fetch_page)

    async def _tolerant(self, items: AsyncIterator[T], what: str) -> AsyncIterator[T]:
        """Yield from ``items`` until a fetch error, which ends the iteration quietly."""
        try:
            async for item in items:
                yield item
        except FETCH_ERRORS as e:
            logger.debug(f"Stopped reading {what}: {e}")

    async def _issues_and_merge_requests(self) -> AsyncIterator[tuple[str, int]]:
        """(parent, iid) for every issue, then every MR, updated after the cutoff.

        A failure listing issues does not prevent listing merge requests.
        """
        issues = self._walk(
            self.client.list_issues,
            self.project_id,
            self.cutoff,
            per_page=self.LIST_PAGE_SIZE,
        )
        async for issue in self._tolerant(issues, "issues"):
            yield ISSUES, issue.iid

        async for mr in self._tolerant(self._recent_merge_requests(), "merge requests"):
            yield MERGE_REQUESTS, mr.iid

    def _recent_merge_requests(self) -> AsyncIterator[Any]:
        return self._walk(
            self.client.list_merge_requests,
            self.project_id,
            self.cutoff,
            per_page=self.LIST_PAGE_SIZE,
            scope="all",
            order_by="updated_at",
        )

    # --- Primary signals ---

    async def collect_merge_requests(self) -> None:
        """Credit whoever merged an MR after the cutoff.

        Approvals are not counted: the API gives no approval timestamp.
        """
        mrs = self._walk(
            self.client.list_merge_requests,
            self.project_id,
            self.cutoff,
            per_page=self.page_size,
        )
        await self._credit_all(mrs, "merge_requests")

    async def collect_releases(self) -> None:
        releases = self._walk(self.client.list_releases, self.project_id, per_page=self.page_size)
        await self._credit_all(releases, "releases")

    async def collect_snippet_awards(self) -> None:
        """Award emoji on project snippets.

        Only the snippet listing is fatal; one snippet's awards failing to
        load skips that snippet.
        """
        snippets = self._walk(self.client.list_snippets, self.project_id, per_page=self.page_size)
        async for snippet in snippets:
            awards = self._walk(
                self.client.list_award_emoji,
                self.project_id,
                SNIPPETS,
                snippet.id,
                per_page=self.EVENT_PAGE_SIZE,
            )
            if await self._credit_all(
                self._tolerant(awards, f"snippet {snippet.id} award emoji"), "snippet_awards"
            ):
                return

    # --- Secondary signals ---

    async def collect_audit_events(self) -> None:
        events = self._walk(
            self.client.list_audit_events,
            self.project_id,
            self.cutoff,
            per_page=self.page_size,
        )
        await self._credit_all(events, "audit_events")

    async def collect_manual_jobs(self) -> None:
        """Jobs with an assigned user, across pipelines updated after the cutoff.

        All-active is re-checked after every job rather than every pipeline.
        """
        pipelines = self._walk(
            self.client.list_pipelines,
            self.project_id,
            self.cutoff,
            per_page=self.LIST_PAGE_SIZE,
        )
        async for pipeline in pipelines:
            jobs = self._walk(
                self.client.list_pipeline_jobs,
                self.project_id,
                pipeline.id,
                per_page=self.EVENT_PAGE_SIZE,
            )
            if await self._credit_all(
                self._tolerant(jobs, f"pipeline {pipeline.id} jobs"), "ci_jobs"
            ):
                return

    async def collect_pipeline_schedules(self) -> None:
        schedules = self._walk(
            self.client.list_pipeline_schedules,
            self.project_id,
            per_page=self.LIST_PAGE_SIZE,
        )
        await self._credit_all(schedules, "pipeline_schedules")

    # --- Extended signals ---

    async def collect_user_events(self) -> None:
        """Per pending account: any of its global events scoped to this project.

        A failed username lookup, whether the user is missing or the request
        failed, skips that account only.
        """
        for username in self.ledger.pending():
            if self.ledger.all_active():
                return
            try:
                user_id = await self.client.find_user_id(username)
            except (UserNotFoundError, *FETCH_ERRORS) as e:
                logger.debug(f"Skipping user events for {username}: {e}")
                continue

            events = self._walk(
                self.client.list_user_events,
                user_id,
                self.cutoff,
                per_page=self.EVENT_PAGE_SIZE,
            )
            async for event in self._tolerant(events, f"{username} events"):
                if event.project_id == self.project_id and self.is_recent(event.timestamp):
                    self.ledger.mark_active(username, "user_events")
                    break

    async def _collect_resource_events(self, kinds: tuple[str, ...], source: str) -> None:
        async for parent, iid in self._issues_and_merge_requests():
            for kind in kinds:
                events = self._walk(
                    self.client.list_resource_events,
                    self.project_id,
                    parent,
                    iid,
                    kind,
                    per_page=self.EVENT_PAGE_SIZE,
                )
                if await self._credit_all(
                    self._tolerant(events, f"{parent}/{iid} {kind} events"), source
                ):
                    return

    async def collect_label_events(self) -> None:
        await self._collect_resource_events(("label",), "label_events")

    async def collect_state_milestone_events(self) -> None:
        await self._collect_resource_events(("state", "milestone"), "state_milestone_events")

    async def collect_issue_mr_awards(self) -> None:
        async for parent, iid in self._issues_and_merge_requests():
            awards = self._walk(
                self.client.list_award_emoji,
                self.project_id,
                parent,
                iid,
                per_page=self.EVENT_PAGE_SIZE,
            )
            if await self._credit_all(
                self._tolerant(awards, f"{parent}/{iid} award emoji"), "award_emoji"
            ):
                return

    async def collect_commit_awards(self) -> None:
        """Award emoji on the head (or merge) commit of recently updated MRs."""
        async for mr in self._tolerant(self._recent_merge_requests(), "merge requests"):
            sha = mr.commit_sha
            if not sha:
                continue
            awards = self._walk(
                self.client.list_commit_award_emoji,
                self.project_id,
                sha,
                per_page=self.EVENT_PAGE_SIZE,
            )
            if await self._credit_all(
                self._tolerant(awards, f"commit {sha} award emoji"), "award_emoji"
            ):
                return

    async def collect_snippet_emoji(self) -> None:
        """Award emoji on snippets touched since the cutoff."""
        snippets = self._walk(
            self.client.list_snippets, self.project_id, per_page=self.LIST_PAGE_SIZE
        )
        async for snippet in self._tolerant(snippets, "snippets"):
            if snippet.updated_at is not None and snippet.updated_at < self.cutoff:
                continue
            awards = self._walk(
                self.client.list_award_emoji,
                self.project_id,
                SNIPPETS,
                snippet.id,
                per_page=self.EVENT_PAGE_SIZE,
            )
            if await self._credit_all(
                self._tolerant(awards, f"snippet {snippet.id} award emoji"), "award_emoji"
            ):
                return

    async def collect_project_events(self) -> None:
        events = self._walk(
            self.client.list_project_events,
            self.project_id,
            self.cutoff,
            per_page=self.page_size,
        )
        await self._credit_all(events, "project_events")
