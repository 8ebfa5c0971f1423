"""Run-once maintainer activity computation for a single project."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from maintrisk.analyzers.cascade import SignalCascade, SignalSourceError
from maintrisk.analyzers.ledger import ActivityLedger
from maintrisk.analyzers.members import PrivilegedAccountResolver
from maintrisk.clients.base import FETCH_ERRORS
from maintrisk.clients.gitlab import GitLabClient
from maintrisk.models.schemas import ActivityConfig

logger = logging.getLogger(__name__)

# Fatal setup phases, in order.
PHASE_RESOLVE_PROJECT = "resolve project id"
PHASE_LOAD_MEMBERS = "load members"
PHASE_COLLECT_ACTIVITY = "collect activity"


class SetupState(str, Enum):
    """Lifecycle of the one-time activity computation."""

    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    DONE = "done"


class MaintainerActivityError(Exception):
    """Raised when a fatal setup phase fails."""

    def __init__(self, phase: str, cause: Exception) -> None:
        self.phase = phase
        self.cause = cause
        super().__init__(f"{phase}: {cause}")


class MaintainerActivityHandler:
    """Determines which privileged accounts of a project were active since a cutoff.

    The first call to ``get_maintainer_activity`` resolves the project,
    loads its privileged members and runs the signal cascade. That work
    happens exactly once per handler: concurrent callers wait for the same
    run, and later callers get the cached result or the same cached error.
    Call ``reset`` to force a fresh computation.

    Usage:
        config = ActivityConfig(token="glpat-...", cutoff=default_cutoff())
        async with GitLabClient(config) as client:
            handler = MaintainerActivityHandler(client, "group/project", config)
            activity = await handler.get_maintainer_activity()
    """

    def __init__(
        self,
        client: GitLabClient,
        project: str | int,
        config: ActivityConfig | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            client: GitLab API client.
            project: Project path (``group/project``) or numeric ID.
            config: Cutoff, access level threshold and page size. Defaults to
                Developer+ activity over the last six months.
        """
        self.client = client
        self.project = project
        self.config = config or client.config

        self.ledger = ActivityLedger()
        self.project_id: int | None = None

        self._state = SetupState.UNINITIALIZED
        self._error: MaintainerActivityError | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SetupState:
        return self._state

    async def get_maintainer_activity(self) -> dict[str, bool]:
        """Map of normalized handle to whether it was active after the cutoff.

        Raises:
            MaintainerActivityError: If project resolution, member loading or a
                primary signal source failed.
        """
        await self._setup()
        return self.ledger.snapshot()

    async def get_activity_evidence(self) -> dict[str, str | None]:
        """Map of handle to the signal source that first confirmed it."""
        await self._setup()
        return self.ledger.evidence()

    def reset(self) -> None:
        """Forget the cached result so the next query recomputes it."""
        if self._state == SetupState.RUNNING:
            raise RuntimeError("cannot reset while setup is running")
        self._state = SetupState.UNINITIALIZED
        self._error = None
        self.project_id = None
        self.ledger = ActivityLedger()

    async def _setup(self) -> None:
        async with self._lock:
            if self._state == SetupState.UNINITIALIZED:
                self._state = SetupState.RUNNING
                try:
                    self._error = await self._run()
                except BaseException:
                    # Cancellation or an unexpected exception leaves nothing cached.
                    self._state = SetupState.UNINITIALIZED
                    self.project_id = None
                    self.ledger = ActivityLedger()
                    raise
                self._state = SetupState.DONE
        if self._error is not None:
            raise self._error

    async def _run(self) -> MaintainerActivityError | None:
        """Resolve, load and collect. Returns the fatal error, if any."""
        error = await self._run_phases()
        if error is not None:
            logger.warning(f"Maintainer activity for {self.project} failed: {error}")
        return error

    async def _run_phases(self) -> MaintainerActivityError | None:
        try:
            project = await self.client.get_project(self.project)
        except FETCH_ERRORS as e:
            return MaintainerActivityError(PHASE_RESOLVE_PROJECT, e)
        self.project_id = project.id

        resolver = PrivilegedAccountResolver(
            self.client,
            min_access_level=self.config.min_access_level,
            page_size=self.config.page_size,
        )
        try:
            elevated = await resolver.resolve(project.id)
        except FETCH_ERRORS as e:
            return MaintainerActivityError(PHASE_LOAD_MEMBERS, e)

        self.ledger.initialize(elevated)
        if not self.ledger.elevated:
            logger.info(f"No privileged accounts in {self.project}; nothing to check")
            return None

        cascade = SignalCascade(
            self.client,
            project_id=project.id,
            ledger=self.ledger,
            cutoff=self.config.cutoff,
            page_size=self.config.page_size,
        )
        try:
            await cascade.run()
        except SignalSourceError as e:
            return MaintainerActivityError(PHASE_COLLECT_ACTIVITY, e)

        active = sum(self.ledger.snapshot().values())
        logger.info(
            f"{self.project}: {active}/{len(self.ledger)} privileged accounts active "
            f"since {self.config.cutoff.isoformat()}"
        )
        return None
