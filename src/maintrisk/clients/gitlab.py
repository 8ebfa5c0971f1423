"""GitLab REST client for maintainer activity signals."""

import logging
import urllib.parse
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel

from maintrisk.clients.base import GitLabAPIError, Page, UserNotFoundError
from maintrisk.models.schemas import (
    ActivityConfig,
    AuditEvent,
    AwardEmoji,
    Issue,
    Job,
    Member,
    MergeRequest,
    Pipeline,
    PipelineSchedule,
    Project,
    ProjectEvent,
    Release,
    ResourceEvent,
    Snippet,
    User,
    UserEvent,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Job scopes that can carry a human trigger (manual plays, retries, cancels).
JOB_SCOPES = ["manual", "running", "success", "failed", "canceled", "skipped", "pending"]

# Parent resources that expose resource_*_events and award_emoji.
ISSUES = "issues"
MERGE_REQUESTS = "merge_requests"
SNIPPETS = "snippets"

RESOURCE_EVENT_KINDS = ("label", "state", "milestone")


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _after_date(value: datetime) -> str:
    """Date for GitLab's exclusive, day-granular ``after`` filter.

    One day is subtracted so events later on the cutoff day are not dropped
    server side; callers still compare exact timestamps.
    """
    return (value.astimezone(timezone.utc) - timedelta(days=1)).date().isoformat()


class GitLabClient:
    """Fetches project activity data from the GitLab REST API (v4).

    Every ``list_*`` method fetches exactly one page and returns a Page whose
    ``next_page`` comes from the ``X-Next-Page`` response header. Combine them
    with ``maintrisk.clients.base.paginate`` to walk a whole listing.

    Set a personal access token with ``read_api`` scope for private projects;
    audit events additionally need Maintainer+ rights.
    """

    def __init__(
        self,
        config: ActivityConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Base URL, token and timeout. Defaults to gitlab.com anonymously.
            client: Optional httpx client. If not provided, a new client is created
                per request (or once per ``async with`` block).
        """
        self.config = config or ActivityConfig()
        self._client = client
        self._owns_client = False

        self.requests_made: int = 0

        # Rate limit tracking
        self.rate_limit_remaining: int | None = None
        self.rate_limit_total: int | None = None
        self.rate_limit_reset: datetime | None = None

    async def __aenter__(self) -> "GitLabClient":
        """Share one HTTP client for the lifetime of the block."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
            self._owns_client = True
        return self

    async def __aexit__(self, *args) -> None:
        """Close the shared HTTP client if this instance created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    def _headers(self) -> dict[str, str]:
        """Get headers for GitLab API requests."""
        headers = {"Accept": "application/json"}
        if self.config.token:
            headers["PRIVATE-TOKEN"] = self.config.token
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create an HTTP client."""
        if self._client is not None:
            return self._client
        return httpx.AsyncClient(timeout=self.config.timeout)

    def _update_rate_limits(self, response: httpx.Response) -> None:
        """Extract and store rate limit info from response headers."""
        remaining = response.headers.get("RateLimit-Remaining")
        limit = response.headers.get("RateLimit-Limit")
        reset = response.headers.get("RateLimit-Reset")

        if remaining is not None and remaining.isdigit():
            self.rate_limit_remaining = int(remaining)
        if limit is not None and limit.isdigit():
            self.rate_limit_total = int(limit)
        if reset is not None and reset.isdigit():
            self.rate_limit_reset = datetime.fromtimestamp(int(reset), tz=timezone.utc)

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        """GET a path relative to the API root.

        Raises:
            GitLabAPIError: On any non-2xx status.
            httpx.HTTPError: On transport failures.
        """
        client = await self._get_client()
        url = f"{self.config.base_url}/{path}"

        try:
            response = await client.get(url, params=params, headers=self._headers())
            self.requests_made += 1
            self._update_rate_limits(response)
            logger.debug(f"GET {path} -> {response.status_code}")
            if response.is_error:
                message = ""
                try:
                    body = response.json()
                    if isinstance(body, dict):
                        message = str(body.get("message") or body.get("error") or "")
                except ValueError:
                    message = response.text[:200]
                raise GitLabAPIError(response.status_code, path, message)
            return response
        finally:
            if self._client is None:
                await client.aclose()

    async def _fetch_page(
        self,
        path: str,
        model: type[M],
        page: int,
        per_page: int,
        params: dict[str, Any] | None = None,
    ) -> Page[M]:
        """Fetch one page of a list endpoint and validate its records."""
        query = dict(params or {})
        query["page"] = page
        query["per_page"] = per_page

        response = await self._get(path, params=query)
        data = response.json()
        if not isinstance(data, list):
            raise ValueError(f"expected a JSON list from {path}, got {type(data).__name__}")

        next_page = response.headers.get("X-Next-Page", "").strip()
        return Page(
            items=[model.model_validate(row) for row in data],
            next_page=int(next_page) if next_page.isdigit() else None,
        )

    @staticmethod
    def encode_project(project: str | int) -> str:
        """URL-encode a project path (``group/project``) or pass a numeric ID through."""
        return urllib.parse.quote(str(project), safe="")

    # --- Project and members ---

    async def get_project(self, project: str | int) -> Project:
        """Fetch a project by path or numeric ID."""
        response = await self._get(f"projects/{self.encode_project(project)}")
        return Project.model_validate(response.json())

    async def list_all_project_members(
        self, project: str | int, page: int = 1, per_page: int = 100
    ) -> Page[Member]:
        """List members including those inherited from parent groups."""
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/members/all", Member, page, per_page
        )

    # --- Primary signal sources ---

    async def list_merge_requests(
        self,
        project: str | int,
        updated_after: datetime,
        page: int = 1,
        per_page: int = 100,
        scope: str | None = None,
        order_by: str | None = None,
    ) -> Page[MergeRequest]:
        """List merge requests updated after a timestamp."""
        params: dict[str, Any] = {"updated_after": _iso(updated_after), "state": "all"}
        if scope:
            params["scope"] = scope
        if order_by:
            params["order_by"] = order_by
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/merge_requests",
            MergeRequest,
            page,
            per_page,
            params,
        )

    async def list_releases(
        self, project: str | int, page: int = 1, per_page: int = 100
    ) -> Page[Release]:
        """List releases, newest release date first."""
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/releases",
            Release,
            page,
            per_page,
            {"order_by": "released_at", "sort": "desc"},
        )

    async def list_snippets(
        self, project: str | int, page: int = 1, per_page: int = 100
    ) -> Page[Snippet]:
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/snippets", Snippet, page, per_page
        )

    # --- Secondary signal sources ---

    async def list_audit_events(
        self, project: str | int, created_after: datetime, page: int = 1, per_page: int = 100
    ) -> Page[AuditEvent]:
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/audit_events",
            AuditEvent,
            page,
            per_page,
            {"created_after": _iso(created_after)},
        )

    async def list_pipelines(
        self, project: str | int, updated_after: datetime, page: int = 1, per_page: int = 50
    ) -> Page[Pipeline]:
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/pipelines",
            Pipeline,
            page,
            per_page,
            {"updated_after": _iso(updated_after), "order_by": "updated_at"},
        )

    async def list_pipeline_jobs(
        self, project: str | int, pipeline_id: int, page: int = 1, per_page: int = 100
    ) -> Page[Job]:
        """List a pipeline's jobs across every human-triggerable scope, retries included."""
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/pipelines/{pipeline_id}/jobs",
            Job,
            page,
            per_page,
            {"scope[]": JOB_SCOPES, "include_retried": "true"},
        )

    async def list_pipeline_schedules(
        self, project: str | int, page: int = 1, per_page: int = 50
    ) -> Page[PipelineSchedule]:
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/pipeline_schedules",
            PipelineSchedule,
            page,
            per_page,
        )

    # --- Extended signal sources ---

    async def find_user_id(self, username: str) -> int:
        """Resolve a username to its numeric user ID.

        Raises:
            UserNotFoundError: If no user has this username.
        """
        response = await self._get("users", params={"username": username})
        data = response.json()
        if not isinstance(data, list) or not data:
            raise UserNotFoundError(username)
        return User.model_validate(data[0]).id

    async def list_user_events(
        self, user_id: int, after: datetime, page: int = 1, per_page: int = 100
    ) -> Page[UserEvent]:
        """List a user's contribution events across all projects."""
        return await self._fetch_page(
            f"users/{user_id}/events",
            UserEvent,
            page,
            per_page,
            {"after": _after_date(after)},
        )

    async def list_issues(
        self, project: str | int, updated_after: datetime, page: int = 1, per_page: int = 50
    ) -> Page[Issue]:
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/issues",
            Issue,
            page,
            per_page,
            {"updated_after": _iso(updated_after), "scope": "all", "order_by": "updated_at"},
        )

    async def list_resource_events(
        self,
        project: str | int,
        parent: str,
        iid: int,
        kind: str,
        page: int = 1,
        per_page: int = 100,
    ) -> Page[ResourceEvent]:
        """List label, state or milestone events of an issue or merge request.

        Args:
            parent: ``issues`` or ``merge_requests``.
            kind: ``label``, ``state`` or ``milestone``.
        """
        if kind not in RESOURCE_EVENT_KINDS:
            raise ValueError(f"unknown resource event kind: {kind}")
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/{parent}/{iid}/resource_{kind}_events",
            ResourceEvent,
            page,
            per_page,
        )

    async def list_award_emoji(
        self,
        project: str | int,
        parent: str,
        parent_id: int,
        page: int = 1,
        per_page: int = 100,
    ) -> Page[AwardEmoji]:
        """List award emoji on an issue, merge request (by IID) or snippet (by ID)."""
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/{parent}/{parent_id}/award_emoji",
            AwardEmoji,
            page,
            per_page,
        )

    async def list_commit_award_emoji(
        self, project: str | int, sha: str, page: int = 1, per_page: int = 100
    ) -> Page[AwardEmoji]:
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/repository/commits/{sha}/award_emoji",
            AwardEmoji,
            page,
            per_page,
        )

    async def list_project_events(
        self, project: str | int, after: datetime, page: int = 1, per_page: int = 100
    ) -> Page[ProjectEvent]:
        """List the project's generic activity feed."""
        return await self._fetch_page(
            f"projects/{self.encode_project(project)}/events",
            ProjectEvent,
            page,
            per_page,
            {"after": _after_date(after)},
        )
