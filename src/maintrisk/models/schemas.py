"""Pydantic models for GitLab activity data."""

from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum

from pydantic import BaseModel, Field, field_validator


class Platform(str, Enum):
    """Source code hosting platforms."""

    GITHUB = "github"
    GITLAB = "gitlab"
    LOCAL = "local"
    OTHER = "other"


class AccessLevel(IntEnum):
    """GitLab member access levels, ordered by privilege."""

    NO_ACCESS = 0
    MINIMAL = 5
    GUEST = 10
    PLANNER = 15
    REPORTER = 20
    DEVELOPER = 30
    MAINTAINER = 40
    OWNER = 50


class RepoRef(BaseModel):
    """Reference to a source code repository."""

    platform: Platform
    host: str = "gitlab.com"
    path: str

    @property
    def url(self) -> str:
        """Get the full repository URL."""
        if self.platform == Platform.LOCAL:
            return self.path
        return f"https://{self.host}/{self.path}"


def default_cutoff(now: datetime | None = None, days: int = 180) -> datetime:
    """Return the default activity cutoff: six months before ``now``."""
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=days)


class ActivityConfig(BaseModel):
    """Explicit configuration for one maintainer-activity run."""

    base_url: str = "https://gitlab.com/api/v4"
    token: str | None = None
    cutoff: datetime = Field(default_factory=default_cutoff)
    min_access_level: AccessLevel = AccessLevel.DEVELOPER
    page_size: int = Field(default=100, ge=1, le=100)
    timeout: float = 30.0

    model_config = {"frozen": True}

    @field_validator("cutoff")
    @classmethod
    def _cutoff_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")


# --- GitLab record shapes ---
#
# Each signal source has its own JSON shape. Every model that can carry
# evidence exposes ``actor`` and ``timestamp`` so the cascade can apply one
# recency rule to all of them.


class UserRef(BaseModel):
    """Embedded user object (``user``, ``author``, ``owner``...)."""

    id: int | None = None
    username: str = ""


def _username(user: UserRef | None) -> str:
    return user.username if user is not None else ""


class Project(BaseModel):
    """Minimal project record."""

    id: int
    path_with_namespace: str = ""


class Member(BaseModel):
    """Project member, direct or inherited."""

    id: int | None = None
    username: str = ""
    access_level: int = 0


class User(BaseModel):
    """Result row of a user lookup by username."""

    id: int
    username: str = ""


class MergeRequest(BaseModel):
    """Merge request listing row."""

    iid: int
    updated_at: datetime | None = None
    merged_at: datetime | None = None
    merge_user: UserRef | None = None
    merged_by: UserRef | None = None
    sha: str | None = None
    merge_commit_sha: str | None = None

    @property
    def actor(self) -> str:
        return _username(self.merge_user) or _username(self.merged_by)

    @property
    def timestamp(self) -> datetime | None:
        return self.merged_at

    @property
    def commit_sha(self) -> str:
        """Head SHA, or the merge commit SHA when the head is unknown."""
        return self.sha or self.merge_commit_sha or ""


class Release(BaseModel):
    """Project release."""

    tag_name: str = ""
    author: UserRef | None = None
    released_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def actor(self) -> str:
        return _username(self.author)

    @property
    def timestamp(self) -> datetime | None:
        return self.released_at or self.created_at


class Snippet(BaseModel):
    """Project snippet."""

    id: int
    updated_at: datetime | None = None


class AwardEmoji(BaseModel):
    """Award emoji on an issue, merge request, commit or snippet."""

    name: str = ""
    user: UserRef | None = None
    created_at: datetime | None = None

    @property
    def actor(self) -> str:
        return _username(self.user)

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at


class AuditEventDetails(BaseModel):
    author_name: str = ""


class AuditEvent(BaseModel):
    """Project audit event."""

    id: int | None = None
    created_at: datetime | None = None
    details: AuditEventDetails = Field(default_factory=AuditEventDetails)

    @property
    def actor(self) -> str:
        return self.details.author_name

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at


class Pipeline(BaseModel):
    id: int
    updated_at: datetime | None = None


class Job(BaseModel):
    """CI/CD job. Only jobs with a user are attributable to a human."""

    id: int | None = None
    status: str = ""
    user: UserRef | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def actor(self) -> str:
        return _username(self.user)

    @property
    def timestamp(self) -> datetime | None:
        return self.started_at or self.finished_at or self.created_at


class PipelineSchedule(BaseModel):
    """Pipeline schedule with its owner."""

    id: int | None = None
    owner: UserRef | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def actor(self) -> str:
        return _username(self.owner)

    @property
    def timestamp(self) -> datetime | None:
        present = [t for t in (self.updated_at, self.created_at) if t is not None]
        return max(present) if present else None


class UserEvent(BaseModel):
    """Entry of a user's global contribution event feed."""

    project_id: int | None = None
    action_name: str = ""
    created_at: datetime | None = None

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at


class Issue(BaseModel):
    iid: int
    updated_at: datetime | None = None


class ResourceEvent(BaseModel):
    """Label, state or milestone change on an issue or merge request."""

    id: int | None = None
    user: UserRef | None = None
    created_at: datetime | None = None
    state: str | None = None

    @property
    def actor(self) -> str:
        return _username(self.user)

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at


class ProjectEvent(BaseModel):
    """Generic project activity feed entry (pushes, wiki edits...)."""

    author_username: str = ""
    action_name: str = ""
    created_at: datetime | None = None

    @property
    def actor(self) -> str:
        return self.author_username

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at


# --- Report models ---


class MaintainerFinding(BaseModel):
    """Activity outcome for a single privileged account."""

    username: str
    active: bool
    evidence: str | None = None


class MaintainerActivityReport(BaseModel):
    """Scored maintainer-activity result for one project."""

    project: str
    cutoff: datetime
    min_access_level: AccessLevel
    findings: list[MaintainerFinding] = Field(default_factory=list)
    active_count: int = 0
    inactive_count: int = 0
    score: int = -1  # -1 = inconclusive (no privileged accounts)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
