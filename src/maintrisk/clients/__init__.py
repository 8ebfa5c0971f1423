"""Host API clients."""

from maintrisk.clients.base import (
    FETCH_ERRORS,
    GitLabAPIError,
    Page,
    UserNotFoundError,
    paginate,
    parse_repo_url,
)
from maintrisk.clients.gitlab import GitLabClient

__all__ = [
    "FETCH_ERRORS",
    "GitLabAPIError",
    "GitLabClient",
    "Page",
    "UserNotFoundError",
    "paginate",
    "parse_repo_url",
]
