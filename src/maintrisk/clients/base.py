"""Shared pieces for host API clients: pages, pagination and errors."""

import re
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import httpx

from maintrisk.models.schemas import Platform, RepoRef

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of records plus the token for the next one.

    ``next_page`` is None once the endpoint is exhausted.
    """

    items: list[T] = field(default_factory=list)
    next_page: int | None = None


PageFetcher = Callable[[int], Awaitable[Page[T]]]


async def paginate(fetch: PageFetcher[T], start: int = 1) -> AsyncIterator[T]:
    """Iterate over every record of a paginated endpoint.

    ``fetch`` receives a page number and returns a Page. Pages are requested
    lazily, so a consumer that stops iterating stops issuing requests. Fetch
    errors propagate to the consumer.

    Args:
        fetch: Coroutine function returning one page.
        start: First page number to request.

    Yields:
        Records from each page, in order.
    """
    page: int | None = start
    while page is not None:
        result = await fetch(page)
        for item in result.items:
            yield item
        page = result.next_page


class GitLabAPIError(Exception):
    """Raised when the GitLab API answers with a non-success status."""

    def __init__(self, status_code: int, path: str, message: str = "") -> None:
        self.status_code = status_code
        self.path = path
        self.message = message
        detail = f": {message}" if message else ""
        super().__init__(f"GET {path} returned {status_code}{detail}")


class UserNotFoundError(Exception):
    """Raised when a username lookup yields no user."""

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"user not found: {username}")


# Everything a single page fetch can raise: transport and status errors,
# undecodable JSON and records that fail model validation (ValueError).
FETCH_ERRORS: tuple[type[Exception], ...] = (httpx.HTTPError, GitLabAPIError, ValueError)


def parse_repo_url(url: str) -> RepoRef | None:
    """Parse a repository URL or project path into a RepoRef.

    Supports GitLab (including self-managed hosts and nested groups),
    GitHub, local paths and bare ``group/project`` paths, which are
    assumed to live on gitlab.com.

    Args:
        url: Repository URL or path to parse.

    Returns:
        RepoRef if the value can be parsed, None otherwise.
    """
    if not url:
        return None
    url = url.strip()

    if url.startswith("file://"):
        return RepoRef(platform=Platform.LOCAL, host="", path=url[len("file://"):])

    # https://gitlab.com/group/sub/project
    # https://gitlab.com/group/project.git
    # https://gitlab.com/group/project/-/tree/main
    # git@gitlab.com:group/project.git
    patterns = [
        r"(?:https?://)?(?:www\.)?([^/@:\s]+\.[^/@:\s]+)/([^\s]+?)(?:\.git)?/?(?:/-/.*)?$",
        r"git@([^:\s]+):([^\s]+?)(?:\.git)?$",
    ]
    for pattern in patterns:
        match = re.match(pattern, url)
        if not match:
            continue
        host, path = match.group(1), match.group(2).strip("/")
        if path.count("/") < 1:
            return None
        platform = Platform.GITHUB if host.endswith("github.com") else Platform.GITLAB
        if platform == Platform.GITHUB:
            path = "/".join(path.split("/")[:2])
        return RepoRef(platform=platform, host=host, path=path)

    # Bare group/project path
    if re.match(r"^[\w.-]+(?:/[\w.-]+)+$", url):
        return RepoRef(platform=Platform.GITLAB, host="gitlab.com", path=url)

    return None
