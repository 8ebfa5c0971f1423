"""Shared fixtures: an in-memory GitLab API served through respx."""

import urllib.parse
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import respx

from maintrisk.clients.gitlab import GitLabClient
from maintrisk.models.schemas import ActivityConfig

BASE_URL = "https://gitlab.test/api/v4"
CUTOFF = datetime(2026, 1, 1, tzinfo=timezone.utc)
PROJECT = "acme/widgets"
PROJECT_ID = 42


def ts(hours: float) -> str:
    """ISO timestamp ``hours`` after the cutoff (negative = before)."""
    return (CUTOFF + timedelta(hours=hours)).isoformat().replace("+00:00", "Z")


def member(username: str, access_level: int = 30) -> dict:
    return {"id": abs(hash(username)) % 10_000, "username": username, "access_level": access_level}


class FakeGitLab:
    """Serves list endpoints page by page and records every request path.

    Unregistered list endpoints answer with an empty page.
    """

    def __init__(self) -> None:
        self.pages: dict[str, list[list[dict]]] = {}
        self.objects: dict[str, dict] = {}
        self.users: dict[str, int] = {}
        self.failures: dict[tuple[str, int | None], int] = {}
        self.calls: list[str] = []
        self.requests: list[httpx.Request] = []

    def add(self, path: str, *pages: list[dict]) -> None:
        self.pages[path] = [list(p) for p in pages]

    def fail(self, path: str, status: int = 403, page: int | None = None) -> None:
        """Make ``path`` answer ``status``, for every page or only one."""
        self.failures[(path, page)] = status

    def count(self, path: str) -> int:
        return self.calls.count(path)

    def called(self, path: str) -> bool:
        return path in self.calls

    def __call__(self, request: httpx.Request) -> httpx.Response:
        raw_path = request.url.raw_path.decode().split("?")[0]
        path = urllib.parse.unquote(raw_path).removeprefix("/api/v4/")
        page = int(request.url.params.get("page", "1"))
        self.calls.append(path)
        self.requests.append(request)

        status = self.failures.get((path, page)) or self.failures.get((path, None))
        if status:
            return httpx.Response(status, json={"message": f"{status} Forbidden"})

        if path in self.objects:
            return httpx.Response(200, json=self.objects[path])

        if path == "users":
            username = request.url.params.get("username", "")
            if username in self.users:
                return httpx.Response(200, json=[{"id": self.users[username], "username": username}])
            return httpx.Response(200, json=[])

        pages = self.pages.get(path, [[]])
        body = pages[page - 1] if page <= len(pages) else []
        next_page = str(page + 1) if page < len(pages) else ""
        return httpx.Response(200, json=body, headers={"X-Next-Page": next_page})


@pytest.fixture
def gitlab():
    fake = FakeGitLab()
    fake.objects[f"projects/{PROJECT}"] = {"id": PROJECT_ID, "path_with_namespace": PROJECT}
    with respx.mock(assert_all_called=False) as router:
        router.route(host="gitlab.test").mock(side_effect=fake)
        yield fake


@pytest.fixture
def config() -> ActivityConfig:
    return ActivityConfig(base_url=BASE_URL, token="glpat-test", cutoff=CUTOFF)


@pytest.fixture
def client(config: ActivityConfig) -> GitLabClient:
    return GitLabClient(config)
