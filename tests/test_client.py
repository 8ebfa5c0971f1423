"""Tests for the GitLab REST client."""

import httpx
import pytest
import respx

from maintrisk.clients.base import GitLabAPIError, UserNotFoundError
from maintrisk.clients.gitlab import GitLabClient
from maintrisk.models.schemas import ActivityConfig

from .conftest import BASE_URL, CUTOFF, PROJECT_ID, ts


class TestGitLabClient:
    def test_encode_project(self):
        assert GitLabClient.encode_project("acme/tools/widgets") == "acme%2Ftools%2Fwidgets"
        assert GitLabClient.encode_project(42) == "42"

    def test_headers_with_token(self, client):
        assert client._headers()["PRIVATE-TOKEN"] == "glpat-test"

    def test_headers_without_token(self):
        assert "PRIVATE-TOKEN" not in GitLabClient(ActivityConfig())._headers()

    @pytest.mark.asyncio
    async def test_list_page_parses_next_page(self, client):
        with respx.mock:
            route = respx.get(f"{BASE_URL}/projects/{PROJECT_ID}/releases").mock(
                return_value=httpx.Response(
                    200,
                    json=[{"tag_name": "v1.0", "author": {"username": "alice"}, "released_at": ts(1)}],
                    headers={"X-Next-Page": "2", "RateLimit-Remaining": "1999"},
                )
            )
            page = await client.list_releases(PROJECT_ID, page=1, per_page=20)

        assert route.called
        request = route.calls.last.request
        assert request.url.params["per_page"] == "20"
        assert request.url.params["order_by"] == "released_at"
        assert request.url.params["sort"] == "desc"
        assert request.headers["PRIVATE-TOKEN"] == "glpat-test"

        assert page.next_page == 2
        assert page.items[0].actor == "alice"
        assert client.rate_limit_remaining == 1999
        assert client.requests_made == 1

    @pytest.mark.asyncio
    async def test_empty_next_page_header_means_exhausted(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/projects/{PROJECT_ID}/snippets").mock(
                return_value=httpx.Response(200, json=[{"id": 1}], headers={"X-Next-Page": ""})
            )
            page = await client.list_snippets(PROJECT_ID)
        assert page.next_page is None
        assert [s.id for s in page.items] == [1]

    @pytest.mark.asyncio
    async def test_error_status_raises(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/projects/{PROJECT_ID}/audit_events").mock(
                return_value=httpx.Response(403, json={"message": "403 Forbidden"})
            )
            with pytest.raises(GitLabAPIError) as exc_info:
                await client.list_audit_events(PROJECT_ID, CUTOFF)
        assert exc_info.value.status_code == 403
        assert "403 Forbidden" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_list_body_raises_value_error(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/projects/{PROJECT_ID}/events").mock(
                return_value=httpx.Response(200, json={"unexpected": True})
            )
            with pytest.raises(ValueError):
                await client.list_project_events(PROJECT_ID, CUTOFF)

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/projects/{PROJECT_ID}/pipeline_schedules").mock(
                side_effect=httpx.ConnectError("connection refused")
            )
            with pytest.raises(httpx.HTTPError):
                await client.list_pipeline_schedules(PROJECT_ID)

    @pytest.mark.asyncio
    async def test_find_user_id(self, client):
        with respx.mock:
            route = respx.get(f"{BASE_URL}/users").mock(
                return_value=httpx.Response(200, json=[{"id": 7, "username": "alice"}])
            )
            assert await client.find_user_id("alice") == 7
        assert route.calls.last.request.url.params["username"] == "alice"

    @pytest.mark.asyncio
    async def test_find_user_id_not_found(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/users").mock(return_value=httpx.Response(200, json=[]))
            with pytest.raises(UserNotFoundError):
                await client.find_user_id("ghost")

    @pytest.mark.asyncio
    async def test_merge_requests_filters(self, client):
        with respx.mock:
            route = respx.get(f"{BASE_URL}/projects/{PROJECT_ID}/merge_requests").mock(
                return_value=httpx.Response(200, json=[])
            )
            await client.list_merge_requests(
                PROJECT_ID, CUTOFF, scope="all", order_by="updated_at"
            )
        params = route.calls.last.request.url.params
        assert params["updated_after"] == "2026-01-01T00:00:00Z"
        assert params["scope"] == "all"
        assert params["order_by"] == "updated_at"

    @pytest.mark.asyncio
    async def test_pipeline_jobs_scopes(self, client):
        with respx.mock:
            route = respx.get(f"{BASE_URL}/projects/{PROJECT_ID}/pipelines/9/jobs").mock(
                return_value=httpx.Response(200, json=[])
            )
            await client.list_pipeline_jobs(PROJECT_ID, 9)
        params = route.calls.last.request.url.params
        assert "manual" in params.get_list("scope[]")
        assert params["include_retried"] == "true"

    @pytest.mark.asyncio
    async def test_after_filter_is_day_before_cutoff(self, client):
        with respx.mock:
            route = respx.get(f"{BASE_URL}/users/7/events").mock(
                return_value=httpx.Response(200, json=[])
            )
            await client.list_user_events(7, CUTOFF)
        assert route.calls.last.request.url.params["after"] == "2025-12-31"

    @pytest.mark.asyncio
    async def test_unknown_resource_event_kind(self, client):
        with pytest.raises(ValueError):
            await client.list_resource_events(PROJECT_ID, "issues", 1, "weight")

    @pytest.mark.asyncio
    async def test_shared_client_context(self, config):
        async with GitLabClient(config) as client:
            assert client._client is not None
            shared = client._client
        assert client._client is None
        assert shared.is_closed
