"""Tests for the Plane API client and its endpoint discovery."""

import json

import httpx
import pytest

from plane_agent.config import PlaneConfig
from plane_agent.models import IssueRoute
from plane_agent.plane_client import (
    EndpointUnavailableError,
    PlaneClient,
    RemoteAPIError,
    UnexpectedContentTypeError,
)


BASE_URL = "https://plane.test"


def make_config(prefixes=("/a", "/b", "/c"), max_retries=1) -> PlaneConfig:
    return PlaneConfig(
        api_url=BASE_URL,
        api_key="test-key",
        workspace="indigo",
        project_id="proj-1",
        api_prefixes=tuple(prefixes),
        request_timeout=5,
        max_retries=max_retries,
    )


class Recorder:
    """MockTransport handler answering per path and recording requests."""

    def __init__(self, responses):
        self._responses = responses
        self.requests: list[httpx.Request] = []

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self._responses.get(request.url.path, httpx.Response(404))
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(request)
        # Fresh copy so the same canned answer can be served twice
        return httpx.Response(
            answer.status_code, headers=answer.headers, content=answer.content
        )


def open_client(recorder: Recorder, **config_kwargs) -> PlaneClient:
    client = PlaneClient(make_config(**config_kwargs), transport=httpx.MockTransport(recorder))
    return client.__enter__()


@pytest.fixture
def route() -> IssueRoute:
    return IssueRoute(workspace_slug="indigo", project_id="proj-1")


# =============================================================================
# Endpoint Discovery
# =============================================================================

class TestEndpointDiscovery:
    """Tests for the prefix probing loop."""

    def test_skips_not_found_and_stops_at_success(self):
        """404, 404, 200 returns the JSON and never probes further."""
        recorder = Recorder({
            "/a/items/": httpx.Response(404),
            "/b/items/": httpx.Response(404),
            "/c/items/": httpx.Response(200, json={"id": "x"}),
            "/d/items/": httpx.Response(200, json={"id": "never"}),
        })
        client = open_client(recorder, prefixes=("/a", "/b", "/c", "/d"))

        assert client.call("/items/") == {"id": "x"}
        assert recorder.paths == ["/a/items/", "/b/items/", "/c/items/"]

    def test_rejection_is_terminal(self):
        """A 403 on the first prefix fails without trying the next one."""
        recorder = Recorder({
            "/a/items/": httpx.Response(403, text="forbidden"),
            "/b/items/": httpx.Response(200, json={"id": "x"}),
        })
        client = open_client(recorder, prefixes=("/a", "/b"))

        with pytest.raises(RemoteAPIError) as exc_info:
            client.call("/items/")

        assert exc_info.value.status == 403
        assert exc_info.value.body == "forbidden"
        assert recorder.paths == ["/a/items/"]

    def test_server_error_is_terminal(self):
        recorder = Recorder({"/a/items/": httpx.Response(500, text="boom")})
        client = open_client(recorder)

        with pytest.raises(RemoteAPIError) as exc_info:
            client.call("/items/")
        assert exc_info.value.status == 500
        assert recorder.paths == ["/a/items/"]

    def test_non_json_success_is_terminal(self):
        recorder = Recorder({
            "/a/items/": httpx.Response(200, html="<html>login</html>"),
            "/b/items/": httpx.Response(200, json={"id": "x"}),
        })
        client = open_client(recorder)

        with pytest.raises(UnexpectedContentTypeError) as exc_info:
            client.call("/items/")
        assert "text/html" in exc_info.value.content_type
        assert recorder.paths == ["/a/items/"]

    def test_all_not_found_is_unavailable(self):
        recorder = Recorder({})
        client = open_client(recorder)

        with pytest.raises(EndpointUnavailableError) as exc_info:
            client.call("/items/")

        assert len(exc_info.value.attempted) == 3
        assert recorder.paths == ["/a/items/", "/b/items/", "/c/items/"]

    def test_unavailable_is_not_a_remote_api_error(self):
        client = open_client(Recorder({}))
        with pytest.raises(EndpointUnavailableError) as exc_info:
            client.call("/items/")
        assert not isinstance(exc_info.value, RemoteAPIError)

    def test_unreachable_prefix_moves_on(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        recorder = Recorder({
            "/a/items/": refuse,
            "/b/items/": httpx.Response(200, json=[1, 2]),
        })
        client = open_client(recorder)

        assert client.call("/items/") == [1, 2]
        assert recorder.paths == ["/a/items/", "/b/items/"]

    def test_every_call_restarts_from_first_prefix(self):
        recorder = Recorder({
            "/a/items/": httpx.Response(404),
            "/b/items/": httpx.Response(200, json={"ok": True}),
        })
        client = open_client(recorder)

        client.call("/items/")
        client.call("/items/")

        assert recorder.paths == [
            "/a/items/", "/b/items/",
            "/a/items/", "/b/items/",
        ]

    def test_empty_prefix_hits_root(self):
        recorder = Recorder({"/workspaces/": httpx.Response(200, json=[])})
        client = open_client(recorder, prefixes=("/api/v1", ""))

        assert client.call("/workspaces/") == []
        assert recorder.paths == ["/api/v1/workspaces/", "/workspaces/"]

    def test_suffix_without_leading_slash(self):
        recorder = Recorder({"/a/items/": httpx.Response(200, json={})})
        client = open_client(recorder)
        assert client.call("items/") == {}

    def test_sends_auth_headers(self):
        recorder = Recorder({"/a/items/": httpx.Response(200, json={})})
        client = open_client(recorder)
        client.call("/items/")

        headers = recorder.requests[0].headers
        assert headers["Authorization"] == "Bearer test-key"
        assert headers["X-API-Key"] == "test-key"

    def test_call_without_context_raises(self):
        client = PlaneClient(make_config())
        with pytest.raises(RuntimeError, match="context manager"):
            client.call("/items/")

    def test_context_manager(self):
        with PlaneClient(make_config()) as client:
            assert client._client is not None
        assert client._client is None


# =============================================================================
# Resource Helpers
# =============================================================================

class TestResourceHelpers:
    """Tests for the convenience methods."""

    def test_get_workspaces_unwraps_results(self):
        recorder = Recorder({
            "/a/workspaces/": httpx.Response(
                200, json={"results": [{"slug": "indigo", "name": "Indigo"}]}
            ),
        })
        client = open_client(recorder)
        assert client.get_workspaces() == [{"slug": "indigo", "name": "Indigo"}]

    def test_get_projects_plain_list(self):
        recorder = Recorder({
            "/a/workspaces/indigo/projects/": httpx.Response(200, json=[{"id": "p1"}]),
        })
        client = open_client(recorder)
        assert client.get_projects("indigo") == [{"id": "p1"}]

    def test_create_issue_posts_payload(self, route):
        recorder = Recorder({
            "/a/workspaces/indigo/projects/proj-1/issues/": httpx.Response(
                201, json={"id": "issue-9"}
            ),
        })
        client = open_client(recorder)

        issue = client.create_issue(route, {"name": "Title", "priority": "high"})

        assert issue == {"id": "issue-9"}
        request = recorder.requests[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {"name": "Title", "priority": "high"}

    def test_add_comment_escapes_html(self, route):
        recorder = Recorder({
            "/a/workspaces/indigo/projects/proj-1/issues/issue-9/comments/": httpx.Response(
                201, json={"id": "c1"}
            ),
        })
        client = open_client(recorder)

        client.add_comment(route, "issue-9", "<b>hi</b>\nthere")

        body = json.loads(recorder.requests[0].content)
        assert body["comment_html"] == "<p>&lt;b&gt;hi&lt;/b&gt;<br>there</p>"
        assert body["comment_json"] == {"content": "<b>hi</b>\nthere"}

    def test_connection_ok(self):
        recorder = Recorder({"/a/workspaces/": httpx.Response(200, json=[])})
        assert open_client(recorder).test_connection() is True

    def test_connection_failed(self):
        assert open_client(Recorder({})).test_connection() is False
