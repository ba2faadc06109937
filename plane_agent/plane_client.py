"""
Plane API client for Plane Agent.

Self-hosted Plane instances mount their REST API under different path
prefixes (``/api/v1``, ``/api``, ``/api/public`` or the root). The client
probes every configured prefix in order on each call:

- 404 means "not mounted here" and the next prefix is tried
- any other non-2xx status is a real rejection and stops the probe
- a 2xx JSON response is the answer
- a 2xx non-JSON response is a protocol mismatch and stops the probe
- connection failures (after retries) move on to the next prefix

Nothing is cached between calls, so every call restarts from the first
prefix.
"""

import html
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import PlaneConfig
from .models import IssueRoute


logger = logging.getLogger(__name__)


class TrackerError(Exception):
    """Base exception for Plane API errors."""
    pass


class EndpointUnavailableError(TrackerError):
    """No candidate prefix served the requested endpoint."""

    def __init__(self, endpoint: str, attempted: list[str]):
        self.endpoint = endpoint
        self.attempted = attempted
        super().__init__(
            f"No usable endpoint found for {endpoint} "
            f"(tried {len(attempted)} candidate(s))"
        )


class RemoteAPIError(TrackerError):
    """Plane recognized the route and rejected the request."""

    def __init__(self, status: int, body: str, url: str = ""):
        self.status = status
        self.body = body
        self.url = url
        super().__init__(f"API error {status}: {body}")


class UnexpectedContentTypeError(TrackerError):
    """Plane answered 2xx with something other than JSON."""

    def __init__(self, content_type: str, url: str = "", preview: str = ""):
        self.content_type = content_type
        self.url = url
        self.preview = preview
        super().__init__(
            f"Expected JSON response but got '{content_type or 'unknown'}' from {url}"
        )


# Outcome of a single probe attempt against one prefix


@dataclass(frozen=True)
class ProbeSuccess:
    url: str
    data: Any


@dataclass(frozen=True)
class ProbeNotFound:
    url: str


@dataclass(frozen=True)
class ProbeRejected:
    url: str
    status: int
    body: str


@dataclass(frozen=True)
class ProbeUnexpectedContent:
    url: str
    content_type: str
    preview: str


@dataclass(frozen=True)
class ProbeUnreachable:
    url: str
    reason: str


ProbeOutcome = Union[
    ProbeSuccess,
    ProbeNotFound,
    ProbeRejected,
    ProbeUnexpectedContent,
    ProbeUnreachable,
]


def _is_json(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _results(data: Any) -> list[Any]:
    """Unwrap Plane's paginated ``{"results": [...]}`` envelope."""
    if isinstance(data, dict) and isinstance(data.get("results"), list):
        return data["results"]
    if isinstance(data, list):
        return data
    return []


class PlaneClient:
    """
    Client for the Plane REST API with endpoint discovery.

    Must be used as a context manager; the underlying ``httpx.Client`` lives
    for the duration of the ``with`` block.
    """

    def __init__(
        self,
        config: PlaneConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the Plane client.

        Args:
            config: Plane configuration with base URL, key and prefixes.
            transport: Optional httpx transport (used by tests).
        """
        self._config = config
        self._base_url = config.api_url.rstrip("/")
        self._prefixes: tuple[str, ...] = tuple(config.api_prefixes)
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._headers = {
            "Authorization": f"Bearer {config.api_key}",
            "X-API-Key": config.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def __enter__(self) -> "PlaneClient":
        """Context manager entry."""
        self._client = httpx.Client(
            timeout=self._config.request_timeout,
            headers=self._headers,
            transport=self._transport,
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        if self._client:
            self._client.close()
            self._client = None

    @property
    def prefixes(self) -> tuple[str, ...]:
        return self._prefixes

    def _send(self, method: str, url: str, body: Any) -> httpx.Response:
        retrying = Retrying(
            stop=stop_after_attempt(max(1, self._config.max_retries)),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                f"Retrying {method} {url} after error: "
                f"{retry_state.outcome.exception()}"
            ),
        )
        for attempt in retrying:
            with attempt:
                return self._client.request(method, url, json=body)

    def _probe(self, method: str, url: str, body: Any) -> ProbeOutcome:
        """Issue one request and collapse the response into an outcome."""
        logger.debug(f"Trying: {method} {url}")

        try:
            response = self._send(method, url, body)
        except httpx.TransportError as e:
            logger.info(f"Unreachable: {url} ({e})")
            return ProbeUnreachable(url=url, reason=str(e))

        logger.debug(f"Response: {response.status_code} {response.reason_phrase}")

        if response.status_code == 404:
            return ProbeNotFound(url=url)

        if not response.is_success:
            return ProbeRejected(
                url=url, status=response.status_code, body=response.text
            )

        content_type = response.headers.get("content-type", "")
        if not _is_json(content_type):
            return ProbeUnexpectedContent(
                url=url, content_type=content_type, preview=response.text[:200]
            )

        try:
            return ProbeSuccess(url=url, data=response.json())
        except ValueError:
            return ProbeUnexpectedContent(
                url=url, content_type=content_type, preview=response.text[:200]
            )

    def call(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[Any] = None,
    ) -> Any:
        """
        Call a Plane endpoint, discovering the prefix it is mounted under.

        Args:
            endpoint: Resource suffix, e.g. ``/workspaces/``.
            method: HTTP method.
            body: Optional JSON body.

        Returns:
            Parsed JSON response.

        Raises:
            RemoteAPIError: A prefix answered with a non-404 error status.
            UnexpectedContentTypeError: A prefix answered 2xx with non-JSON.
            EndpointUnavailableError: No prefix served the endpoint.
        """
        if not self._client:
            raise RuntimeError("Client must be used within a context manager")

        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        method = method.upper()

        attempted: list[str] = []
        for prefix in self._prefixes:
            url = f"{self._base_url}{prefix}{endpoint}"
            attempted.append(url)
            outcome = self._probe(method, url, body)

            if isinstance(outcome, ProbeSuccess):
                logger.debug(f"Endpoint resolved: {url}")
                return outcome.data

            if isinstance(outcome, ProbeRejected):
                logger.error(f"Plane rejected {method} {url}: {outcome.status}")
                raise RemoteAPIError(outcome.status, outcome.body, url=url)

            if isinstance(outcome, ProbeUnexpectedContent):
                logger.error(
                    f"Non-JSON response from {url}: {outcome.preview[:100]!r}"
                )
                raise UnexpectedContentTypeError(
                    outcome.content_type, url=url, preview=outcome.preview
                )

            # ProbeNotFound / ProbeUnreachable: try the next prefix

        logger.warning(f"No Plane endpoint found for {method} {endpoint}")
        raise EndpointUnavailableError(endpoint, attempted)

    # Resource helpers

    def get_workspaces(self) -> list[dict[str, Any]]:
        logger.info("Getting workspaces")
        return _results(self.call("/workspaces/"))

    def get_projects(self, workspace_slug: str) -> list[dict[str, Any]]:
        logger.info(f"Getting projects for workspace: {workspace_slug}")
        return _results(self.call(f"/workspaces/{workspace_slug}/projects/"))

    def get_issues(self, route: IssueRoute) -> list[dict[str, Any]]:
        logger.info(f"Getting issues for project: {route.project_id}")
        return _results(self.call(route.issues_path))

    def create_issue(self, route: IssueRoute, payload: dict[str, Any]) -> Any:
        """Create an issue in the routed project."""
        logger.info(
            f"Creating issue in {route.workspace_slug}/{route.project_id}"
        )
        return self.call(route.issues_path, method="POST", body=payload)

    def add_comment(self, route: IssueRoute, issue_id: str, comment: str) -> Any:
        """
        Add a comment to an issue.

        The comment text is HTML-escaped for ``comment_html`` and sent raw in
        ``comment_json``.
        """
        logger.info(f"Adding comment to issue: {issue_id}")
        comment_html = html.escape(comment).replace("\n", "<br>")
        return self.call(
            route.comments_path(issue_id),
            method="POST",
            body={
                "comment_html": f"<p>{comment_html}</p>",
                "comment_json": {"content": comment},
            },
        )

    def create_webhook(self, workspace_slug: str, payload: dict[str, Any]) -> Any:
        logger.info(f"Creating webhook for workspace: {workspace_slug}")
        return self.call(
            f"/workspaces/{workspace_slug}/webhooks/", method="POST", body=payload
        )

    def test_connection(self) -> bool:
        """
        Check that the Plane API is reachable with the configured key.

        Returns:
            True if the workspaces endpoint answered, False otherwise.
        """
        logger.info(f"Testing Plane API connection: {self._base_url}")
        logger.info(f"API key: {'set' if self._config.api_key else 'missing'}")

        try:
            workspaces = self.get_workspaces()
        except TrackerError as e:
            logger.error(f"Connection failed: {e}")
            return False

        logger.info(f"Connection successful, {len(workspaces)} workspace(s)")
        return True
