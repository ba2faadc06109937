"""
Plane webhook dispatching for Plane Agent.

Routes one inbound event at a time to the handler registered for its type
tag. Handler failures become structured error results; the dispatcher
itself never raises and always returns to Idle.
"""

import json
import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional

from .classifier import classify, format_analysis_comment
from .models import (
    DispatchResult,
    IssueRoute,
    ValidationError,
    WebhookEvent,
)
from .plane_client import PlaneClient


logger = logging.getLogger(__name__)


Handler = Callable[[dict[str, Any]], Optional[dict[str, Any]]]


class DispatcherState(str, Enum):
    IDLE = "Idle"
    HANDLING = "Handling"


ISSUE_CREATED = "issue.created"
ISSUE_UPDATED = "issue.updated"
ISSUE_COMMENT_CREATED = "issue_comment.created"
PROJECT_CREATED = "project.created"

COMMENT_SOURCE = "the Plane webhook listener"


def _issue_text(data: dict[str, Any]) -> str:
    """Combine issue name and description for classification."""
    name = str(data.get("name") or "")
    description = (
        data.get("description_stripped")
        or data.get("description")
        or ""
    )
    return f"{name} {description}".strip()


class WebhookDispatcher:
    """
    Dispatches Plane webhook events to their handlers.

    Exactly one handler runs per event, and events are handled one at a time.
    """

    def __init__(
        self,
        client: Optional[PlaneClient] = None,
        workspace_slug: str = "",
        post_comments: bool = True,
    ):
        """
        Initialize the dispatcher.

        Args:
            client: Open PlaneClient used to post analysis comments.
            workspace_slug: Workspace the events belong to.
            post_comments: Post analysis comments for new issues.
        """
        self._client = client
        self._workspace_slug = workspace_slug
        self._post_comments = post_comments
        self._lock = threading.Lock()
        self._state = DispatcherState.IDLE
        self._handlers: dict[str, Handler] = {
            ISSUE_CREATED: self.handle_issue_created,
            ISSUE_UPDATED: self.handle_issue_updated,
            ISSUE_COMMENT_CREATED: self.handle_comment_created,
            PROJECT_CREATED: self.handle_project_created,
        }

    @property
    def state(self) -> DispatcherState:
        return self._state

    @property
    def event_types(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    def register(self, event_type: str, handler: Handler) -> None:
        """Route ``event_type`` to ``handler``, replacing any existing one."""
        with self._lock:
            self._handlers[event_type] = handler

    def dispatch_body(self, raw: bytes) -> DispatchResult:
        """
        Decode a raw request body and dispatch it.

        A body that is not valid JSON is answered like any other failed
        event: 500 ``{status: error, message}``.
        """
        try:
            payload = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Undecodable webhook body: {e}")
            return self._error(f"Invalid JSON body: {e}")
        return self.dispatch(payload)

    def dispatch(self, payload: Any) -> DispatchResult:
        """
        Handle one decoded webhook body.

        Args:
            payload: Decoded JSON body.

        Returns:
            200 ``{status: success, processed}`` when the handler (if any)
            returned, including for untagged or unknown events; 500
            ``{status: error, message}`` when the body is malformed or the
            handler raised.
        """
        with self._lock:
            self._state = DispatcherState.HANDLING
            try:
                return self._dispatch(payload)
            finally:
                self._state = DispatcherState.IDLE

    def _dispatch(self, payload: Any) -> DispatchResult:
        try:
            event = WebhookEvent.from_payload(payload)
        except ValidationError as e:
            logger.warning(f"Rejected webhook payload: {e}")
            return self._error(str(e))

        logger.info(f"Received Plane event: {event.event_type}")
        logger.debug(f"Event data: {event.data}")

        handler = self._handlers.get(event.event_type) if event.event_type else None
        if handler is None:
            logger.info(f"Unhandled event type: {event.event_type}")
            return self._success(event.event_type)

        try:
            handler(event.data)
        except Exception as e:
            logger.exception(f"Error processing webhook {event.event_type}: {e}")
            return self._error(str(e))

        return self._success(event.event_type)

    @staticmethod
    def _success(event_type: Optional[str]) -> DispatchResult:
        return DispatchResult(
            status_code=200,
            body={"status": "success", "processed": event_type},
        )

    @staticmethod
    def _error(message: str) -> DispatchResult:
        return DispatchResult(
            status_code=500,
            body={"status": "error", "message": message},
        )

    # Handlers

    def handle_issue_created(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Analyze a new issue and post the analysis as a comment.

        Posting is best-effort and only happens when a client and workspace
        are configured and the event names the project and issue.
        """
        logger.info(f"New issue created: {data.get('name')}")

        classification = classify(_issue_text(data))
        comment = format_analysis_comment(classification, COMMENT_SOURCE)
        logger.info("Generated analysis for issue")

        result = {"classification": classification, "comment": comment, "posted": False}

        issue_id = data.get("id")
        project_id = data.get("project") or data.get("project_id")
        if not (
            self._post_comments
            and self._client is not None
            and self._workspace_slug
            and issue_id
            and project_id
        ):
            return result

        route = IssueRoute(workspace_slug=self._workspace_slug, project_id=str(project_id))
        try:
            self._client.add_comment(route, str(issue_id), comment)
            result["posted"] = True
        except Exception as e:
            logger.warning(f"Could not post analysis comment on {issue_id}: {e}")

        return result

    def handle_issue_updated(self, data: dict[str, Any]) -> None:
        logger.info(f"Issue updated: {data.get('name')}")

    def handle_comment_created(self, data: dict[str, Any]) -> None:
        logger.info(f"New comment added on issue: {data.get('issue')}")

    def handle_project_created(self, data: dict[str, Any]) -> None:
        logger.info(f"New project created: {data.get('name')}")
