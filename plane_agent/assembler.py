"""
Ticket assembly for Plane Agent.

Turns a free-text prompt into a classified Ticket and, optionally, creates
it in Plane followed by a best-effort analysis comment.
"""

import html
import logging
import uuid
from typing import Any

from .classifier import classify, derive_title, format_analysis_comment
from .models import IssueRoute, Ticket, ValidationError
from .plane_client import (
    EndpointUnavailableError,
    PlaneClient,
    RemoteAPIError,
    UnexpectedContentTypeError,
)


logger = logging.getLogger(__name__)


def new_local_id() -> str:
    """Generate a local ticket id."""
    return f"local-{uuid.uuid4().hex[:12]}"


class TicketAssembler:
    """
    Builds tickets from prompts and submits them to Plane.

    Stateless apart from its configuration; every ticket it returns is owned
    by the caller.
    """

    def __init__(self, source_name: str = "Plane Agent", post_comments: bool = True):
        """
        Initialize the assembler.

        Args:
            source_name: Name shown in generated analysis comments.
            post_comments: Post an analysis comment after remote creation.
        """
        self._source_name = source_name
        self._post_comments = post_comments

    def assemble(self, prompt: str) -> Ticket:
        """
        Build a local draft ticket from a prompt.

        Args:
            prompt: Free-text ticket description.

        Returns:
            Ticket in Draft status with a local id.

        Raises:
            ValidationError: If the prompt is blank.
        """
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Ticket prompt must not be empty")

        classification = classify(prompt)
        ticket = Ticket(
            id=new_local_id(),
            title=derive_title(prompt),
            description=prompt,
            classification=classification,
        )

        logger.info(
            f"Assembled ticket {ticket.id}: '{ticket.title}' "
            f"[{classification.category.value}/{classification.priority.value}/"
            f"{classification.complexity.value}]"
        )
        return ticket

    @staticmethod
    def build_issue_payload(ticket: Ticket) -> dict[str, Any]:
        """Build the Plane issue body for a ticket."""
        return {
            "name": ticket.title,
            "description_html": f"<p>{html.escape(ticket.description)}</p>",
            "priority": ticket.classification.priority.plane_value,
            "labels": ticket.classification.sorted_labels(),
        }

    def assemble_and_submit(
        self,
        prompt: str,
        client: PlaneClient,
        route: IssueRoute,
    ) -> Ticket:
        """
        Build a ticket and create it in Plane.

        Outcomes:
        - created: Completed, with Plane's id when the response has one
        - no usable endpoint: stays a local Draft (not a failure)
        - rejected or non-JSON answer: Failed, carrying the error

        Any other error propagates to the caller.

        Args:
            prompt: Free-text ticket description.
            client: Open PlaneClient.
            route: Workspace/project to create the issue in.

        Returns:
            The ticket in its resulting status.
        """
        ticket = self.assemble(prompt)
        payload = self.build_issue_payload(ticket)
        logger.debug(f"Generated issue data: {payload}")

        ticket.mark_pending()
        try:
            issue = client.create_issue(route, payload)
        except EndpointUnavailableError as e:
            logger.warning(f"Plane unavailable, keeping {ticket.id} as local draft: {e}")
            ticket.mark_draft()
            return ticket
        except (RemoteAPIError, UnexpectedContentTypeError) as e:
            logger.error(f"Failed to create ticket {ticket.id}: {e}")
            ticket.mark_failed(str(e))
            return ticket
        except BaseException as e:
            # Leave no ticket pending behind an unexpected error
            ticket.mark_failed(f"Submission aborted: {e!r}")
            raise

        ticket.mark_completed(issue if isinstance(issue, dict) else None)
        logger.info(f"Created ticket {ticket.id} in {route.workspace_slug}")

        if self._post_comments and isinstance(issue, dict) and issue.get("id"):
            ticket = self._post_analysis_comment(ticket, client, route)

        return ticket

    def _post_analysis_comment(
        self,
        ticket: Ticket,
        client: PlaneClient,
        route: IssueRoute,
    ) -> Ticket:
        """
        Post the analysis comment.

        Failures are never raised; the returned copy carries the error in
        ``comment_error``.
        """
        comment = format_analysis_comment(ticket.classification, self._source_name)
        try:
            client.add_comment(route, ticket.id, comment)
        except Exception as e:
            logger.warning(f"Analysis comment failed for {ticket.id}: {e}")
            return ticket.with_comment_error(str(e))
        return ticket
