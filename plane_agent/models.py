"""
Data models for Plane Agent.

Uses Pydantic for robust data validation and serialization.
Classification results are immutable; tickets carry a small state machine
that refuses to leave a terminal state.
"""

from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class ValidationError(ValueError):
    """Malformed local input (empty prompt, empty batch, bad event)."""
    pass


class TicketStateError(RuntimeError):
    """Illegal ticket status transition."""
    pass


class Category(str, Enum):
    """Ticket category derived from free text."""

    BUG = "Bug"
    FEATURE = "Feature"
    IMPROVEMENT = "Improvement"
    TASK = "Task"
    GENERAL = "General"


class Priority(str, Enum):
    """Ticket priority, ordered from least to most pressing."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"

    @property
    def plane_value(self) -> str:
        """Priority string understood by the Plane issues API."""
        return self.value.lower()


class Complexity(str, Enum):
    """Estimated implementation complexity."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TicketStatus(str, Enum):
    """Lifecycle status of a ticket."""

    DRAFT = "Draft"
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TicketStatus.COMPLETED, TicketStatus.FAILED)


class ClassificationResult(BaseModel):
    """
    Result of keyword classification for a piece of text.

    Derived deterministically from the input and frozen once computed.
    """

    category: Category = Field(..., description="Ticket category")
    priority: Priority = Field(..., description="Suggested priority")
    complexity: Complexity = Field(..., description="Estimated complexity")
    labels: frozenset[str] = Field(
        default_factory=frozenset,
        description="Technology keywords found in the text",
    )

    model_config = {"frozen": True}

    def sorted_labels(self) -> list[str]:
        """Labels in a stable order for payloads and reports."""
        return sorted(self.labels)


class Ticket(BaseModel):
    """
    An issue ticket assembled from a free-text prompt.

    Attributes:
        id: Local id (``local-...``) or the id assigned by Plane
        title: Title derived from the first sentence (at most 80 chars)
        description: The original prompt
        classification: Keyword classification of the prompt
        status: Lifecycle status
        created_at: Creation timestamp (UTC)
        error: Error message when the ticket failed
        comment_error: Error from the best-effort analysis comment
        remote: Raw issue returned by Plane, if any
    """

    id: str = Field(..., description="Ticket identifier")
    title: str = Field(..., max_length=80, description="Derived title")
    description: str = Field(..., description="Original prompt")
    classification: ClassificationResult
    status: TicketStatus = Field(default=TicketStatus.DRAFT)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    error: Optional[str] = None
    comment_error: Optional[str] = None
    remote: Optional[dict[str, Any]] = None

    model_config = {"validate_assignment": True}

    def __setattr__(self, name: str, value: Any) -> None:
        if self.status.is_terminal:
            raise TicketStateError(
                f"Ticket {self.id} is already {self.status.value}, "
                f"cannot change {name}"
            )
        super().__setattr__(name, value)

    def _check_open(self, new_status: TicketStatus) -> None:
        if self.status.is_terminal:
            raise TicketStateError(
                f"Ticket {self.id} is already {self.status.value}, "
                f"cannot move to {new_status.value}"
            )

    def mark_pending(self) -> None:
        """Mark the ticket as being submitted."""
        self._check_open(TicketStatus.PENDING)
        self.status = TicketStatus.PENDING

    def mark_draft(self) -> None:
        """Return the ticket to local-only draft mode."""
        self._check_open(TicketStatus.DRAFT)
        self.status = TicketStatus.DRAFT

    def mark_completed(self, remote: Optional[dict[str, Any]] = None) -> None:
        """
        Mark the ticket as created remotely.

        Adopts the remote id when the response carries one. The status is
        written last; after it the ticket accepts no further writes.
        """
        self._check_open(TicketStatus.COMPLETED)
        if isinstance(remote, dict):
            self.remote = remote
            remote_id = remote.get("id")
            if remote_id:
                self.id = str(remote_id)
        self.status = TicketStatus.COMPLETED

    def mark_failed(self, error: str) -> None:
        """Mark the ticket as failed with the given error message."""
        self._check_open(TicketStatus.FAILED)
        self.error = error
        self.status = TicketStatus.FAILED

    def with_comment_error(self, error: str) -> "Ticket":
        """Copy of this ticket recording a failed analysis comment."""
        return self.model_copy(update={"comment_error": error})


class BatchEntry(BaseModel):
    """Outcome of processing a single prompt in a batch."""

    success: bool
    original_prompt: str
    ticket: Optional[Ticket] = None
    error: Optional[str] = None


class BatchResult(BaseModel):
    """
    Ordered outcome of a batch run, one entry per input prompt.

    The counts are projections over ``entries``, never stored separately.
    """

    entries: list[BatchEntry] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def tickets(self) -> list[Ticket]:
        return [e.ticket for e in self.entries if e.ticket is not None]

    @property
    def successful_count(self) -> int:
        return sum(1 for e in self.entries if e.success)

    @property
    def failed_count(self) -> int:
        return len(self.entries) - self.successful_count

    @property
    def category_counts(self) -> dict[str, int]:
        """Ticket counts per category, over entries carrying a ticket."""
        return dict(Counter(
            t.classification.category.value for t in self.tickets
        ))

    @property
    def priority_counts(self) -> dict[str, int]:
        """Ticket counts per priority, over entries carrying a ticket."""
        return dict(Counter(
            t.classification.priority.value for t in self.tickets
        ))


class IssueRoute(BaseModel):
    """Workspace/project pair identifying where issues live in Plane."""

    workspace_slug: str = Field(..., min_length=1)
    project_id: str = Field(..., min_length=1)

    model_config = {"frozen": True}

    @field_validator("workspace_slug", "project_id")
    @classmethod
    def strip_slashes(cls, v: str) -> str:
        """Keep path segments free of stray slashes."""
        v = v.strip().strip("/")
        if not v:
            raise ValueError("must not be empty")
        return v

    @property
    def issues_path(self) -> str:
        return f"/workspaces/{self.workspace_slug}/projects/{self.project_id}/issues/"

    def comments_path(self, issue_id: str) -> str:
        return f"{self.issues_path}{issue_id}/comments/"


class WebhookEvent(BaseModel):
    """Inbound Plane webhook event."""

    event_type: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "WebhookEvent":
        """
        Parse a raw webhook body.

        Accepts ``{event_type, data}`` as well as Plane's native
        ``{event, action, data}`` shape. A body without a tag parses with
        ``event_type`` set to None.

        Raises:
            ValidationError: If the body, its tag or its data has the
                wrong shape.
        """
        if not isinstance(payload, dict):
            raise ValidationError("Webhook payload must be a JSON object")

        event_type = payload.get("event_type")
        if not event_type and payload.get("event") and payload.get("action"):
            event_type = f"{payload['event']}.{payload['action']}"
        if not event_type:
            event_type = None
        elif not isinstance(event_type, str):
            raise ValidationError("Webhook event_type must be a string")

        data = payload.get("data")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValidationError("Webhook data must be a JSON object")

        return cls(event_type=event_type, data=data)


class DispatchResult(BaseModel):
    """HTTP-analogous outcome of dispatching one webhook event."""

    status_code: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class DeploymentTicket(BaseModel):
    """A Railway deployment action bound to a project service."""

    id: str
    project: str
    service: str
    action: str
    status: str = "pending"
    service_id: str
    project_id: str
    recent_deployments: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    deployment_id: Optional[str] = None
    latest_deployment: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    model_config = {"frozen": True}
