"""
Bulk ticket creation for Plane Agent.

Processes prompts strictly one after another with a fixed delay between
remote-creation attempts. A failing prompt is recorded and the batch moves
on; the result keeps the input order.
"""

import logging
import time
from typing import Callable, Iterator, Optional, Sequence

from .assembler import TicketAssembler
from .models import (
    BatchEntry,
    BatchResult,
    IssueRoute,
    Ticket,
    TicketStatus,
    ValidationError,
)
from .plane_client import PlaneClient


logger = logging.getLogger(__name__)


class TicketStore:
    """
    In-memory ticket store for a single run.

    Created by the caller per batch or per server lifetime and discarded
    afterwards; nothing is persisted.
    """

    def __init__(self):
        self._tickets: dict[str, Ticket] = {}

    def add(self, ticket: Ticket) -> None:
        self._tickets[ticket.id] = ticket

    def get(self, ticket_id: str) -> Optional[Ticket]:
        return self._tickets.get(ticket_id)

    def all(self) -> list[Ticket]:
        return list(self._tickets.values())

    def __len__(self) -> int:
        return len(self._tickets)

    def __iter__(self) -> Iterator[Ticket]:
        return iter(self._tickets.values())

    def __contains__(self, ticket_id: object) -> bool:
        return ticket_id in self._tickets


def _validate_prompts(prompts: Sequence[str]) -> list[str]:
    if isinstance(prompts, str):
        raise ValidationError("Prompts must be a sequence of strings, not a string")
    prompts = list(prompts)
    if not prompts:
        raise ValidationError("Batch must contain at least one prompt")
    return prompts


def _entry_for(prompt: str, ticket: Ticket) -> BatchEntry:
    if ticket.status is TicketStatus.FAILED:
        return BatchEntry(
            success=False,
            original_prompt=prompt,
            ticket=ticket,
            error=ticket.error,
        )
    return BatchEntry(success=True, original_prompt=prompt, ticket=ticket)


class BatchOrchestrator:
    """
    Sequential bulk ticket creator.

    Attributes:
        rate_limit_delay: Seconds to wait between consecutive submissions.
    """

    def __init__(
        self,
        assembler: TicketAssembler,
        client: Optional[PlaneClient] = None,
        route: Optional[IssueRoute] = None,
        rate_limit_delay: float = 1.0,
        store: Optional[TicketStore] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            assembler: Builds and submits each ticket.
            client: Open PlaneClient; required for run_batch.
            route: Workspace/project to create issues in; required for run_batch.
            rate_limit_delay: Seconds between remote-creation attempts.
            store: Ticket store for this run (a fresh one if omitted).
            sleep: Blocking wait function.
        """
        if rate_limit_delay < 0:
            raise ValidationError("rate_limit_delay must not be negative")

        self._assembler = assembler
        self._client = client
        self._route = route
        self.rate_limit_delay = rate_limit_delay
        self.store = store if store is not None else TicketStore()
        self.last_result: Optional[BatchResult] = None
        self._sleep = sleep

    def run_batch(self, prompts: Sequence[str]) -> BatchResult:
        """
        Create a ticket in Plane for every prompt.

        Args:
            prompts: Ordered prompts, one ticket each.

        Returns:
            BatchResult with one entry per prompt, in input order.

        Raises:
            ValidationError: If there are no prompts or no client/route.
        """
        prompts = _validate_prompts(prompts)
        if self._client is None or self._route is None:
            raise ValidationError("run_batch needs a Plane client and an issue route")

        total = len(prompts)
        entries: list[BatchEntry] = []
        logger.info(f"Creating {total} tickets")

        try:
            for i, prompt in enumerate(prompts, 1):
                if i > 1 and self.rate_limit_delay > 0:
                    self._sleep(self.rate_limit_delay)

                logger.info(f"Creating ticket {i}/{total}")
                entries.append(self._submit_one(prompt))
        except KeyboardInterrupt:
            logger.warning(
                f"Batch interrupted after {len(entries)}/{total} prompts"
            )
            for prompt in prompts[len(entries):]:
                entries.append(BatchEntry(
                    success=False,
                    original_prompt=prompt,
                    error="Cancelled before completion",
                ))
            raise
        finally:
            self.last_result = BatchResult(entries=entries)
            self._log_summary(self.last_result)

        return self.last_result

    def _submit_one(self, prompt: str) -> BatchEntry:
        try:
            ticket = self._assembler.assemble_and_submit(
                prompt, self._client, self._route
            )
        except Exception as e:
            logger.error(f"Failed to create ticket: {e}")
            return BatchEntry(success=False, original_prompt=prompt, error=str(e))

        self.store.add(ticket)
        return _entry_for(prompt, ticket)

    def run_local(self, prompts: Sequence[str]) -> BatchResult:
        """
        Assemble draft tickets for every prompt without contacting Plane.

        No rate-limit delay applies since nothing leaves the process.
        """
        prompts = _validate_prompts(prompts)
        entries: list[BatchEntry] = []

        for i, prompt in enumerate(prompts, 1):
            logger.info(f"Ticket {i}/{len(prompts)}")
            try:
                ticket = self._assembler.assemble(prompt)
            except ValidationError as e:
                entries.append(BatchEntry(
                    success=False, original_prompt=prompt, error=str(e)
                ))
                continue
            self.store.add(ticket)
            entries.append(_entry_for(prompt, ticket))

        self.last_result = BatchResult(entries=entries)
        self._log_summary(self.last_result)
        return self.last_result

    @staticmethod
    def _log_summary(result: BatchResult) -> None:
        total = len(result)
        logger.info(f"Successful: {result.successful_count}/{total}")
        logger.info(f"Failed: {result.failed_count}/{total}")
        for category, count in sorted(result.category_counts.items()):
            logger.info(f"  {category}: {count}")
        for priority, count in sorted(result.priority_counts.items()):
            logger.info(f"  Priority {priority}: {count}")
