"""Tests for the batch orchestrator and ticket store."""

from unittest.mock import Mock

import pytest

from plane_agent.assembler import TicketAssembler
from plane_agent.batch import BatchOrchestrator, TicketStore
from plane_agent.models import IssueRoute, TicketStatus, ValidationError
from plane_agent.plane_client import PlaneClient, RemoteAPIError


PROMPTS = [
    "Fix the login bug",
    "Add dark mode to the settings page",
    "Optimize the checkout flow",
]


@pytest.fixture
def route() -> IssueRoute:
    return IssueRoute(workspace_slug="indigo", project_id="proj-1")


@pytest.fixture
def client() -> Mock:
    return Mock(spec=PlaneClient)


@pytest.fixture
def sleep() -> Mock:
    return Mock()


def completed_ticket(prompt: str, remote_id: str):
    ticket = TicketAssembler().assemble(prompt)
    ticket.mark_pending()
    ticket.mark_completed({"id": remote_id})
    return ticket


def make_orchestrator(assembler, client, route, sleep, delay=1.0) -> BatchOrchestrator:
    return BatchOrchestrator(
        assembler,
        client=client,
        route=route,
        rate_limit_delay=delay,
        sleep=sleep,
    )


class TestRunBatch:
    """Tests for sequential remote batch creation."""

    def test_failure_is_isolated_and_order_kept(self, client, route, sleep):
        """The 2nd submission raises; 1st and 3rd still succeed, in order."""
        assembler = Mock(spec=TicketAssembler)
        assembler.assemble_and_submit.side_effect = [
            completed_ticket(PROMPTS[0], "r1"),
            RuntimeError("boom"),
            completed_ticket(PROMPTS[2], "r3"),
        ]

        result = make_orchestrator(assembler, client, route, sleep).run_batch(PROMPTS)

        assert len(result) == 3
        assert [e.success for e in result.entries] == [True, False, True]
        assert [e.original_prompt for e in result.entries] == PROMPTS
        assert result.entries[1].error == "boom"
        assert result.entries[1].ticket is None
        assert result.entries[0].ticket.id == "r1"
        assert result.entries[2].ticket.id == "r3"

    def test_submits_in_order(self, client, route, sleep):
        assembler = Mock(spec=TicketAssembler)
        assembler.assemble_and_submit.side_effect = [
            completed_ticket(p, f"r{i}") for i, p in enumerate(PROMPTS)
        ]

        make_orchestrator(assembler, client, route, sleep).run_batch(PROMPTS)

        sent = [c.args[0] for c in assembler.assemble_and_submit.call_args_list]
        assert sent == PROMPTS

    def test_waits_between_items_even_after_failure(self, client, route, sleep):
        assembler = Mock(spec=TicketAssembler)
        assembler.assemble_and_submit.side_effect = [
            RuntimeError("first fails"),
            completed_ticket(PROMPTS[1], "r2"),
            RuntimeError("third fails"),
        ]

        make_orchestrator(assembler, client, route, sleep, delay=2.5).run_batch(PROMPTS)

        assert sleep.call_count == 2
        sleep.assert_called_with(2.5)

    def test_single_prompt_does_not_wait(self, client, route, sleep):
        assembler = Mock(spec=TicketAssembler)
        assembler.assemble_and_submit.return_value = completed_ticket(PROMPTS[0], "r1")

        make_orchestrator(assembler, client, route, sleep).run_batch(PROMPTS[:1])

        sleep.assert_not_called()

    def test_failed_ticket_is_failure_entry(self, client, route, sleep):
        """A rejected submission comes back as a Failed ticket, not an exception."""
        client.create_issue.side_effect = [
            {"id": "r1"},
            RemoteAPIError(422, "invalid priority"),
        ]
        client.add_comment.return_value = {}

        orchestrator = make_orchestrator(TicketAssembler(), client, route, sleep)
        result = orchestrator.run_batch(PROMPTS[:2])

        assert [e.success for e in result.entries] == [True, False]
        failed = result.entries[1]
        assert failed.ticket.status == TicketStatus.FAILED
        assert "422" in failed.error

    def test_summary_counts(self, client, route, sleep):
        client.create_issue.side_effect = [
            {"id": "r1"},
            RemoteAPIError(500, "down"),
            {"id": "r3"},
        ]
        client.add_comment.return_value = {}

        orchestrator = make_orchestrator(TicketAssembler(), client, route, sleep)
        result = orchestrator.run_batch(PROMPTS)

        assert result.successful_count == 2
        assert result.failed_count == 1
        assert result.category_counts == {"Bug": 1, "Feature": 1, "Improvement": 1}
        assert result.priority_counts == {"High": 1, "Medium": 1, "Low": 1}

    def test_tickets_land_in_store(self, client, route, sleep):
        client.create_issue.side_effect = [{"id": "r1"}, {"id": "r2"}]
        client.add_comment.return_value = {}
        store = TicketStore()

        orchestrator = BatchOrchestrator(
            TicketAssembler(), client=client, route=route, store=store, sleep=sleep
        )
        orchestrator.run_batch(PROMPTS[:2])

        assert len(store) == 2
        assert "r1" in store
        assert store.get("r2").status == TicketStatus.COMPLETED

    def test_empty_batch_rejected(self, client, route, sleep):
        orchestrator = make_orchestrator(TicketAssembler(), client, route, sleep)
        with pytest.raises(ValidationError):
            orchestrator.run_batch([])

    def test_string_instead_of_list_rejected(self, client, route, sleep):
        orchestrator = make_orchestrator(TicketAssembler(), client, route, sleep)
        with pytest.raises(ValidationError):
            orchestrator.run_batch("Fix the login bug")

    def test_needs_client_and_route(self, sleep):
        orchestrator = BatchOrchestrator(TicketAssembler(), sleep=sleep)
        with pytest.raises(ValidationError):
            orchestrator.run_batch(PROMPTS)

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            BatchOrchestrator(TicketAssembler(), rate_limit_delay=-1)

    def test_interrupt_reports_remaining_prompts(self, client, route, sleep):
        assembler = Mock(spec=TicketAssembler)
        assembler.assemble_and_submit.side_effect = [
            completed_ticket(PROMPTS[0], "r1"),
            KeyboardInterrupt(),
        ]
        orchestrator = make_orchestrator(assembler, client, route, sleep)

        with pytest.raises(KeyboardInterrupt):
            orchestrator.run_batch(PROMPTS)

        result = orchestrator.last_result
        assert len(result) == 3
        assert [e.success for e in result.entries] == [True, False, False]
        assert result.entries[2].error == "Cancelled before completion"


class TestRunLocal:
    """Tests for local-only bulk assembly."""

    def test_all_drafts_without_network(self, sleep):
        orchestrator = BatchOrchestrator(TicketAssembler(), sleep=sleep)

        result = orchestrator.run_local(PROMPTS)

        assert result.successful_count == 3
        assert all(t.status == TicketStatus.DRAFT for t in result.tickets)
        assert len(orchestrator.store) == 3
        sleep.assert_not_called()

    def test_blank_prompt_is_failure_entry(self, sleep):
        result = BatchOrchestrator(TicketAssembler(), sleep=sleep).run_local(
            ["Fix the login bug", "  "]
        )
        assert [e.success for e in result.entries] == [True, False]
