"""Tests for the Excel batch report."""

from pathlib import Path

import pytest
from openpyxl import load_workbook

from plane_agent.assembler import TicketAssembler
from plane_agent.models import BatchEntry, BatchResult
from plane_agent.report import (
    COLUMN_CONFIG,
    ReportError,
    entry_to_row,
    generate_batch_report,
    summary_rows,
)


@pytest.fixture
def result() -> BatchResult:
    ticket = TicketAssembler().assemble("Fix the api bug")
    return BatchResult(entries=[
        BatchEntry(success=True, original_prompt="Fix the api bug", ticket=ticket),
        BatchEntry(success=False, original_prompt="Add export", error="API error 500: down"),
    ])


class TestRows:
    """Tests for row conversion."""

    def test_entry_with_ticket(self, result):
        row = entry_to_row(1, result.entries[0])

        assert len(row) == len(COLUMN_CONFIG)
        assert row[0] == 1
        assert row[1] == "yes"
        assert row[3] == "Fix the api bug"
        assert row[4] == "Bug"
        assert row[5] == "High"
        assert row[7] == "api"
        assert row[8] == "Draft"
        assert row[-1] == "Fix the api bug"

    def test_entry_without_ticket(self, result):
        row = entry_to_row(2, result.entries[1])

        assert len(row) == len(COLUMN_CONFIG)
        assert row[1] == "no"
        assert row[2] == ""
        assert row[9] == "API error 500: down"

    def test_summary(self, result):
        rows = summary_rows(result)
        assert rows[:3] == [["Total", 2], ["Successful", 1], ["Failed", 1]]
        assert ["Bug", 1] in rows
        assert ["High", 1] in rows


class TestGenerateReport:
    """Tests for workbook output."""

    def test_writes_workbook(self, result, tmp_path):
        path = generate_batch_report(result, tmp_path / "out" / "report.xlsx")

        assert path.exists()
        wb = load_workbook(path)
        assert wb.sheetnames == ["Tickets", "Summary"]

        tickets = wb["Tickets"]
        assert tickets.cell(row=1, column=1).value == "#"
        assert tickets.max_row == 3
        assert tickets.cell(row=3, column=11).value == "Add export"
        assert tickets.freeze_panes == "A2"

        summary = wb["Summary"]
        assert summary["A1"].value == "Total"
        assert summary["B1"].value == 2

    def test_accepts_string_path(self, result, tmp_path):
        path = generate_batch_report(result, str(tmp_path / "report.xlsx"))
        assert isinstance(path, Path)

    def test_unwritable_path(self, result, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(ReportError):
            generate_batch_report(result, blocker / "report.xlsx")
