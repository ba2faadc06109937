"""
Excel report generator for bulk ticket runs.

Produces a workbook with:
- one styled row per batch entry, in input order
- a summary sheet with success/failure, category and priority counts
"""

import logging
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from .models import BatchEntry, BatchResult


logger = logging.getLogger(__name__)


class ReportError(Exception):
    """Error during report generation."""
    pass


COLUMN_CONFIG = [
    {"header": "#", "width": 6},
    {"header": "Success", "width": 10},
    {"header": "Ticket ID", "width": 40},
    {"header": "Title", "width": 45},
    {"header": "Category", "width": 14},
    {"header": "Priority", "width": 12},
    {"header": "Complexity", "width": 12},
    {"header": "Labels", "width": 25},
    {"header": "Status", "width": 12},
    {"header": "Error", "width": 50},
    {"header": "Prompt", "width": 60},
]


def entry_to_row(index: int, entry: BatchEntry) -> list[Any]:
    """
    Convert a batch entry to a row of values.

    Args:
        index: 1-based position of the prompt in the batch.
        entry: The entry to convert.

    Returns:
        List of cell values matching COLUMN_CONFIG order.
    """
    ticket = entry.ticket
    if ticket is None:
        ticket_cells = ["", "", "", "", "", "", ""]
    else:
        c = ticket.classification
        ticket_cells = [
            ticket.id,
            ticket.title,
            c.category.value,
            c.priority.value,
            c.complexity.value,
            ", ".join(c.sorted_labels()),
            ticket.status.value,
        ]

    return [
        index,
        "yes" if entry.success else "no",
        *ticket_cells,
        entry.error or "",
        entry.original_prompt,
    ]


def summary_rows(result: BatchResult) -> list[list[Any]]:
    """Rows for the summary sheet."""
    rows: list[list[Any]] = [
        ["Total", len(result)],
        ["Successful", result.successful_count],
        ["Failed", result.failed_count],
        [],
        ["Category", "Count"],
    ]
    rows.extend([k, v] for k, v in sorted(result.category_counts.items()))
    rows.append([])
    rows.append(["Priority", "Count"])
    rows.extend([k, v] for k, v in sorted(result.priority_counts.items()))
    return rows


class BatchReportGenerator:
    """Writes styled Excel reports for batch results."""

    HEADER_FONT = Font(bold=True, color="FFFFFF", size=11)
    HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
    HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center", wrap_text=True)

    CELL_ALIGNMENT = Alignment(vertical="top", wrap_text=True)
    CELL_BORDER = Border(
        left=Side(style="thin", color="D0D0D0"),
        right=Side(style="thin", color="D0D0D0"),
        top=Side(style="thin", color="D0D0D0"),
        bottom=Side(style="thin", color="D0D0D0"),
    )

    # Failed rows stand out
    FAILED_FILL = PatternFill(start_color="FCE4E4", end_color="FCE4E4", fill_type="solid")

    def generate(self, result: BatchResult, output_path: Path) -> Path:
        """
        Write the report.

        Args:
            result: Batch result to report on.
            output_path: Destination ``.xlsx`` path.

        Returns:
            Path to the written file.

        Raises:
            ReportError: If the workbook cannot be built or saved.
        """
        try:
            wb = Workbook()
            ws = wb.active
            ws.title = "Tickets"

            self._write_headers(ws)
            self._write_entries(ws, result)
            self._apply_column_widths(ws)
            ws.freeze_panes = "A2"

            summary = wb.create_sheet("Summary")
            for row in summary_rows(result):
                summary.append(row)
            summary["A1"].font = Font(bold=True)
            summary.column_dimensions["A"].width = 20

            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)

            logger.info(f"Batch report saved to: {output_path}")
            return output_path

        except Exception as e:
            logger.error(f"Failed to generate batch report: {e}")
            raise ReportError(f"Report generation failed: {e}") from e

    def _write_headers(self, ws: Worksheet) -> None:
        for col_idx, col_config in enumerate(COLUMN_CONFIG, 1):
            cell = ws.cell(row=1, column=col_idx, value=col_config["header"])
            cell.font = self.HEADER_FONT
            cell.fill = self.HEADER_FILL
            cell.alignment = self.HEADER_ALIGNMENT
            cell.border = self.CELL_BORDER
        ws.row_dimensions[1].height = 24

    def _write_entries(self, ws: Worksheet, result: BatchResult) -> None:
        for index, entry in enumerate(result.entries, 1):
            row_idx = index + 1
            for col_idx, value in enumerate(entry_to_row(index, entry), 1):
                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                cell.alignment = self.CELL_ALIGNMENT
                cell.border = self.CELL_BORDER
                if not entry.success:
                    cell.fill = self.FAILED_FILL

    def _apply_column_widths(self, ws: Worksheet) -> None:
        for col_idx, col_config in enumerate(COLUMN_CONFIG, 1):
            ws.column_dimensions[get_column_letter(col_idx)].width = col_config["width"]


def generate_batch_report(result: BatchResult, output_path: Path) -> Path:
    """Convenience wrapper around BatchReportGenerator."""
    return BatchReportGenerator().generate(result, Path(output_path))
