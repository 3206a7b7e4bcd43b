"""
Statement workbook reconciliation.

Folder layout under ``statement_root``::

    incoming/        statements waiting to be processed (newest .xlsx wins)
    results/         annotated copies (<name>-with-orders.xlsx)
    activity logs/   processed originals, moved here after a successful run
"""

import logging
import shutil
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Sequence

from openpyxl import load_workbook
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from procurement_bot.config import Settings, settings as default_settings
from procurement_bot.invoices.models import load_invoice_records
from procurement_bot.metrics import reconciliation_outcomes_total
from procurement_bot.reconcile.matcher import MatchResult, filter_invoices, match_greedy, statement_lines

logger = logging.getLogger(__name__)

STATEMENT_HEADER = ("Date", "Description", "Amount")


class ReconciliationInputError(Exception):
    """Missing statement, statement sheet, or invoice records."""


@dataclass
class ReconciliationReport:
    statement_path: Path
    sheet_name: str
    output_path: Path
    archive_path: Path
    invoices_considered: int
    lines_considered: int
    result: MatchResult

    @property
    def matched(self) -> int:
        return len(self.result.matches)

    def summary(self) -> dict[str, Any]:
        return {
            "statement": str(self.statement_path),
            "sheet": self.sheet_name,
            "output": str(self.output_path),
            "archive": str(self.archive_path),
            "invoices": self.invoices_considered,
            "lines": self.lines_considered,
            "matched": self.matched,
            "unmatched_invoices": [i.order_id for i in self.result.unmatched_invoices],
            "unmatched_rows": [line.row_index + 1 for line in self.result.unmatched_lines],
        }


def find_header_index(rows: Sequence[Sequence[Any]]) -> Optional[int]:
    """Index of the first row starting with ``Date | Description | Amount``."""
    for index, row in enumerate(rows):
        if len(row) < len(STATEMENT_HEADER):
            continue
        cells = tuple(str(v).strip() if isinstance(v, str) else v for v in row[: len(STATEMENT_HEADER)])
        if cells == STATEMENT_HEADER:
            return index
    return None


def sheet_rows(worksheet: Worksheet) -> list[list[Any]]:
    """All rows from A1, so list indexes map to sheet rows/columns."""
    return [list(row) for row in worksheet.iter_rows(min_row=1, min_col=1, values_only=True)]


class StatementReconciler:
    """Match invoice records to the newest incoming statement and archive it."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        root: Optional[str | Path] = None,
        invoice_dir: Optional[str | Path] = None,
    ):
        config = config or default_settings
        self.root = Path(root or config.statement_root)
        self.intake_dir = self.root / config.statement_intake_subdir
        self.archive_dir = self.root / config.statement_archive_subdir
        self.results_dir = self.root / config.statement_results_subdir
        self.invoice_dir = Path(invoice_dir or config.invoice_json_dir)

        self.order_column = config.statement_order_column
        self.markers = tuple(config.statement_markers)
        self.epsilon = Decimal(str(config.match_epsilon))
        self.card_brand = config.card_brand
        self.last4_phrase = f"ending in {config.card_last4}"

    def ensure_dirs(self) -> None:
        for directory in (self.intake_dir, self.archive_dir, self.results_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def locate_statement(self) -> Path:
        """Newest ``.xlsx`` in the intake folder by modification time."""
        candidates = [
            p for p in self.intake_dir.glob("*") if p.is_file() and p.suffix.lower() == ".xlsx"
        ] if self.intake_dir.is_dir() else []
        if not candidates:
            raise ReconciliationInputError(f"No Excel files found in: {self.intake_dir}")
        return max(candidates, key=lambda p: p.stat().st_mtime)

    def find_statement_sheet(self, workbook: Workbook) -> tuple[Worksheet, int]:
        """
        First worksheet with a ``Date | Description | Amount`` header row.

        Returns:
            (worksheet, 0-based header row index)
        """
        for worksheet in workbook.worksheets:
            header_index = find_header_index(sheet_rows(worksheet))
            if header_index is not None:
                return worksheet, header_index
        raise ReconciliationInputError("No sheet found with Date | Description | Amount.")

    def order_column_index(self, worksheet: Worksheet, header: Sequence[Any], header_index: int) -> int:
        """Reuse the order id column if present, otherwise append it to the header."""
        for index, value in enumerate(header):
            if isinstance(value, str) and value.strip() == self.order_column:
                return index

        used = [i for i, value in enumerate(header) if value not in (None, "")]
        index = (used[-1] + 1) if used else 0
        worksheet.cell(row=header_index + 1, column=index + 1, value=self.order_column)
        return index

    def run(self) -> ReconciliationReport:
        """
        Reconcile the newest statement.

        Raises:
            ReconciliationInputError: Nothing is written or moved in that case
        """
        logger.info("=== Matching statement to invoices ===")
        self.ensure_dirs()

        statement_path = self.locate_statement()
        logger.info(f"Using input file: {statement_path}")

        records = load_invoice_records(self.invoice_dir)
        if not records:
            raise ReconciliationInputError(f"No invoice records found in: {self.invoice_dir}")

        workbook = load_workbook(statement_path)
        worksheet, header_index = self.find_statement_sheet(workbook)
        logger.info(f"Extracting data from sheet: {worksheet.title}")

        rows = sheet_rows(worksheet)
        invoices = filter_invoices(records, self.card_brand, self.last4_phrase)
        logger.info(f"Found {len(invoices)} invoices charged to {self.card_brand} {self.last4_phrase}.")
        lines = statement_lines(rows, header_index, self.markers)
        logger.info(f"Found {len(lines)} marketplace charges in the statement.")

        result = match_greedy(invoices, lines, self.epsilon)
        order_col = self.order_column_index(worksheet, rows[header_index], header_index)
        for match in result.matches:
            worksheet.cell(row=match.statement_row_index + 1, column=order_col + 1, value=match.invoice_order_id)
            logger.info(f"Matched {match.invoice_order_id} -> Row {match.statement_row_index + 1} (${match.amount})")
        for invoice in result.unmatched_invoices:
            logger.warning(f"No match found for {invoice.order_id} (${invoice.total})")

        output_path = self.results_dir / f"{statement_path.stem}-with-orders.xlsx"
        workbook.save(output_path)
        workbook.close()
        logger.info(f"Output file written to: {output_path}")

        archive_path = self.archive_dir / statement_path.name
        shutil.move(str(statement_path), str(archive_path))
        logger.info(f"Archived original file to: {archive_path}")

        reconciliation_outcomes_total.labels("matched").inc(len(result.matches))
        reconciliation_outcomes_total.labels("unmatched_invoice").inc(len(result.unmatched_invoices))
        reconciliation_outcomes_total.labels("unmatched_line").inc(len(result.unmatched_lines))

        return ReconciliationReport(
            statement_path=statement_path,
            sheet_name=worksheet.title,
            output_path=output_path,
            archive_path=archive_path,
            invoices_considered=len(invoices),
            lines_considered=len(lines),
            result=result,
        )
