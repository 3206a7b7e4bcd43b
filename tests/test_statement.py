"""Tests for statement workbook reconciliation."""

import os

import pytest
from openpyxl import Workbook, load_workbook

from procurement_bot.config import Settings
from procurement_bot.invoices.models import InvoiceRecord
from procurement_bot.reconcile.statement import (
    ReconciliationInputError,
    StatementReconciler,
    find_header_index,
)

CARD = "American Express ending in 1001"


def _write_statement(path, rows, with_summary=True):
    workbook = Workbook()
    summary = workbook.active
    summary.title = "Summary"
    if with_summary:
        summary.append(["Statement period", "January"])
    transactions = workbook.create_sheet("Transactions")
    for row in rows:
        transactions.append(row)
    workbook.save(path)


def _write_invoice(directory, order_id, total, payment=CARD):
    InvoiceRecord(order_id=order_id, total=total, payment_method_text=payment).write(directory)


@pytest.fixture
def layout(tmp_path):
    config = Settings(statement_root=str(tmp_path / "statements"), invoice_json_dir=str(tmp_path / "json"))
    reconciler = StatementReconciler(config)
    reconciler.ensure_dirs()
    return reconciler


STATEMENT_ROWS = [
    ["Card Member", "J DOE"],
    [None],
    ["Date", "Description", "Amount"],
    ["01/02", "AMAZON MARKETPLACE NA", 45.00],
    ["01/03", "AMZN.COM/BILL", 12.99],
    ["01/04", "GROCERY", 30.00],
    ["01/05", "AMAZON MARKETPLACE NA", 45.00],
]


def test_reconcile_annotates_and_archives(layout, tmp_path):
    statement = layout.intake_dir / "january.xlsx"
    _write_statement(statement, STATEMENT_ROWS)
    _write_invoice(layout.invoice_dir, "111-0000000-0000001", 45)
    _write_invoice(layout.invoice_dir, "111-0000000-0000002", 45)
    _write_invoice(layout.invoice_dir, "111-0000000-0000003", 12.99, payment="Visa ending in 4242")

    report = layout.run()

    assert report.sheet_name == "Transactions"
    assert report.matched == 2
    assert report.output_path == layout.results_dir / "january-with-orders.xlsx"
    assert not statement.exists()
    assert (layout.archive_dir / "january.xlsx").exists()
    assert report.summary()["unmatched_rows"] == [5]

    sheet = load_workbook(report.output_path)["Transactions"]
    assert sheet.cell(row=3, column=4).value == "Amazon Order ID"
    assert sheet.cell(row=4, column=4).value == "111-0000000-0000001"
    assert sheet.cell(row=5, column=4).value is None
    assert sheet.cell(row=7, column=4).value == "111-0000000-0000002"


def test_existing_order_column_is_reused(layout):
    rows = [
        ["Date", "Description", "Amount", "Notes", "Amazon Order ID"],
        ["01/02", "AMAZON MARKETPLACE", 20.00, "", None],
    ]
    _write_statement(layout.intake_dir / "feb.xlsx", rows, with_summary=False)
    _write_invoice(layout.invoice_dir, "111-0000000-0000009", 20)

    report = layout.run()

    sheet = load_workbook(report.output_path)["Transactions"]
    assert sheet.cell(row=2, column=5).value == "111-0000000-0000009"
    assert sheet.cell(row=1, column=6).value is None


def test_newest_statement_wins(layout):
    older = layout.intake_dir / "older.xlsx"
    newer = layout.intake_dir / "newer.xlsx"
    _write_statement(older, STATEMENT_ROWS)
    _write_statement(newer, STATEMENT_ROWS)
    os.utime(older, (1_000_000, 1_000_000))
    os.utime(newer, (2_000_000, 2_000_000))

    assert layout.locate_statement() == newer


def test_missing_statement_raises(layout):
    with pytest.raises(ReconciliationInputError):
        layout.run()


def test_missing_invoices_leaves_statement_in_place(layout):
    statement = layout.intake_dir / "january.xlsx"
    _write_statement(statement, STATEMENT_ROWS)

    with pytest.raises(ReconciliationInputError):
        layout.run()

    assert statement.exists()
    assert list(layout.results_dir.iterdir()) == []


def test_missing_statement_sheet_raises(layout):
    statement = layout.intake_dir / "odd.xlsx"
    _write_statement(statement, [["When", "What", "How much"]])
    _write_invoice(layout.invoice_dir, "111-0000000-0000001", 45)

    with pytest.raises(ReconciliationInputError):
        layout.run()
    assert statement.exists()


def test_find_header_index_strips_whitespace():
    rows = [["x"], [" Date ", "Description", "Amount "]]
    assert find_header_index(rows) == 1
    assert find_header_index([["Date", "Description"]]) is None
