"""Tests for greedy invoice/statement matching."""

from decimal import Decimal

from procurement_bot.invoices.models import InvoiceRecord
from procurement_bot.reconcile.matcher import (
    StatementLine,
    filter_invoices,
    match_greedy,
    parse_amount,
    statement_lines,
)

CARD = "American Express ending in 1001"


def _invoice(order_id, total, payment=CARD):
    return InvoiceRecord(order_id=order_id, total=Decimal(total) if total is not None else None, payment_method_text=payment)


def _line(row, amount):
    return StatementLine(row_index=row, description="AMAZON MARKETPLACE", amount=Decimal(amount))


def test_duplicate_amounts_match_first_unused_line():
    invoices = [_invoice("111-0000000-0000001", "45.00"), _invoice("111-0000000-0000002", "45.00")]
    lines = [_line(0, "45.00"), _line(1, "12.99"), _line(2, "45.00")]

    result = match_greedy(invoices, lines)

    assert [(m.invoice_order_id, m.statement_row_index) for m in result.matches] == [
        ("111-0000000-0000001", 0),
        ("111-0000000-0000002", 2),
    ]
    assert [line.row_index for line in result.unmatched_lines] == [1]
    assert result.unmatched_invoices == []


def test_tolerance_is_strict():
    lines = [_line(0, "10.00")]

    assert match_greedy([_invoice("A", "10.009")], lines).matches
    assert not match_greedy([_invoice("A", "10.01")], lines).matches


def test_each_line_used_once():
    invoices = [_invoice("A", "20.00"), _invoice("B", "20.00")]
    result = match_greedy(invoices, [_line(5, "20.00")])

    assert len(result.matches) == 1
    assert [i.order_id for i in result.unmatched_invoices] == ["B"]


def test_invoice_without_total_is_unmatched():
    result = match_greedy([_invoice("A", None)], [_line(0, "0.00")])
    assert result.matches == []
    assert [i.order_id for i in result.unmatched_invoices] == ["A"]


def test_filter_invoices_is_case_sensitive():
    records = [
        _invoice("A", "1.00"),
        _invoice("B", "1.00", payment="american express ending in 1001"),
        _invoice("C", "1.00", payment="Visa ending in 1001"),
        _invoice("D", "1.00", payment=None),
    ]

    kept = filter_invoices(records, "American Express", "ending in 1001")

    assert [r.order_id for r in kept] == ["A"]


def test_statement_lines_filter_markers_and_use_magnitude():
    rows = [
        ["Account summary", None, None],
        ["Date", "Description", "Amount"],
        ["01/02", "AMAZON MKTPL*AB12", -45.0],
        ["01/03", "Coffee shop", 4.5],
        ["01/04", "amzn.com/bill", "12.99"],
        ["01/05", "AMAZON MARKETPLACE", None],
        ["01/06", "MARKETPLACE refund", "n/a"],
        ["01/07"],
    ]

    lines = statement_lines(rows, header_index=1)

    assert [(line.row_index, line.amount) for line in lines] == [
        (2, Decimal("45.0")),
        (4, Decimal("12.99")),
    ]


def test_parse_amount():
    assert parse_amount("-$1,234.50") == Decimal("1234.50")
    assert parse_amount(7) == Decimal("7")
    assert parse_amount("") is None
