"""Greedy amount matching between invoices and statement lines.

Amount is the only join key: order ids never appear on the statement.
Invoices are taken in input order and each takes the first unused line
(in row order) within ``epsilon``. The result depends on both orders and is
not an optimal assignment when amounts collide.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from procurement_bot.ingest.price import to_decimal
from procurement_bot.invoices.models import InvoiceRecord

DEFAULT_EPSILON = Decimal("0.01")
DEFAULT_MARKERS = ("AMAZON", "AMZN.COM", "MARKETPLACE")


@dataclass
class StatementLine:
    row_index: int
    description: str
    amount: Decimal


@dataclass
class Match:
    invoice_order_id: str
    statement_row_index: int
    amount: Decimal


@dataclass
class MatchResult:
    matches: list[Match] = field(default_factory=list)
    unmatched_invoices: list[InvoiceRecord] = field(default_factory=list)
    unmatched_lines: list[StatementLine] = field(default_factory=list)


def filter_invoices(
    records: Iterable[InvoiceRecord],
    card_brand: str,
    last4_phrase: str,
) -> list[InvoiceRecord]:
    """Keep invoices whose payment text contains both phrases (case-sensitive)."""
    kept = []
    for record in records:
        text = record.payment_method_text or ""
        if card_brand in text and last4_phrase in text:
            kept.append(record)
    return kept


def parse_amount(value: Any) -> Optional[Decimal]:
    """Statement amount as a positive magnitude, or None if not numeric."""
    amount = to_decimal(value)
    return abs(amount) if amount is not None else None


def statement_lines(
    rows: Sequence[Sequence[Any]],
    header_index: int,
    markers: Sequence[str] = DEFAULT_MARKERS,
    description_col: int = 1,
    amount_col: int = 2,
) -> list[StatementLine]:
    """
    Marketplace charges below the header row.

    Args:
        rows: Sheet rows (0-based)
        header_index: Index of the ``Date | Description | Amount`` row
        markers: Substrings of the upper-cased description that mark a charge

    Returns:
        Lines in row order with positive amounts
    """
    lines = []
    for index in range(header_index + 1, len(rows)):
        row = rows[index]
        if not row or len(row) <= max(description_col, amount_col):
            continue
        description, raw_amount = row[description_col], row[amount_col]
        if not description or raw_amount in (None, ""):
            continue

        amount = parse_amount(raw_amount)
        if amount is None:
            continue

        upper = str(description).upper()
        if any(marker in upper for marker in markers):
            lines.append(StatementLine(row_index=index, description=str(description), amount=amount))
    return lines


def match_greedy(
    invoices: Sequence[InvoiceRecord],
    lines: Sequence[StatementLine],
    epsilon: Decimal = DEFAULT_EPSILON,
) -> MatchResult:
    """First-fit matching; each invoice and each line is used at most once."""
    result = MatchResult()
    used_rows: set[int] = set()
    used_orders: set[str] = set()

    for invoice in invoices:
        if invoice.total is None or invoice.order_id in used_orders:
            result.unmatched_invoices.append(invoice)
            continue

        for line in lines:
            if line.row_index in used_rows:
                continue
            if abs(line.amount - invoice.total) < epsilon:
                used_rows.add(line.row_index)
                used_orders.add(invoice.order_id)
                result.matches.append(
                    Match(invoice_order_id=invoice.order_id, statement_row_index=line.row_index, amount=line.amount)
                )
                break
        else:
            result.unmatched_invoices.append(invoice)

    result.unmatched_lines = [line for line in lines if line.row_index not in used_rows]
    return result
