"""Invoice records and their on-disk layout."""

import json
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from procurement_bot.ingest.base import utc_timestamp
from procurement_bot.ingest.price import to_decimal

logger = logging.getLogger(__name__)

ORDER_ID_PATTERN = r"\d{3}-\d{7}-\d{7}"
INVOICE_PDF_RE = re.compile(rf"^invoice-({ORDER_ID_PATTERN})\.pdf$")
INVOICE_JSON_RE = re.compile(rf"^invoice-({ORDER_ID_PATTERN})\.json$")

PRINT_URL = "https://www.amazon.com/gp/css/summary/print.html?orderID={order_id}"


def invoice_pdf_name(order_id: str) -> str:
    return f"invoice-{order_id}.pdf"


def invoice_json_name(order_id: str) -> str:
    return f"invoice-{order_id}.json"


@dataclass
class InvoiceRecord:
    """Structured data captured from one printable invoice."""

    order_id: str
    total: Optional[Decimal] = None
    payment_method_text: Optional[str] = None
    order_date: Optional[str] = None
    captured_at: str = field(default_factory=utc_timestamp)
    invoice_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "invoice_url": self.invoice_url,
            "total": float(self.total) if self.total is not None else None,
            "payment_method_text": self.payment_method_text,
            "order_date": self.order_date,
            "captured_at": self.captured_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InvoiceRecord":
        """Build a record; camelCase keys from older captures are accepted too."""
        def pick(*keys):
            for key in keys:
                if key in data:
                    return data[key]
            return None

        order_id = pick("order_id", "orderId")
        if not order_id:
            raise ValueError("Invoice record has no order id")
        return cls(
            order_id=str(order_id),
            total=to_decimal(pick("total")),
            payment_method_text=pick("payment_method_text", "paymentMethodText"),
            order_date=pick("order_date", "orderDate"),
            captured_at=pick("captured_at", "scrapedAt") or utc_timestamp(),
            invoice_url=pick("invoice_url", "invoiceUrl") or "",
        )

    def write(self, directory: str | Path) -> Path:
        path = Path(directory) / invoice_json_name(self.order_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return path


def load_invoice_records(directory: str | Path) -> list[InvoiceRecord]:
    """
    Read every ``*.json`` record in filename order.

    Unreadable files are skipped with a warning; a repeated order id keeps
    its first record.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []

    records: list[InvoiceRecord] = []
    seen: set[str] = set()
    for path in sorted(directory.glob("*.json")):
        try:
            record = InvoiceRecord.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Skipping invoice file {path.name}: {e}")
            continue
        if record.order_id in seen:
            logger.debug(f"Duplicate invoice record for {record.order_id} in {path.name}")
            continue
        seen.add(record.order_id)
        records.append(record)
    return records
