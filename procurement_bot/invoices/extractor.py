"""Convert downloaded invoice PDFs into JSON records.

The PDFs are only used to discover order ids; the data itself is read from
the printable invoice page in the browser.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from procurement_bot.ingest.base import BrowserPage
from procurement_bot.invoices.models import (
    INVOICE_PDF_RE,
    PRINT_URL,
    InvoiceRecord,
    invoice_json_name,
)

logger = logging.getLogger(__name__)

TOTAL_PATTERNS = (
    re.compile(r"Order Total[^0-9]*([\d,]+\.\d{2})"),
    re.compile(r"Grand Total[^0-9]*([\d,]+\.\d{2})"),
    re.compile(r"Total[^0-9]*([\d,]+\.\d{2})"),
)
ORDER_DATE_RE = re.compile(r"Order placed[^A-Za-z0-9]*([A-Za-z]+\s+\d{1,2},\s+\d{4})")
PAYMENT_METHOD_SELECTOR = ".pmts-payments-instrument-detail-box-paystationpaymentmethod"


def parse_total(body_text: str) -> Optional[Decimal]:
    """First total pattern that matches wins (Order Total, Grand Total, Total)."""
    for pattern in TOTAL_PATTERNS:
        match = pattern.search(body_text or "")
        if not match:
            continue
        try:
            return Decimal(match.group(1).replace(",", ""))
        except InvalidOperation:
            continue
    return None


def parse_order_date(body_text: str) -> Optional[str]:
    match = ORDER_DATE_RE.search(body_text or "")
    return match.group(1) if match else None


def pending_order_ids(pdf_dir: str | Path, json_dir: str | Path) -> list[str]:
    """Order ids with a PDF but no JSON record yet, in filename order."""
    pdf_dir, json_dir = Path(pdf_dir), Path(json_dir)
    if not pdf_dir.is_dir():
        return []

    order_ids = []
    for path in sorted(pdf_dir.iterdir()):
        if path.suffix.lower() != ".pdf":
            continue
        match = INVOICE_PDF_RE.match(path.name)
        if not match:
            logger.info(f"Skipping file with unexpected name: {path.name}")
            continue
        order_id = match.group(1)
        if (json_dir / invoice_json_name(order_id)).exists():
            logger.info(f"JSON already exists for order {order_id}, skipping.")
            continue
        order_ids.append(order_id)
    return order_ids


@dataclass
class ExtractionSummary:
    written: int = 0
    failed: int = 0


class InvoiceExtractor:
    """Open each pending order's printable invoice and save its record."""

    def __init__(self, pdf_dir: str | Path, json_dir: str | Path, delay_ms: int = 1500):
        self.pdf_dir = Path(pdf_dir)
        self.json_dir = Path(json_dir)
        self.delay_ms = delay_ms

    async def extract_record(self, page: BrowserPage, order_id: str) -> InvoiceRecord:
        invoice_url = PRINT_URL.format(order_id=order_id)
        logger.info(f"Opening invoice for order {order_id} -> {invoice_url}")
        await page.navigate(invoice_url)

        body_text = await page.body_text()

        payment_method_text = None
        node = await page.query_one(PAYMENT_METHOD_SELECTOR)
        if node is not None:
            payment_method_text = (await page.text(node)).strip() or None

        return InvoiceRecord(
            order_id=order_id,
            total=parse_total(body_text),
            payment_method_text=payment_method_text,
            order_date=parse_order_date(body_text),
            invoice_url=invoice_url,
        )

    async def run(self, page: BrowserPage) -> ExtractionSummary:
        """
        Write a JSON record for every PDF that lacks one.

        Existing records are never rewritten, so re-running is safe.
        """
        self.json_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Scanning invoice PDFs in: {self.pdf_dir}")

        order_ids = pending_order_ids(self.pdf_dir, self.json_dir)
        summary = ExtractionSummary()
        if not order_ids:
            logger.info("No invoices pending conversion.")
            return summary

        for order_id in order_ids:
            try:
                record = await self.extract_record(page, order_id)
            except Exception as e:
                summary.failed += 1
                logger.error(f"Error extracting invoice {order_id}: {e}")
                continue

            path = record.write(self.json_dir)
            summary.written += 1
            logger.info(f"Saved JSON for order {order_id} -> {path}")
            await page.wait(self.delay_ms)

        logger.info(f"Done converting invoices to JSON ({summary.written} written, {summary.failed} failed).")
        return summary
