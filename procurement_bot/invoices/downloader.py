"""Amazon order-history scan and invoice PDF capture."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urljoin, urlparse

from procurement_bot.ingest.base import BrowserPage
from procurement_bot.invoices.models import INVOICE_PDF_RE, invoice_pdf_name

logger = logging.getLogger(__name__)

HOME_URL = "https://www.amazon.com/"
ORDER_HISTORY_URL = "https://www.amazon.com/gp/css/order-history"
INVOICE_LINK_SELECTOR = 'a[href*="/gp/css/summary/print.html?orderID="]'
NEXT_PAGE_SELECTOR = "li.a-last a"

# Marker counted by the job store's "invoices" counter.
SAVE_MARKER = "Saving PDF ->"


def order_id_from_url(url: str) -> Optional[str]:
    values = parse_qs(urlparse(url).query).get("orderID")
    return values[0] if values else None


def existing_order_ids(directory: str | Path) -> set[str]:
    directory = Path(directory)
    if not directory.is_dir():
        return set()
    ids = set()
    for path in directory.iterdir():
        match = INVOICE_PDF_RE.match(path.name)
        if match:
            ids.add(match.group(1))
    return ids


def card_matches(body_text: str, card_brand: str, last4_phrase: Optional[str]) -> bool:
    """Case-sensitive check for the brand and the "ending in NNNN" phrase."""
    if card_brand not in body_text:
        return False
    return last4_phrase is None or last4_phrase in body_text


@dataclass
class DownloadOptions:
    output_dir: str
    max_pages: int = 20
    only_new: bool = False
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    delay_ms: int = 1500
    login_wait_ms: int = 10000

    @property
    def use_card_filter(self) -> bool:
        return bool(self.card_brand and self.card_last4)

    @property
    def last4_phrase(self) -> Optional[str]:
        return f"ending in {self.card_last4}" if self.card_last4 else None


class InvoiceDownloader:
    """Collect printable-invoice links from order history and save them as PDFs."""

    def __init__(self, options: DownloadOptions):
        self.options = options
        self.output_dir = Path(options.output_dir)

    async def run(self, page: BrowserPage) -> list[Path]:
        """
        Full download pass on an already-open browser page.

        Returns:
            Paths of the PDFs written in this pass
        """
        logger.info("Opening Amazon homepage...")
        await page.navigate(HOME_URL)
        if self.options.login_wait_ms > 0:
            logger.info(f"Waiting {self.options.login_wait_ms}ms for manual login...")
            await page.wait(self.options.login_wait_ms)

        logger.info("Navigating to Your Orders...")
        await page.navigate(ORDER_HISTORY_URL)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        existing = existing_order_ids(self.output_dir)
        logger.info(f"Existing invoices found: {len(existing)}")

        links = await self.collect_links(page, existing)
        if not links:
            logger.info("No invoices to download with current filters.")
            return []
        return await self.download(page, links)

    async def collect_links(self, page: BrowserPage, existing: set[str]) -> list[str]:
        # order id -> first link seen for it
        seen: dict[str, str] = {}
        for page_number in range(1, self.options.max_pages + 1):
            logger.info(f"Scanning orders page {page_number}...")
            await page.wait(1500)

            found = 0
            for anchor in await page.query_all(INVOICE_LINK_SELECTOR):
                href = await page.attribute(anchor, "href")
                if not href:
                    continue
                link = urljoin(page.url, href)
                order_id = order_id_from_url(link)
                if order_id:
                    seen.setdefault(order_id, link)
                    found += 1
            logger.info(f"Found {found} invoice links on page {page_number}")

            next_link = await page.query_one(NEXT_PAGE_SELECTOR)
            next_href = await page.attribute(next_link, "href") if next_link is not None else None
            if not next_href:
                logger.info("No Next button, pagination finished.")
                break
            logger.info("Advancing to next page...")
            await page.navigate(urljoin(page.url, next_href))

        logger.info(f"Total unique links collected: {len(seen)}")

        candidates = []
        for order_id, link in seen.items():
            if self.options.only_new and order_id in existing:
                continue
            candidates.append(link)
        logger.info(f"Candidates after only-new filter: {len(candidates)}")

        if self.options.use_card_filter:
            candidates = await self.filter_by_card(page, candidates)
        return candidates

    async def filter_by_card(self, page: BrowserPage, links: list[str]) -> list[str]:
        logger.info(
            f'Applying card filter: brand="{self.options.card_brand}" last4="{self.options.card_last4}"'
        )
        kept = []
        for link in links:
            await page.navigate(link)
            if card_matches(await page.body_text(), self.options.card_brand, self.options.last4_phrase):
                kept.append(link)
                logger.info(f"Card match: {link}")
            else:
                logger.info(f"No card match, skipping: {link}")
            await page.wait(500)
        logger.info(f"Links after card filter: {len(kept)}")
        return kept

    async def download(self, page: BrowserPage, links: list[str]) -> list[Path]:
        saved = []
        for link in links:
            order_id = order_id_from_url(link) or "unknown"
            path = self.output_dir / invoice_pdf_name(order_id)
            if path.exists() and self.options.only_new:
                logger.info(f"(skip) Already exists: {path}")
                continue

            await page.navigate(link)
            logger.info(f"{SAVE_MARKER} {path}")
            await page.render_to_pdf(str(path))
            saved.append(path)
            await page.wait(self.options.delay_ms)
        return saved
