"""One scraping run for one source."""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote

from procurement_bot.config import settings
from procurement_bot.ingest.base import (
    ERROR,
    OFFER_COLUMNS,
    SEARCH_LOG_COLUMNS,
    BrowserPage,
    OfferRecord,
    utc_timestamp,
)
from procurement_bot.ingest.browser import BrowserSession
from procurement_bot.ingest.engine import ExtractionEngine, capture_html_path, term_slug
from procurement_bot.ingest.sources.base import SourceProfile
from procurement_bot.ingest.terms import normalize_terms, read_terms
from procurement_bot.logging_config import sanitize_options
from procurement_bot.metrics import offers_extracted_total, sentinel_records_total, term_duration_seconds
from procurement_bot.output.sink import OutputSink

logger = logging.getLogger(__name__)

SCROLL_PAUSE_MS = 400


@dataclass
class SearchOptions:
    """Options for a search run. ``None`` means "use the configured default"."""

    file: Optional[str] = None
    terms: list[str] = field(default_factory=list)
    column_name: Optional[str] = None
    column_index: int = 0
    sheet_name: Optional[str] = None
    skip_header: bool = False
    max_terms: int = 0
    offers_limit: Optional[int] = None
    delay_ms: Optional[int] = None
    headless: Optional[bool] = None
    output_dir: Optional[str] = None
    capture_html: Optional[bool] = None
    capture_screenshot: Optional[bool] = None
    offline_parse_fallback: Optional[bool] = None
    login_wait_ms: Optional[int] = None
    keep_open_ms: Optional[int] = None
    region: Optional[str] = None
    username: Optional[str] = None

    def __post_init__(self):
        defaults = {
            "offers_limit": settings.offers_limit,
            "delay_ms": settings.delay_ms,
            "headless": settings.headless,
            "output_dir": settings.output_dir,
            "capture_html": settings.capture_html,
            "capture_screenshot": settings.capture_screenshot,
            "offline_parse_fallback": settings.offline_parse_fallback,
            "login_wait_ms": settings.login_wait_ms,
            "keep_open_ms": settings.keep_open_ms,
            "region": settings.amazon_region,
            "username": settings.brokerbin_user,
        }
        for name, value in defaults.items():
            if getattr(self, name) is None:
                setattr(self, name, value)


@dataclass
class RunSummary:
    source: str
    terms: int = 0
    offers: int = 0
    sentinels: int = 0
    offers_csv: Optional[Path] = None
    snapshot: Optional[Path] = None


class SearchRunner:
    """
    Drive a browser through every term of a run.

    Usage::

        runner = SearchRunner(get_source("ebay"), SearchOptions(file="parts.csv"))
        summary = await runner.run()
    """

    def __init__(
        self,
        profile: SourceProfile,
        options: SearchOptions,
        session_factory: Callable[..., BrowserSession] = BrowserSession,
    ):
        self.profile = profile
        self.options = options
        self.session_factory = session_factory

        self.output_dir = Path(options.output_dir)
        self.offers = OutputSink(self.output_dir / f"{profile.name}_offers_detailed.csv", OFFER_COLUMNS)
        self.search_log = OutputSink(self.output_dir / f"{profile.name}_results.csv", SEARCH_LOG_COLUMNS)
        # The cached tier only reads pages captured by this run
        capture_dir = self.output_dir if options.capture_html and options.offline_parse_fallback else None
        self.engine = ExtractionEngine(profile, capture_dir=capture_dir)

    def load_terms(self) -> list[str]:
        raw_terms = list(self.options.terms)
        if self.options.file:
            raw_terms.extend(
                read_terms(
                    self.options.file,
                    column_name=self.options.column_name,
                    column_index=self.options.column_index,
                    sheet_name=self.options.sheet_name,
                    skip_header=self.options.skip_header,
                )
            )
        return normalize_terms(raw_terms, max_terms=self.options.max_terms)

    def url_params(self) -> dict[str, str]:
        return {
            "region": self.options.region or "com",
            "login": quote(self.options.username or "", safe=""),
        }

    async def run(self) -> RunSummary:
        """
        Run every term, then regenerate the snapshot and close the browser.

        Raises:
            TermSourceError: The term file cannot be read
        """
        name = self.profile.name
        logger.info(f"=== {name} search started ===")
        logger.info(f"Options: {sanitize_options(asdict(self.options))}")

        terms = self.load_terms()
        logger.info(f"Total unique terms: {len(terms)}")

        summary = RunSummary(source=name, offers_csv=self.offers.csv_path)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        session = self.session_factory(self.profile.profile_name, headless=self.options.headless)
        page: Optional[BrowserPage] = None
        try:
            page = await session.start()

            start_url = self.profile.start_url.format(**self.url_params())
            logger.info(f"Opening {start_url}...")
            await page.navigate(start_url)

            if self.options.login_wait_ms > 0:
                logger.info(f"Waiting {self.options.login_wait_ms}ms for manual login...")
                await page.wait(self.options.login_wait_ms)

            for index, term in enumerate(terms, start=1):
                logger.info(f"Searching term ({index}/{len(terms)}): {term}")
                with term_duration_seconds.labels(name).time():
                    records = await self.process_term(page, term)

                summary.terms += 1
                if len(records) == 1 and records[0].is_sentinel:
                    summary.sentinels += 1
                else:
                    summary.offers += len(records)

                await page.wait(self.options.delay_ms)
        finally:
            summary.snapshot = self._regenerate_snapshot()
            logger.info(
                f"=== {name} search finished: {summary.terms} terms, "
                f"{summary.offers} offers, {summary.sentinels} sentinels ==="
            )
            if self.options.keep_open_ms > 0 and page is not None:
                logger.info(f"Keeping browser open for {self.options.keep_open_ms}ms...")
                await page.wait(self.options.keep_open_ms)
            await session.close()

        return summary

    def _regenerate_snapshot(self) -> Optional[Path]:
        try:
            return self.offers.regenerate_snapshot()
        except Exception as e:
            logger.error(f"Error generating JSON: {e}")
            return None

    async def process_term(self, page: BrowserPage, term: str) -> list[OfferRecord]:
        """Open results, capture, extract and append one term's records."""
        try:
            await self.open_results(page, term)
        except Exception as e:
            logger.error(f"Error processing term {term}: {e}")
            records = [OfferRecord.sentinel(term, ERROR, source_url=self._page_url(page))]
            sentinel_records_total.labels(self.profile.name, ERROR).inc()
        else:
            for step in (self.capture, self.record_visit):
                try:
                    await step(page, term)
                except Exception as e:
                    logger.warning(f"{step.__name__} failed for {term}: {e}")
            records = await self.engine.extract(page, term, self.options.offers_limit)

        self.offers.append_records(records)
        if not records[0].is_sentinel:
            offers_extracted_total.labels(self.profile.name).inc(len(records))
        return records

    async def open_results(self, page: BrowserPage, term: str) -> None:
        profile = self.profile
        params = self.url_params()
        await page.navigate(profile.build_search_url(term, **params))

        found = False
        if profile.result_wait_selectors:
            found = await page.wait_for_any(profile.result_wait_selectors, settings.wait_results_ms)

        if not found and profile.alternate_search_url and await self._any_present(page, profile.no_results_selectors):
            logger.info(f"No direct match for {term}, trying alternate search...")
            await page.navigate(profile.build_alternate_url(term, **params))
            await page.wait(profile.alternate_settle_ms)

        if profile.price_wait_selectors:
            await page.wait_for_any(profile.price_wait_selectors, settings.wait_price_ms)
        if profile.settle_ms:
            await page.wait(profile.settle_ms)
        for _ in range(profile.scroll_steps):
            await page.scroll_by(settings.scroll_step_px)
            await page.wait(SCROLL_PAUSE_MS)

    @staticmethod
    async def _any_present(page: BrowserPage, selectors) -> bool:
        for selector in selectors:
            if await page.query_one(selector) is not None:
                return True
        return False

    async def capture(self, page: BrowserPage, term: str) -> None:
        if self.options.capture_html:
            path = capture_html_path(self.output_dir, term)
            path.write_text(await page.content(), encoding="utf-8")
            logger.debug(f"Saved HTML capture {path}")
        if self.options.capture_screenshot:
            path = self.output_dir / f"result-{term_slug(term)}.png"
            await page.screenshot(str(path), full_page=True)

    async def record_visit(self, page: BrowserPage, term: str) -> None:
        title = await page.title()
        self.search_log.append([term, title, self._page_url(page), utc_timestamp()])

    @staticmethod
    def _page_url(page: BrowserPage) -> str:
        try:
            return page.url or ""
        except Exception:
            return ""
