"""Extraction engine: one fallback chain shared by every source.

Tiers, each attempted only while the previous ones produced nothing usable:

1. primary   - source containers on the live results page
2. single    - detail page of the first result, or the first priced row
3. cached    - primary selectors re-run on a saved ``result-<slug>.html``
4. sentinel  - ``ERROR`` if any tier raised, otherwise ``NO OFFERS``

A tier that raises counts as zero offers. ``extract`` never raises.
"""

import logging
import re
from pathlib import Path
from typing import Any, Optional, Sequence
from urllib.parse import urljoin

from procurement_bot.ingest.base import (
    ERROR,
    NO_OFFERS,
    BrowserPage,
    OfferRecord,
    UnsupportedPageOperation,
)
from procurement_bot.ingest.document import CachedDocument
from procurement_bot.ingest.price import STRICT_PRICE_RE, clean_price_text, normalize_price
from procurement_bot.ingest.sources.base import CellRule, FieldRule, Rule, SourceProfile
from procurement_bot.metrics import extraction_tier_total, sentinel_records_total

logger = logging.getLogger(__name__)

# Record attributes a profile may fill from fields, constants or defaults.
RECORD_FIELDS = ("seller", "quantity", "condition", "manufacturer", "location", "age_days")


def term_slug(term: str) -> str:
    """File-name safe form of a term, used for capture files."""
    return re.sub(r"[^a-zA-Z0-9]", "-", term)


def capture_html_path(capture_dir: str | Path, term: str) -> Path:
    return Path(capture_dir) / f"result-{term_slug(term)}.html"


def _collapse(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


async def _safe_url(page: BrowserPage) -> str:
    try:
        return page.url or ""
    except Exception:
        return ""


class ExtractionEngine:
    """Runs a ``SourceProfile`` through the fallback chain."""

    def __init__(self, profile: SourceProfile, capture_dir: Optional[str | Path] = None):
        self.profile = profile
        self.capture_dir = Path(capture_dir) if capture_dir else None
        self._skip_title = [re.compile(p) for p in profile.skip_title_patterns]
        self._noise = [re.compile(p) for p in profile.noise_seller_patterns]

    async def extract(self, page: BrowserPage, term: str, limit: int) -> list[OfferRecord]:
        """
        Produce ranked offers for one term.

        Args:
            page: Page showing the term's results
            term: Query term
            limit: Maximum number of offers to return

        Returns:
            Offers ranked ``1..k``, or exactly one sentinel record
        """
        limit = max(int(limit or 0), 1)
        errored = False

        tiers = (
            ("primary", self._primary_tier),
            ("single", self._single_offer_tier),
            ("cached", self._cached_tier),
        )
        for tier_name, tier in tiers:
            try:
                records = await tier(page, term, limit)
            except UnsupportedPageOperation as e:
                logger.debug(f"[{self.profile.name}] {tier_name} tier skipped for {term!r}: {e}")
                extraction_tier_total.labels(self.profile.name, tier_name, "skipped").inc()
                continue
            except Exception as e:
                errored = True
                logger.warning(f"[{self.profile.name}] {tier_name} tier failed for {term!r}: {e}")
                extraction_tier_total.labels(self.profile.name, tier_name, "error").inc()
                continue

            records = [r for r in records if not self.is_noise(r)][:limit]
            if records:
                extraction_tier_total.labels(self.profile.name, tier_name, "hit").inc()
                if tier_name != "primary":
                    logger.info(
                        f"[{self.profile.name}] {tier_name} tier produced {len(records)} offer(s) for {term!r}"
                    )
                return self._rank(records)

            extraction_tier_total.labels(self.profile.name, tier_name, "empty").inc()

        kind = ERROR if errored else NO_OFFERS
        sentinel_records_total.labels(self.profile.name, kind).inc()
        logger.info(f"[{self.profile.name}] {kind} for {term!r}")
        return [OfferRecord.sentinel(term, kind, source_url=await _safe_url(page))]

    def is_noise(self, record: OfferRecord) -> bool:
        """Boilerplate seller text, or a price that fails the strict shape."""
        if any(p.search(record.seller or "") for p in self._noise):
            return True
        if self.profile.strict_price and not record.is_call_for_price:
            return not STRICT_PRICE_RE.match(record.price or "")
        return False

    @staticmethod
    def _rank(records: list[OfferRecord]) -> list[OfferRecord]:
        for index, record in enumerate(records, start=1):
            record.rank = index
        return records

    # ------------------------------------------------------------------
    # Tier 1
    # ------------------------------------------------------------------

    async def _primary_tier(self, page: BrowserPage, term: str, limit: int) -> list[OfferRecord]:
        containers = await self.find_containers(page)
        page_url = await _safe_url(page)
        records: list[OfferRecord] = []

        for container in containers:
            if len(records) >= limit:
                break
            try:
                record = await self.record_from_container(page, container, term, page_url)
            except UnsupportedPageOperation:
                raise
            except Exception as e:
                logger.debug(f"[{self.profile.name}] Error extracting container: {e}")
                continue
            if record is not None and not self.is_noise(record):
                records.append(record)

        return records

    async def find_containers(self, page: BrowserPage) -> list[Any]:
        """First container selector that yields containers wins."""
        requires = self.profile.container_requires
        for selector in self.profile.container_selectors:
            found = await page.query_all(selector)
            if requires:
                found = [c for c in found if await page.query_one(requires, root=c) is not None]
            if found:
                return found
        return []

    async def record_from_container(
        self,
        page: BrowserPage,
        container: Any,
        term: str,
        page_url: str = "",
    ) -> Optional[OfferRecord]:
        """Build one record from a container, or None if it does not qualify."""
        profile = self.profile
        values: dict[str, str] = {}
        for name, rules in profile.fields.items():
            values[name] = await self.resolve_field(page, container, rules)

        if profile.require_field and not values.get(profile.require_field):
            return None

        title = values.get("title", "")
        if title and any(p.search(title) for p in self._skip_title):
            return None

        raw_price = _collapse(values.get("price", ""))
        price, is_call = normalize_price(raw_price)
        if not price and not is_call:
            return None

        description = " ".join(values[f] for f in profile.description_fields if values.get(f))
        link = values.get("link", "")
        source_url = urljoin(page_url, link) if link else page_url

        return OfferRecord(
            term=term,
            price=price,
            raw_price=raw_price,
            is_call_for_price=is_call,
            description=description,
            source_url=source_url,
            **self._record_attributes(values),
        )

    def _record_attributes(self, values: dict[str, str]) -> dict[str, str]:
        attributes = {name: self.profile.defaults.get(name, "") for name in RECORD_FIELDS}
        for name in RECORD_FIELDS:
            if values.get(name):
                attributes[name] = values[name]
            if name in self.profile.constants:
                attributes[name] = self.profile.constants[name]
        return attributes

    async def resolve_field(self, page: BrowserPage, container: Any, rules: Sequence[Rule]) -> str:
        """First rule producing a non-empty value wins."""
        for rule in rules:
            if isinstance(rule, CellRule):
                value = await self._apply_cell_rule(page, container, rule)
            else:
                value = await self._apply_field_rule(page, container, rule)
            if value:
                return value
        return ""

    async def _apply_field_rule(self, page: BrowserPage, container: Any, rule: FieldRule) -> str:
        if rule.selector is None:
            node = container
        else:
            node = await page.query_one(rule.selector, root=container)
        if node is None:
            return ""

        if rule.attribute:
            value = await page.attribute(node, rule.attribute) or ""
        else:
            value = await page.text(node)

        if rule.fraction_selector:
            whole = _collapse(value).replace(",", "").rstrip(".")
            if not whole:
                return ""
            fraction_node = await page.query_one(rule.fraction_selector, root=container)
            fraction = _collapse(await page.text(fraction_node)) if fraction_node is not None else ""
            value = f"{whole}.{fraction or rule.fraction_default}"

        if rule.collapse_whitespace:
            value = _collapse(value)
        if rule.pattern:
            match = re.search(rule.pattern, value)
            value = match.group(0).strip() if match else ""
        return value

    async def _apply_cell_rule(self, page: BrowserPage, container: Any, rule: CellRule) -> str:
        cells = await page.query_all(rule.cell_selector, root=container)
        texts = [_collapse(await page.text(cell)) for cell in cells]

        if rule.follows:
            candidates: Sequence[int] = ()
            for index, text in enumerate(texts):
                if text.upper() in rule.follows:
                    candidates = (index + 1,) if index + 1 < len(cells) else ()
                    break
        else:
            candidates = range(len(cells))

        for index in candidates:
            cell, text = cells[index], texts[index]
            if rule.class_contains and rule.class_contains not in (await page.attribute(cell, "class") or ""):
                continue
            if rule.align is not None and (await page.attribute(cell, "align") or "") != rule.align:
                continue
            if rule.pattern and not re.fullmatch(rule.pattern, text):
                continue
            if rule.vocabulary and text.upper() not in rule.vocabulary:
                continue
            return text.upper() if rule.upper else text
        return ""

    # ------------------------------------------------------------------
    # Tier 2
    # ------------------------------------------------------------------

    async def _single_offer_tier(self, page: BrowserPage, term: str, limit: int) -> list[OfferRecord]:
        if self.profile.detail_page is not None:
            return await self._detail_page_offer(page, term)
        if self.profile.loose_row is not None:
            return await self._loose_row_offer(page, term)
        return []

    async def _detail_page_offer(self, page: BrowserPage, term: str) -> list[OfferRecord]:
        spec = self.profile.detail_page
        link = await page.query_one(spec.link_selector)
        if link is None:
            return []
        href = await page.attribute(link, spec.link_attribute)
        if not href:
            return []

        detail_url = urljoin(await _safe_url(page), href)
        await page.navigate(detail_url)
        await page.wait(spec.settle_ms)

        for selector in spec.price_selectors:
            node = await page.query_one(selector)
            if node is None:
                continue
            raw_price = clean_price_text(await page.text(node))
            price, is_call = normalize_price(raw_price)
            if price or is_call:
                return [
                    OfferRecord(
                        term=term,
                        price=price,
                        raw_price=raw_price,
                        is_call_for_price=is_call,
                        description=spec.description,
                        source_url=detail_url,
                        **self._record_attributes({}),
                    )
                ]
        return []

    async def _loose_row_offer(self, page: BrowserPage, term: str) -> list[OfferRecord]:
        spec = self.profile.loose_row
        price_re = re.compile(spec.price_pattern)
        page_url = await _safe_url(page)

        for row in await page.query_all(spec.row_selector):
            try:
                text = await page.text(row)
            except Exception as e:
                logger.debug(f"[{self.profile.name}] Error reading generic row: {e}")
                continue
            match = price_re.search(text or "")
            if not match:
                continue
            seller = re.split(spec.seller_split_pattern, text.strip())[0].strip()
            if not seller:
                continue
            record = OfferRecord(
                term=term,
                seller=seller,
                price=match.group(0),
                raw_price=match.group(0),
                source_url=page_url,
            )
            if not self.is_noise(record):
                return [record]
        return []

    # ------------------------------------------------------------------
    # Tier 3
    # ------------------------------------------------------------------

    async def _cached_tier(self, page: BrowserPage, term: str, limit: int) -> list[OfferRecord]:
        if self.capture_dir is None:
            return []
        path = capture_html_path(self.capture_dir, term)
        if not path.exists():
            return []
        logger.info(f"[{self.profile.name}] Re-parsing cached capture {path}")
        document = CachedDocument.from_file(path, url=await _safe_url(page))
        return await self._primary_tier(document, term, limit)
