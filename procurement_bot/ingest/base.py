"""Offer records and the page capability consumed by the extraction engine."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Optional, Sequence

NO_OFFERS = "NO OFFERS"
ERROR = "ERROR"

SENTINEL_DESCRIPTIONS = {
    NO_OFFERS: "No offers found",
    ERROR: "Error extracting offers",
}


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp used for captured_at fields."""
    return datetime.utcnow().isoformat(timespec="milliseconds") + "Z"


@dataclass
class OfferRecord:
    """One candidate price listing for a query term."""

    term: str
    rank: int = 0
    seller: str = ""
    price: str = ""
    raw_price: str = ""
    is_call_for_price: bool = False
    quantity: str = ""
    condition: str = ""
    manufacturer: str = ""
    location: str = ""
    age_days: str = ""
    description: str = ""
    source_url: str = ""
    captured_at: str = field(default_factory=utc_timestamp)

    @classmethod
    def sentinel(cls, term: str, kind: str = NO_OFFERS, source_url: str = "") -> "OfferRecord":
        """Placeholder record for a term with no qualifying offers."""
        if kind not in SENTINEL_DESCRIPTIONS:
            raise ValueError(f"Unknown sentinel kind: {kind}")
        return cls(
            term=term,
            rank=1,
            seller=kind,
            description=SENTINEL_DESCRIPTIONS[kind],
            source_url=source_url,
        )

    @property
    def is_sentinel(self) -> bool:
        return self.seller in SENTINEL_DESCRIPTIONS and not self.price and not self.raw_price

    def as_row(self) -> list[Any]:
        """Values in OFFER_COLUMNS order, booleans written as 1/0."""
        row = []
        for name in OFFER_COLUMNS:
            value = getattr(self, name)
            if isinstance(value, bool):
                value = "1" if value else "0"
            row.append(value)
        return row


OFFER_COLUMNS: tuple[str, ...] = tuple(f.name for f in fields(OfferRecord))

SEARCH_LOG_COLUMNS: tuple[str, ...] = ("term", "page_title", "page_url", "captured_at")


class UnsupportedPageOperation(Exception):
    """The page implementation cannot perform the requested operation."""

    def __init__(self, operation: str, page_type: str):
        self.operation = operation
        self.page_type = page_type
        super().__init__(f"{page_type} does not support {operation}")


class BrowserPage(ABC):
    """
    Navigable page abstraction supplied by the browser capability provider.

    Every query is optional: ``query_all`` returns an empty list and
    ``query_one`` returns None when nothing matches. Element handles are
    opaque to callers and only passed back into ``text``/``attribute``/
    ``query_all(root=...)``.
    """

    @property
    @abstractmethod
    def url(self) -> str:
        """Current page URL."""

    @abstractmethod
    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        pass

    @abstractmethod
    async def query_all(self, selector: str, root: Any = None) -> list[Any]:
        pass

    async def query_one(self, selector: str, root: Any = None) -> Optional[Any]:
        matches = await self.query_all(selector, root=root)
        return matches[0] if matches else None

    @abstractmethod
    async def text(self, element: Any) -> str:
        pass

    @abstractmethod
    async def attribute(self, element: Any, name: str) -> Optional[str]:
        pass

    @abstractmethod
    async def wait(self, ms: int) -> None:
        pass

    @abstractmethod
    async def wait_for_any(self, selectors: Sequence[str], timeout_ms: int) -> bool:
        """Wait until any selector matches; False on timeout."""

    @abstractmethod
    async def scroll_by(self, dy: int) -> None:
        pass

    @abstractmethod
    async def screenshot(self, path: str, full_page: bool = False) -> None:
        pass

    @abstractmethod
    async def render_to_pdf(self, path: str) -> None:
        pass

    @abstractmethod
    async def content(self) -> str:
        pass

    @abstractmethod
    async def title(self) -> str:
        pass

    async def body_text(self) -> str:
        body = await self.query_one("body")
        return await self.text(body) if body is not None else ""
