"""Offline page backed by a saved HTML capture."""

import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from selectolax.parser import HTMLParser

from procurement_bot.ingest.base import BrowserPage, UnsupportedPageOperation

logger = logging.getLogger(__name__)


class CachedDocument(BrowserPage):
    """
    Read-only ``BrowserPage`` over an HTML string.

    Used to re-run selector tables against a capture saved during an earlier
    visit, entirely offline. Operations that need a live renderer raise
    ``UnsupportedPageOperation``.
    """

    def __init__(self, html: str, url: str = ""):
        self._tree = HTMLParser(html or "")
        self._url = url

    @classmethod
    def from_file(cls, path: str | Path, url: str = "") -> "CachedDocument":
        return cls(Path(path).read_text(encoding="utf-8"), url=url)

    @property
    def url(self) -> str:
        return self._url

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        raise UnsupportedPageOperation("navigate", type(self).__name__)

    async def query_all(self, selector: str, root: Any = None) -> list[Any]:
        scope = root if root is not None else self._tree
        return list(scope.css(selector))

    async def text(self, element: Any) -> str:
        if element is None:
            return ""
        return element.text(deep=True, separator=" ") or ""

    async def attribute(self, element: Any, name: str) -> Optional[str]:
        if element is None:
            return None
        return element.attributes.get(name)

    async def wait(self, ms: int) -> None:
        return None

    async def wait_for_any(self, selectors: Sequence[str], timeout_ms: int) -> bool:
        for selector in selectors:
            if self._tree.css_first(selector) is not None:
                return True
        return False

    async def scroll_by(self, dy: int) -> None:
        return None

    async def screenshot(self, path: str, full_page: bool = False) -> None:
        raise UnsupportedPageOperation("screenshot", type(self).__name__)

    async def render_to_pdf(self, path: str) -> None:
        raise UnsupportedPageOperation("render_to_pdf", type(self).__name__)

    async def content(self) -> str:
        return self._tree.html or ""

    async def title(self) -> str:
        node = self._tree.css_first("title")
        return node.text(strip=True) if node is not None else ""
