"""Shared fixtures: offline pages that behave like a navigable browser."""

import pytest
from selectolax.parser import HTMLParser

from procurement_bot.ingest.document import CachedDocument

EMPTY_HTML = "<html><head><title></title></head><body></body></html>"


class RoutingPage(CachedDocument):
    """CachedDocument whose ``navigate`` swaps in the HTML registered for a URL."""

    def __init__(self, routes: dict[str, str], url: str = ""):
        self.routes = dict(routes)
        self.visited: list[str] = []
        self.pdfs: list[str] = []
        self.waited_ms = 0
        super().__init__(self.routes.get(url, EMPTY_HTML), url=url)

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        self.visited.append(url)
        self._tree = HTMLParser(self.routes.get(url, EMPTY_HTML))
        self._url = url

    async def wait(self, ms: int) -> None:
        self.waited_ms += ms

    async def render_to_pdf(self, path: str) -> None:
        with open(path, "wb") as f:
            f.write(b"%PDF-1.4\n")
        self.pdfs.append(path)


class FakeSession:
    """Stands in for BrowserSession in runner tests."""

    def __init__(self, page: RoutingPage):
        self.page = page
        self.closed = False
        self.profile_name = None

    async def start(self):
        return self.page

    async def close(self):
        self.closed = True


@pytest.fixture
def make_page():
    def _make(routes: dict[str, str], url: str = "") -> RoutingPage:
        return RoutingPage(routes, url=url)
    return _make


@pytest.fixture
def make_session():
    def _make(page: RoutingPage) -> FakeSession:
        return FakeSession(page)
    return _make
