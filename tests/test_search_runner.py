"""Tests for a full search run against offline pages."""

import json
import logging

import pytest

from procurement_bot.ingest.base import ERROR, NO_OFFERS
from procurement_bot.ingest.runner import SearchOptions, SearchRunner
from procurement_bot.ingest.sources import get_source

EBAY_ABC = """
<html><head><title>ABC123 | eBay</title></head><body><ul class="srp-results">
<li class="s-item"><div class="s-item__title">ABC123 router</div>
  <span class="s-item__price">$100.00</span><a class="s-item__link" href="https://www.ebay.com/itm/1">x</a></li>
<li class="s-item"><div class="s-item__title">ABC123 router refurbished</div>
  <span class="s-item__price">$80.00</span><a class="s-item__link" href="https://www.ebay.com/itm/2">x</a></li>
<li class="s-item"><div class="s-item__title">ABC123 bracket</div>
  <span class="s-item__price">$5.00</span><a class="s-item__link" href="https://www.ebay.com/itm/3">x</a></li>
</ul></body></html>
"""


def _options(tmp_path, terms, **kwargs):
    return SearchOptions(
        terms=terms,
        output_dir=str(tmp_path),
        login_wait_ms=0,
        delay_ms=0,
        keep_open_ms=0,
        headless=True,
        capture_html=False,
        capture_screenshot=False,
        offers_limit=15,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_run_writes_offers_and_sentinel(tmp_path, make_page, make_session, caplog):
    profile = get_source("ebay")
    page = make_page({profile.build_search_url("ABC123"): EBAY_ABC})
    session = make_session(page)
    runner = SearchRunner(
        profile,
        _options(tmp_path, ["ABC123", "abc123 ", "XYZ999"]),
        session_factory=lambda profile_name, headless: session,
    )

    with caplog.at_level(logging.INFO):
        summary = await runner.run()

    assert summary.terms == 2
    assert summary.offers == 3
    assert summary.sentinels == 1
    assert session.closed
    assert "Searching term (1/2): ABC123" in caplog.text

    items = json.loads(summary.snapshot.read_text(encoding="utf-8"))
    abc = [i for i in items if i["term"] == "ABC123"]
    xyz = [i for i in items if i["term"] == "XYZ999"]
    assert [i["rank"] for i in abc] == [1, 2, 3]
    assert len(xyz) == 1
    assert xyz[0]["seller"] == NO_OFFERS

    visits = runner.search_log.read_rows()
    assert [v["term"] for v in visits] == ["ABC123", "XYZ999"]
    assert visits[0]["page_title"] == "ABC123 | eBay"


@pytest.mark.asyncio
async def test_navigation_failure_yields_error_sentinel(tmp_path, make_page, make_session):
    profile = get_source("ebay")
    page = make_page({profile.build_search_url("ABC123"): EBAY_ABC})
    original_navigate = page.navigate

    async def navigate(url, wait_until="domcontentloaded"):
        if "BAD" in url:
            raise TimeoutError("navigation timed out")
        await original_navigate(url, wait_until)

    page.navigate = navigate
    session = make_session(page)
    runner = SearchRunner(
        profile,
        _options(tmp_path, ["BAD1", "ABC123"]),
        session_factory=lambda profile_name, headless: session,
    )

    summary = await runner.run()

    rows = runner.offers.read_rows()
    assert rows[0]["term"] == "BAD1"
    assert rows[0]["seller"] == ERROR
    assert rows[0]["rank"] == "1"
    assert [r["rank"] for r in rows if r["term"] == "ABC123"] == ["1", "2", "3"]
    assert summary.sentinels == 1


@pytest.mark.asyncio
async def test_capture_html_saves_result_page(tmp_path, make_page, make_session):
    profile = get_source("ebay")
    page = make_page({profile.build_search_url("ABC123"): EBAY_ABC})
    runner = SearchRunner(
        profile,
        SearchOptions(
            terms=["ABC123"],
            output_dir=str(tmp_path),
            login_wait_ms=0,
            delay_ms=0,
            keep_open_ms=0,
            capture_html=True,
            capture_screenshot=False,
        ),
        session_factory=lambda profile_name, headless: make_session(page),
    )

    await runner.run()

    assert "ABC123 router" in (tmp_path / "result-ABC123.html").read_text(encoding="utf-8")


def test_options_fall_back_to_settings():
    options = SearchOptions()
    assert options.offers_limit > 0
    assert options.output_dir
    assert options.headless in (True, False)


STALE_CAPTURE = """
<html><body><ul class="srp-results">
<li class="s-item"><div class="s-item__title">XYZ999 old listing</div>
  <span class="s-item__price">$999.00</span><a class="s-item__link" href="https://www.ebay.com/itm/9">x</a></li>
</ul></body></html>
"""


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "capture_html, offline_parse_fallback",
    [(False, True), (True, False)],
)
async def test_leftover_capture_is_not_reparsed(
    tmp_path, make_page, make_session, capture_html, offline_parse_fallback
):
    (tmp_path / "result-XYZ999.html").write_text(STALE_CAPTURE, encoding="utf-8")
    profile = get_source("ebay")
    page = make_page({})
    options = _options(tmp_path, ["XYZ999"])
    options.capture_html = capture_html
    options.offline_parse_fallback = offline_parse_fallback
    runner = SearchRunner(profile, options, session_factory=lambda profile_name, headless: make_session(page))

    await runner.run()

    rows = runner.offers.read_rows()
    assert [(r["seller"], r["price"]) for r in rows] == [(NO_OFFERS, "")]


def test_cached_tier_enabled_only_with_capture(tmp_path):
    profile = get_source("ebay")
    on = SearchRunner(profile, SearchOptions(
        terms=["A"], output_dir=str(tmp_path), capture_html=True, offline_parse_fallback=True
    ))
    off = SearchRunner(profile, SearchOptions(
        terms=["A"], output_dir=str(tmp_path), capture_html=False, offline_parse_fallback=True
    ))

    assert on.engine.capture_dir == tmp_path
    assert off.engine.capture_dir is None


@pytest.mark.asyncio
async def test_failed_screenshot_does_not_discard_offers(tmp_path, make_page, make_session, caplog):
    profile = get_source("ebay")
    page = make_page({profile.build_search_url("ABC123"): EBAY_ABC})
    options = _options(tmp_path, ["ABC123"])
    options.capture_screenshot = True
    runner = SearchRunner(profile, options, session_factory=lambda profile_name, headless: make_session(page))

    with caplog.at_level(logging.WARNING):
        summary = await runner.run()

    assert summary.offers == 3
    assert summary.sentinels == 0
    assert "capture failed for ABC123" in caplog.text
    assert [v["term"] for v in runner.search_log.read_rows()] == ["ABC123"]
