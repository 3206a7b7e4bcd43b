"""Tests for the append-only output sink."""

import csv
import json

from procurement_bot.ingest.base import NO_OFFERS, OFFER_COLUMNS, SEARCH_LOG_COLUMNS, OfferRecord
from procurement_bot.output.sink import OutputSink


def _offer(term, rank, seller="Acme", price="10.00", **kwargs):
    return OfferRecord(term=term, rank=rank, seller=seller, price=price, raw_price=f"${price}", **kwargs)


def test_header_written_once(tmp_path):
    sink = OutputSink(tmp_path / "offers.csv")
    sink.append_record(_offer("ABC123", 1))
    sink.append_record(_offer("ABC123", 2))

    reopened = OutputSink(tmp_path / "offers.csv")
    reopened.append_record(_offer("ABC123", 3))

    lines = (tmp_path / "offers.csv").read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(OFFER_COLUMNS)
    assert sum(1 for line in lines if line == lines[0]) == 1
    assert len(lines) == 4


def test_header_written_into_empty_file(tmp_path):
    path = tmp_path / "offers.csv"
    path.write_text("", encoding="utf-8")

    OutputSink(path).append_record(_offer("ABC123", 1))

    assert path.read_text(encoding="utf-8").splitlines()[0] == ",".join(OFFER_COLUMNS)


def test_quoting_round_trip(tmp_path):
    sink = OutputSink(tmp_path / "offers.csv")
    description = 'Switch, 24 port "PoE"\nsecond line'
    sink.append_record(_offer("ABC123", 1, description=description))

    raw = (tmp_path / "offers.csv").read_text(encoding="utf-8")
    assert '"Switch, 24 port ""PoE""\nsecond line"' in raw

    rows = sink.read_rows()
    assert rows[0]["description"] == description


def test_terms_with_offers_and_sentinel(tmp_path):
    sink = OutputSink(tmp_path / "offers.csv")
    for rank in (1, 2, 3):
        sink.append_record(_offer("ABC123", rank))
    sink.append_record(OfferRecord.sentinel("XYZ999"))

    with open(tmp_path / "offers.csv", newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    abc = [r for r in rows if r["term"] == "ABC123"]
    xyz = [r for r in rows if r["term"] == "XYZ999"]
    assert [r["rank"] for r in abc] == ["1", "2", "3"]
    assert len(xyz) == 1
    assert xyz[0]["seller"] == NO_OFFERS
    assert xyz[0]["rank"] == "1"
    assert xyz[0]["price"] == ""


def test_snapshot_types_and_idempotence(tmp_path):
    sink = OutputSink(tmp_path / "offers.csv")
    sink.append_record(_offer("ABC123", 1))
    sink.append_record(_offer("ABC123", 2, seller="Beta", price="", is_call_for_price=True))

    path = sink.regenerate_snapshot()
    assert path == tmp_path / "offers.json"
    first = path.read_bytes()

    sink.regenerate_snapshot()
    assert path.read_bytes() == first

    items = json.loads(first)
    assert list(items[0].keys()) == list(OFFER_COLUMNS)
    assert items[0]["rank"] == 1
    assert items[0]["is_call_for_price"] is False
    assert items[1]["is_call_for_price"] is True


def test_snapshot_without_csv(tmp_path):
    sink = OutputSink(tmp_path / "missing.csv")
    assert sink.regenerate_snapshot() is None
    assert not (tmp_path / "missing.json").exists()


def test_search_log_sink(tmp_path):
    sink = OutputSink(tmp_path / "results.csv", SEARCH_LOG_COLUMNS)
    sink.append(["ABC123", "Results for ABC123", "https://example.com/s?k=ABC123", "2024-01-01T00:00:00Z"])

    rows = sink.read_rows()
    assert rows == [
        {
            "term": "ABC123",
            "page_title": "Results for ABC123",
            "page_url": "https://example.com/s?k=ABC123",
            "captured_at": "2024-01-01T00:00:00Z",
        }
    ]
