"""Tests for the worker command line."""

from procurement_bot.worker.cli import build_parser, main
from procurement_bot.worker.controller import options_to_args


def test_controller_arguments_parse():
    options = {"terms": ["ABC123", "XYZ999"], "headless": False, "max_terms": 5, "skip_header": True}
    args = build_parser().parse_args(["search", "brokerbin", *options_to_args(options)])

    assert args.source == "brokerbin"
    assert args.terms == ["ABC123", "XYZ999"]
    assert args.headless is False
    assert args.max_terms == 5
    assert args.skip_header is True
    assert args.capture_html is None


def test_invoice_download_arguments():
    args = build_parser().parse_args(["invoices", "download", "--only-new", "--card-filter", "--max-pages", "3"])

    assert args.invoice_command == "download"
    assert args.only_new is True
    assert args.card_filter is True
    assert args.max_pages == 3


def test_search_without_terms_exits_2():
    assert main(["search", "ebay"]) == 2


def test_reconcile_without_statement_exits_2(tmp_path):
    assert main(["reconcile", "--root", str(tmp_path / "statements"), "--json-dir", str(tmp_path / "json")]) == 2
