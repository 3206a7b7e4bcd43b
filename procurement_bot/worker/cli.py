"""Worker entry point.

Run by the controller as ``python -m procurement_bot.worker.cli <command>``;
also usable directly from a shell. Logging goes to stdout so the controller
can stream it into the job log. Exit code 0 means success.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

from procurement_bot.config import settings
from procurement_bot.ingest.browser import BrowserSession
from procurement_bot.ingest.runner import SearchOptions, SearchRunner
from procurement_bot.ingest.sources import get_source, source_names
from procurement_bot.ingest.terms import TermSourceError
from procurement_bot.invoices.downloader import DownloadOptions, InvoiceDownloader
from procurement_bot.invoices.extractor import InvoiceExtractor
from procurement_bot.logging_config import setup_logging
from procurement_bot.reconcile.statement import ReconciliationInputError, StatementReconciler

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="procurement-bot", description="Procurement bot worker")
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Search offers for a list of terms")
    search.add_argument("source", choices=source_names())
    search.add_argument("--file", help="CSV/TXT or XLSX file with terms")
    search.add_argument("--term", "--terms", dest="terms", action="append", default=[], help="Term (repeatable)")
    search.add_argument("--column-name")
    search.add_argument("--column-index", type=int, default=0)
    search.add_argument("--sheet-name")
    search.add_argument("--skip-header", action=argparse.BooleanOptionalAction, default=False)
    search.add_argument("--max-terms", type=int, default=0)
    search.add_argument("--offers-limit", type=int)
    search.add_argument("--delay-ms", type=int)
    search.add_argument("--headless", action=argparse.BooleanOptionalAction, default=None)
    search.add_argument("--output-dir")
    search.add_argument("--capture-html", action=argparse.BooleanOptionalAction, default=None)
    search.add_argument("--capture-screenshot", action=argparse.BooleanOptionalAction, default=None)
    search.add_argument("--offline-parse-fallback", action=argparse.BooleanOptionalAction, default=None)
    search.add_argument("--login-wait-ms", type=int)
    search.add_argument("--keep-open-ms", type=int)
    search.add_argument("--region")
    search.add_argument("--username")

    invoices = commands.add_parser("invoices", help="Invoice capture")
    invoice_commands = invoices.add_subparsers(dest="invoice_command", required=True)

    download = invoice_commands.add_parser("download", help="Save order invoices as PDF")
    download.add_argument("--max-pages", type=int, default=settings.invoice_max_pages)
    download.add_argument("--only-new", action=argparse.BooleanOptionalAction, default=False)
    download.add_argument("--card-filter", action=argparse.BooleanOptionalAction, default=False,
                          help="Only invoices paid with the configured card")
    download.add_argument("--card-brand")
    download.add_argument("--card-last4")
    download.add_argument("--output-dir", default=settings.invoice_pdf_dir)
    download.add_argument("--delay-ms", type=int, default=settings.delay_ms)
    download.add_argument("--login-wait-ms", type=int, default=settings.login_wait_ms)
    download.add_argument("--headless", action=argparse.BooleanOptionalAction, default=settings.headless)
    download.add_argument("--profile", default=settings.invoice_profile)

    extract = invoice_commands.add_parser("extract", help="Convert invoice PDFs to JSON records")
    extract.add_argument("--pdf-dir", default=settings.invoice_pdf_dir)
    extract.add_argument("--json-dir", default=settings.invoice_json_dir)
    extract.add_argument("--delay-ms", type=int, default=settings.delay_ms)
    extract.add_argument("--headless", action=argparse.BooleanOptionalAction, default=settings.headless)
    extract.add_argument("--profile", default=settings.invoice_profile)

    reconcile = commands.add_parser("reconcile", help="Match invoices to the newest statement")
    reconcile.add_argument("--root", default=settings.statement_root)
    reconcile.add_argument("--json-dir", default=settings.invoice_json_dir)

    return parser


async def run_search(args: argparse.Namespace) -> int:
    options = SearchOptions(
        file=args.file,
        terms=args.terms,
        column_name=args.column_name,
        column_index=args.column_index,
        sheet_name=args.sheet_name,
        skip_header=args.skip_header,
        max_terms=args.max_terms,
        offers_limit=args.offers_limit,
        delay_ms=args.delay_ms,
        headless=args.headless,
        output_dir=args.output_dir,
        capture_html=args.capture_html,
        capture_screenshot=args.capture_screenshot,
        offline_parse_fallback=args.offline_parse_fallback,
        login_wait_ms=args.login_wait_ms,
        keep_open_ms=args.keep_open_ms,
        region=args.region,
        username=args.username,
    )
    if not options.file and not options.terms:
        logger.error("No terms given (use --file or --term)")
        return 2

    runner = SearchRunner(get_source(args.source), options)
    try:
        summary = await runner.run()
    except TermSourceError as e:
        logger.error(str(e))
        return 2
    logger.info(f"Offers written to {summary.offers_csv}")
    return 0


async def run_invoice_download(args: argparse.Namespace) -> int:
    card_brand, card_last4 = args.card_brand, args.card_last4
    if args.card_filter:
        card_brand = card_brand or settings.card_brand
        card_last4 = card_last4 or settings.card_last4

    downloader = InvoiceDownloader(
        DownloadOptions(
            output_dir=args.output_dir,
            max_pages=args.max_pages,
            only_new=args.only_new,
            card_brand=card_brand,
            card_last4=card_last4,
            delay_ms=args.delay_ms,
            login_wait_ms=args.login_wait_ms,
        )
    )
    logger.info("=== Amazon invoices runner ===")
    async with BrowserSession(args.profile, headless=args.headless) as page:
        saved = await downloader.run(page)
    logger.info(f"=== Process completed: {len(saved)} invoice(s) saved ===")
    return 0


async def run_invoice_extract(args: argparse.Namespace) -> int:
    extractor = InvoiceExtractor(args.pdf_dir, args.json_dir, delay_ms=args.delay_ms)
    async with BrowserSession(args.profile, headless=args.headless) as page:
        summary = await extractor.run(page)
    return 0 if summary.failed == 0 else 1


def run_reconcile(args: argparse.Namespace) -> int:
    reconciler = StatementReconciler(root=args.root, invoice_dir=args.json_dir)
    try:
        report = reconciler.run()
    except ReconciliationInputError as e:
        logger.error(str(e))
        return 2
    print(json.dumps(report.summary(), indent=2))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(json_files=False)

    try:
        if args.command == "search":
            return asyncio.run(run_search(args))
        if args.command == "invoices":
            if args.invoice_command == "download":
                return asyncio.run(run_invoice_download(args))
            return asyncio.run(run_invoice_extract(args))
        return run_reconcile(args)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    except Exception:
        logger.exception("Fatal error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
