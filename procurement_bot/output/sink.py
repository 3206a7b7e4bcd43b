"""Append-only CSV output with a regenerated JSON snapshot."""

import csv
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Sequence

from procurement_bot.ingest.base import OFFER_COLUMNS, OfferRecord

logger = logging.getLogger(__name__)

INT_COLUMNS = {"rank"}
BOOL_COLUMNS = {"is_call_for_price"}


class OutputSink:
    """
    Append-only delimited file for one run.

    Rows are written one at a time and never rewritten. The header is written
    only when the file is created (or found empty). ``regenerate_snapshot``
    re-reads the whole file and rewrites ``<base>.json``.
    """

    def __init__(self, csv_path: str | Path, columns: Sequence[str] = OFFER_COLUMNS):
        self.csv_path = Path(csv_path)
        self.columns = tuple(columns)

    @property
    def snapshot_path(self) -> Path:
        return self.csv_path.with_suffix(".json")

    def _ensure_header(self) -> None:
        if self.csv_path.exists() and self.csv_path.stat().st_size > 0:
            return
        self.csv_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.csv_path, "w", newline="", encoding="utf-8") as f:
            csv.writer(f, lineterminator="\n").writerow(self.columns)

    def append(self, values: Sequence[Any]) -> None:
        """Append one row; values must follow ``columns`` order."""
        if len(values) != len(self.columns):
            raise ValueError(f"Expected {len(self.columns)} values, got {len(values)}")
        self._ensure_header()
        row = ["" if v is None else v for v in values]
        with open(self.csv_path, "a", newline="", encoding="utf-8") as f:
            csv.writer(f, lineterminator="\n").writerow(row)

    def append_record(self, record: OfferRecord) -> None:
        self.append(record.as_row())

    def append_records(self, records: Iterable[OfferRecord]) -> int:
        count = 0
        for record in records:
            self.append_record(record)
            count += 1
        return count

    def read_rows(self) -> list[dict[str, str]]:
        """Parse the whole file back into dicts keyed by the header."""
        if not self.csv_path.exists():
            return []
        with open(self.csv_path, newline="", encoding="utf-8") as f:
            return [row for row in csv.DictReader(f) if any(v for v in row.values() if v)]

    def regenerate_snapshot(self) -> Path | None:
        """
        Rewrite the JSON snapshot from the full CSV.

        Running it twice over an unchanged CSV produces byte-identical files.

        Returns:
            Snapshot path, or None when there is no CSV yet
        """
        if not self.csv_path.exists():
            return None

        items = [self._typed(row) for row in self.read_rows()]
        text = json.dumps(items, indent=2, ensure_ascii=False) + "\n"
        self.snapshot_path.write_text(text, encoding="utf-8")
        logger.info(f"JSON output generated: {self.snapshot_path} ({len(items)} rows)")
        return self.snapshot_path

    @staticmethod
    def _typed(row: dict[str, str]) -> dict[str, Any]:
        item: dict[str, Any] = {}
        for key, value in row.items():
            if key is None:
                continue
            value = value or ""
            if key in INT_COLUMNS:
                try:
                    item[key] = int(value)
                except ValueError:
                    item[key] = value
            elif key in BOOL_COLUMNS:
                item[key] = value.strip().lower() in ("1", "true")
            else:
                item[key] = value
        return item
