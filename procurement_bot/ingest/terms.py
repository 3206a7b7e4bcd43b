"""Query term loading.

Terms come from a CSV/text file (one term per line) or a spreadsheet column.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, Optional

from openpyxl import load_workbook

logger = logging.getLogger(__name__)

SPREADSHEET_SUFFIXES = {".xlsx", ".xlsm"}
TEXT_SUFFIXES = {".csv", ".txt"}

# First line of a CSV is treated as a header only when it looks like one.
_HEADER_HINT_RE = re.compile(r"part|pn|sku|item|number")


class TermSourceError(Exception):
    """The term file is missing or cannot be read."""


def normalize_terms(raw_terms: Iterable, max_terms: int = 0) -> list[str]:
    """
    Trim, drop blanks, and remove duplicates while keeping input order.

    Duplicates are detected case-insensitively; the first spelling wins.

    Args:
        raw_terms: Raw values (any type, converted with ``str``)
        max_terms: Keep at most this many terms (0 = all)

    Returns:
        Normalized terms
    """
    seen: set[str] = set()
    terms: list[str] = []
    for raw in raw_terms:
        if raw is None:
            continue
        term = re.sub(r"\s+", " ", str(raw)).strip()
        if not term:
            continue
        key = term.casefold()
        if key in seen:
            continue
        seen.add(key)
        terms.append(term)

    if max_terms and max_terms > 0:
        terms = terms[:max_terms]
    return terms


def read_terms(
    path: str | Path,
    column_name: Optional[str] = None,
    column_index: int = 0,
    sheet_name: Optional[str] = None,
    skip_header: bool = False,
) -> list[str]:
    """
    Read raw term values from a file.

    Args:
        path: CSV/TXT or XLSX file
        column_name: Spreadsheet header to search for (substring, case-insensitive)
        column_index: Spreadsheet column used when no name is given or found
        sheet_name: Worksheet name (default: first sheet)
        skip_header: Skip the first row

    Returns:
        Raw term strings in file order

    Raises:
        TermSourceError: Missing file or unsupported type
    """
    path = Path(path)
    if not path.exists():
        raise TermSourceError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix in TEXT_SUFFIXES:
        return _read_text(path, skip_header)
    if suffix in SPREADSHEET_SUFFIXES:
        return _read_spreadsheet(path, column_name, column_index, sheet_name, skip_header)
    raise TermSourceError(f"Unsupported file type: {suffix or path.name}")


def _read_text(path: Path, skip_header: bool) -> list[str]:
    lines = [line for line in path.read_text(encoding="utf-8-sig").splitlines() if line.strip()]
    if not skip_header or len(lines) <= 1:
        return lines

    first = lines[0].lower()
    if _HEADER_HINT_RE.search(first) and len(first) < 50:
        return lines[1:]
    return lines


def _read_spreadsheet(
    path: Path,
    column_name: Optional[str],
    column_index: int,
    sheet_name: Optional[str],
    skip_header: bool,
) -> list[str]:
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except Exception as e:
        raise TermSourceError(f"Cannot read workbook {path}: {e}") from e

    try:
        if sheet_name:
            if sheet_name not in workbook.sheetnames:
                raise TermSourceError(f"Sheet {sheet_name!r} not found in {path.name}")
            worksheet = workbook[sheet_name]
        else:
            worksheet = workbook.worksheets[0]
        rows = [list(row) for row in worksheet.iter_rows(values_only=True)]
    finally:
        workbook.close()

    index = int(column_index or 0)
    if column_name:
        header = rows[0] if rows else []
        wanted = column_name.lower()
        matches = [i for i, cell in enumerate(header) if cell is not None and wanted in str(cell).lower()]
        if matches:
            index = matches[0]
        else:
            logger.warning(f"Column {column_name!r} not found in {path.name}, using column {index}")

    start = 1 if skip_header else 0
    values = []
    for row in rows[start:]:
        if index >= len(row) or row[index] in (None, ""):
            continue
        value = row[index]
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        values.append(str(value))
    return values
