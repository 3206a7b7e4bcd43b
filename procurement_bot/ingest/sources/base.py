"""Source profile data types.

A source is described entirely by data: where to search, which containers
hold offers, and an ordered list of rules per field. The extraction engine
owns all control flow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union
from urllib.parse import quote


@dataclass(frozen=True)
class FieldRule:
    """
    Read a field from an element inside the container.

    ``selector=None`` reads the container itself. ``fraction_selector`` turns
    the rule into a "whole + fraction" composite (Amazon style prices).
    ``pattern`` keeps the first regex match (group 0) of the text.
    """

    selector: Optional[str] = None
    attribute: Optional[str] = None
    pattern: Optional[str] = None
    fraction_selector: Optional[str] = None
    fraction_default: str = "00"
    collapse_whitespace: bool = True


@dataclass(frozen=True)
class CellRule:
    """
    Scan the container's cells and keep the first one that qualifies.

    A cell qualifies when its class contains ``class_contains``, its
    ``align`` attribute equals ``align``, its text fully matches ``pattern``,
    and its upper-cased text is in ``vocabulary``; unset constraints are
    skipped. With ``follows`` set, only the cell right after the first cell
    whose upper-cased text is in ``follows`` is considered.
    """

    cell_selector: str = "td"
    class_contains: Optional[str] = None
    align: Optional[str] = None
    pattern: Optional[str] = None
    vocabulary: tuple[str, ...] = ()
    follows: tuple[str, ...] = ()
    upper: bool = False


Rule = Union[FieldRule, CellRule]


@dataclass(frozen=True)
class DetailPageSpec:
    """Follow the first result link and read a single price from that page."""

    link_selector: str
    price_selectors: tuple[str, ...]
    link_attribute: str = "href"
    settle_ms: int = 1200
    description: str = "Fallback product page price"


@dataclass(frozen=True)
class LooseRowSpec:
    """Take the first generic row on the current page that shows a price."""

    row_selector: str = "tr"
    price_pattern: str = r"\d{1,6}(?:\.\d{2})?"
    seller_split_pattern: str = r"\s{2,}|\t"


@dataclass(frozen=True)
class SourceProfile:
    """Everything the engine and runner need to know about one marketplace."""

    name: str
    profile_name: str
    start_url: str
    search_url: str  # format string with {term}
    container_selectors: tuple[str, ...]
    fields: dict[str, tuple[Rule, ...]]
    container_requires: Optional[str] = None
    constants: dict[str, str] = field(default_factory=dict)
    defaults: dict[str, str] = field(default_factory=dict)
    skip_title_patterns: tuple[str, ...] = ()
    description_fields: tuple[str, ...] = ("title",)
    require_field: Optional[str] = None
    detail_page: Optional[DetailPageSpec] = None
    loose_row: Optional[LooseRowSpec] = None
    noise_seller_patterns: tuple[str, ...] = ()
    strict_price: bool = False
    result_wait_selectors: tuple[str, ...] = ()
    price_wait_selectors: tuple[str, ...] = ()
    settle_ms: int = 0
    scroll_steps: int = 0
    no_results_selectors: tuple[str, ...] = ()
    alternate_search_url: Optional[str] = None
    alternate_settle_ms: int = 2000

    def build_search_url(self, term: str, **params) -> str:
        return self.search_url.format(term=quote(term, safe=""), **params)

    def build_alternate_url(self, term: str, **params) -> Optional[str]:
        if not self.alternate_search_url:
            return None
        return self.alternate_search_url.format(term=quote(term, safe=""), **params)
