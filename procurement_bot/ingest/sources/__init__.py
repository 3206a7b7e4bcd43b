"""Marketplace source registry."""

from __future__ import annotations

from procurement_bot.ingest.sources.base import (
    CellRule,
    DetailPageSpec,
    FieldRule,
    LooseRowSpec,
    SourceProfile,
)
from procurement_bot.ingest.sources.amazon import AMAZON
from procurement_bot.ingest.sources.brokerbin import BROKERBIN
from procurement_bot.ingest.sources.ebay import EBAY


_SOURCES = {
    "amazon": AMAZON,
    "ebay": EBAY,
    "brokerbin": BROKERBIN,
}


def get_source(name: str) -> SourceProfile:
    """Return the profile for a source name."""
    try:
        return _SOURCES[(name or "").lower()]
    except KeyError:
        raise ValueError(f"Unknown source: {name!r} (expected one of {sorted(_SOURCES)})") from None


def source_names() -> list[str]:
    return sorted(_SOURCES)


__all__ = [
    "CellRule",
    "DetailPageSpec",
    "FieldRule",
    "LooseRowSpec",
    "SourceProfile",
    "get_source",
    "source_names",
]
