"""Extraction contracts."""

from .base import PageExtractor
from .nitter import (
    NitterPageExtractor,
    absolute_url,
    canonical_tweet_url,
    extract_cursor,
    extract_number,
)
from .selectors import (
    DEFAULT_SELECTOR_PACK,
    SelectorPack,
    SelectorPackResolution,
    default_selector_pack,
    resolve_selector_pack,
)

__all__ = [
    "DEFAULT_SELECTOR_PACK",
    "NitterPageExtractor",
    "PageExtractor",
    "SelectorPack",
    "SelectorPackResolution",
    "absolute_url",
    "canonical_tweet_url",
    "default_selector_pack",
    "extract_cursor",
    "extract_number",
    "resolve_selector_pack",
]
