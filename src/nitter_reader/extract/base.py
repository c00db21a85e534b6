"""Extractor interfaces."""

from __future__ import annotations

from typing import Protocol

from nitter_reader.models import PageData


class PageExtractor(Protocol):
    def parse(self, html: str, base_url: str | None = None) -> PageData:
        """Parse one rendered timeline page into profile, stats, items and pagination info."""
