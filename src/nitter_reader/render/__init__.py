"""JSON rendering of scraped documents."""

from __future__ import annotations

from nitter_reader.render.jsonout import document_to_dict, item_to_dict, render_json

__all__ = [
    "document_to_dict",
    "item_to_dict",
    "render_json",
]
