"""One JSON file per scraped profile under the output directory."""

from __future__ import annotations

from pathlib import Path

from nitter_reader.errors import StoreError
from nitter_reader.models import XDataDocument
from nitter_reader.render.jsonout import render_json


def document_path(out_dir: str | Path, username: str) -> Path:
    return Path(out_dir).expanduser() / f"{username}.json"


def write_document(out_dir: str | Path, username: str, document: XDataDocument) -> Path:
    path = document_path(out_dir, username)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_json(document) + "\n", encoding="utf-8")
    except OSError as exc:
        raise StoreError(
            f"Could not write document for '{username}' to '{path}': {exc}. "
            "Check that the output directory is writable or set OUT_DIR."
        ) from exc
    return path
