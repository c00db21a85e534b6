"""Persistence of scraped documents."""

from .files import document_path, write_document

__all__ = ["document_path", "write_document"]
