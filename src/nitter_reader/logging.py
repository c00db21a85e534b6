"""Logging setup helpers for nitter-reader."""

from __future__ import annotations

import logging

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger("nitter_reader").setLevel(level)
    # Per-request transport lines drown out scrape events outside debug runs.
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)
