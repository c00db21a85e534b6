"""Browser contracts."""

from .policy import (
    HEAVY_RESOURCE_TYPES,
    detect_blocked_page,
    install_resource_routing,
    observe_responses,
    skip_resources,
)
from .pool import BrowserPool, PoolStatus
from .session import (
    BrowserContext,
    BrowserEngine,
    BrowserEngineOptions,
    BrowserPage,
    PlaywrightEngine,
)

__all__ = [
    "HEAVY_RESOURCE_TYPES",
    "BrowserContext",
    "BrowserEngine",
    "BrowserEngineOptions",
    "BrowserPage",
    "BrowserPool",
    "PlaywrightEngine",
    "PoolStatus",
    "detect_blocked_page",
    "install_resource_routing",
    "observe_responses",
    "skip_resources",
]
