"""nitter_reader: resilient Nitter profile scraping."""

from .config import (
    AppConfig,
    BrowserConfig,
    InstancesConfig,
    LimiterConfig,
    RuntimeConfig,
    ScrapeConfig,
    ServerConfig,
    config_to_dict,
    default_config,
    init_default_config,
    load_runtime_config,
    resolve_config_path,
)
from .models import ScrapeOutcome, ScrapeStatus, XDataDocument

__all__ = [
    "AppConfig",
    "BrowserConfig",
    "InstancesConfig",
    "LimiterConfig",
    "RuntimeConfig",
    "ScrapeConfig",
    "ScrapeOutcome",
    "ScrapeStatus",
    "ServerConfig",
    "XDataDocument",
    "config_to_dict",
    "default_config",
    "init_default_config",
    "load_runtime_config",
    "resolve_config_path",
]

__version__ = "0.1.0"
