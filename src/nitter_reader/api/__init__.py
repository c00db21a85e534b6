"""HTTP service surface."""

from .app import create_app, resolve_service_config
from .settings import Settings, apply_settings_overrides

__all__ = [
    "Settings",
    "apply_settings_overrides",
    "create_app",
    "resolve_service_config",
]
