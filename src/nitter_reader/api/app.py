"""
FastAPI application factory.

The lifespan builds the scraping resources on startup and drains active
jobs before tearing them down on shutdown.
"""
from contextlib import asynccontextmanager
import logging
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from nitter_reader import __version__
from nitter_reader.config import RuntimeConfig, load_runtime_config_or_default
from nitter_reader.logging import configure_logging
from nitter_reader.resources import AppResources, create_app_resources, shutdown_app_resources

from .routes import router
from .settings import Settings, apply_settings_overrides

logger = logging.getLogger(__name__)

ResourcesFactory = Callable[[RuntimeConfig], Awaitable[AppResources]]


def resolve_service_config(settings: Optional[Settings] = None) -> RuntimeConfig:
    """TOML config (or defaults) with environment overrides applied."""
    settings = settings if settings is not None else Settings()
    config = load_runtime_config_or_default(settings.nitter_reader_config)
    return apply_settings_overrides(config, settings)


def create_app(
    config: Optional[RuntimeConfig] = None,
    *,
    resources_factory: ResourcesFactory = create_app_resources,
    shutdown_grace_seconds: Optional[float] = None,
) -> FastAPI:
    """Create the service app. ``config`` defaults to file plus environment."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime_config = config if config is not None else resolve_service_config()
        configure_logging(runtime_config.app.debug)
        logger.info(
            "service_starting instances=%s pool_size=%s",
            len(runtime_config.instances.urls),
            runtime_config.browser.pool_size,
        )
        resources = await resources_factory(runtime_config)
        app.state.resources = resources
        logger.info("service_ready")

        yield

        logger.info("service_stopping")
        if shutdown_grace_seconds is None:
            await shutdown_app_resources(resources)
        else:
            await shutdown_app_resources(resources, grace_seconds=shutdown_grace_seconds)

    app = FastAPI(
        title="Nitter Reader API",
        description="Resilient profile timeline scraping over Nitter instances",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        location = ".".join(str(part) for part in errors[0]["loc"]) if errors else "request"
        message = errors[0]["msg"] if errors else "invalid request"
        return JSONResponse(
            content={"error": f"Invalid parameter '{location}': {message}", "metadata": None},
            status_code=400,
        )

    app.include_router(router)
    return app
