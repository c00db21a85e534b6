"""Typer CLI for nitter-reader workflows."""

from __future__ import annotations

import asyncio
from dataclasses import replace
import json

import typer

from . import __version__
from .api.settings import Settings, apply_settings_overrides
from .config import (
    RuntimeConfig,
    config_to_dict,
    init_default_config,
    load_runtime_config,
    load_runtime_config_or_default,
    resolve_config_path,
    with_instances,
)
from .errors import ConfigError, NitterReaderError, ScrapeError
from .instances.base import HealthStatus
from .instances.registry import InstanceRegistry
from .logging import configure_logging
from .models import ScrapeOutcome, ScrapeStatus
from .orchestrator import ScrapeRequest
from .render.jsonout import document_to_dict
from .resources import create_app_resources, shutdown_app_resources
from .store.files import write_document

app = typer.Typer(help="Resilient Nitter profile scraper.")

config_app = typer.Typer(help="Config commands.")

app.add_typer(config_app, name="config")

FETCH_SHUTDOWN_GRACE_SECONDS = 5.0


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show nitter-reader version and exit."),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
) -> None:
    ctx.obj = {"debug": debug}
    if version:
        typer.echo(__version__)
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


@app.command("serve")
def serve(
    ctx: typer.Context,
    path: str | None = typer.Option(
        None, "--path", help="Optional config TOML path (defaults to platform config dir)."
    ),
    host: str | None = typer.Option(None, "--host", help="Bind address (defaults to server.host)."),
    port: int | None = typer.Option(None, "--port", min=1, help="Bind port (defaults to server.port)."),
) -> None:
    """Run the HTTP service."""
    import uvicorn

    from .api.app import create_app

    config = _load_config(path, ctx, label="Serve")
    server = config.server
    if host:
        server = replace(server, host=host)
    if port is not None:
        server = replace(server, port=port)
    config = replace(config, server=server)

    typer.echo(f"Serving on http://{server.host}:{server.port}")
    uvicorn.run(create_app(config), host=server.host, port=server.port, log_level="info")


@app.command("fetch")
def fetch(
    ctx: typer.Context,
    username: str = typer.Argument(..., help="Profile handle to scrape, without '@'."),
    path: str | None = typer.Option(
        None, "--path", help="Optional config TOML path (defaults to platform config dir)."
    ),
    limit: int | None = typer.Option(None, "--limit", min=1, help="Number of tweets to collect."),
    delay_ms: int | None = typer.Option(
        None, "--delay-ms", min=0, help="Base delay between timeline pages in ms."
    ),
    max_retries: int | None = typer.Option(
        None, "--max-retries", min=0, max=10, help="Navigation retries per page."
    ),
    instances: list[str] | None = typer.Option(
        None, "--instance", help="Nitter instance URL; repeat to use several."
    ),
    out_dir: str | None = typer.Option(None, "--out-dir", help="Directory for the JSON document."),
    as_json: bool = typer.Option(False, "--json", help="Print the scraped document as JSON."),
) -> None:
    """Scrape one profile through the full instance, pool and limiter stack."""
    config = _load_config(path, ctx, label="Fetch")
    if instances:
        try:
            config = with_instances(config, tuple(instances))
        except ConfigError as exc:
            typer.secho(f"Fetch failed: {exc}", err=True, fg=typer.colors.RED)
            raise typer.Exit(2) from exc

    scrape = config.scrape
    request = ScrapeRequest(
        username=username.lstrip("@"),
        tweets_limit=scrape.posts_limit if limit is None else min(limit, scrape.max_posts_limit),
        delay_between_pages_ms=scrape.delay_between_pages_ms if delay_ms is None else delay_ms,
        max_retries=scrape.max_retries if max_retries is None else max_retries,
    )

    try:
        outcome = asyncio.run(run_fetch(config, request))
        _raise_for_failed(outcome, request.username)
        written = write_document(out_dir or config.app.out_dir, request.username, outcome.document)
    except ScrapeError as exc:
        typer.secho(f"Fetch failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1) from exc
    except NitterReaderError as exc:
        typer.secho(f"Fetch failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    if as_json:
        typer.echo(json.dumps(document_to_dict(outcome.document), indent=2, ensure_ascii=False))
    else:
        typer.echo(
            f"Collected {outcome.collected}/{outcome.requested} tweets for '{request.username}' "
            f"from {outcome.instance} ({outcome.status.value})."
        )
        typer.echo(f"Wrote {written}")
    if outcome.status is ScrapeStatus.PARTIAL:
        typer.secho(
            f"Partial result: {outcome.reason or 'stopped early'}.", err=True, fg=typer.colors.YELLOW
        )


@app.command("instances")
def instances_health(
    ctx: typer.Context,
    path: str | None = typer.Option(
        None, "--path", help="Optional config TOML path (defaults to platform config dir)."
    ),
    as_json: bool = typer.Option(False, "--json", help="Render the health table as JSON."),
) -> None:
    """Probe every configured instance once and report its health."""
    config = _load_config(path, ctx, label="Instances")
    status = asyncio.run(probe_instances(config))

    if as_json:
        typer.echo(json.dumps(status.to_dict(), indent=2, sort_keys=True))
    else:
        typer.echo(
            f"Instances: {status.total} total, {status.healthy} healthy, "
            f"{status.unhealthy} unhealthy, {status.rate_limited} rate limited"
        )
        for entry in status.instances:
            typer.echo(
                f"- {entry['url']} {entry['status']} avg_ms={entry['avg_response_time_ms']}"
            )
    if status.healthy == 0:
        raise typer.Exit(1)


@config_app.command("init")
def config_init(
    path: str | None = typer.Option(
        None, "--path", help="Optional config TOML path (defaults to platform config dir)."
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config file."),
) -> None:
    try:
        written_path = init_default_config(path, force=force)
    except ConfigError as exc:
        typer.secho(f"Config init failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    typer.echo(f"Wrote default config to {written_path}")


@config_app.command("show")
def config_show(
    path: str | None = typer.Option(
        None, "--path", help="Optional config TOML path (defaults to platform config dir)."
    ),
    as_json: bool = typer.Option(False, "--json", help="Render resolved config as JSON."),
) -> None:
    resolved_path = resolve_config_path(path)
    try:
        config = load_runtime_config(path)
    except ConfigError as exc:
        typer.secho(f"Config show failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    payload = {
        "path": str(resolved_path),
        "config": config_to_dict(config),
    }
    if as_json:
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    typer.echo(f"Resolved config path: {payload['path']}")
    typer.echo(f"Instances: {len(config.instances.urls)}")
    typer.echo(f"Browser pool size: {config.browser.pool_size}")
    typer.echo(f"Posts limit: {config.scrape.posts_limit}")


async def run_fetch(config: RuntimeConfig, request: ScrapeRequest) -> ScrapeOutcome:
    resources = await create_app_resources(config, health_checks=False)
    try:
        return await resources.orchestrator.get_x_data(request)
    finally:
        await shutdown_app_resources(resources, grace_seconds=FETCH_SHUTDOWN_GRACE_SECONDS)


async def probe_instances(config: RuntimeConfig) -> HealthStatus:
    registry = InstanceRegistry.from_config(config.instances)
    try:
        return await registry.initialize()
    finally:
        await registry.destroy()


def _raise_for_failed(outcome: ScrapeOutcome, username: str) -> None:
    if outcome.status is ScrapeStatus.FAILED or outcome.document is None:
        raise ScrapeError(
            outcome.error or f"Could not scrape '{username}' ({outcome.reason}).",
            attempts=outcome.attempts,
            instance=outcome.instance,
        )


def _load_config(path: str | None, ctx: typer.Context, *, label: str) -> RuntimeConfig:
    debug = bool((ctx.obj or {}).get("debug"))
    try:
        config = load_runtime_config_or_default(path)
        config = apply_settings_overrides(config, Settings())
    except ConfigError as exc:
        typer.secho(f"{label} failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc
    if debug:
        config = replace(config, app=replace(config.app, debug=True))
    configure_logging(config.app.debug)
    return config
