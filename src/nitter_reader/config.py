"""Shared configuration contracts and validation helpers for nitter-reader."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
import os
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from .errors import ConfigError

VALID_BROWSER_ENGINES = {"chromium", "firefox", "webkit"}
DEFAULT_CONFIG_FILENAME = "config.toml"
CONFIG_ENV_VAR = "NITTER_READER_CONFIG"

DEFAULT_INSTANCES = (
    "https://nitter.tiekoetter.com",
    "https://nitter.privacyredirect.com",
)
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36"
)

DEFAULT_CONFIG_TEMPLATE = """[app]
debug = false
out_dir = "out"

[server]
host = "0.0.0.0"
port = 1337

[scrape]
posts_limit = 100
max_posts_limit = 1000
delay_between_pages_ms = 6000
min_delay_between_pages_ms = 1000
max_retries = 3
max_instance_retries = 3
timeout_seconds = 240
partial_threshold = 0.2
low_yield_min_target = 50

[browser]
engine = "chromium"
headless = true
pool_size = 5
task_timeout_seconds = 600
navigation_timeout_ms = 30000
action_timeout_ms = 15000
block_resources = true
locale = "en-US"

# Job-level limiter: how many scrape jobs run at once.
[rate_limiter.jobs]
requests_per_second = 2.0
burst_capacity = 15
max_concurrent = 5
max_retries = 0
retry_delay_ms = 2000
timeout_seconds = 300

# Request-level limiter: how fast one job's page loads may fire.
[rate_limiter.requests]
requests_per_second = 1.5
burst_capacity = 15
max_concurrent = 1
max_retries = 3
retry_delay_ms = 2000
timeout_seconds = 120

[instances]
urls = [
  "https://nitter.tiekoetter.com",
  "https://nitter.privacyredirect.com",
]
health_check_interval_seconds = 300
probe_timeout_seconds = 5
probe_handle = "elonmusk"
thorough_probe = false
self_heal_probability = 0.15
max_consecutive_failures = 3
rate_limit_cooldown_seconds = 90
rate_limit_jitter_seconds = 20
"""


@dataclass(frozen=True)
class AppConfig:
    debug: bool = False
    out_dir: str = "out"


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 1337


@dataclass(frozen=True)
class ScrapeConfig:
    posts_limit: int = 100
    max_posts_limit: int = 1000
    delay_between_pages_ms: int = 6000
    min_delay_between_pages_ms: int = 1000
    max_retries: int = 3
    max_instance_retries: int = 3
    timeout_seconds: float = 240.0
    partial_threshold: float = 0.2
    low_yield_min_target: int = 50


@dataclass(frozen=True)
class BrowserConfig:
    engine: str = "chromium"
    headless: bool = True
    pool_size: int = 5
    task_timeout_seconds: float = 600.0
    navigation_timeout_ms: int = 30_000
    action_timeout_ms: int = 15_000
    block_resources: bool = True
    locale: str = "en-US"
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1280
    viewport_height: int = 720


@dataclass(frozen=True)
class LimiterConfig:
    requests_per_second: float = 2.0
    burst_capacity: int = 15
    max_concurrent: int = 5
    max_retries: int = 3
    retry_delay_ms: int = 2000
    timeout_seconds: float = 120.0
    rate_limit_cooldown_seconds: float = 60.0
    rate_limit_jitter_seconds: float = 10.0


def _default_job_limiter() -> LimiterConfig:
    return LimiterConfig(
        requests_per_second=2.0,
        burst_capacity=15,
        max_concurrent=5,
        max_retries=0,
        retry_delay_ms=2000,
        timeout_seconds=300.0,
    )


def _default_request_limiter() -> LimiterConfig:
    return LimiterConfig(
        requests_per_second=1.5,
        burst_capacity=15,
        max_concurrent=1,
        max_retries=3,
        retry_delay_ms=2000,
        timeout_seconds=120.0,
    )


@dataclass(frozen=True)
class InstancesConfig:
    urls: tuple[str, ...] = DEFAULT_INSTANCES
    health_check_interval_seconds: float = 300.0
    probe_timeout_seconds: float = 5.0
    probe_handle: str = "elonmusk"
    thorough_probe: bool = False
    self_heal_probability: float = 0.15
    max_consecutive_failures: int = 3
    rate_limit_cooldown_seconds: float = 90.0
    rate_limit_jitter_seconds: float = 20.0


@dataclass(frozen=True)
class RuntimeConfig:
    app: AppConfig = field(default_factory=AppConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    scrape: ScrapeConfig = field(default_factory=ScrapeConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    job_limiter: LimiterConfig = field(default_factory=_default_job_limiter)
    request_limiter: LimiterConfig = field(default_factory=_default_request_limiter)
    instances: InstancesConfig = field(default_factory=InstancesConfig)


def default_config() -> RuntimeConfig:
    return RuntimeConfig()


def default_config_toml() -> str:
    return DEFAULT_CONFIG_TEMPLATE


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    if config_path:
        return Path(config_path).expanduser()

    env_value = os.getenv(CONFIG_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser()

    config_dir = Path(user_config_dir("nitter-reader", appauthor=False))
    return config_dir / DEFAULT_CONFIG_FILENAME


def init_default_config(config_path: str | Path | None = None, force: bool = False) -> Path:
    path = resolve_config_path(config_path)
    if path.exists() and path.is_dir():
        raise ConfigError(
            f"Config path '{path}' is a directory; expected a TOML file path (for example '{path / DEFAULT_CONFIG_FILENAME}')."
        )
    if path.exists() and not force:
        raise ConfigError(
            f"Config file already exists at '{path}'. Re-run with --force to overwrite."
        )

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(default_config_toml(), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"Could not write config file at '{path}': {exc}. "
            "Check path permissions or choose a writable location with `--path`."
        ) from exc
    return path


def load_runtime_config(config_path: str | Path | None = None) -> RuntimeConfig:
    path = resolve_config_path(config_path)
    if not path.exists():
        raise ConfigError(
            f"Config file not found at '{path}'. Run `nitter-reader config init --path \"{path}\"` to generate defaults."
        )
    if path.is_dir():
        raise ConfigError(
            f"Config path '{path}' is a directory; pass a file path ending in '{DEFAULT_CONFIG_FILENAME}'."
        )

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"Could not read config file '{path}': {exc}. "
            "Check file permissions and that the path points to a readable TOML file."
        ) from exc
    raw = _load_toml(text, path)
    return parse_runtime_config(raw)


def load_runtime_config_or_default(config_path: str | Path | None = None) -> RuntimeConfig:
    """Load the resolved config file when it exists, otherwise return defaults."""
    path = resolve_config_path(config_path)
    if config_path is None and not path.exists():
        return default_config()
    return load_runtime_config(path)


def config_to_dict(config: RuntimeConfig) -> dict[str, Any]:
    return asdict(config)


def with_instances(config: RuntimeConfig, urls: tuple[str, ...]) -> RuntimeConfig:
    return replace(
        config,
        instances=replace(config.instances, urls=_normalize_instance_urls(urls, "instances.urls")),
    )


def _load_toml(text: str, path: Path) -> dict[str, Any]:
    try:
        import tomllib  # Python 3.11+
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

    try:
        data = tomllib.loads(text)
    except Exception as exc:
        raise ConfigError(
            f"Config file '{path}' contains invalid TOML: {exc}. "
            "Fix the syntax or regenerate defaults with `nitter-reader config init --force`."
        ) from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must parse to a TOML table.")
    return data


def parse_runtime_config(data: dict[str, Any]) -> RuntimeConfig:
    app_raw = _expect_table(data, "app", default={})
    server_raw = _expect_table(data, "server", default={})
    scrape_raw = _expect_table(data, "scrape", default={})
    browser_raw = _expect_table(data, "browser", default={})
    limiter_raw = _expect_table(data, "rate_limiter", default={})
    instances_raw = _expect_table(data, "instances", default={})

    app_config = AppConfig(
        debug=_expect_bool(app_raw, "app.debug", default=False),
        out_dir=_expect_non_empty_string(app_raw, "app.out_dir", "out"),
    )

    server_config = ServerConfig(
        host=_expect_non_empty_string(server_raw, "server.host", "0.0.0.0"),
        port=_expect_positive_int(server_raw, "server.port", default=1337),
    )

    defaults = ScrapeConfig()
    scrape_config = ScrapeConfig(
        posts_limit=_expect_positive_int(scrape_raw, "scrape.posts_limit", defaults.posts_limit),
        max_posts_limit=_expect_positive_int(
            scrape_raw, "scrape.max_posts_limit", defaults.max_posts_limit
        ),
        delay_between_pages_ms=_expect_non_negative_int(
            scrape_raw, "scrape.delay_between_pages_ms", defaults.delay_between_pages_ms
        ),
        min_delay_between_pages_ms=_expect_non_negative_int(
            scrape_raw, "scrape.min_delay_between_pages_ms", defaults.min_delay_between_pages_ms
        ),
        max_retries=_expect_positive_int(scrape_raw, "scrape.max_retries", defaults.max_retries),
        max_instance_retries=_expect_positive_int(
            scrape_raw, "scrape.max_instance_retries", defaults.max_instance_retries
        ),
        timeout_seconds=_expect_positive_number(
            scrape_raw, "scrape.timeout_seconds", defaults.timeout_seconds
        ),
        partial_threshold=_expect_ratio(
            scrape_raw, "scrape.partial_threshold", defaults.partial_threshold
        ),
        low_yield_min_target=_expect_positive_int(
            scrape_raw, "scrape.low_yield_min_target", defaults.low_yield_min_target
        ),
    )
    if scrape_config.posts_limit > scrape_config.max_posts_limit:
        raise ConfigError("Invalid value for 'scrape.posts_limit': must not exceed scrape.max_posts_limit.")

    browser_defaults = BrowserConfig()
    browser_config = BrowserConfig(
        engine=_expect_choice(
            browser_raw,
            "browser.engine",
            default="chromium",
            valid_values=VALID_BROWSER_ENGINES,
        ),
        headless=_expect_bool(browser_raw, "browser.headless", default=True),
        pool_size=_expect_positive_int(browser_raw, "browser.pool_size", browser_defaults.pool_size),
        task_timeout_seconds=_expect_positive_number(
            browser_raw, "browser.task_timeout_seconds", browser_defaults.task_timeout_seconds
        ),
        navigation_timeout_ms=_expect_positive_int(
            browser_raw, "browser.navigation_timeout_ms", default=30_000
        ),
        action_timeout_ms=_expect_positive_int(browser_raw, "browser.action_timeout_ms", default=15_000),
        block_resources=_expect_bool(browser_raw, "browser.block_resources", default=True),
        locale=_expect_non_empty_string(browser_raw, "browser.locale", "en-US"),
        user_agent=_expect_non_empty_string(browser_raw, "browser.user_agent", DEFAULT_USER_AGENT),
        viewport_width=_expect_positive_int(browser_raw, "browser.viewport_width", default=1280),
        viewport_height=_expect_positive_int(browser_raw, "browser.viewport_height", default=720),
    )

    job_limiter = _parse_limiter(
        _expect_table(limiter_raw, "jobs", default={}), "rate_limiter.jobs", _default_job_limiter()
    )
    request_limiter = _parse_limiter(
        _expect_table(limiter_raw, "requests", default={}),
        "rate_limiter.requests",
        _default_request_limiter(),
    )

    instance_defaults = InstancesConfig()
    raw_urls = instances_raw.get("urls", list(instance_defaults.urls))
    if not isinstance(raw_urls, list):
        raise ConfigError("Invalid value for 'instances.urls': expected an array of URLs.")
    instances_config = InstancesConfig(
        urls=_normalize_instance_urls(raw_urls, "instances.urls"),
        health_check_interval_seconds=_expect_positive_number(
            instances_raw,
            "instances.health_check_interval_seconds",
            instance_defaults.health_check_interval_seconds,
        ),
        probe_timeout_seconds=_expect_positive_number(
            instances_raw, "instances.probe_timeout_seconds", instance_defaults.probe_timeout_seconds
        ),
        probe_handle=_expect_non_empty_string(
            instances_raw, "instances.probe_handle", instance_defaults.probe_handle
        ),
        thorough_probe=_expect_bool(instances_raw, "instances.thorough_probe", default=False),
        self_heal_probability=_expect_ratio(
            instances_raw, "instances.self_heal_probability", instance_defaults.self_heal_probability
        ),
        max_consecutive_failures=_expect_positive_int(
            instances_raw,
            "instances.max_consecutive_failures",
            instance_defaults.max_consecutive_failures,
        ),
        rate_limit_cooldown_seconds=_expect_positive_number(
            instances_raw,
            "instances.rate_limit_cooldown_seconds",
            instance_defaults.rate_limit_cooldown_seconds,
        ),
        rate_limit_jitter_seconds=_expect_non_negative_number(
            instances_raw,
            "instances.rate_limit_jitter_seconds",
            instance_defaults.rate_limit_jitter_seconds,
        ),
    )

    return RuntimeConfig(
        app=app_config,
        server=server_config,
        scrape=scrape_config,
        browser=browser_config,
        job_limiter=job_limiter,
        request_limiter=request_limiter,
        instances=instances_config,
    )


def _parse_limiter(raw: dict[str, Any], prefix: str, defaults: LimiterConfig) -> LimiterConfig:
    return LimiterConfig(
        requests_per_second=_expect_positive_number(
            raw, f"{prefix}.requests_per_second", defaults.requests_per_second
        ),
        burst_capacity=_expect_positive_int(raw, f"{prefix}.burst_capacity", defaults.burst_capacity),
        max_concurrent=_expect_positive_int(raw, f"{prefix}.max_concurrent", defaults.max_concurrent),
        max_retries=_expect_non_negative_int(raw, f"{prefix}.max_retries", defaults.max_retries),
        retry_delay_ms=_expect_non_negative_int(raw, f"{prefix}.retry_delay_ms", defaults.retry_delay_ms),
        timeout_seconds=_expect_positive_number(raw, f"{prefix}.timeout_seconds", defaults.timeout_seconds),
        rate_limit_cooldown_seconds=_expect_positive_number(
            raw, f"{prefix}.rate_limit_cooldown_seconds", defaults.rate_limit_cooldown_seconds
        ),
        rate_limit_jitter_seconds=_expect_non_negative_number(
            raw, f"{prefix}.rate_limit_jitter_seconds", defaults.rate_limit_jitter_seconds
        ),
    )


def _normalize_instance_urls(raw_urls: Any, key: str) -> tuple[str, ...]:
    urls: list[str] = []
    for index, raw in enumerate(raw_urls):
        if not isinstance(raw, str) or not raw.strip():
            raise ConfigError(f"Invalid value for '{key}[{index}]': expected non-empty URL string.")
        url = raw.strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            raise ConfigError(f"Invalid value for '{key}[{index}]': '{raw}' must start with http:// or https://.")
        if url not in urls:
            urls.append(url)
    if not urls:
        raise ConfigError(f"Invalid value for '{key}': at least one Nitter instance URL is required.")
    return tuple(urls)


def _expect_table(data: dict[str, Any], key: str, default: dict[str, Any]) -> dict[str, Any]:
    value = data.get(key, default)
    if not isinstance(value, dict):
        raise ConfigError(f"Invalid [{key}] table: expected table, got {type(value).__name__}.")
    return value


def _expect_non_empty_string(
    data: dict[str, Any], key: str, default: str | None
) -> str:
    if key.split(".")[-1] in data:
        value = data[key.split(".")[-1]]
    else:
        if default is None:
            raise ConfigError(f"Missing required value '{key}'.")
        value = default

    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Invalid value for '{key}': expected non-empty string.")
    return value


def _expect_positive_int(data: dict[str, Any], key: str, default: int) -> int:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"Invalid value for '{key}': expected positive integer.")
    return value


def _expect_non_negative_int(data: dict[str, Any], key: str, default: int) -> int:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"Invalid value for '{key}': expected integer >= 0.")
    return value


def _expect_positive_number(data: dict[str, Any], key: str, default: float) -> float:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"Invalid value for '{key}': expected positive number.")
    return float(value)


def _expect_non_negative_number(data: dict[str, Any], key: str, default: float) -> float:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"Invalid value for '{key}': expected number >= 0.")
    return float(value)


def _expect_ratio(data: dict[str, Any], key: str, default: float) -> float:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
        raise ConfigError(f"Invalid value for '{key}': expected number between 0 and 1.")
    return float(value)


def _expect_bool(data: dict[str, Any], key: str, default: bool) -> bool:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if not isinstance(value, bool):
        raise ConfigError(f"Invalid value for '{key}': expected boolean true/false.")
    return value


def _expect_choice(
    data: dict[str, Any],
    key: str,
    default: str | None,
    valid_values: set[str],
) -> str:
    field = key.split(".")[-1]
    if field in data:
        value = data[field]
    else:
        if default is None:
            raise ConfigError(f"Missing required value '{key}'.")
        value = default

    if not isinstance(value, str) or value not in valid_values:
        choices = ", ".join(sorted(valid_values))
        raise ConfigError(f"Invalid value for '{key}': expected one of [{choices}].")
    return value
