"""Config init/show defaults and validation behavior."""

from __future__ import annotations

from pathlib import Path

import pytest

from nitter_reader.config import (
    config_to_dict,
    default_config,
    default_config_toml,
    init_default_config,
    load_runtime_config,
    load_runtime_config_or_default,
    resolve_config_path,
    with_instances,
)
from nitter_reader.errors import ConfigError


def test_resolve_config_path_uses_explicit_path() -> None:
    path = resolve_config_path("~/tmp/nitter-test.toml")
    assert str(path).endswith("nitter-test.toml")


def test_resolve_config_path_uses_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    env_path = tmp_path / "env-config.toml"
    monkeypatch.setenv("NITTER_READER_CONFIG", str(env_path))
    assert resolve_config_path() == env_path


def test_init_default_config_writes_template(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    written = init_default_config(config_path)
    assert written == config_path
    assert default_config_toml().strip() in config_path.read_text(encoding="utf-8")


def test_init_default_config_requires_force_for_overwrite(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("existing", encoding="utf-8")
    with pytest.raises(ConfigError, match="--force"):
        init_default_config(config_path)

    init_default_config(config_path, force=True)
    assert "[rate_limiter.requests]" in config_path.read_text(encoding="utf-8")


def test_default_template_matches_default_config(tmp_path: Path) -> None:
    config_path = init_default_config(tmp_path / "config.toml")
    assert load_runtime_config(config_path) == default_config()


def test_default_limiters_split_jobs_and_requests() -> None:
    config = default_config()
    assert config.job_limiter.max_retries == 0
    assert config.job_limiter.max_concurrent == 5
    assert config.request_limiter.max_concurrent == 1
    assert config.request_limiter.requests_per_second == 1.5
    assert config.scrape.partial_threshold == 0.2
    assert config.instances.self_heal_probability == 0.15


def test_load_runtime_config_reports_missing_file(tmp_path: Path) -> None:
    missing = tmp_path / "missing.toml"
    with pytest.raises(ConfigError, match="Run `nitter-reader config init"):
        load_runtime_config(missing)


def test_load_or_default_falls_back_only_without_explicit_path(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("NITTER_READER_CONFIG", str(tmp_path / "absent.toml"))
    assert load_runtime_config_or_default() == default_config()
    with pytest.raises(ConfigError, match="not found"):
        load_runtime_config_or_default(tmp_path / "absent.toml")


def test_load_runtime_config_reports_invalid_toml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("[scrape\nposts_limit = 5", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid TOML"):
        load_runtime_config(config_path)


@pytest.mark.parametrize(
    ("body", "key"),
    [
        ("[scrape]\nposts_limit = 0\n", "scrape.posts_limit"),
        ("[scrape]\npartial_threshold = 1.5\n", "scrape.partial_threshold"),
        ("[browser]\nengine = \"netscape\"\n", "browser.engine"),
        ("[browser]\nheadless = \"yes\"\n", "browser.headless"),
        ("[rate_limiter.requests]\nburst_capacity = -1\n", "rate_limiter.requests.burst_capacity"),
        ("[rate_limiter.jobs]\nmax_retries = -1\n", "rate_limiter.jobs.max_retries"),
        ("[instances]\nurls = [\"ftp://nitter.example\"]\n", r"instances.urls\[0\]"),
        ("[instances]\nurls = []\n", "instances.urls"),
        ("[instances]\nself_heal_probability = 2\n", "instances.self_heal_probability"),
        ("server = 5\n", r"\[server\]"),
    ],
)
def test_load_runtime_config_reports_invalid_values(tmp_path: Path, body: str, key: str) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError, match=key):
        load_runtime_config(config_path)


def test_posts_limit_cannot_exceed_max(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("[scrape]\nposts_limit = 50\nmax_posts_limit = 10\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="must not exceed"):
        load_runtime_config(config_path)


def test_partial_tables_keep_other_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """[rate_limiter.requests]
requests_per_second = 0.5

[instances]
urls = ["https://one.example/", "https://one.example", "https://two.example"]
""",
        encoding="utf-8",
    )
    config = load_runtime_config(config_path)

    assert config.request_limiter.requests_per_second == 0.5
    assert config.request_limiter.max_retries == 3
    assert config.job_limiter == default_config().job_limiter
    assert config.instances.urls == ("https://one.example", "https://two.example")


def test_with_instances_normalizes_and_validates() -> None:
    config = with_instances(default_config(), ("https://x.example/",))
    assert config.instances.urls == ("https://x.example",)
    with pytest.raises(ConfigError, match="http:// or https://"):
        with_instances(default_config(), ("x.example",))


def test_config_to_dict_is_json_shaped() -> None:
    payload = config_to_dict(default_config())
    assert payload["server"]["port"] == 1337
    assert payload["request_limiter"]["max_concurrent"] == 1
    assert list(payload["instances"]["urls"]) == list(default_config().instances.urls)
