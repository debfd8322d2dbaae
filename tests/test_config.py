from pathlib import Path

import pytest

from judolwatch.config import Config, load_config, validate_config
from judolwatch.constants import DEFAULT_TLD_WHITELIST

ENV_VARS = [
    "JUDOLWATCH_API_URL",
    "JUDOLWATCH_API_TOKEN",
    "JUDOLWATCH_TIMEOUT",
    "JUDOLWATCH_STALE_SECONDS",
    "JUDOLWATCH_EVICT_SECONDS",
    "JUDOLWATCH_DATA_DIR",
    "JUDOLWATCH_CONFIG_DIR",
    "JUDOLWATCH_HEALTH_CONCURRENCY",
    "JUDOLWATCH_HEALTH_ENABLED",
    "JUDOLWATCH_DEFAULT_ENGINE",
    "JUDOLWATCH_TLD_WHITELIST",
    "JUDOLWATCH_LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("judolwatch.config.load_dotenv", lambda *a, **k: False)
    monkeypatch.setenv("JUDOLWATCH_CONFIG_DIR", str(tmp_path))
    return tmp_path


def test_defaults(clean_env):
    config = load_config()

    assert config.api_base_url == "http://localhost:8000/api"
    assert config.request_timeout == 30
    assert config.cache_stale_seconds == 300
    assert config.cache_evict_seconds == 1800
    assert config.health_enabled is False
    assert config.log_level == "INFO"
    assert config.tld_whitelist == list(DEFAULT_TLD_WHITELIST)
    assert [s.id for s in config.services][0] == "crawler"
    assert config.preferences_path == Path("./data") / "preferences.json"
    assert validate_config(config) == []


def test_env_overrides(clean_env, monkeypatch):
    monkeypatch.setenv("JUDOLWATCH_API_URL", "https://judol.example/api")
    monkeypatch.setenv("JUDOLWATCH_STALE_SECONDS", "60")
    monkeypatch.setenv("JUDOLWATCH_HEALTH_ENABLED", "true")
    monkeypatch.setenv("JUDOLWATCH_TLD_WHITELIST", "ac.id; go.id")
    monkeypatch.setenv("JUDOLWATCH_LOG_LEVEL", "debug")

    config = load_config()

    assert config.api_base_url == "https://judol.example/api"
    assert config.service_root_url == "https://judol.example"
    assert config.cache_stale_seconds == 60
    assert config.health_enabled is True
    assert config.tld_whitelist == [".ac.id", ".go.id"]
    assert config.log_level == "DEBUG"


def test_yaml_overrides_services_and_tlds(clean_env):
    (clean_env / "judolwatch.yaml").write_text(
        "services:\n"
        "  - id: crawler\n"
        "    name: Crawler\n"
        "    endpoint: api/crawler/health\n"
        "  - name: missing id\n"
        "tld_whitelist:\n"
        "  - sch.id\n"
        "  - bad/entry\n"
    )

    config = load_config()

    assert [(s.id, s.endpoint) for s in config.services] == [("crawler", "/api/crawler/health")]
    assert config.tld_whitelist == [".sch.id"]


def test_broken_yaml_is_ignored(clean_env):
    (clean_env / "judolwatch.yaml").write_text("services: [unclosed")
    config = load_config()
    assert len(config.services) == 4


def test_validate_config_reports_problems():
    config = Config(cache_stale_seconds=1800, cache_evict_seconds=1800, default_engine="yahoo")
    errors = validate_config(config)
    assert any("STALE_SECONDS" in e for e in errors)
    assert any("DEFAULT_ENGINE" in e for e in errors)


def test_log_level_defaults_to_info():
    assert Config().log_level == "INFO"
