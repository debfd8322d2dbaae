"""Configuration management for JudolWatch."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .constants import DEFAULT_TLD_WHITELIST, CrawlEngine
from .errors import ValidationError
from .monitoring.checks import DEFAULT_SERVICES, ServiceDefinition
from .utils.domains import normalize_tld, split_tld_input

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "judolwatch.yaml"


@dataclass
class Config:
    """Application configuration loaded from environment."""

    # Backend
    api_base_url: str = "http://localhost:8000/api"
    api_token: str = ""
    request_timeout: int = 30

    # Listing cache
    cache_stale_seconds: int = 300
    cache_evict_seconds: int = 1800

    # Paths
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    config_dir: Path = field(default_factory=lambda: Path("./config"))

    # Health checks
    health_check_concurrency: int = 4
    health_host: str = "0.0.0.0"
    health_port: int = 8081
    health_enabled: bool = False
    services: list[ServiceDefinition] = field(default_factory=lambda: list(DEFAULT_SERVICES))

    # Crawling
    default_engine: str = CrawlEngine.GOOGLE.value
    tld_whitelist: list[str] = field(default_factory=lambda: list(DEFAULT_TLD_WHITELIST))

    log_level: str = "INFO"

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.config_dir = Path(self.config_dir)

    @property
    def preferences_path(self) -> Path:
        return self.data_dir / "preferences.json"

    @property
    def service_root_url(self) -> str:
        """Backend origin; service health endpoints already carry /api."""
        base = self.api_base_url.rstrip("/")
        return base[: -len("/api")] if base.endswith("/api") else base


def _parse_tlds(raw) -> list[str]:
    if isinstance(raw, str):
        parts = split_tld_input(raw)
    elif isinstance(raw, list):
        parts = [str(p) for p in raw]
    else:
        return []
    tlds: list[str] = []
    for part in parts:
        try:
            value = normalize_tld(part)
        except ValidationError as exc:
            logger.warning("Ignoring TLD whitelist entry: %s", exc)
            continue
        if value and value not in tlds:
            tlds.append(value)
    return tlds


def _coerce_services(raw) -> list[ServiceDefinition]:
    services: list[ServiceDefinition] = []
    for entry in raw or []:
        if not isinstance(entry, dict):
            continue
        service_id = str(entry.get("id") or "").strip()
        endpoint = str(entry.get("endpoint") or "").strip()
        if not service_id or not endpoint:
            logger.warning("Ignoring service entry without id/endpoint: %r", entry)
            continue
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        name = str(entry.get("name") or service_id).strip()
        services.append(ServiceDefinition(id=service_id, name=name, endpoint=endpoint))
    return services


def _load_overrides(config_dir: Path) -> dict:
    """Load overrides from config/judolwatch.yaml (optional)."""
    path = Path(config_dir or ".") / CONFIG_FILENAME
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except Exception as exc:
        logger.warning("Failed to parse %s: %s", CONFIG_FILENAME, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a mapping", CONFIG_FILENAME)
        return {}

    overrides: dict = {}
    if "services" in data:
        services = _coerce_services(data.get("services"))
        if services:
            overrides["services"] = services
    if "tld_whitelist" in data:
        overrides["tld_whitelist"] = _parse_tlds(data.get("tld_whitelist"))
    return overrides


def load_config() -> Config:
    """Load configuration from environment variables."""
    load_dotenv()

    config_dir = Path(os.getenv("JUDOLWATCH_CONFIG_DIR", "./config"))
    overrides = _load_overrides(config_dir)

    tld_env = os.getenv("JUDOLWATCH_TLD_WHITELIST", "")
    if tld_env.strip():
        overrides["tld_whitelist"] = _parse_tlds(tld_env)

    return Config(
        api_base_url=os.getenv("JUDOLWATCH_API_URL", "http://localhost:8000/api"),
        api_token=os.getenv("JUDOLWATCH_API_TOKEN", ""),
        request_timeout=int(os.getenv("JUDOLWATCH_TIMEOUT", "30")),
        cache_stale_seconds=int(os.getenv("JUDOLWATCH_STALE_SECONDS", "300")),
        cache_evict_seconds=int(os.getenv("JUDOLWATCH_EVICT_SECONDS", "1800")),
        data_dir=Path(os.getenv("JUDOLWATCH_DATA_DIR", "./data")),
        config_dir=config_dir,
        health_check_concurrency=int(os.getenv("JUDOLWATCH_HEALTH_CONCURRENCY", "4")),
        health_host=os.getenv("JUDOLWATCH_HEALTH_HOST", "0.0.0.0"),
        health_port=int(os.getenv("JUDOLWATCH_HEALTH_PORT", "8081")),
        health_enabled=os.getenv("JUDOLWATCH_HEALTH_ENABLED", "false").lower() == "true",
        default_engine=os.getenv("JUDOLWATCH_DEFAULT_ENGINE", "google").strip().lower() or "google",
        log_level=os.getenv("JUDOLWATCH_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        **overrides,
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []
    if not (config.api_base_url or "").strip():
        errors.append("JUDOLWATCH_API_URL is required")
    if config.request_timeout <= 0:
        errors.append("JUDOLWATCH_TIMEOUT must be positive")
    if config.cache_stale_seconds < 0:
        errors.append("JUDOLWATCH_STALE_SECONDS must not be negative")
    if config.cache_stale_seconds >= config.cache_evict_seconds:
        errors.append("JUDOLWATCH_STALE_SECONDS must be lower than JUDOLWATCH_EVICT_SECONDS")
    if config.health_check_concurrency < 1:
        errors.append("JUDOLWATCH_HEALTH_CONCURRENCY must be at least 1")
    try:
        CrawlEngine.from_string(config.default_engine)
    except ValueError:
        errors.append(f"Unknown JUDOLWATCH_DEFAULT_ENGINE: {config.default_engine}")
    ids = [s.id for s in config.services]
    if len(ids) != len(set(ids)):
        errors.append("Service ids must be unique")

    if not config.api_token:
        logger.info("No JUDOLWATCH_API_TOKEN configured; requests will be unauthenticated")

    return errors
