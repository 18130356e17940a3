"""Server configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: FLOWGUARD_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


@dataclass
class StorageConfig:
    backend: str = "sqlite"
    path: str = "data/flowguard.db"


@dataclass
class TelemetryConfig:
    noise_threshold: int = 2
    safe_threshold: int = 120
    save_interval_ms: int = 3_000
    max_history_docs: int = 5_000
    cooldown_ms: int = 60_000
    timezone: str = "Asia/Kolkata"


@dataclass
class LimitsConfig:
    max_body_bytes: int = 512
    history_page_size: int = 2_000
    export_page_size: int = 5_000


@dataclass
class AlertsConfig:
    enabled: bool = False
    provider: str = "onesignal"  # "onesignal" or "log"
    api_url: str = "https://api.onesignal.com/notifications"
    app_id: str = ""
    api_key: str = ""
    segments: list[str] = field(default_factory=lambda: ["All"])
    timeout_seconds: float = 10.0


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _as_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "FLOWGUARD_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "FLOWGUARD_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "FLOWGUARD_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "FLOWGUARD_SERVER_CORS_ORIGINS": lambda v: setattr(config.server, "cors_origins", _as_list(v)),
        "FLOWGUARD_STORAGE_BACKEND": lambda v: setattr(config.storage, "backend", v),
        "FLOWGUARD_STORAGE_PATH": lambda v: setattr(config.storage, "path", v),
        "FLOWGUARD_TELEMETRY_NOISE_THRESHOLD": lambda v: setattr(config.telemetry, "noise_threshold", int(v)),
        "FLOWGUARD_TELEMETRY_SAFE_THRESHOLD": lambda v: setattr(config.telemetry, "safe_threshold", int(v)),
        "FLOWGUARD_TELEMETRY_SAVE_INTERVAL_MS": lambda v: setattr(config.telemetry, "save_interval_ms", int(v)),
        "FLOWGUARD_TELEMETRY_MAX_HISTORY_DOCS": lambda v: setattr(config.telemetry, "max_history_docs", int(v)),
        "FLOWGUARD_TELEMETRY_COOLDOWN_MS": lambda v: setattr(config.telemetry, "cooldown_ms", int(v)),
        "FLOWGUARD_TELEMETRY_TIMEZONE": lambda v: setattr(config.telemetry, "timezone", v),
        "FLOWGUARD_LIMITS_MAX_BODY_BYTES": lambda v: setattr(config.limits, "max_body_bytes", int(v)),
        "FLOWGUARD_ALERTS_ENABLED": lambda v: setattr(config.alerts, "enabled", _as_bool(v)),
        "FLOWGUARD_ALERTS_PROVIDER": lambda v: setattr(config.alerts, "provider", v),
        "FLOWGUARD_ALERTS_API_URL": lambda v: setattr(config.alerts, "api_url", v),
        "FLOWGUARD_ALERTS_APP_ID": lambda v: setattr(config.alerts, "app_id", v),
        "FLOWGUARD_ALERTS_API_KEY": lambda v: setattr(config.alerts, "api_key", v),
        "FLOWGUARD_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "FLOWGUARD_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    # Try to load YAML
    if config_path is None:
        config_path = Path(os.environ.get("FLOWGUARD_CONFIG", "config.yaml"))
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for section_name in ("server", "storage", "telemetry", "limits", "alerts", "logging"):
            section = getattr(config, section_name)
            for k, v in (raw.get(section_name) or {}).items():
                if hasattr(section, k):
                    setattr(section, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
