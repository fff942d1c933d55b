"""HWnow configuration system using Pydantic Settings.

Settings come from the environment / ``.env`` file and, optionally, from a
top-level JSON configuration document (``config.json``) whose sections
(``server``, ``database``, ``monitoring``, ``ui``) are mapped onto the flat
settings below. The document is read once at process start.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_FILE = "config.json"

# config.json section/key -> settings field
_DOCUMENT_KEYS: dict[str, dict[str, str]] = {
    "server": {
        "host": "host",
        "port": "port",
    },
    "monitoring": {
        "interval_seconds": "monitoring_interval_seconds",
        "gpu_info_cache_seconds": "gpu_info_cache_seconds",
        "enable_cpu_monitoring": "enable_cpu_monitoring",
        "enable_memory_monitoring": "enable_memory_monitoring",
        "enable_disk_monitoring": "enable_disk_monitoring",
        "enable_network_monitoring": "enable_network_monitoring",
        "enable_gpu_monitoring": "enable_gpu_monitoring",
    },
    "ui": {
        "auto_open_browser": "ui_auto_open_browser",
        "theme": "ui_theme",
    },
}


class HWnowConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "HWnow"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8080
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:8080,http://localhost:8080"

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/monitoring.db"
    db_wal_mode: bool = True
    db_busy_timeout: int = 5000
    db_synchronous: str = "NORMAL"

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Monitoring
    monitoring_interval_seconds: float = 2.0
    monitoring_history_size: int = 300
    enable_cpu_monitoring: bool = True
    enable_memory_monitoring: bool = True
    enable_disk_monitoring: bool = True
    enable_network_monitoring: bool = True
    enable_gpu_monitoring: bool = True
    gpu_info_cache_seconds: float = 5.0

    # Resource log (historical charting); off by default
    resource_log_enabled: bool = False
    resource_log_flush_seconds: float = 1.0
    resource_log_buffer_size: int = 500

    # GPU process control
    gpu_protected_processes: list[str] = []

    # Dashboard persistence
    widget_save_strategy: str = "replace_all"  # replace_all / upsert
    default_user_id: str = "global-user"
    default_page_id: str = "main-page"
    default_page_name: str = "Main Page"

    # Dashboard client
    dashboard_api_url: str = "http://127.0.0.1:8080/api/v1"
    dashboard_save_delay_seconds: float = 1.5
    dashboard_fallback_path: str = "data/dashboard_backup.json"
    dashboard_request_timeout: float = 10.0

    # UI defaults
    ui_auto_open_browser: bool = True
    ui_theme: str = "dark"

    @field_validator("widget_save_strategy")
    @classmethod
    def validate_save_strategy(cls, v: str) -> str:
        allowed = {"replace_all", "upsert"}
        if v not in allowed:
            raise ValueError(f"widget_save_strategy must be one of {allowed}")
        return v

    @field_validator("ui_theme")
    @classmethod
    def validate_theme(cls, v: str) -> str:
        allowed = {"light", "dark", "system"}
        if v not in allowed:
            raise ValueError(f"ui_theme must be one of {allowed}")
        return v

    @field_validator("monitoring_interval_seconds")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("monitoring_interval_seconds must be positive")
        return v

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent.parent

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def document_to_settings(document: dict[str, Any]) -> dict[str, Any]:
    """Flatten a ``config.json`` document into HWnowConfig keyword arguments.

    Unknown sections and keys are ignored. ``database.filename`` becomes an
    aiosqlite ``database_url``; top-level keys matching a settings field are
    passed through unchanged.
    """
    values: dict[str, Any] = {}
    for section, keys in _DOCUMENT_KEYS.items():
        block = document.get(section) or {}
        if not isinstance(block, dict):
            continue
        for key, field_name in keys.items():
            if key in block:
                values[field_name] = block[key]

    database = document.get("database") or {}
    if isinstance(database, dict) and database.get("filename"):
        values["database_url"] = f"sqlite+aiosqlite:///./{database['filename']}"

    for key, value in document.items():
        if key in HWnowConfig.model_fields and key not in values:
            values[key] = value
    return values


def load_config(path: Optional[str | Path] = None) -> HWnowConfig:
    """Load settings, applying the JSON configuration document when present.

    Values in the document take precedence over environment variables.

    Raises:
        ValueError: If the document exists but is not a JSON object.
    """
    config_path = Path(path or os.environ.get("HWNOW_CONFIG_FILE", DEFAULT_CONFIG_FILE))
    if not config_path.is_file():
        return HWnowConfig()

    document = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(document, dict):
        raise ValueError(f"configuration document must be a JSON object: {config_path}")
    return HWnowConfig(**document_to_settings(document))


def get_config() -> HWnowConfig:
    """Factory function to create config instance."""
    return load_config()
