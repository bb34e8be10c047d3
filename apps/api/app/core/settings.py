"""
Environment-driven settings.

Defaults (per ARCH):
- DATABASE_URL: sqlite:///./data/app.db
- STORAGE_ROOT: ./data/storage
- GENERATION_PROVIDER: mock
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _parse_bool(v: Optional[str], default: bool) -> bool:
    if v is None:
        return default
    return v.strip().lower() not in ("0", "false", "no", "off", "")


def _parse_float(v: Optional[str], default: float) -> float:
    if v is None or not v.strip():
        return default
    try:
        return float(v)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    app_version: str
    database_url: str
    storage_root: str
    log_level: str
    provider_enabled: bool
    generation_provider: str
    generation_api_url: Optional[str]
    generation_api_key: Optional[str]
    generation_timeout_s: float
    slack_webhook_url: Optional[str]
    public_base_url: str
    db_auto_create: bool


def load_settings() -> Settings:
    return Settings(
        app_version=os.getenv("APP_VERSION", "0.1.0"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./data/app.db"),
        storage_root=os.getenv("STORAGE_ROOT", "./data/storage"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        provider_enabled=_parse_bool(os.getenv("PROVIDER_ENABLED"), default=True),
        generation_provider=os.getenv("GENERATION_PROVIDER", "mock").strip().lower(),
        generation_api_url=os.getenv("GENERATION_API_URL") or None,
        generation_api_key=os.getenv("GENERATION_API_KEY") or None,
        generation_timeout_s=_parse_float(os.getenv("GENERATION_TIMEOUT_S"), 180.0),
        slack_webhook_url=os.getenv("SLACK_WEBHOOK_URL") or None,
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:2000").rstrip("/"),
        db_auto_create=_parse_bool(os.getenv("DB_AUTO_CREATE"), default=True),
    )
