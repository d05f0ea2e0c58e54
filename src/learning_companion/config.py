# src/learning_companion/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app, built once at process start and passed explicitly.
- No secrets required at import time, and no secret ever compiled into the code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ENV_PREFIX = "LC"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except ImportError:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Front ends ----
    console_enabled: bool
    web_enabled: bool
    web_host: str
    web_port: int

    # ---- Remote collection ----
    remote_backend: str  # "sqlite" | "rest"
    supabase_url: str
    supabase_key: Optional[str]
    http_timeout_seconds: float
    poll_interval_seconds: float

    # ---- Sync / retry queue ----
    retry_interval_seconds: float
    retry_queue_max: int

    # ---- Sharing ----
    share_secret: Optional[str]
    share_ttl_days: int
    public_base_url: str

    # ---- Local identity ----
    user_id: str
    access_token: Optional[str]

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    cache_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "learning-companion").strip() or "learning-companion"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        remote_backend = _env(_k("REMOTE_BACKEND"), "sqlite").strip().lower() or "sqlite"
        supabase_url = _env(_k("SUPABASE_URL"), "").strip().rstrip("/")
        supabase_key = _env(_k("SUPABASE_KEY"), "").strip() or None

        share_secret = _env(_k("SHARE_SECRET"), "").strip() or None
        public_base_url = _env(_k("PUBLIC_BASE_URL"), "http://localhost:3000").strip().rstrip("/")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/learning_companion"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        cache_path = _env_path(_k("CACHE_PATH"), data_dir / "cache.json")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
            web_enabled=_env_bool(_k("WEB_ENABLED"), False),
            web_host=_env(_k("WEB_HOST"), "127.0.0.1"),
            web_port=_env_int(_k("WEB_PORT"), 8000),
            remote_backend=remote_backend,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            http_timeout_seconds=_env_float(_k("HTTP_TIMEOUT_SECONDS"), 10.0),
            poll_interval_seconds=_env_float(_k("POLL_INTERVAL_SECONDS"), 5.0),
            retry_interval_seconds=_env_float(_k("RETRY_INTERVAL_SECONDS"), 15.0),
            retry_queue_max=max(1, _env_int(_k("RETRY_QUEUE_MAX"), 500)),
            share_secret=share_secret,
            share_ttl_days=max(1, _env_int(_k("SHARE_TTL_DAYS"), 30)),
            public_base_url=public_base_url,
            user_id=_env(_k("USER_ID"), "local-user").strip() or "local-user",
            access_token=_env(_k("ACCESS_TOKEN"), "").strip() or None,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            cache_path=cache_path,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide Settings, reading the environment on first call."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
