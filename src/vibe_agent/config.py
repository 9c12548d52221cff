# src/vibe_agent/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Every component accepts an injected settings object; get_settings() is only the default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

ENV_PREFIX = "VIBE"

DEFAULT_MODELS = [
    "google/gemini-2.0-flash-001",
    "anthropic/claude-3.5-haiku",
    "deepseek/deepseek-chat-v3-0324:free",
]

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


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


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


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

    # ---- Local data paths ----
    data_dir: Path
    db_path: Path

    # ---- Model boundary ----
    provider_id: str
    api_key: Optional[str]
    base_url: str
    llm_models: List[str]
    extra_headers: Dict[str, str]
    llm_connect_timeout_seconds: float
    llm_read_timeout_seconds: float

    # ---- Scheduler ----
    max_concurrency: int
    failed_dependency_policy: str

    # ---- Read-after-write window ----
    visibility_attempts: int
    visibility_delay_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _first_env(_k("APP_NAME"), default="vibe-agent") or "vibe-agent"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/vibe"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "vibe.sqlite3")

        provider_id = _env(_k("PROVIDER_ID"), "openrouter").strip().lower() or "openrouter"
        api_key = _first_env(_k("API_KEY"), "OPENROUTER_API_KEY", default=None)
        base_url = _env(_k("BASE_URL"), "")

        http_referer = _env(_k("HTTP_REFERER"), "https://example.com")
        title = _env(_k("APP_TITLE"), app_name)
        extra_headers = {
            "HTTP-Referer": http_referer,
            "X-Title": title,
        }

        llm_models = _env_list(_k("LLM_MODELS"), DEFAULT_MODELS)

        connect_timeout = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0)
        read_timeout = _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 120.0)

        max_concurrency = max(1, _env_int(_k("MAX_CONCURRENCY"), 3))
        policy = _env(_k("FAILED_DEPENDENCY_POLICY"), "fail").strip().lower()
        if policy not in ("fail", "wait"):
            policy = "fail"

        visibility_attempts = max(1, _env_int(_k("VISIBILITY_ATTEMPTS"), 2))
        visibility_delay = max(0.0, _env_float(_k("VISIBILITY_DELAY_SECONDS"), 0.1))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            provider_id=provider_id,
            api_key=api_key,
            base_url=base_url,
            llm_models=llm_models,
            extra_headers=extra_headers,
            llm_connect_timeout_seconds=connect_timeout,
            llm_read_timeout_seconds=read_timeout,
            max_concurrency=max_concurrency,
            failed_dependency_policy=policy,
            visibility_attempts=visibility_attempts,
            visibility_delay_seconds=visibility_delay,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
