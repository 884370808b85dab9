from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SESSION_TTL_SECONDS = 60 * 60 * 12
DEFAULT_CORS_ORIGINS = "http://127.0.0.1,http://localhost,http://127.0.0.1:3000,http://localhost:3000"


def _require_env(name: str) -> str:
    value = (os.environ.get(name) or "").strip()
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


def _parse_bool_env(name: str, default: str) -> bool:
    return str(os.environ.get(name, default)).strip().lower() in {"1", "true", "yes", "on"}


def _parse_int_env(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    db_url: str
    session_secret: str
    session_ttl_seconds: int
    cors_allow_origins: list[str]
    cors_allow_credentials: bool


def load_settings() -> Settings:
    session_secret = _require_env("SESSION_SIGNING_SECRET")
    if len(session_secret) < 32:
        raise RuntimeError("SESSION_SIGNING_SECRET must be at least 32 characters long.")

    origins = _parse_csv_env("CORS_ALLOW_ORIGINS", DEFAULT_CORS_ORIGINS)
    allow_credentials = _parse_bool_env("CORS_ALLOW_CREDENTIALS", "true")
    if "*" in origins:
        # Browsers reject wildcard origins with credentials.
        allow_credentials = False

    return Settings(
        db_url=_require_env("LENDING_DB_URL"),
        session_secret=session_secret,
        session_ttl_seconds=max(_parse_int_env("SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS), 1),
        cors_allow_origins=origins,
        cors_allow_credentials=allow_credentials,
    )
