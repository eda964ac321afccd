from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    app_env: str
    persistence_enabled: bool
    persistence_db_path: str
    database_url: str
    auth_enabled: bool
    jwt_secret: str
    jwt_algorithm: str


@dataclass(frozen=True)
class ClientSettings:
    base_url: str
    token: Optional[str]
    timeout_seconds: float


def load_settings() -> Settings:
    persistence_db_path = os.getenv("PERSISTENCE_DB_PATH", "data/connect_career.sqlite3").strip()
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        database_url = f"sqlite:///{persistence_db_path.replace(chr(92), '/')}"
    return Settings(
        app_env=os.getenv("APP_ENV", "development"),
        persistence_enabled=_bool_env("PERSISTENCE_ENABLED", True),
        persistence_db_path=persistence_db_path,
        database_url=database_url,
        auth_enabled=_bool_env("AUTH_ENABLED", False),
        jwt_secret=os.getenv("JWT_SECRET", "dev-only-secret-change-in-prod").strip(),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256").strip(),
    )


def load_client_settings() -> ClientSettings:
    token = os.getenv("CONNECT_CAREER_API_TOKEN", "").strip()
    return ClientSettings(
        base_url=os.getenv("CONNECT_CAREER_API_URL", "http://localhost:8000").strip().rstrip("/"),
        token=token or None,
        timeout_seconds=max(1.0, min(120.0, _float_env("CONNECT_CAREER_API_TIMEOUT_SECONDS", 20.0))),
    )
