# backend/stockflow/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///stockflow.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Seconds a SQLite connection waits on a locked database before failing.
    # Writers to the same product queue behind each other for this long.
    SQLITE_TIMEOUT = _env_float("STOCKFLOW_SQLITE_TIMEOUT", 15.0)

    # Retry policy for lock conflicts and optimistic version mismatches
    RETRY_ATTEMPTS = _env_int("STOCKFLOW_RETRY_ATTEMPTS", 3)
    RETRY_BACKOFF = _env_float("STOCKFLOW_RETRY_BACKOFF", 0.1)

    LOG_LEVEL = os.environ.get("STOCKFLOW_LOG_LEVEL", "INFO")

    # Max page size for list endpoints
    MAX_PAGE_SIZE = 500


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    RETRY_BACKOFF = 0.01
    LOG_LEVEL = "WARNING"
