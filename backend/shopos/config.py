# backend/shopos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Local durable storage (snapshot + operation queue) lives in this SQLite file
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopos_local.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Remote data-access gateway. Empty URL means the device runs local-only.
    REMOTE_API_URL = os.environ.get("REMOTE_API_URL", "")
    REMOTE_API_KEY = os.environ.get("REMOTE_API_KEY", "")
    REMOTE_TIMEOUT_SECONDS = float(os.environ.get("REMOTE_TIMEOUT_SECONDS", "10"))

    # Network status signal
    NETWORK_HEALTH_URL = os.environ.get("NETWORK_HEALTH_URL", "")
    START_ONLINE = _env_bool("START_ONLINE", True)

    # Sync behaviour
    SYNC_MAX_RETRIES = int(os.environ.get("SYNC_MAX_RETRIES", "5"))
    SYNC_INTERVAL_SECONDS = float(os.environ.get("SYNC_INTERVAL_SECONDS", "30"))
    SYNC_SCHEDULER_ENABLED = _env_bool("SYNC_SCHEDULER_ENABLED", True)
    BACKGROUND_TASKS_INLINE = _env_bool("BACKGROUND_TASKS_INLINE", False)
    BACKGROUND_TASK_WORKERS = int(os.environ.get("BACKGROUND_TASK_WORKERS", "2"))

    # Credentials and billing
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
    TRIAL_DAYS = int(os.environ.get("TRIAL_DAYS", "7"))
