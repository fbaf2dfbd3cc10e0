# backend/nexus_relay/config.py
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

    # SQLite DB stored in backend/instance/nexus_relay.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///nexus_relay.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Delta sync
    SYNC_PULL_PAGE_SIZE = int(os.environ.get("SYNC_PULL_PAGE_SIZE", "1000"))
    SYNC_MAX_BATCH_SIZE = int(os.environ.get("SYNC_MAX_BATCH_SIZE", "5000"))

    # Device presence thresholds (minutes since last contact)
    PRESENCE_ONLINE_MINUTES = int(os.environ.get("PRESENCE_ONLINE_MINUTES", "10"))
    PRESENCE_IDLE_MINUTES = int(os.environ.get("PRESENCE_IDLE_MINUTES", "60"))

    # Devices usually sit behind a reverse proxy
    TRUST_FORWARDED_FOR = _env_bool("TRUST_FORWARDED_FOR", True)

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3002,http://127.0.0.1:3002,tauri://localhost,http://tauri.localhost",
        ).split(",")
        if origin.strip()
    ]
