# backend/possync/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Authoritative (remote) store. SQLite default keeps local dev self-contained.
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///possync_remote.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Device-local key-value store. "memory://" keeps everything in-process.
    LOCAL_CACHE_URL = os.environ.get("LOCAL_CACHE_URL", "sqlite:///possync_device.sqlite3")

    # Reachability probe
    CONNECTIVITY_CHECK_URL = os.environ.get("CONNECTIVITY_CHECK_URL", "")
    CONNECTIVITY_TIMEOUT = float(os.environ.get("CONNECTIVITY_TIMEOUT", "3"))
    FORCE_OFFLINE = os.environ.get("FORCE_OFFLINE", "false").lower() == "true"

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))
    SALE_RECONCILE_MAX_ATTEMPTS = int(os.environ.get("SALE_RECONCILE_MAX_ATTEMPTS", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOCAL_CACHE_URL = "memory://"
    CONNECTIVITY_CHECK_URL = ""
    FORCE_OFFLINE = False
    LOG_LEVEL = "DEBUG"
