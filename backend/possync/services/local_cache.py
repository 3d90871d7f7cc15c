# Overview: Device-local cache; named collections stored as serialized snapshots.

"""
LocalCache maps logical collection names to serialized snapshots in a
key-value store. Last write wins; there is no versioning.

Keys:
- ``user-session``         serialized Session
- ``auth-token``           raw access token (duplicated for convenience)
- ``products``             serialized list of products
- ``pending-product-ops``  offline product writes awaiting replay
- ``pending-sales``        sale journal for half-completed checkouts

Every write replaces one key wholesale inside a single store transaction,
so readers never observe a partially written collection.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, create_engine, select
from sqlalchemy.exc import SQLAlchemyError

from ..time_utils import to_utc_z, utcnow
from ..validation import normalize_cached_product

logger = logging.getLogger(__name__)

SESSION_KEY = "user-session"
AUTH_TOKEN_KEY = "auth-token"
PRODUCTS_KEY = "products"
PENDING_PRODUCT_OPS_KEY = "pending-product-ops"
PENDING_SALES_KEY = "pending-sales"


class KeyValueStore:
    """get/set/remove by string key; values are opaque strings."""

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, *keys: str) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)


_metadata = MetaData()

kv_entries = Table(
    "kv_entries",
    _metadata,
    Column("key", String(128), primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)


class SqliteKeyValueStore(KeyValueStore):
    """Durable on-device store: one SQLite file, one table."""

    def __init__(self, url: str) -> None:
        self.engine = create_engine(url)
        _metadata.create_all(self.engine)

    def get(self, key: str) -> str | None:
        with self.engine.connect() as conn:
            return conn.execute(
                select(kv_entries.c.value).where(kv_entries.c.key == key)
            ).scalar()

    def set(self, key: str, value: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(kv_entries.delete().where(kv_entries.c.key == key))
            conn.execute(kv_entries.insert().values(key=key, value=value, updated_at=utcnow()))

    def remove(self, *keys: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(kv_entries.delete().where(kv_entries.c.key.in_(keys)))


def build_key_value_store(url: str) -> KeyValueStore:
    if not url or url == "memory://":
        return MemoryKeyValueStore()
    return SqliteKeyValueStore(url)


def _encode(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    raise TypeError(f"Object of type {type(value).__name__} is not serializable")


class LocalCache:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    # -- raw json --------------------------------------------------------

    def get_json(self, key: str, default=None):
        try:
            raw = self.store.get(key)
        except SQLAlchemyError:
            logger.exception("Error reading %s from local cache", key)
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.error("Discarding unreadable local cache entry %s", key)
            return default

    def set_json(self, key: str, value) -> bool:
        """Replace ``key`` wholesale. Returns False if the store rejected the write."""
        try:
            self.store.set(key, json.dumps(value, default=_encode))
        except (SQLAlchemyError, TypeError):
            logger.exception("Error saving %s to local cache", key)
            return False
        return True

    def remove(self, *keys: str) -> bool:
        try:
            self.store.remove(*keys)
        except SQLAlchemyError:
            logger.exception("Error removing %s from local cache", ", ".join(keys))
            return False
        return True

    # -- products --------------------------------------------------------

    def get_products(self) -> list[dict]:
        raw = self.get_json(PRODUCTS_KEY, default=[])
        if not isinstance(raw, list):
            return []
        return [normalize_cached_product(p) for p in raw if isinstance(p, dict)]

    def save_products(self, products: list[dict]) -> bool:
        return self.set_json(PRODUCTS_KEY, list(products))

    # -- session ---------------------------------------------------------

    def get_session(self) -> dict | None:
        session = self.get_json(SESSION_KEY)
        return session if isinstance(session, dict) else None

    def save_session(self, session: dict) -> bool:
        ok = self.set_json(SESSION_KEY, session)
        token = session.get("access_token") if session else None
        if token:
            ok = self.set_json(AUTH_TOKEN_KEY, token) and ok
        return ok

    def get_auth_token(self) -> str | None:
        return self.get_json(AUTH_TOKEN_KEY)

    def clear_session(self) -> bool:
        return self.remove(SESSION_KEY, AUTH_TOKEN_KEY)

    # -- journals --------------------------------------------------------

    def get_pending_product_ops(self) -> list[dict]:
        return self.get_json(PENDING_PRODUCT_OPS_KEY, default=[]) or []

    def save_pending_product_ops(self, ops: list[dict]) -> bool:
        return self.set_json(PENDING_PRODUCT_OPS_KEY, ops)

    def get_pending_sales(self) -> list[dict]:
        return self.get_json(PENDING_SALES_KEY, default=[]) or []

    def save_pending_sales(self, sales: list[dict]) -> bool:
        return self.set_json(PENDING_SALES_KEY, sales)
