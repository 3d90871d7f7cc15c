# Overview: Builds the component graph once, with explicit dependencies.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from .errors import PosSyncError
from .services.auth_backend import AuthBackend, SqlAuthBackend
from .services.checkout_service import CheckoutCoordinator
from .services.concurrency import KeyedLock
from .services.connectivity import ConnectivityProbe, build_probe
from .services.local_cache import LocalCache, build_key_value_store
from .services.product_sync import ProductSync
from .services.remote_store import RemoteStore
from .services.session_manager import SessionManager
from .services.stock_service import StockConsistencyEngine

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    probe: ConnectivityProbe
    cache: LocalCache
    remote: RemoteStore
    auth_backend: AuthBackend
    products: ProductSync
    stock: StockConsistencyEngine
    checkout: CheckoutCoordinator
    sessions: SessionManager

    def on_connectivity_change(self, online: bool) -> None:
        if online:
            self.sync_after_reconnect()

    def sync_after_reconnect(self) -> dict:
        """Refresh the session and push offline work once the network is back."""
        self.sessions.refresh_session()
        products = self.products.reconcile()
        try:
            sales = self.checkout.reconcile_pending_sales()
        except PosSyncError as exc:
            logger.warning("Pending sale reconciliation failed: %s", exc)
            sales = {"completed": 0, "dropped": 0, "pending": len(self.checkout.pending_sales())}
        return {"products": products.to_dict(), "sales": sales}


def build_engine(
    config,
    *,
    probe: ConnectivityProbe | None = None,
    cache: LocalCache | None = None,
    remote: RemoteStore | None = None,
    auth_backend: AuthBackend | None = None,
) -> Engine:
    """
    Wire every component from ``config`` (a Flask config or plain mapping).
    Any collaborator can be injected instead, which is how tests swap in fakes.
    """
    probe = probe or build_probe(config)
    cache = cache or LocalCache(build_key_value_store(config.get("LOCAL_CACHE_URL", "memory://")))
    remote = remote or RemoteStore()
    auth_backend = auth_backend or SqlAuthBackend(
        ttl=timedelta(hours=config.get("SESSION_TTL_HOURS", 24))
    )

    products = ProductSync(remote, cache, probe)
    stock = StockConsistencyEngine(products, remote, probe, locks=KeyedLock())
    checkout = CheckoutCoordinator(
        remote=remote,
        cache=cache,
        probe=probe,
        product_sync=products,
        stock_engine=stock,
        max_reconcile_attempts=config.get("SALE_RECONCILE_MAX_ATTEMPTS", 3),
    )
    sessions = SessionManager(auth_backend, cache, probe)

    engine = Engine(
        probe=probe,
        cache=cache,
        remote=remote,
        auth_backend=auth_backend,
        products=products,
        stock=stock,
        checkout=checkout,
        sessions=sessions,
    )
    probe.add_listener(engine.on_connectivity_change)
    return engine
