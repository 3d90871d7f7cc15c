# Overview: Inventory invariant enforcement; availability checks and stock writes.

"""
Stock consistency.

Invariants:
- stock is a non-negative integer. Writes of negative values are rejected;
  deductions clamp at zero.
- A failed availability recheck in deduct_after_sale changes nothing (no
  partial deduction).
- Every stock write updates the local cache, whether or not the remote
  write went through. The outcome of both sides is reported separately in
  StockWriteResult; its truth value is the local outcome.

Concurrency:
- All writes for a product id are sequenced through a KeyedLock, and
  deduct_after_sale holds the locks for every product in the sale across
  its read-check-write, so in-process mutators cannot interleave between
  the check and the decrement.
- check_availability on its own is advisory and takes no lock.

Remote writes that fail (or are skipped offline) are queued with the
product journal and replayed by ProductSync.reconcile(); they are never
retried inline.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..errors import PosSyncError
from ..validation import ValidationError, coerce_int, enforce_rules_stock, validate_requested_items
from .concurrency import KeyedLock
from .product_sync import is_placeholder

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityResult:
    ok: bool
    shortfalls: list[dict] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.ok:
            return "Stock is available"
        return "Some items have insufficient stock"

    def to_dict(self) -> dict:
        return {"ok": self.ok, "message": self.message, "shortfalls": list(self.shortfalls)}


@dataclass
class StockWriteResult:
    """
    Dual-write outcome.

    remote_ok is False both when the remote write failed and when it was
    not attempted (offline); ``offline`` tells the two apart.
    """
    local_ok: bool
    remote_ok: bool
    offline: bool = False
    remote_failed_ids: list[str] = field(default_factory=list)
    shortfalls: list[dict] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.local_ok

    def to_dict(self) -> dict:
        return {
            "ok": self.local_ok,
            "local_ok": self.local_ok,
            "remote_ok": self.remote_ok,
            "offline": self.offline,
            "remote_failed_ids": list(self.remote_failed_ids),
            "shortfalls": list(self.shortfalls),
        }


def _aggregate(lines: list[dict]) -> dict[str, int]:
    totals: dict[str, int] = {}
    for line in lines:
        totals[line["id"]] = totals.get(line["id"], 0) + line["quantity"]
    return totals


def find_shortfalls(requested: dict[str, int], products: list[dict]) -> list[dict]:
    """Shortfall iff the product is missing or requested > available."""
    by_id = {p["id"]: p for p in products}
    shortfalls = []
    for product_id, quantity in requested.items():
        product = by_id.get(product_id)
        available = product["stock"] if product else 0
        if product is None or available < quantity:
            shortfalls.append({
                "id": product_id,
                "name": product["name"] if product else f"Product #{product_id}",
                "requested": quantity,
                "available": available,
            })
    return shortfalls


class StockConsistencyEngine:
    def __init__(self, product_sync, remote, probe, locks: KeyedLock | None = None) -> None:
        self.product_sync = product_sync
        self.remote = remote
        self.probe = probe
        self.locks = locks or KeyedLock()

    def _lines(self, items) -> list[dict]:
        lines = validate_requested_items(items)
        for line in lines:
            line["id"] = self.product_sync.resolve_id(line["id"])
        return lines

    def check_availability(self, items) -> AvailabilityResult:
        """
        Compare requested quantities with the current product view. Offline
        this is the cached view and may be stale.
        """
        requested = _aggregate(self._lines(items))
        shortfalls = find_shortfalls(requested, self.product_sync.list_products())
        return AvailabilityResult(ok=not shortfalls, shortfalls=shortfalls)

    def set_stock(self, product_id, new_stock) -> StockWriteResult:
        product_id = self.product_sync.resolve_id(product_id)
        new_stock = coerce_int("stock", new_stock)
        enforce_rules_stock(new_stock)

        with self.locks.hold(product_id):
            offline = not self.probe.is_online()
            remote_ok = False
            if not offline and not is_placeholder(product_id):
                try:
                    self.remote.update("products", product_id, {"stock": new_stock})
                except PosSyncError as exc:
                    logger.error("Error updating stock for product %s: %s", product_id, exc)
                else:
                    remote_ok = True
                    self.product_sync.discard_queued_fields(product_id, ["stock"])

            local_ok = self.product_sync.apply_local_patch(
                product_id, {"stock": new_stock}, journal=False
            )
            if not remote_ok:
                self.product_sync.queue_remote_update(product_id, {"stock": new_stock})

        return StockWriteResult(
            local_ok=local_ok,
            remote_ok=remote_ok,
            offline=offline,
            remote_failed_ids=[] if remote_ok else [product_id],
        )

    def _batch_updates(self, updates) -> dict[str, int]:
        if not isinstance(updates, (list, tuple)):
            raise ValidationError("updates must be a list")
        values: dict[str, int] = {}
        for raw in updates:
            if not isinstance(raw, dict):
                raise ValidationError("each update must be an object")
            product_id = raw.get("id", raw.get("product_id"))
            if product_id is None or str(product_id).strip() == "":
                raise ValidationError("update id is required")
            new_stock = coerce_int("new_stock", raw.get("new_stock", raw.get("stock")))
            enforce_rules_stock(new_stock)
            # Later entries for the same id win
            values[self.product_sync.resolve_id(product_id)] = new_stock
        return values

    def batch_set_stock(self, updates) -> StockWriteResult:
        """
        Apply each remote write independently, then rewrite the cached list
        once with every requested value regardless of remote outcomes.
        """
        values = self._batch_updates(updates)
        with self.locks.hold(*values):
            return self._batch_set_locked(values)

    def _batch_set_locked(self, values: dict[str, int]) -> StockWriteResult:
        offline = not self.probe.is_online()
        failed: list[str] = []

        for product_id, new_stock in values.items():
            if offline or is_placeholder(product_id):
                failed.append(product_id)
                continue
            try:
                self.remote.update("products", product_id, {"stock": new_stock})
            except PosSyncError as exc:
                logger.error("Error updating stock for product %s: %s", product_id, exc)
                failed.append(product_id)
            else:
                self.product_sync.discard_queued_fields(product_id, ["stock"])

        cache = self.product_sync.cache
        products = cache.get_products()
        local_ok = cache.save_products([
            {**p, "stock": values[p["id"]]} if p["id"] in values else p
            for p in products
        ])

        for product_id in failed:
            self.product_sync.queue_remote_update(product_id, {"stock": values[product_id]})

        return StockWriteResult(
            local_ok=local_ok,
            remote_ok=not failed,
            offline=offline,
            remote_failed_ids=failed,
        )

    def deduct_after_sale(self, items) -> StockWriteResult:
        """
        Recheck availability and decrement. Quantities beyond what is on
        hand clamp at zero instead of going negative.
        """
        requested = _aggregate(self._lines(items))

        with self.locks.hold(*requested):
            products = self.product_sync.list_products()
            shortfalls = find_shortfalls(requested, products)
            if shortfalls:
                logger.error("Cannot deduct stock, insufficient items: %s", shortfalls)
                return StockWriteResult(
                    local_ok=False,
                    remote_ok=False,
                    offline=not self.probe.is_online(),
                    shortfalls=shortfalls,
                )

            stock_by_id = {p["id"]: p["stock"] for p in products}
            values = {
                product_id: max(0, stock_by_id[product_id] - quantity)
                for product_id, quantity in requested.items()
            }
            return self._batch_set_locked(values)
