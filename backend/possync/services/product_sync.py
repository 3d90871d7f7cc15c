# Overview: Reconciles the local cache and the remote store for the product catalog.

"""
Product catalog sync.

Reads: the local cache is the truth for reads. When online, list_products()
refreshes it from the remote store first (one wholesale overwrite per call).

Writes: prefer the remote store when reachable, degrade to the cache
otherwise. Offline writes that the remote store has not seen yet are kept
in two places:

- placeholder products (id ``temp_<ms>``) live only in the cache
- updates/deletes of authoritative products go to the
  ``pending-product-ops`` journal

reconcile() replays both once connectivity returns: placeholders are
inserted remotely (every field except ``id`` carried over) and swapped in
place in the cache, then journaled ops are applied in order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..errors import NetworkUnavailable, PosSyncError, RemoteRejected
from ..models import Product
from ..time_utils import now_millis, parse_iso_datetime, to_utc_z, utcnow
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_product,
    validate_payload,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "temp_"

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price", "stock", "barcode", "category"},
    required_on_create={"name", "price", "stock"},
)

PRODUCT_FIELDS = ("name", "price", "stock", "barcode", "category")


def is_placeholder(product_id) -> bool:
    return str(product_id).startswith(PLACEHOLDER_PREFIX)


@dataclass
class ReconcileReport:
    promoted: dict[str, str] = field(default_factory=dict)
    replayed: int = 0
    dropped: int = 0
    pending: int = 0

    def to_dict(self) -> dict:
        return {
            "promoted": dict(self.promoted),
            "replayed": self.replayed,
            "dropped": self.dropped,
            "pending": self.pending,
        }


class ProductSync:
    def __init__(self, remote, cache, probe) -> None:
        self.remote = remote
        self.cache = cache
        self.probe = probe
        # placeholder id -> authoritative id, for callers still holding old ids
        self._aliases: dict[str, str] = {}

    # -- reads -------------------------------------------------------------

    def list_products(self, category: str | None = None) -> list[dict]:
        """
        Newest-created first. Never raises for connectivity or remote errors:
        those degrade to whatever the cache holds.
        """
        if self.probe.is_online():
            try:
                products = self._refresh_from_remote()
            except PosSyncError as exc:
                logger.warning("Error fetching products, serving local cache: %s", exc)
                products = self.cache.get_products()
        else:
            products = self.cache.get_products()

        if category is not None:
            products = [p for p in products if p.get("category") == category]
        return products

    def _refresh_from_remote(self) -> list[dict]:
        self.reconcile()
        rows = self.remote.select("products", order_by="created_at", descending=True)

        # Local work the remote store has not accepted yet stays visible
        ops = self.cache.get_pending_product_ops()
        deleted = {op["id"] for op in ops if op["op"] == "delete"}
        patches: dict[str, dict] = {}
        for op in ops:
            if op["op"] == "update":
                patches.setdefault(op["id"], {}).update(op["patch"])

        placeholders = [p for p in self.cache.get_products() if is_placeholder(p["id"])]
        merged = placeholders + [
            {**row, **self._decode_patch(patches.get(row["id"], {}))}
            for row in rows
            if row["id"] not in deleted
        ]
        self.cache.save_products(merged)
        return merged

    def get_product(self, product_id) -> dict | None:
        product_id = self.resolve_id(product_id)
        for product in self.list_products():
            if product["id"] == product_id:
                return product
        return None

    def find_by_barcode(self, barcode: str) -> dict | None:
        if not barcode:
            return None
        for product in self.list_products():
            if product.get("barcode") == barcode:
                return product
        return None

    def list_categories(self) -> list[str]:
        return sorted({p["category"] for p in self.list_products() if p.get("category")})

    def get_stock(self, product_id) -> int | None:
        """Current stock for one product, or None if unknown or the lookup failed."""
        product_id = self.resolve_id(product_id)
        if self.probe.is_online() and not is_placeholder(product_id):
            try:
                row = self.remote.get("products", product_id)
            except PosSyncError as exc:
                logger.warning("Error getting product stock for %s: %s", product_id, exc)
                return None
            return row["stock"] if row else None

        for product in self.cache.get_products():
            if product["id"] == product_id:
                return product["stock"]
        return None

    def resolve_id(self, product_id) -> str:
        product_id = str(product_id)
        return self._aliases.get(product_id, product_id)

    # -- writes ------------------------------------------------------------

    def create_product(self, draft: dict) -> dict:
        patch = validate_payload(model=Product, payload=draft, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)

        if self.probe.is_online():
            try:
                row = self.remote.insert("products", patch)
            except NetworkUnavailable:
                logger.warning("Remote insert unreachable, creating product locally")
            else:
                self.cache.save_products([row, *self.cache.get_products()])
                return row

        products = self.cache.get_products()
        product = {field_name: patch.get(field_name) for field_name in PRODUCT_FIELDS}
        product["id"] = self._mint_placeholder_id({p["id"] for p in products})
        product["created_at"] = to_utc_z(utcnow())
        self.cache.save_products([product, *products])
        logger.info("Created product %s offline", product["id"])
        return product

    def _mint_placeholder_id(self, taken: set[str]) -> str:
        millis = now_millis()
        while f"{PLACEHOLDER_PREFIX}{millis}" in taken:
            millis += 1
        return f"{PLACEHOLDER_PREFIX}{millis}"

    def update_product(self, product_id, patch: dict) -> dict:
        product_id = self.resolve_id(product_id)
        clean = validate_payload(model=Product, payload=patch, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(clean)

        if self.probe.is_online() and not is_placeholder(product_id):
            try:
                row = self.remote.update("products", product_id, clean)
            except NetworkUnavailable:
                logger.warning("Remote update unreachable, updating product %s locally", product_id)
            else:
                self.discard_queued_fields(product_id, clean)
                self.cache.save_products(
                    [row if p["id"] == product_id else p for p in self.cache.get_products()]
                )
                return row

        self.apply_local_patch(product_id, clean)
        # The echo is a local projection only; a later sync may differ
        return {"id": product_id, **clean}

    def delete_product(self, product_id) -> bool:
        product_id = self.resolve_id(product_id)

        if self.probe.is_online() and not is_placeholder(product_id):
            # Any remote failure aborts before the cache is touched
            self.remote.delete("products", product_id)
        elif is_placeholder(product_id):
            self._drop_journal_entries(product_id)
        else:
            self._journal({"op": "delete", "id": product_id})

        self.cache.save_products([p for p in self.cache.get_products() if p["id"] != product_id])
        return True

    def apply_local_patch(self, product_id: str, patch: dict, *, journal: bool = True) -> bool:
        """
        Merge ``patch`` into the cached entry and, for authoritative ids,
        record it for replay. Returns the cache write outcome.
        """
        products = self.cache.get_products()
        updated = [{**p, **patch} if p["id"] == product_id else p for p in products]
        saved = self.cache.save_products(updated)
        if journal and not is_placeholder(product_id):
            self._journal({"op": "update", "id": product_id, "patch": patch})
        return saved

    # -- journal -----------------------------------------------------------

    def _journal(self, op: dict) -> None:
        """
        Append to pending-product-ops, compacting as it goes: consecutive
        updates for an id merge, a delete supersedes earlier updates.
        """
        ops = self.cache.get_pending_product_ops()
        if op["op"] == "delete":
            ops = [o for o in ops if o["id"] != op["id"]]
            ops.append(op)
        else:
            last = ops[-1] if ops else None
            if last and last["op"] == "update" and last["id"] == op["id"]:
                last["patch"] = {**last["patch"], **self._encode_patch(op["patch"])}
            else:
                ops.append({**op, "patch": self._encode_patch(op["patch"])})
        self.cache.save_pending_product_ops(ops)

    def queue_remote_update(self, product_id: str, patch: dict) -> None:
        """Record a write the remote store did not take, for the next reconcile."""
        if not is_placeholder(product_id):
            self._journal({"op": "update", "id": product_id, "patch": patch})

    def discard_queued_fields(self, product_id: str, fields) -> None:
        """
        Forget queued update values for ``fields`` of ``product_id`` after a
        newer remote write for them went through. Empty patches are removed.
        """
        fields = set(fields)
        ops = self.cache.get_pending_product_ops()
        kept = []
        for op in ops:
            if op["op"] == "update" and op["id"] == product_id and fields & op["patch"].keys():
                patch = {k: v for k, v in op["patch"].items() if k not in fields}
                if not patch:
                    continue
                op = {**op, "patch": patch}
            kept.append(op)
        if kept != ops:
            self.cache.save_pending_product_ops(kept)

    def _drop_journal_entries(self, product_id: str) -> None:
        ops = self.cache.get_pending_product_ops()
        kept = [o for o in ops if o["id"] != product_id]
        if len(kept) != len(ops):
            self.cache.save_pending_product_ops(kept)

    @staticmethod
    def _encode_patch(patch: dict) -> dict:
        return {k: (str(v) if k == "price" and v is not None else v) for k, v in patch.items()}

    @staticmethod
    def _decode_patch(patch: dict) -> dict:
        if not patch:
            return {}
        return validate_payload(model=Product, payload=patch, policy=PRODUCT_POLICY, partial=True)

    def pending_count(self) -> int:
        placeholders = sum(1 for p in self.cache.get_products() if is_placeholder(p["id"]))
        return placeholders + len(self.cache.get_pending_product_ops())

    # -- reconciliation ----------------------------------------------------

    def reconcile(self) -> ReconcileReport:
        """
        Push offline work to the remote store. Stops at the first transport
        failure and leaves the rest for next time; ops the remote store
        rejects outright are dropped and logged.
        """
        report = ReconcileReport()
        if not self.probe.is_online():
            report.pending = self.pending_count()
            return report

        try:
            self._promote_placeholders(report)
            self._replay_journal(report)
        except NetworkUnavailable as exc:
            logger.warning("Reconcile interrupted, will resume on next sync: %s", exc)

        report.pending = self.pending_count()
        if report.promoted or report.replayed or report.dropped:
            logger.info(
                "Reconciled products: promoted=%d replayed=%d dropped=%d pending=%d",
                len(report.promoted), report.replayed, report.dropped, report.pending,
            )
        return report

    def _promote_placeholders(self, report: ReconcileReport) -> None:
        # Oldest first so the remote created_at order matches the local one
        placeholders = [p for p in self.cache.get_products() if is_placeholder(p["id"])]
        for product in reversed(placeholders):
            values = {name: product.get(name) for name in PRODUCT_FIELDS}
            created_at = parse_iso_datetime(product.get("created_at"))
            if created_at is not None:
                values["created_at"] = created_at
            try:
                row = self.remote.insert("products", values)
            except RemoteRejected as exc:
                # Leave it local; the operator can fix the product and it retries next sync
                logger.error("Remote store rejected placeholder %s: %s", product["id"], exc)
                continue

            self._aliases[product["id"]] = row["id"]
            report.promoted[product["id"]] = row["id"]
            self.cache.save_products(
                [row if p["id"] == product["id"] else p for p in self.cache.get_products()]
            )

    def _replay_journal(self, report: ReconcileReport) -> None:
        ops = self.cache.get_pending_product_ops()
        while ops:
            op = ops[0]
            try:
                if op["op"] == "delete":
                    self.remote.delete("products", op["id"])
                else:
                    self.remote.update("products", op["id"], self._decode_patch(op["patch"]))
                report.replayed += 1
            except RemoteRejected as exc:
                logger.error("Dropping pending %s for product %s: %s", op["op"], op["id"], exc)
                report.dropped += 1
            except NetworkUnavailable:
                self.cache.save_pending_product_ops(ops)
                raise
            ops = ops[1:]
        self.cache.save_pending_product_ops(ops)
