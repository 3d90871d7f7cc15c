# Overview: Sale orchestration; validate, persist, deduct, receipt.

"""
Checkout

State machine over one sale:

    IDLE -> VALIDATING -> PERSISTING -> DEDUCTING -> RECEIPTED -> (acknowledge) IDLE
    any in-flight state -> FAILED -> IDLE (reset, or implicitly on retry)

Persistence is three sequential remote steps. A failure halts progression
but never undoes an earlier step:

- transaction insert fails     -> nothing persisted, error surfaces
- item insert fails            -> transaction row exists with zero items,
                                  PartialPersistFailure surfaces
- stock deduction fails        -> logged; the sale still receipts

Each sale intent is written to the ``pending-sales`` journal before the
first remote write and advanced after every step. reconcile_pending_sales()
finishes sales that stopped halfway (missing items, missing deduction) on
a later online pass.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import uuid4

from ..errors import InsufficientStock, NetworkUnavailable, PartialPersistFailure, PosSyncError, RemoteRejected
from ..time_utils import to_utc_z, utcnow
from ..validation import ValidationError, coerce_int, coerce_money, enforce_rules_product
from .product_sync import is_placeholder

logger = logging.getLogger(__name__)

STAGE_PENDING = "pending"
STAGE_TRANSACTION = "transaction"
STAGE_ITEMS = "items"


class CheckoutState(str, enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PERSISTING = "persisting"
    DEDUCTING = "deducting"
    RECEIPTED = "receipted"
    FAILED = "failed"


@dataclass
class CartLine:
    product_id: str
    name: str
    quantity: int
    unit_price: Decimal
    # stock seen when the line was added; caps the quantity
    available: int | None = None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "subtotal": self.subtotal,
        }


class Cart:
    """UI-session-scoped cart. Prices are snapshotted when a line is added."""

    def __init__(self) -> None:
        self._lines: dict[str, CartLine] = {}

    def add(self, product: dict, quantity: int = 1) -> CartLine:
        quantity = coerce_int("quantity", quantity)
        if quantity <= 0:
            raise ValidationError("quantity must be > 0")

        product_id = str(product["id"])
        stock = int(product.get("stock") or 0)
        if stock <= 0:
            raise InsufficientStock([{
                "id": product_id,
                "name": product.get("name") or f"Product #{product_id}",
                "requested": quantity,
                "available": 0,
            }])

        line = self._lines.get(product_id)
        if line is None:
            line = CartLine(
                product_id=product_id,
                name=product.get("name") or "",
                quantity=0,
                unit_price=_unit_price(product.get("price", 0)),
            )
            self._lines[product_id] = line
        line.available = stock
        line.quantity = min(line.quantity + quantity, stock)
        return line

    def set_quantity(self, product_id, quantity: int) -> CartLine | None:
        product_id = str(product_id)
        quantity = coerce_int("quantity", quantity)
        if quantity <= 0:
            self._lines.pop(product_id, None)
            return None
        line = self._lines.get(product_id)
        if line is None:
            raise ValidationError(f"Product {product_id} is not in the cart")
        if line.available is not None:
            quantity = min(quantity, line.available)
        line.quantity = quantity
        return line

    def remove(self, product_id) -> None:
        self._lines.pop(str(product_id), None)

    def clear(self) -> None:
        self._lines.clear()

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    @property
    def total(self) -> Decimal:
        return sum((line.subtotal for line in self._lines.values()), Decimal("0.00"))

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def is_empty(self) -> bool:
        return not self._lines


@dataclass
class Receipt:
    """Read-only projection of a persisted sale."""
    transaction: dict
    items: list[dict]
    stock_deducted: bool = True
    stock_synced: bool = True

    @property
    def id(self) -> str:
        return self.transaction["id"]

    @property
    def total(self) -> Decimal:
        return self.transaction["total"]

    @property
    def cash_given(self) -> Decimal:
        return self.transaction["cash_given"]

    @property
    def change(self) -> Decimal:
        return self.transaction["change"]

    def to_dict(self) -> dict:
        return {
            **self.transaction,
            "items": [dict(item) for item in self.items],
            "stock_deducted": self.stock_deducted,
            "stock_synced": self.stock_synced,
        }


def _unit_price(value) -> Decimal:
    price = coerce_money("price", value)
    enforce_rules_product({"price": price})
    return price


def _coerce_lines(cart) -> list[CartLine]:
    if isinstance(cart, Cart):
        return cart.lines
    lines = []
    for raw in cart or []:
        if isinstance(raw, CartLine):
            lines.append(raw)
            continue
        if not isinstance(raw, dict):
            raise ValidationError("each cart line must be an object")
        product_id = raw.get("id", raw.get("product_id"))
        if product_id is None:
            raise ValidationError("cart line id is required")
        quantity = coerce_int("quantity", raw.get("quantity"))
        if quantity <= 0:
            raise ValidationError("quantity must be > 0")
        lines.append(CartLine(
            product_id=str(product_id),
            name=raw.get("name") or "",
            quantity=quantity,
            unit_price=_unit_price(raw.get("price", raw.get("unit_price"))),
        ))
    return lines


class CheckoutCoordinator:
    def __init__(
        self,
        *,
        remote,
        cache,
        probe,
        product_sync,
        stock_engine,
        max_reconcile_attempts: int = 3,
    ) -> None:
        self.remote = remote
        self.cache = cache
        self.probe = probe
        self.product_sync = product_sync
        self.stock_engine = stock_engine
        self.max_reconcile_attempts = max_reconcile_attempts
        self._state = CheckoutState.IDLE
        self._state_lock = threading.Lock()
        self.last_receipt: Receipt | None = None
        self.last_error: str | None = None

    @property
    def state(self) -> CheckoutState:
        return self._state

    def _enter(self, state: CheckoutState) -> None:
        logger.debug("Checkout %s -> %s", self._state.value, state.value)
        self._state = state

    def _begin(self) -> None:
        with self._state_lock:
            if self._state == CheckoutState.FAILED:
                self._state = CheckoutState.IDLE
            if self._state == CheckoutState.RECEIPTED:
                raise PosSyncError("The previous sale has not been acknowledged yet")
            if self._state != CheckoutState.IDLE:
                raise PosSyncError("A checkout is already in progress")
            self._enter(CheckoutState.VALIDATING)

    def reset(self) -> None:
        """FAILED -> IDLE so the UI can retry."""
        with self._state_lock:
            if self._state == CheckoutState.FAILED:
                self._enter(CheckoutState.IDLE)
                self.last_error = None

    def acknowledge(self, cart: Cart | None = None) -> None:
        """The caller has shown the receipt; clear the cart and go idle."""
        with self._state_lock:
            if self._state != CheckoutState.RECEIPTED:
                return
            if cart is not None:
                cart.clear()
            self._enter(CheckoutState.IDLE)

    def checkout(self, cart, cash_given) -> Receipt:
        self._begin()
        try:
            return self._run(_coerce_lines(cart), cash_given)
        except PosSyncError as exc:
            self.last_error = str(exc)
            self._enter(CheckoutState.FAILED)
            raise
        except Exception:
            self.last_error = "An error occurred during checkout"
            self._enter(CheckoutState.FAILED)
            raise

    def _run(self, lines: list[CartLine], cash_given) -> Receipt:
        # -- validating --
        if not lines:
            raise ValidationError("Cart is empty")
        for line in lines:
            line.product_id = self.product_sync.resolve_id(line.product_id)

        total = sum((line.subtotal for line in lines), Decimal("0.00"))
        if cash_given is None or cash_given == "":
            raise ValidationError("Cash given is required")
        cash = coerce_money("cash_given", cash_given)
        if cash < 0:
            raise ValidationError("Cash given must be >= 0")
        if cash < total:
            raise ValidationError(f"Cash given ({cash}) is less than the total ({total})")

        items = [{"id": line.product_id, "quantity": line.quantity} for line in lines]
        availability = self.stock_engine.check_availability(items)
        if not availability.ok:
            raise InsufficientStock(availability.shortfalls)

        if not self.probe.is_online():
            raise NetworkUnavailable("Checkout needs a connection to the remote store")

        # check_availability may have promoted placeholders; pick up their new ids
        for line in lines:
            line.product_id = self.product_sync.resolve_id(line.product_id)
            if is_placeholder(line.product_id):
                raise ValidationError(
                    f"{line.name or line.product_id} has not been synced to the remote store yet"
                )
        items = [{"id": line.product_id, "quantity": line.quantity} for line in lines]

        # -- persisting --
        self._enter(CheckoutState.PERSISTING)
        entry = self._journal_sale(lines, total, cash)

        now = utcnow()
        try:
            transaction = self.remote.insert("transactions", {
                "total": total,
                "cash_given": cash,
                "change": cash - total,
                "status": "completed",
                "created_at": now,
                "updated_at": now,
            })
        except PosSyncError:
            self._forget_sale(entry["key"])
            raise
        self._advance_sale(entry["key"], stage=STAGE_TRANSACTION, transaction_id=transaction["id"])

        try:
            self._insert_items(transaction["id"], lines)
        except PosSyncError as exc:
            logger.error(
                "Transaction %s persisted without items: %s", transaction["id"], exc
            )
            raise PartialPersistFailure(
                "The sale was recorded but its items could not be saved",
                stage=STAGE_ITEMS,
                transaction_id=transaction["id"],
            ) from exc
        self._advance_sale(entry["key"], stage=STAGE_ITEMS)

        # -- deducting --
        self._enter(CheckoutState.DEDUCTING)
        result = self.stock_engine.deduct_after_sale(items)
        if not result.local_ok:
            logger.error(
                "Stock deduction failed for transaction %s; left for reconciliation",
                transaction["id"],
            )
        else:
            if not result.remote_ok:
                logger.warning(
                    "Stock for %s not updated remotely; queued for next sync",
                    ", ".join(result.remote_failed_ids),
                )
            self._forget_sale(entry["key"])

        # -- receipted --
        receipt = Receipt(
            transaction=transaction,
            items=[line.to_dict() | {"price": line.unit_price} for line in lines],
            stock_deducted=result.local_ok,
            stock_synced=result.local_ok and result.remote_ok,
        )
        self.last_receipt = receipt
        self.last_error = None
        self._enter(CheckoutState.RECEIPTED)
        return receipt

    def _insert_items(self, transaction_id: str, lines: list[CartLine]) -> list[dict]:
        return self.remote.insert_many("transaction_items", [
            {
                "transaction_id": transaction_id,
                "product_id": line.product_id,
                "quantity": line.quantity,
                "price": line.unit_price,
            }
            for line in lines
        ])

    # -- sale journal ------------------------------------------------------

    def _journal_sale(self, lines: list[CartLine], total: Decimal, cash: Decimal) -> dict:
        entry = {
            "key": uuid4().hex,
            "stage": STAGE_PENDING,
            "transaction_id": None,
            "lines": [
                {"id": l.product_id, "quantity": l.quantity, "price": str(l.unit_price)}
                for l in lines
            ],
            "total": str(total),
            "cash_given": str(cash),
            "attempts": 0,
            "created_at": to_utc_z(utcnow()),
        }
        self.cache.save_pending_sales([*self.cache.get_pending_sales(), entry])
        return entry

    def _advance_sale(self, key: str, **changes) -> None:
        sales = self.cache.get_pending_sales()
        for sale in sales:
            if sale["key"] == key:
                sale.update(changes)
        self.cache.save_pending_sales(sales)

    def _forget_sale(self, key: str) -> None:
        self.cache.save_pending_sales([s for s in self.cache.get_pending_sales() if s["key"] != key])

    def pending_sales(self) -> list[dict]:
        return self.cache.get_pending_sales()

    def reconcile_pending_sales(self) -> dict:
        """
        Finish half-completed sales. Entries still at ``pending`` never had a
        confirmed transaction row and are discarded.
        """
        report = {"completed": 0, "dropped": 0, "pending": 0}
        if not self.probe.is_online():
            report["pending"] = len(self.cache.get_pending_sales())
            return report

        remaining = []
        sales = self.cache.get_pending_sales()
        for index, sale in enumerate(sales):
            try:
                done = self._resume_sale(sale)
            except NetworkUnavailable as exc:
                logger.warning("Sale reconciliation interrupted: %s", exc)
                remaining.extend(sales[index:])
                break
            except RemoteRejected as exc:
                logger.error("Sale %s could not be resumed: %s", sale["key"], exc)
                sale["attempts"] = sale.get("attempts", 0) + 1
                done = False

            if done is None:
                report["dropped"] += 1
            elif done:
                report["completed"] += 1
            elif sale["attempts"] >= self.max_reconcile_attempts:
                logger.error(
                    "Giving up on sale %s (transaction %s) after %d attempts",
                    sale["key"], sale["transaction_id"], sale["attempts"],
                )
                report["dropped"] += 1
            else:
                remaining.append(sale)

        self.cache.save_pending_sales(remaining)
        report["pending"] = len(remaining)
        return report

    def _resume_sale(self, sale: dict) -> bool | None:
        """True when finished, False to retry later, None to discard."""
        if sale["stage"] == STAGE_PENDING or not sale.get("transaction_id"):
            logger.warning("Discarding unconfirmed sale %s", sale["key"])
            return None

        lines = [
            CartLine(
                product_id=self.product_sync.resolve_id(l["id"]),
                name="",
                quantity=int(l["quantity"]),
                unit_price=coerce_money("price", l["price"]),
            )
            for l in sale["lines"]
        ]

        if sale["stage"] == STAGE_TRANSACTION:
            existing = self.remote.select(
                "transaction_items", filters={"transaction_id": sale["transaction_id"]}
            )
            if not existing:
                self._insert_items(sale["transaction_id"], lines)
            sale["stage"] = STAGE_ITEMS

        result = self.stock_engine.deduct_after_sale(
            [{"id": l.product_id, "quantity": l.quantity} for l in lines]
        )
        if not result.local_ok:
            sale["attempts"] = sale.get("attempts", 0) + 1
            return False
        logger.info("Completed pending sale for transaction %s", sale["transaction_id"])
        return True

    # -- history -----------------------------------------------------------

    def list_transactions(self) -> list[dict]:
        if not self.probe.is_online():
            raise NetworkUnavailable("Transaction history needs a connection to the remote store")
        return self.remote.select("transactions", order_by="created_at", descending=True)

    def get_transaction_items(self, transaction_id: str) -> list[dict]:
        """Items of one transaction with the product name joined in."""
        if not self.probe.is_online():
            raise NetworkUnavailable("Transaction history needs a connection to the remote store")
        items = self.remote.select("transaction_items", filters={"transaction_id": transaction_id})
        product_ids = {item["product_id"] for item in items}
        names = {}
        if product_ids:
            names = {
                p["id"]: p["name"]
                for p in self.remote.select("products", filters={"id": product_ids})
            }
        for item in items:
            item["product_name"] = names.get(item["product_id"])
            item["subtotal"] = item["price"] * item["quantity"]
        return items
