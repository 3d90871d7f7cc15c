from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, Numeric, String, Text

from .errors import PosSyncError
from .time_utils import to_utc_z


# Maximum price: 9,999,999.99
# This prevents database overflow issues and nonsensical prices
MAX_PRICE = Decimal("9999999.99")


class ValidationError(PosSyncError, ValueError):
    """400-level input problem (malformed input, e.g. negative price)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what callers are allowed to set
    - required_on_create: fields required for create
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_money(key: str, value: Any) -> Decimal:
    """Accept int/float/str/Decimal and return a 2-place Decimal."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, float):
        # str() first so 0.1 stays 0.1 rather than its binary expansion
        value = str(value)
    try:
        amount = Decimal(value) if not isinstance(value, Decimal) else value
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{key} must be a number")
    return amount.quantize(Decimal("0.01"))


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Numeric):
        return coerce_money(col.key, value)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming data against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price" in patch and patch["price"] is not None:
        price = patch["price"]
        if price < 0:
            raise ValidationError("price must be >= 0")
        if price > MAX_PRICE:
            raise ValidationError(f"price cannot exceed {MAX_PRICE:,}")
    if "stock" in patch and patch["stock"] is not None:
        enforce_rules_stock(patch["stock"])


def enforce_rules_stock(value: int) -> None:
    if value < 0:
        raise ValidationError("stock must be >= 0")


def validate_requested_items(items) -> list[dict]:
    """
    Normalize ``[{id, quantity}, ...]`` lines. Quantities must be positive
    integers; ``product_id`` is accepted as an alias for ``id``.
    """
    if not isinstance(items, (list, tuple)):
        raise ValidationError("items must be a list")
    lines = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        product_id = raw.get("id", raw.get("product_id"))
        if product_id is None or str(product_id).strip() == "":
            raise ValidationError("item id is required")
        quantity = coerce_int("quantity", raw.get("quantity"))
        if quantity <= 0:
            raise ValidationError("quantity must be > 0")
        lines.append({"id": str(product_id), "quantity": quantity})
    return lines


def normalize_cached_product(raw: dict) -> dict:
    """
    Compatible read for cached products.

    The ``products`` key carries no schema version, so entries written by
    older builds may lack fields or carry numbers as strings. Missing fields
    get defaults; bad numbers degrade to zero instead of failing the read.
    """
    try:
        price = coerce_money("price", raw.get("price", 0))
    except ValidationError:
        price = Decimal("0.00")
    try:
        stock = coerce_int("stock", raw.get("stock", 0))
    except ValidationError:
        stock = 0

    created_at = raw.get("created_at")
    if isinstance(created_at, datetime):
        created_at = to_utc_z(created_at)

    product = dict(raw)
    product.update(
        id=str(raw.get("id")),
        name=raw.get("name") or "",
        price=price,
        stock=max(0, stock),
        barcode=raw.get("barcode"),
        category=raw.get("category"),
        created_at=created_at,
    )
    return product
