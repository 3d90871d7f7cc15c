# Overview: SQLAlchemy models for the authoritative store and the credential backend.

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from .extensions import db
from .time_utils import utcnow, to_utc_z


def new_id() -> str:
    """Server-assigned identifier for remote rows."""
    return uuid4().hex


def _money(value) -> Decimal | None:
    if value is None:
        return None
    return Decimal(value).quantize(Decimal("0.01"))


class Product(db.Model):
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonneg"),
        db.CheckConstraint("price >= 0", name="ck_products_price_nonneg"),
        db.Index("ix_products_created_at", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    # Scan lookup; not unique because the catalog is operator-maintained
    barcode = db.Column(db.String(64), nullable=True, index=True)
    category = db.Column(db.String(120), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": _money(self.price),
            "stock": self.stock,
            "barcode": self.barcode,
            "category": self.category,
            "created_at": to_utc_z(self.created_at),
        }


class Transaction(db.Model):
    """
    Completed sale header.

    ``completed`` is the only status reached; rows are never mutated or
    deleted after creation.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint("change >= 0", name="ck_transactions_change_nonneg"),
        db.Index("ix_transactions_created_at", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    total = db.Column(db.Numeric(12, 2), nullable=False)
    cash_given = db.Column(db.Numeric(12, 2), nullable=False)
    change = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    items = db.relationship("TransactionItem", back_populates="transaction", lazy=True)

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} total={self.total} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "total": _money(self.total),
            "cash_given": _money(self.cash_given),
            "change": _money(self.change),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TransactionItem(db.Model):
    __tablename__ = "transaction_items"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    transaction_id = db.Column(
        db.String(36), db.ForeignKey("transactions.id"), nullable=False, index=True
    )
    product_id = db.Column(
        db.String(36), db.ForeignKey("products.id"), nullable=False, index=True
    )
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)

    transaction = db.relationship("Transaction", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price": _money(self.price),
        }


class AuthUser(db.Model):
    """Credential backend account. Passwords are bcrypt hashes."""
    __tablename__ = "auth_users"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(255), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class AuthSession(db.Model):
    """
    Issued session. Only SHA-256 hashes of the tokens are stored; the
    plaintext tokens live with the client.
    """
    __tablename__ = "auth_sessions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("auth_users.id"), nullable=False, index=True)
    access_token_hash = db.Column(db.String(64), nullable=False, unique=True)
    refresh_token_hash = db.Column(db.String(64), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    revoked_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship("AuthUser")

    def is_valid(self, now=None) -> bool:
        now = now or utcnow()
        return self.revoked_at is None and self.expires_at > now
