# backend/possync/routes/checkout.py
"""Checkout and transaction history routes."""

from flask import Blueprint, request, current_app

from .. import get_engine
from ..errors import PartialPersistFailure, PosSyncError
from . import error_response

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


@checkout_bp.post("/checkout")
def checkout_route():
    """
    Body: {"items": [{"id": "...", "quantity": 2, "price": "50.00"}, ...],
           "cash_given": "120.00"}

    The receipt is delivered in the response, which counts as the
    acknowledgement; the coordinator returns to idle afterwards.
    """
    data = request.get_json(silent=True) or {}
    coordinator = get_engine().checkout
    try:
        receipt = coordinator.checkout(data.get("items") or [], data.get("cash_given"))
    except PartialPersistFailure as e:
        current_app.logger.error("Checkout partially persisted: %s (%s)", e, e.details)
        return error_response(e)
    except PosSyncError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to checkout")
        return {"error": "An error occurred during checkout"}, 500

    coordinator.acknowledge()
    return {"receipt": receipt.to_dict()}, 201


@checkout_bp.post("/checkout/reconcile")
def reconcile_sales():
    return get_engine().checkout.reconcile_pending_sales()


@checkout_bp.get("/transactions")
def list_transactions():
    try:
        items = get_engine().checkout.list_transactions()
    except PosSyncError as e:
        return error_response(e)
    return {"items": items, "count": len(items)}


@checkout_bp.get("/transactions/<transaction_id>/items")
def transaction_items(transaction_id: str):
    try:
        items = get_engine().checkout.get_transaction_items(transaction_id)
    except PosSyncError as e:
        return error_response(e)
    return {"items": items, "count": len(items)}
