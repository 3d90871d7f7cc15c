# backend/possync/routes/inventory.py
"""Stock routes: availability checks and stock writes."""

from flask import Blueprint, request

from .. import get_engine
from ..errors import PosSyncError
from . import error_response

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/stock")


@inventory_bp.post("/check")
def check_availability():
    """
    Body: {"items": [{"id": "...", "quantity": 2}, ...]}
    Advisory only; nothing is reserved.
    """
    data = request.get_json(silent=True) or {}
    try:
        result = get_engine().stock.check_availability(data.get("items"))
    except PosSyncError as e:
        return error_response(e)
    return result.to_dict()


@inventory_bp.get("/<product_id>")
def get_stock(product_id: str):
    stock = get_engine().products.get_stock(product_id)
    if stock is None:
        return {"error": "Stock unavailable for this product"}, 404
    return {"id": product_id, "stock": stock}


@inventory_bp.put("/<product_id>")
def set_stock(product_id: str):
    data = request.get_json(silent=True) or {}
    try:
        result = get_engine().stock.set_stock(product_id, data.get("stock"))
    except PosSyncError as e:
        return error_response(e)
    return result.to_dict(), 200 if result else 500


@inventory_bp.post("/batch")
def batch_set_stock():
    """Body: {"updates": [{"id": "...", "new_stock": 5}, ...]}"""
    data = request.get_json(silent=True) or {}
    try:
        result = get_engine().stock.batch_set_stock(data.get("updates"))
    except PosSyncError as e:
        return error_response(e)
    return result.to_dict(), 200 if result else 500
