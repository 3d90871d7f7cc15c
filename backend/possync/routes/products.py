# backend/possync/routes/products.py
"""
Product catalog routes. Every route goes through ProductSync, so they keep
working offline against the device cache.
"""
from flask import Blueprint, request, current_app

from .. import get_engine
from ..errors import PosSyncError
from . import error_response

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - category: str (optional) - equality filter
    """
    category = request.args.get("category") or None
    items = get_engine().products.list_products(category=category)
    return {"items": items, "count": len(items)}


@products_bp.get("/categories")
def list_categories():
    return {"items": get_engine().products.list_categories()}


@products_bp.get("/barcode/<barcode>")
def find_by_barcode(barcode: str):
    product = get_engine().products.find_by_barcode(barcode)
    if product is None:
        return {"error": "Product not found"}, 404
    return product


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        created = get_engine().products.create_product(payload)
    except PosSyncError as e:
        return error_response(e)
    return created, 201


@products_bp.patch("/<product_id>")
def update_product_route(product_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        return get_engine().products.update_product(product_id, payload)
    except PosSyncError as e:
        return error_response(e)


@products_bp.delete("/<product_id>")
def delete_product_route(product_id: str):
    try:
        get_engine().products.delete_product(product_id)
    except PosSyncError as e:
        current_app.logger.warning("Failed to delete product %s: %s", product_id, e)
        return error_response(e)
    return {"ok": True}, 200


@products_bp.post("/sync")
def sync_products():
    """Push offline product work now instead of waiting for the next listing."""
    report = get_engine().products.reconcile()
    return report.to_dict()
