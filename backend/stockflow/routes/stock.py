# Overview: Flask API routes for the stock ledger, manual adjustments and reorder suggestions.

"""
Stock Routes

All routes are scoped to the acting store owner's store.
- GET  /ledger                              ledger rows (product_id, ref_type, from_date, to_date, limit, offset)
- GET  /products/<id>                       ledger-derived stock vs. cached counter
- POST /adjustments                         manual correction, note required
- GET  /reorder-suggestions                 read-only reorder advice
- POST /reorder-suggestions/purchase-orders one DRAFT PO per supplier group
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import DomainError, NotFound, ValidationError, error_response
from ..extensions import db
from ..models import Product
from ..services import reorder_service, stock_ledger_service
from ..services.authorization import ROLE_STORE_OWNER
from ..time_utils import parse_iso_datetime
from ..validation import (
    ReorderPurchaseOrdersCommand,
    StockAdjustmentCommand,
    optional_int,
    parse_pagination,
)

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _date_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"Invalid {name} format", field=name)


@stock_bp.get("/ledger")
@require_actor
@require_role(ROLE_STORE_OWNER)
def list_ledger_route():
    try:
        limit, offset = parse_pagination(request.args, default_limit=100)
        entries, total = stock_ledger_service.list_entries(
            g.actor.store_id,
            product_id=optional_int(request.args.get("product_id"), "product_id", minimum=1),
            ref_type=request.args.get("ref_type"),
            since=_date_arg("from_date"),
            until=_date_arg("to_date"),
            limit=limit,
            offset=offset,
        )
    except DomainError as exc:
        return error_response(exc)

    return jsonify({
        "items": [e.to_dict() for e in entries],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@stock_bp.get("/products/<int:product_id>")
@require_actor
@require_role(ROLE_STORE_OWNER)
def product_stock_route(product_id: int):
    try:
        product = db.session.get(Product, product_id)
        if product is None or product.store_id != g.actor.store_id:
            raise NotFound(f"Product {product_id} not found")
        check = stock_ledger_service.verify_stock(product_id)
    except DomainError as exc:
        return error_response(exc)

    data = product.to_dict()
    data.update(check.to_dict())
    return jsonify({"product": data})


@stock_bp.post("/adjustments")
@require_actor
@require_role(ROLE_STORE_OWNER)
def adjust_stock_route():
    """
    Request body:
    {
        "product_id": 1,
        "delta": -2,
        "note": "Damaged in storage"
    }
    """
    try:
        cmd = StockAdjustmentCommand.from_payload(request.get_json(silent=True))
        entry = stock_ledger_service.adjust_stock(
            store_id=g.actor.store_id,
            product_id=cmd.product_id,
            delta=cmd.delta,
            note=cmd.note,
            actor=g.actor,
        )
        stock = stock_ledger_service.current_stock(cmd.product_id)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"entry": entry.to_dict(), "current_stock": stock}), 201


@stock_bp.get("/reorder-suggestions")
@require_actor
@require_role(ROLE_STORE_OWNER)
def reorder_suggestions_route():
    plan = reorder_service.suggest_reorders(g.actor.store_id)
    return jsonify(plan.to_dict())


@stock_bp.post("/reorder-suggestions/purchase-orders")
@require_actor
@require_role(ROLE_STORE_OWNER)
def create_reorder_purchase_orders_route():
    """
    Request body (optional):
    {"supplier_ids": [1, 2]}
    """
    try:
        cmd = ReorderPurchaseOrdersCommand.from_payload(request.get_json(silent=True))
        created = reorder_service.create_purchase_orders_from_suggestions(
            g.actor.store_id,
            actor=g.actor,
            supplier_ids=cmd.supplier_ids,
        )
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"purchase_orders": [po.to_dict() for po in created]}), 201
