# Overview: Flask API routes for purchase orders and their quotation round; parses input and returns JSON responses.

"""
Purchase Order Routes

Store owner: create, place, request quotation, request revision, approve or
reject a quotation, receive, cancel.
Supplier:    submit quotation, ship, reject.
Both parties may read a PO and its audit log.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import DomainError, error_response
from ..services import purchase_order_service, quotation_service
from ..services.authorization import ROLE_STORE_OWNER, ROLE_SUPPLIER
from ..validation import (
    CreatePurchaseOrderCommand,
    NotesCommand,
    ReasonCommand,
    RequestRevisionCommand,
    SubmitQuotationCommand,
    parse_pagination,
)

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


def _po_response(po, status: int = 200):
    return jsonify({"purchase_order": po.to_dict()}), status


@purchase_orders_bp.get("")
@require_actor
@require_role(ROLE_STORE_OWNER, ROLE_SUPPLIER)
def list_purchase_orders_route():
    """
    List purchase orders visible to the actor.

    Store owners see their store's POs; suppliers see POs addressed to them.

    Query parameters:
    - status: filter by status
    - limit / offset: pagination (limit max 500)
    """
    actor = g.actor
    try:
        limit, offset = parse_pagination(request.args)
        if actor.is_store_owner:
            scope = {"store_id": actor.store_id}
        else:
            scope = {"supplier_id": actor.supplier_id}
        rows, total = purchase_order_service.list_purchase_orders(
            **scope,
            status=request.args.get("status"),
            limit=limit,
            offset=offset,
        )
    except DomainError as exc:
        return error_response(exc)

    return jsonify({
        "items": [po.to_dict(include_items=False) for po in rows],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@purchase_orders_bp.post("")
@require_actor
@require_role(ROLE_STORE_OWNER)
def create_purchase_order_route():
    """
    Create a DRAFT purchase order for the actor's store.

    Request body:
    {
        "supplier_id": 1,
        "items": [{"product_id": 1, "qty": 20, "cost_paise": 10000}],
        "notes": "..."
    }
    """
    try:
        cmd = CreatePurchaseOrderCommand.from_payload(request.get_json(silent=True))
        po = purchase_order_service.create_purchase_order(
            store_id=g.actor.store_id,
            supplier_id=cmd.supplier_id,
            items=cmd.items,
            notes=cmd.notes,
            actor=g.actor,
        )
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po, 201)


@purchase_orders_bp.get("/<int:po_id>")
@require_actor
def get_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.get_purchase_order(po_id, actor=g.actor)
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po)


@purchase_orders_bp.get("/<int:po_id>/audit-logs")
@require_actor
def list_audit_logs_route(po_id: int):
    try:
        events = purchase_order_service.list_audit_events(po_id, actor=g.actor)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"items": [e.to_dict() for e in events]})


@purchase_orders_bp.post("/<int:po_id>/place")
@require_actor
@require_role(ROLE_STORE_OWNER)
def place_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.place_purchase_order(po_id, actor=g.actor)
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po)


@purchase_orders_bp.post("/<int:po_id>/request-quotation")
@require_actor
@require_role(ROLE_STORE_OWNER)
def request_quotation_route(po_id: int):
    try:
        cmd = NotesCommand.from_payload(request.get_json(silent=True))
        po = quotation_service.request_quotation(po_id, actor=g.actor, notes=cmd.notes)
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po)


@purchase_orders_bp.post("/<int:po_id>/submit-quotation")
@require_actor
@require_role(ROLE_SUPPLIER)
def submit_quotation_route(po_id: int):
    """
    Request body:
    {
        "items": [{"item_id": 7, "quoted_cost_paise": 9500}, ...],
        "notes": "..."
    }
    """
    try:
        cmd = SubmitQuotationCommand.from_payload(request.get_json(silent=True))
        po = quotation_service.submit_quotation(po_id, cmd.quotes, actor=g.actor, notes=cmd.notes)
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po)


@purchase_orders_bp.post("/<int:po_id>/request-revision")
@require_actor
@require_role(ROLE_STORE_OWNER)
def request_revision_route(po_id: int):
    try:
        cmd = RequestRevisionCommand.from_payload(request.get_json(silent=True))
        po = quotation_service.request_revision(po_id, cmd.notes, actor=g.actor)
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po)


@purchase_orders_bp.post("/<int:po_id>/approve-quotation")
@require_actor
@require_role(ROLE_STORE_OWNER)
def approve_quotation_route(po_id: int):
    try:
        cmd = NotesCommand.from_payload(request.get_json(silent=True))
        po = quotation_service.approve_quotation(po_id, actor=g.actor, notes=cmd.notes)
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po)


@purchase_orders_bp.post("/<int:po_id>/reject-quotation")
@require_actor
@require_role(ROLE_STORE_OWNER)
def reject_quotation_route(po_id: int):
    try:
        cmd = ReasonCommand.from_payload(request.get_json(silent=True))
        po = quotation_service.reject_quotation(po_id, actor=g.actor, reason=cmd.reason)
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po)


@purchase_orders_bp.post("/<int:po_id>/ship")
@require_actor
@require_role(ROLE_SUPPLIER)
def ship_purchase_order_route(po_id: int):
    try:
        cmd = NotesCommand.from_payload(request.get_json(silent=True))
        po = purchase_order_service.mark_shipped(po_id, actor=g.actor, notes=cmd.notes)
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po)


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_actor
@require_role(ROLE_STORE_OWNER)
def receive_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.mark_received(po_id, actor=g.actor)
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po)


@purchase_orders_bp.post("/<int:po_id>/cancel")
@require_actor
@require_role(ROLE_STORE_OWNER)
def cancel_purchase_order_route(po_id: int):
    try:
        cmd = ReasonCommand.from_payload(request.get_json(silent=True))
        po = purchase_order_service.cancel_purchase_order(po_id, actor=g.actor, reason=cmd.reason)
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po)


@purchase_orders_bp.post("/<int:po_id>/reject")
@require_actor
@require_role(ROLE_SUPPLIER)
def reject_purchase_order_route(po_id: int):
    try:
        cmd = ReasonCommand.from_payload(request.get_json(silent=True))
        po = purchase_order_service.reject_purchase_order(po_id, actor=g.actor, reason=cmd.reason)
    except DomainError as exc:
        return error_response(exc)
    return _po_response(po)
