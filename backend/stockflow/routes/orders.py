# Overview: Flask API routes for customer orders and the store's confirmation decision.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import DomainError, ValidationError, error_response
from ..services import order_confirmation_service
from ..services.authorization import ROLE_CUSTOMER, ROLE_STORE_OWNER, require_store_owner
from ..validation import CreateCustomerOrderCommand, ReasonCommand

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_actor
@require_role(ROLE_CUSTOMER, ROLE_STORE_OWNER)
def create_order_route():
    """
    Place a customer order.

    Request body:
    {
        "store_id": 1,                // required for customers
        "payment_method": "COD",      // COD, UPI, CARD
        "buyer_name": "...",
        "items": [{"product_id": 1, "qty": 2}]
    }
    """
    actor = g.actor
    try:
        cmd = CreateCustomerOrderCommand.from_payload(request.get_json(silent=True))
        store_id = cmd.store_id or (actor.store_id if actor.is_store_owner else None)
        if not store_id:
            raise ValidationError("store_id is required", field="store_id")
        order = order_confirmation_service.create_customer_order(
            store_id=store_id,
            payment_method=cmd.payment_method,
            items=cmd.items,
            buyer_name=cmd.buyer_name,
            actor=actor,
        )
    except DomainError as exc:
        return error_response(exc)
    return jsonify({
        "order": order.to_dict(),
        "needs_confirmation": order_confirmation_service.needs_confirmation(order),
    }), 201


@orders_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    try:
        order = order_confirmation_service.get_order(order_id, actor=g.actor)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({
        "order": order.to_dict(),
        "needs_confirmation": order_confirmation_service.needs_confirmation(order),
    })


@orders_bp.get("/<int:order_id>/stock-check")
@require_actor
@require_role(ROLE_STORE_OWNER)
def stock_check_route(order_id: int):
    """Preview: would confirming this order succeed against current stock?"""
    try:
        order = order_confirmation_service.load_order(order_id)
        require_store_owner(g.actor, order.store_id)
        shortages = order_confirmation_service.check_stock_availability(order)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({
        "order_id": order.id,
        "needs_confirmation": order_confirmation_service.needs_confirmation(order),
        "eligible": not shortages,
        "shortages": [s.to_dict() for s in shortages],
    })


@orders_bp.post("/<int:order_id>/confirm")
@require_actor
@require_role(ROLE_STORE_OWNER)
def confirm_order_route(order_id: int):
    try:
        cmd = ReasonCommand.from_payload(request.get_json(silent=True))
        order = order_confirmation_service.confirm_order(order_id, actor=g.actor, reason=cmd.reason)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"order": order.to_dict()})


@orders_bp.post("/<int:order_id>/reject")
@require_actor
@require_role(ROLE_STORE_OWNER)
def reject_order_route(order_id: int):
    try:
        cmd = ReasonCommand.from_payload(request.get_json(silent=True), required=True)
        order = order_confirmation_service.reject_order(order_id, cmd.reason, actor=g.actor)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"order": order.to_dict()})


@orders_bp.post("/<int:order_id>/cancel")
@require_actor
@require_role(ROLE_STORE_OWNER)
def cancel_order_route(order_id: int):
    try:
        cmd = ReasonCommand.from_payload(request.get_json(silent=True), required=True)
        order = order_confirmation_service.cancel_order(order_id, cmd.reason, actor=g.actor)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"order": order.to_dict()})
