# Overview: Store-side decision gate for customer orders; confirmation debits the stock ledger.

"""
Order Confirmation Gate

================================================================================
STATE MACHINE (customer orders):
    PENDING | AWAITING_CONFIRMATION -> CONFIRMED   (stock debited)
    PENDING | AWAITING_CONFIRMATION -> REJECTED    (no stock effect)
    PENDING | AWAITING_CONFIRMATION -> CANCELLED   (no stock effect)
    CONFIRMED                       -> CANCELLED   (stock credited back)

RULES:
1. needs_confirmation() is the one predicate for "waiting on the store".
2. confirm_order() flushes the status change (version guarded) first, then
   re-validates stock, then appends ORDER_CONFIRM entries in ascending
   product id order. Any shortage aborts the whole confirmation: status
   unchanged, zero ledger rows.
3. A second confirm of a CONFIRMED order raises AlreadyProcessed; so does a
   second reject of a REJECTED one.
4. Cancelling a confirmed order never deletes ledger rows; it appends one
   compensating ORDER_CANCEL entry per product.
================================================================================
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.exc import IntegrityError

from ..errors import (
    AlreadyProcessed,
    InsufficientStock,
    InvalidTransition,
    NegativeStock,
    NotFound,
    Unauthorized,
    ValidationError,
)
from ..extensions import db
from ..models import (
    CustomerOrder,
    CustomerOrderItem,
    CustomerOrderStatus,
    LedgerRefType,
    PaymentMethod,
    Product,
)
from ..time_utils import utcnow
from ..validation import OrderLine, require_text
from . import audit_service, document_service, stock_ledger_service
from .authorization import Actor, require_store_owner
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger("stockflow.orders")

GATED_STATUSES = frozenset({
    CustomerOrderStatus.PENDING,
    CustomerOrderStatus.AWAITING_CONFIRMATION,
})


@dataclass(frozen=True)
class StockShortage:
    product_id: int
    sku: str
    requested: int
    available: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "requested": self.requested,
            "available": self.available,
        }


def needs_confirmation(order: CustomerOrder) -> bool:
    """True when the order waits on a store decision before stock moves."""
    if order.status == CustomerOrderStatus.AWAITING_CONFIRMATION:
        return True
    return order.status == CustomerOrderStatus.PENDING and order.payment_method == PaymentMethod.COD


def _quantities_by_product(order: CustomerOrder) -> dict[int, int]:
    totals: dict[int, int] = defaultdict(int)
    for item in order.items:
        totals[item.product_id] += item.qty
    return dict(totals)


def check_stock_availability(order: CustomerOrder) -> list[StockShortage]:
    """Shortages against ledger-derived stock. Empty list means the order can be confirmed."""
    wanted = _quantities_by_product(order)
    stock = stock_ledger_service.current_stock_map(wanted)
    skus = dict(
        db.session.query(Product.id, Product.sku).filter(Product.id.in_(list(wanted))).all()
    ) if wanted else {}

    shortages = []
    for product_id in sorted(wanted):
        available = stock.get(product_id, 0)
        if wanted[product_id] > available:
            shortages.append(StockShortage(
                product_id=product_id,
                sku=skus.get(product_id, ""),
                requested=wanted[product_id],
                available=available,
            ))
    return shortages


def load_order(order_id: int, *, lock: bool = False) -> CustomerOrder:
    query = db.session.query(CustomerOrder).filter(CustomerOrder.id == order_id)
    if lock:
        query = lock_for_update(query)
    order = query.populate_existing().first()
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def get_order(order_id: int, *, actor: Actor) -> CustomerOrder:
    order = load_order(order_id)
    if actor.is_store_owner and actor.store_id == order.store_id:
        return order
    if order.customer_user_id is not None and actor.user_id == order.customer_user_id:
        return order
    raise Unauthorized("Order access denied")


def _record(order: CustomerOrder, *, action: str, actor: Actor, previous, note: str | None = None) -> None:
    audit_service.record_event(
        store_id=order.store_id,
        entity_type=audit_service.ENTITY_CUSTOMER_ORDER,
        entity_id=order.id,
        action=action,
        actor=actor,
        previous_status=previous,
        new_status=order.status,
        note=note,
    )
    logger.info(
        "order status changed",
        extra={
            "order_id": order.id,
            "order_number": order.order_number,
            "from": getattr(previous, "value", previous),
            "to": order.status.value,
        },
    )


def create_customer_order(
    *,
    store_id: int,
    payment_method: str,
    items: Iterable[OrderLine],
    actor: Actor,
    buyer_name: str | None = None,
) -> CustomerOrder:
    """
    Place an order with prices snapshotted from the catalog.

    COD orders start in AWAITING_CONFIRMATION; prepaid ones in PENDING.
    No stock moves until the store confirms.
    """
    try:
        method = PaymentMethod(str(payment_method).upper())
    except ValueError:
        raise ValidationError(f"Unknown payment method: {payment_method}", field="payment_method")
    lines = list(items)
    if not lines:
        raise ValidationError("An order needs at least one item", field="items")
    if actor.is_store_owner and actor.store_id != store_id:
        raise Unauthorized("Store access denied")

    def _op():
        product_ids = {line.product_id for line in lines}
        products = {
            p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
        }
        order_items = []
        total = 0
        for line in lines:
            product = products.get(line.product_id)
            if product is None or product.store_id != store_id:
                raise NotFound(f"Product {line.product_id} not found in store {store_id}")
            if not product.is_active:
                raise ValidationError(f"Product {product.sku} is not available")
            if line.qty <= 0:
                raise ValidationError(f"Quantity for {product.sku} must be positive")
            price = product.price_paise or 0
            order_items.append(CustomerOrderItem(product_id=product.id, qty=line.qty, price_snap_paise=price))
            total += price * line.qty

        number = document_service.next_document_number(
            store_id=store_id,
            document_type=document_service.CUSTOMER_ORDER,
            prefix="ORD",
        )
        status = (
            CustomerOrderStatus.AWAITING_CONFIRMATION
            if method == PaymentMethod.COD
            else CustomerOrderStatus.PENDING
        )
        order = CustomerOrder(
            store_id=store_id,
            order_number=number,
            customer_user_id=actor.user_id if not actor.is_store_owner else None,
            buyer_name=buyer_name,
            status=status,
            payment_method=method,
            total_amount_paise=total,
        )
        order.items = order_items
        db.session.add(order)
        db.session.flush()
        _record(order, action="order.created", actor=actor, previous=None)
        db.session.commit()
        return order

    return run_with_retry(_op, retry_on=(IntegrityError,))


def confirm_order(order_id: int, *, actor: Actor, reason: str | None = None) -> CustomerOrder:
    """
    Confirm a gated order and debit its items from stock.

    Raises:
        AlreadyProcessed: order is already CONFIRMED
        InvalidTransition: order is not waiting on a decision
        InsufficientStock: any product is short; details list every shortage
    """
    def _op():
        order = load_order(order_id, lock=True)
        require_store_owner(actor, order.store_id)
        if order.status == CustomerOrderStatus.CONFIRMED:
            raise AlreadyProcessed(f"Order {order.order_number} is already CONFIRMED", status="CONFIRMED")
        if not needs_confirmation(order):
            raise InvalidTransition(
                f"Order {order.order_number} is {order.status.value} and cannot be confirmed",
                status=order.status.value,
            )

        previous = order.status
        order.status = CustomerOrderStatus.CONFIRMED
        order.confirmed_at = utcnow()
        order.decision_reason = reason
        db.session.flush()

        shortages = check_stock_availability(order)
        if shortages:
            raise InsufficientStock(
                f"Order {order.order_number} cannot be confirmed: insufficient stock",
                shortages=[s.to_dict() for s in shortages],
            )

        for product_id, qty in sorted(_quantities_by_product(order).items()):
            try:
                stock_ledger_service.append_entry(
                    store_id=order.store_id,
                    product_id=product_id,
                    ref_type=LedgerRefType.ORDER_CONFIRM,
                    ref_id=order.id,
                    delta=-qty,
                    note=f"Order {order.order_number} confirmed",
                    actor_user_id=actor.user_id,
                )
            except NegativeStock as exc:
                shortage = StockShortage(
                    product_id=product_id,
                    sku=db.session.get(Product, product_id).sku,
                    requested=exc.details["requested"],
                    available=exc.details["available"],
                )
                raise InsufficientStock(
                    f"Order {order.order_number} cannot be confirmed: insufficient stock",
                    shortages=[shortage.to_dict()],
                ) from exc

        _record(order, action="order.confirmed", actor=actor, previous=previous, note=reason)
        db.session.commit()
        return order

    return run_with_retry(_op)


def reject_order(order_id: int, reason: str, *, actor: Actor) -> CustomerOrder:
    """Decline a gated order. reason is required. No stock effect."""
    reason = require_text(reason, "reason", max_length=500)

    def _op():
        order = load_order(order_id, lock=True)
        require_store_owner(actor, order.store_id)
        if order.status == CustomerOrderStatus.REJECTED:
            raise AlreadyProcessed(f"Order {order.order_number} is already REJECTED", status="REJECTED")
        if not needs_confirmation(order):
            raise InvalidTransition(
                f"Order {order.order_number} is {order.status.value} and cannot be rejected",
                status=order.status.value,
            )

        previous = order.status
        order.status = CustomerOrderStatus.REJECTED
        order.rejected_at = utcnow()
        order.decision_reason = reason
        db.session.flush()

        _record(order, action="order.rejected", actor=actor, previous=previous, note=reason)
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, reason: str, *, actor: Actor) -> CustomerOrder:
    """
    Cancel an open or confirmed order.

    A confirmed order gets one ORDER_CANCEL entry (+qty) per product, so
    the debit is compensated rather than erased.
    """
    reason = require_text(reason, "reason", max_length=500)

    def _op():
        order = load_order(order_id, lock=True)
        require_store_owner(actor, order.store_id)
        if order.status == CustomerOrderStatus.CANCELLED:
            raise AlreadyProcessed(f"Order {order.order_number} is already CANCELLED", status="CANCELLED")
        if order.status not in GATED_STATUSES and order.status != CustomerOrderStatus.CONFIRMED:
            raise InvalidTransition(
                f"Order {order.order_number} is {order.status.value} and cannot be cancelled",
                status=order.status.value,
            )

        previous = order.status
        order.status = CustomerOrderStatus.CANCELLED
        order.cancelled_at = utcnow()
        order.decision_reason = reason
        db.session.flush()

        if previous == CustomerOrderStatus.CONFIRMED:
            for product_id, qty in sorted(_quantities_by_product(order).items()):
                stock_ledger_service.append_entry(
                    store_id=order.store_id,
                    product_id=product_id,
                    ref_type=LedgerRefType.ORDER_CANCEL,
                    ref_id=order.id,
                    delta=qty,
                    note=f"Order {order.order_number} cancelled",
                    actor_user_id=actor.user_id,
                )

        _record(order, action="order.cancelled", actor=actor, previous=previous, note=reason)
        db.session.commit()
        return order

    return run_with_retry(_op)
