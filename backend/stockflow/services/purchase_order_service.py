# Overview: Purchase order commands: creation, placement, shipping, receipt, cancellation and reads.

"""
Purchase Order Service

Store side:    create -> place -> (quotation round, see quotation_service)
               -> receive, or cancel at any non-terminal point
Supplier side: ship an approved PO, or reject before shipment

Every command:
- loads the PO inside its own transaction (row lock where supported),
- checks the actor against the PO's store or supplier,
- moves status through po_state_machine.apply_transition(),
- commits once; run_with_retry() rolls back on any failure.

RECEIPT:
mark_received() is the only PO command with a stock effect. The status flush
happens before the ledger writes, so a duplicate or concurrent receipt fails
with AlreadyProcessed (or a version conflict that retries into it) and the
ledger sees exactly one PO_RECEIPT per item.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import (
    LedgerRefType,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    Supplier,
)
from ..validation import PurchaseOrderLine
from . import audit_service, document_service, stock_ledger_service
from .authorization import Actor, require_po_party, require_store_owner, require_supplier
from .concurrency import lock_for_update, run_with_retry
from .po_state_machine import apply_transition, check_transition

logger = logging.getLogger("stockflow.purchasing")


def load_purchase_order(po_id: int, *, lock: bool = False) -> PurchaseOrder:
    query = db.session.query(PurchaseOrder).filter(PurchaseOrder.id == po_id)
    if lock:
        query = lock_for_update(query)
    po = query.populate_existing().first()
    if po is None:
        raise NotFound(f"Purchase order {po_id} not found")
    return po


def _load_supplier(store_id: int, supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if supplier is None:
        raise NotFound(f"Supplier {supplier_id} not found")
    if supplier.store_id != store_id:
        raise ValidationError(f"Supplier {supplier_id} does not belong to store {store_id}")
    if not supplier.is_active:
        raise ValidationError(f"Supplier {supplier.name} is inactive")
    return supplier


def build_purchase_order(
    *,
    store_id: int,
    supplier: Supplier,
    lines: Iterable[PurchaseOrderLine],
    actor: Actor,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Create a DRAFT PO with its items inside the caller's transaction.

    Item cost defaults to the product's cost price. Does not commit.
    """
    lines = list(lines)
    if not lines:
        raise ValidationError("A purchase order needs at least one item")
    product_ids = [line.product_id for line in lines]
    if len(set(product_ids)) != len(product_ids):
        raise ValidationError("Each product may appear only once per purchase order")

    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    items = []
    for line in lines:
        product = products.get(line.product_id)
        if product is None:
            raise NotFound(f"Product {line.product_id} not found")
        if product.store_id != store_id:
            raise ValidationError(f"Product {line.product_id} does not belong to store {store_id}")
        if line.qty <= 0:
            raise ValidationError(f"Quantity for {product.sku} must be positive")
        cost = product.cost_price_paise if line.cost_paise is None else line.cost_paise
        if cost is None or cost < 0:
            raise ValidationError(f"Cost for {product.sku} must be >= 0")
        items.append(PurchaseOrderItem(product_id=product.id, qty=line.qty, cost_paise=cost))

    code = document_service.next_document_number(
        store_id=store_id,
        document_type=document_service.PURCHASE_ORDER,
        prefix="PO",
    )
    po = PurchaseOrder(
        store_id=store_id,
        supplier_id=supplier.id,
        code=code,
        status=PurchaseOrderStatus.DRAFT,
        notes=notes,
        created_by_user_id=actor.user_id,
    )
    po.items = items
    po.recompute_totals(use_quotes=False)
    db.session.add(po)
    db.session.flush()

    audit_service.record_event(
        store_id=store_id,
        entity_type=audit_service.ENTITY_PURCHASE_ORDER,
        entity_id=po.id,
        action="po.created",
        actor=actor,
        new_status=PurchaseOrderStatus.DRAFT,
        note=notes,
    )
    logger.info(
        "purchase order created",
        extra={"po_id": po.id, "code": po.code, "supplier_id": supplier.id, "items": len(items)},
    )
    return po


def create_purchase_order(
    *,
    store_id: int,
    supplier_id: int,
    items: Iterable[PurchaseOrderLine],
    actor: Actor,
    notes: str | None = None,
) -> PurchaseOrder:
    require_store_owner(actor, store_id)
    lines = list(items)

    def _op():
        supplier = _load_supplier(store_id, supplier_id)
        po = build_purchase_order(store_id=store_id, supplier=supplier, lines=lines, actor=actor, notes=notes)
        db.session.commit()
        return po

    # IntegrityError: two first-ever allocations raced on the sequence row
    return run_with_retry(_op, retry_on=(IntegrityError,))


def get_purchase_order(po_id: int, *, actor: Actor) -> PurchaseOrder:
    po = load_purchase_order(po_id)
    require_po_party(actor, store_id=po.store_id, supplier_id=po.supplier_id)
    return po


def list_purchase_orders(
    *,
    store_id: int | None = None,
    supplier_id: int | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[PurchaseOrder], int]:
    """
    List purchase orders for a store or for a supplier, newest first.

    Returns:
        Tuple of (purchase orders, total count)
    """
    if store_id is None and supplier_id is None:
        raise ValidationError("store_id or supplier_id is required")

    query = db.session.query(PurchaseOrder)
    if store_id is not None:
        query = query.filter(PurchaseOrder.store_id == store_id)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if status:
        try:
            query = query.filter(PurchaseOrder.status == PurchaseOrderStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown purchase order status: {status}")

    total = query.count()
    rows = (
        query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def list_audit_events(po_id: int, *, actor: Actor) -> list:
    po = get_purchase_order(po_id, actor=actor)
    return audit_service.list_events(audit_service.ENTITY_PURCHASE_ORDER, po.id)


def place_purchase_order(po_id: int, *, actor: Actor) -> PurchaseOrder:
    """DRAFT -> SENT. Needs at least one item, every estimate >= 0."""
    def _op():
        po = load_purchase_order(po_id, lock=True)
        require_store_owner(actor, po.store_id)
        check_transition(po, PurchaseOrderStatus.SENT)

        if not po.items:
            raise ValidationError(f"Purchase order {po.code} has no items")
        for item in po.items:
            if item.cost_paise is None or item.cost_paise < 0:
                raise ValidationError(f"Item {item.id} has an invalid cost", item_id=item.id)

        po.recompute_totals(use_quotes=False)
        apply_transition(po, PurchaseOrderStatus.SENT, actor=actor, action="po.placed")
        db.session.commit()
        return po

    return run_with_retry(_op)


def mark_shipped(po_id: int, *, actor: Actor, notes: str | None = None) -> PurchaseOrder:
    """QUOTATION_APPROVED -> SHIPPED, by the addressed supplier."""
    def _op():
        po = load_purchase_order(po_id, lock=True)
        require_supplier(actor, po.supplier_id)
        apply_transition(po, PurchaseOrderStatus.SHIPPED, actor=actor, action="po.shipped", note=notes)
        db.session.commit()
        return po

    return run_with_retry(_op)


def mark_received(po_id: int, *, actor: Actor) -> PurchaseOrder:
    """
    SHIPPED -> RECEIVED, and one PO_RECEIPT ledger entry per item.

    Entries carry +qty at the item's effective unit cost (quote, else
    estimate). Status and ledger rows commit together.
    """
    def _op():
        po = load_purchase_order(po_id, lock=True)
        require_store_owner(actor, po.store_id)
        apply_transition(po, PurchaseOrderStatus.RECEIVED, actor=actor, action="po.received")

        for item in sorted(po.items, key=lambda i: i.product_id):
            stock_ledger_service.append_entry(
                store_id=po.store_id,
                product_id=item.product_id,
                ref_type=LedgerRefType.PO_RECEIPT,
                ref_id=po.id,
                delta=item.qty,
                unit_cost_paise=item.effective_unit_cost,
                note=f"Received on {po.code}",
                actor_user_id=actor.user_id,
            )
        db.session.commit()
        return po

    return run_with_retry(_op)


def cancel_purchase_order(po_id: int, *, actor: Actor, reason: str | None = None) -> PurchaseOrder:
    """Store cancels from any non-terminal status."""
    def _op():
        po = load_purchase_order(po_id, lock=True)
        require_store_owner(actor, po.store_id)
        check_transition(po, PurchaseOrderStatus.CANCELLED)
        po.cancellation_reason = reason
        apply_transition(po, PurchaseOrderStatus.CANCELLED, actor=actor, action="po.cancelled", note=reason)
        db.session.commit()
        return po

    return run_with_retry(_op)


def reject_purchase_order(po_id: int, *, actor: Actor, reason: str | None = None) -> PurchaseOrder:
    """Supplier declines the PO before shipment."""
    def _op():
        po = load_purchase_order(po_id, lock=True)
        require_supplier(actor, po.supplier_id)
        check_transition(po, PurchaseOrderStatus.REJECTED)
        po.cancellation_reason = reason
        apply_transition(po, PurchaseOrderStatus.REJECTED, actor=actor, action="po.rejected", note=reason)
        db.session.commit()
        return po

    return run_with_retry(_op)
