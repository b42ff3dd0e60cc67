# Overview: Supplier cost negotiation on top of the purchase order state machine.

from __future__ import annotations

import logging
from typing import Mapping

from ..errors import IncompleteQuotation, InvalidTransition, ValidationError
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderStatus, QUOTABLE_STATUSES
from ..validation import coerce_int, optional_text, require_text
from .authorization import Actor, require_store_owner, require_supplier
from .concurrency import run_with_retry
from .po_state_machine import apply_transition, check_transition
from .purchase_order_service import load_purchase_order

logger = logging.getLogger("stockflow.purchasing")


def request_quotation(po_id: int, *, actor: Actor, notes: str | None = None) -> PurchaseOrder:
    """SENT -> QUOTATION_REQUESTED. notes go to the supplier as quotation_notes."""
    notes = optional_text(notes, "notes", max_length=2000)

    def _op():
        po = load_purchase_order(po_id, lock=True)
        require_store_owner(actor, po.store_id)
        check_transition(po, PurchaseOrderStatus.QUOTATION_REQUESTED)
        if notes:
            po.quotation_notes = notes
        apply_transition(
            po,
            PurchaseOrderStatus.QUOTATION_REQUESTED,
            actor=actor,
            action="quotation.requested",
            note=notes,
        )
        db.session.commit()
        return po

    return run_with_retry(_op)


def submit_quotation(
    po_id: int,
    quotes: Mapping[int, int],
    *,
    actor: Actor,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Supplier submits per-item costs: {item_id: quoted_cost_paise}.

    First round: every item must be quoted. Revision round: items left out
    keep the cost quoted in the previous round. If any item still has no
    quote the whole submission is refused with IncompleteQuotation and
    nothing is written.
    """
    notes = optional_text(notes, "notes", max_length=2000)
    cleaned: dict[int, int] = {}
    for raw_id, raw_cost in dict(quotes or {}).items():
        item_id = coerce_int(raw_id, "item_id", minimum=1)
        cleaned[item_id] = coerce_int(raw_cost, f"quoted_cost_paise[{item_id}]", minimum=0)

    def _op():
        po = load_purchase_order(po_id, lock=True)
        require_supplier(actor, po.supplier_id)
        if po.status not in QUOTABLE_STATUSES:
            raise InvalidTransition(
                f"Purchase order {po.code} is {po.status.value}; no quotation is awaited",
                status=po.status.value,
                target=PurchaseOrderStatus.QUOTATION_SUBMITTED.value,
            )

        items_by_id = {item.id: item for item in po.items}
        unknown = sorted(set(cleaned) - set(items_by_id))
        if unknown:
            raise ValidationError(
                f"Items {unknown} do not belong to purchase order {po.code}",
                item_ids=unknown,
            )

        revision_round = po.status == PurchaseOrderStatus.QUOTATION_REVISION_REQUESTED
        resolved: dict[int, int] = {}
        missing: list[int] = []
        for item_id, item in items_by_id.items():
            cost = cleaned.get(item_id)
            if cost is None and revision_round:
                cost = item.quoted_cost_paise
            if cost is None:
                missing.append(item_id)
            else:
                resolved[item_id] = cost

        if missing:
            raise IncompleteQuotation(
                f"Quotation for {po.code} is missing {len(missing)} of {len(items_by_id)} items",
                missing_item_ids=sorted(missing),
            )

        for item_id, cost in resolved.items():
            if items_by_id[item_id].quoted_cost_paise != cost:
                items_by_id[item_id].quoted_cost_paise = cost
        if notes:
            po.quotation_notes = notes
        po.recompute_totals(use_quotes=True)

        apply_transition(
            po,
            PurchaseOrderStatus.QUOTATION_SUBMITTED,
            actor=actor,
            action="quotation.submitted",
            note=notes,
        )
        db.session.commit()
        logger.info(
            "quotation submitted",
            extra={"po_id": po.id, "total_paise": po.total_paise, "revision": revision_round},
        )
        return po

    return run_with_retry(_op)


def request_revision(po_id: int, notes: str, *, actor: Actor) -> PurchaseOrder:
    """QUOTATION_SUBMITTED -> QUOTATION_REVISION_REQUESTED. notes are required."""
    notes = require_text(notes, "notes", max_length=2000)

    def _op():
        po = load_purchase_order(po_id, lock=True)
        require_store_owner(actor, po.store_id)
        check_transition(po, PurchaseOrderStatus.QUOTATION_REVISION_REQUESTED)
        po.quotation_notes = notes
        apply_transition(
            po,
            PurchaseOrderStatus.QUOTATION_REVISION_REQUESTED,
            actor=actor,
            action="quotation.revision_requested",
            note=notes,
        )
        db.session.commit()
        return po

    return run_with_retry(_op)


def approve_quotation(po_id: int, *, actor: Actor, notes: str | None = None) -> PurchaseOrder:
    def _op():
        po = load_purchase_order(po_id, lock=True)
        require_store_owner(actor, po.store_id)
        check_transition(po, PurchaseOrderStatus.QUOTATION_APPROVED)
        po.recompute_totals(use_quotes=True)
        apply_transition(
            po,
            PurchaseOrderStatus.QUOTATION_APPROVED,
            actor=actor,
            action="quotation.approved",
            note=notes,
        )
        db.session.commit()
        return po

    return run_with_retry(_op)


def reject_quotation(po_id: int, *, actor: Actor, reason: str | None = None) -> PurchaseOrder:
    """Terminal: the store walks away from this quotation."""
    def _op():
        po = load_purchase_order(po_id, lock=True)
        require_store_owner(actor, po.store_id)
        apply_transition(
            po,
            PurchaseOrderStatus.QUOTATION_REJECTED,
            actor=actor,
            action="quotation.rejected",
            note=reason,
        )
        db.session.commit()
        return po

    return run_with_retry(_op)
