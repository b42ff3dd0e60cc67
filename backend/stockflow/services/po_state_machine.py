# Overview: The one transition table for purchase order status, and the only place status is written.

"""
Purchase Order State Machine

================================================================================
STATE MACHINE:
    DRAFT -> SENT -> QUOTATION_REQUESTED -> QUOTATION_SUBMITTED -> QUOTATION_APPROVED
          -> SHIPPED -> RECEIVED

    QUOTATION_SUBMITTED -> QUOTATION_REVISION_REQUESTED -> QUOTATION_SUBMITTED
    QUOTATION_SUBMITTED -> QUOTATION_REJECTED                     (terminal)
    any non-terminal     -> CANCELLED   (store)                   (terminal)
    pre-shipment         -> REJECTED    (supplier)                (terminal)

RULES:
1. Status moves only along TRANSITIONS; no skipping, no reversing.
2. A second receive of a RECEIVED PO raises AlreadyProcessed.
   Every other edge outside the table, self-edges included, raises
   InvalidTransition.
3. Terminal statuses have no outgoing edges.
4. apply_transition() flushes the status change immediately so the
   version_id guard fires before any side effect (ledger writes) runs.
5. Every transition appends an AuditEvent in the same transaction.
================================================================================
"""

from __future__ import annotations

import logging

from ..errors import AlreadyProcessed, InvalidTransition
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderStatus as S
from ..time_utils import utcnow
from . import audit_service
from .authorization import Actor

logger = logging.getLogger("stockflow.purchasing")

TRANSITIONS: dict[S, frozenset[S]] = {
    S.DRAFT: frozenset({S.SENT, S.CANCELLED, S.REJECTED}),
    S.SENT: frozenset({S.QUOTATION_REQUESTED, S.CANCELLED, S.REJECTED}),
    S.QUOTATION_REQUESTED: frozenset({S.QUOTATION_SUBMITTED, S.CANCELLED, S.REJECTED}),
    S.QUOTATION_SUBMITTED: frozenset({
        S.QUOTATION_APPROVED,
        S.QUOTATION_REVISION_REQUESTED,
        S.QUOTATION_REJECTED,
        S.CANCELLED,
        S.REJECTED,
    }),
    S.QUOTATION_REVISION_REQUESTED: frozenset({S.QUOTATION_SUBMITTED, S.CANCELLED, S.REJECTED}),
    S.QUOTATION_APPROVED: frozenset({S.SHIPPED, S.CANCELLED, S.REJECTED}),
    S.SHIPPED: frozenset({S.RECEIVED, S.CANCELLED}),
    S.RECEIVED: frozenset(),
    S.REJECTED: frozenset(),
    S.CANCELLED: frozenset(),
    S.QUOTATION_REJECTED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

# Timestamp column stamped when a PO enters the status
_TIMESTAMP_FIELDS = {
    S.SENT: "placed_at",
    S.QUOTATION_REQUESTED: "quotation_requested_at",
    S.QUOTATION_SUBMITTED: "quotation_submitted_at",
    S.QUOTATION_APPROVED: "quotation_approved_at",
    S.QUOTATION_REJECTED: "quotation_rejected_at",
    S.SHIPPED: "shipped_at",
    S.RECEIVED: "received_at",
    S.CANCELLED: "cancelled_at",
    S.REJECTED: "rejected_at",
}


def can_transition(current: S, target: S) -> bool:
    return S(target) in TRANSITIONS[S(current)]


def check_transition(po: PurchaseOrder, target: S) -> None:
    """Raise unless po may move to target. Does not touch po."""
    target = S(target)
    if po.status == target == S.RECEIVED:
        raise AlreadyProcessed(
            f"Purchase order {po.code} is already {target.value}",
            status=target.value,
        )
    if not can_transition(po.status, target):
        raise InvalidTransition(
            f"Cannot move purchase order {po.code} from {po.status.value} to {target.value}",
            status=po.status.value,
            target=target.value,
        )


def apply_transition(
    po: PurchaseOrder,
    target: S,
    *,
    actor: Actor,
    action: str,
    note: str | None = None,
) -> PurchaseOrder:
    """
    Move po to target inside the caller's transaction.

    The caller has already applied the guard-specific edits (quotes, notes,
    totals) to po. Flushes, so a concurrent writer holding the same
    version_id fails here with StaleDataError. Does not commit.
    """
    target = S(target)
    check_transition(po, target)

    previous = po.status
    po.status = target
    stamp = _TIMESTAMP_FIELDS.get(target)
    if stamp:
        setattr(po, stamp, utcnow())
    db.session.flush()

    audit_service.record_event(
        store_id=po.store_id,
        entity_type=audit_service.ENTITY_PURCHASE_ORDER,
        entity_id=po.id,
        action=action,
        actor=actor,
        previous_status=previous,
        new_status=target,
        note=note,
    )
    logger.info(
        "purchase order transition",
        extra={
            "po_id": po.id,
            "code": po.code,
            "from": previous.value,
            "to": target.value,
            "actor_user_id": actor.user_id,
        },
    )
    return po
