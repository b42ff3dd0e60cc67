# Overview: Append-only status history for workflow aggregates.

from __future__ import annotations

from ..extensions import db
from ..models import AuditEvent
from .authorization import Actor

"""
Audit trail invariants

- Append-only: no updates or deletes of existing events.
- Events are written inside the same DB transaction as the change they
  record; nothing here commits.
"""

ENTITY_PURCHASE_ORDER = "purchase_order"
ENTITY_CUSTOMER_ORDER = "customer_order"
ENTITY_STOCK = "stock"


def _status_value(status) -> str | None:
    if status is None:
        return None
    return getattr(status, "value", status)


def record_event(
    *,
    store_id: int,
    entity_type: str,
    entity_id: int,
    action: str,
    actor: Actor | None = None,
    previous_status=None,
    new_status=None,
    note: str | None = None,
) -> AuditEvent:
    ev = AuditEvent(
        store_id=store_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        previous_status=_status_value(previous_status),
        new_status=_status_value(new_status),
        actor_user_id=actor.user_id if actor else None,
        actor_role=actor.role if actor else None,
        note=note,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_events(entity_type: str, entity_id: int, *, limit: int = 200) -> list[AuditEvent]:
    return (
        db.session.query(AuditEvent)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc())
        .limit(limit)
        .all()
    )
