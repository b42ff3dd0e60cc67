from __future__ import annotations

import logging

from sqlalchemy import event

from ..errors import ImmutabilityViolation
from ..extensions import db
from ..time_utils import to_utc_z
from .immutability import append_only

logger = logging.getLogger("stockflow.audit")


class AuditEvent(db.Model):
    """
    Append-only status history for purchase orders, customer orders and
    manual stock adjustments.

    Written in the same DB transaction as the change it records, so a rolled
    back command leaves no audit row behind.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(64), nullable=False)
    previous_status = db.Column(db.String(40), nullable=True)
    new_status = db.Column(db.String(40), nullable=True)
    actor_user_id = db.Column(db.Integer, nullable=True)
    actor_role = db.Column(db.String(32), nullable=True)
    note = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "actor_user_id": self.actor_user_id,
            "actor_role": self.actor_role,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }


def _refuse_audit_change(mapper, connection, target):
    logger.error(
        "immutability violation blocked",
        extra={"entity": "AuditEvent", "entity_id": target.id},
    )
    raise ImmutabilityViolation(f"Audit event {target.id} is append-only")


event.listen(AuditEvent, "before_update", _refuse_audit_change)
event.listen(AuditEvent, "before_delete", _refuse_audit_change)
append_only(AuditEvent)
