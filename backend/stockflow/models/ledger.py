from __future__ import annotations

import enum
import logging

from sqlalchemy import event

from ..errors import ImmutabilityViolation
from ..extensions import db
from ..time_utils import to_utc_z
from .immutability import append_only

logger = logging.getLogger("stockflow.ledger")


class LedgerRefType(str, enum.Enum):
    PO_RECEIPT = "PO_RECEIPT"
    ORDER_CONFIRM = "ORDER_CONFIRM"
    ORDER_CANCEL = "ORDER_CANCEL"
    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"


class StockLedgerEntry(db.Model):
    """
    One signed stock movement for a product.

    Quantity on hand is SUM(delta) over a product's entries. Rows are
    append-only: the mapper listeners below refuse ORM updates and deletes of
    loaded rows, and `append_only` covers bulk statements and raw SQL.
    ref_type/ref_id point at the cause (purchase order, customer order);
    ref_id is NULL for manual adjustments.
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        db.CheckConstraint("delta <> 0", name="ck_stock_ledger_delta_nonzero"),
        db.Index("ix_stock_ledger_store_product", "store_id", "product_id"),
        db.Index("ix_stock_ledger_ref", "ref_type", "ref_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    ref_type = db.Column(
        db.Enum(LedgerRefType, name="ledger_ref_type", native_enum=False, length=32, validate_strings=True),
        nullable=False,
    )
    ref_id = db.Column(db.Integer, nullable=True)

    delta = db.Column(db.Integer, nullable=False)
    unit_cost_paise = db.Column(db.Integer, nullable=True)

    note = db.Column(db.String(255), nullable=True)
    actor_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product", backref=db.backref("ledger_entries", lazy="dynamic"))

    def __repr__(self) -> str:
        return (
            f"<StockLedgerEntry id={self.id} product_id={self.product_id} "
            f"ref={self.ref_type}:{self.ref_id} delta={self.delta}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_id": self.product_id,
            "ref_type": self.ref_type.value if self.ref_type else None,
            "ref_id": self.ref_id,
            "delta": self.delta,
            "unit_cost_paise": self.unit_cost_paise,
            "note": self.note,
            "actor_user_id": self.actor_user_id,
            "created_at": to_utc_z(self.created_at),
        }


def _refuse_ledger_update(mapper, connection, target):
    logger.error(
        "immutability violation blocked",
        extra={"entity": "StockLedgerEntry", "entity_id": target.id, "operation": "UPDATE"},
    )
    raise ImmutabilityViolation(f"Stock ledger entry {target.id} is immutable")


def _refuse_ledger_delete(mapper, connection, target):
    logger.error(
        "immutability violation blocked",
        extra={"entity": "StockLedgerEntry", "entity_id": target.id, "operation": "DELETE"},
    )
    raise ImmutabilityViolation(f"Stock ledger entry {target.id} cannot be deleted")


event.listen(StockLedgerEntry, "before_update", _refuse_ledger_update)
event.listen(StockLedgerEntry, "before_delete", _refuse_ledger_delete)
append_only(StockLedgerEntry)
