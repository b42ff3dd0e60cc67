from __future__ import annotations

import enum

from sqlalchemy.orm import validates

from ..errors import InvalidTransition
from ..extensions import db
from ..time_utils import to_utc_z


class PurchaseOrderStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    QUOTATION_REQUESTED = "QUOTATION_REQUESTED"
    QUOTATION_SUBMITTED = "QUOTATION_SUBMITTED"
    QUOTATION_REVISION_REQUESTED = "QUOTATION_REVISION_REQUESTED"
    QUOTATION_APPROVED = "QUOTATION_APPROVED"
    QUOTATION_REJECTED = "QUOTATION_REJECTED"
    SHIPPED = "SHIPPED"
    RECEIVED = "RECEIVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# Statuses in which a supplier may write quoted costs
QUOTABLE_STATUSES = frozenset({
    PurchaseOrderStatus.QUOTATION_REQUESTED,
    PurchaseOrderStatus.QUOTATION_REVISION_REQUESTED,
})


class PurchaseOrder(db.Model):
    """
    Purchase order header; owns its items as one aggregate.

    status changes only through po_state_machine.apply_transition().
    version_id is the optimistic lock: two sessions that both loaded the same
    version cannot both flush a status change.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_store_status", "store_id", "status"),
        db.Index("ix_purchase_orders_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False, unique=True)

    status = db.Column(
        db.Enum(PurchaseOrderStatus, name="purchase_order_status", native_enum=False, length=40, validate_strings=True),
        nullable=False,
        default=PurchaseOrderStatus.DRAFT,
    )

    notes = db.Column(db.Text, nullable=True)
    quotation_notes = db.Column(db.Text, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    subtotal_paise = db.Column(db.Integer, nullable=False, default=0)
    total_paise = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    placed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    quotation_requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    quotation_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    quotation_approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    quotation_rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("purchase_orders", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} code={self.code!r} status={self.status}>"

    def recompute_totals(self, *, use_quotes: bool) -> None:
        """Subtotal from quoted costs (use_quotes) or store estimates. No tax: total == subtotal."""
        subtotal = 0
        for item in self.items:
            unit = item.effective_unit_cost if use_quotes else item.cost_paise
            subtotal += item.qty * unit
        self.subtotal_paise = subtotal
        self.total_paise = subtotal

    def to_dict(self, *, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "supplier_id": self.supplier_id,
            "code": self.code,
            "status": self.status.value if self.status else None,
            "notes": self.notes,
            "quotation_notes": self.quotation_notes,
            "cancellation_reason": self.cancellation_reason,
            "subtotal_paise": self.subtotal_paise,
            "total_paise": self.total_paise,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "placed_at": to_utc_z(self.placed_at),
            "quotation_requested_at": to_utc_z(self.quotation_requested_at),
            "quotation_submitted_at": to_utc_z(self.quotation_submitted_at),
            "quotation_approved_at": to_utc_z(self.quotation_approved_at),
            "quotation_rejected_at": to_utc_z(self.quotation_rejected_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_po_items_qty_positive"),
        db.CheckConstraint("cost_paise >= 0", name="ck_po_items_cost_nonneg"),
        db.CheckConstraint(
            "quoted_cost_paise IS NULL OR quoted_cost_paise >= 0",
            name="ck_po_items_quoted_cost_nonneg",
        ),
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_po_items_order_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    qty = db.Column(db.Integer, nullable=False)
    cost_paise = db.Column(db.Integer, nullable=False, default=0)
    quoted_cost_paise = db.Column(db.Integer, nullable=True)

    purchase_order = db.relationship("PurchaseOrder", back_populates="items")
    product = db.relationship("Product")

    @validates("quoted_cost_paise")
    def _guard_quoted_cost(self, key, value):
        # Quotes are writable only while the owning PO awaits a quotation
        po = self.purchase_order
        if po is not None and po.status not in QUOTABLE_STATUSES:
            raise InvalidTransition(
                f"Quoted costs cannot change while purchase order {po.code} is {po.status.value}",
                status=po.status.value,
            )
        return value

    @property
    def effective_unit_cost(self) -> int:
        return self.quoted_cost_paise if self.quoted_cost_paise is not None else self.cost_paise

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "qty": self.qty,
            "cost_paise": self.cost_paise,
            "quoted_cost_paise": self.quoted_cost_paise,
            "line_total_paise": self.qty * self.effective_unit_cost,
        }
