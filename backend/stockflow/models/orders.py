from __future__ import annotations

import enum

from ..extensions import db
from ..time_utils import to_utc_z


class CustomerOrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    COD = "COD"
    UPI = "UPI"
    CARD = "CARD"


class CustomerOrder(db.Model):
    """
    A customer's storefront order.

    Orders that need a store-side decision (see
    order_confirmation_service.needs_confirmation) are debited from stock
    only when confirmed. version_id guards against two concurrent decisions.
    """
    __tablename__ = "customer_orders"
    __table_args__ = (
        db.UniqueConstraint("store_id", "order_number", name="uq_customer_orders_store_number"),
        db.Index("ix_customer_orders_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    order_number = db.Column(db.String(32), nullable=False)
    customer_user_id = db.Column(db.Integer, nullable=True, index=True)
    buyer_name = db.Column(db.String(255), nullable=True)

    status = db.Column(
        db.Enum(CustomerOrderStatus, name="customer_order_status", native_enum=False, length=32, validate_strings=True),
        nullable=False,
        default=CustomerOrderStatus.PENDING,
    )
    payment_method = db.Column(
        db.Enum(PaymentMethod, name="payment_method", native_enum=False, length=16, validate_strings=True),
        nullable=False,
    )

    total_amount_paise = db.Column(db.Integer, nullable=False, default=0)
    decision_reason = db.Column(db.Text, nullable=True)

    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("customer_orders", lazy=True))
    items = db.relationship(
        "CustomerOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="CustomerOrderItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<CustomerOrder id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "order_number": self.order_number,
            "customer_user_id": self.customer_user_id,
            "buyer_name": self.buyer_name,
            "status": self.status.value if self.status else None,
            "payment_method": self.payment_method.value if self.payment_method else None,
            "total_amount_paise": self.total_amount_paise,
            "decision_reason": self.decision_reason,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }


class CustomerOrderItem(db.Model):
    __tablename__ = "customer_order_items"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_customer_order_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("customer_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    qty = db.Column(db.Integer, nullable=False)
    price_snap_paise = db.Column(db.Integer, nullable=False, default=0)

    order = db.relationship("CustomerOrder", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "qty": self.qty,
            "price_snap_paise": self.price_snap_paise,
        }
