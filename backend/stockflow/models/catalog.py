from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Supplier(db.Model):
    """
    Store-scoped supplier directory record.

    user_id links the supplier's own login (if any) so supplier-side commands
    (quotations, shipping, rejection) can be matched to the acting user.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.CheckConstraint("lead_time_days >= 0", name="ck_suppliers_lead_time_nonneg"),
        db.Index("ix_suppliers_store_active", "store_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    lead_time_days = db.Column(db.Integer, nullable=False, default=3)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("suppliers", lazy=True))

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "lead_time_days": self.lead_time_days,
            "user_id": self.user_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    STOCK:
    stock_cache is a materialized counter of SUM(stock_ledger_entries.delta)
    for this product. It is written only by stock_ledger_service inside the
    same transaction as the ledger row, and can always be rebuilt by replaying
    the ledger. It is never the authority for on-hand quantity.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("store_id", "sku", name="uq_products_store_sku"),
        db.CheckConstraint("reorder_point >= 0", name="ck_products_reorder_point_nonneg"),
        db.CheckConstraint("reorder_qty >= 0", name="ck_products_reorder_qty_nonneg"),
        db.Index("ix_products_store_active", "store_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in paise
    price_paise = db.Column(db.Integer, nullable=True)
    cost_price_paise = db.Column(db.Integer, nullable=True)

    reorder_point = db.Column(db.Integer, nullable=False, default=0)
    reorder_qty = db.Column(db.Integer, nullable=False, default=0)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    stock_cache = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "sku": self.sku,
            "name": self.name,
            "price_paise": self.price_paise,
            "cost_price_paise": self.cost_price_paise,
            "reorder_point": self.reorder_point,
            "reorder_qty": self.reorder_qty,
            "supplier_id": self.supplier_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
