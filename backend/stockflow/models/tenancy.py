from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Store(db.Model):
    """
    A tenant's storefront.

    Products, suppliers, purchase orders, customer orders and ledger rows are
    all scoped by store_id. Ownership (owner_user_id) is supplied by the
    external account directory and checked against the acting user.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    owner_user_id = db.Column(db.Integer, nullable=True, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "owner_user_id": self.owner_user_id,
            "created_at": to_utc_z(self.created_at),
        }
