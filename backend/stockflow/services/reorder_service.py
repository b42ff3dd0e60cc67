# Overview: Read-side reorder advice from ledger-derived stock, and draft PO generation per supplier.

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, PurchaseOrder, Supplier
from ..validation import PurchaseOrderLine
from .authorization import Actor, require_store_owner
from .concurrency import run_with_retry
from .purchase_order_service import build_purchase_order
from .stock_ledger_service import current_stock_map

logger = logging.getLogger("stockflow.reorder")


@dataclass(frozen=True)
class ReorderSuggestion:
    product_id: int
    sku: str
    name: str
    current_stock: int
    reorder_point: int
    reorder_qty: int
    proposed_qty: int
    days_of_cover: float
    unit_cost_paise: int
    supplier_id: int | None

    @property
    def estimated_cost_paise(self) -> int:
        return self.proposed_qty * self.unit_cost_paise

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "current_stock": self.current_stock,
            "reorder_point": self.reorder_point,
            "reorder_qty": self.reorder_qty,
            "proposed_qty": self.proposed_qty,
            "days_of_cover": round(self.days_of_cover, 2),
            "unit_cost_paise": self.unit_cost_paise,
            "estimated_cost_paise": self.estimated_cost_paise,
            "supplier_id": self.supplier_id,
        }


@dataclass
class SupplierReorderGroup:
    supplier_id: int
    supplier_name: str
    lead_time_days: int
    is_active: bool
    suggestions: list[ReorderSuggestion] = field(default_factory=list)

    @property
    def estimated_cost_paise(self) -> int:
        return sum(s.estimated_cost_paise for s in self.suggestions)

    def to_dict(self) -> dict:
        return {
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "lead_time_days": self.lead_time_days,
            "is_active": self.is_active,
            "estimated_cost_paise": self.estimated_cost_paise,
            "suggestions": [s.to_dict() for s in self.suggestions],
        }


@dataclass
class ReorderPlan:
    store_id: int
    groups: list[SupplierReorderGroup] = field(default_factory=list)
    unassigned: list[ReorderSuggestion] = field(default_factory=list)

    @property
    def suggestions(self) -> list[ReorderSuggestion]:
        out = [s for g in self.groups for s in g.suggestions]
        out.extend(self.unassigned)
        return out

    def to_dict(self) -> dict:
        return {
            "store_id": self.store_id,
            "groups": [g.to_dict() for g in self.groups],
            "unassigned": [s.to_dict() for s in self.unassigned],
        }


def proposed_quantity(current_stock: int, reorder_point: int, reorder_qty: int) -> int:
    """Top back up past the reorder point, never less than one reorder lot."""
    return max(reorder_qty, reorder_point - current_stock + reorder_qty)


def days_of_cover(current_stock: int, reorder_qty: int) -> float:
    return current_stock / max(reorder_qty or 1, 1)


def suggest_reorders(store_id: int) -> ReorderPlan:
    """
    Products at or below their reorder point, grouped by supplier.

    Read-only: stock comes from the ledger, nothing is written. Products
    with no supplier land in plan.unassigned. A product whose proposal
    works out to zero (no reorder lot configured) is left out.
    """
    products = (
        db.session.query(Product)
        .filter(Product.store_id == store_id, Product.is_active.is_(True))
        .order_by(Product.id)
        .all()
    )
    stock = current_stock_map(p.id for p in products)

    plan = ReorderPlan(store_id=store_id)
    groups: dict[int, SupplierReorderGroup] = {}

    for product in products:
        on_hand = stock.get(product.id, 0)
        if on_hand > product.reorder_point:
            continue
        qty = proposed_quantity(on_hand, product.reorder_point, product.reorder_qty)
        if qty <= 0:
            continue

        suggestion = ReorderSuggestion(
            product_id=product.id,
            sku=product.sku,
            name=product.name,
            current_stock=on_hand,
            reorder_point=product.reorder_point,
            reorder_qty=product.reorder_qty,
            proposed_qty=qty,
            days_of_cover=days_of_cover(on_hand, product.reorder_qty),
            unit_cost_paise=product.cost_price_paise or 0,
            supplier_id=product.supplier_id,
        )

        supplier: Supplier | None = product.supplier
        if supplier is None:
            plan.unassigned.append(suggestion)
            continue
        group = groups.get(supplier.id)
        if group is None:
            group = SupplierReorderGroup(
                supplier_id=supplier.id,
                supplier_name=supplier.name,
                lead_time_days=supplier.lead_time_days,
                is_active=supplier.is_active,
            )
            groups[supplier.id] = group
        group.suggestions.append(suggestion)

    plan.groups = sorted(groups.values(), key=lambda g: g.supplier_id)
    return plan


def create_purchase_orders_from_suggestions(
    store_id: int,
    *,
    actor: Actor,
    supplier_ids=None,
) -> list[PurchaseOrder]:
    """
    One DRAFT PO per supplier group, all in one transaction.

    supplier_ids narrows the groups; unassigned products and inactive
    suppliers are never ordered from.
    """
    require_store_owner(actor, store_id)
    wanted = set(supplier_ids) if supplier_ids else None

    def _op():
        plan = suggest_reorders(store_id)
        created = []
        for group in plan.groups:
            if wanted is not None and group.supplier_id not in wanted:
                continue
            if not group.is_active:
                logger.info("skipping inactive supplier", extra={"supplier_id": group.supplier_id})
                continue
            supplier = db.session.get(Supplier, group.supplier_id)
            lines = [
                PurchaseOrderLine(product_id=s.product_id, qty=s.proposed_qty, cost_paise=s.unit_cost_paise)
                for s in group.suggestions
            ]
            created.append(build_purchase_order(
                store_id=store_id,
                supplier=supplier,
                lines=lines,
                actor=actor,
                notes="Generated from reorder suggestions",
            ))
        db.session.commit()
        logger.info(
            "reorder purchase orders created",
            extra={"store_id": store_id, "count": len(created)},
        )
        return created

    return run_with_retry(_op, retry_on=(IntegrityError,))
