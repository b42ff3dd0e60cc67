# Overview: Append-only stock ledger; the single source of truth for on-hand quantity.

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select, update

from ..errors import NegativeStock, NotFound, ValidationError
from ..extensions import db
from ..models import LedgerRefType, Product, StockLedgerEntry
from ..validation import coerce_int, require_text
from . import audit_service
from .authorization import Actor, require_store_owner
from .concurrency import lock_for_update, run_with_retry

"""
Stock Ledger Invariants (authoritative)

- On-hand quantity of a product is SUM(delta) over its ledger entries.
- Entries are append-only; the ORM refuses updates and deletes.
- products.stock_cache is a derived counter, updated in the same transaction
  as every append and rebuildable by replay. It is never trusted on its own:
  each append re-derives the sum under the product lock and repairs drift.
- ORDER_CONFIRM and MANUAL_ADJUSTMENT may never drive on-hand below zero.
  PO_RECEIPT and ORDER_CANCEL only add stock and are never refused.
- append_entry() never commits. It runs inside the transaction of the
  command that causes it (PO receipt, order confirmation, ...), so the
  ledger rows and the status change commit together or not at all.

Concurrency:
- Appends for one product serialize on that product's row: the counter
  UPDATE takes the row lock (the database write lock on SQLite) before the
  sum is read, so two decrements can never both pass the non-negative check
  on a stale read. Appends for different products share no lock.
"""

logger = logging.getLogger("stockflow.ledger")

NON_NEGATIVE_REF_TYPES = frozenset({
    LedgerRefType.ORDER_CONFIRM,
    LedgerRefType.MANUAL_ADJUSTMENT,
})


@dataclass(frozen=True)
class StockCheck:
    product_id: int
    cached: int
    derived: int

    @property
    def ok(self) -> bool:
        return self.cached == self.derived

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "cached_stock": self.cached,
            "current_stock": self.derived,
            "in_sync": self.ok,
        }


def _get_product(store_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    if product.store_id != store_id:
        raise ValidationError(f"Product {product_id} does not belong to store {store_id}")
    return product


def _ledger_sum(product_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(StockLedgerEntry.delta), 0)
    ).filter(StockLedgerEntry.product_id == product_id).scalar()
    return int(total or 0)


def _cached(product_id: int) -> int:
    value = db.session.query(Product.stock_cache).filter(Product.id == product_id).scalar()
    return int(value or 0)


def _lock_product(product_id: int, delta: int) -> None:
    # Row lock where supported, then the counter write; on SQLite the write is the lock.
    lock_for_update(db.session.query(Product.id).filter(Product.id == product_id)).first()
    db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock_cache=Product.stock_cache + delta)
        .execution_options(synchronize_session=False)
    )


def current_stock(product_id: int) -> int:
    """On-hand quantity, derived from the ledger."""
    if db.session.query(Product.id).filter(Product.id == product_id).scalar() is None:
        raise NotFound(f"Product {product_id} not found")
    return _ledger_sum(product_id)


def cached_stock(product_id: int) -> int:
    """The materialized counter. Use current_stock() for decisions."""
    if db.session.query(Product.id).filter(Product.id == product_id).scalar() is None:
        raise NotFound(f"Product {product_id} not found")
    return _cached(product_id)


def current_stock_map(product_ids) -> dict[int, int]:
    """Ledger-derived stock for several products in one query (missing ledger -> 0)."""
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    rows = (
        db.session.query(StockLedgerEntry.product_id, func.sum(StockLedgerEntry.delta))
        .filter(StockLedgerEntry.product_id.in_(ids))
        .group_by(StockLedgerEntry.product_id)
        .all()
    )
    stock = {pid: 0 for pid in ids}
    for pid, total in rows:
        stock[pid] = int(total or 0)
    return stock


def append_entry(
    *,
    store_id: int,
    product_id: int,
    ref_type: LedgerRefType | str,
    ref_id: int | None,
    delta: int,
    unit_cost_paise: int | None = None,
    note: str | None = None,
    actor_user_id: int | None = None,
) -> StockLedgerEntry:
    """
    Append one immutable ledger row inside the caller's transaction.

    Raises:
        ValidationError: delta is zero / not an int, or product is in another store
        NotFound: product does not exist
        NegativeStock: ref_type must keep stock non-negative and would not

    The caller must roll back on any exception; the counter has already been
    touched by then.
    """
    try:
        ref_type = LedgerRefType(ref_type)
    except ValueError:
        raise ValidationError(f"Unknown ledger ref_type: {ref_type}")
    delta = coerce_int(delta, "delta")
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    if unit_cost_paise is not None:
        unit_cost_paise = coerce_int(unit_cost_paise, "unit_cost_paise", minimum=0)

    product = _get_product(store_id, product_id)

    _lock_product(product_id, delta)
    prior = _ledger_sum(product_id)
    resulting = prior + delta

    cached = _cached(product_id)
    if cached != resulting:
        logger.warning(
            "stock cache drift reconciled",
            extra={"product_id": product_id, "cached": cached, "derived": resulting},
        )
        db.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_cache=resulting)
            .execution_options(synchronize_session=False)
        )

    if ref_type in NON_NEGATIVE_REF_TYPES and resulting < 0:
        logger.info(
            "negative stock refused",
            extra={"product_id": product_id, "available": prior, "requested": -delta, "ref_type": ref_type.value},
        )
        raise NegativeStock(
            f"Product {product.sku} has {prior} on hand; cannot remove {-delta}",
            product_id=product_id,
            available=prior,
            requested=-delta,
        )

    entry = StockLedgerEntry(
        store_id=store_id,
        product_id=product_id,
        ref_type=ref_type,
        ref_id=ref_id,
        delta=delta,
        unit_cost_paise=unit_cost_paise,
        note=note,
        actor_user_id=actor_user_id,
    )
    db.session.add(entry)
    db.session.flush()
    db.session.expire(product, ["stock_cache"])

    logger.info(
        "ledger entry appended",
        extra={
            "product_id": product_id,
            "ref_type": ref_type.value,
            "ref_id": ref_id,
            "delta": delta,
            "stock": resulting,
        },
    )
    return entry


def adjust_stock(
    *,
    store_id: int,
    product_id: int,
    delta,
    note: str,
    actor: Actor,
) -> StockLedgerEntry:
    """
    Manual stock correction (damage, shrinkage, found stock).

    Committed as its own transaction. Cannot take on-hand below zero.
    """
    require_store_owner(actor, store_id)
    delta = coerce_int(delta, "delta")
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    note = require_text(note, "note", max_length=255)

    def _op():
        entry = append_entry(
            store_id=store_id,
            product_id=product_id,
            ref_type=LedgerRefType.MANUAL_ADJUSTMENT,
            ref_id=None,
            delta=delta,
            note=note,
            actor_user_id=actor.user_id,
        )
        audit_service.record_event(
            store_id=store_id,
            entity_type=audit_service.ENTITY_STOCK,
            entity_id=product_id,
            action="stock.adjusted",
            actor=actor,
            note=f"{delta:+d}: {note}",
        )
        db.session.commit()
        return entry

    return run_with_retry(_op)


def verify_stock(product_id: int) -> StockCheck:
    """Compare the counter with a full replay of the product's ledger."""
    if db.session.query(Product.id).filter(Product.id == product_id).scalar() is None:
        raise NotFound(f"Product {product_id} not found")
    return StockCheck(product_id=product_id, cached=_cached(product_id), derived=_ledger_sum(product_id))


def verify_all_stock(store_id: int | None = None) -> list[StockCheck]:
    sums = (
        select(StockLedgerEntry.product_id, func.sum(StockLedgerEntry.delta).label("derived"))
        .group_by(StockLedgerEntry.product_id)
        .subquery()
    )
    q = db.session.query(
        Product.id,
        Product.stock_cache,
        func.coalesce(sums.c.derived, 0),
    ).outerjoin(sums, sums.c.product_id == Product.id)
    if store_id is not None:
        q = q.filter(Product.store_id == store_id)

    return [
        StockCheck(product_id=pid, cached=int(cached or 0), derived=int(derived or 0))
        for pid, cached, derived in q.order_by(Product.id).all()
    ]


def reconcile_stock(product_id: int) -> StockCheck:
    """Rewrite the counter from a full ledger replay. Returns the pre-repair check."""
    def _op():
        before = verify_stock(product_id)
        replay = (
            select(func.coalesce(func.sum(StockLedgerEntry.delta), 0))
            .where(StockLedgerEntry.product_id == product_id)
            .scalar_subquery()
        )
        db.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_cache=replay)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        if not before.ok:
            logger.warning(
                "stock cache rebuilt from ledger",
                extra={"product_id": product_id, "cached": before.cached, "derived": before.derived},
            )
        return before

    return run_with_retry(_op)


def list_entries(
    store_id: int,
    *,
    product_id: int | None = None,
    ref_type: str | None = None,
    since=None,
    until=None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[StockLedgerEntry], int]:
    """
    List ledger entries for a store, newest first.

    Returns:
        Tuple of (entries, total count)
    """
    query = db.session.query(StockLedgerEntry).filter(StockLedgerEntry.store_id == store_id)

    if product_id:
        query = query.filter(StockLedgerEntry.product_id == product_id)
    if ref_type:
        try:
            query = query.filter(StockLedgerEntry.ref_type == LedgerRefType(ref_type))
        except ValueError:
            raise ValidationError(f"Unknown ledger ref_type: {ref_type}")
    if since is not None:
        query = query.filter(StockLedgerEntry.created_at >= since)
    if until is not None:
        query = query.filter(StockLedgerEntry.created_at <= until)

    total = query.count()

    query = query.order_by(StockLedgerEntry.created_at.desc(), StockLedgerEntry.id.desc())
    return query.offset(offset).limit(limit).all(), total
