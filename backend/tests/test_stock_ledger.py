"""
Stock ledger tests.

Verifies:
- On-hand stock is always the ledger sum, and the cached counter follows it
- Decrementing ref types cannot take stock below zero
- Ledger rows refuse ORM updates and deletes
- Drift in the cached counter is detected and repaired
- Manual adjustments are validated, authorized and audited
"""

import pytest
from sqlalchemy import delete, text, update
from sqlalchemy.exc import IntegrityError

from stockflow.errors import (
    ImmutabilityViolation,
    NegativeStock,
    NotFound,
    Unauthorized,
    ValidationError,
)
from stockflow.extensions import db
from stockflow.models import AuditEvent, LedgerRefType, Product, StockLedgerEntry
from stockflow.services import stock_ledger_service
from stockflow.services.authorization import ROLE_STORE_OWNER, Actor


def _append(product, delta, ref_type=LedgerRefType.MANUAL_ADJUSTMENT, **kwargs):
    entry = stock_ledger_service.append_entry(
        store_id=product.store_id,
        product_id=product.id,
        ref_type=ref_type,
        ref_id=kwargs.pop("ref_id", None),
        delta=delta,
        **kwargs,
    )
    db.session.commit()
    return entry


def _ledger_rows(product_id):
    return db.session.query(StockLedgerEntry).filter_by(product_id=product_id).count()


# =============================================================================
# APPEND AND REPLAY
# =============================================================================


class TestAppendEntry:
    def test_stock_is_ledger_sum_and_cache_follows(self, make_product):
        product = make_product("RICE-5KG")

        _append(product, 20, LedgerRefType.PO_RECEIPT, ref_id=1, unit_cost_paise=9500)
        _append(product, -5, LedgerRefType.ORDER_CONFIRM, ref_id=7)
        _append(product, 2, LedgerRefType.ORDER_CANCEL, ref_id=7)

        assert stock_ledger_service.current_stock(product.id) == 17
        assert stock_ledger_service.cached_stock(product.id) == 17
        assert stock_ledger_service.verify_stock(product.id).ok

    def test_entry_fields_are_recorded(self, make_product):
        product = make_product("DAL-1KG")
        entry = _append(
            product,
            12,
            LedgerRefType.PO_RECEIPT,
            ref_id=3,
            unit_cost_paise=4200,
            note="Received on PO-1",
            actor_user_id=10,
        )

        data = entry.to_dict()
        assert data["ref_type"] == "PO_RECEIPT"
        assert data["ref_id"] == 3
        assert data["delta"] == 12
        assert data["unit_cost_paise"] == 4200
        assert data["actor_user_id"] == 10
        assert data["created_at"].endswith("Z")

    @pytest.mark.parametrize("bad_delta", [0, True, 1.5, "1e3", "", None])
    def test_rejects_bad_delta(self, make_product, bad_delta):
        product = make_product("SALT-1KG")
        with pytest.raises(ValidationError):
            stock_ledger_service.append_entry(
                store_id=product.store_id,
                product_id=product.id,
                ref_type=LedgerRefType.MANUAL_ADJUSTMENT,
                ref_id=None,
                delta=bad_delta,
            )
        db.session.rollback()
        assert _ledger_rows(product.id) == 0

    def test_rejects_unknown_ref_type(self, make_product):
        product = make_product("TEA-250G")
        with pytest.raises(ValidationError):
            stock_ledger_service.append_entry(
                store_id=product.store_id,
                product_id=product.id,
                ref_type="GIFT",
                ref_id=None,
                delta=1,
            )

    def test_unknown_product(self, store):
        with pytest.raises(NotFound):
            stock_ledger_service.append_entry(
                store_id=store.id,
                product_id=999,
                ref_type=LedgerRefType.PO_RECEIPT,
                ref_id=None,
                delta=1,
            )

    def test_product_must_belong_to_store(self, make_product, other_store):
        product = make_product("OIL-1L")
        with pytest.raises(ValidationError):
            stock_ledger_service.append_entry(
                store_id=other_store.id,
                product_id=product.id,
                ref_type=LedgerRefType.PO_RECEIPT,
                ref_id=None,
                delta=1,
            )


# =============================================================================
# NON-NEGATIVE GUARD
# =============================================================================


class TestNegativeStockGuard:
    @pytest.mark.parametrize("ref_type", [LedgerRefType.ORDER_CONFIRM, LedgerRefType.MANUAL_ADJUSTMENT])
    def test_decrement_below_zero_refused(self, make_product, ref_type):
        product = make_product("SUGAR-1KG", stock=3)

        with pytest.raises(NegativeStock) as excinfo:
            stock_ledger_service.append_entry(
                store_id=product.store_id,
                product_id=product.id,
                ref_type=ref_type,
                ref_id=None,
                delta=-4,
            )
        db.session.rollback()

        assert excinfo.value.details["available"] == 3
        assert excinfo.value.details["requested"] == 4
        assert stock_ledger_service.current_stock(product.id) == 3
        assert stock_ledger_service.cached_stock(product.id) == 3
        assert _ledger_rows(product.id) == 1

    def test_decrement_to_exactly_zero_allowed(self, make_product):
        product = make_product("FLOUR-5KG", stock=5)
        _append(product, -5, LedgerRefType.ORDER_CONFIRM, ref_id=1)
        assert stock_ledger_service.current_stock(product.id) == 0

    def test_receipts_have_no_upper_bound(self, make_product):
        product = make_product("SOAP")
        _append(product, 1_000_000, LedgerRefType.PO_RECEIPT, ref_id=1)
        assert stock_ledger_service.current_stock(product.id) == 1_000_000


# =============================================================================
# IMMUTABILITY
# =============================================================================


class TestImmutability:
    def test_update_refused(self, make_product):
        product = make_product("GHEE-1L", stock=4)
        entry = db.session.query(StockLedgerEntry).filter_by(product_id=product.id).one()

        entry.delta = 40
        with pytest.raises(ImmutabilityViolation):
            db.session.flush()
        db.session.rollback()

        assert stock_ledger_service.current_stock(product.id) == 4

    def test_delete_refused(self, make_product):
        product = make_product("JAM-500G", stock=4)
        entry = db.session.query(StockLedgerEntry).filter_by(product_id=product.id).one()

        db.session.delete(entry)
        with pytest.raises(ImmutabilityViolation):
            db.session.flush()
        db.session.rollback()

        assert _ledger_rows(product.id) == 1

    def test_audit_events_are_append_only(self, make_product, owner):
        product = make_product("HONEY", stock=2)
        stock_ledger_service.adjust_stock(
            store_id=product.store_id, product_id=product.id, delta=1, note="Found", actor=owner
        )
        event = db.session.query(AuditEvent).one()

        event.note = "rewritten"
        with pytest.raises(ImmutabilityViolation):
            db.session.flush()
        db.session.rollback()

        assert db.session.query(AuditEvent).one().note == "+1: Found"

    def test_bulk_query_delete_refused(self, make_product):
        product = make_product("RUSK", stock=5)

        with pytest.raises(ImmutabilityViolation):
            db.session.query(StockLedgerEntry).filter_by(product_id=product.id).delete()
        db.session.rollback()

        assert _ledger_rows(product.id) == 1
        assert stock_ledger_service.current_stock(product.id) == 5

    def test_bulk_update_refused(self, make_product):
        product = make_product("POHA", stock=5)

        with pytest.raises(ImmutabilityViolation):
            db.session.query(StockLedgerEntry).filter_by(product_id=product.id).update({"delta": 500})
        db.session.rollback()
        with pytest.raises(ImmutabilityViolation):
            db.session.execute(
                update(StockLedgerEntry).where(StockLedgerEntry.product_id == product.id).values(delta=500)
            )
        db.session.rollback()

        assert stock_ledger_service.current_stock(product.id) == 5

    def test_bulk_audit_delete_refused(self, make_product, owner):
        product = make_product("CHANA", stock=2)
        stock_ledger_service.adjust_stock(
            store_id=product.store_id, product_id=product.id, delta=1, note="Found", actor=owner
        )

        with pytest.raises(ImmutabilityViolation):
            db.session.execute(delete(AuditEvent))
        db.session.rollback()

        assert db.session.query(AuditEvent).count() == 1

    @pytest.mark.parametrize(
        "statement",
        [
            "UPDATE stock_ledger_entries SET delta = 500",
            "DELETE FROM stock_ledger_entries",
            "UPDATE audit_events SET note = 'rewritten'",
            "DELETE FROM audit_events",
        ],
    )
    def test_raw_sql_refused_by_triggers(self, make_product, owner, statement):
        product = make_product("BESAN", stock=5)
        stock_ledger_service.adjust_stock(
            store_id=product.store_id, product_id=product.id, delta=1, note="Found", actor=owner
        )

        with pytest.raises(IntegrityError, match="append-only"):
            db.session.execute(text(statement))
        db.session.rollback()

        assert stock_ledger_service.current_stock(product.id) == 6
        assert _ledger_rows(product.id) == 2
        assert db.session.query(AuditEvent).one().note == "+1: Found"


# =============================================================================
# CACHE DRIFT
# =============================================================================


def _corrupt_cache(product_id, value):
    db.session.execute(update(Product).where(Product.id == product_id).values(stock_cache=value))
    db.session.commit()


class TestCacheDrift:
    def test_verify_detects_drift(self, make_product):
        product = make_product("BISCUIT", stock=6)
        _corrupt_cache(product.id, 50)

        check = stock_ledger_service.verify_stock(product.id)
        assert not check.ok
        assert check.cached == 50
        assert check.derived == 6

    def test_append_repairs_drift(self, make_product):
        product = make_product("NOODLES", stock=6)
        _corrupt_cache(product.id, 50)

        _append(product, -2, LedgerRefType.ORDER_CONFIRM, ref_id=1)

        assert stock_ledger_service.cached_stock(product.id) == 4
        assert stock_ledger_service.current_stock(product.id) == 4

    def test_guard_uses_ledger_not_cache(self, make_product):
        product = make_product("PASTA", stock=2)
        _corrupt_cache(product.id, 100)

        with pytest.raises(NegativeStock):
            stock_ledger_service.append_entry(
                store_id=product.store_id,
                product_id=product.id,
                ref_type=LedgerRefType.ORDER_CONFIRM,
                ref_id=1,
                delta=-10,
            )
        db.session.rollback()

    def test_reconcile_rebuilds_from_ledger(self, make_product):
        product = make_product("COFFEE", stock=9)
        _corrupt_cache(product.id, -3)

        before = stock_ledger_service.reconcile_stock(product.id)

        assert before.cached == -3
        assert before.derived == 9
        assert stock_ledger_service.verify_stock(product.id).ok

    def test_verify_all_stock_lists_every_product(self, make_product, other_store):
        a = make_product("A1", stock=1)
        b = make_product("B1", stock=2)
        make_product("C1", stock=3, store_id=other_store.id, supplier_id=None)
        _corrupt_cache(b.id, 7)

        checks = stock_ledger_service.verify_all_stock(a.store_id)

        assert [c.product_id for c in checks] == [a.id, b.id]
        assert [c.ok for c in checks] == [True, False]


# =============================================================================
# MANUAL ADJUSTMENTS
# =============================================================================


class TestAdjustStock:
    def test_adjustment_commits_and_audits(self, make_product, owner):
        product = make_product("MILK-1L", stock=10)

        entry = stock_ledger_service.adjust_stock(
            store_id=product.store_id,
            product_id=product.id,
            delta=-3,
            note="Spoiled",
            actor=owner,
        )

        assert entry.ref_type == LedgerRefType.MANUAL_ADJUSTMENT
        assert entry.ref_id is None
        assert stock_ledger_service.current_stock(product.id) == 7
        event = db.session.query(AuditEvent).filter_by(entity_type="stock", entity_id=product.id).one()
        assert event.action == "stock.adjusted"
        assert event.note == "-3: Spoiled"

    def test_note_required(self, make_product, owner):
        product = make_product("CURD", stock=1)
        with pytest.raises(ValidationError):
            stock_ledger_service.adjust_stock(
                store_id=product.store_id, product_id=product.id, delta=1, note="  ", actor=owner
            )

    def test_cannot_adjust_below_zero(self, make_product, owner):
        product = make_product("BREAD", stock=1)
        with pytest.raises(NegativeStock):
            stock_ledger_service.adjust_stock(
                store_id=product.store_id, product_id=product.id, delta=-2, note="Count", actor=owner
            )
        assert stock_ledger_service.current_stock(product.id) == 1
        assert db.session.query(AuditEvent).count() == 0

    def test_other_store_owner_denied(self, make_product, other_store):
        product = make_product("EGGS", stock=12)
        intruder = Actor(user_id=99, role=ROLE_STORE_OWNER, store_id=other_store.id)
        with pytest.raises(Unauthorized):
            stock_ledger_service.adjust_stock(
                store_id=product.store_id, product_id=product.id, delta=-1, note="x", actor=intruder
            )


# =============================================================================
# LISTING
# =============================================================================


class TestListEntries:
    def test_filters_and_pagination(self, make_product):
        a = make_product("PEN", stock=5)
        b = make_product("INK", stock=2)
        _append(a, 10, LedgerRefType.PO_RECEIPT, ref_id=1)
        _append(a, -1, LedgerRefType.ORDER_CONFIRM, ref_id=2)

        entries, total = stock_ledger_service.list_entries(a.store_id)
        assert total == 4

        entries, total = stock_ledger_service.list_entries(a.store_id, product_id=a.id)
        assert total == 3
        assert entries[0].delta == -1

        entries, total = stock_ledger_service.list_entries(a.store_id, ref_type="PO_RECEIPT")
        assert total == 1
        assert entries[0].product_id == a.id

        entries, total = stock_ledger_service.list_entries(a.store_id, limit=1, offset=1)
        assert total == 4
        assert len(entries) == 1

        entries, total = stock_ledger_service.list_entries(a.store_id, product_id=b.id)
        assert [e.delta for e in entries] == [2]

    def test_unknown_ref_type_filter(self, store):
        with pytest.raises(ValidationError):
            stock_ledger_service.list_entries(store.id, ref_type="NOPE")
