"""
Pytest fixtures for stockflow backend tests.

Provides an in-memory app per test, a store with a supplier, actors for
each role, a product factory with seeded stock, and helpers that walk a
purchase order through its lifecycle.
"""

import pytest

from stockflow import create_app
from stockflow.config import TestingConfig
from stockflow.extensions import db
from stockflow.models import LedgerRefType, Product, Store, Supplier
from stockflow.services import purchase_order_service, quotation_service, stock_ledger_service
from stockflow.services.authorization import (
    ROLE_CUSTOMER,
    ROLE_STORE_OWNER,
    ROLE_SUPPLIER,
    Actor,
)
from stockflow.validation import PurchaseOrderLine

OWNER_USER_ID = 10
SUPPLIER_USER_ID = 20
CUSTOMER_USER_ID = 30


@pytest.fixture(scope="function")
def app():
    """Fresh application and schema for every test."""
    app = create_app(config_object=TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def client(app):
    return app.test_client()


@pytest.fixture(scope="function")
def store(app):
    store = Store(name="Sharma Kirana", code="SK01", owner_user_id=OWNER_USER_ID)
    db.session.add(store)
    db.session.commit()
    return store


@pytest.fixture(scope="function")
def other_store(app):
    store = Store(name="Other Mart", code="OM01", owner_user_id=99)
    db.session.add(store)
    db.session.commit()
    return store


@pytest.fixture(scope="function")
def supplier(store):
    supplier = Supplier(
        store_id=store.id,
        name="Acme Wholesale",
        lead_time_days=5,
        user_id=SUPPLIER_USER_ID,
    )
    db.session.add(supplier)
    db.session.commit()
    return supplier


@pytest.fixture(scope="function")
def owner(store):
    return Actor(user_id=OWNER_USER_ID, role=ROLE_STORE_OWNER, store_id=store.id)


@pytest.fixture(scope="function")
def supplier_actor(supplier):
    return Actor(user_id=SUPPLIER_USER_ID, role=ROLE_SUPPLIER, supplier_id=supplier.id)


@pytest.fixture(scope="function")
def customer():
    return Actor(user_id=CUSTOMER_USER_ID, role=ROLE_CUSTOMER)


@pytest.fixture(scope="function")
def make_product(store, supplier):
    """Factory: make_product(sku, stock=0, ...) with stock seeded through the ledger."""
    def _make(
        sku,
        *,
        stock=0,
        reorder_point=0,
        reorder_qty=0,
        cost_price_paise=1000,
        price_paise=1500,
        supplier_id="default",
        store_id=None,
    ):
        product = Product(
            store_id=store_id or store.id,
            sku=sku,
            name=f"Product {sku}",
            price_paise=price_paise,
            cost_price_paise=cost_price_paise,
            reorder_point=reorder_point,
            reorder_qty=reorder_qty,
            supplier_id=supplier.id if supplier_id == "default" else supplier_id,
        )
        db.session.add(product)
        db.session.commit()
        if stock:
            stock_ledger_service.append_entry(
                store_id=product.store_id,
                product_id=product.id,
                ref_type=LedgerRefType.MANUAL_ADJUSTMENT,
                ref_id=None,
                delta=stock,
                note="Opening stock",
            )
            db.session.commit()
        return product

    return _make


@pytest.fixture(scope="function")
def make_po(store, supplier, owner):
    """Factory: make_po([(product, qty, cost_paise), ...]) -> DRAFT purchase order."""
    def _make(lines, *, notes=None):
        return purchase_order_service.create_purchase_order(
            store_id=store.id,
            supplier_id=supplier.id,
            items=[PurchaseOrderLine(product_id=p.id, qty=qty, cost_paise=cost) for p, qty, cost in lines],
            actor=owner,
            notes=notes,
        )

    return _make


@pytest.fixture(scope="function")
def advance_po(owner, supplier_actor):
    """
    Walk a PO forward to the named status along the happy path.

    Quotes default to each item's estimate.
    """
    steps = [
        "SENT",
        "QUOTATION_REQUESTED",
        "QUOTATION_SUBMITTED",
        "QUOTATION_APPROVED",
        "SHIPPED",
        "RECEIVED",
    ]

    def _advance(po, target, *, quotes=None):
        po_id = po.id
        for step in steps[: steps.index(target) + 1]:
            if step == "SENT":
                po = purchase_order_service.place_purchase_order(po_id, actor=owner)
            elif step == "QUOTATION_REQUESTED":
                po = quotation_service.request_quotation(po_id, actor=owner)
            elif step == "QUOTATION_SUBMITTED":
                costs = quotes or {item.id: item.cost_paise for item in po.items}
                po = quotation_service.submit_quotation(po_id, costs, actor=supplier_actor)
            elif step == "QUOTATION_APPROVED":
                po = quotation_service.approve_quotation(po_id, actor=owner)
            elif step == "SHIPPED":
                po = purchase_order_service.mark_shipped(po_id, actor=supplier_actor)
            elif step == "RECEIVED":
                po = purchase_order_service.mark_received(po_id, actor=owner)
        return po

    return _advance


def actor_headers(actor):
    headers = {
        "X-Actor-User-Id": str(actor.user_id),
        "X-Actor-Role": actor.role,
    }
    if actor.store_id is not None:
        headers["X-Actor-Store-Id"] = str(actor.store_id)
    if actor.supplier_id is not None:
        headers["X-Actor-Supplier-Id"] = str(actor.supplier_id)
    return headers


@pytest.fixture(scope="function")
def owner_headers(owner):
    return actor_headers(owner)


@pytest.fixture(scope="function")
def supplier_headers(supplier_actor):
    return actor_headers(supplier_actor)


@pytest.fixture(scope="function")
def customer_headers(customer):
    return actor_headers(customer)
