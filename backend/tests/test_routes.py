"""
HTTP API tests.

Exercise the blueprints end to end through the Flask test client: actor
headers, role gates, payload validation and the error code contract.
"""

from stockflow.extensions import db
from stockflow.models import StockLedgerEntry


# =============================================================================
# AUTHENTICATION / ROLE GATES
# =============================================================================


class TestActorHeaders:
    def test_missing_actor_is_401(self, client):
        resp = client.get("/api/purchase-orders")
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "UNAUTHENTICATED"

    def test_malformed_actor_is_401(self, client):
        resp = client.get(
            "/api/purchase-orders",
            headers={"X-Actor-User-Id": "abc", "X-Actor-Role": "STORE_OWNER"},
        )
        assert resp.status_code == 401

    def test_unknown_role_is_401(self, client):
        resp = client.get(
            "/api/purchase-orders",
            headers={"X-Actor-User-Id": "1", "X-Actor-Role": "ADMIN"},
        )
        assert resp.status_code == 401

    def test_wrong_role_is_403(self, client, customer_headers):
        resp = client.get("/api/purchase-orders", headers=customer_headers)
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "UNAUTHORIZED"

    def test_supplier_cannot_create_po(self, client, supplier_headers, supplier):
        resp = client.post(
            "/api/purchase-orders",
            json={"supplier_id": supplier.id, "items": [{"product_id": 1, "qty": 1}]},
            headers=supplier_headers,
        )
        assert resp.status_code == 403


class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"


# =============================================================================
# PURCHASE ORDERS
# =============================================================================


class TestPurchaseOrderRoutes:
    def _create(self, client, owner_headers, supplier, product, qty=20, cost=10000):
        return client.post(
            "/api/purchase-orders",
            json={
                "supplier_id": supplier.id,
                "items": [{"product_id": product.id, "qty": qty, "cost_paise": cost}],
                "notes": "Weekly restock",
            },
            headers=owner_headers,
        )

    def test_full_flow_over_http(self, client, make_product, supplier, owner_headers, supplier_headers):
        product = make_product("RICE", stock=4)
        resp = self._create(client, owner_headers, supplier, product)
        assert resp.status_code == 201
        po = resp.get_json()["purchase_order"]
        assert po["status"] == "DRAFT"
        po_id = po["id"]
        item_id = po["items"][0]["id"]

        assert client.post(f"/api/purchase-orders/{po_id}/place", headers=owner_headers).status_code == 200
        resp = client.post(
            f"/api/purchase-orders/{po_id}/request-quotation",
            json={"notes": "Quote by Friday"},
            headers=owner_headers,
        )
        assert resp.get_json()["purchase_order"]["status"] == "QUOTATION_REQUESTED"

        resp = client.post(
            f"/api/purchase-orders/{po_id}/submit-quotation",
            json={"items": [{"item_id": item_id, "quoted_cost_paise": 9500}]},
            headers=supplier_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["purchase_order"]["total_paise"] == 20 * 9500

        assert client.post(
            f"/api/purchase-orders/{po_id}/approve-quotation", headers=owner_headers
        ).status_code == 200
        assert client.post(f"/api/purchase-orders/{po_id}/ship", headers=supplier_headers).status_code == 200

        resp = client.post(f"/api/purchase-orders/{po_id}/receive", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.get_json()["purchase_order"]["status"] == "RECEIVED"

        resp = client.post(f"/api/purchase-orders/{po_id}/receive", headers=owner_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "ALREADY_PROCESSED"

        resp = client.get(f"/api/stock/products/{product.id}", headers=owner_headers)
        assert resp.get_json()["product"]["current_stock"] == 24

        resp = client.get(f"/api/purchase-orders/{po_id}/audit-logs", headers=supplier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["items"][0]["action"] == "po.received"

    def test_invalid_transition_is_409(self, client, make_product, supplier, owner_headers):
        product = make_product("DAL")
        po_id = self._create(client, owner_headers, supplier, product).get_json()["purchase_order"]["id"]

        resp = client.post(f"/api/purchase-orders/{po_id}/receive", headers=owner_headers)

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "INVALID_TRANSITION"
        assert body["status"] == "DRAFT"

    def test_incomplete_quotation_is_422(self, client, make_product, make_po, advance_po, supplier_headers):
        a = make_product("A")
        b = make_product("B")
        po = advance_po(make_po([(a, 1, 100), (b, 1, 100)]), "QUOTATION_REQUESTED")
        first_item = po.items[0].id

        resp = client.post(
            f"/api/purchase-orders/{po.id}/submit-quotation",
            json={"items": [{"item_id": first_item, "quoted_cost_paise": 90}]},
            headers=supplier_headers,
        )

        assert resp.status_code == 422
        assert resp.get_json()["code"] == "INCOMPLETE_QUOTATION"
        assert resp.get_json()["missing_item_ids"] == [po.items[1].id]

    def test_revision_requires_notes(self, client, make_product, make_po, advance_po, owner_headers):
        p = make_product("P1")
        po = advance_po(make_po([(p, 1, 100)]), "QUOTATION_SUBMITTED")
        resp = client.post(
            f"/api/purchase-orders/{po.id}/request-revision", json={}, headers=owner_headers
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_create_validation(self, client, supplier, owner_headers):
        resp = client.post(
            "/api/purchase-orders",
            json={"supplier_id": supplier.id, "items": [{"product_id": 1, "qty": 2.5}]},
            headers=owner_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "items[0].qty"

        resp = client.post(
            "/api/purchase-orders",
            data="not json",
            content_type="application/json",
            headers=owner_headers,
        )
        assert resp.status_code == 400

    def test_list_is_scoped_to_actor(self, client, make_product, make_po, owner_headers, supplier_headers, other_store):
        p = make_product("P1")
        make_po([(p, 1, 100)])
        make_po([(p, 2, 100)])

        resp = client.get("/api/purchase-orders?limit=1", headers=owner_headers)
        body = resp.get_json()
        assert body["count"] == 2
        assert len(body["items"]) == 1
        assert body["limit"] == 1

        resp = client.get("/api/purchase-orders", headers=supplier_headers)
        assert resp.get_json()["count"] == 2

        outsider = {
            "X-Actor-User-Id": "99",
            "X-Actor-Role": "STORE_OWNER",
            "X-Actor-Store-Id": str(other_store.id),
        }
        assert client.get("/api/purchase-orders", headers=outsider).get_json()["count"] == 0

    def test_other_store_cannot_read(self, client, make_product, make_po, other_store):
        p = make_product("P1")
        po = make_po([(p, 1, 100)])
        outsider = {
            "X-Actor-User-Id": "99",
            "X-Actor-Role": "STORE_OWNER",
            "X-Actor-Store-Id": str(other_store.id),
        }
        resp = client.get(f"/api/purchase-orders/{po.id}", headers=outsider)
        assert resp.status_code == 403

    def test_unknown_po_is_404(self, client, owner_headers):
        resp = client.get("/api/purchase-orders/424242", headers=owner_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "NOT_FOUND"


# =============================================================================
# CUSTOMER ORDERS
# =============================================================================


class TestOrderRoutes:
    def _place(self, client, headers, store, product, qty, method="COD"):
        return client.post(
            "/api/orders",
            json={
                "store_id": store.id,
                "payment_method": method,
                "items": [{"product_id": product.id, "qty": qty}],
            },
            headers=headers,
        )

    def test_confirm_flow(self, client, make_product, store, customer_headers, owner_headers):
        p = make_product("P1", stock=5)
        resp = self._place(client, customer_headers, store, p, 3)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["needs_confirmation"] is True
        order_id = body["order"]["id"]

        resp = client.get(f"/api/orders/{order_id}/stock-check", headers=owner_headers)
        assert resp.get_json()["eligible"] is True

        resp = client.post(f"/api/orders/{order_id}/confirm", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "CONFIRMED"

        resp = client.post(f"/api/orders/{order_id}/confirm", headers=owner_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "ALREADY_PROCESSED"

        resp = client.get(f"/api/orders/{order_id}", headers=customer_headers)
        assert resp.get_json()["needs_confirmation"] is False

    def test_insufficient_stock(self, client, make_product, store, customer_headers, owner_headers):
        p = make_product("P1", stock=1)
        order_id = self._place(client, customer_headers, store, p, 2).get_json()["order"]["id"]

        resp = client.get(f"/api/orders/{order_id}/stock-check", headers=owner_headers)
        body = resp.get_json()
        assert body["eligible"] is False
        assert body["shortages"][0]["available"] == 1

        resp = client.post(f"/api/orders/{order_id}/confirm", headers=owner_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "INSUFFICIENT_STOCK"
        assert db.session.query(StockLedgerEntry).filter_by(ref_type="ORDER_CONFIRM").count() == 0

    def test_reject_requires_reason(self, client, make_product, store, customer_headers, owner_headers):
        p = make_product("P1", stock=1)
        order_id = self._place(client, customer_headers, store, p, 1).get_json()["order"]["id"]

        resp = client.post(f"/api/orders/{order_id}/reject", json={}, headers=owner_headers)
        assert resp.status_code == 400

        resp = client.post(
            f"/api/orders/{order_id}/reject", json={"reason": "Closed today"}, headers=owner_headers
        )
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "REJECTED"

    def test_customer_needs_store_id(self, client, make_product, customer_headers):
        p = make_product("P1")
        resp = client.post(
            "/api/orders",
            json={"payment_method": "COD", "items": [{"product_id": p.id, "qty": 1}]},
            headers=customer_headers,
        )
        assert resp.status_code == 400

    def test_customer_cannot_confirm(self, client, make_product, store, customer_headers):
        p = make_product("P1", stock=1)
        order_id = self._place(client, customer_headers, store, p, 1).get_json()["order"]["id"]
        resp = client.post(f"/api/orders/{order_id}/confirm", headers=customer_headers)
        assert resp.status_code == 403


# =============================================================================
# STOCK
# =============================================================================


class TestStockRoutes:
    def test_adjust_and_ledger(self, client, make_product, owner_headers):
        p = make_product("P1", stock=10)

        resp = client.post(
            "/api/stock/adjustments",
            json={"product_id": p.id, "delta": -4, "note": "Damaged"},
            headers=owner_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["current_stock"] == 6

        resp = client.get(f"/api/stock/ledger?product_id={p.id}", headers=owner_headers)
        body = resp.get_json()
        assert body["count"] == 2
        assert body["items"][0]["delta"] == -4

    def test_adjust_validation(self, client, make_product, owner_headers):
        p = make_product("P1", stock=1)
        for payload in (
            {"product_id": p.id, "delta": 0, "note": "x"},
            {"product_id": p.id, "delta": "1e3", "note": "x"},
            {"product_id": p.id, "delta": 1},
        ):
            resp = client.post("/api/stock/adjustments", json=payload, headers=owner_headers)
            assert resp.status_code == 400

        resp = client.post(
            "/api/stock/adjustments",
            json={"product_id": p.id, "delta": -2, "note": "Count"},
            headers=owner_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "NEGATIVE_STOCK"

    def test_bad_date_filter(self, client, owner_headers):
        resp = client.get("/api/stock/ledger?from_date=yesterday", headers=owner_headers)
        assert resp.status_code == 400

    def test_product_in_other_store_is_404(self, client, make_product, other_store):
        p = make_product("P1", stock=1)
        outsider = {
            "X-Actor-User-Id": "99",
            "X-Actor-Role": "STORE_OWNER",
            "X-Actor-Store-Id": str(other_store.id),
        }
        assert client.get(f"/api/stock/products/{p.id}", headers=outsider).status_code == 404

    def test_reorder_suggestions_and_generation(self, client, make_product, supplier, owner_headers):
        make_product("ATTA", stock=2, reorder_point=4, reorder_qty=15)

        resp = client.get("/api/stock/reorder-suggestions", headers=owner_headers)
        body = resp.get_json()
        assert body["groups"][0]["supplier_id"] == supplier.id
        suggestion = body["groups"][0]["suggestions"][0]
        assert suggestion["proposed_qty"] == 17
        assert suggestion["days_of_cover"] == 0.13

        resp = client.post(
            "/api/stock/reorder-suggestions/purchase-orders",
            json={"supplier_ids": [supplier.id]},
            headers=owner_headers,
        )
        assert resp.status_code == 201
        [po] = resp.get_json()["purchase_orders"]
        assert po["status"] == "DRAFT"
        assert po["items"][0]["qty"] == 17
