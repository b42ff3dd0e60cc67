"""Payload parsing: strict integers, required text and command schemas."""

import pytest

from stockflow.errors import ValidationError
from stockflow.validation import (
    CreateCustomerOrderCommand,
    CreatePurchaseOrderCommand,
    ReasonCommand,
    ReorderPurchaseOrdersCommand,
    StockAdjustmentCommand,
    SubmitQuotationCommand,
    coerce_int,
    optional_text,
    parse_pagination,
    require_text,
)


class TestCoerceInt:
    @pytest.mark.parametrize("value, expected", [(5, 5), ("12", 12), (" -3 ", -3), ("+7", 7)])
    def test_accepts(self, value, expected):
        assert coerce_int(value, "qty") == expected

    @pytest.mark.parametrize("value", [True, False, 2.0, 2.5, "1e3", "", "  ", "ten", None, [1]])
    def test_rejects(self, value):
        with pytest.raises(ValidationError) as excinfo:
            coerce_int(value, "qty")
        assert excinfo.value.details["field"] == "qty"

    def test_minimum(self):
        assert coerce_int(0, "offset", minimum=0) == 0
        with pytest.raises(ValidationError):
            coerce_int(0, "qty", minimum=1)


class TestText:
    def test_require_text_strips(self):
        assert require_text("  Damaged  ", "note") == "Damaged"

    @pytest.mark.parametrize("value", [None, "", "   ", 42])
    def test_require_text_rejects(self, value):
        with pytest.raises(ValidationError):
            require_text(value, "note")

    def test_max_length(self):
        with pytest.raises(ValidationError):
            require_text("x" * 6, "note", max_length=5)

    def test_optional_text(self):
        assert optional_text(None, "notes") is None
        assert optional_text("   ", "notes") is None
        assert optional_text(" hi ", "notes") == "hi"
        with pytest.raises(ValidationError):
            optional_text(3, "notes")


class TestPagination:
    def test_defaults_and_cap(self, app):
        assert parse_pagination({}) == (50, 0)
        assert parse_pagination({"limit": "10", "offset": "20"}) == (10, 20)
        assert parse_pagination({"limit": "100000"}) == (500, 0)

    def test_rejects_negative_offset(self, app):
        with pytest.raises(ValidationError):
            parse_pagination({"offset": "-1"})


class TestCommands:
    def test_create_purchase_order(self):
        cmd = CreatePurchaseOrderCommand.from_payload({
            "supplier_id": "3",
            "items": [{"product_id": 1, "qty": 20}, {"product_id": 2, "qty": "5", "cost_paise": 900}],
            "notes": "  ",
        })
        assert cmd.supplier_id == 3
        assert [(i.product_id, i.qty, i.cost_paise) for i in cmd.items] == [(1, 20, None), (2, 5, 900)]
        assert cmd.notes is None

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            [],
            {"supplier_id": 1},
            {"supplier_id": 1, "items": []},
            {"supplier_id": 1, "items": ["x"]},
            {"supplier_id": 1, "items": [{"product_id": 1, "qty": 0}]},
            {"supplier_id": 1, "items": [{"product_id": 1, "qty": 1, "cost_paise": -1}]},
            {"supplier_id": 1, "items": [{"product_id": 1, "qty": 1}, {"product_id": 1, "qty": 2}]},
        ],
    )
    def test_create_purchase_order_rejects(self, payload):
        with pytest.raises(ValidationError):
            CreatePurchaseOrderCommand.from_payload(payload)

    def test_submit_quotation(self):
        cmd = SubmitQuotationCommand.from_payload({
            "items": [{"item_id": 4, "quoted_cost_paise": 9500}, {"item_id": "5", "quoted_cost_paise": "0"}],
        })
        assert cmd.quotes == {4: 9500, 5: 0}

    def test_submit_quotation_duplicate_item(self):
        with pytest.raises(ValidationError):
            SubmitQuotationCommand.from_payload({
                "items": [{"item_id": 4, "quoted_cost_paise": 1}, {"item_id": 4, "quoted_cost_paise": 2}],
            })

    def test_reason(self):
        assert ReasonCommand.from_payload(None).reason is None
        assert ReasonCommand.from_payload({"reason": " Out of stock "}).reason == "Out of stock"
        with pytest.raises(ValidationError):
            ReasonCommand.from_payload({}, required=True)

    def test_stock_adjustment(self):
        cmd = StockAdjustmentCommand.from_payload({"product_id": 1, "delta": "-2", "note": "Spoiled"})
        assert (cmd.product_id, cmd.delta, cmd.note) == (1, -2, "Spoiled")
        with pytest.raises(ValidationError):
            StockAdjustmentCommand.from_payload({"product_id": 1, "delta": 0, "note": "x"})

    def test_customer_order(self):
        cmd = CreateCustomerOrderCommand.from_payload({
            "payment_method": "cod",
            "items": [{"product_id": 1, "qty": 2}],
        })
        assert cmd.payment_method == "COD"
        assert cmd.store_id is None
        with pytest.raises(ValidationError):
            CreateCustomerOrderCommand.from_payload({"items": [{"product_id": 1, "qty": 2}]})

    def test_reorder_purchase_orders(self):
        assert ReorderPurchaseOrdersCommand.from_payload(None).supplier_ids is None
        assert ReorderPurchaseOrdersCommand.from_payload({"supplier_ids": [2, "3"]}).supplier_ids == (2, 3)
        with pytest.raises(ValidationError):
            ReorderPurchaseOrdersCommand.from_payload({"supplier_ids": 2})
