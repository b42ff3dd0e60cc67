# Overview: Command schemas; request payloads are checked and typed here before any transaction starts.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from flask import current_app

from .errors import ValidationError

_INT_RE = re.compile(r"^[+-]?\d+$")


def coerce_int(value: Any, field_name: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain decimal digit strings. Rejects bools, floats,
    scientific notation and blank strings so "1e3" or 2.5 never become stock.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field_name}: expected integer", field=field_name)
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and _INT_RE.match(value.strip()):
        result = int(value.strip())
    else:
        raise ValidationError(f"{field_name}: expected integer", field=field_name)

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field_name}: must be >= {minimum}", field=field_name)
    return result


def optional_int(value: Any, field_name: str, *, minimum: int | None = None) -> int | None:
    if value is None or value == "":
        return None
    return coerce_int(value, field_name, minimum=minimum)


def require_text(value: Any, field_name: str, *, max_length: int | None = None) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required", field=field_name)
    text = value.strip()
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field_name}: at most {max_length} characters", field=field_name)
    return text


def optional_text(value: Any, field_name: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name}: expected string", field=field_name)
    text = value.strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field_name}: at most {max_length} characters", field=field_name)
    return text


def _require_mapping(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _require_list(value: Any, field_name: str) -> list:
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{field_name} must be a non-empty list", field=field_name)
    return value


def parse_pagination(args, *, default_limit: int = 50, max_limit: int | None = None) -> tuple[int, int]:
    if max_limit is None:
        max_limit = int(current_app.config.get("MAX_PAGE_SIZE", 500))
    limit = optional_int(args.get("limit"), "limit", minimum=1)
    offset = optional_int(args.get("offset"), "offset", minimum=0)
    limit = min(limit or default_limit, max_limit)
    return limit, offset or 0


@dataclass(frozen=True)
class PurchaseOrderLine:
    product_id: int
    qty: int
    cost_paise: int | None = None


@dataclass(frozen=True)
class CreatePurchaseOrderCommand:
    supplier_id: int
    items: tuple[PurchaseOrderLine, ...]
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CreatePurchaseOrderCommand":
        data = _require_mapping(payload)
        lines = []
        for idx, raw in enumerate(_require_list(data.get("items"), "items")):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{idx}] must be an object")
            lines.append(PurchaseOrderLine(
                product_id=coerce_int(raw.get("product_id"), f"items[{idx}].product_id", minimum=1),
                qty=coerce_int(raw.get("qty"), f"items[{idx}].qty", minimum=1),
                cost_paise=optional_int(raw.get("cost_paise"), f"items[{idx}].cost_paise", minimum=0),
            ))
        product_ids = [line.product_id for line in lines]
        if len(set(product_ids)) != len(product_ids):
            raise ValidationError("Each product may appear only once per purchase order", field="items")
        return cls(
            supplier_id=coerce_int(data.get("supplier_id"), "supplier_id", minimum=1),
            items=tuple(lines),
            notes=optional_text(data.get("notes"), "notes", max_length=2000),
        )


@dataclass(frozen=True)
class NotesCommand:
    """Transitions that carry optional free-text notes (request quotation, ship, approve)."""
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "NotesCommand":
        data = _require_mapping(payload)
        return cls(notes=optional_text(data.get("notes"), "notes", max_length=2000))


@dataclass(frozen=True)
class RequestRevisionCommand:
    notes: str

    @classmethod
    def from_payload(cls, payload: Any) -> "RequestRevisionCommand":
        data = _require_mapping(payload)
        return cls(notes=require_text(data.get("notes"), "notes", max_length=2000))


@dataclass(frozen=True)
class SubmitQuotationCommand:
    quotes: dict[int, int] = field(default_factory=dict)
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "SubmitQuotationCommand":
        data = _require_mapping(payload)
        raw_items = data.get("items")
        if raw_items is None:
            raw_items = []
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list", field="items")
        quotes: dict[int, int] = {}
        for idx, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{idx}] must be an object")
            item_id = coerce_int(raw.get("item_id"), f"items[{idx}].item_id", minimum=1)
            if item_id in quotes:
                raise ValidationError(f"Item {item_id} quoted more than once", field="items")
            quotes[item_id] = coerce_int(raw.get("quoted_cost_paise"), f"items[{idx}].quoted_cost_paise", minimum=0)
        return cls(quotes=quotes, notes=optional_text(data.get("notes"), "notes", max_length=2000))


@dataclass(frozen=True)
class ReasonCommand:
    """Transitions that record a reason; required for order rejection."""
    reason: str | None = None

    @classmethod
    def from_payload(cls, payload: Any, *, required: bool = False) -> "ReasonCommand":
        data = _require_mapping(payload)
        if required:
            return cls(reason=require_text(data.get("reason"), "reason", max_length=500))
        return cls(reason=optional_text(data.get("reason"), "reason", max_length=500))


@dataclass(frozen=True)
class StockAdjustmentCommand:
    product_id: int
    delta: int
    note: str

    @classmethod
    def from_payload(cls, payload: Any) -> "StockAdjustmentCommand":
        data = _require_mapping(payload)
        delta = coerce_int(data.get("delta"), "delta")
        if delta == 0:
            raise ValidationError("delta must be non-zero", field="delta")
        return cls(
            product_id=coerce_int(data.get("product_id"), "product_id", minimum=1),
            delta=delta,
            note=require_text(data.get("note"), "note", max_length=255),
        )


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    qty: int


@dataclass(frozen=True)
class CreateCustomerOrderCommand:
    payment_method: str
    items: tuple[OrderLine, ...]
    buyer_name: str | None = None
    store_id: int | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CreateCustomerOrderCommand":
        data = _require_mapping(payload)
        lines = []
        for idx, raw in enumerate(_require_list(data.get("items"), "items")):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{idx}] must be an object")
            lines.append(OrderLine(
                product_id=coerce_int(raw.get("product_id"), f"items[{idx}].product_id", minimum=1),
                qty=coerce_int(raw.get("qty"), f"items[{idx}].qty", minimum=1),
            ))
        method = require_text(data.get("payment_method"), "payment_method").upper()
        return cls(
            payment_method=method,
            items=tuple(lines),
            buyer_name=optional_text(data.get("buyer_name"), "buyer_name", max_length=120),
            store_id=optional_int(data.get("store_id"), "store_id", minimum=1),
        )


@dataclass(frozen=True)
class ReorderPurchaseOrdersCommand:
    supplier_ids: tuple[int, ...] | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ReorderPurchaseOrdersCommand":
        data = _require_mapping(payload)
        raw = data.get("supplier_ids")
        if raw is None:
            return cls()
        if not isinstance(raw, list):
            raise ValidationError("supplier_ids must be a list", field="supplier_ids")
        return cls(supplier_ids=tuple(
            coerce_int(v, f"supplier_ids[{idx}]", minimum=1) for idx, v in enumerate(raw)
        ))
