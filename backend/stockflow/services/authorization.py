# Overview: Acting-user context and ownership checks for workflow commands.

"""
Authorization context.

Authentication lives upstream; by the time a command runs, the caller has
been identified and handed to us as an Actor. These helpers only answer
"may this actor drive this aggregate?" and raise Unauthorized otherwise.

Roles:
- STORE_OWNER: owns one store; drives the store side of purchase orders and
  decides customer orders.
- SUPPLIER: acts for one supplier record; quotes, ships and rejects POs
  addressed to it.
- CUSTOMER: places storefront orders.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import Unauthorized

logger = logging.getLogger("stockflow.authorization")

ROLE_STORE_OWNER = "STORE_OWNER"
ROLE_SUPPLIER = "SUPPLIER"
ROLE_CUSTOMER = "CUSTOMER"
ROLES = {ROLE_STORE_OWNER, ROLE_SUPPLIER, ROLE_CUSTOMER}


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: str
    store_id: int | None = None
    supplier_id: int | None = None

    @property
    def is_store_owner(self) -> bool:
        return self.role == ROLE_STORE_OWNER

    @property
    def is_supplier(self) -> bool:
        return self.role == ROLE_SUPPLIER


def _deny(actor: Actor, reason: str, **context) -> Unauthorized:
    logger.warning(
        "authorization denied",
        extra={"user_id": actor.user_id, "role": actor.role, "reason": reason, **context},
    )
    return Unauthorized(reason)


def require_store_owner(actor: Actor, store_id: int) -> None:
    """Actor must be the owner of store_id."""
    if not actor.is_store_owner:
        raise _deny(actor, "Only the store owner can perform this action", store_id=store_id)
    if actor.store_id != store_id:
        raise _deny(actor, "Store access denied", store_id=store_id)


def require_supplier(actor: Actor, supplier_id: int) -> None:
    """Actor must act for supplier_id."""
    if not actor.is_supplier:
        raise _deny(actor, "Only the supplier can perform this action", supplier_id=supplier_id)
    if actor.supplier_id != supplier_id:
        raise _deny(actor, "Purchase order is addressed to a different supplier", supplier_id=supplier_id)


def require_po_party(actor: Actor, *, store_id: int, supplier_id: int) -> None:
    """Read access: either the owning store or the addressed supplier."""
    if actor.is_store_owner and actor.store_id == store_id:
        return
    if actor.is_supplier and actor.supplier_id == supplier_id:
        return
    raise _deny(actor, "Access denied", store_id=store_id, supplier_id=supplier_id)
