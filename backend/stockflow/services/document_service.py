# Overview: Per-store document number allocation for purchase orders and customer orders.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow

PURCHASE_ORDER = "PURCHASE_ORDER"
CUSTOMER_ORDER = "CUSTOMER_ORDER"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    store_id: int,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for a store/type inside the caller's transaction.

    The increment is a single UPDATE, so concurrent allocators serialize on
    the sequence row. When no row exists yet the first allocator inserts it;
    a racing second insert fails with IntegrityError, which the calling
    command retries.

    Format: <prefix>-<year>-<store:03d>-<number:0{pad}d>
    """
    if not store_id:
        raise DocumentSequenceError("store_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.store_id == store_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(store_id=store_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(store_id=store_id, document_type=document_type, next_number=2)
        db.session.add(seq)
        db.session.flush()
        next_num = 1

    return f"{prefix}-{utcnow().year}-{store_id:03d}-{next_num:0{pad}d}"
