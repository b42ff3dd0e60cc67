"""
Append-only enforcement beyond the per-instance mapper listeners.

The ``before_update``/``before_delete`` mapper listeners in ``ledger.py`` and
``audit.py`` only see objects flushed by the unit of work. Two more layers
cover the paths they miss:

- a ``do_orm_execute`` session listener refuses ORM-enabled bulk UPDATE and
  DELETE statements (``Query.update()``, ``Query.delete()``,
  ``session.execute(update(Model))``) against an append-only model;
- BEFORE UPDATE/DELETE triggers on the table refuse everything else,
  including raw SQL. They are attached to ``after_create`` here for
  ``db.create_all()`` and created by the initial Alembic migration.
"""

from __future__ import annotations

import logging

from sqlalchemy import DDL, event
from sqlalchemy.orm import Session

from ..errors import ImmutabilityViolation

logger = logging.getLogger("stockflow.immutability")

_APPEND_ONLY: dict[str, str] = {}

_SQLITE_TRIGGERS = (
    "CREATE TRIGGER trg_%(table)s_no_update BEFORE UPDATE ON %(table)s "
    "BEGIN SELECT RAISE(ABORT, '%(table)s rows are append-only'); END",
    "CREATE TRIGGER trg_%(table)s_no_delete BEFORE DELETE ON %(table)s "
    "BEGIN SELECT RAISE(ABORT, '%(table)s rows are append-only'); END",
)

_POSTGRES_TRIGGERS = (
    "CREATE OR REPLACE FUNCTION %(table)s_refuse_change() RETURNS trigger AS $$ "
    "BEGIN RAISE EXCEPTION '%(table)s rows are append-only'; END; "
    "$$ LANGUAGE plpgsql",
    "CREATE TRIGGER trg_%(table)s_append_only BEFORE UPDATE OR DELETE ON %(table)s "
    "FOR EACH ROW EXECUTE FUNCTION %(table)s_refuse_change()",
)


def append_only(model: type) -> type:
    """Register ``model`` for the bulk-statement guard and table triggers."""
    table = model.__table__
    _APPEND_ONLY[table.name] = model.__name__
    for statement in _SQLITE_TRIGGERS:
        event.listen(table, "after_create", DDL(statement).execute_if(dialect="sqlite"))
    for statement in _POSTGRES_TRIGGERS:
        event.listen(table, "after_create", DDL(statement).execute_if(dialect="postgresql"))
    return model


@event.listens_for(Session, "do_orm_execute")
def _refuse_bulk_change(orm_execute_state):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return

    table = getattr(orm_execute_state.statement, "table", None)
    entity = _APPEND_ONLY.get(getattr(table, "name", None))
    if entity is None:
        return

    operation = "UPDATE" if orm_execute_state.is_update else "DELETE"
    logger.error(
        "immutability violation blocked",
        extra={"entity": entity, "operation": f"BULK {operation}"},
    )
    raise ImmutabilityViolation(f"Bulk {operation.lower()} of {entity} rows is not allowed")
