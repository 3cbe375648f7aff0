"""Atomic insert-or-update on a natural key.

WHAT:
    One `INSERT ... ON CONFLICT (...) DO UPDATE` statement per row, built with
    the dialect-specific insert construct (PostgreSQL in production, SQLite
    in tests). Returns the primary key of the inserted or updated row.

WHY:
    Select-then-insert races under concurrent calls for the same key; the
    unique constraint plus ON CONFLICT makes the database serialize them.

REFERENCES:
    - app/services/customer_registry.py
    - app/services/google_full_sync_service.py
    - app/services/token_service.py
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def _insert_for(db: Session, model: Any):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert not supported for dialect {dialect}")


def upsert_row(
    db: Session,
    model: Any,
    values: Mapping[str, Any],
    conflict_columns: Sequence[str],
    update_columns: Optional[Iterable[str]] = None,
    overrides: Optional[Callable[[Any], Dict[str, Any]]] = None,
) -> Any:
    """Insert `values` or update the row already holding the same natural key.

    Args:
        model: ORM class
        values: column -> value for the insert
        conflict_columns: columns of the unique constraint
        update_columns: columns overwritten on conflict (default: every
            inserted column except the key and `id`)
        overrides: `excluded -> {column: expression}` for SET clauses that
            need more than a plain overwrite, e.g. COALESCE

    Returns:
        The row's primary key.
    """
    stmt = _insert_for(db, model).values(**values)
    if update_columns is None:
        update_columns = [c for c in values if c not in conflict_columns and c not in ("id", "created_at")]

    set_ = {column: stmt.excluded[column] for column in update_columns}
    if "updated_at" in model.__table__.c:
        set_["updated_at"] = datetime.utcnow()
    if overrides:
        set_.update(overrides(stmt.excluded))

    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_=set_,
    ).returning(model.id)
    return db.execute(stmt).scalar_one()
