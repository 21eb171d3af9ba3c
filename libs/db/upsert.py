"""Dialect-aware INSERT ... ON CONFLICT helpers.

Idempotent writes (payment transactions keyed by order, per-day order number
counters) go through here so the conflict target is always explicit.
"""

from typing import Any, Iterable

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_insert(db: AsyncSession, model):
    """Return an ``insert()`` construct that supports ``on_conflict_do_update``."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert is not supported on {dialect}")


async def upsert(
    db: AsyncSession,
    model,
    *,
    conflict_columns: Iterable[str],
    values: dict[str, Any],
    update_values: dict[str, Any],
    returning=None,
):
    """Insert ``values`` or, when a row with the same conflict key exists,
    apply ``update_values`` to it. Runs in the caller's transaction.
    """
    stmt = dialect_insert(db, model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_columns), set_=update_values
    )
    if returning is not None:
        stmt = stmt.returning(returning)
    return await db.execute(stmt)
