"""
Database helper functions — dialect-aware upserts and timestamp handling.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Sequence, Type

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Base

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def as_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def upsert(
    session: AsyncSession,
    model: Type[Base],
    values: Dict[str, Any],
    index_elements: Sequence[str],
) -> None:
    """
    Insert a row or replace every non-key column of the existing one.

    Uses ``INSERT .. ON CONFLICT DO UPDATE`` so concurrent writers for the
    same key never fail on the unique constraint; the last write wins.
    """
    dialect = session.get_bind().dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Upsert not supported for dialect '{dialect}'")

    stmt = insert(model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(index_elements),
        set_={k: v for k, v in values.items() if k not in index_elements},
    )
    await session.execute(stmt)
