"""Dialect-specific ``INSERT ... ON CONFLICT`` support.

Idempotent inserts rely on the database's unique constraints rather than a
read-then-write check, so they stay race-free when the same feed is
processed concurrently.  PostgreSQL and SQLite both support
``ON CONFLICT DO NOTHING`` with ``RETURNING``.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(session: AsyncSession) -> Any:
    """Return the ``insert`` construct of the session's dialect."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise ValueError(
        f"idempotent insert is not supported on dialect {dialect!r}; expected postgresql or sqlite"
    )
