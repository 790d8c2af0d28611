"""Tests for dialect selection of idempotent inserts."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from feed_aggregator.storage._dialect import insert_for


def _session(dialect_name: str) -> MagicMock:
    session = MagicMock()
    session.get_bind.return_value.dialect.name = dialect_name
    return session


class TestInsertFor:
    @pytest.mark.parametrize(
        ("dialect_name", "expected"),
        [("postgresql", postgresql.insert), ("sqlite", sqlite.insert)],
    )
    def test_supported_dialects(self, dialect_name: str, expected: object) -> None:
        assert insert_for(_session(dialect_name)) is expected

    def test_unsupported_dialect_names_supported_ones(self) -> None:
        with pytest.raises(ValueError, match="expected postgresql or sqlite"):
            insert_for(_session("mysql"))
