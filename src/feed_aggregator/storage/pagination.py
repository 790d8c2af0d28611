"""Keyset (cursor) pagination over channel timelines.

Canonical order is ``(published DESC, id DESC)``.  A cursor is the
base64url encoding (no padding) of a compact JSON object holding one
item's ``published`` timestamp and ``id``::

    {"t": "2024-01-15T10:30:00+00:00", "i": "6f1c0a..."}

- ``after=<cursor>`` pages toward older items: rows strictly below the
  cursor in canonical order, queried descending.
- ``before=<cursor>`` pages toward newer items: rows strictly above the
  cursor, queried ascending and reversed afterwards so that every page is
  returned newest first.

A token that is empty, not base64url, not JSON, or not of that shape decodes
to ``None`` and is ignored.  When both cursors are given, ``before`` wins.
"""

from __future__ import annotations

import base64
import binascii
import json
import uuid
from datetime import datetime, timezone
from typing import Any, NamedTuple, Optional, Sequence, Union

from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from feed_aggregator.core.models import Item
from feed_aggregator.core.schemas.responses import Paging

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


class Cursor(NamedTuple):
    timestamp: datetime
    item_id: uuid.UUID


# ---------------------------------------------------------------------------
# Cursor codec
# ---------------------------------------------------------------------------


def _to_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def encode_cursor(timestamp: Union[datetime, str], item_id: Any) -> str:
    """Encode ``(timestamp, item_id)`` as an opaque URL-safe token.

    Args:
        timestamp: The item's ``published`` value, as a datetime or an ISO
            8601 string.
        item_id: The item's ``id``.
    """
    if isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    payload = json.dumps(
        {"t": _to_utc(timestamp).isoformat(), "i": str(item_id)},
        separators=(",", ":"),
    )
    return base64.urlsafe_b64encode(payload.encode("utf-8")).rstrip(b"=").decode("ascii")


def decode_cursor(token: Optional[str]) -> Optional[Cursor]:
    """Decode a token produced by :func:`encode_cursor`.

    Returns:
        The cursor, or ``None`` for any empty, corrupted or foreign token.
    """
    if not token or not isinstance(token, str):
        return None
    try:
        raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
        data = json.loads(raw)
        if not isinstance(data, dict):
            return None
        timestamp = datetime.fromisoformat(str(data["t"]))
        item_id = uuid.UUID(str(data["i"]))
    except (KeyError, TypeError, ValueError, binascii.Error):
        return None
    return Cursor(timestamp=_to_utc(timestamp), item_id=item_id)


# ---------------------------------------------------------------------------
# Query construction
# ---------------------------------------------------------------------------


def build_pagination_query(
    before: Optional[str] = None,
    after: Optional[str] = None,
) -> Optional[ColumnElement[bool]]:
    """Return the keyset WHERE criterion for the requested page, if any."""
    cursor = decode_cursor(before)
    if cursor is not None:
        return or_(
            Item.published > cursor.timestamp,
            and_(Item.published == cursor.timestamp, Item.id > cursor.item_id),
        )
    cursor = decode_cursor(after)
    if cursor is not None:
        return or_(
            Item.published < cursor.timestamp,
            and_(Item.published == cursor.timestamp, Item.id < cursor.item_id),
        )
    return None


def build_pagination_sort(before: Optional[str] = None) -> list[Any]:
    """Return ORDER BY clauses: ascending for ``before`` paging, else descending."""
    if decode_cursor(before) is not None:
        return [Item.published.asc(), Item.id.asc()]
    return [Item.published.desc(), Item.id.desc()]


def generate_paging_cursors(
    items: Optional[Sequence[Any]],
    has_more: bool,
    before: Optional[str] = None,
) -> tuple[list[Any], Paging]:
    """Put a fetched page into newest-first order and compute its cursors.

    Args:
        items: Rows in query order (ascending for ``before`` paging).  Each
            must expose ``published`` and ``id``.
        has_more: Whether the ``limit + 1`` probe found another row.
        before: The ``before`` token the page was fetched with.

    Returns:
        ``(items newest first, paging)``.  ``paging.before`` comes from the
        first item; ``paging.after`` from the last item and only when
        ``has_more``.  An empty page has no cursors.
    """
    ordered = list(items or [])
    if decode_cursor(before) is not None:
        ordered.reverse()
    if not ordered:
        return ordered, Paging()

    first, last = ordered[0], ordered[-1]
    return ordered, Paging(
        before=encode_cursor(first.published, first.id),
        after=encode_cursor(last.published, last.id) if has_more else None,
    )


def parse_limit(value: Any) -> int:
    """Clamp a requested page size into ``[1, MAX_LIMIT]``.

    Non-numeric, zero and negative values give ``DEFAULT_LIMIT``.
    """
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    if limit < 1:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)
