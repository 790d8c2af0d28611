"""Item storage: idempotent insertion, timelines and read state.

``add_item`` is the only writer of new rows.  It issues
``INSERT ... ON CONFLICT (channel_id, uid) DO NOTHING RETURNING id`` so that
an entry seen twice, whether by a repeated poll or by a manual refresh
racing the scheduler, is stored exactly once and reported as not new the
second time.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from feed_aggregator.core.models import Item, utcnow
from feed_aggregator.core.schemas.canonical import CanonicalItem
from feed_aggregator.core.schemas.responses import TimelineResponse
from feed_aggregator.storage._dialect import insert_for
from feed_aggregator.storage.pagination import (
    build_pagination_query,
    build_pagination_sort,
    generate_paging_cursors,
    parse_limit,
)

logger = logging.getLogger(__name__)


def _parse_ids(entry_ids: Iterable[Any]) -> list[uuid.UUID]:
    ids: list[uuid.UUID] = []
    for raw in entry_ids:
        try:
            ids.append(raw if isinstance(raw, uuid.UUID) else uuid.UUID(str(raw)))
        except ValueError:
            logger.debug("items: ignoring malformed entry id %r", raw)
    return ids


async def add_item(
    session: AsyncSession,
    channel_id: uuid.UUID,
    feed_id: Optional[uuid.UUID],
    item: CanonicalItem,
    now: Optional[datetime] = None,
) -> Optional[Item]:
    """Store ``item`` in a channel unless its uid is already there.

    Entries without a publication date are stamped with the ingestion time.

    Returns:
        The stored item, or ``None`` when ``(channel_id, uid)`` already
        existed.
    """
    now = now or utcnow()
    published = item.published or now
    data = item.to_jf2()
    data["published"] = published.isoformat()
    data.pop("_is_read", None)

    values: dict[str, Any] = {
        "id": uuid.uuid4(),
        "channel_id": channel_id,
        "feed_id": feed_id,
        "uid": item.uid,
        "published": published,
        "url": item.url,
        "name": item.name,
        "content_text": (item.content.text if item.content else None) or item.summary,
        "data": data,
        "is_read": False,
        "created_at": now,
    }
    stmt = (
        insert_for(session)(Item)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["channel_id", "uid"])
        .returning(Item.id)
    )
    inserted = (await session.execute(stmt)).scalar_one_or_none()
    if inserted is None:
        return None
    return Item(**values)


async def get_item_by_id(session: AsyncSession, item_id: Any) -> Optional[Item]:
    ids = _parse_ids([item_id])
    if not ids:
        return None
    return await session.get(Item, ids[0])


async def get_timeline_items(
    session: AsyncSession,
    channel_id: uuid.UUID,
    before: Optional[str] = None,
    after: Optional[str] = None,
    limit: Any = None,
) -> TimelineResponse:
    """Return one page of a channel timeline, newest first.

    Args:
        session: Database session.
        channel_id: Internal channel id.
        before: Cursor for the page of newer items.
        after: Cursor for the page of older items.
        limit: Requested page size; clamped by ``parse_limit``.
    """
    page_size = parse_limit(limit)
    stmt = select(Item).where(Item.channel_id == channel_id)
    criterion = build_pagination_query(before=before, after=after)
    if criterion is not None:
        stmt = stmt.where(criterion)
    stmt = stmt.order_by(*build_pagination_sort(before)).limit(page_size + 1)

    rows = list((await session.execute(stmt)).scalars().all())
    has_more = len(rows) > page_size
    rows, paging = generate_paging_cursors(rows[:page_size], has_more, before)
    return TimelineResponse(items=[row.to_jf2() for row in rows], paging=paging)


async def _set_read(
    session: AsyncSession,
    channel_id: uuid.UUID,
    entry_ids: Iterable[Any],
    is_read: bool,
) -> int:
    ids = _parse_ids(entry_ids)
    if not ids:
        return 0
    result = await session.execute(
        update(Item)
        .where(Item.channel_id == channel_id, Item.id.in_(ids))
        .values(is_read=is_read)
    )
    return result.rowcount or 0


async def mark_items_read(session: AsyncSession, channel_id: uuid.UUID, entry_ids: Iterable[Any]) -> int:
    """Mark entries read; returns the number of rows changed."""
    return await _set_read(session, channel_id, entry_ids, True)


async def mark_items_unread(session: AsyncSession, channel_id: uuid.UUID, entry_ids: Iterable[Any]) -> int:
    return await _set_read(session, channel_id, entry_ids, False)


async def remove_items(session: AsyncSession, channel_id: uuid.UUID, entry_ids: Iterable[Any]) -> int:
    """Delete entries from a channel timeline."""
    ids = _parse_ids(entry_ids)
    if not ids:
        return 0
    result = await session.execute(
        delete(Item).where(Item.channel_id == channel_id, Item.id.in_(ids))
    )
    return result.rowcount or 0


async def count_unread(session: AsyncSession, channel_id: uuid.UUID) -> int:
    stmt = select(func.count()).select_from(Item).where(
        Item.channel_id == channel_id,
        Item.is_read.is_(False),
    )
    return int((await session.execute(stmt)).scalar_one())


async def search_items(
    session: AsyncSession,
    channel_id: uuid.UUID,
    query: str,
    limit: Any = None,
) -> list[dict[str, Any]]:
    """Case-insensitive substring search over name, text and URL, newest first."""
    pattern = f"%{query.strip()}%"
    stmt = (
        select(Item)
        .where(
            Item.channel_id == channel_id,
            or_(
                Item.name.ilike(pattern),
                Item.content_text.ilike(pattern),
                Item.url.ilike(pattern),
            ),
        )
        .order_by(Item.published.desc(), Item.id.desc())
        .limit(parse_limit(limit))
    )
    rows = (await session.execute(stmt)).scalars().all()
    return [row.to_jf2() for row in rows]
