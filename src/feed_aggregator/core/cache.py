"""Optional key-value cache and pub/sub broker.

The fetcher uses the cache to absorb bursts of requests for the same feed
URL, and the processor uses pub/sub to fan new items out to live readers.
Neither is required for correctness: every operation is best-effort, and
``NullCache`` stands in when no broker is configured.

Usage::

    cache = build_cache(settings.redis_url)   # RedisCache or NullCache
    await cache.set("feed:https://example.com/rss", payload, ttl=300)
    payload = await cache.get("feed:https://example.com/rss")
    await cache.aclose()

Failure policy: a ``RedisCache`` operation that raises is logged at WARNING
and treated as a miss / no-op.  Callers never see a cache exception.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Optional, Protocol, runtime_checkable

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


@runtime_checkable
class Cache(Protocol):
    """Capability interface for the optional cache / broker."""

    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def publish(self, channel: str, data: Any) -> None: ...

    def subscribe(self, channel: str) -> AsyncIterator[Any]: ...

    async def aclose(self) -> None: ...


class NullCache:
    """Cache used when no broker is configured.  Always misses, never stores."""

    async def get(self, key: str) -> Optional[Any]:  # noqa: ARG002
        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None

    async def publish(self, channel: str, data: Any) -> None:
        return None

    async def subscribe(self, channel: str) -> AsyncIterator[Any]:  # noqa: ARG002
        return
        yield  # pragma: no cover

    async def aclose(self) -> None:
        return None


class RedisCache:
    """Redis-backed cache with JSON values.

    Args:
        client: A ``redis.asyncio.Redis`` created with ``decode_responses=True``.
    """

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, redis_url: str) -> RedisCache:
        client: aioredis.Redis = aioredis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._client.get(key)
            if raw:
                return json.loads(raw)
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache: get failed for key=%s: %s", key, exc)
        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            serialized = json.dumps(value)
            if ttl:
                await self._client.set(key, serialized, ex=ttl)
            else:
                await self._client.set(key, serialized)
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache: set failed for key=%s: %s", key, exc)

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache: delete failed for key=%s: %s", key, exc)

    async def publish(self, channel: str, data: Any) -> None:
        try:
            await self._client.publish(channel, json.dumps(data))
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache: publish failed on channel=%s: %s", channel, exc)

    async def subscribe(self, channel: str) -> AsyncIterator[Any]:
        """Yield decoded messages published on ``channel`` until cancelled.

        Messages that are not valid JSON are yielded as raw strings.  A
        broker failure ends the iteration instead of raising.
        """
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(channel)
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                data = message.get("data")
                try:
                    yield json.loads(data)
                except (TypeError, ValueError):
                    yield data
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache: subscription to channel=%s ended: %s", channel, exc)
        finally:
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
            except Exception as exc:  # noqa: BLE001
                logger.debug("cache: pubsub cleanup failed: %s", exc)

    async def aclose(self) -> None:
        try:
            await self._client.aclose()
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache: close failed: %s", exc)


def build_cache(redis_url: Optional[str]) -> Cache:
    """Return a ``RedisCache`` for ``redis_url``, or ``NullCache`` when unset."""
    if not redis_url:
        logger.info("cache: no redis_url configured, using NullCache")
        return NullCache()
    return RedisCache.from_url(redis_url)
