"""Adaptive polling tiers.

A feed at tier ``t`` is polled every ``2**t`` minutes, for ``t`` in 0..10
(one minute up to roughly seventeen hours).  Finding new content moves a
feed one tier down.  Repeated empty polls move it one tier up once the
unmodified streak reaches ``max(2, tier)``, so a feed that just became fast
is not judged stable again after only a couple of polls.

All functions are pure; ``now`` may be passed for deterministic results.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

MIN_TIER = 0
MAX_TIER = 10
MIN_STABILITY_THRESHOLD = 2


@dataclass(frozen=True)
class TierState:
    """Polling state produced by :func:`advance_tier`."""

    tier: int
    unmodified_streak: int
    next_fetch_at: datetime


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def clamp_tier(tier: int) -> int:
    return max(MIN_TIER, min(MAX_TIER, tier))


def interval_for_tier(tier: int) -> timedelta:
    """Return the polling interval for ``tier``; out-of-range tiers are clamped."""
    return timedelta(minutes=2 ** clamp_tier(tier))


def next_fetch_time(tier: int, now: Optional[datetime] = None) -> datetime:
    return _now(now) + interval_for_tier(tier)


def advance_tier(
    current_tier: int,
    has_new_items: bool,
    unmodified_streak: int,
    now: Optional[datetime] = None,
) -> TierState:
    """Compute the polling state after one fetch.

    Args:
        current_tier: Tier before this fetch.
        has_new_items: Whether the fetch stored at least one new item.
        unmodified_streak: Consecutive empty fetches before this one.
        now: Reference time for ``next_fetch_at``.

    Returns:
        The new :class:`TierState`.
    """
    current_tier = clamp_tier(current_tier)
    if has_new_items:
        tier = max(MIN_TIER, current_tier - 1)
        streak = 0
    else:
        tier = current_tier
        streak = unmodified_streak + 1
        if streak >= max(MIN_STABILITY_THRESHOLD, current_tier):
            tier = min(MAX_TIER, current_tier + 1)
            streak = 0
    return TierState(tier=tier, unmodified_streak=streak, next_fetch_at=next_fetch_time(tier, now))


def initial_tier_state(now: Optional[datetime] = None) -> TierState:
    """State of a newly followed feed: fastest tier, due immediately."""
    return TierState(tier=MIN_TIER, unmodified_streak=0, next_fetch_at=_now(now))


def is_due_for_fetch(next_fetch_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if next_fetch_at is None:
        return True
    return next_fetch_at <= _now(now)


def describe_tier(tier: int) -> str:
    """Human-readable polling frequency, e.g. ``"every 4 hours"``."""
    minutes = 2 ** clamp_tier(tier)
    if minutes < 60:
        value, unit = minutes, "minute"
    else:
        value, unit = round(minutes / 60), "hour"
    return f"every {value} {unit}" if value == 1 else f"every {value} {unit}s"
