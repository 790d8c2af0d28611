"""Configuration package for the feed aggregator."""

from __future__ import annotations

from feed_aggregator.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
