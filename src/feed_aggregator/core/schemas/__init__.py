"""Pydantic schemas.

Sub-modules:
    canonical  - CanonicalFeed, CanonicalItem, Author, Content (JF2 model)
    responses  - ChannelResponse, FeedResponse, TimelineResponse, Paging
"""

from __future__ import annotations
