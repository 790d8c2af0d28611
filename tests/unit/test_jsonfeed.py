"""Tests for JSON Feed normalization."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timezone

import pytest

from feed_aggregator.core.exceptions import JsonFeedValidationError, ParseError
from feed_aggregator.feeds.jsonfeed import parse_json_feed

FEED_URL = "https://json.example.com/feed.json"


class TestParseJsonFeed:
    def test_feed_metadata(self, load_fixture: Callable[[str], str]) -> None:
        feed = parse_json_feed(load_fixture("jsonfeed.json"), FEED_URL)

        assert feed.name == "JSON Example"
        assert feed.url == "https://json.example.com/"
        assert feed.photo == "https://json.example.com/icon.png"
        assert feed.self_url == FEED_URL

    def test_websub_hub_is_preferred(self, load_fixture: Callable[[str], str]) -> None:
        feed = parse_json_feed(load_fixture("jsonfeed.json"), FEED_URL)

        assert feed.hub == "https://websub.example.com/"

    def test_items(self, load_fixture: Callable[[str], str]) -> None:
        second, first = parse_json_feed(load_fixture("jsonfeed.json"), FEED_URL).items

        assert second.name == "Second"
        assert second.content is not None
        assert second.content.text == "Second item"
        assert second.category == ["json", "feeds"]
        assert second.photo == ["https://json.example.com/2.png"]
        assert second.video == ["https://json.example.com/2.mp4"]
        assert second.author is not None and second.author.name == "Jay Son"

        assert first.name is None
        assert first.content is not None and first.content.text == "First item text"
        assert first.published == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
        assert first.author is not None and first.author.name == "Guest Writer"

    def test_accepts_decoded_documents(self) -> None:
        document = {
            "version": "https://jsonfeed.org/version/1",
            "title": "Dict",
            "items": [{"id": 7, "content_text": "seven"}],
        }

        feed = parse_json_feed(document, FEED_URL)

        assert len(feed.items) == 1

    def test_items_without_id_or_url_are_skipped(self) -> None:
        document = {
            "version": "https://jsonfeed.org/version/1.1",
            "items": [{"content_text": "orphan"}, {"url": "https://json.example.com/x"}],
        }

        feed = parse_json_feed(json.dumps(document), FEED_URL)

        assert [item.url for item in feed.items] == ["https://json.example.com/x"]

    def test_malformed_item_does_not_block_valid_ones(self) -> None:
        document = {
            "version": "https://jsonfeed.org/version/1.1",
            "items": [{"id": "1", "title": "ok"}, {"id": "2", "title": 42}],
        }

        feed = parse_json_feed(json.dumps(document), FEED_URL)

        assert [item.name for item in feed.items] == ["ok"]

    @pytest.mark.parametrize(
        ("document", "reason"),
        [
            ({"items": []}, "version"),
            ({"version": "1.1", "items": []}, "version"),
            ({"version": "https://jsonfeed.org/version/1.1"}, "items"),
            ({"version": "https://jsonfeed.org/version/1.1", "items": "x"}, "items"),
        ],
    )
    def test_structural_validation(self, document: dict, reason: str) -> None:
        with pytest.raises(JsonFeedValidationError) as exc_info:
            parse_json_feed(document, FEED_URL)

        assert exc_info.value.reason == reason

    def test_invalid_json(self) -> None:
        with pytest.raises(ParseError, match="JSON Feed parse error"):
            parse_json_feed("{not json", FEED_URL)
