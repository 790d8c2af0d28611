"""Unit tests for media proxy URL rewriting."""

from __future__ import annotations

from urllib.parse import quote

from feed_aggregator.media.proxy import get_proxied_url, hash_url, proxy_item_images

BASE = "https://reader.example.com"


class TestHashUrl:
    def test_is_stable_sixteen_hex_chars(self) -> None:
        digest = hash_url("https://external.example/photo.jpg")

        assert digest == hash_url("https://external.example/photo.jpg")
        assert digest != hash_url("https://external.example/other.jpg")
        assert len(digest) == 16
        assert all(ch in "0123456789abcdef" for ch in digest)


class TestGetProxiedUrl:
    def test_external_image(self) -> None:
        image = "https://external.example/photo.jpg?size=large"

        result = get_proxied_url(BASE, image)

        assert result == f"{BASE}/microsub/media/{hash_url(image)}?url={quote(image, safe='')}"

    def test_custom_media_path(self) -> None:
        result = get_proxied_url(BASE + "/", "https://external.example/a.png", media_path="/img")

        assert result is not None
        assert result.startswith(f"{BASE}/img/")

    def test_data_urls_are_unchanged(self) -> None:
        data_url = "data:image/png;base64,abc123"

        assert get_proxied_url(BASE, data_url) == data_url

    def test_missing_base_url_leaves_url(self) -> None:
        assert get_proxied_url(None, "https://external.example/a.png") == "https://external.example/a.png"

    def test_already_proxied_is_not_proxied_twice(self) -> None:
        proxied = f"{BASE}/microsub/media/abc123?url=test"

        assert get_proxied_url(BASE, proxied) == proxied


class TestProxyItemImages:
    def test_string_photo(self) -> None:
        result = proxy_item_images({"photo": "https://external.example/a.jpg"}, BASE)

        assert "/microsub/media/" in result["photo"]

    def test_photo_list(self) -> None:
        item = {"photo": ["https://external.example/1.jpg", "https://external.example/2.jpg"]}

        result = proxy_item_images(item, BASE)

        assert all("/microsub/media/" in url for url in result["photo"])

    def test_author_photo_and_copy_semantics(self) -> None:
        item = {"author": {"name": "Ann", "photo": "https://external.example/ann.jpg"}}

        result = proxy_item_images(item, BASE)

        assert "/microsub/media/" in result["author"]["photo"]
        assert result["author"]["name"] == "Ann"
        assert item["author"]["photo"] == "https://external.example/ann.jpg"

    def test_without_base_url_item_is_unchanged(self) -> None:
        item = {"photo": "https://external.example/a.jpg"}

        assert proxy_item_images(item) == item
