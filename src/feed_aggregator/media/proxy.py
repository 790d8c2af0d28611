"""Rewrite external image URLs to go through a local media proxy.

A proxied URL has the shape ``{base}{media_path}/{hash}?url={encoded}``
where ``hash`` is the first 16 hex characters of the SHA-256 of the original
URL.  Serving the proxy endpoint is out of scope here; this module only
rewrites URLs in JF2 entries before they are handed to a client.
"""

from __future__ import annotations

import copy
import hashlib
from typing import Any, Optional
from urllib.parse import quote

DEFAULT_MEDIA_PATH = "/microsub/media"


def hash_url(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]


def get_proxied_url(
    base_url: Optional[str],
    image_url: Optional[str],
    media_path: str = DEFAULT_MEDIA_PATH,
) -> Optional[str]:
    """Return the proxied form of ``image_url``.

    ``data:`` URLs, empty input, a missing ``base_url`` and URLs that already
    point at the proxy are returned unchanged.
    """
    if not image_url or not base_url:
        return image_url
    if image_url.startswith("data:") or f"{media_path}/" in image_url:
        return image_url
    return f"{base_url.rstrip('/')}{media_path}/{hash_url(image_url)}?url={quote(image_url, safe='')}"


def _proxy_photo(value: Any, base_url: str, media_path: str) -> Any:
    if isinstance(value, str):
        return get_proxied_url(base_url, value, media_path)
    if isinstance(value, list):
        return [_proxy_photo(entry, base_url, media_path) for entry in value]
    if isinstance(value, dict) and isinstance(value.get("value"), str):
        return {**value, "value": get_proxied_url(base_url, value["value"], media_path)}
    return value


def proxy_item_images(
    item: dict[str, Any],
    base_url: Optional[str] = None,
    media_path: str = DEFAULT_MEDIA_PATH,
) -> dict[str, Any]:
    """Return a copy of a JF2 ``item`` with its photos routed through the proxy.

    Rewrites ``photo`` (a string or a list) and ``author.photo``.  Without a
    ``base_url`` the item is returned as is.
    """
    if not base_url or not item:
        return item

    proxied = copy.deepcopy(item)
    if proxied.get("photo"):
        proxied["photo"] = _proxy_photo(proxied["photo"], base_url, media_path)

    author = proxied.get("author")
    if isinstance(author, dict) and author.get("photo"):
        author["photo"] = _proxy_photo(author["photo"], base_url, media_path)
    return proxied
