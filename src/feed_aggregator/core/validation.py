"""Request-boundary input validation.

Each validator either returns the cleaned value or raises
:class:`~feed_aggregator.core.exceptions.ValidationError`.  The settings
validators (``validate_exclude_types`` and ``validate_exclude_regex``) never
raise; they drop what they cannot use.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Optional
from urllib.parse import urlparse

from feed_aggregator.core.exceptions import ValidationError
from feed_aggregator.core.filters import VALID_EXCLUDE_TYPES

VALID_ACTIONS: frozenset[str] = frozenset({
    "channels",
    "timeline",
    "follow",
    "unfollow",
    "search",
    "preview",
    "events",
})

MAX_CHANNEL_NAME_LENGTH = 100

_INDEXED_KEY_RE = re.compile(r"^(?P<name>.+)\[(?P<index>\d+)\]$")


def _missing(parameter: str) -> ValidationError:
    return ValidationError(f"Missing required parameter: {parameter}", parameter=parameter)


def validate_action(action: Optional[str]) -> str:
    if not action:
        raise _missing("action")
    if action not in VALID_ACTIONS:
        raise ValidationError(f"Invalid action: {action}", parameter="action")
    return action


def validate_channel(channel: Optional[str], required: bool = True) -> Optional[str]:
    if not channel and required:
        raise _missing("channel")
    return channel or None


def validate_url(url: Optional[str], parameter: str = "url") -> str:
    """Require an absolute http(s) URL.

    Raises:
        ValidationError: ``"Missing required parameter: <parameter>"`` or
            ``"Invalid URL: <url>"``.
    """
    if not url:
        raise _missing(parameter)
    parsed = urlparse(str(url))
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"Invalid URL: {url}", parameter=parameter)
    return str(url)


def validate_entries(entries: Any) -> list[str]:
    """Normalize the ``entry`` parameter to a non-empty list of ids."""
    if isinstance(entries, str):
        entries = [entries]
    if not entries:
        raise _missing("entry")
    return [str(entry) for entry in entries]


def validate_channel_name(name: Optional[str]) -> str:
    if not name or not str(name).strip():
        raise _missing("name")
    if len(name) > MAX_CHANNEL_NAME_LENGTH:
        raise ValidationError(
            f"Channel name must be {MAX_CHANNEL_NAME_LENGTH} characters or less",
            parameter="name",
        )
    return name


def validate_exclude_types(types: Any) -> list[str]:
    """Keep only recognised interaction types, preserving order."""
    if not isinstance(types, (list, tuple)):
        return []
    return [t for t in types if isinstance(t, str) and t in VALID_EXCLUDE_TYPES]


def validate_exclude_regex(pattern: Any) -> Optional[str]:
    """Return ``pattern`` if it compiles, else ``None``."""
    if not isinstance(pattern, str) or not pattern:
        return None
    try:
        re.compile(pattern)
    except re.error:
        return None
    return pattern


def parse_array_parameter(body: Mapping[str, Any], name: str) -> list[Any]:
    """Collect an array parameter from a form or JSON body.

    Accepts ``name`` holding a list or a single value, ``name[]`` (PHP-style
    form arrays) and indexed keys ``name[0]``, ``name[1]``, ... which are
    returned in index order.

    Returns:
        The values, or an empty list when the parameter is absent.
    """
    for key in (name, f"{name}[]"):
        if key in body and body[key] is not None:
            value = body[key]
            return list(value) if isinstance(value, (list, tuple)) else [value]

    indexed: list[tuple[int, Any]] = []
    for key, value in body.items():
        match = _INDEXED_KEY_RE.match(key)
        if match and match.group("name") == name:
            indexed.append((int(match.group("index")), value))
    return [value for _, value in sorted(indexed, key=lambda pair: pair[0])]
