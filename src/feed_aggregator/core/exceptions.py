"""Application-wide exception hierarchy for the feed aggregator.

All custom exceptions subclass ``FeedAggregatorError`` so that callers can
catch the whole family with a single ``except`` clause.

Hierarchy::

    FeedAggregatorError
    ├── ValidationError              (parameter: str | None)
    ├── NotFoundError                (resource: str | None)
    ├── FetchError                   (url: str | None)
    │   ├── HttpError                (status_code: int)
    │   └── FetchTimeoutError        (timeout: float)
    └── ParseError                   (format: str | None)
        └── JsonFeedValidationError  (reason: "version" | "items")

Propagation policy: ``ValidationError`` and ``NotFoundError`` surface at the
request boundary.  ``FetchError`` and ``ParseError`` raised while polling are
caught per feed by the ingestion processor and persisted as feed state; they
never escape a batch.
"""

from __future__ import annotations


class FeedAggregatorError(Exception):
    """Base class for all feed aggregator exceptions."""


# ---------------------------------------------------------------------------
# Request-boundary exceptions
# ---------------------------------------------------------------------------


class ValidationError(FeedAggregatorError):
    """Raised when caller input is missing or malformed.

    Args:
        message: Human-readable description of the problem.
        parameter: Name of the offending request parameter, if known.
    """

    def __init__(self, message: str, parameter: str | None = None) -> None:
        super().__init__(message)
        self.parameter = parameter


class NotFoundError(FeedAggregatorError):
    """Raised when a referenced channel, feed or item does not exist.

    Args:
        message: Human-readable description, e.g. ``"Channel not found"``.
        resource: Resource kind (``"channel"``, ``"feed"``, ``"item"``).
    """

    def __init__(self, message: str, resource: str | None = None) -> None:
        super().__init__(message)
        self.resource = resource


# ---------------------------------------------------------------------------
# Fetch exceptions
# ---------------------------------------------------------------------------


class FetchError(FeedAggregatorError):
    """Raised when a feed URL cannot be retrieved.

    Args:
        message: Human-readable description of the failure.
        url: The URL that was being fetched.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class HttpError(FetchError):
    """Raised when the upstream server answers with a non-2xx status other than 304.

    Args:
        status_code: The HTTP status code returned.
        reason: Reason phrase, if any.
        url: The URL that was being fetched.
    """

    def __init__(
        self,
        status_code: int,
        reason: str | None = None,
        url: str | None = None,
    ) -> None:
        msg = f"HTTP {status_code}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, url=url)
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    """Raised when a fetch exceeds its hard deadline.

    Args:
        timeout: The deadline in seconds that was exceeded.
        url: The URL that was being fetched.
    """

    def __init__(self, timeout: float, url: str | None = None) -> None:
        super().__init__(f"Request timeout after {int(timeout * 1000)}ms", url=url)
        self.timeout = timeout


# ---------------------------------------------------------------------------
# Parse exceptions
# ---------------------------------------------------------------------------


class ParseError(FeedAggregatorError):
    """Raised when feed content is empty or malformed.

    Args:
        message: Format-specific description, e.g. ``"RSS parse error: ..."``.
        format: Feed format being parsed (``"rss"``, ``"jsonfeed"``, ``"hfeed"``).
    """

    def __init__(self, message: str, format: str | None = None) -> None:  # noqa: A002
        super().__init__(message)
        self.format = format


class JsonFeedValidationError(ParseError):
    """Raised when a JSON document parses but is not a valid JSON Feed.

    Args:
        reason: ``"version"`` when the version string is missing or not a
            recognised JSON Feed version; ``"items"`` when ``items`` is not
            an array.
    """

    _MESSAGES = {
        "version": "Invalid JSON Feed: missing or invalid version",
        "items": "Invalid JSON Feed: items must be an array",
    }

    def __init__(self, reason: str) -> None:
        super().__init__(self._MESSAGES.get(reason, "Invalid JSON Feed"), format="jsonfeed")
        self.reason = reason
