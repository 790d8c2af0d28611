"""Caller identity resolution.

The hosting web layer owns authentication.  It hands this module whatever
session mapping it has, and the core always gets back a non-empty owner id to
scope channel queries by.

Resolution order:

1. ``session["userId"]``, an explicit account id
2. ``session["me"]``, the identity URL the session was signed in as
3. the publication owner URL from settings
4. the fixed default owner id
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

DEFAULT_OWNER_ID = "default"


def resolve_owner_id(
    session: Optional[Mapping[str, Any]],
    publication_me: Optional[str] = None,
    default: str = DEFAULT_OWNER_ID,
) -> str:
    """Return the owner id for a request.

    Args:
        session: Session mapping supplied by the host, or ``None``.
        publication_me: Canonical URL of the publication owner.
        default: Final fallback identity.

    Returns:
        The first non-empty candidate in resolution order.
    """
    session = session or {}
    for candidate in (session.get("userId"), session.get("me"), publication_me):
        if candidate:
            return str(candidate)
    return default
