"""Request identity resolution.

Every evaluated request needs a unique token to store in its Window Record.
Propagated tracing ids are reused so limiter entries line up with logs; when
none is present a random UUID4 is generated.
"""

from __future__ import annotations

import uuid
from typing import Mapping

REQUEST_ID_HEADERS: tuple[str, ...] = ("X-Request-ID", "Request-ID")


def resolve_request_id(headers: Mapping[str, str]) -> str:
    """Return the propagated request id, or a fresh one.

    Args:
        headers: Request headers. Starlette headers are case-insensitive;
            plain dicts are matched on the canonical spelling and lower case.

    Returns:
        The first non-blank value of ``X-Request-ID`` then ``Request-ID``,
        otherwise a newly generated UUID4 string.
    """

    for name in REQUEST_ID_HEADERS:
        value = headers.get(name) or headers.get(name.lower())
        if value and value.strip():
            return value.strip()
    return str(uuid.uuid4())
