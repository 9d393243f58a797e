"""Scope key derivation.

A scope key names one Window Record in the shared store. Keys must be
identical across processes for the same logical scope, so every builder here
is a pure function of the request context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping

from starlette.datastructures import Headers
from starlette.requests import Request

GLOBAL_SCOPE = "global"
UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class EventContext:
    """The parts of an inbound request the limiter looks at.

    Attributes:
        path: Request path, used as the route discriminator.
        client_ip: Client address (first forwarded hop when proxied).
        headers: Case-insensitive header mapping.
    """

    path: str
    client_ip: str = UNKNOWN_CLIENT
    headers: Mapping[str, str] = field(default_factory=Headers)

    @classmethod
    def from_request(cls, request: Request) -> "EventContext":
        return cls(
            path=request.url.path,
            client_ip=client_ip_from_request(request),
            headers=request.headers,
        )


Discriminator = Callable[[EventContext], str]


def client_ip_from_request(request: Request) -> str:
    """Resolve the client address of a request.

    ``X-Forwarded-For`` may list several hops (``client, proxy1, proxy2``);
    only the first, trimmed, identifies the client.
    """

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def route_discriminator(context: EventContext) -> str:
    return context.path


def route_ip_discriminator(context: EventContext) -> str:
    # IP first, colon-delimited: "1.2.3.4" + "/a/b" never equals "1.2.3.4/a" + "b"
    return f"{context.client_ip}:{context.path}"


def global_discriminator(context: EventContext) -> str:
    return GLOBAL_SCOPE


SCOPE_DISCRIMINATORS: dict[str, Discriminator] = {
    "route": route_discriminator,
    "route_ip": route_ip_discriminator,
    "global": global_discriminator,
}


def build_key(prefix: str, discriminator: Discriminator, context: EventContext) -> str:
    """Build the store key for a request.

    Args:
        prefix: Namespace shared by all limiter keys (e.g. ``request:ratelimiter:``).
        discriminator: Function mapping the request to its scope.
        context: The request being evaluated.

    Returns:
        The scope key, ``prefix + discriminator(context)``.
    """

    return prefix + discriminator(context)
