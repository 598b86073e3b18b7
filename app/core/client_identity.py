"""Client identity resolution from proxy headers.

The identity is used as the rate-limit key and passed to Turnstile as
``remoteip``. Headers are checked from most to least trustworthy:

1. ``cf-connecting-ip`` (injected by the Cloudflare edge)
2. ``x-forwarded-for`` (first hop only)
3. ``x-real-ip``

Local/dev requests without any of these resolve to the loopback address.
"""

from __future__ import annotations

from typing import Mapping

DEFAULT_CLIENT_IDENTITY = "127.0.0.1"


def resolve_client_identity(headers: Mapping[str, str]) -> str:
    """Resolve a stable per-request identity from request headers.

    Args:
        headers: Request headers. Starlette headers are case-insensitive;
            plain dicts are expected to use lowercase names.

    Returns:
        Client IP string; never empty.

    Examples:
        >>> resolve_client_identity({"x-forwarded-for": "203.0.113.7, 10.0.0.1"})
        '203.0.113.7'
        >>> resolve_client_identity({})
        '127.0.0.1'
    """

    cf_connecting_ip = (headers.get("cf-connecting-ip") or "").strip()
    if cf_connecting_ip:
        return cf_connecting_ip

    forwarded = headers.get("x-forwarded-for") or ""
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop

    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    return DEFAULT_CLIENT_IDENTITY
