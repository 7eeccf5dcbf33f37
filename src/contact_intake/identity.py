# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Client identity derivation for rate limiting.

The service usually runs behind a CDN or reverse proxy, so the socket peer
address is the proxy's. The identity is taken from the forwarding headers
in order of preference and is only ever used as a rate-limiter key.
"""

from collections.abc import Mapping

FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"
UNKNOWN_IDENTITY = "unknown"


def client_identity(headers: Mapping[str, str], fallback: str = UNKNOWN_IDENTITY) -> str:
    """Return the rate-limit key for a request.

    Args:
        headers: Request headers. Lookups use lowercase names, which works
            with Starlette's case-insensitive ``Headers`` and plain dicts
            built with lowercase keys.
        fallback: Literal returned when no forwarding header is usable.

    Returns:
        The first ``X-Forwarded-For`` hop, else ``X-Real-IP``, else ``fallback``.
    """
    forwarded = headers.get(FORWARDED_FOR_HEADER)
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = headers.get(REAL_IP_HEADER)
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return fallback
