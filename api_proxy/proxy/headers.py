"""
Header policies for the proxy boundary.

All names are normalized to lower case before lookup or storage, so the
filters behave the same for any mapping type handed in.
"""

from enum import Enum
from typing import Dict, List, Mapping, Tuple

import httpx


class HeaderPolicy(str, Enum):
    STRICT = "strict"
    PERMISSIVE = "permissive"

    @classmethod
    def parse(cls, value: str) -> "HeaderPolicy":
        try:
            return cls(value.strip().lower())
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ValueError(
                f"Unknown header policy {value!r}, expected one of: {allowed}"
            ) from None


# Inbound headers that may reach the upstream under the strict policy
REQUEST_HEADER_ALLOW_LIST = (
    "authorization",
    "content-type",
    "accept",
    "x-api-key",
    "anthropic-version",
    "x-goog-api-key",
)

# Upstream headers relayed to the client under the strict policy
RESPONSE_HEADER_ALLOW_LIST = (
    "content-type",
    "x-request-id",
    "x-ratelimit-limit",
    "x-ratelimit-remaining",
    "x-ratelimit-reset",
)

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

CORS_ALLOW_METHODS = "GET, POST, PUT, DELETE, PATCH, OPTIONS"
PREFLIGHT_MAX_AGE = "86400"

CACHE_MAX_AGE = 60
CACHE_STALE_WHILE_REVALIDATE = 30


def _lowered(headers: Mapping[str, str]) -> Dict[str, str]:
    return {name.lower(): value for name, value in headers.items()}


def filter_request_headers(
    headers: Mapping[str, str], target: httpx.URL, policy: HeaderPolicy
) -> Dict[str, str]:
    """Select the inbound headers forwarded to ``target``."""
    incoming = _lowered(headers)

    if policy is HeaderPolicy.PERMISSIVE:
        # httpx derives Host from the target URL when none is given
        return {
            name: value
            for name, value in incoming.items()
            if name not in HOP_BY_HOP_HEADERS and name != "host"
        }

    forwarded = {}
    for name in REQUEST_HEADER_ALLOW_LIST:
        value = incoming.get(name)
        if value:
            forwarded[name] = value
    forwarded["host"] = target.netloc.decode("ascii")
    return forwarded


def filter_response_headers(
    headers: Mapping[str, str], policy: HeaderPolicy
) -> List[Tuple[str, str]]:
    """
    Select the upstream response headers relayed back to the client.

    Returns name/value pairs so repeated headers such as ``set-cookie`` stay
    separate.
    """
    if policy is HeaderPolicy.PERMISSIVE:
        pairs = headers.multi_items() if hasattr(headers, "multi_items") else headers.items()
        return [
            (name.lower(), value)
            for name, value in pairs
            if name.lower() not in HOP_BY_HOP_HEADERS
        ]

    upstream = _lowered(headers)
    relayed = []
    for name in RESPONSE_HEADER_ALLOW_LIST:
        value = upstream.get(name)
        if value:
            relayed.append((name, value))
    return relayed


def cors_headers() -> Dict[str, str]:
    return {
        "access-control-allow-origin": "*",
        "access-control-allow-methods": CORS_ALLOW_METHODS,
        "access-control-allow-headers": "*",
    }


def preflight_headers() -> Dict[str, str]:
    headers = cors_headers()
    headers["access-control-max-age"] = PREFLIGHT_MAX_AGE
    return headers


def cache_headers(prefix: str, control_header: str, id_header: str) -> Dict[str, str]:
    """Edge cache hints for GET responses, namespaced per route prefix."""
    return {
        control_header.lower(): (
            f"public, max-age={CACHE_MAX_AGE}, "
            f"stale-while-revalidate={CACHE_STALE_WHILE_REVALIDATE}"
        ),
        id_header.lower(): f"api{prefix}",
    }
