import re

import httpx

from api_proxy.proxy.errors import MalformedTargetError
from api_proxy.routing.table import RouteMatch

VERTEX_VERSION_SEGMENTS = ("/v1beta", "/v1")
VERTEX_PUBLISHER = "/publishers/google"

# An API version sitting in the publisher slot, as a whole path segment
_VERTEX_PUBLISHER_VERSION = re.compile(r"/publishers/(?:v1beta|v1)(?=/|$)")


def rewrite_vertex_publisher(target: str, remainder: str) -> str:
    """
    Replace the API version that lands in the publisher slot with the fixed
    ``google`` publisher.

    The managed platform base already ends with ``/publishers``, so a client
    calling ``/vertex/v1beta/models/...`` produces ``.../publishers/v1beta/models/...``.
    Only the first occurrence is replaced, and only when the remainder starts
    with a version segment.
    """
    if not remainder.startswith(VERTEX_VERSION_SEGMENTS):
        return target
    return _VERTEX_PUBLISHER_VERSION.sub(VERTEX_PUBLISHER, target, count=1)


def build_target_url(
    match: RouteMatch, query: str = "", vertex_prefix: str = "/vertex"
) -> httpx.URL:
    """
    Build the upstream URL for a matched route.

    The target base loses any trailing slash, the remainder is appended as-is
    and the original query string is attached unmodified.
    """
    target = match.target.rstrip("/") + match.remainder
    if match.prefix == vertex_prefix:
        target = rewrite_vertex_publisher(target, match.remainder)
    if query:
        target = f"{target}?{query}"

    try:
        url = httpx.URL(target)
    except httpx.InvalidURL as e:
        raise MalformedTargetError(f"Invalid target URL {target!r}: {e}") from e
    if not url.is_absolute_url or not url.host:
        raise MalformedTargetError(f"Invalid target URL {target!r}: not an absolute URL")
    return url
