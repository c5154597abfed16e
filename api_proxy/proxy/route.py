import logging
from typing import Optional
from urllib.parse import quote

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from opentelemetry import trace

from api_proxy.proxy.forwarder import create_client, forward, relay_body
from api_proxy.proxy.headers import (
    HeaderPolicy,
    cache_headers,
    cors_headers,
    filter_request_headers,
    filter_response_headers,
    preflight_headers,
)
from api_proxy.proxy.target import build_target_url
from api_proxy.routing.table import RouteMatch
from api_proxy.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from api_proxy.utils.traced_requests import traced_request
from api_proxy.vars import (
    CDN_CACHE_CONTROL_HEADER,
    CDN_CACHE_ID_HEADER,
    PROXY_HEADER_POLICY,
    ROUTE_TABLE,
    VERTEX_ROUTE_PREFIX,
)

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Methods whose inbound body is never relayed upstream
BODYLESS_METHODS = {"GET", "HEAD"}

# Characters kept literally when re-encoding a raw request path
RAW_PATH_SAFE = "/%:@!$&'()*+,;=-._~"


def request_path(request: Request) -> str:
    """The path as the client sent it, percent-encoding intact."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        # Non-ASCII bytes are percent-encoded so they are not re-encoded later
        return quote(raw_path.split(b"?", 1)[0], safe=RAW_PATH_SAFE)
    return request.url.path


def preflight_response() -> Response:
    return Response(status_code=204, headers=preflight_headers())


def error_response(exception: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={"error": "Proxy Error", "message": format_exception_message(exception)},
        headers={"access-control-allow-origin": "*"},
    )


def assemble_response(
    method: str,
    match: RouteMatch,
    upstream: httpx.Response,
    client: httpx.AsyncClient,
) -> StreamingResponse:
    """Wrap the upstream response, relaying its body without buffering."""
    response = StreamingResponse(
        relay_body(upstream, client, raw=PROXY_HEADER_POLICY is HeaderPolicy.PERMISSIVE),
        status_code=upstream.status_code,
    )
    # Appended one by one so repeated upstream headers are not merged
    for name, value in filter_response_headers(upstream.headers, PROXY_HEADER_POLICY):
        response.headers.append(name, value)

    extra = cors_headers()
    if method == "GET":
        extra.update(
            cache_headers(match.prefix, CDN_CACHE_CONTROL_HEADER, CDN_CACHE_ID_HEADER)
        )
    for name, value in extra.items():
        response.headers[name] = value
    return response


async def handle_request(request: Request) -> Optional[Response]:
    """
    Proxy ``request`` to the upstream selected by its path prefix.

    Returns ``None`` when no route matches so the caller can fall through to
    other handlers. Every failure after a route matched becomes a 502 JSON
    response; nothing is raised to the caller.
    """
    if request.method == "OPTIONS":
        return preflight_response()

    path = request_path(request)
    match = ROUTE_TABLE.match(path)
    if match is None:
        return None

    with traced_request(
        tracer,
        operation="proxy_request",
        prefix=match.prefix,
        method=request.method,
        start_message=f"[Proxy] {request.method} {path} matched {match.prefix}",
    ) as span:
        client = None
        try:
            target_url = build_target_url(match, request.url.query, VERTEX_ROUTE_PREFIX)
            span.set_attribute("proxy.target_url", str(target_url))
            logger.debug(f"Proxying {request.method} {path} -> {target_url}")

            headers = filter_request_headers(
                request.headers, target_url, PROXY_HEADER_POLICY
            )
            body = None if request.method in BODYLESS_METHODS else request.stream()

            client = create_client()
            upstream = await forward(client, request.method, target_url, headers, body)
            span.set_attribute("proxy.status_code", upstream.status_code)

            return assemble_response(request.method, match, upstream, client)

        except Exception as e:
            log_exception_with_details(logger, "API Proxy Error:", e)
            span.set_attribute("proxy.error", format_exception_message(e))
            if client is not None:
                await client.aclose()
            return error_response(e)


async def proxy_all(request: Request):
    """Catch-all route; unmatched prefixes fall through to a plain 404."""
    response = await handle_request(request)
    if response is None:
        raise HTTPException(status_code=404, detail="Not Found")
    return response


# Catch-all without a method filter: every verb is proxied
router.add_route("/{path:path}", proxy_all, include_in_schema=False)
