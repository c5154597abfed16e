import logging
from typing import AsyncIterable, AsyncIterator, Mapping, Optional

import httpx
from starlette.requests import ClientDisconnect

from api_proxy.proxy.errors import UpstreamTransportError
from api_proxy.utils.exception_logging import log_exception_with_details

logger = logging.getLogger("uvicorn.error")

# Failures on either side of the relay that count as transport failures
TRANSPORT_ERRORS = (httpx.RequestError, httpx.StreamError, ClientDisconnect)


def create_client() -> httpx.AsyncClient:
    """One client per proxied request: no timeout, redirects passed through."""
    return httpx.AsyncClient(timeout=httpx.Timeout(None), follow_redirects=False)


async def forward(
    client: httpx.AsyncClient,
    method: str,
    url: httpx.URL,
    headers: Mapping[str, str],
    body: Optional[AsyncIterable[bytes]] = None,
) -> httpx.Response:
    """
    Send the outbound request and return as soon as the upstream status line and
    headers arrive. The request body is streamed from ``body`` while sending,
    the response body is left unread.
    """
    request = client.build_request(method, url, headers=headers, content=body)
    try:
        return await client.send(request, stream=True)
    except TRANSPORT_ERRORS as e:
        raise UpstreamTransportError(str(e)) from e


async def relay_body(
    response: httpx.Response, client: httpx.AsyncClient, raw: bool = False
) -> AsyncIterator[bytes]:
    """
    Yield the upstream body chunk by chunk, then release the connection.

    ``raw`` relays the bytes exactly as received (still content-encoded), which
    is only correct when the content-encoding header is relayed as well.
    """
    chunks = response.aiter_raw() if raw else response.aiter_bytes()
    try:
        async for chunk in chunks:
            yield chunk
    except TRANSPORT_ERRORS as e:
        # The status line is already sent; log once and end the body here
        log_exception_with_details(
            logger, f"API Proxy Error: stream from {response.request.url} aborted:", e
        )
    finally:
        await response.aclose()
        await client.aclose()
