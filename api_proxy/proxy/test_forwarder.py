import gzip
import logging

import httpx
import pytest
from starlette.requests import ClientDisconnect

from api_proxy.proxy.errors import UpstreamTransportError
from api_proxy.proxy.forwarder import create_client, forward, relay_body

TARGET = httpx.URL("https://api.openai.com/v1/chat/completions")


async def _chunks(*chunks):
    for chunk in chunks:
        yield chunk


class _BrokenStream(httpx.AsyncByteStream):
    """Upstream body that dies after the first chunk."""

    async def __aiter__(self):
        yield b'data: {"partial"'
        raise httpx.ReadError("Connection reset by peer")


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_create_client_has_no_timeout_and_no_redirects():
    client = create_client()
    assert client.timeout == httpx.Timeout(None)
    assert client.follow_redirects is False


class TestForward:
    @pytest.mark.asyncio
    async def test_streams_request_body(self):
        received = {}

        def handler(request):
            received["body"] = request.content
            received["method"] = request.method
            received["headers"] = request.headers
            return httpx.Response(201, stream=httpx.ByteStream(b"created"))

        client = _client(handler)
        response = await forward(
            client,
            "POST",
            TARGET,
            {"content-type": "application/json"},
            _chunks(b'{"model":', b'"gpt"}'),
        )

        assert response.status_code == 201
        assert received["method"] == "POST"
        assert received["body"] == b'{"model":"gpt"}'
        assert received["headers"]["transfer-encoding"] == "chunked"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_response_body_left_unread(self):
        client = _client(lambda request: httpx.Response(200, stream=httpx.ByteStream(b"x")))

        response = await forward(client, "GET", TARGET, {})

        assert response.is_stream_consumed is False
        await response.aclose()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connection_error_becomes_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        client = _client(handler)
        with pytest.raises(UpstreamTransportError) as exc_info:
            await forward(client, "GET", TARGET, {})

        assert str(exc_info.value) == "Connection refused"
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_client_disconnect_during_upload(self):
        async def disconnecting_body():
            yield b"first"
            raise ClientDisconnect()

        def handler(request):
            return httpx.Response(200)

        client = _client(handler)
        with pytest.raises(UpstreamTransportError):
            await forward(client, "POST", TARGET, {}, disconnecting_body())
        await client.aclose()


class TestRelayBody:
    @pytest.mark.asyncio
    async def test_relays_chunks_and_closes_client(self):
        client = _client(
            lambda request: httpx.Response(
                200, stream=httpx.ByteStream(b"data: one\n\ndata: two\n\n")
            )
        )
        response = await forward(client, "GET", TARGET, {})

        body = b"".join([chunk async for chunk in relay_body(response, client)])

        assert body == b"data: one\n\ndata: two\n\n"
        assert response.is_closed
        assert client.is_closed

    @pytest.mark.asyncio
    async def test_decoded_and_raw_relay(self):
        payload = b'{"ok":true}' * 100
        compressed = gzip.compress(payload)

        def handler(request):
            return httpx.Response(
                200,
                headers={"content-encoding": "gzip"},
                stream=httpx.ByteStream(compressed),
            )

        client = _client(handler)
        response = await forward(client, "GET", TARGET, {})
        decoded = b"".join([chunk async for chunk in relay_body(response, client)])
        assert decoded == payload

        client = _client(handler)
        response = await forward(client, "GET", TARGET, {})
        raw = b"".join([chunk async for chunk in relay_body(response, client, raw=True)])
        assert raw == compressed

    @pytest.mark.asyncio
    async def test_mid_stream_failure_is_logged_once_and_ends_body(self, caplog):
        caplog.set_level(logging.ERROR, logger="uvicorn.error")
        client = _client(lambda request: httpx.Response(200, stream=_BrokenStream()))
        response = await forward(client, "GET", TARGET, {})

        received = [chunk async for chunk in relay_body(response, client)]

        assert received == [b'data: {"partial"']
        assert client.is_closed
        errors = [r for r in caplog.records if "API Proxy Error" in r.getMessage()]
        assert len(errors) == 1
        assert "Connection reset by peer" in errors[0].getMessage()
