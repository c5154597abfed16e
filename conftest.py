# Ensure tests import modules from this service directory first.
import os
import sys
from typing import AsyncIterator, Iterable
from unittest.mock import Mock

import httpx
import pytest
from fastapi import Request

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)


async def iterate_chunks(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


@pytest.fixture
def make_request():
    """Build a mock FastAPI Request for a method, raw path and query string."""

    def _make_request(
        method="GET", path="/openai/v1/models", query="", headers=None, chunks=None
    ):
        request = Mock(spec=Request)
        request.method = method
        request.scope = {"raw_path": path.encode("latin-1")}
        request.url.path = path
        request.url.query = query
        request.headers = (
            headers
            if headers is not None
            else {
                "host": "proxy.example.com",
                "authorization": "Bearer sk-test",
                "accept": "application/json",
                "cookie": "session=abc",
                "user-agent": "test-agent",
            }
        )
        request.stream = Mock(side_effect=lambda: iterate_chunks(chunks or [b""]))
        return request

    return _make_request


@pytest.fixture
def upstream(monkeypatch):
    """
    Route the proxy's outbound calls through an httpx.MockTransport.

    ``upstream.requests`` collects every request (body already read) and
    ``upstream.respond`` decides the answer.
    """

    class _Upstream:
        def __init__(self):
            self.requests = []
            self.clients = []
            self.respond = lambda request: httpx.Response(
                200,
                headers={"content-type": "application/json"},
                stream=httpx.ByteStream(b'{"ok":true}'),
            )

        def handler(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.respond(request)

        def client(self) -> httpx.AsyncClient:
            client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
            self.clients.append(client)
            return client

    fake = _Upstream()
    monkeypatch.setattr("api_proxy.proxy.route.create_client", fake.client)
    return fake
