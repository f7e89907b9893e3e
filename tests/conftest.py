"""
Pytest configuration and shared fixtures.
"""
import os

# Keep test runs away from ./data and ./logs
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("APP_ENV", "testing")

import asyncio
import json
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from aiproxy.core.database import Base
from aiproxy.core.log_sink import LogSink
from aiproxy.models import ModelConfig
from aiproxy.providers.upstream import UpstreamForwarder
from aiproxy.server.proxy import ProxyServer
from aiproxy.services.store import ModelStore


@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def store(test_engine) -> ModelStore:
    """Model store backed by the test engine."""
    session_factory = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    return ModelStore(session_factory)


@pytest.fixture
def add_model(store) -> Callable:
    """Factory adding a model config to the store."""
    async def _add(
        model_id: str = "gpt-4o",
        name: str = "GPT-4o",
        provider_type: str = "openai",
        api_url: str = "https://upstream.test/v1",
        api_key: str = "sk-test",
        enabled: bool = True,
        created_at: Optional[datetime] = None,
    ) -> ModelConfig:
        model = ModelConfig(
            name=name,
            model_id=model_id,
            provider_type=provider_type,
            api_url=api_url,
            api_key=api_key,
            enabled=enabled,
        )
        if created_at is not None:
            model.created_at = created_at
        return await store.add_model(model)

    return _add


class FakeUpstream:
    """Records upstream requests and answers them with a swappable handler."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handler: Callable = self.default_handler
        self.transport = httpx.MockTransport(self._dispatch)

    @staticmethod
    def default_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "chatcmpl-123", "object": "chat.completion"})

    async def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self.handler(request)
        if asyncio.iscoroutine(result):
            result = await result
        return result

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def log_sink() -> LogSink:
    return LogSink(capacity=500)


@pytest.fixture
def forwarder(upstream, log_sink) -> UpstreamForwarder:
    return UpstreamForwarder(timeout=5.0, transport=upstream.transport, log_sink=log_sink)


@pytest_asyncio.fixture
async def proxy_server(store, forwarder, log_sink):
    """Running proxy server on an ephemeral loopback port."""
    server = ProxyServer(store=store, forwarder=forwarder, log_sink=log_sink, host="127.0.0.1")
    server.fallback_ports = ()
    await server.start(0)

    yield server

    await server.close()


async def send_raw(port: int, payload: bytes) -> Tuple[int, dict, bytes]:
    """
    Send raw request bytes in one write and read until the server closes.

    Returns:
        Status code, lower-cased headers and body
    """
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(payload)
    await writer.drain()
    data = await asyncio.wait_for(reader.read(), timeout=10)
    writer.close()
    await writer.wait_closed()

    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("ascii").split("\r\n")
    status_code = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        key, _, value = line.partition(":")
        headers[key.strip().lower()] = value.strip()
    return status_code, headers, body


def build_request(method: str, path: str, body: Optional[bytes] = None) -> bytes:
    """Render a request with Content-Length, as an HTTP client would."""
    lines = [
        f"{method} {path} HTTP/1.1",
        "Host: 127.0.0.1",
        "Authorization: Bearer anything",
    ]
    if body is not None:
        lines.append("Content-Type: application/json")
        lines.append(f"Content-Length: {len(body)}")
    head = "\r\n".join(lines) + "\r\n\r\n"
    return head.encode("ascii") + (body or b"")


@pytest.fixture
def request_gateway(proxy_server):
    """Send one request to the running proxy server."""
    async def _request(method: str, path: str, body: Optional[bytes] = None):
        return await send_raw(proxy_server.current_port, build_request(method, path, body))

    return _request


def chat_body(model: str = "gpt-4o", content="Hello") -> bytes:
    return json.dumps({
        "model": model,
        "messages": [{"role": "user", "content": content}],
    }).encode("utf-8")


def hours_ago(hours: int) -> datetime:
    return datetime.utcnow() - timedelta(hours=hours)
