"""
Pytest configuration and fixtures
"""

import asyncio
import pytest
import pytest_asyncio
import httpx
from typing import AsyncGenerator, Dict, Iterable, List, Optional, Union
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import create_engine_for, init_database, make_session_maker
from ingestion.extractors.source_stream import StreamingDecoder
from tests.factories import SOURCE_BASE_URL, to_jsonl


class ChunkedByteStream(httpx.AsyncByteStream):
    """Serves a body in fixed-size chunks and records how much was sent"""

    def __init__(self, server: "FakeSourceServer", body: bytes, fail_after_bytes: Optional[int] = None):
        self.server = server
        self.body = body
        self.fail_after_bytes = fail_after_bytes

    async def __aiter__(self):
        sent = 0
        size = self.server.chunk_size
        for start in range(0, len(self.body), size):
            if self.fail_after_bytes is not None and sent >= self.fail_after_bytes:
                raise httpx.ReadError("connection reset by peer")
            chunk = self.body[start:start + size]
            sent += len(chunk)
            self.server.bytes_served += len(chunk)
            yield chunk


class FakeSourceServer:
    """
    In-memory JSONL source host behind ``httpx.MockTransport``.

    Tracks requested source names and bytes served so tests can assert
    how much of a source was actually read.
    """

    def __init__(self, chunk_size: int = 256, send_length: bool = True):
        self.chunk_size = chunk_size
        self.send_length = send_length
        self.sources: Dict[str, bytes] = {}
        self.statuses: Dict[str, int] = {}
        self.connect_failures: set = set()
        self.fail_after_bytes: Dict[str, int] = {}
        self.requests: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.bytes_served = 0

    def add(self, source_id: str, lines: Union[bytes, Iterable]) -> bytes:
        body = lines if isinstance(lines, bytes) else to_jsonl(lines)
        self.sources[source_id] = body
        return body

    async def handler(self, request: httpx.Request) -> httpx.Response:
        name = request.url.path.rsplit("/", 1)[-1]
        self.requests.append(name)
        if self.gate is not None:
            await self.gate.wait()

        if name in self.connect_failures:
            raise httpx.ConnectError("connection refused", request=request)
        if name in self.statuses:
            return httpx.Response(self.statuses[name])
        if name not in self.sources:
            return httpx.Response(404)

        body = self.sources[name]
        headers = {"content-length": str(len(body))} if self.send_length else {}
        return httpx.Response(
            200,
            headers=headers,
            stream=ChunkedByteStream(self, body, self.fail_after_bytes.get(name)),
        )


@pytest.fixture
def source_server() -> FakeSourceServer:
    return FakeSourceServer()


@pytest_asyncio.fixture
async def http_client(source_server) -> AsyncGenerator[httpx.AsyncClient, None]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(source_server.handler))
    yield client
    await client.aclose()


@pytest.fixture
def decoder(http_client) -> StreamingDecoder:
    return StreamingDecoder(base_url=SOURCE_BASE_URL, client=http_client)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a SQLite store in a temporary directory"""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'store' / 'test.db'}")
    await init_database(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return make_session_maker(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_maker() as session:
        yield session
        await session.rollback()
