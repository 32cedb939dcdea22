import re
from collections import Counter
from pathlib import Path
from typing import Optional

import httpx
import pytest

from upload_engine.core.config import Settings
from upload_engine.main import create_app

TEST_TOKEN = "test-token"
CHUNK_INDEX_FIELD = re.compile(rb'name="chunkIndex"\r\n\r\n(\d+)')


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'uploads.db'}",
        STAGING_DIR=str(tmp_path / "staging"),
        ASSET_BACKEND="local",
        ASSET_DIR=str(tmp_path / "assets"),
        CHUNK_SIZE=1024,
        MIN_CHUNK_SIZE=16,
        MAX_CHUNK_SIZE=64 * 1024,
        MAX_TOTAL_CHUNKS=10000,
        MAX_UPLOAD_SIZE=1024 * 1024,
        API_TOKENS=[TEST_TOKEN],
        SWEEP_INTERVAL_SECONDS=3600,
    )


@pytest.fixture()
async def app(settings: Settings):
    app = create_app(settings)
    await app.state.manager.initialize()
    yield app
    await app.state.engine.dispose()


@pytest.fixture()
def manager(app):
    return app.state.manager


@pytest.fixture()
async def db(app):
    async with app.state.session_maker() as session:
        yield session


@pytest.fixture()
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_TOKEN}"}


@pytest.fixture()
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


class FlakyChunkTransport(httpx.AsyncBaseTransport):
    """
    Forwards requests to the in-process app, but raises a connection error
    for chunk uploads whose index still has failures left in ``failures``,
    and for any request whose path starts with a prefix in ``path_failures``.
    """

    def __init__(
        self,
        inner: httpx.AsyncBaseTransport,
        failures: dict[int, int],
        path_failures: Optional[dict[str, int]] = None
    ):
        self.inner = inner
        self.failures = dict(failures)
        self.path_failures = dict(path_failures or {})
        self.attempts: Counter = Counter()
        self.path_attempts: Counter = Counter()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        for prefix, left in self.path_failures.items():
            if path.startswith(prefix):
                self.path_attempts[prefix] += 1
                if left > 0:
                    self.path_failures[prefix] -= 1
                    raise httpx.ConnectError(f"simulated failure of {path}", request=request)
        if path.startswith("/upload/chunk/"):
            body = await request.aread()
            index = int(CHUNK_INDEX_FIELD.search(body).group(1))
            self.attempts[index] += 1
            if self.failures.get(index, 0) > 0:
                self.failures[index] -= 1
                raise httpx.ConnectError(f"simulated failure of chunk {index}", request=request)
        return await self.inner.handle_async_request(request)


@pytest.fixture()
async def flaky_http(app):
    """Factory for an httpx client whose requests fail on demand"""
    clients = []

    def build(
        failures: dict[int, int],
        path_failures: Optional[dict[str, int]] = None
    ) -> tuple[httpx.AsyncClient, FlakyChunkTransport]:
        transport = FlakyChunkTransport(httpx.ASGITransport(app=app), failures, path_failures)
        http = httpx.AsyncClient(transport=transport, base_url="http://testserver")
        clients.append(http)
        return http, transport

    yield build

    for http in clients:
        await http.aclose()
