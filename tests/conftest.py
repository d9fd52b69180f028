"""Shared fixtures"""

import pytest
import pytest_asyncio
import httpx

from app.models import database


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    await database.init_db(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    yield database.SessionLocal
    await database.close_db()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def api_app(session_factory):
    from app.main import app as fastapi_app
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(api_app):
    # ASGITransport does not run the lifespan; the database comes from session_factory
    transport = httpx.ASGITransport(app=api_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
