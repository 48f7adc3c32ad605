import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from typing import AsyncGenerator

import pytest
import pytest_asyncio
import httpx
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from main import app
from models import Base
from database import get_db, enable_sqlite_foreign_keys
from blob_store import BlobStore
from config import settings

@pytest_asyncio.fixture(scope="function")
async def test_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with TestingSessionLocal() as session:
        yield session
        await session.rollback()

@pytest.fixture(scope="function")
def mock_dss_settings(tmp_path, monkeypatch):
    mock_storage_path = tmp_path / "uploads_test"
    mock_storage_path.mkdir()
    monkeypatch.setattr(settings, 'STORAGE_BASE_PATH', mock_storage_path)
    monkeypatch.setattr(settings, 'MAX_UPLOAD_SIZE_BYTES', 1024)
    return settings

@pytest.fixture(scope="function")
def blob_store(mock_dss_settings) -> BlobStore:
    return BlobStore(mock_dss_settings.STORAGE_BASE_PATH)

@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession, mock_dss_settings) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = httpx.ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testdss") as client:
        yield client

    app.dependency_overrides.clear()

@pytest.fixture(scope="function")
def concurrent_sessions(test_engine):
    """Factory for a second session on the same store, standing in for another request."""
    return sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )
