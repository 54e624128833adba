"""Shared test fixtures for the SDS lifecycle backend test suite."""

from __future__ import annotations

import os

# Point the app's engine at SQLite before anything imports the settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from sds_lifecycle.core.config import Settings  # noqa: E402
from sds_lifecycle.core.database import Base, get_db  # noqa: E402
from sds_lifecycle.main import app  # noqa: E402

# Register every table on Base.metadata
from sds_lifecycle.modules.audit import models as _audit_models  # noqa: E402,F401
from sds_lifecycle.modules.automation import models as _automation_models  # noqa: E402,F401
from sds_lifecycle.modules.chemicals import models as _chemical_models  # noqa: E402,F401
from sds_lifecycle.modules.notifications import models as _notification_models  # noqa: E402,F401
from sds_lifecycle.modules.tenants import models as _tenant_models  # noqa: E402,F401


@pytest.fixture
def test_settings() -> Settings:
    """Production policy values, no pacing delays, no outbound alerting."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        external_call_delay_s=0.0,
        tenant_delay_s=0.0,
        ops_alert_webhook_url="",
        resend_api_key="",
    )


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so each session gets its own connection."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sds.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the ASGI app, backed by the test database."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_db, None)
