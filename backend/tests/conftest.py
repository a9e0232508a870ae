# tests/conftest.py

import os
import uuid
from collections.abc import AsyncGenerator

# Must be set before labvault.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import labvault.models  # noqa: F401  (registers every table on Base.metadata)
from labvault.database import Base, get_db
from labvault.main import app
from labvault.models.enums import LabelSchema
from labvault.schemas.storage import GridSpec, PositionedItem, StorageUnitSnapshot


# --- Database fixtures ---

@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory SQLite database per test."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly
    @event.listens_for(test_engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own session on the test DB."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# --- Snapshot factories for the pure core ---

@pytest.fixture
def make_unit():
    """Build a StorageUnitSnapshot; pass rows/cols for a grid unit."""

    def factory(
        storage_id: str = "BOX-1",
        rows: int | None = None,
        cols: int | None = None,
        disabled: tuple[str, ...] = (),
        enabled: tuple[str, ...] = (),
        label_schema: LabelSchema = LabelSchema.ALPHA_NUMERIC,
        **fields,
    ) -> StorageUnitSnapshot:
        grid = None
        if rows and cols:
            grid = GridSpec(
                rows=rows, cols=cols, label_schema=label_schema,
                disabled_slots=list(disabled), enabled_slots=list(enabled),
            )
        return StorageUnitSnapshot(
            id=fields.pop("id", uuid.uuid4()),
            storage_id=storage_id,
            name=fields.pop("name", storage_id),
            unit_type=fields.pop("unit_type", "box"),
            grid_spec=grid,
            **fields,
        )

    return factory


@pytest.fixture
def make_item():
    """Build a PositionedItem (sample or extract) stored in ``unit`` at ``position``."""

    def factory(
        unit: StorageUnitSnapshot | None,
        position: str | None,
        code: str = "S-001",
        item_id: uuid.UUID | None = None,
    ) -> PositionedItem:
        return PositionedItem(
            id=item_id or uuid.uuid4(),
            code=code,
            storage_location_id=unit.id if unit else None,
            position_label=position,
        )

    return factory
