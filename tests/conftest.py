"""
Pytest Fixtures

Provides a fixture store (SQLite through aiosqlite, one database file per
test), the table-access stack wired against it, and an HTTP client for the
FastAPI app. Tool-call limits count in FakeRedis, since ASGITransport never
runs the lifespan that opens the real pool.

Fixture store:
==============
    t_vehicles    Sprinter (aktiv), Caddy (werkstatt)
    t_employees   Anna 20.0, Ben 30.0, Clara 25.0 (inactive)
    t_projects    X/a/"100"/Sprinter, X/a/"250,5"/Sprinter, Y/b/"n/a"/-
    t_materials   integer primary key, empty
    t_notes       three notes with JSON tags, readable but not write-allow-listed

Usage:
    pytest tests/ -v
"""

# pylint: disable=redefined-outer-name

import uuid
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    JSON,
    MetaData,
    String,
    Table,
    Uuid,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from datenassistent.api.dependencies import get_tool_call_limiter, get_tool_dispatcher
from datenassistent.api.limits import ToolCallLimiter
from datenassistent.cache.limit_store import ConcurrencyStore, RateLimitStore
from datenassistent.config.constants import DEFAULT_WRITE_ALLOWED_TABLES
from datenassistent.data_access.audit import AuditLogEntry, AuditLogger, DatabaseAuditSink
from datenassistent.data_access.backend import TableBackend
from datenassistent.data_access.retry import RetryConfig
from datenassistent.data_access.service import TableAccessConfig, TableAccessService
from datenassistent.data_access.tools import ToolDispatcher
from datenassistent.db.session import get_db
from datenassistent.main import app
from datenassistent.models import Base

# =============================================================================
# FIXTURE STORE
# =============================================================================

VEHICLE_SPRINTER = uuid.UUID("11111111-1111-4111-8111-111111111111")
VEHICLE_CADDY = uuid.UUID("22222222-2222-4222-8222-222222222222")


def build_store_metadata() -> MetaData:
    """Declare the office tables used by the tests."""
    metadata = MetaData()

    Table(
        "t_vehicles",
        metadata,
        Column("vehicle_id", Uuid, primary_key=True, default=uuid.uuid4),
        Column("nickname", String(100), nullable=False, unique=True),
        Column("status", String(50)),
    )
    Table(
        "t_employees",
        metadata,
        Column("employee_id", Uuid, primary_key=True, default=uuid.uuid4),
        Column("name", String(200), nullable=False),
        Column("employee_code", String(20), unique=True),
        Column("hourly_rate", Float),
        Column("contract_type", String(50)),
        Column("is_active", Boolean, nullable=False, default=True),
    )
    Table(
        "t_projects",
        metadata,
        Column("project_id", Uuid, primary_key=True, default=uuid.uuid4),
        Column("name", String(200), nullable=False),
        Column("status", String(50)),
        # Free text; getStatistics falls back to in-memory parsing for it
        Column("budget_text", String(50)),
        Column("vehicle_id", Uuid, ForeignKey("t_vehicles.vehicle_id")),
    )
    Table(
        "t_materials",
        metadata,
        Column("material_id", Integer, primary_key=True, autoincrement=True),
        Column("name", String(200), nullable=False),
        Column("price", Float),
    )
    Table(
        "t_notes",
        metadata,
        Column("note_id", Integer, primary_key=True, autoincrement=True),
        Column("text", String(500)),
        Column("tags", JSON),
    )
    return metadata


SEED_ROWS: dict[str, list[dict[str, Any]]] = {
    "t_vehicles": [
        {"vehicle_id": VEHICLE_SPRINTER, "nickname": "Sprinter", "status": "aktiv"},
        {"vehicle_id": VEHICLE_CADDY, "nickname": "Caddy", "status": "werkstatt"},
    ],
    "t_employees": [
        {"name": "Anna", "employee_code": "E-01", "hourly_rate": 20.0, "contract_type": "voll"},
        {"name": "Ben", "employee_code": "E-02", "hourly_rate": 30.0, "contract_type": "teil"},
        {
            "name": "Clara",
            "employee_code": "E-03",
            "hourly_rate": 25.0,
            "contract_type": "voll",
            "is_active": False,
        },
    ],
    "t_projects": [
        {"name": "X", "status": "a", "budget_text": "100", "vehicle_id": VEHICLE_SPRINTER},
        {"name": "X", "status": "a", "budget_text": "250,5", "vehicle_id": VEHICLE_SPRINTER},
        {"name": "Y", "status": "b", "budget_text": "n/a", "vehicle_id": None},
    ],
    "t_notes": [
        {"text": "Gerüst am Montag abholen", "tags": ["baustelle", "gerüst"]},
        {"text": "Rechnung prüfen", "tags": ["büro"]},
        {"text": "Gerüst zurückbringen", "tags": ["baustelle", "gerüst"]},
    ],
}


class RecordingAuditSink:
    """Audit sink that keeps entries in memory."""

    def __init__(self) -> None:
        self.entries: list[AuditLogEntry] = []

    async def write(self, entry: AuditLogEntry) -> None:
        self.entries.append(entry)


class FakeRedis:
    """In-memory stand-in for the Redis commands the limit stores use."""

    def __init__(self) -> None:
        self.sorted_sets: dict[str, dict[str, float]] = {}
        self.counters: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    def pipeline(self) -> "FakePipeline":
        return FakePipeline(self)

    async def zremrangebyscore(self, key: str, low: float, high: float) -> int:
        members = self.sorted_sets.get(key, {})
        stale = [m for m, score in members.items() if low <= score <= high]
        for member in stale:
            del members[member]
        return len(stale)

    async def zcard(self, key: str) -> int:
        return len(self.sorted_sets.get(key, {}))

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        self.sorted_sets.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def zrange(
        self, key: str, start: int, end: int, withscores: bool = False
    ) -> list[Any]:
        ordered = sorted(self.sorted_sets.get(key, {}).items(), key=lambda item: item[1])
        selected = ordered[start : None if end == -1 else end + 1]
        return selected if withscores else [member for member, _ in selected]

    async def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return True

    async def incr(self, key: str) -> int:
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def decr(self, key: str) -> int:
        self.counters[key] = self.counters.get(key, 0) - 1
        return self.counters[key]

    async def get(self, key: str) -> str | None:
        value = self.counters.get(key)
        return None if value is None else str(value)


class FakePipeline:
    """Queues commands until execute(), like redis.asyncio's Pipeline."""

    def __init__(self, redis_client: FakeRedis) -> None:
        self._redis = redis_client
        self._commands: list[tuple[str, tuple[Any, ...]]] = []

    def __getattr__(self, name: str):
        def queue(*args: Any) -> "FakePipeline":
            self._commands.append((name, args))
            return self

        return queue

    async def execute(self) -> list[Any]:
        results = []
        for name, args in self._commands:
            results.append(await getattr(self._redis, name)(*args))
        self._commands = []
        return results


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture
def store_metadata() -> MetaData:
    """Fresh table declarations per test."""
    return build_store_metadata()


@pytest_asyncio.fixture
async def test_engine(tmp_path, store_metadata) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite fixture store with schema and seed rows."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'store.db'}",
        poolclass=NullPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(store_metadata.create_all)
        for table_name, rows in SEED_ROWS.items():
            await conn.execute(store_metadata.tables[table_name].insert(), rows)

    yield engine
    await engine.dispose()


@pytest.fixture
def vehicle_ids() -> dict[str, uuid.UUID]:
    """Primary keys of the seeded vehicles by nickname."""
    return {"Sprinter": VEHICLE_SPRINTER, "Caddy": VEHICLE_CADDY}


# =============================================================================
# TABLE ACCESS FIXTURES
# =============================================================================


@pytest.fixture
def retry_config() -> RetryConfig:
    """Retry policy without sleeping."""
    return RetryConfig(max_attempts=3, initial_delay_ms=0, max_delay_ms=0)


@pytest.fixture
def table_config(retry_config) -> TableAccessConfig:
    """Default allow-list, unrestricted reads, production-style redaction."""
    return TableAccessConfig(
        write_allowed_tables=DEFAULT_WRITE_ALLOWED_TABLES,
        retry=retry_config,
    )


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def audit_logger(audit_sink) -> AuditLogger:
    return AuditLogger([audit_sink], debug=False)


@pytest.fixture
def backend(test_engine, store_metadata) -> TableBackend:
    return TableBackend(test_engine, metadata=store_metadata)


@pytest.fixture
def service(backend, table_config, audit_logger) -> TableAccessService:
    return TableAccessService(backend, table_config, audit_logger)


@pytest.fixture
def dispatcher(service) -> ToolDispatcher:
    return ToolDispatcher(service)


# =============================================================================
# LIMIT FIXTURES
# =============================================================================


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def tool_call_limiter(fake_redis) -> ToolCallLimiter:
    """Limiter with the default limits, counting in fake_redis."""
    return ToolCallLimiter(
        rate_store=RateLimitStore(client_factory=lambda: fake_redis),
        concurrency_store=ConcurrencyStore(client_factory=lambda: fake_redis),
    )


# =============================================================================
# HTTP FIXTURES
# =============================================================================


@pytest_asyncio.fixture
async def client(dispatcher, tool_call_limiter) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the dispatcher bound to the fixture store."""
    app.dependency_overrides[get_tool_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_tool_call_limiter] = lambda: tool_call_limiter

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# PERSISTED AUDIT FIXTURES
# =============================================================================


@pytest_asyncio.fixture
async def audit_session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory over the fixture store with t_audit_log created."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def audit_client(
    backend, table_config, audit_session_factory, tool_call_limiter
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose tool calls persist audit entries to t_audit_log."""
    audit = AuditLogger([DatabaseAuditSink(audit_session_factory)], debug=False)
    dispatcher = ToolDispatcher(TableAccessService(backend, table_config, audit))

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with audit_session_factory() as session:
            yield session

    app.dependency_overrides[get_tool_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_tool_call_limiter] = lambda: tool_call_limiter

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
