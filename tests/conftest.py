from uuid import uuid4

import asyncpg
import pytest
import pytest_asyncio
from testcontainers.postgres import PostgresContainer

from residency.community import CommunityCore
from residency.config import Settings
from residency.context import RequestContext
from residency.db_context import DatabaseManager
from residency.entities import ReviewDecision
from residency.schema import create_schema, truncate_all

TEST_POOL = "test_db"


@pytest.fixture(scope="session")
def postgres_container():
    """Start a PostgreSQL test container for the session."""
    with PostgresContainer("postgres:17") as postgres:
        yield postgres


@pytest_asyncio.fixture
async def test_db_pool(postgres_container):
    """Create a database pool connected to the test container for each test."""
    host = postgres_container.get_container_host_ip()
    port = postgres_container.get_exposed_port(5432)
    dsn = f"postgresql://{postgres_container.username}:{postgres_container.password}@{host}:{port}/{postgres_container.dbname}"

    # Create a new pool for each test to avoid event loop issues
    pool = await asyncpg.create_pool(dsn, min_size=1, max_size=10)

    async with pool.acquire() as conn:
        await create_schema(conn)

    await DatabaseManager.add_pool(TEST_POOL, pool)

    yield pool

    async with pool.acquire() as conn:
        await truncate_all(conn)

    await DatabaseManager.close(TEST_POOL)


def make_settings(**overrides) -> Settings:
    values = {
        "database_pool_name": TEST_POOL,
        "approval_policy": "manual",
        "reconcile_backoff_seconds": 0.0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def manual_core(test_db_pool) -> CommunityCore:
    """Core with administrator review"""
    return CommunityCore(make_settings(approval_policy="manual"))


@pytest.fixture
def auto_core(test_db_pool) -> CommunityCore:
    """Core that approves verification requests on submission"""
    return CommunityCore(make_settings(approval_policy="auto"))


@pytest.fixture
def admin() -> RequestContext:
    return RequestContext(user_id=uuid4(), email="admin@example.com", is_admin=True)


@pytest.fixture
def new_user(manual_core):
    """Factory registering a fresh, unverified profile"""

    async def _new_user(nickname: str = "neighbor") -> RequestContext:
        context = RequestContext(user_id=uuid4(), email=f"{uuid4().hex[:8]}@example.com")
        await manual_core.register_profile(context, nickname)
        return context

    return _new_user


@pytest.fixture
def resident(manual_core, new_user, admin):
    """Factory returning a user verified for `building_id` via admin approval"""

    async def _resident(building_id, floor: str = "3F", nickname: str = "resident"):
        context = await new_user(nickname)
        request = await manual_core.submit_verification_request(
            context, building_id, floor, f"s3://docs/{context.user_id}.jpg"
        )
        await manual_core.review_verification_request(
            admin, request.id, ReviewDecision.APPROVE
        )
        return context

    return _resident
