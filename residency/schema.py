"""
Persisted layout: one table per entity, foreign keys for every reference,
unique likes per (post, user), at most one pending verification request
per user and at most one approved request per (user, building).
"""

import asyncpg

from residency.db_context import DatabaseManager

TABLES = (
    "likes",
    "comments",
    "posts",
    "verification_requests",
    "profiles",
    "buildings",
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS buildings (
    id UUID PRIMARY KEY,
    name TEXT NOT NULL CHECK (btrim(name) <> ''),
    address TEXT NOT NULL CHECK (btrim(address) <> ''),
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS buildings_name_address_ci
    ON buildings (lower(name), lower(address));

CREATE TABLE IF NOT EXISTS profiles (
    id UUID PRIMARY KEY,
    email TEXT NOT NULL,
    nickname TEXT NOT NULL,
    building_id UUID REFERENCES buildings (id),
    floor TEXT,
    verified BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    CHECK (NOT verified OR building_id IS NOT NULL)
);

CREATE TABLE IF NOT EXISTS verification_requests (
    id UUID PRIMARY KEY,
    user_id UUID NOT NULL REFERENCES profiles (id),
    building_id UUID NOT NULL REFERENCES buildings (id),
    floor TEXT NOT NULL,
    document_ref TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'approved', 'rejected')),
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    reviewed_at TIMESTAMPTZ,
    CHECK ((status = 'pending') = (reviewed_at IS NULL))
);

CREATE UNIQUE INDEX IF NOT EXISTS verification_requests_one_pending
    ON verification_requests (user_id) WHERE status = 'pending';

CREATE UNIQUE INDEX IF NOT EXISTS verification_requests_one_approved
    ON verification_requests (user_id, building_id) WHERE status = 'approved';

CREATE INDEX IF NOT EXISTS verification_requests_status_created
    ON verification_requests (status, created_at DESC);

CREATE TABLE IF NOT EXISTS posts (
    id UUID PRIMARY KEY,
    board_type TEXT NOT NULL CHECK (board_type IN ('notice', 'share', 'free')),
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    author_id UUID NOT NULL REFERENCES profiles (id),
    building_id UUID NOT NULL REFERENCES buildings (id),
    likes_count INTEGER NOT NULL DEFAULT 0 CHECK (likes_count >= 0),
    comments_count INTEGER NOT NULL DEFAULT 0 CHECK (comments_count >= 0),
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS posts_building_board_created
    ON posts (building_id, board_type, created_at DESC);

CREATE TABLE IF NOT EXISTS comments (
    id UUID PRIMARY KEY,
    post_id UUID NOT NULL REFERENCES posts (id),
    author_id UUID NOT NULL REFERENCES profiles (id),
    content TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS comments_post_created ON comments (post_id, created_at);

CREATE TABLE IF NOT EXISTS likes (
    id UUID PRIMARY KEY,
    post_id UUID NOT NULL REFERENCES posts (id),
    user_id UUID NOT NULL REFERENCES profiles (id),
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    UNIQUE (post_id, user_id)
);
"""


async def create_schema(conn: asyncpg.Connection) -> None:
    """Create every table and index if missing"""
    await conn.execute(SCHEMA_SQL)


async def truncate_all(conn: asyncpg.Connection) -> None:
    await conn.execute(f"TRUNCATE TABLE {', '.join(TABLES)}")


async def install(db_name: str = "default") -> None:
    """Install the schema through a registered pool"""
    pool = await DatabaseManager.get_pool(db_name)
    async with pool.acquire() as conn:
        await create_schema(conn)
