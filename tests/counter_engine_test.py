"""
Like/comment counters: toggle semantics, concurrent writers, and the
reconciliation pass that repairs drift.
"""

import asyncio
import logging
from uuid import uuid4

import pytest

from residency.entities import BoardType
from residency.errors import NotFoundError, UpstreamError
from residency.services.counters import CounterEngine

pytestmark = pytest.mark.usefixtures("test_db_pool")


@pytest.fixture
def board(manual_core, admin, resident):
    """Factory returning (building, author, post) on a fresh building"""

    async def _board():
        building = await manual_core.create_building(admin, "Maple Court", "1 Maple St")
        author = await resident(building.id, nickname="author")
        post = await manual_core.create_post(author, BoardType.FREE, "Sofa", "Free to a good home")
        return building, author, post

    return _board


async def count_rows(pool, table: str, post_id) -> int:
    async with pool.acquire() as conn:
        return await conn.fetchval(f"SELECT COUNT(*) FROM {table} WHERE post_id = $1", post_id)


class TestToggleLike:
    @pytest.mark.asyncio
    async def test_like_then_unlike(self, manual_core, board, test_db_pool):
        _, author, post = await board()

        liked = await manual_core.toggle_like(author, post.id)
        assert (liked.liked, liked.likes_count) == (True, 1)
        assert await manual_core.has_liked(author, post.id) is True

        unliked = await manual_core.toggle_like(author, post.id)
        assert (unliked.liked, unliked.likes_count) == (False, 0)
        assert await manual_core.has_liked(author, post.id) is False
        assert await count_rows(test_db_pool, "likes", post.id) == 0

    @pytest.mark.asyncio
    async def test_concurrent_likes_from_distinct_users(self, manual_core, board, resident, test_db_pool):
        building, _, post = await board()
        users = [await resident(building.id, nickname=f"n{i}") for i in range(8)]

        results = await asyncio.gather(*[manual_core.toggle_like(u, post.id) for u in users])

        assert all(r.liked for r in results)
        assert sorted(r.likes_count for r in results) == list(range(1, 9))
        assert (await manual_core.get_post(users[0], post.id)).likes_count == 8
        assert await count_rows(test_db_pool, "likes", post.id) == 8

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_like_counts_once(self, manual_core, board, test_db_pool):
        _, author, post = await board()

        await asyncio.gather(
            manual_core.counters.toggle_like(post.id, author.user_id),
            manual_core.counters.toggle_like(post.id, author.user_id),
            return_exceptions=True,
        )

        stored = await manual_core.get_post(author, post.id)
        rows = await count_rows(test_db_pool, "likes", post.id)
        assert stored.likes_count == rows
        assert rows in (0, 1)

    @pytest.mark.asyncio
    async def test_unknown_post(self, manual_core, board):
        _, author, _ = await board()

        with pytest.raises(NotFoundError):
            await manual_core.toggle_like(author, uuid4())


class TestComments:
    @pytest.mark.asyncio
    async def test_concurrent_comments_are_all_counted(self, manual_core, board, resident, test_db_pool):
        building, author, post = await board()
        neighbor = await resident(building.id, nickname="neighbor")

        await asyncio.gather(
            *[manual_core.create_comment(u, post.id, f"reply {i}") for i, u in enumerate([author, neighbor] * 3)]
        )

        assert (await manual_core.get_post(author, post.id)).comments_count == 6
        assert await count_rows(test_db_pool, "comments", post.id) == 6

    @pytest.mark.asyncio
    async def test_comment_on_missing_post(self, manual_core, board):
        _, author, _ = await board()

        with pytest.raises(NotFoundError):
            await manual_core.create_comment(author, uuid4(), "hello?")


class TestReconciliation:
    @pytest.mark.asyncio
    async def test_consistent_counters_are_left_alone(self, manual_core, board):
        _, author, post = await board()
        await manual_core.toggle_like(author, post.id)
        await manual_core.create_comment(author, post.id, "bump")

        report = await manual_core.reconcile_counters()

        assert report.checked == 1
        assert report.corrected == 0

    @pytest.mark.asyncio
    async def test_drift_is_repaired(self, manual_core, board, test_db_pool, caplog):
        _, author, post = await board()
        await manual_core.toggle_like(author, post.id)
        async with test_db_pool.acquire() as conn:
            await conn.execute(
                "UPDATE posts SET likes_count = 7, comments_count = 3 WHERE id = $1", post.id
            )

        with caplog.at_level(logging.WARNING, logger="residency.services.counters"):
            report = await manual_core.reconcile_counters([post.id])

        assert report.corrected_post_ids == [post.id]
        stored = await manual_core.get_post(author, post.id)
        assert (stored.likes_count, stored.comments_count) == (1, 0)
        assert "corrected counter drift" in caplog.text

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self, monkeypatch):
        engine = CounterEngine("test_db", max_attempts=3, backoff_seconds=0)
        calls = []

        async def flaky_recount(post_ids=None):
            calls.append(post_ids)
            if len(calls) < 3:
                raise UpstreamError("connection reset")
            return 4, []

        monkeypatch.setattr(engine.post_repo, "recount", flaky_recount)

        report = await engine.reconcile()

        assert len(calls) == 3
        assert (report.checked, report.corrected_post_ids) == (4, [])

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, monkeypatch):
        engine = CounterEngine("test_db", max_attempts=2, backoff_seconds=0)

        async def failing_recount(post_ids=None):
            raise UpstreamError("database unavailable")

        monkeypatch.setattr(engine.post_repo, "recount", failing_recount)

        with pytest.raises(UpstreamError):
            await engine.reconcile()

    @pytest.mark.asyncio
    async def test_loop_runs_until_stopped(self, monkeypatch):
        engine = CounterEngine("test_db", max_attempts=1, backoff_seconds=0)
        stop = asyncio.Event()
        passes = []

        async def recount(post_ids=None):
            passes.append(post_ids)
            if len(passes) == 1:
                raise UpstreamError("first pass fails")
            stop.set()
            return 0, []

        monkeypatch.setattr(engine.post_repo, "recount", recount)

        await asyncio.wait_for(engine.run_reconciliation_loop(0.01, stop), timeout=5)

        assert len(passes) == 2
