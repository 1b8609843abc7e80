"""
Counter engine for the denormalized `likes_count` / `comments_count` on posts.

The like and comment rows are the source of truth. The counters on the post
row are a cache that is only ever moved by relative SQL updates in the same
transaction as the row change, plus a reconciliation pass that recomputes
them from the rows.
"""

import asyncio
import logging
import random
from uuid import UUID

import asyncpg

from residency.db_context import DatabaseManager
from residency.entities import Comment, Like, LikeToggle, ReconciliationReport
from residency.errors import NotFoundError, UpstreamError
from residency.repositories import CommentRepository, LikeRepository, PostRepository

logger = logging.getLogger(__name__)


class CounterEngine:
    def __init__(
        self,
        db_name: str = "default",
        max_attempts: int = 5,
        backoff_seconds: float = 0.5,
        backoff_max_seconds: float = 30.0,
        post_repo: PostRepository | None = None,
        like_repo: LikeRepository | None = None,
        comment_repo: CommentRepository | None = None,
    ):
        self.db_name = db_name
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.post_repo = post_repo or PostRepository()
        self.like_repo = like_repo or LikeRepository()
        self.comment_repo = comment_repo or CommentRepository()

    async def toggle_like(self, post_id: UUID, user_id: UUID) -> LikeToggle:
        """Like the post if the user has not, unlike it otherwise.

        A concurrent duplicate like from the same user is absorbed by the
        (post_id, user_id) unique index and reported as liked without
        counting twice.
        """
        async with DatabaseManager.transaction(self.db_name):
            removed = await self.like_repo.for_pair(post_id, user_id).delete_matching()
            if removed:
                post = await self.post_repo.increment(post_id, "likes_count", -1)
                if post is None:
                    raise NotFoundError("Post", post_id)
                return LikeToggle(liked=False, likes_count=post.likes_count)

            try:
                inserted = await self.like_repo.insert_ignoring_conflict(
                    Like(post_id=post_id, user_id=user_id),
                    conflict_columns=["post_id", "user_id"],
                )
            except asyncpg.ForeignKeyViolationError as exc:
                raise NotFoundError("Post", post_id) from exc
            if inserted is None:
                logger.debug("duplicate like on %s by %s ignored", post_id, user_id)
                post = await self.post_repo.find_by_id(post_id)
            else:
                post = await self.post_repo.increment(post_id, "likes_count", 1)
            if post is None:
                raise NotFoundError("Post", post_id)
            return LikeToggle(liked=True, likes_count=post.likes_count)

    async def add_comment(self, post_id: UUID, author_id: UUID, content: str) -> Comment:
        async with DatabaseManager.transaction(self.db_name):
            try:
                comment = await self.comment_repo.create(
                    Comment(post_id=post_id, author_id=author_id, content=content)
                )
            except asyncpg.ForeignKeyViolationError as exc:
                raise NotFoundError("Post", post_id) from exc
            if await self.post_repo.increment(post_id, "comments_count", 1) is None:
                raise NotFoundError("Post", post_id)
            return comment

    async def reconcile(self, post_ids: list[UUID] | None = None) -> ReconciliationReport:
        """Recompute counters from the like/comment rows and fix any drift.

        Retries on UpstreamError with exponential backoff and jitter; gives up
        by re-raising the last error after `max_attempts`.
        """
        delay = self.backoff_seconds
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with DatabaseManager.transaction(self.db_name):
                    checked, corrected = await self.post_repo.recount(post_ids)
                break
            except UpstreamError as exc:
                if attempt == self.max_attempts:
                    logger.error(
                        "reconciliation failed after %d attempts: %s", attempt, exc
                    )
                    raise
                wait = min(delay, self.backoff_max_seconds) * random.uniform(0.8, 1.2)
                logger.warning(
                    "reconciliation attempt %d failed (%s), retrying in %.2fs",
                    attempt,
                    exc,
                    wait,
                )
                await asyncio.sleep(wait)
                delay *= 2

        if corrected:
            logger.warning(
                "corrected counter drift on %d of %d posts: %s",
                len(corrected),
                checked,
                ", ".join(str(post_id) for post_id in corrected),
            )
        else:
            logger.info("counters consistent on %d posts", checked)
        return ReconciliationReport(checked=checked, corrected_post_ids=corrected)

    async def run_reconciliation_loop(
        self, interval_seconds: float, stop_event: asyncio.Event
    ) -> None:
        """Reconcile every `interval_seconds` until `stop_event` is set.

        A pass that still fails after its retries is logged and the loop
        waits for the next interval.
        """
        while not stop_event.is_set():
            try:
                await self.reconcile()
            except UpstreamError:
                logger.exception("scheduled reconciliation pass failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except TimeoutError:
                pass
