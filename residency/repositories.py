from uuid import UUID

from residency.entities import (
    Building,
    BuildingUpdate,
    Comment,
    CommentUpdate,
    Like,
    LikeUpdate,
    Post,
    PostUpdate,
    Profile,
    ProfileUpdate,
    RequestStatus,
    VerificationRequest,
    VerificationRequestUpdate,
)
from residency.repository import Repository


class ProfileRepository(Repository[Profile, ProfileUpdate]):
    def __init__(self):
        super().__init__(Profile, ProfileUpdate, "profiles")

    async def find_for_update(self, user_id: UUID) -> Profile | None:
        return await self.where("id", user_id).for_update().first()

    async def find_many(self, user_ids: list[UUID]) -> dict[UUID, Profile]:
        profiles = await self.where_in("id", list(set(user_ids))).get()
        return {profile.id: profile for profile in profiles}


class BuildingRepository(Repository[Building, BuildingUpdate]):
    def __init__(self):
        super().__init__(Building, BuildingUpdate, "buildings")

    async def find_all_sorted_by_name(self) -> list[Building]:
        return await self.order_by("name").order_by("created_at").get()

    async def find_by_name_and_address(self, name: str, address: str) -> Building | None:
        """Case-insensitive match on trimmed name and address, oldest first"""
        return await (
            self.where("lower(btrim(name))", name.strip().lower())
            .where("lower(btrim(address))", address.strip().lower())
            .order_by("created_at")
            .first()
        )

    async def lock_registration(self, name: str, address: str) -> None:
        """Serialize registrations of the same building until the transaction ends"""
        key = f"{name.strip().lower()}|{address.strip().lower()}"
        await self.db_ops.execute_query(
            "SELECT pg_advisory_xact_lock(hashtext($1))", [key]
        )


class VerificationRequestRepository(
    Repository[VerificationRequest, VerificationRequestUpdate]
):
    def __init__(self):
        super().__init__(
            VerificationRequest, VerificationRequestUpdate, "verification_requests"
        )

    async def find_pending_for_user(self, user_id: UUID) -> VerificationRequest | None:
        return await (
            self.where("user_id", user_id)
            .where("status", RequestStatus.PENDING.value)
            .first()
        )

    async def find_approved(
        self, user_id: UUID, building_id: UUID
    ) -> VerificationRequest | None:
        return await (
            self.where("user_id", user_id)
            .where("building_id", building_id)
            .where("status", RequestStatus.APPROVED.value)
            .first()
        )

    async def find_newest_first(
        self, status: RequestStatus | None = None
    ) -> list[VerificationRequest]:
        repo = self
        if status is not None:
            repo = repo.where("status", RequestStatus(status).value)
        return await repo.order_by_desc("created_at").get()


class PostRepository(Repository[Post, PostUpdate]):
    def __init__(self):
        super().__init__(Post, PostUpdate, "posts")

    async def find_for_board(
        self, building_id: UUID, board_type: str, page: int, per_page: int
    ) -> list[Post]:
        return await (
            self.where("building_id", building_id)
            .where("board_type", board_type)
            .order_by_desc("created_at")
            .order_by_desc("id")
            .paginate(page, per_page)
            .get()
        )

    async def recount(self, post_ids: list[UUID] | None = None) -> tuple[int, list[UUID]]:
        """Recompute both counters from the like/comment rows.

        Returns how many posts were checked and the ids whose stored counters
        had drifted and were rewritten. The posts are row-locked before
        counting, so a like or comment committed concurrently is either
        counted here or applies its own increment afterwards.
        """
        scope = ""
        params: list = []
        if post_ids is not None:
            scope = "WHERE p.id = ANY($1)"
            params = [list(post_ids)]

        locked = await self.db_ops.fetch_all(
            f"SELECT p.id FROM posts p {scope} ORDER BY p.id FOR NO KEY UPDATE", params
        )
        rows = await self.db_ops.fetch_all(
            f"""
            WITH actual AS (
                SELECT p.id,
                       (SELECT COUNT(*) FROM likes l WHERE l.post_id = p.id) AS likes,
                       (SELECT COUNT(*) FROM comments c WHERE c.post_id = p.id) AS comments
                FROM posts p
                {scope}
            )
            UPDATE posts
            SET likes_count = actual.likes, comments_count = actual.comments
            FROM actual
            WHERE posts.id = actual.id
              AND (posts.likes_count <> actual.likes OR posts.comments_count <> actual.comments)
            RETURNING posts.id
            """,
            params,
        )
        return len(locked), [row["id"] for row in rows]


class CommentRepository(Repository[Comment, CommentUpdate]):
    def __init__(self):
        super().__init__(Comment, CommentUpdate, "comments")

    async def find_for_post(self, post_id: UUID) -> list[Comment]:
        return await self.where("post_id", post_id).order_by("created_at").order_by("id").get()


class LikeRepository(Repository[Like, LikeUpdate]):
    def __init__(self):
        super().__init__(Like, LikeUpdate, "likes")

    def for_pair(self, post_id: UUID, user_id: UUID) -> "LikeRepository":
        return self.where("post_id", post_id).where("user_id", user_id)
