import logging
from uuid import UUID

from residency.context import RequestContext
from residency.db_context import DatabaseManager
from residency.entities import (
    AuthorSummary,
    BoardType,
    Comment,
    CommentView,
    LikeToggle,
    Post,
    PostView,
    Profile,
)
from residency.errors import NotFoundError, ValidationError
from residency.repositories import (
    CommentRepository,
    LikeRepository,
    PostRepository,
    ProfileRepository,
)
from residency.services.access import ContentOperation, require
from residency.services.counters import CounterEngine
from residency.services.profiles import ProfileDirectory

logger = logging.getLogger(__name__)


def _required_text(field: str, value: str | None) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(field)
    return value


def _board_type(value: BoardType | str) -> BoardType:
    try:
        return BoardType(value)
    except ValueError:
        raise ValidationError("board_type", f"unknown board type: {value!r}") from None


def _author(profiles: dict[UUID, Profile], author_id: UUID) -> AuthorSummary | None:
    profile = profiles.get(author_id)
    if profile is None:
        return None
    return AuthorSummary(nickname=profile.nickname, floor=profile.floor)


class ContentStore:
    """Posts, comments and likes of a building's boards.

    Every operation loads the caller's profile in its own transaction and
    passes the access gate before reading or writing; like and comment
    writes go through the counter engine.
    """

    def __init__(
        self,
        profiles: ProfileDirectory,
        counters: CounterEngine,
        db_name: str = "default",
        posts_per_page: int = 20,
        post_repo: PostRepository | None = None,
        comment_repo: CommentRepository | None = None,
        like_repo: LikeRepository | None = None,
        profile_repo: ProfileRepository | None = None,
    ):
        self.profiles = profiles
        self.counters = counters
        self.db_name = db_name
        self.posts_per_page = posts_per_page
        self.post_repo = post_repo or PostRepository()
        self.comment_repo = comment_repo or CommentRepository()
        self.like_repo = like_repo or LikeRepository()
        self.profile_repo = profile_repo or ProfileRepository()

    async def _load_post(self, post_id: UUID) -> Post:
        post = await self.post_repo.find_by_id(post_id)
        if post is None:
            raise NotFoundError("Post", post_id)
        return post

    async def _authorized_post(
        self, context: RequestContext, post_id: UUID, operation: ContentOperation
    ) -> tuple[Profile, Post]:
        profile = await self.profiles.load(context.user_id)
        # Unverified callers are denied before the post is looked up
        require(profile, operation, profile.building_id)
        post = await self._load_post(post_id)
        require(profile, operation, post.building_id)
        return profile, post

    async def create_post(
        self,
        context: RequestContext,
        board_type: BoardType,
        title: str,
        content: str,
    ) -> Post:
        board_type = _board_type(board_type)
        title = _required_text("title", title)
        content = _required_text("content", content)

        async with DatabaseManager.transaction(self.db_name):
            profile = await self.profiles.load(context.user_id)
            require(profile, ContentOperation.CREATE_POST, profile.building_id)
            post = await self.post_repo.create(
                Post(
                    board_type=board_type,
                    title=title,
                    content=content,
                    author_id=profile.id,
                    building_id=profile.building_id,
                )
            )

        logger.info(
            "user %s created post %s on %s board of building %s",
            profile.id,
            post.id,
            post.board_type,
            post.building_id,
        )
        return post

    async def list_posts(
        self,
        context: RequestContext,
        board_type: BoardType,
        page: int = 1,
        per_page: int | None = None,
    ) -> list[PostView]:
        """Newest-first posts of one board in the caller's own building"""
        board_type = _board_type(board_type)
        if page < 1:
            raise ValidationError("page", "page must be 1 or greater")
        async with DatabaseManager.transaction(self.db_name):
            profile = await self.profiles.load(context.user_id)
            require(profile, ContentOperation.LIST_POSTS, profile.building_id)
            posts = await self.post_repo.find_for_board(
                profile.building_id,
                board_type.value,
                page,
                per_page or self.posts_per_page,
            )
            authors = await self.profile_repo.find_many([p.author_id for p in posts])

        return [
            PostView(**post.model_dump(), author=_author(authors, post.author_id))
            for post in posts
        ]

    async def get_post(self, context: RequestContext, post_id: UUID) -> PostView:
        async with DatabaseManager.transaction(self.db_name):
            _, post = await self._authorized_post(context, post_id, ContentOperation.READ_POST)
            authors = await self.profile_repo.find_many([post.author_id])
        return PostView(**post.model_dump(), author=_author(authors, post.author_id))

    async def create_comment(
        self, context: RequestContext, post_id: UUID, content: str
    ) -> Comment:
        content = _required_text("content", content)
        async with DatabaseManager.transaction(self.db_name):
            profile, post = await self._authorized_post(
                context, post_id, ContentOperation.CREATE_COMMENT
            )
            comment = await self.counters.add_comment(post.id, profile.id, content)
        logger.info("user %s commented %s on post %s", profile.id, comment.id, post.id)
        return comment

    async def list_comments(self, context: RequestContext, post_id: UUID) -> list[CommentView]:
        """Comments of a post, oldest first"""
        async with DatabaseManager.transaction(self.db_name):
            await self._authorized_post(context, post_id, ContentOperation.LIST_COMMENTS)
            comments = await self.comment_repo.find_for_post(post_id)
            authors = await self.profile_repo.find_many([c.author_id for c in comments])
        return [
            CommentView(**comment.model_dump(), author=_author(authors, comment.author_id))
            for comment in comments
        ]

    async def toggle_like(self, context: RequestContext, post_id: UUID) -> LikeToggle:
        async with DatabaseManager.transaction(self.db_name):
            profile, post = await self._authorized_post(
                context, post_id, ContentOperation.TOGGLE_LIKE
            )
            return await self.counters.toggle_like(post.id, profile.id)

    async def has_liked(self, context: RequestContext, post_id: UUID) -> bool:
        async with DatabaseManager.transaction(self.db_name):
            profile, post = await self._authorized_post(
                context, post_id, ContentOperation.READ_POST
            )
            return await self.like_repo.for_pair(post.id, profile.id).exists()
