import logging
from uuid import UUID

from residency.context import RequestContext
from residency.db_context import DatabaseManager
from residency.entities import Profile
from residency.errors import NotFoundError, ValidationError
from residency.repositories import ProfileRepository

logger = logging.getLogger(__name__)


class ProfileDirectory:
    """Profiles as the core sees them: identity plus membership fields"""

    def __init__(self, db_name: str = "default", profile_repo: ProfileRepository | None = None):
        self.db_name = db_name
        self.profile_repo = profile_repo or ProfileRepository()

    async def load(self, user_id: UUID, for_update: bool = False) -> Profile:
        """Load a profile inside the caller's transaction"""
        if for_update:
            profile = await self.profile_repo.find_for_update(user_id)
        else:
            profile = await self.profile_repo.find_by_id(user_id)
        if profile is None:
            raise NotFoundError("Profile", user_id)
        return profile

    async def register_profile(self, context: RequestContext, nickname: str) -> Profile:
        """Create the caller's profile on first sign-in; later calls return it unchanged"""
        nickname = (nickname or "").strip()
        if not nickname:
            raise ValidationError("nickname")

        async with DatabaseManager.transaction(self.db_name):
            created = await self.profile_repo.insert_ignoring_conflict(
                Profile(id=context.user_id, email=context.email, nickname=nickname),
                conflict_columns=["id"],
            )
            if created is not None:
                logger.info("registered profile %s", context.user_id)
                return created
            return await self.load(context.user_id)

    async def get_profile(self, context: RequestContext) -> Profile:
        async with DatabaseManager.transaction(self.db_name):
            return await self.load(context.user_id)
