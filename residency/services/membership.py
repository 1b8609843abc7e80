"""
Membership registry: the building directory users verify against.
"""

import logging
from uuid import UUID

from residency.context import RequestContext
from residency.db_context import DatabaseManager
from residency.entities import Building
from residency.errors import NotFoundError, ValidationError
from residency.repositories import BuildingRepository

logger = logging.getLogger(__name__)


class MembershipRegistry:
    """Resolves or registers buildings.

    With `dedup` enabled, registering a building whose trimmed name and
    address match an existing entry (ignoring case) returns that entry
    instead of fragmenting the directory. Concurrent registrations of the
    same building are serialized on a transaction-scoped advisory lock.
    """

    def __init__(
        self,
        db_name: str = "default",
        dedup: bool = True,
        building_repo: BuildingRepository | None = None,
    ):
        self.db_name = db_name
        self.dedup = dedup
        self.building_repo = building_repo or BuildingRepository()

    async def list_buildings(self) -> list[Building]:
        async with DatabaseManager.transaction(self.db_name):
            return await self.building_repo.find_all_sorted_by_name()

    async def get_building(self, building_id: UUID) -> Building:
        async with DatabaseManager.transaction(self.db_name):
            return await self.require(building_id)

    async def require(self, building_id: UUID) -> Building:
        """Return the building or raise NotFoundError; runs in the caller's transaction"""
        building = await self.building_repo.find_by_id(building_id)
        if building is None:
            raise NotFoundError("Building", building_id)
        return building

    async def create_building(
        self, context: RequestContext, name: str, address: str
    ) -> Building:
        name = (name or "").strip()
        address = (address or "").strip()
        if not name:
            raise ValidationError("name")
        if not address:
            raise ValidationError("address")

        async with DatabaseManager.transaction(self.db_name):
            if self.dedup:
                await self.building_repo.lock_registration(name, address)
                existing = await self.building_repo.find_by_name_and_address(name, address)
                if existing is not None:
                    logger.info(
                        "building %r at %r already registered as %s",
                        name,
                        address,
                        existing.id,
                    )
                    return existing

            building = await self.building_repo.create(Building(name=name, address=address))

        logger.info(
            "user %s registered building %s (%r, %r)",
            context.user_id,
            building.id,
            name,
            address,
        )
        return building
