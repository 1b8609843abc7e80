"""
Composition root: wires the services from Settings and exposes the
operation surface consumed by the UI layer.
"""

import asyncio
import logging
from uuid import UUID

from residency import schema
from residency.config import Settings, get_settings
from residency.context import RequestContext
from residency.db_context import DatabaseManager
from residency.entities import (
    BoardType,
    Building,
    Comment,
    CommentView,
    LikeToggle,
    Post,
    PostView,
    Profile,
    ReconciliationReport,
    RequestStatus,
    ReviewDecision,
    VerificationRequest,
    VerificationStatus,
)
from residency.logging_config import configure_logging
from residency.services import (
    ApprovalPolicy,
    ContentStore,
    CounterEngine,
    MembershipRegistry,
    ProfileDirectory,
    VerificationWorkflow,
    policy_from_name,
)

logger = logging.getLogger(__name__)


class CommunityCore:
    """Facade over the membership, verification, counter and content services.

    Usage:
        core = await CommunityCore.connect()
        ctx = RequestContext(user_id=user_id, email=email)
        building = await core.create_building(ctx, "Maple Court", "1 Maple St")
        ...
        await core.close()
    """

    def __init__(self, settings: Settings | None = None, policy: ApprovalPolicy | None = None):
        self.settings = settings or get_settings()
        db_name = self.settings.database_pool_name

        self.profiles = ProfileDirectory(db_name)
        self.registry = MembershipRegistry(db_name, dedup=self.settings.building_dedup)
        self.verification = VerificationWorkflow(
            policy or policy_from_name(self.settings.approval_policy),
            self.registry,
            self.profiles,
            db_name,
        )
        self.counters = CounterEngine(
            db_name,
            max_attempts=self.settings.reconcile_max_attempts,
            backoff_seconds=self.settings.reconcile_backoff_seconds,
            backoff_max_seconds=self.settings.reconcile_backoff_max_seconds,
        )
        self.content = ContentStore(
            self.profiles,
            self.counters,
            db_name,
            posts_per_page=self.settings.posts_per_page,
        )

    @classmethod
    async def connect(
        cls,
        settings: Settings | None = None,
        policy: ApprovalPolicy | None = None,
        install_schema: bool = True,
    ) -> "CommunityCore":
        """Configure logging, open the pool and optionally install the schema"""
        settings = settings or get_settings()
        configure_logging(settings.log_level)
        await DatabaseManager.connect(
            settings.database_dsn,
            name=settings.database_pool_name,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
            command_timeout=settings.command_timeout,
        )
        if install_schema:
            await schema.install(settings.database_pool_name)
        core = cls(settings, policy)
        logger.info("community core ready (approval policy: %s)", core.verification.policy.name)
        return core

    async def close(self) -> None:
        await DatabaseManager.close(self.settings.database_pool_name)

    # Profiles
    async def register_profile(self, context: RequestContext, nickname: str) -> Profile:
        return await self.profiles.register_profile(context, nickname)

    async def get_profile(self, context: RequestContext) -> Profile:
        return await self.profiles.get_profile(context)

    # Membership registry
    async def list_buildings(self) -> list[Building]:
        return await self.registry.list_buildings()

    async def create_building(
        self, context: RequestContext, name: str, address: str
    ) -> Building:
        return await self.registry.create_building(context, name, address)

    # Verification workflow
    async def submit_verification_request(
        self, context: RequestContext, building_id: UUID, floor: str, document_ref: str
    ) -> VerificationRequest:
        return await self.verification.submit_verification_request(
            context, building_id, floor, document_ref
        )

    async def review_verification_request(
        self, context: RequestContext, request_id: UUID, decision: ReviewDecision
    ) -> VerificationRequest:
        return await self.verification.review_verification_request(
            context, request_id, decision
        )

    async def get_verification_status(self, context: RequestContext) -> VerificationStatus:
        return await self.verification.get_verification_status(context)

    async def list_verification_requests(
        self, context: RequestContext, status: RequestStatus | None = None
    ) -> list[VerificationRequest]:
        return await self.verification.list_verification_requests(context, status)

    # Content
    async def create_post(
        self, context: RequestContext, board_type: BoardType, title: str, content: str
    ) -> Post:
        return await self.content.create_post(context, board_type, title, content)

    async def list_posts(
        self, context: RequestContext, board_type: BoardType, page: int = 1
    ) -> list[PostView]:
        return await self.content.list_posts(context, board_type, page)

    async def get_post(self, context: RequestContext, post_id: UUID) -> PostView:
        return await self.content.get_post(context, post_id)

    async def create_comment(
        self, context: RequestContext, post_id: UUID, content: str
    ) -> Comment:
        return await self.content.create_comment(context, post_id, content)

    async def list_comments(self, context: RequestContext, post_id: UUID) -> list[CommentView]:
        return await self.content.list_comments(context, post_id)

    async def toggle_like(self, context: RequestContext, post_id: UUID) -> LikeToggle:
        return await self.content.toggle_like(context, post_id)

    async def has_liked(self, context: RequestContext, post_id: UUID) -> bool:
        return await self.content.has_liked(context, post_id)

    # Counter maintenance
    async def reconcile_counters(
        self, post_ids: list[UUID] | None = None
    ) -> ReconciliationReport:
        return await self.counters.reconcile(post_ids)

    def start_reconciliation(self, stop_event: asyncio.Event) -> asyncio.Task:
        """Run the scheduled reconciliation pass in the background"""
        return asyncio.create_task(
            self.counters.run_reconciliation_loop(
                self.settings.reconcile_interval_seconds, stop_event
            )
        )
