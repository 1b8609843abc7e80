"""
Verification workflow: Unverified -> Pending -> Approved | Rejected.

A rejected user may submit again; old requests stay as history. Every
status change goes through `VerificationWorkflow._transition`, whichever
approval policy is configured.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

import asyncpg

from residency.context import RequestContext
from residency.db_context import DatabaseManager
from residency.entities import (
    ProfileUpdate,
    RequestStatus,
    ReviewDecision,
    VerificationRequest,
    VerificationRequestUpdate,
    VerificationStatus,
)
from residency.errors import (
    AuthorizationError,
    ConflictError,
    DenialReason,
    NotFoundError,
    ValidationError,
)
from residency.repositories import ProfileRepository, VerificationRequestRepository
from residency.services.membership import MembershipRegistry
from residency.services.profiles import ProfileDirectory

logger = logging.getLogger(__name__)


class ApprovalPolicy:
    """Decides what happens to a request right after it is submitted"""

    name = "base"

    def initial_decision(self, request: VerificationRequest) -> ReviewDecision | None:
        """Return a decision to apply immediately, or None to wait for review"""
        raise NotImplementedError


class AutoApprove(ApprovalPolicy):
    name = "auto"

    def initial_decision(self, request: VerificationRequest) -> ReviewDecision | None:
        return ReviewDecision.APPROVE


class ManualReview(ApprovalPolicy):
    name = "manual"

    def initial_decision(self, request: VerificationRequest) -> ReviewDecision | None:
        return None


def policy_from_name(name: str) -> ApprovalPolicy:
    policies = {"auto": AutoApprove, "manual": ManualReview}
    try:
        return policies[name]()
    except KeyError:
        raise ValueError(f"Unknown approval policy: {name!r}") from None


class VerificationWorkflow:
    def __init__(
        self,
        policy: ApprovalPolicy,
        registry: MembershipRegistry,
        profiles: ProfileDirectory,
        db_name: str = "default",
        request_repo: VerificationRequestRepository | None = None,
        profile_repo: ProfileRepository | None = None,
    ):
        self.policy = policy
        self.registry = registry
        self.profiles = profiles
        self.db_name = db_name
        self.request_repo = request_repo or VerificationRequestRepository()
        self.profile_repo = profile_repo or ProfileRepository()

    async def submit_verification_request(
        self,
        context: RequestContext,
        building_id: UUID,
        floor: str,
        document_ref: str,
    ) -> VerificationRequest:
        """Open a verification request for the caller.

        `document_ref` is stored as given; it is an opaque storage reference.

        Raises:
            ValidationError: empty floor
            NotFoundError: unknown building, or the caller has no profile
            ConflictError: a request is already pending, or the caller
                already has an approved request for this building
        """
        floor = (floor or "").strip()
        if not floor:
            raise ValidationError("floor")
        document_ref = document_ref or ""

        async with DatabaseManager.transaction(self.db_name):
            # Row lock serializes submissions from the same user across devices
            profile = await self.profiles.load(context.user_id, for_update=True)
            await self.registry.require(building_id)

            pending = await self.request_repo.find_pending_for_user(profile.id)
            if pending is not None:
                raise ConflictError(
                    f"verification request {pending.id} is already pending"
                )
            # At most one approved request per user and building
            approved = await self.request_repo.find_approved(profile.id, building_id)
            if approved is not None:
                raise ConflictError(
                    f"already approved for this building by request {approved.id}"
                )

            try:
                request = await self.request_repo.create(
                    VerificationRequest(
                        user_id=profile.id,
                        building_id=building_id,
                        floor=floor,
                        document_ref=document_ref,
                    )
                )
            except asyncpg.UniqueViolationError as exc:
                raise ConflictError("a verification request is already pending") from exc

            logger.info(
                "user %s submitted verification request %s for building %s",
                profile.id,
                request.id,
                building_id,
            )

            decision = self.policy.initial_decision(request)
            if decision is not None:
                request = await self._transition(request.id, decision)

        return request

    async def review_verification_request(
        self,
        context: RequestContext,
        request_id: UUID,
        decision: ReviewDecision,
    ) -> VerificationRequest:
        """Approve or reject a pending request on behalf of an administrator"""
        if not context.is_admin:
            raise AuthorizationError(DenialReason.NOT_ADMINISTRATOR)
        try:
            decision = ReviewDecision(decision)
        except ValueError:
            raise ValidationError("decision", f"unknown decision: {decision!r}") from None

        async with DatabaseManager.transaction(self.db_name):
            request = await self._transition(request_id, decision)

        logger.info(
            "administrator %s %s request %s", context.user_id, request.status, request.id
        )
        return request

    async def get_verification_status(self, context: RequestContext) -> VerificationStatus:
        async with DatabaseManager.transaction(self.db_name):
            profile = await self.profiles.load(context.user_id)
            pending = await self.request_repo.find_pending_for_user(profile.id)
        return VerificationStatus(
            verified=profile.verified,
            building_id=profile.building_id if profile.verified else None,
            pending_request=pending,
        )

    async def list_verification_requests(
        self, context: RequestContext, status: RequestStatus | None = None
    ) -> list[VerificationRequest]:
        """Review queue for administrators, newest first"""
        if not context.is_admin:
            raise AuthorizationError(DenialReason.NOT_ADMINISTRATOR)
        async with DatabaseManager.transaction(self.db_name):
            return await self.request_repo.find_newest_first(status)

    async def _transition(
        self, request_id: UUID, decision: ReviewDecision
    ) -> VerificationRequest:
        """Move a pending request to its final status.

        The status guard is part of the UPDATE, so of two concurrent
        reviewers exactly one wins and the other gets ConflictError.
        Approval also marks the profile verified for the request's
        building and floor, in the caller's transaction.
        """
        try:
            updated = await (
                self.request_repo.where("id", request_id)
                .where("status", RequestStatus.PENDING.value)
                .update_matching(
                    VerificationRequestUpdate(
                        status=decision.resulting_status, reviewed_at=datetime.now(UTC)
                    )
                )
            )
        except asyncpg.UniqueViolationError as exc:
            raise ConflictError(
                f"user already has an approved request for this building ({request_id})"
            ) from exc
        if not updated:
            current = await self.request_repo.find_by_id(request_id)
            if current is None:
                raise NotFoundError("VerificationRequest", request_id)
            raise ConflictError(
                f"verification request {request_id} is already {current.status}"
            )

        request = updated[0]
        if decision is ReviewDecision.APPROVE:
            await self.profile_repo.update(
                request.user_id,
                ProfileUpdate(
                    verified=True, building_id=request.building_id, floor=request.floor
                ),
            )
            logger.info(
                "user %s verified for building %s", request.user_id, request.building_id
            )
        return request
