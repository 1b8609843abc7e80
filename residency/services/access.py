"""
Access gate: a verified resident may only touch their own building's content.

The target building is always something the server derived itself: the
caller's stored profile when listing or creating, or the stored post row
when an operation addresses an existing post.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from residency.entities import Profile
from residency.errors import AuthorizationError, DenialReason

logger = logging.getLogger(__name__)


class ContentOperation(str, Enum):
    LIST_POSTS = "list_posts"
    READ_POST = "read_post"
    CREATE_POST = "create_post"
    LIST_COMMENTS = "list_comments"
    CREATE_COMMENT = "create_comment"
    TOGGLE_LIKE = "toggle_like"


@dataclass(frozen=True)
class Allow:
    allowed = True


@dataclass(frozen=True)
class Deny:
    reason: DenialReason
    allowed = False


def authorize(
    profile: Profile, operation: ContentOperation, target_building_id: UUID | None
) -> Allow | Deny:
    if not profile.verified:
        return Deny(DenialReason.NOT_VERIFIED)
    if profile.building_id is None or profile.building_id != target_building_id:
        return Deny(DenialReason.WRONG_BUILDING)
    return Allow()


def require(
    profile: Profile, operation: ContentOperation, target_building_id: UUID | None
) -> None:
    """Raise AuthorizationError unless `authorize` allows the operation"""
    decision = authorize(profile, operation, target_building_id)
    if isinstance(decision, Deny):
        logger.warning(
            "denied %s for user %s: %s (profile building %s, target %s)",
            ContentOperation(operation).value,
            profile.id,
            decision.reason.value,
            profile.building_id,
            target_building_id,
        )
        raise AuthorizationError(decision.reason)
