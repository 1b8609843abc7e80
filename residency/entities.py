from datetime import datetime
from enum import Enum
from typing import ClassVar
from uuid import UUID, uuid4

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class BaseEntity(BaseModel):
    """Base entity class for all database models."""

    model_config: ClassVar[ConfigDict] = ConfigDict(use_enum_values=True)
    id: UUID = Field(default_factory=uuid4)


class BoardType(str, Enum):
    NOTICE = "notice"
    SHARE = "share"
    FREE = "free"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def resulting_status(self) -> RequestStatus:
        if self is ReviewDecision.APPROVE:
            return RequestStatus.APPROVED
        return RequestStatus.REJECTED


# Profiles


class Profile(BaseEntity):
    """A user's membership record; `id` is the identity provider's user id"""

    email: str
    nickname: str
    building_id: UUID | None = None
    floor: str | None = None
    verified: bool = False
    created_at: datetime | None = None


class ProfileUpdate(BaseModel):
    nickname: str | None = None
    building_id: UUID | None = None
    floor: str | None = None
    verified: bool | None = None


# Buildings


class Building(BaseEntity):
    name: str
    address: str
    created_at: datetime | None = None


class BuildingUpdate(BaseModel):
    name: str | None = None
    address: str | None = None


# Verification


class VerificationRequest(BaseEntity):
    user_id: UUID
    building_id: UUID
    floor: str
    document_ref: str
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime | None = None
    reviewed_at: datetime | None = None


class VerificationRequestUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    status: RequestStatus | None = None
    reviewed_at: datetime | None = None


class VerificationStatus(BaseModel):
    """What a client needs to render the pending/approved banners"""

    verified: bool
    building_id: UUID | None = None
    pending_request: VerificationRequest | None = None


# Content


class Post(BaseEntity):
    board_type: BoardType
    title: str
    content: str
    author_id: UUID
    building_id: UUID
    likes_count: int = 0
    comments_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PostUpdate(BaseModel):
    title: str | None = None
    content: str | None = None


class Comment(BaseEntity):
    post_id: UUID
    author_id: UUID
    content: str
    created_at: datetime | None = None


class CommentUpdate(BaseModel):
    content: str | None = None


class Like(BaseEntity):
    post_id: UUID
    user_id: UUID
    created_at: datetime | None = None


class LikeUpdate(BaseModel):
    pass


class AuthorSummary(BaseModel):
    nickname: str
    floor: str | None = None


class PostView(Post):
    author: AuthorSummary | None = None


class CommentView(Comment):
    author: AuthorSummary | None = None


class LikeToggle(BaseModel):
    liked: bool
    likes_count: int


class ReconciliationReport(BaseModel):
    checked: int
    corrected_post_ids: list[UUID] = Field(default_factory=list)

    @property
    def corrected(self) -> int:
        return len(self.corrected_post_ids)
