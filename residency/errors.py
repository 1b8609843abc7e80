"""Typed errors raised by the community core"""

from enum import Enum


class DenialReason(str, Enum):
    NOT_VERIFIED = "not_verified"
    WRONG_BUILDING = "wrong_building"
    NOT_ADMINISTRATOR = "not_administrator"


class ResidencyError(Exception):
    """Base class for every error the core surfaces to callers.

    `code` is stable and meant for clients to branch on; the message is
    for humans and logs only.
    """

    code: str = "residency_error"
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(ResidencyError):
    """A required field is missing or empty"""

    code = "validation_error"

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f"'{field}' must not be empty")
        self.field = field


class NotFoundError(ResidencyError):
    """A reference points at nothing"""

    code = "not_found"

    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} '{entity_id}' not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(ResidencyError):
    """The operation is not allowed in the current state"""

    code = "conflict"


class AuthorizationError(ResidencyError):
    code = "authorization_error"

    def __init__(self, reason: DenialReason, message: str | None = None):
        super().__init__(message or f"access denied: {reason.value}")
        self.reason = reason


class UpstreamError(ResidencyError):
    """Storage or identity provider failure; safe to retry"""

    code = "upstream_error"
    retryable = True
