from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """Who is calling, as asserted by the identity provider.

    Built once per request and passed explicitly to every operation.
    Membership data (building, verification) is never taken from here;
    services load the caller's profile from storage.
    """

    user_id: UUID
    email: str
    is_admin: bool = False
