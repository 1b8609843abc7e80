"""Domain services of the community core"""

from residency.services.access import Allow, ContentOperation, Deny, authorize, require
from residency.services.content import ContentStore
from residency.services.counters import CounterEngine
from residency.services.membership import MembershipRegistry
from residency.services.profiles import ProfileDirectory
from residency.services.verification import (
    ApprovalPolicy,
    AutoApprove,
    ManualReview,
    VerificationWorkflow,
    policy_from_name,
)

__all__ = [
    "Allow",
    "ApprovalPolicy",
    "AutoApprove",
    "ContentOperation",
    "ContentStore",
    "CounterEngine",
    "Deny",
    "ManualReview",
    "MembershipRegistry",
    "ProfileDirectory",
    "VerificationWorkflow",
    "authorize",
    "policy_from_name",
    "require",
]
