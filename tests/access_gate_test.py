from uuid import uuid4

import pytest

from residency.entities import Profile
from residency.errors import AuthorizationError, DenialReason
from residency.services.access import Allow, ContentOperation, Deny, authorize, require


def profile(verified: bool, building_id=None) -> Profile:
    return Profile(
        id=uuid4(),
        email="kim@example.com",
        nickname="kim",
        building_id=building_id,
        floor="5F" if building_id else None,
        verified=verified,
    )


class TestAuthorize:
    def test_verified_resident_of_target_building_is_allowed(self):
        building_id = uuid4()

        decision = authorize(profile(True, building_id), ContentOperation.CREATE_POST, building_id)

        assert isinstance(decision, Allow)
        assert decision.allowed

    @pytest.mark.parametrize("operation", list(ContentOperation))
    def test_unverified_profile_is_denied_for_every_operation(self, operation):
        building_id = uuid4()

        decision = authorize(profile(False, building_id), operation, building_id)

        assert decision == Deny(DenialReason.NOT_VERIFIED)
        assert not decision.allowed

    def test_other_building_is_denied(self):
        decision = authorize(profile(True, uuid4()), ContentOperation.READ_POST, uuid4())

        assert decision == Deny(DenialReason.WRONG_BUILDING)

    def test_missing_target_is_denied(self):
        decision = authorize(profile(True, uuid4()), ContentOperation.LIST_POSTS, None)

        assert decision == Deny(DenialReason.WRONG_BUILDING)


class TestRequire:
    def test_passes_silently_when_allowed(self):
        building_id = uuid4()
        assert require(profile(True, building_id), ContentOperation.TOGGLE_LIKE, building_id) is None

    def test_raises_typed_reason(self):
        with pytest.raises(AuthorizationError) as exc_info:
            require(profile(False), ContentOperation.CREATE_COMMENT, uuid4())

        assert exc_info.value.reason is DenialReason.NOT_VERIFIED
        assert exc_info.value.code == "authorization_error"

    def test_denial_is_logged(self, caplog):
        caplog.set_level("WARNING", logger="residency.services.access")

        with pytest.raises(AuthorizationError):
            require(profile(True, uuid4()), ContentOperation.CREATE_POST, uuid4())

        assert "create_post" in caplog.text
        assert "wrong_building" in caplog.text
