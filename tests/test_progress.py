"""Tests for progress keys and ownership."""
import pytest
from ppo_core.models import ProgressOwner
from ppo_core.progress import (
    APP_REGISTRATION_CREATED,
    PUBLISHER_CREATED,
    SOLUTION_CREATED,
    ProgressOwnershipError,
    entity_key,
    environment_key,
    mark_progress,
    owner_of,
)


class TestProgressKeys:
    """Test progress key construction."""

    def test_environment_key(self):
        assert environment_key("dev") == "environment_dev_created"
        assert environment_key(" UAT ") == "environment_uat_created"

    def test_entity_key_replaces_whitespace(self):
        assert entity_key("Case Note") == "entity_case_note_created"

    def test_owners(self):
        assert owner_of(APP_REGISTRATION_CREATED) == ProgressOwner.FOUNDATION
        assert owner_of(PUBLISHER_CREATED) == ProgressOwner.PLATFORM
        assert owner_of(SOLUTION_CREATED) == ProgressOwner.PLATFORM
        assert owner_of(environment_key("prod")) == ProgressOwner.PLATFORM
        assert owner_of(entity_key("Order")) == ProgressOwner.PLATFORM
        assert owner_of("something_else") is None


class TestMarkProgress:
    """Test ownership enforcement on writes."""

    def test_owner_may_write(self):
        progress: dict[str, bool] = {}
        mark_progress(progress, APP_REGISTRATION_CREATED, ProgressOwner.FOUNDATION)
        mark_progress(progress, environment_key("dev"), ProgressOwner.PLATFORM)
        assert progress == {"app_registration_created": True, "environment_dev_created": True}

    def test_other_phase_is_blocked(self):
        progress: dict[str, bool] = {}
        with pytest.raises(ProgressOwnershipError) as exc_info:
            mark_progress(progress, PUBLISHER_CREATED, ProgressOwner.WORK_TRACKING)

        error = exc_info.value
        assert error.owner == ProgressOwner.PLATFORM
        assert error.writer == ProgressOwner.WORK_TRACKING
        assert progress == {}

    def test_unknown_key_is_blocked(self):
        with pytest.raises(ProgressOwnershipError) as exc_info:
            mark_progress({}, "made_up_key", ProgressOwner.PLATFORM)
        assert "owned by nobody" in str(exc_info.value)
