"""
Tests for session issuance, buffered validation and verified termination
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from securebank.exceptions import InternalInconsistencyError
from securebank.sessions import SessionManager


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def manager(any_storage, config):
    return SessionManager(any_storage, config=config, clock=lambda: NOW)


class TestIssue:
    """Single active session per user"""

    def test_issue_creates_session(self, manager):
        session = manager.issue(1)
        assert session.user_id == 1
        assert len(session.token) == 48
        assert session.token.isdigit()
        assert session.expires_at == NOW + timedelta(days=7)

    def test_reissue_invalidates_previous_token(self, manager):
        first = manager.issue(1)
        second = manager.issue(1)

        assert first.token != second.token
        assert manager.validate(first.token, NOW) is None
        assert manager.validate(second.token, NOW).id == second.id
        assert manager.active_session_count(1) == 1

    def test_other_users_unaffected(self, manager):
        other = manager.issue(2)
        manager.issue(1)
        manager.issue(1)
        assert manager.validate(other.token, NOW) is not None

    def test_lifetime_is_configurable(self, any_storage, config):
        config.session_lifetime_hours = 1
        manager = SessionManager(any_storage, config=config, clock=lambda: NOW)
        assert manager.issue(1).expires_at == NOW + timedelta(hours=1)

    def test_unreadable_session_is_fatal(self, manager, any_storage):
        with patch.object(any_storage, "load", return_value=None):
            with pytest.raises(InternalInconsistencyError):
                manager.issue(1)

    def test_concurrent_logins_leave_one_session(self, manager):
        with ThreadPoolExecutor(max_workers=8) as pool:
            sessions = list(pool.map(lambda _: manager.issue(1), range(20)))

        assert manager.active_session_count(1) == 1
        valid = [s for s in sessions if manager.validate(s.token, NOW) is not None]
        assert len(valid) == 1


class TestValidate:
    """Expiry buffer: valid only while strictly more than the buffer remains"""

    def test_unknown_and_empty_tokens(self, manager):
        assert manager.validate("123", NOW) is None
        assert manager.validate("", NOW) is None
        assert manager.validate(None, NOW) is None

    @pytest.mark.parametrize("remaining, expected", [
        (timedelta(minutes=6), True),
        (timedelta(minutes=5, seconds=1), True),
        (timedelta(minutes=5), False),
        (timedelta(minutes=4, seconds=59), False),
        (timedelta(0), False),
        (timedelta(minutes=-1), False),
    ])
    def test_buffer_boundary(self, manager, remaining, expected):
        session = manager.issue(1)
        now = session.expires_at - remaining
        assert (manager.validate(session.token, now) is not None) is expected
        assert manager.is_valid(session, now) is expected

    def test_buffer_is_configurable(self, any_storage, config):
        config.session_expiry_buffer_minutes = 30
        manager = SessionManager(any_storage, config=config, clock=lambda: NOW)
        session = manager.issue(1)
        assert manager.validate(session.token, session.expires_at - timedelta(minutes=20)) is None


class TestTerminate:
    """Deletion confirmed by re-reading"""

    def test_terminate_removes_session(self, manager):
        session = manager.issue(1)
        assert manager.terminate(session.token) is True
        assert manager.validate(session.token, NOW) is None
        assert manager.active_session_count(1) == 0

    def test_absent_token_is_noop(self, manager):
        assert manager.terminate(None) is False
        assert manager.terminate("") is False

    def test_already_removed_is_noop(self, manager):
        session = manager.issue(1)
        manager.terminate(session.token)
        assert manager.terminate(session.token) is False

    def test_surviving_row_raises(self, manager, any_storage):
        session = manager.issue(1)
        with patch.object(any_storage, "delete", return_value=0):
            with pytest.raises(InternalInconsistencyError) as exc_info:
                manager.terminate(session.token)
        assert exc_info.value.message == "Failed to delete session. Please try again."
        assert manager.validate(session.token, NOW) is not None
