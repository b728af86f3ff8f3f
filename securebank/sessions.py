"""
Session Management Module

Issues, validates and terminates authentication sessions. A user has at most
one live session: issuing a new one deletes every existing row for that user
in the same store transaction as the insert. Validation applies an expiry
buffer so a session is treated as expired slightly before its literal expiry.
"""

from datetime import datetime, timezone, timedelta
from typing import Callable, Optional

from .config import SecureBankConfig, get_config
from .exceptions import InternalInconsistencyError
from .identifiers import IdentifierGenerator
from .logging_config import get_logger, log_action
from .models import Session, format_timestamp
from .storage import StorageInterface


logger = get_logger("securebank.sessions")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Single-active-session issuance, buffered validation, verified termination"""

    def __init__(self, storage: StorageInterface, identifiers: Optional[IdentifierGenerator] = None,
                 config: Optional[SecureBankConfig] = None,
                 clock: Callable[[], datetime] = _utc_now):
        self.storage = storage
        self.identifiers = identifiers or IdentifierGenerator()
        self.config = config or get_config()
        self.clock = clock

    @property
    def lifetime(self) -> timedelta:
        return self.config.session_lifetime

    @property
    def buffer(self) -> timedelta:
        return self.config.session_expiry_buffer

    def issue(self, user_id: int) -> Session:
        """
        Replace all sessions of ``user_id`` with one fresh session.

        Raises:
            InternalInconsistencyError: if the new session cannot be read back
            IdentifierAllocationError: if no unused token could be generated
        """
        now = self.clock()

        with self.storage.atomic():
            replaced = self.storage.delete("sessions", {"user_id": user_id})
            token = self.identifiers.allocate(
                self.config.session_token_width,
                lambda candidate: self.storage.exists("sessions", {"token": candidate}),
                self.config.max_identifier_attempts,
            )
            session_id = self.storage.insert("sessions", {
                "user_id": user_id,
                "token": token,
                "expires_at": format_timestamp(now + self.lifetime),
                "created_at": format_timestamp(now),
            })

        row = self.storage.load("sessions", session_id)
        if row is None:
            log_action(logger, "critical", "Issued session could not be read back",
                       user_id=user_id, action="session_issue", resource="sessions")
            raise InternalInconsistencyError("Failed to create session")

        log_action(logger, "info", "Session issued", user_id=user_id, action="session_issue",
                   resource="sessions", extra={"sessions_replaced": replaced})
        return Session.from_row(row)

    def is_valid(self, session: Session, now: Optional[datetime] = None) -> bool:
        """Valid only while more than the buffer remains before expiry"""
        now = now or self.clock()
        return session.expires_at - now > self.buffer

    def validate(self, token: Optional[str], now: Optional[datetime] = None) -> Optional[Session]:
        """Return the session for ``token`` if it is live, else None"""
        if not token:
            return None
        row = self.storage.find_one("sessions", {"token": token})
        if row is None:
            return None
        session = Session.from_row(row)
        if not self.is_valid(session, now):
            return None
        return session

    def terminate(self, token: Optional[str]) -> bool:
        """
        Delete the session for ``token`` and confirm it is gone.

        Returns:
            True if a row was removed, False if there was nothing to remove

        Raises:
            InternalInconsistencyError: if the row is still present afterwards
        """
        if not token:
            return False

        removed = self.storage.delete("sessions", {"token": token})
        if self.storage.exists("sessions", {"token": token}):
            log_action(logger, "error", "Session still present after delete",
                       action="session_terminate", resource="sessions")
            raise InternalInconsistencyError("Failed to delete session. Please try again.")

        if removed:
            log_action(logger, "info", "Session terminated", action="session_terminate",
                       resource="sessions")
        return removed > 0

    def active_session_count(self, user_id: int) -> int:
        return self.storage.count("sessions", {"user_id": user_id})
