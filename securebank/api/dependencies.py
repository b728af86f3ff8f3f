"""
Component wiring and request dependencies
"""

from typing import Optional

from fastapi import Depends, Request

from ..accounts import AccountManager
from ..config import SecureBankConfig
from ..exceptions import UnauthorizedError
from ..funding import FundingProcessor
from ..identifiers import IdentifierGenerator
from ..models import Session
from ..sessions import SessionManager
from ..storage import StorageInterface
from ..transactions import TransactionJournal
from ..users import UserManager


class BankingSystem:
    """All core components built over one store"""

    def __init__(self, storage: StorageInterface, config: SecureBankConfig,
                 identifiers: Optional[IdentifierGenerator] = None):
        self.storage = storage
        self.config = config
        self.identifiers = identifiers or IdentifierGenerator()

        self.user_manager = UserManager(storage, config)
        self.session_manager = SessionManager(storage, self.identifiers, config)
        self.account_manager = AccountManager(storage, self.identifiers, config)
        self.journal = TransactionJournal(storage)
        self.funding_processor = FundingProcessor(
            storage, self.account_manager, self.journal, config
        )


def get_banking_system(request: Request) -> BankingSystem:
    return request.app.state.banking_system


def get_session_token(request: Request) -> Optional[str]:
    """Session token from the cookie, falling back to a Bearer header"""
    system: BankingSystem = request.app.state.banking_system
    token = request.cookies.get(system.config.session_cookie_name)
    if token:
        return token

    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def get_current_session(
    token: Optional[str] = Depends(get_session_token),
    system: BankingSystem = Depends(get_banking_system)
) -> Session:
    session = system.session_manager.validate(token)
    if session is None:
        raise UnauthorizedError("Unauthorized")
    return session
