"""
Account Management Module

Creates accounts (one per user and account type) and serves account lookups.
The balance column is seeded at zero here and changed only by the funding
path through an atomic store-side delta.
"""

from datetime import datetime, timezone
from typing import List, Optional, Union

from .config import SecureBankConfig, get_config
from .exceptions import (
    BadRequestError, ConflictError, DuplicateRecordError, IdentifierAllocationError,
    InternalInconsistencyError, NotFoundError
)
from .identifiers import IdentifierGenerator
from .logging_config import get_logger, log_action
from .models import Account, AccountStatus, AccountType, format_timestamp
from .storage import StorageInterface


logger = get_logger("securebank.accounts")


class AccountManager:
    """Account creation and ownership-checked lookups"""

    def __init__(self, storage: StorageInterface, identifiers: Optional[IdentifierGenerator] = None,
                 config: Optional[SecureBankConfig] = None):
        self.storage = storage
        self.identifiers = identifiers or IdentifierGenerator()
        self.config = config or get_config()

    @staticmethod
    def _coerce_type(account_type: Union[AccountType, str]) -> AccountType:
        if isinstance(account_type, AccountType):
            return account_type
        try:
            return AccountType(account_type)
        except ValueError:
            raise BadRequestError("Invalid account type")

    def _number_in_use(self, candidate: str) -> bool:
        return self.storage.exists("accounts", {"account_number": candidate})

    def create_account(self, user_id: int, account_type: Union[AccountType, str]) -> Account:
        """
        Open a new account with zero balance and active status.

        Raises:
            ConflictError: if the user already has an account of this type
            InternalInconsistencyError: if the new row cannot be read back
        """
        account_type = self._coerce_type(account_type)

        if self.storage.exists("accounts", {"user_id": user_id, "account_type": account_type.value}):
            raise ConflictError("Account type already exists")

        account_id = None
        max_attempts = self.config.max_identifier_attempts
        for _ in range(max_attempts):
            account_number = self.identifiers.allocate(
                self.config.account_number_width, self._number_in_use, max_attempts
            )
            try:
                account_id = self.storage.insert("accounts", {
                    "user_id": user_id,
                    "account_number": account_number,
                    "account_type": account_type.value,
                    "balance_cents": 0,
                    "status": AccountStatus.ACTIVE.value,
                    "created_at": format_timestamp(datetime.now(timezone.utc)),
                })
                break
            except DuplicateRecordError as exc:
                if "account_number" in exc.columns:
                    # Another writer took the number between check and insert
                    continue
                raise ConflictError("Account type already exists") from exc

        if account_id is None:
            raise IdentifierAllocationError(
                f"Could not allocate a unique account number after {max_attempts} attempts"
            )

        row = self.storage.load("accounts", account_id)
        if row is None:
            log_action(logger, "critical", "Created account could not be read back",
                       user_id=user_id, action="account_create", resource=f"accounts/{account_id}")
            raise InternalInconsistencyError("Account was created but could not be retrieved")

        account = Account.from_row(row)
        log_action(logger, "info", "Account created", user_id=user_id, action="account_create",
                   resource=f"accounts/{account.id}", extra={"account_type": account_type.value})
        return account

    def get_accounts(self, user_id: int) -> List[Account]:
        """All accounts owned by ``user_id`` in creation order"""
        return [Account.from_row(row) for row in self.storage.find("accounts", {"user_id": user_id})]

    def get_account(self, account_id: int) -> Optional[Account]:
        row = self.storage.load("accounts", account_id)
        if row is None:
            return None
        return Account.from_row(row)

    def get_owned_account(self, user_id: int, account_id: int) -> Account:
        """
        Raises:
            NotFoundError: if the account does not exist or belongs to someone else
        """
        row = self.storage.find_one("accounts", {"id": account_id, "user_id": user_id})
        if row is None:
            raise NotFoundError("Account not found")
        return Account.from_row(row)
