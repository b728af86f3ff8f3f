"""
Funding Module

Coordinates the account manager and the transaction journal into one deposit
operation. The journal append and the balance delta run in a single store
transaction; the response is built only from what the store returns
afterwards.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from .accounts import AccountManager
from .config import SecureBankConfig, get_config
from .exceptions import BadRequestError, InternalInconsistencyError
from .logging_config import get_logger, log_action
from .models import Account, EnrichedTransaction, Transaction
from .money import from_cents, to_cents
from .storage import StorageInterface
from .transactions import TransactionJournal
from .validators import validate_amount, validate_funding_source


logger = get_logger("securebank.funding")


@dataclass
class FundingSource:
    """Where a deposit is drawn from"""
    type: str
    account_number: str
    routing_number: Optional[str] = None


@dataclass
class FundingResult:
    transaction: Transaction
    new_balance: Decimal

    def to_dict(self):
        return {
            "transaction": self.transaction.to_dict(),
            "new_balance": f"{self.new_balance:.2f}",
        }


class FundingProcessor:
    """Deposit orchestration and owned-account history"""

    def __init__(self, storage: StorageInterface, account_manager: AccountManager,
                 journal: TransactionJournal, config: Optional[SecureBankConfig] = None):
        self.storage = storage
        self.account_manager = account_manager
        self.journal = journal
        self.config = config or get_config()

    def normalize_amount(self, amount) -> Decimal:
        """
        Raises:
            BadRequestError: with the validator's message on rejection
        """
        result, normalized = validate_amount(
            None if amount is None else str(amount), self.config.deposit_ceiling
        )
        if result is not True:
            raise BadRequestError(result)
        return Decimal(normalized)

    def fund_account(self, user_id: int, account_id: int, amount,
                     funding_source: FundingSource) -> FundingResult:
        """
        Deposit ``amount`` into an account owned by ``user_id``.

        Raises:
            BadRequestError: invalid funding source or amount, or inactive account
            NotFoundError: account absent or owned by someone else
            InternalInconsistencyError: a post-write read found nothing
        """
        source_check = validate_funding_source(
            funding_source.type, funding_source.account_number, funding_source.routing_number
        )
        if source_check is not True:
            raise BadRequestError(source_check)

        value = self.normalize_amount(amount)

        account = self.account_manager.get_owned_account(user_id, account_id)
        if not account.is_active:
            raise BadRequestError("Account is not active")

        description = f"Funding from {funding_source.type}"
        with self.storage.atomic():
            transaction = self.journal.append(account.id, value, description)
            if not self.storage.increment("accounts", account.id, "balance_cents", to_cents(value)):
                logger.critical(f"Balance update matched no row for account {account.id}")
                raise InternalInconsistencyError("Account disappeared during funding")

        row = self.storage.load("accounts", account.id)
        if row is None:
            logger.critical(f"Account {account.id} could not be read back after funding")
            raise InternalInconsistencyError("Deposit recorded but account could not be retrieved")

        new_balance = from_cents(row["balance_cents"])
        log_action(logger, "info", "Deposit completed", user_id=user_id, action="fund_account",
                   resource=f"accounts/{account.id}",
                   extra={"transaction_id": transaction.id, "amount": f"{value:.2f}",
                          "new_balance": f"{new_balance:.2f}"})
        return FundingResult(transaction=transaction, new_balance=new_balance)

    def get_transactions(self, user_id: int, account_id: int) -> List[EnrichedTransaction]:
        """History of an owned account, newest first, with account metadata attached"""
        account = self.account_manager.get_owned_account(user_id, account_id)
        return self.journal.account_history(account)

    def reconcile(self, account: Account) -> bool:
        """True when the stored balance equals the sum of the account's journal"""
        return account.balance == self.journal.ledger_total(account.id)
