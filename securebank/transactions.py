"""
Transaction Journal Module

Append-only log of completed deposits. Records are ordered solely by the
store-assigned id; timestamps are informational and never used for ordering.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from .exceptions import InternalInconsistencyError
from .logging_config import get_logger
from .models import (
    Account, EnrichedTransaction, Transaction, TransactionStatus, TransactionType,
    format_timestamp
)
from .money import from_cents, to_cents
from .storage import StorageInterface


logger = get_logger("securebank.transactions")


class TransactionJournal:
    """Append, read back, and list journal entries per account"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def append(self, account_id: int, amount: Decimal, description: Optional[str] = None) -> Transaction:
        """
        Insert one completed deposit and return it as stored.

        The record is read back by its assigned id, so a concurrent append to
        the same account can never be returned in its place.

        Raises:
            InternalInconsistencyError: if the record cannot be read back
        """
        now = format_timestamp(datetime.now(timezone.utc))
        transaction_id = self.storage.insert("transactions", {
            "account_id": account_id,
            "type": TransactionType.DEPOSIT.value,
            "amount_cents": to_cents(amount),
            "description": description,
            "status": TransactionStatus.COMPLETED.value,
            "created_at": now,
            "processed_at": now,
        })

        row = self.storage.load("transactions", transaction_id)
        if row is None or row["account_id"] != account_id:
            logger.critical(f"Transaction {transaction_id} could not be read back")
            raise InternalInconsistencyError("Transaction was recorded but could not be retrieved")
        return Transaction.from_row(row)

    def most_recent(self, account_id: int) -> Transaction:
        """
        Highest-id record for the account.

        Raises:
            InternalInconsistencyError: if the account has no records
        """
        rows = self.storage.find("transactions", {"account_id": account_id}, descending=True, limit=1)
        if not rows:
            logger.critical(f"No transaction found for account {account_id}")
            raise InternalInconsistencyError("Transaction was recorded but could not be retrieved")
        return Transaction.from_row(rows[0])

    def history(self, account_id: int) -> List[Transaction]:
        """All records for the account, newest (highest id) first"""
        rows = self.storage.find("transactions", {"account_id": account_id}, descending=True)
        return [Transaction.from_row(row) for row in rows]

    @staticmethod
    def enrich(transactions: Iterable[Transaction], account: Account) -> List[EnrichedTransaction]:
        """Attach metadata from one already-fetched account to each record"""
        account_type = account.account_type
        account_number = account.account_number
        return [
            EnrichedTransaction(transaction=transaction, account_type=account_type,
                                account_number=account_number)
            for transaction in transactions
        ]

    def account_history(self, account: Account) -> List[EnrichedTransaction]:
        return self.enrich(self.history(account.id), account)

    def ledger_total(self, account_id: int) -> Decimal:
        """Exact sum of the account's completed records"""
        rows = self.storage.find("transactions", {
            "account_id": account_id,
            "status": TransactionStatus.COMPLETED.value,
        })
        return from_cents(sum(row["amount_cents"] for row in rows))
