"""
Domain Records

Plain dataclasses mirroring rows of the store. Money is exposed as Decimal;
the store holds integer cents. Timestamps are timezone-aware UTC datetimes,
stored as ISO-8601 strings.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from .money import from_cents, format_amount


class AccountType(Enum):
    """Account products a user may open, one of each"""
    CHECKING = "checking"
    SAVINGS = "savings"


class AccountStatus(Enum):
    ACTIVE = "active"
    FROZEN = "frozen"
    CLOSED = "closed"


class TransactionType(Enum):
    DEPOSIT = "deposit"


class TransactionStatus(Enum):
    COMPLETED = "completed"


class FundingSourceType(Enum):
    CARD = "card"
    BANK = "bank"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO timestamp, treating naive values as UTC"""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


@dataclass
class User:
    """Registered bank customer; password and SSN hashes never leave the users module"""
    id: int
    email: str
    first_name: str
    last_name: str
    phone_number: str
    date_of_birth: str
    address: str
    city: str
    state: str
    zip_code: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "User":
        return cls(
            id=row["id"],
            email=row["email"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            phone_number=row["phone_number"],
            date_of_birth=row["date_of_birth"],
            address=row["address"],
            city=row["city"],
            state=row["state"],
            zip_code=row["zip_code"],
            created_at=parse_timestamp(row["created_at"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone_number": self.phone_number,
            "date_of_birth": self.date_of_birth,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "created_at": format_timestamp(self.created_at),
        }


@dataclass
class Account:
    """
    Bank account.

    ``balance`` always equals the sum of the account's completed
    transactions; it is only ever changed by a store-side delta update.
    """
    id: int
    user_id: int
    account_number: str
    account_type: AccountType
    balance: Decimal
    status: AccountStatus
    created_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Account":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            account_number=row["account_number"],
            account_type=AccountType(row["account_type"]),
            balance=from_cents(row["balance_cents"]),
            status=AccountStatus(row["status"]),
            created_at=parse_timestamp(row["created_at"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "account_number": self.account_number,
            "account_type": self.account_type.value,
            "balance": format_amount(self.balance),
            "status": self.status.value,
            "created_at": format_timestamp(self.created_at),
        }


@dataclass
class Transaction:
    """Immutable journal entry; ``id`` is the only recency signal"""
    id: int
    account_id: int
    type: TransactionType
    amount: Decimal
    description: Optional[str]
    status: TransactionStatus
    created_at: datetime
    processed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Transaction":
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            type=TransactionType(row["type"]),
            amount=from_cents(row["amount_cents"]),
            description=row.get("description"),
            status=TransactionStatus(row["status"]),
            created_at=parse_timestamp(row["created_at"]),
            processed_at=parse_timestamp(row.get("processed_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "type": self.type.value,
            "amount": format_amount(self.amount),
            "description": self.description,
            "status": self.status.value,
            "created_at": format_timestamp(self.created_at),
            "processed_at": format_timestamp(self.processed_at) if self.processed_at else None,
        }


@dataclass
class EnrichedTransaction:
    """Transaction with the owning account's display metadata attached"""
    transaction: Transaction
    account_type: AccountType
    account_number: str

    @property
    def id(self) -> int:
        return self.transaction.id

    @property
    def account_id(self) -> int:
        return self.transaction.account_id

    def to_dict(self) -> Dict[str, Any]:
        data = self.transaction.to_dict()
        data["account_type"] = self.account_type.value
        data["account_number"] = self.account_number
        return data


@dataclass
class Session:
    """Authentication session row"""
    id: int
    user_id: int
    token: str
    expires_at: datetime
    created_at: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Session":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            token=row["token"],
            expires_at=parse_timestamp(row["expires_at"]),
            created_at=parse_timestamp(row["created_at"]),
        )
