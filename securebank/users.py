"""
User Management Module

Signup and credential checks. Passwords and SSNs are stored only as salted
scrypt hashes.
"""

from dataclasses import dataclass
from functools import lru_cache
from datetime import datetime, timezone
from typing import Optional, Tuple

from .config import SecureBankConfig, get_config
from .exceptions import (
    BadRequestError, ConflictError, DuplicateRecordError, InternalInconsistencyError,
    UnauthorizedError
)
from .logging_config import get_logger, log_action
from .models import User, format_timestamp
from .security import generate_salt, hash_password, hash_ssn, verify_password
from .storage import StorageInterface
from . import validators


logger = get_logger("securebank.users")


@lru_cache(maxsize=1)
def _unknown_user_credentials() -> Tuple[str, str]:
    """Throwaway hash checked for unknown emails so they cost one scrypt too"""
    return hash_password(generate_salt())


@dataclass
class SignupData:
    email: str
    password: str
    first_name: str
    last_name: str
    phone_number: str
    date_of_birth: str
    ssn: str
    address: str
    city: str
    state: str
    zip_code: str


class UserManager:
    """User registration and authentication"""

    def __init__(self, storage: StorageInterface, config: Optional[SecureBankConfig] = None):
        self.storage = storage
        self.config = config or get_config()

    def _validate(self, data: SignupData) -> None:
        checks = (
            validators.validate_email(data.email),
            validators.validate_password(data.password, self.config.password_min_length),
            validators.validate_required(data.first_name, "First name"),
            validators.validate_required(data.last_name, "Last name"),
            validators.validate_phone_number(data.phone_number),
            validators.validate_date_of_birth(data.date_of_birth),
            validators.validate_ssn(data.ssn),
            validators.validate_required(data.address, "Address"),
            validators.validate_required(data.city, "City"),
            validators.validate_state_code(data.state),
            validators.validate_zip_code(data.zip_code),
        )
        for result in checks:
            if result is not True:
                raise BadRequestError(result)

    def signup(self, data: SignupData) -> User:
        """
        Register a new user.

        Raises:
            BadRequestError: on the first failing field check
            ConflictError: if the email is already registered
            InternalInconsistencyError: if the new row cannot be read back
        """
        self._validate(data)

        email = validators.normalize_email(data.email)
        if self.storage.exists("users", {"email": email}):
            raise ConflictError("User already exists")

        password_hash, password_salt = hash_password(data.password)
        ssn_hash, ssn_salt = hash_ssn(data.ssn)

        try:
            user_id = self.storage.insert("users", {
                "email": email,
                "password_hash": password_hash,
                "password_salt": password_salt,
                "first_name": data.first_name.strip(),
                "last_name": data.last_name.strip(),
                "phone_number": validators.normalize_phone_number(data.phone_number),
                "date_of_birth": data.date_of_birth,
                "ssn_hash": ssn_hash,
                "ssn_salt": ssn_salt,
                "address": data.address.strip(),
                "city": data.city.strip(),
                "state": validators.normalize_state_code(data.state),
                "zip_code": data.zip_code,
                "created_at": format_timestamp(datetime.now(timezone.utc)),
            })
        except DuplicateRecordError as exc:
            raise ConflictError("User already exists") from exc

        row = self.storage.load("users", user_id)
        if row is None:
            logger.critical(f"User {user_id} could not be read back after signup")
            raise InternalInconsistencyError("Failed to create user")

        log_action(logger, "info", "User registered", user_id=user_id, action="signup",
                   resource=f"users/{user_id}")
        return User.from_row(row)

    def authenticate(self, email: str, password: str) -> User:
        """
        Raises:
            UnauthorizedError: unknown email or wrong password (same message)
        """
        row = self.storage.find_one("users", {"email": validators.normalize_email(email or "")})
        if row is None:
            verify_password(password or "", *_unknown_user_credentials())
        if row is None or not verify_password(password or "", row["password_hash"], row["password_salt"]):
            log_action(logger, "warning", "Login failed", action="login", resource="users")
            raise UnauthorizedError("Invalid credentials")

        log_action(logger, "info", "Login succeeded", user_id=row["id"], action="login",
                   resource=f"users/{row['id']}")
        return User.from_row(row)

    def get_user(self, user_id: int) -> Optional[User]:
        row = self.storage.load("users", user_id)
        if row is None:
            return None
        return User.from_row(row)
