"""Failure taxonomy for the SecureBank core.

Every core operation either returns its success payload or raises exactly one
of these. The HTTP layer maps them to status codes via ``status_code``.
"""


class BankingError(Exception):
    """Base exception for all SecureBank errors."""

    status_code = 500
    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConflictError(BankingError):
    """Raised when a record that must be unique already exists."""

    status_code = 409
    code = "CONFLICT"


class NotFoundError(BankingError):
    """Raised when a record is absent or not owned by the caller."""

    status_code = 404
    code = "NOT_FOUND"


class BadRequestError(BankingError):
    """Raised on format violations, rejected amounts or inactive accounts."""

    status_code = 400
    code = "BAD_REQUEST"


class UnauthorizedError(BankingError):
    """Raised on bad credentials or an expired/unknown session."""

    status_code = 401
    code = "UNAUTHORIZED"


class InternalInconsistencyError(BankingError):
    """Raised when a post-write read finds nothing or a post-delete read still finds the row."""


class IdentifierAllocationError(InternalInconsistencyError):
    """Raised when no unused identifier was found within the attempt cap."""


class EntropyUnavailableError(BankingError):
    """Raised when the secure random source cannot deliver bytes."""


class StorageError(BankingError):
    """Raised when the backing store fails."""


class DuplicateRecordError(StorageError):
    """Raised when an insert violates a uniqueness constraint."""

    def __init__(self, message: str, table: str, columns: tuple = ()):
        super().__init__(message)
        self.table = table
        self.columns = tuple(columns)
