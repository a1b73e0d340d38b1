"""Exception hierarchy for the banking services.

Every error carries the HTTP status the API layer answers with.
"""


class BankingError(Exception):
    """Base exception for all banking errors."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class ValidationError(BankingError):
    """Raised for missing or malformed input."""

    status_code = 400


class AuthenticationError(BankingError):
    """Raised when a bearer token is missing, malformed or expired."""

    status_code = 401


class InvalidCredentialsError(BankingError):
    """Raised when a password does not match the stored hash."""

    status_code = 401


class ForbiddenError(BankingError):
    """Raised for inactive accounts, unverified KYC or a wrong role."""

    status_code = 403


class NotFoundError(BankingError):
    """Raised when an entity is absent or not owned by the caller."""

    status_code = 404


class DuplicateEmailError(BankingError):
    """Raised when signing up with an email that is already registered."""

    status_code = 400


class InsufficientFundsError(BankingError):
    """Raised when a debit exceeds the account balance."""

    status_code = 400


class LimitExceededError(BankingError):
    """Raised when a transfer exceeds the beneficiary transfer limit."""

    status_code = 403


class InternalError(BankingError):
    """Raised for unexpected or storage-level failures."""

    status_code = 500


class StorageTimeoutError(InternalError):
    """Raised when a storage transaction cannot acquire its lock in time."""
