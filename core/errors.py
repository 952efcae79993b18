"""
Shared error types for core services.
"""


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class AuthenticationError(Exception):
    """Raised when a request cannot be attributed to a user."""


class ChatNotFound(LookupError):
    """Raised when a chat does not exist or is not owned by the caller."""


class ChatForbidden(PermissionError):
    """Raised when a caller tries to use a chat it does not own (or that is gone)."""


class ProviderError(RuntimeError):
    """Raised when the language model provider fails or returns unusable output."""


class StorageError(RuntimeError):
    """Raised when the persistence layer is unavailable."""


class AccountConflict(Exception):
    """Raised when registering an email that already belongs to a verified user."""


class AccountNotFound(LookupError):
    """Raised when an account operation targets an unknown email."""


class LoginRejected(Exception):
    """Raised on a bad email/password pair."""


class AccountNotVerified(PermissionError):
    def __init__(self, message: str, email: str):
        super().__init__(message)
        self.email = email
