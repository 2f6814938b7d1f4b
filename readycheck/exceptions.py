"""
Error taxonomy shared by the authentication and scoring services.

- ValidationError: caller-correctable input problems, raised before any store write.
- AuthError: terminal for the attempt; recovery needs a new credential or sign-in.
- DependencyError: email delivery or store failures. Messages never carry
  raw credentials, digests or session tokens.
"""


class ReadyCheckError(Exception):
    """Base exception for all service errors."""
    pass


class ValidationError(ReadyCheckError, ValueError):
    """Raised when request input is malformed."""
    pass


class AuthError(ReadyCheckError):
    """Base exception for credential and session failures."""
    pass


class InvalidCredential(AuthError):
    """Raised when no pending credential matches the presented secret."""
    pass


class AlreadyUsed(AuthError):
    """Raised when the matching credential has already been consumed."""
    pass


class Expired(AuthError):
    """Raised when the matching credential is past its expiry."""
    pass


class Unauthenticated(AuthError):
    """Raised when a session token is missing, malformed, forged or expired."""
    pass


class DependencyError(ReadyCheckError):
    """Base exception for failures of external collaborators."""
    pass


class EmailDeliveryError(DependencyError):
    """Raised when the email provider does not accept a message."""
    pass


class StoreUnavailableError(DependencyError):
    """Raised when a database operation fails or times out."""
    pass


class ConcurrentUpdateError(DependencyError):
    """Raised when an optimistic baseline write keeps losing to concurrent writers."""
    pass


class CheckNotFoundError(ReadyCheckError):
    """Raised when a check does not exist or belongs to another user."""
    pass


class CheckAlreadyCompletedError(ReadyCheckError):
    """Raised when a check is submitted more than once."""
    pass


class CheckNotCompletedError(ReadyCheckError):
    """Raised when a result is requested for a check that has no score yet."""
    pass


class BaselineUpdateError(DependencyError):
    """Raised when some metrics of a submission could not be folded into their baselines."""

    def __init__(self, message: str, updated=None, failed=None):
        super().__init__(message)
        self.updated = updated or {}
        self.failed = failed or {}
