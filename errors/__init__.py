"""User-facing error taxonomy shared by every marketplace module.

Each error carries a fixed HTTP status class and a message that is safe to
show to the caller. Module-specific errors subclass one of the five kinds
below so the API layer can translate them without knowing the module.
"""

from fastapi import status


class MarketplaceError(Exception):
    """Base class for errors that are reported to the caller as-is."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthenticationRequiredError(MarketplaceError):
    """Raised when a credential is missing, invalid or expired."""
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(MarketplaceError):
    """Raised on role or ownership mismatch and for blocked accounts."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(MarketplaceError):
    """Raised when an entity is missing or not owned by the caller."""
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(MarketplaceError):
    """Raised when acting on already-decided state or duplicating a unique value."""
    status_code = status.HTTP_409_CONFLICT


class ValidationError(MarketplaceError):
    """Raised on malformed input or a violated business rule."""
    status_code = status.HTTP_400_BAD_REQUEST


__all__ = [
    'MarketplaceError',
    'AuthenticationRequiredError',
    'ForbiddenError',
    'NotFoundError',
    'ConflictError',
    'ValidationError'
]
