"""
Storefront error taxonomy.

Raised by the core (catalog, ledger, uploads, identity). The HTTP layer in
main.py translates them into JSON error responses.
"""


class StorefrontError(Exception):
    """Base class for every error the core raises."""

    status_code = 400

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__ or self.__class__.__name__
        super().__init__(self.message)


class ValidationError(StorefrontError):
    """A required field is missing or malformed."""

    status_code = 422


class AuthenticationError(StorefrontError):
    """Credentials or session token were rejected."""

    status_code = 401


class AuthorizationError(StorefrontError):
    """Admin only."""

    status_code = 403


class NotFoundError(StorefrontError):
    """The requested record does not exist."""

    status_code = 404


class InvalidTransitionError(StorefrontError):
    """The requested status change is not allowed."""

    status_code = 409


class UploadError(StorefrontError):
    """Blob upload failed."""

    status_code = 502


class NetworkError(StorefrontError):
    """Document store unavailable."""

    status_code = 503
