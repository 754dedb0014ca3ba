class LibraryError(Exception):
    """Base exception for library API errors."""

    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class ValidationError(LibraryError):
    """Request data failed field or business-rule validation."""

    status_code = 400


class ConflictError(LibraryError):
    """A unique key (email, ISBN, member ID) is already taken."""

    status_code = 400


class AuthError(LibraryError):
    """Credentials are missing, invalid or expired."""

    status_code = 401


class ForbiddenError(LibraryError):
    """The caller's role or permissions do not allow the operation."""

    status_code = 403


class NotFoundError(LibraryError):
    status_code = 404
