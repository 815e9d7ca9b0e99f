"""
Error taxonomy

Every failure a handler can report maps to one of these classes. The
exception handler in main.py turns them into `{"error": message}` bodies
with the class's status code.
"""
from typing import Optional


class BlogAppError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidInputError(BlogAppError):
    """Malformed or incomplete request input."""
    status_code = 403


class MissingTokenError(BlogAppError):
    status_code = 401


class InvalidTokenError(BlogAppError):
    status_code = 403


class PermissionDeniedError(BlogAppError):
    """The caller is authenticated but may not perform the action."""
    status_code = 403


class NotFoundError(BlogAppError):
    status_code = 404


class DraftAccessError(BlogAppError):
    status_code = 500


class ConflictError(BlogAppError):
    """A unique field (email, username) is already taken."""
    status_code = 409


class DownstreamError(BlogAppError):
    """Database, identity provider or image host failure."""
    status_code = 500
