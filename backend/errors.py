"""
Domain exceptions.

Each exception carries the HTTP status it maps to; main.py renders them as
``{"error": message}`` envelopes.
"""

from fastapi import status


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnauthorizedError(AppError):
    """No membership in the workspace, or an insufficient role."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ServiceUnavailableError(AppError):
    """A read against the database timed out; the caller may retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
