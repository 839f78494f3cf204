"""Registry error taxonomy mapped to HTTP status codes."""

from __future__ import annotations

from fastapi import status


class RegistryError(Exception):
    """Base error carrying a user-facing message and HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RegistryError):
    """Missing or malformed required input."""

    status_code = status.HTTP_400_BAD_REQUEST


class DuplicateError(RegistryError):
    """Email uniqueness violation."""

    status_code = status.HTTP_400_BAD_REQUEST


class InvalidStatusError(RegistryError):
    """Status outside the supported set."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(RegistryError):
    """Missing member record or dependent file."""

    status_code = status.HTTP_404_NOT_FOUND


class InternalError(RegistryError):
    """Unexpected repository or file-store failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
