"""Error types raised by the backend client."""

from typing import Optional


class HabitSyncError(Exception):
    """Base exception for all habitsync errors."""


class APIError(HabitSyncError):
    """A backend call failed."""

    def __init__(self, message: str, endpoint: str):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint

    @property
    def server_reported(self) -> bool:
        """Whether the message came from the backend itself."""
        return False


class ServerError(APIError):
    """The backend answered with a non-success status."""

    def __init__(
        self,
        message: str,
        endpoint: str,
        status_code: int,
        has_message: bool = True,
    ):
        super().__init__(message, endpoint)
        self.status_code = status_code
        self.has_message = has_message

    @property
    def server_reported(self) -> bool:
        return self.has_message


class TransportError(APIError):
    """The request never reached the backend or the response never arrived."""

    def __init__(self, message: str, endpoint: str, cause: Optional[Exception] = None):
        super().__init__(message, endpoint)
        self.cause = cause


class InvalidResponseError(APIError):
    """The backend answered with success but the body is not what was expected."""


class NotAuthenticatedError(HabitSyncError):
    """An operation needed a session and there was none."""


def user_message(error: HabitSyncError, fallback: str) -> str:
    """Text to show the user for a failed operation."""
    if isinstance(error, APIError) and error.server_reported:
        return error.message
    return fallback
