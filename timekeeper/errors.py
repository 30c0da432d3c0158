"""Error taxonomy shared by the store, the services and the API."""

from typing import Optional


class TimekeeperError(Exception):
    """Base class. Carries the HTTP status and the message shown to the client."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class Unauthenticated(TimekeeperError):
    status_code = 401
    message = "Unauthenticated"


class MissingCredential(Unauthenticated):
    message = "Authorization required"


class InvalidCredential(Unauthenticated):
    message = "Invalid token"


class ValidationError(TimekeeperError):
    status_code = 400
    message = "Invalid request data"


class InvalidDuration(ValidationError):
    message = "Invalid session duration"


class InvalidAction(ValidationError):
    message = "Invalid session action"


class NotFound(TimekeeperError):
    status_code = 404
    message = "Not found"


class NoActiveSession(NotFound):
    message = "No active session to stop"


class SessionAlreadyRunning(TimekeeperError):
    status_code = 409
    message = "A focus session is already running"


class StorageError(TimekeeperError):
    status_code = 500
    message = "Storage operation failed"


class RateLimited(TimekeeperError):
    status_code = 429
    message = "Too many requests, please try again later"
