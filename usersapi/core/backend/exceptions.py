"""Identity backend exceptions."""


class BackendError(Exception):
    """Base exception for all identity backend operations.

    Attributes:
        code: Stable error code reported by the backend
        message: Human-readable message
    """

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class BackendValidationError(BackendError):
    """Backend rejected a mutation record (duplicate login, bad email, ...)."""
    pass


class UserNotFoundError(BackendError):
    """User lookup failed - id does not exist."""

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__("invalid_user_id", f"User {user_id} does not exist")


class PlatformAPIError(BackendError):
    """HTTP error from the platform identity API.

    Attributes:
        status_code: HTTP status code
        endpoint: API endpoint that failed
    """

    def __init__(self, status_code: int, code: str, message: str, endpoint: str):
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(code, message)

    def __str__(self) -> str:
        return f"[{self.status_code}] {self.endpoint}: {self.code}: {self.message}"
