"""
Service Exceptions

Typed failures raised by the service layer and translated to HTTP status
codes by the API layer.

Only genuine failures are exceptions. Business-as-usual negative outcomes
(a rate-limited view, a replayed credential) are return values.
"""


class ShortLinkException(Exception):
    """Base exception for the short link service."""
    pass


class InvalidURLError(ShortLinkException):
    """Raised when URL validation fails."""

    def __init__(self, url: str, reason: str = "Invalid URL format"):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url}")


class ShortCodeNotFoundError(ShortLinkException):
    """Raised when a short code is not found in the database."""

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Short code '{short_code}' not found")


class UserNotFoundError(ShortLinkException):
    """Raised when a link owner does not exist."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class InvalidRateError(ShortLinkException):
    """Raised when a CPM rate or revenue share is outside its allowed range."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ExhaustedRetriesError(ShortLinkException):
    """
    Raised when no unused short code could be found.

    This signals a capacity or configuration problem (code length too short
    for the number of stored links) and must not be retried automatically.
    """

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Failed to generate unique short code after {attempts} attempts"
        )


class DatabaseError(ShortLinkException):
    """Raised when database operations fail."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")

