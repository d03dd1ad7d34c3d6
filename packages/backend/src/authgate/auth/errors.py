"""Auth error taxonomy.

Learn: Every failure the auth core can report is one of these classes.
Each carries an HTTP status and a fixed, generic public message; the
message never varies with the underlying cause. That's deliberate for
InvalidCredentials and TokenInvalid: "no such email", "no local password"
and "wrong password" must look identical from outside, otherwise the
endpoint becomes an account-enumeration oracle.
"""

from typing import Optional


class AuthError(Exception):
    """Base class. Subclasses set status_code and public_message."""

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, reason: Optional[str] = None):
        # reason is for logs only; it never reaches the client
        super().__init__(reason or self.public_message)
        self.reason = reason


class ValidationFailed(AuthError):
    status_code = 400
    public_message = "Invalid request"

    def __init__(self, public_message: str):
        # Validation messages describe the caller's own input, so they are safe
        super().__init__(public_message)
        self.public_message = public_message


class Conflict(AuthError):
    status_code = 409
    public_message = "User with this email already exists"


class InvalidCredentials(AuthError):
    status_code = 401
    public_message = "Invalid credentials"


class TokenInvalid(AuthError):
    status_code = 401
    public_message = "Invalid or expired token"


class RateLimited(AuthError):
    status_code = 429
    public_message = "Too many requests, please try again later."

    def __init__(self, retry_after: int):
        super().__init__(f"retry after {retry_after}s")
        self.retry_after = retry_after


class AuthFailed(AuthError):
    status_code = 401
    public_message = "Authentication failed"


class ProviderNotFound(AuthError):
    status_code = 404
    public_message = "Unknown authentication provider"


class InfraError(AuthError):
    status_code = 500
    public_message = "Internal server error"
