"""
Shared error handling for the sign-in relying party.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class SignInError(Exception):
    """Base exception for the sign-in flow."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidStateError(SignInError):
    """Callback state is missing, unknown, expired or already consumed."""

    def __init__(self, message: str = "Invalid state", details: Optional[Dict[str, Any]] = None):
        super().__init__("invalid_state", message, details)


class AuthorizationResponseError(SignInError):
    """The authorization server redirected back with an error instead of a code."""

    def __init__(self, error: str, description: Optional[str] = None):
        message = f"{error}: {description}" if description else error
        super().__init__(
            "authorization_error",
            message,
            {"error": error, "error_description": description}
        )


class ExchangeError(SignInError):
    """Authorization code could not be exchanged for tokens."""

    status_code = 502

    def __init__(self, message: str = "Token exchange failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("exchange_failed", message, details)


class VerificationError(SignInError):
    """Identity token failed signature or claim verification."""

    status_code = 401

    def __init__(self, message: str = "Identity token verification failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("verification_failed", message, details)
