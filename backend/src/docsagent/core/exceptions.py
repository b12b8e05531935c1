"""Custom exceptions for the Docs Agent backend.

This module defines all custom exceptions used throughout the application.
"""

from typing import Any


class DocsAgentException(Exception):
    """Base exception class for the Docs Agent backend."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# OAuth / credential exceptions
class OAuthNotConfiguredError(DocsAgentException):
    """Raised when Google OAuth client credentials are missing."""

    def __init__(self, details: dict[str, Any] | None = None):
        super().__init__(
            message="Google OAuth is not configured. Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET.",
            error_code="oauth_not_configured",
            status_code=503,
            details=details,
        )


class OAuthCallbackError(DocsAgentException):
    """Raised when the provider redirects back with an error parameter."""

    def __init__(self, error: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"OAuth authorization failed: {error}",
            error_code="oauth_error",
            status_code=400,
            details=details or {"error": error},
        )


class MissingCodeError(DocsAgentException):
    """Raised when the OAuth callback carries no authorization code."""

    def __init__(self, details: dict[str, Any] | None = None):
        super().__init__(
            message="Missing authorization code",
            error_code="missing_code",
            status_code=400,
            details=details,
        )


class MissingRefreshTokenError(DocsAgentException):
    """Raised when the token endpoint returns no refresh token."""

    def __init__(self, details: dict[str, Any] | None = None):
        super().__init__(
            message="No refresh token received. User may need to revoke access and re-authorize.",
            error_code="missing_refresh_token",
            status_code=400,
            details=details,
        )


class TokenExchangeFailedError(DocsAgentException):
    """Raised when the code exchange or the follow-up identity lookup fails."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Token exchange failed: {reason}",
            error_code="token_exchange_failed",
            status_code=502,
            details=details or {"reason": reason},
        )


class TokenRefreshError(DocsAgentException):
    """Raised when an access token cannot be refreshed."""

    def __init__(self, user_id: str, reason: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Failed to refresh access token for user '{user_id}': {reason}",
            error_code="token_refresh_failed",
            status_code=502,
            details=details or {"user_id": user_id, "reason": reason},
        )


class UserNotAuthorizedError(DocsAgentException):
    """Raised when no stored credential exists for the requested user."""

    def __init__(
        self,
        message: str = "User not authorized. Please connect Google account first via /auth/google",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            error_code="user_not_authorized",
            status_code=401,
            details=details,
        )


class CredentialEncryptionError(DocsAgentException):
    """Raised when a credential record cannot be encrypted or decrypted."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Credential encryption error: {reason}",
            error_code="credential_encryption_error",
            status_code=500,
            details=details,
        )


# Task exceptions
class InvalidTaskRequestError(DocsAgentException):
    """Raised when a task request carries none of task_id, type or description."""

    def __init__(self, message: str = "Missing required fields: task_id, type, or description", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="invalid_request",
            status_code=400,
            details=details,
        )


class UnknownTaskTypeError(DocsAgentException):
    """Raised when no capability matches a task type."""

    def __init__(self, task_type: str, available: list[str], details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Unknown task type: {task_type}. Available: {', '.join(available)}",
            error_code="unknown_task_type",
            status_code=400,
            details=details or {"task_type": task_type, "available": available},
        )


class TaskTimeoutError(DocsAgentException):
    """Raised when a capability handler outlives its deadline."""

    def __init__(self, timeout_ms: int, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Task timeout after {timeout_ms}ms",
            error_code="timeout",
            status_code=504,
            details=details or {"timeout_ms": timeout_ms},
        )


class TaskExecutionError(DocsAgentException):
    """Raised when a capability handler fails."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=reason,
            error_code="execution_error",
            status_code=500,
            details=details,
        )


class TaskInputError(DocsAgentException):
    """Raised when a capability is missing a required input field."""

    def __init__(self, field: str, task_type: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Missing required input '{field}' for {task_type}",
            error_code="invalid_input",
            status_code=400,
            details=details or {"field": field, "task_type": task_type},
        )


# Google API exceptions
class GoogleAPIError(DocsAgentException):
    """Raised when a Google Docs or Drive API call returns a non-success status."""

    def __init__(self, operation: str, status: int, reason: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Google API {operation} failed with HTTP {status}: {reason}",
            error_code="google_api_error",
            status_code=502,
            details=details or {"operation": operation, "status": status},
        )
        self.http_status = status


# Rate limiting
class RateLimitExceededError(DocsAgentException):
    """Raised when a caller exceeds the task submission rate limit."""

    def __init__(
        self,
        retry_after_seconds: int,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(
            message="Too many requests, please try again later",
            error_code="rate_limit_exceeded",
            status_code=429,
            details={"retry_after_seconds": retry_after_seconds, **(details or {})},
        )
        self.retry_after_seconds = retry_after_seconds
        self.headers = headers or {"Retry-After": str(retry_after_seconds)}


class AuthenticationError(DocsAgentException):
    """Raised when a caller presents no valid admin key or bearer token."""

    def __init__(self, message: str = "Authentication required", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="unauthorized",
            status_code=401,
            details=details,
        )
