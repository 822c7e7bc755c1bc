"""
Error taxonomy for the Threads auto-reply service.

Every error carries the HTTP status it maps to when it reaches a
synchronous (dashboard) caller. The webhook path never surfaces these
to the platform; they end up in the audit log instead.
"""

from typing import Any, Optional


class ThreadsAutoReplyError(Exception):
    """Base class for all service errors."""

    status_code = 500

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


class AuthenticationError(ThreadsAutoReplyError):
    """Missing/invalid bearer token or webhook signature."""
    status_code = 401


class VerificationError(ThreadsAutoReplyError):
    """Webhook handshake verify token did not match any configured secret."""
    status_code = 403


class ValidationError(ThreadsAutoReplyError):
    """Malformed request body, unknown action, or store constraint violation."""
    status_code = 400


class NotFoundError(ThreadsAutoReplyError):
    """Referenced row does not exist or is not owned by the caller."""
    status_code = 404


class ConfigurationError(ThreadsAutoReplyError):
    """A credential needed to serve the request is not configured."""
    status_code = 500


class ExternalServiceError(ThreadsAutoReplyError):
    """Platform API, AI provider, or store failure (including timeouts)."""
    status_code = 500


class AIGenerationError(ExternalServiceError):
    """
    AI provider returned a non-success status or no generated text.

    Attributes:
        provider_status: HTTP status from the provider, if a response arrived.
        raw_body: Provider response body, kept for diagnostics.
    """

    def __init__(
        self,
        message: str,
        provider_status: Optional[int] = None,
        raw_body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.provider_status = provider_status
        self.raw_body = raw_body
