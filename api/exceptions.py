"""Custom exceptions and error handling."""

from typing import Any

from fastapi import status


class LiftError(Exception):
    """Base exception for the LIFT audit application."""

    def __init__(
        self,
        message: str,
        code: str = "error",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class AnalysisError(LiftError):
    """Generator output could not be turned into an audit document."""

    def __init__(self, message: str = "invalid response", reason: str | None = None):
        super().__init__(
            message=message,
            code="analysis_error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"reason": reason} if reason else None,
        )


class NotFoundError(LiftError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str | None = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            message=message,
            code="not_found",
            status_code=status.HTTP_404_NOT_FOUND,
        )


class ValidationError(LiftError):
    """Validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            code="validation_error",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class ConflictError(LiftError):
    """Operation conflicts with the current state."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="conflict",
            status_code=status.HTTP_409_CONFLICT,
        )


class RateLimitError(LiftError):
    """Rate limit exceeded."""

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(
            message=message,
            code="rate_limit_exceeded",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        )


class ExternalServiceError(LiftError):
    """External service error."""

    def __init__(self, service: str, message: str):
        super().__init__(
            message=f"{service}: {message}",
            code="external_service_error",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"service": service},
        )


class ConfigurationError(LiftError):
    """Required configuration is missing."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="configuration_error",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class BadRequestError(LiftError):
    """Request payload is unusable."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="bad_request",
            status_code=status.HTTP_400_BAD_REQUEST,
        )
