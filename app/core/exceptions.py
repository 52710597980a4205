"""
Custom Exception Hierarchy

Structured exceptions shared by the API layer, the conversation engine and
the outbound clients. ``AppException.to_dict`` is the JSON error envelope.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    RATE_LIMITED = "ERR_1006"

    # Session errors (2xxx)
    SESSION_NOT_FOUND = "ERR_2001"

    # Partner backend errors (3xxx)
    PARTNER_API_ERROR = "ERR_3001"
    PARTNER_AUTH_FAILED = "ERR_3002"

    # Payment errors (4xxx)
    PAYMENT_BACKEND_ERROR = "ERR_4001"

    # External service errors (5xxx)
    MESSAGING_GATEWAY_ERROR = "ERR_5002"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"
    EXTERNAL_SERVICE_TIMEOUT = "ERR_5004"

    # State machine errors (6xxx)
    MISSING_SESSION_DATA = "ERR_6002"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.service_name = service_name
        self.details["service"] = service_name

    @property
    def upstream_status(self) -> int | None:
        """HTTP status returned by the remote service, when there was one"""
        return self.details.get("status_code")

    @classmethod
    def _response_details(
        cls,
        operation: str,
        response: Any,
        max_response_chars: int,
    ) -> dict[str, Any]:
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return {
            "operation": operation,
            "status_code": status_code,
            "response_text": response_text[:max_response_chars],
        }


class MessagingGatewayError(ExternalServiceException):
    """Raised when the Z-API gateway rejects or fails a request"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="zapi",
            message=f"Z-API error: {message}",
            error_code=ErrorCode.MESSAGING_GATEWAY_ERROR,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "MessagingGatewayError":
        """
        Build the error from an HTTP response.

        Args:
            operation: endpoint name (send-text, send-option-list, ...)
            response: httpx.Response or anything with status_code/text
            message: custom message; built from the status when omitted
            max_response_chars: body is truncated to keep log lines small
        """
        details = cls._response_details(operation, response, max_response_chars)
        return cls(
            message=message or f"{operation} returned status {details['status_code']}",
            details=details,
        )


class PartnerApiError(ExternalServiceException):
    """Raised when the partner backend returns an error"""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode = ErrorCode.PARTNER_API_ERROR,
    ):
        super().__init__(
            service_name="partner_api",
            message=f"Partner API error: {message}",
            error_code=error_code,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "PartnerApiError":
        details = cls._response_details(operation, response, max_response_chars)
        status = details["status_code"]
        if status in (401, 403):
            return PartnerAuthError(
                message or f"{operation} rejected credentials ({status})",
                details=details,
            )
        return cls(
            message=message or f"{operation} returned status {status}",
            details=details,
        )


class PartnerAuthError(PartnerApiError):
    """401/403 from the partner backend; the cached token is dropped"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            details=details,
            error_code=ErrorCode.PARTNER_AUTH_FAILED,
        )


class PaymentBackendError(ExternalServiceException):
    """Raised when invoice or installment generation fails"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="payment_backend",
            message=f"Payment backend error: {message}",
            error_code=ErrorCode.PAYMENT_BACKEND_ERROR,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "PaymentBackendError":
        details = cls._response_details(operation, response, max_response_chars)
        return cls(
            message=message or f"{operation} returned status {details['status_code']}",
            details=details,
        )


class ServiceTimeoutError(ExternalServiceException):
    """Raised when external service times out"""

    def __init__(self, service_name: str, timeout_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} request timed out after {timeout_seconds}s",
            error_code=ErrorCode.EXTERNAL_SERVICE_TIMEOUT,
            details={"timeout_seconds": timeout_seconds}
        )


class CircuitBreakerOpenError(ExternalServiceException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            error_code=ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": retry_after_seconds}
        )


class StateMachineException(AppException):
    """Base exception for state machine errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )


class MissingSessionDataError(StateMachineException):
    """A step needs data an earlier step should have stored (cohort, customer id...)"""

    def __init__(self, step: str, field: str):
        super().__init__(
            message=f"Step '{step}' requires '{field}' in the session",
            error_code=ErrorCode.MISSING_SESSION_DATA,
            details={"step": step, "field": field}
        )
