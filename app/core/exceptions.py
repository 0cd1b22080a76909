"""
Custom application exceptions
"""

from typing import Optional, Dict, Any


class VenuelyException(Exception):
    """Base exception for Venuely application"""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.retryable = retryable
        super().__init__(self.message)


class AuthenticationError(VenuelyException):
    """Authentication related errors"""

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code="AUTH_ERROR",
            status_code=401,
            details=details
        )


class AuthorizationError(VenuelyException):
    """Authorization related errors"""

    def __init__(self, message: str = "Not authorized", details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code="AUTH_FORBIDDEN",
            status_code=403,
            details=details
        )


class NotFoundError(VenuelyException):
    """Resource not found errors"""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id {identifier} not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404
        )


class ValidationError(VenuelyException):
    """Validation errors"""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details=details
        )


class ConflictError(VenuelyException):
    """Resource conflict errors"""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code="CONFLICT",
            status_code=409,
            details=details
        )


class InvalidStateError(VenuelyException):
    """Operation not permitted in the entity's current lifecycle state"""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code="INVALID_STATE",
            status_code=409,
            details=details
        )


class PaymentError(VenuelyException):
    """Payment related errors"""

    def __init__(self, message: str = "Payment processing failed", details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code="PAYMENT_FAILED",
            status_code=402,
            details=details
        )


class GatewayError(VenuelyException):
    """Payment gateway rejected the call or returned garbage"""

    def __init__(self, gateway: str, message: str, details: Optional[Dict] = None):
        details = dict(details or {})
        details["gateway"] = gateway
        super().__init__(
            message=message,
            code="GATEWAY_ERROR",
            status_code=502,
            details=details
        )


class GatewayTimeoutError(VenuelyException):
    """Payment gateway did not answer in time; the caller may retry"""

    def __init__(self, gateway: str, message: str, details: Optional[Dict] = None):
        details = dict(details or {})
        details["gateway"] = gateway
        super().__init__(
            message=message,
            code="GATEWAY_TIMEOUT",
            status_code=504,
            details=details,
            retryable=True
        )


class ConcurrencyError(VenuelyException):
    """Concurrency conflict error"""

    def __init__(self, message: str = "Resource was modified by another process"):
        super().__init__(
            message=message,
            code="CONCURRENCY_ERROR",
            status_code=409,
            retryable=True
        )


class LockAcquisitionError(VenuelyException):
    """Failed to acquire lock error"""

    def __init__(self, resource: str):
        super().__init__(
            message=f"Failed to acquire lock for resource: {resource}",
            code="LOCK_FAILED",
            status_code=409,
            details={"resource": resource},
            retryable=True
        )


class ExternalServiceError(VenuelyException):
    """External service error"""

    def __init__(self, service: str, message: str = None):
        super().__init__(
            message=message or f"External service {service} is unavailable",
            code="EXTERNAL_SERVICE_ERROR",
            status_code=503,
            details={"service": service},
            retryable=True
        )
