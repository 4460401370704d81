"""
Custom Exceptions
Application-specific exception classes
"""

from datetime import datetime
from typing import Any, Dict, Optional


class AppException(Exception):
    """Base application exception"""

    def __init__(
        self,
        message: str,
        code: str = "app_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(self.message)


class ValidationException(AppException):
    """Validation error exception"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="validation_error",
            status_code=400,
            details=details,
        )


class AuthenticationException(AppException):
    """Authentication error exception"""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="authentication_error",
            status_code=401,
            details=details,
        )


class AuthorizationException(AppException):
    """Authorization error exception"""

    def __init__(
        self,
        message: str = "Permission denied",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="authorization_error",
            status_code=403,
            details=details,
        )


class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource: str = "Resource",
        code: str = "not_found",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=f"{resource} not found",
            code=code,
            status_code=404,
            details=details,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="conflict",
            status_code=409,
            details=details,
        )


class RateLimitException(AppException):
    """Rate limit exceeded exception"""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(
            message=message,
            code="rate_limit_exceeded",
            status_code=429,
            details=details,
        )


class StoreException(AppException):
    """Document store unavailable or write failed"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="store_error",
            status_code=500,
            details=details,
        )


# ============================================
# Sharing permission rejections
# ============================================

class PermissionNotFoundException(NotFoundException):
    """Unknown permission token"""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            resource="Permission",
            code="permission_not_found",
            details=details,
        )


class ChartNotFoundException(NotFoundException):
    """Owner referenced by a permission has no chart"""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            resource="Chart",
            code="chart_not_found",
            details=details,
        )


class PermissionStateException(AppException):
    """Permission exists but no longer grants access"""

    def __init__(
        self,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=403,
            details=details,
        )


class PermissionExpiredException(PermissionStateException):
    """Permission lifetime has elapsed"""

    def __init__(
        self,
        message: str = "Permission has expired",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="permission_expired", details=details)


class UsageExceededException(PermissionStateException):
    """Permission view limit has been reached"""

    def __init__(
        self,
        message: str = "All views for this permission have been used",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="usage_exceeded", details=details)


class PermissionRevokedException(PermissionStateException):
    """Permission was revoked or is in an unknown state"""

    def __init__(
        self,
        message: str = "Permission has been revoked",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="permission_revoked", details=details)
