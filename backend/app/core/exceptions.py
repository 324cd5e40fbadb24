"""
Custom Exceptions for the ENCG Portal
=====================================

Use these instead of generic Exception so the API layer can map
each failure to the right status code and message.

Usage:
    from app.core.exceptions import CourseModuleNotFoundError, ValidationError

    if name in existing:
        raise ValidationError("Module already exists", field="name")

    if not subtree:
        raise CourseModuleNotFoundError(path)
"""

from typing import Optional, Any, Dict


class PortalException(Exception):
    """Base exception for all portal errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Validation Errors
# ============================================

class ValidationError(PortalException):
    """Input failed validation; raised before any write happens"""

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field} if field else {}
        )
        self.field = field


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(PortalException):
    """Login or token check failed"""

    status_code = 401

    def __init__(self, message: str = "Invalid credentials or inactive account"):
        super().__init__(message, code="AUTH_FAILED")


class InvalidTokenError(AuthenticationError):
    """Role token is missing, malformed or expired"""

    def __init__(self, message: str = "Invalid or expired session token"):
        super().__init__(message)
        self.code = "INVALID_TOKEN"


class BotCheckError(AuthenticationError):
    """Bot-check token missing, expired or rejected by the provider"""

    status_code = 400

    def __init__(self, message: str = "Bot verification failed", error_codes: Optional[list] = None):
        super().__init__(message)
        self.code = "BOT_CHECK_FAILED"
        if error_codes:
            self.details = {"error_codes": error_codes}


class AuthorizationError(PortalException):
    """Caller does not hold the required role"""

    status_code = 403

    def __init__(self, message: str = "Admin role required"):
        super().__init__(message, code="NOT_AUTHORIZED")


# ============================================
# Resource Errors (404-type)
# ============================================

class NotFoundError(PortalException):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__("User", user_id)


class CourseModuleNotFoundError(NotFoundError):
    def __init__(self, module: str):
        super().__init__("Module", module)


class ResourceNotFoundError(NotFoundError):
    def __init__(self, key: str):
        super().__init__("Resource", key)


class SeminarNotFoundError(NotFoundError):
    def __init__(self, seminar_id: str):
        super().__init__("Seminar", seminar_id)


# ============================================
# Storage Errors
# ============================================

class StorageError(PortalException):
    """Tree store or object storage operation failed"""

    status_code = 502

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(
            message,
            code="STORAGE_ERROR",
            details={"operation": operation}
        )


class StorageObjectNotFoundError(NotFoundError):
    """Stored object missing for a key"""

    def __init__(self, path: str):
        super().__init__("Object", path)
