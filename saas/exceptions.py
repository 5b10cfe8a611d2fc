"""
Custom Exception Classes for the tenancy core

Every failure raised by the tenant router, the permission store and the
token service is a SaaSError subclass, so HTTP handlers can render a typed,
actionable error instead of a generic failure.
"""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in error envelopes."""

    # Authentication
    AUTH_FAILED = "AUTH_FAILED"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_PERMISSION_DENIED = "AUTH_PERMISSION_DENIED"

    # Tokens
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_BAD_SIGNATURE = "TOKEN_BAD_SIGNATURE"
    TOKEN_WRONG_ISSUER = "TOKEN_WRONG_ISSUER"
    TOKEN_MALFORMED = "TOKEN_MALFORMED"
    TOKEN_INVALID_REFRESH = "TOKEN_INVALID_REFRESH"
    TOKEN_SIGNING_FAILED = "TOKEN_SIGNING_FAILED"

    # Resources
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_PROTECTED = "RESOURCE_PROTECTED"
    RESOURCE_ALREADY_GRANTED = "RESOURCE_ALREADY_GRANTED"
    VALIDATION_DUPLICATE_RESOURCE = "VALIDATION_DUPLICATE_RESOURCE"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"

    # Tenancy & storage
    TENANT_SCHEMA_MISSING = "TENANT_SCHEMA_MISSING"
    TENANT_PROVISION_FAILED = "TENANT_PROVISION_FAILED"
    DATABASE_CONNECTION_FAILED = "DATABASE_CONNECTION_FAILED"
    DATABASE_ERROR = "DATABASE_ERROR"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class SaaSError(Exception):
    """Base exception class for all tenancy-core exceptions"""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if error_code is not None:
            self.error_code = error_code
        super().__init__(self.message)


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================


class AuthenticationError(SaaSError):
    """Raised when authentication fails"""

    error_code = ErrorCode.AUTH_FAILED

    def __init__(self, message: str = "Authentication failed", details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED, details=details or {})


class InvalidCredentialsError(AuthenticationError):
    """Raised when login credentials are invalid"""

    error_code = ErrorCode.AUTH_INVALID_CREDENTIALS

    def __init__(self, message: str = "Invalid username or password"):
        super().__init__(message=message)


class AuthorizationError(SaaSError):
    """Raised when user lacks permission for an action"""

    error_code = ErrorCode.AUTH_PERMISSION_DENIED

    def __init__(
        self, message: str = "You do not have permission to perform this action", required_permission: str | None = None
    ):
        details = {"required_permission": required_permission} if required_permission else {}
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN, details=details)


# ============================================================================
# Token Exceptions
# ============================================================================


class InvalidTokenError(AuthenticationError):
    """Base class for token validation failures"""

    error_code = ErrorCode.TOKEN_MALFORMED

    def __init__(self, message: str = "Invalid or malformed token"):
        super().__init__(message=message)


class TokenExpiredError(InvalidTokenError):
    """Raised when a token is outside its validity window"""

    error_code = ErrorCode.TOKEN_EXPIRED

    def __init__(self, message: str = "Token has expired"):
        super().__init__(message=message)


class BadSignatureError(InvalidTokenError):
    """Raised when a token signature or signing algorithm does not verify"""

    error_code = ErrorCode.TOKEN_BAD_SIGNATURE

    def __init__(self, message: str = "Token signature verification failed"):
        super().__init__(message=message)


class WrongIssuerError(InvalidTokenError):
    """Raised when a correctly signed token was minted for another issuer"""

    error_code = ErrorCode.TOKEN_WRONG_ISSUER

    def __init__(self, expected: str, actual: Any = None):
        super().__init__(message=f"Token issuer does not match '{expected}'")
        self.details = {"expected_issuer": expected, "issuer": actual}


class MalformedTokenError(InvalidTokenError):
    """Raised when a token cannot be decoded or lacks required claims"""

    error_code = ErrorCode.TOKEN_MALFORMED


class InvalidRefreshTokenError(AuthenticationError):
    """Raised when a refresh token cannot be exchanged for a new access token"""

    error_code = ErrorCode.TOKEN_INVALID_REFRESH

    def __init__(self, message: str = "Invalid refresh token", reason: str | None = None):
        super().__init__(message=message, details={"reason": reason} if reason else {})


class SigningFailureError(SaaSError):
    """Raised when a token cannot be signed"""

    error_code = ErrorCode.TOKEN_SIGNING_FAILED

    def __init__(self, message: str = "Failed to sign token"):
        super().__init__(message=message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(SaaSError):
    """Base class for resource not found errors"""

    error_code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource_type: str, resource_id: Any | None = None):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message = f"{resource_type} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class UserNotFoundError(ResourceNotFoundError):
    """Raised when a user is not found"""

    def __init__(self, user_id: Any | None = None):
        super().__init__(resource_type="User", resource_id=user_id)


class GroupNotFoundError(ResourceNotFoundError):
    """Raised when a group is not found"""

    def __init__(self, group_id: Any | None = None):
        super().__init__(resource_type="Group", resource_id=group_id)


class PermissionNotFoundError(ResourceNotFoundError):
    """Raised when a permission is not found"""

    def __init__(self, permission_id: Any | None = None):
        super().__init__(resource_type="Permission", resource_id=permission_id)


class TenantNotFoundError(ResourceNotFoundError):
    """Raised when a tenant is not known"""

    def __init__(self, tenant: Any | None = None):
        super().__init__(resource_type="Tenant", resource_id=tenant)


class SchemaMissingError(TenantNotFoundError):
    """Raised when a tenant's schema has not been provisioned yet"""

    error_code = ErrorCode.TENANT_SCHEMA_MISSING

    def __init__(self, tenant: str):
        super().__init__(tenant=tenant)
        self.message = f"Schema for tenant '{tenant}' does not exist"
        self.args = (self.message,)


class ProtectedResourceError(SaaSError):
    """Raised when an operation would delete or strip a system permission"""

    error_code = ErrorCode.RESOURCE_PROTECTED

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN, details=details or {})


class DuplicateResourceError(SaaSError):
    """Raised when attempting to create a duplicate resource"""

    error_code = ErrorCode.VALIDATION_DUPLICATE_RESOURCE

    def __init__(self, resource_type: str, field: str, value: Any):
        super().__init__(
            message=f"{resource_type} with {field} '{value}' already exists",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource_type": resource_type, "field": field, "value": value},
        )


class AlreadyGrantedError(SaaSError):
    """Raised when a group already holds the permission being granted"""

    error_code = ErrorCode.RESOURCE_ALREADY_GRANTED

    def __init__(self, group_id: int, permission_id: int):
        super().__init__(
            message="Group already has this permission",
            status_code=status.HTTP_409_CONFLICT,
            details={"group_id": group_id, "permission_id": permission_id},
        )


# ============================================================================
# Validation Exceptions
# ============================================================================


class InvalidArgumentError(SaaSError):
    """Raised when an identifier or argument is malformed"""

    error_code = ErrorCode.INVALID_ARGUMENT

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST, details=error_details)


# ============================================================================
# Database & Tenancy Exceptions
# ============================================================================


class DatabaseError(SaaSError):
    """Raised when a database operation fails"""

    error_code = ErrorCode.DATABASE_ERROR

    def __init__(self, message: str = "A database error occurred", operation: str | None = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message=message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, details=details)


class ConnectionFailureError(DatabaseError):
    """Raised when a pooled connection cannot be acquired or the network fails"""

    error_code = ErrorCode.DATABASE_CONNECTION_FAILED

    def __init__(self, message: str = "Database connection failed", operation: str | None = None):
        super().__init__(message=message, operation=operation)
        self.status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ProvisionFailureError(DatabaseError):
    """Raised when creating a tenant schema or its tables fails"""

    error_code = ErrorCode.TENANT_PROVISION_FAILED

    def __init__(self, tenant: str, step: str, reason: str | None = None):
        message = f"Failed to provision tenant '{tenant}' during {step}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message=message, operation=step)
        self.details["tenant"] = tenant
