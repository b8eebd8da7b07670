"""
Error Handling Module for ShipLedger

This module provides centralized error handling with:
- Custom exception hierarchy for import, ledger and settlement failures
- Standardized error responses
- Error logging
- Translation of store-level failures into application errors
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
    DBAPIError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("shipledger.errors")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    HEADER_NOT_FOUND = "HEADER_NOT_FOUND"
    ROW_REJECTED = "ROW_REJECTED"

    # Authentication/Authorization Errors (401/403)
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    SHIPMENT_NOT_FOUND = "SHIPMENT_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # Settlement Errors (409)
    SETTLEMENT_FAILED = "SETTLEMENT_FAILED"
    SETTLEMENT_CONFLICT = "SETTLEMENT_CONFLICT"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class InvalidAmountException(ValidationException):
    """Invalid monetary amount"""

    def __init__(self, amount: Any, field: str = "amount", message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid amount: {amount}. Amount must be a positive number.",
            field=field,
            code=ErrorCode.INVALID_AMOUNT,
            details={"provided_amount": str(amount)},
        )


class HeaderNotFoundError(ValidationException):
    """No header row could be located for the required sheet columns"""

    def __init__(self, missing_fields: List[str]):
        super().__init__(
            message=f"Could not locate header columns for: {', '.join(missing_fields)}",
            code=ErrorCode.HEADER_NOT_FOUND,
            details={"missing_fields": missing_fields},
        )
        self.missing_fields = missing_fields


class RowValidationError(ValidationException):
    """
    A single sheet row could not be used.

    Raised per row by the normalizers and collected into a rejection
    report; it never aborts an import.
    """

    def __init__(self, row_number: int, reason: str):
        super().__init__(
            message=f"Row {row_number}: {reason}",
            code=ErrorCode.ROW_REJECTED,
            details={"row_number": row_number, "reason": reason},
        )
        self.row_number = row_number
        self.reason = reason


# ============================================================================
# Authorization Exceptions
# ============================================================================

class AuthorizationException(AppException):
    """Authorization denied exception"""

    def __init__(
        self,
        message: str = "Permission denied",
        required_permission: Optional[str] = None,
        code: ErrorCode = ErrorCode.FORBIDDEN,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if required_permission:
            details["required_permission"] = required_permission
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            original_error=original_error,
        )


class PermissionDeniedError(AuthorizationException):
    """The acting user or the store refused the operation. Never retried."""

    def __init__(
        self,
        message: str = "Permission denied",
        required_permission: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            required_permission=required_permission,
            code=ErrorCode.PERMISSION_DENIED,
            original_error=original_error,
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class EntityNotFoundError(NotFoundException):
    """Courier or company has no resolvable ledger context"""

    def __init__(self, role: str, entity_id: Union[str, UUID]):
        super().__init__(
            resource_type=role.capitalize(),
            resource_id=entity_id,
            code=ErrorCode.ENTITY_NOT_FOUND,
        )
        self.role = role
        self.entity_id = entity_id


class ShipmentNotFoundError(NotFoundException):
    """Shipment not found"""

    def __init__(self, shipment_id: Union[str, UUID]):
        super().__init__(
            resource_type="Shipment",
            resource_id=shipment_id,
            code=ErrorCode.SHIPMENT_NOT_FOUND,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
            original_error=original_error,
        )


# ============================================================================
# Settlement Exceptions
# ============================================================================

class SettlementFailedError(ConflictException):
    """
    The settlement batch was rejected and rolled back.

    No partial state is left behind; the caller may report and retry
    manually. Settlements are never retried automatically.
    """

    def __init__(
        self,
        entity_id: Union[str, UUID],
        role: str,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.SETTLEMENT_FAILED,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        _details = {"entity_id": str(entity_id), "role": role}
        _details.update(details or {})
        super().__init__(
            message=message or f"Settlement for {role} '{entity_id}' failed and was rolled back",
            resource_type="Settlement",
            code=code,
            details=_details,
            original_error=original_error,
        )


class SettlementConflictError(SettlementFailedError):
    """The ledger changed between the settlement read and its write"""

    def __init__(
        self,
        entity_id: Union[str, UUID],
        role: str,
        expected_net_due: Optional[Decimal] = None,
        actual_net_due: Optional[Decimal] = None,
        reason: str = "ledger changed during settlement",
    ):
        details: Dict[str, Any] = {"reason": reason}
        if expected_net_due is not None:
            details["expected_net_due"] = str(expected_net_due)
        if actual_net_due is not None:
            details["actual_net_due"] = str(actual_net_due)
        super().__init__(
            entity_id=entity_id,
            role=role,
            message=f"Settlement for {role} '{entity_id}' aborted: {reason}",
            code=ErrorCode.SETTLEMENT_CONFLICT,
            details=details,
        )


# ============================================================================
# Database Exceptions
# ============================================================================

class DatabaseException(AppException):
    """Database error exception"""

    def __init__(
        self,
        message: str = "A database error occurred",
        code: ErrorCode = ErrorCode.DATABASE_ERROR,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            original_error=original_error,
        )


# SQLSTATE for insufficient_privilege
_PERMISSION_SQLSTATES = {"42501"}


def is_permission_error(exc: BaseException) -> bool:
    """Whether a store exception is an authorization refusal."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _PERMISSION_SQLSTATES:
        return True
    return "permission denied" in str(orig if orig is not None else exc).lower()


def translate_store_error(exc: SQLAlchemyError) -> AppException:
    """Map a store exception onto the application error it represents."""
    if is_permission_error(exc):
        return PermissionDeniedError(
            message="The data store refused the operation",
            original_error=exc,
        )
    if isinstance(exc, IntegrityError):
        return DatabaseException(
            message="Data integrity constraint violated",
            code=ErrorCode.DATA_INTEGRITY_ERROR,
            original_error=exc,
        )
    if isinstance(exc, OperationalError):
        return DatabaseException(
            message="Database operation failed",
            code=ErrorCode.CONNECTION_ERROR,
            original_error=exc,
        )
    return DatabaseException(original_error=exc)


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": _utc_timestamp(),
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, DBAPIError) and is_permission_error(exc):
        error_message = "The data store refused the operation"
        error_code = ErrorCode.PERMISSION_DENIED
        status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
        elif "foreign key" in error_str:
            error_message = "Referenced record does not exist"
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Validation
    "ValidationException",
    "InvalidAmountException",
    "HeaderNotFoundError",
    "RowValidationError",

    # Auth
    "AuthorizationException",
    "PermissionDeniedError",

    # Resource
    "NotFoundException",
    "EntityNotFoundError",
    "ShipmentNotFoundError",
    "ConflictException",

    # Settlement
    "SettlementFailedError",
    "SettlementConflictError",

    # Database
    "DatabaseException",
    "is_permission_error",
    "translate_store_error",

    # Handlers
    "setup_exception_handlers",
    "create_error_response",
]
