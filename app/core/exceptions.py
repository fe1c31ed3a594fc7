from typing import Dict, Any, List, Optional
import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.request_context import get_request_id

logger = logging.getLogger(__name__)


class BaseCustomException(Exception):
    """Base class for custom exceptions"""
    
    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(BaseCustomException):
    """Exception for malformed or missing input"""
    
    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.errors = errors or []
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            error_code=error_code or "VALIDATION_ERROR"
        )


class AuthenticationError(BaseCustomException):
    """Exception for authentication errors"""
    
    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
            error_code=error_code or "AUTHENTICATION_ERROR"
        )


class AuthorizationError(BaseCustomException):
    """Exception for authorization errors"""
    
    def __init__(
        self,
        message: str = "Access denied",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            error_code=error_code or "AUTHORIZATION_ERROR"
        )


class NotFoundError(BaseCustomException):
    """Exception for resource not found errors"""
    
    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
            error_code=error_code or "NOT_FOUND_ERROR"
        )


class ConflictError(BaseCustomException):
    """Exception for state guard violations"""
    
    def __init__(
        self,
        message: str = "Resource conflict",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            error_code=error_code or "CONFLICT_ERROR"
        )


class InvalidTransitionError(ConflictError):
    """Raised when a booking status change is not in the transition table"""

    def __init__(
        self,
        message: str = "Invalid status transition",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            details=details,
            error_code=error_code or "INVALID_TRANSITION"
        )


class AlreadyProcessedError(ConflictError):
    """Raised when a payment has already been completed"""

    def __init__(
        self,
        message: str = "Payment has already been processed for this booking",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            details=details,
            error_code=error_code or "ALREADY_PROCESSED"
        )


class ExternalServiceError(BaseCustomException):
    """Exception for external service errors"""
    
    def __init__(
        self,
        message: str = "External service error",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
            error_code=error_code or "EXTERNAL_SERVICE_ERROR"
        )


def create_error_response(
    exception: BaseCustomException,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """Create the standard error envelope"""
    response: Dict[str, Any] = {
        "success": False,
        "message": exception.message,
        "errorCode": exception.error_code,
    }

    if isinstance(exception, ValidationError) and exception.errors:
        response["errors"] = exception.errors

    if exception.details and not settings.is_production:
        response["details"] = exception.details

    if request_id:
        response["requestId"] = request_id

    return response


def format_validation_errors(errors: List[Dict[str, Any]]) -> List[str]:
    """Flatten pydantic error dicts into ``field: message`` strings"""
    formatted = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location)
        message = error.get("msg", "Invalid value")
        formatted.append(f"{field}: {message}" if field else message)
    return formatted


def handle_external_service_error(
    error: Exception,
    service_name: str,
    operation: str = "request"
) -> ExternalServiceError:
    """Handle external service errors"""
    logger.error(f"External service error for {service_name}: {error}")
    
    return ExternalServiceError(
        message=f"External service {service_name} unavailable",
        details={
            "service_name": service_name,
            "operation": operation,
            "original_error": str(error)
        },
        error_code="EXTERNAL_SERVICE_ERROR"
    )


async def custom_exception_handler(request: Request, exc: BaseCustomException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc, get_request_id())
    )


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError(
        message="Validation error",
        errors=format_validation_errors(exc.errors())
    )
    return JSONResponse(
        status_code=error.status_code,
        content=create_error_response(error, get_request_id())
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error during {request.method} {request.url.path}: {exc}")
    content: Dict[str, Any] = {
        "success": False,
        "message": "Internal server error",
        "errorCode": "INTERNAL_ERROR",
    }
    if not settings.is_production:
        content["message"] = str(exc) or content["message"]
        content["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseCustomException, custom_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
