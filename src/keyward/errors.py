"""Error taxonomy for credential lifecycle operations.

Every failure surfaced by the lifecycle manager or the sweeper is a
``CredentialError``. Each subclass fixes its category, HTTP status and
recovery strategy so the routing layer can turn it into a response with
``to_http_response`` without knowing the individual error types.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """Error categories for classification."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    AUTHORIZATION = "authorization"
    CONFLICT = "conflict"
    CONFIGURATION = "configuration"
    INTERNAL_ERROR = "internal_error"


class RecoveryStrategy(str, Enum):
    """What a caller can do about an error."""
    NONE = "none"
    RETRY = "retry"
    FAIL_FAST = "fail_fast"


class CredentialError(Exception):
    """Base exception class for credential lifecycle errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL_ERROR,
        recovery_strategy: RecoveryStrategy = RecoveryStrategy.NONE,
        http_status_code: int = 500,
        user_message: Optional[str] = None,
        credential_id: Optional[str] = None,
        operation: Optional[str] = None,
        suggested_actions: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(message)
        self.error_id = str(uuid.uuid4())
        self.message = message
        self.category = category
        self.recovery_strategy = recovery_strategy
        self.http_status_code = http_status_code
        self.user_message = user_message or self._generate_user_message()
        self.credential_id = credential_id
        self.operation = operation
        self.suggested_actions = suggested_actions or []
        self.metadata = kwargs
        self.timestamp = datetime.now(timezone.utc)

    def _generate_user_message(self) -> str:
        """Generate user-friendly message."""
        if self.category == ErrorCategory.VALIDATION:
            return self.message
        elif self.category == ErrorCategory.NOT_FOUND:
            return "API key not found."
        elif self.category == ErrorCategory.AUTHORIZATION:
            return "You do not have permission to perform this operation on the API key."
        elif self.category == ErrorCategory.CONFLICT:
            return "The API key was changed concurrently. Please retry."
        else:
            return "An error occurred while processing your request."

    @property
    def retryable(self) -> bool:
        return self.recovery_strategy == RecoveryStrategy.RETRY

    def get_error_details(self) -> Dict[str, Any]:
        """Get detailed, serializable error information."""
        return {
            "error_id": self.error_id,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "recovery_strategy": self.recovery_strategy.value,
            "credential_id": self.credential_id,
            "operation": self.operation,
            "suggested_actions": self.suggested_actions,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_http_response(self, include_debug_info: bool = False) -> JSONResponse:
        """Convert to HTTP response."""
        response_data = {
            "error": True,
            "error_id": self.error_id,
            "message": self.user_message,
            "category": self.category.value,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
        }

        if include_debug_info:
            response_data.update({
                "internal_message": self.message,
                "suggested_actions": self.suggested_actions,
                "credential_id": self.credential_id,
                "operation": self.operation,
            })

        return JSONResponse(
            status_code=self.http_status_code,
            content=response_data
        )


class ValidationError(CredentialError):
    """Rejected input: bad name or expiration, key limit, rotating a revoked key."""

    def __init__(self, message: str = "Validation failed", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            http_status_code=400,
            recovery_strategy=RecoveryStrategy.FAIL_FAST,
            suggested_actions=["Check input format", "Validate required fields"],
            **kwargs
        )


class NotFoundError(CredentialError):
    """Unknown credential id."""

    def __init__(self, message: str = "API key not found", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.NOT_FOUND,
            http_status_code=404,
            recovery_strategy=RecoveryStrategy.FAIL_FAST,
            **kwargs
        )


class AuthorizationError(CredentialError):
    """The actor lacks rights for the requested operation."""

    def __init__(self, message: str = "Access denied", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.AUTHORIZATION,
            http_status_code=403,
            recovery_strategy=RecoveryStrategy.FAIL_FAST,
            suggested_actions=["Check permissions", "Contact administrator"],
            **kwargs
        )


class ConflictError(CredentialError):
    """A precondition no longer holds, e.g. a double revoke."""

    def __init__(self, message: str = "Conflicting change", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.CONFLICT,
            http_status_code=409,
            recovery_strategy=RecoveryStrategy.RETRY,
            suggested_actions=["Reload the API key", "Retry the request"],
            **kwargs
        )


class ConfigurationError(CredentialError):
    """Invalid configuration values."""

    def __init__(self, message: str = "Configuration error", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            http_status_code=500,
            suggested_actions=["Check configuration", "Verify environment variables"],
            **kwargs
        )


class InternalError(CredentialError):
    """Persistence or collaborator failure."""

    def __init__(self, message: str = "Internal error", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.INTERNAL_ERROR,
            http_status_code=500,
            recovery_strategy=RecoveryStrategy.RETRY,
            **kwargs
        )


_LOG_LEVELS = {
    ErrorCategory.CONFLICT: logging.WARNING,
    ErrorCategory.CONFIGURATION: logging.ERROR,
    ErrorCategory.INTERNAL_ERROR: logging.ERROR,
}


def log_credential_error(
    error: Exception,
    operation: str,
    credential_id: Optional[str] = None,
) -> None:
    """Log an error with the operation and credential it concerns.

    Only identifiers are logged; callers must never pass secret material
    in the exception message.
    """
    if isinstance(error, CredentialError):
        level = _LOG_LEVELS.get(error.category, logging.INFO)
        details = error.get_error_details()
    else:
        level = logging.ERROR
        details = {"error_type": error.__class__.__name__, "message": str(error)}

    logger.log(
        level,
        f"API key operation '{operation}' failed for credential {credential_id}: {details['message']}",
        extra={"error_details": details, "operation": operation, "credential_id": credential_id},
    )
