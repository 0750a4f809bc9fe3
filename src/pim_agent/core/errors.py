"""
Error taxonomy for UnoPim API access.

Every transport or HTTP failure is mapped onto a closed set of error codes,
each with a fixed retry-eligibility flag. The request executor retries on the
flag; the tool layer turns the error into a structured payload.
"""

from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorCode(str, Enum):
    """All error classifications surfaced by the API access layer."""

    AUTH_FAILED = "AUTH_FAILED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DUPLICATE_CODE = "DUPLICATE_CODE"
    DEPENDENCY_MISSING = "DEPENDENCY_MISSING"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


# Fixed per code; never derived from the individual response
RETRYABLE: Dict[ErrorCode, bool] = {
    ErrorCode.AUTH_FAILED: True,
    ErrorCode.TOKEN_EXPIRED: True,
    ErrorCode.NOT_FOUND: False,
    ErrorCode.VALIDATION_ERROR: False,
    ErrorCode.DUPLICATE_CODE: False,
    ErrorCode.DEPENDENCY_MISSING: False,
    ErrorCode.RATE_LIMITED: True,
    ErrorCode.SERVER_ERROR: True,
    ErrorCode.NETWORK_ERROR: True,
}

STATUS_CODES: Dict[int, ErrorCode] = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.TOKEN_EXPIRED,
    403: ErrorCode.AUTH_FAILED,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.DUPLICATE_CODE,
    422: ErrorCode.VALIDATION_ERROR,
    424: ErrorCode.DEPENDENCY_MISSING,
    429: ErrorCode.RATE_LIMITED,
}

STATUS_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.AUTH_FAILED: "Authentication failed",
    ErrorCode.TOKEN_EXPIRED: "Access token was rejected",
    ErrorCode.NOT_FOUND: "Resource not found",
    ErrorCode.VALIDATION_ERROR: "Validation failed",
    ErrorCode.DUPLICATE_CODE: "Resource with this code already exists",
    ErrorCode.DEPENDENCY_MISSING: "A referenced resource does not exist",
    ErrorCode.RATE_LIMITED: "Rate limit exceeded",
}


def classify_status(status_code: int) -> ErrorCode:
    """
    Map an HTTP status code onto the error taxonomy.

    Unlisted 4xx statuses are treated as request validation failures,
    anything 5xx as a server error.
    """
    if status_code >= 500:
        return ErrorCode.SERVER_ERROR
    if status_code in STATUS_CODES:
        return STATUS_CODES[status_code]
    return ErrorCode.VALIDATION_ERROR


class PimApiError(Exception):
    """Exception raised for classified UnoPim API failures."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Any = None,
        status_code: Optional[int] = None,
    ):
        self.code = ErrorCode(code)
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def retry_possible(self) -> bool:
        return RETRYABLE[self.code]

    def to_dict(self) -> Dict[str, Any]:
        """Error body for tool responses."""
        payload: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "retry_possible": self.retry_possible,
        }
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def __repr__(self) -> str:
        return f"PimApiError({self.code.value}, {self.message!r}, status_code={self.status_code})"

    @classmethod
    def from_response(cls, response: httpx.Response) -> "PimApiError":
        """
        Create an error from a non-2xx HTTP response.

        Args:
            response: The failed response

        Returns:
            Classified PimApiError with the response body as details
        """
        try:
            details: Any = response.json()
        except ValueError:
            details = response.text or None

        code = classify_status(response.status_code)
        if code == ErrorCode.SERVER_ERROR:
            message = f"Server error: {response.status_code}"
        elif response.status_code in STATUS_CODES:
            message = STATUS_MESSAGES[code]
        else:
            message = f"HTTP error: {response.status_code} {response.reason_phrase}".strip()

        # Prefer the backend's own message when it sends one
        if isinstance(details, dict) and isinstance(details.get("message"), str) and details["message"]:
            message = f"{message}: {details['message']}"

        return cls(code, message, details=details, status_code=response.status_code)

    @classmethod
    def network_error(cls, error: Exception) -> "PimApiError":
        """Create an error for a timeout or connection failure."""
        if isinstance(error, httpx.TimeoutException):
            message = f"Request timeout: {error}"
        else:
            message = f"Network error: {error}"
        return cls(ErrorCode.NETWORK_ERROR, message, details=type(error).__name__)


def error_payload(error: PimApiError) -> Dict[str, Any]:
    """Full failure envelope returned to the agent for a tool call."""
    return {"success": False, "error": error.to_dict()}
