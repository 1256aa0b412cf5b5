"""
Error types shared across Team Insights.

- ApplicationError: a failure the API reports with a stable error code
- DataLoadError: a failure talking to GitHub, classified by DataLoadErrorType
- MergeError: an identity merge that cannot be applied
"""

from datetime import datetime
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class AnalysisErrorCode(str, Enum):
    """Stable error codes returned to API clients"""
    INVALID_URL = "INVALID_URL"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    REPO_NOT_FOUND = "REPO_NOT_FOUND"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    CLONE_FAILED = "CLONE_FAILED"
    ANALYSIS_TIMEOUT = "ANALYSIS_TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DataLoadErrorType(str, Enum):
    """Failure classes for GitHub data loading"""
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    AUTH_ERROR = "AUTH_ERROR"
    NOT_FOUND = "NOT_FOUND"
    NETWORK_ERROR = "NETWORK_ERROR"
    ABORTED = "ABORTED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


# HTTP status used when an error code reaches the API boundary
HTTP_STATUS_BY_CODE = {
    AnalysisErrorCode.INVALID_URL: 400,
    AnalysisErrorCode.INVALID_TOKEN: 401,
    AnalysisErrorCode.TOKEN_EXPIRED: 401,
    AnalysisErrorCode.AUTHENTICATION_REQUIRED: 401,
    AnalysisErrorCode.REPO_NOT_FOUND: 404,
    AnalysisErrorCode.INSUFFICIENT_PERMISSIONS: 403,
    AnalysisErrorCode.RATE_LIMIT_EXCEEDED: 429,
    AnalysisErrorCode.CLONE_FAILED: 500,
    AnalysisErrorCode.ANALYSIS_TIMEOUT: 504,
    AnalysisErrorCode.INTERNAL_ERROR: 500,
}


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ApplicationError(Exception):
    """An error carrying an AnalysisErrorCode for the API layer."""

    def __init__(self, code: AnalysisErrorCode, message: str, details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    @classmethod
    def from_message(cls, message: str, details: dict | None = None) -> "ApplicationError":
        return cls(map_error_code(message), message, details)

    @classmethod
    def from_data_load_error(cls, error: "DataLoadError") -> "ApplicationError":
        if error.type == DataLoadErrorType.RATE_LIMIT_EXCEEDED:
            details = {"resetAt": error.reset_at.isoformat()} if error.reset_at else None
            return cls(AnalysisErrorCode.RATE_LIMIT_EXCEEDED, error.message, details)
        if error.type == DataLoadErrorType.NOT_FOUND:
            return cls(AnalysisErrorCode.REPO_NOT_FOUND, error.message)
        if error.type == DataLoadErrorType.TIMEOUT:
            return cls(AnalysisErrorCode.ANALYSIS_TIMEOUT, error.message)
        return cls.from_message(error.message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_CODE[self.code]

    def to_dict(self) -> dict:
        payload = {"code": self.code.value, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class DataLoadError(Exception):
    """A GitHub request failed. Rate-limit errors carry the reset time."""

    def __init__(
        self,
        error_type: DataLoadErrorType,
        message: str,
        reset_at: datetime | None = None,
        retry_after_ms: int | None = None,
    ):
        super().__init__(message)
        self.type = error_type
        self.message = message
        self.reset_at = reset_at
        self.retry_after_ms = retry_after_ms


# =============================================================================
# ERROR CODE MAPPING
# =============================================================================

# Ordered: the first matching rule wins, so auth problems take priority
_ERROR_PATTERNS = [
    (AnalysisErrorCode.AUTHENTICATION_REQUIRED,
     lambda m: "authentication required" in m or "no active session" in m or "no valid authentication" in m),
    (AnalysisErrorCode.TOKEN_EXPIRED,
     lambda m: any(p in m for p in ("token expired", "session expired", "session error", "no access token in session"))),
    (AnalysisErrorCode.INVALID_URL, lambda m: "invalid" in m and "url" in m),
    (AnalysisErrorCode.INVALID_TOKEN, lambda m: "invalid" in m and "token" in m),
    (AnalysisErrorCode.REPO_NOT_FOUND, lambda m: "not found" in m or "404" in m),
    (AnalysisErrorCode.INSUFFICIENT_PERMISSIONS, lambda m: "permission" in m or "403" in m),
    (AnalysisErrorCode.RATE_LIMIT_EXCEEDED, lambda m: "rate limit" in m),
    (AnalysisErrorCode.CLONE_FAILED, lambda m: "clone" in m),
    (AnalysisErrorCode.ANALYSIS_TIMEOUT, lambda m: "timeout" in m or "timed out" in m),
]


def map_error_code(error_message: str) -> AnalysisErrorCode:
    """Classify a free-text error message into an AnalysisErrorCode."""
    normalized = error_message.lower()
    for code, matches in _ERROR_PATTERNS:
        if matches(normalized):
            return code
    return AnalysisErrorCode.INTERNAL_ERROR


# =============================================================================
# IDENTITY MERGE ERRORS
# =============================================================================

class MergeErrorCode(str, Enum):
    CONTRIBUTOR_NOT_FOUND = "CONTRIBUTOR_NOT_FOUND"
    INVALID_MERGE = "INVALID_MERGE"
    INVALID_URL = "INVALID_URL"


MERGE_HTTP_STATUS = {
    MergeErrorCode.CONTRIBUTOR_NOT_FOUND: 404,
    MergeErrorCode.INVALID_MERGE: 400,
    MergeErrorCode.INVALID_URL: 400,
}


class MergeError(Exception):
    """An identity merge request that cannot be applied."""

    def __init__(self, code: MergeErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def status_code(self) -> int:
        return MERGE_HTTP_STATUS[self.code]

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}
