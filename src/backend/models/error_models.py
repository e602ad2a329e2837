"""
Standardized error response models for Agent Relay.

Every REST failure is returned as a flat JSON object whose ``error`` field
carries the human readable message, with an optional ``reason`` holding the
underlying cause.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Application-specific error codes for categorization."""

    # Authentication errors (1xxx)
    AUTH_INVALID_SIGNATURE = "AUTH_1001"
    AUTH_TOKEN_ISSUE_FAILED = "AUTH_1002"

    # Validation errors (2xxx)
    VALIDATION_ERROR = "VAL_2001"
    VALIDATION_MISSING_FIELD = "VAL_2002"
    VALIDATION_INVALID_FORMAT = "VAL_2003"

    # Agent errors (4xxx)
    AGENT_START_FAILED = "AGT_4001"
    AGENT_STOP_FAILED = "AGT_4002"

    # External service errors (7xxx)
    EXTERNAL_SERVICE_ERROR = "EXT_7001"
    EXTERNAL_TIMEOUT = "EXT_7002"
    EXTERNAL_RATE_LIMITED = "EXT_7003"
    OPENAI_ERROR = "EXT_7010"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "INT_9001"
    INTERNAL_UNEXPECTED = "INT_9999"


class ErrorDetail(BaseModel):
    """Detailed information about a specific validation or sub-error."""

    field: str | None = None
    message: str
    code: str | None = None


class ErrorResponse(BaseModel):
    """Standardized error response model for REST endpoints.

    Example response:
    {
        "error": "Failed to start AI Agent",
        "reason": "channel not found",
        "code": "AGT_4001",
        "request_id": "req_abc123",
        "timestamp": "2025-01-15T10:30:00Z"
    }
    """

    error: str
    reason: str | None = None
    code: ErrorCode
    request_id: str | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    details: list[ErrorDetail] | None = None
    path: str | None = None
    # Debug info - only included in development mode
    debug: dict[str, Any] | None = Field(default=None, exclude=True)

    def to_dict(self, include_debug: bool = False) -> dict[str, Any]:
        """Convert to dictionary for JSON response.

        Args:
            include_debug: Include debug information (only in development)
        """
        data = self.model_dump(mode="json", exclude_none=True)
        if include_debug and self.debug:
            data["debug"] = self.debug
        return data


# HTTP status code mappings for error codes
ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    # 400 Bad Request
    ErrorCode.VALIDATION_MISSING_FIELD: 400,
    # 401 Unauthorized
    ErrorCode.AUTH_INVALID_SIGNATURE: 401,
    # 422 Unprocessable Entity
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.VALIDATION_INVALID_FORMAT: 422,
    # 429 Too Many Requests
    ErrorCode.EXTERNAL_RATE_LIMITED: 429,
    # 500 Internal Server Error
    ErrorCode.AGENT_START_FAILED: 500,
    ErrorCode.AGENT_STOP_FAILED: 500,
    ErrorCode.AUTH_TOKEN_ISSUE_FAILED: 500,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.INTERNAL_UNEXPECTED: 500,
    # 502 Bad Gateway
    ErrorCode.EXTERNAL_SERVICE_ERROR: 502,
    ErrorCode.OPENAI_ERROR: 502,
    # 504 Gateway Timeout
    ErrorCode.EXTERNAL_TIMEOUT: 504,
}


def get_status_code(code: ErrorCode) -> int:
    """Get HTTP status code for an error code (defaults to 500)."""
    return ERROR_CODE_TO_STATUS.get(code, 500)
