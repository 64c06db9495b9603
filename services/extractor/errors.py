"""Typed failures for the extraction pipeline.

Three families: schema problems (raised before any network call), completion
endpoint failures (classified, some retryable) and per-field mismatches
(collected, never raised across the pipeline).
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class SchemaErrorCode(str, Enum):
    INVALID_JSON = "INVALID_JSON"
    INVALID_SCHEMA = "INVALID_SCHEMA"
    MISSING_FIELDS = "MISSING_FIELDS"
    INVALID_FIELD = "INVALID_FIELD"
    MISSING_TYPE = "MISSING_TYPE"
    INVALID_TYPE = "INVALID_TYPE"
    INVALID_ENUM = "INVALID_ENUM"
    INVALID_RANGE = "INVALID_RANGE"
    INVALID_PATTERN = "INVALID_PATTERN"
    INVALID_METADATA = "INVALID_METADATA"
    INVALID_CONFIDENCE = "INVALID_CONFIDENCE"


class LLMErrorCode(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    API_ERROR = "API_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"


class FieldErrorCode(str, Enum):
    REQUIRED_FIELD_MISSING = "REQUIRED_FIELD_MISSING"
    INVALID_TYPE = "INVALID_TYPE"
    INVALID_DATE = "INVALID_DATE"
    ENUM_MISMATCH = "ENUM_MISMATCH"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    PATTERN_MISMATCH = "PATTERN_MISMATCH"
    MISSING_FROM_RESPONSE = "MISSING_FROM_RESPONSE"


RETRYABLE_CODES = frozenset({
    LLMErrorCode.NETWORK_ERROR,
    LLMErrorCode.TIMEOUT,
    LLMErrorCode.RATE_LIMIT,
    LLMErrorCode.API_ERROR,
})


class ExtractorError(Exception):
    """Base type for all extraction failures."""

    def __init__(
        self,
        message: str,
        code: Enum,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code.value}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value!r}, message={self.message!r})"


class SchemaError(ExtractorError):
    """The schema object is structurally invalid. Never retried."""

    def __init__(
        self,
        message: str,
        code: SchemaErrorCode = SchemaErrorCode.INVALID_SCHEMA,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        if self.field is not None:
            out["field"] = self.field
        return out


class LLMError(ExtractorError):
    """Completion endpoint failure, classified by code."""

    def __init__(
        self,
        message: str,
        code: LLMErrorCode,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, code, details)
        self.status_code = status_code
        # Server-requested wait in seconds (429 Retry-After), if any.
        self.retry_after = retry_after
        # Attempts made before this error became terminal; set by the client.
        self.attempts = 0

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        if self.status_code is not None:
            out["statusCode"] = self.status_code
        return out


class FieldValidationError(ExtractorError):
    """An extracted value does not satisfy its field definition."""

    def __init__(self, field: str, message: str, code: FieldErrorCode) -> None:
        super().__init__(message, code)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "message": self.message, "code": self.code.value}
