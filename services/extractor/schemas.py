"""Extraction schema model and structural validation.

A schema is a plain mapping (usually decoded from JSON) describing the fields
to extract. validate_schema() checks it once and returns frozen models that
every later stage trusts without re-checking.
"""

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from errors import SchemaError, SchemaErrorCode

logger = logging.getLogger(__name__)

FIELD_TYPES = ("string", "number", "integer", "boolean", "enum", "date", "array", "object")


class FieldDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    optional: bool = False
    description: str | None = None
    enum: list[Any] | None = None
    min: int | float | None = None
    max: int | float | None = None
    pattern: str | None = None


class SchemaMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    version: str | None = None
    description: str | None = None


class ConfidenceConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    threshold: int | float = 0
    fail_on_low_confidence: bool = Field(default=False, alias="failOnLowConfidence")


class Schema(BaseModel):
    """A structurally validated extraction schema. Field order is declaration order."""

    model_config = ConfigDict(frozen=True)

    fields: dict[str, FieldDefinition]
    metadata: SchemaMetadata | None = None
    confidence: ConfidenceConfig | None = None

    @property
    def threshold(self) -> float:
        return self.confidence.threshold if self.confidence else 0

    @property
    def fail_on_low_confidence(self) -> bool:
        return self.confidence.fail_on_low_confidence if self.confidence else False

    @property
    def name(self) -> str | None:
        return self.metadata.name if self.metadata else None

    def to_raw(self) -> dict[str, Any]:
        """Dump back to the raw (camelCase) mapping accepted by validate_schema."""
        return self.model_dump(by_alias=True, exclude_none=True)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_field(name: str, raw: Any) -> FieldDefinition:
    if not isinstance(raw, dict):
        raise SchemaError(f"Field '{name}' must be an object", SchemaErrorCode.INVALID_FIELD, name)

    field_type = raw.get("type")
    if field_type is None:
        raise SchemaError(f"Field '{name}' is missing 'type'", SchemaErrorCode.MISSING_TYPE, name)
    if field_type not in FIELD_TYPES:
        raise SchemaError(
            f"Field '{name}' has unknown type '{field_type}' (expected one of: {', '.join(FIELD_TYPES)})",
            SchemaErrorCode.INVALID_TYPE,
            name,
        )

    optional = raw.get("optional", False)
    if not isinstance(optional, bool):
        raise SchemaError(f"Field '{name}': 'optional' must be a boolean", SchemaErrorCode.INVALID_FIELD, name)

    description = raw.get("description")
    if description is not None and not isinstance(description, str):
        raise SchemaError(f"Field '{name}': 'description' must be a string", SchemaErrorCode.INVALID_FIELD, name)

    enum = raw.get("enum")
    if enum is not None and (not isinstance(enum, list) or not enum):
        raise SchemaError(f"Field '{name}': 'enum' must be a non-empty array", SchemaErrorCode.INVALID_ENUM, name)
    if field_type == "enum" and enum is None:
        raise SchemaError(f"Field '{name}' has type 'enum' but no 'enum' values", SchemaErrorCode.INVALID_ENUM, name)

    low, high = raw.get("min"), raw.get("max")
    for bound_name, bound in (("min", low), ("max", high)):
        if bound is not None and not _is_number(bound):
            raise SchemaError(f"Field '{name}': '{bound_name}' must be a number", SchemaErrorCode.INVALID_RANGE, name)
    if low is not None and high is not None and low > high:
        raise SchemaError(
            f"Field '{name}': min ({low}) is greater than max ({high})",
            SchemaErrorCode.INVALID_RANGE,
            name,
        )

    pattern = raw.get("pattern")
    if pattern is not None:
        if not isinstance(pattern, str):
            raise SchemaError(f"Field '{name}': 'pattern' must be a string", SchemaErrorCode.INVALID_PATTERN, name)
        try:
            re.compile(pattern)
        except re.error as e:
            raise SchemaError(
                f"Field '{name}': invalid pattern '{pattern}': {e}",
                SchemaErrorCode.INVALID_PATTERN,
                name,
            ) from e

    return FieldDefinition(
        type=field_type,
        optional=optional,
        description=description,
        enum=list(enum) if enum is not None else None,
        min=low,
        max=high,
        pattern=pattern,
    )


def _validate_metadata(raw: Any) -> SchemaMetadata:
    if not isinstance(raw, dict):
        raise SchemaError("'metadata' must be an object", SchemaErrorCode.INVALID_METADATA)
    if not isinstance(raw.get("name"), str) or not raw["name"].strip():
        raise SchemaError("'metadata.name' must be a non-empty string", SchemaErrorCode.INVALID_METADATA)
    for key in ("version", "description"):
        if raw.get(key) is not None and not isinstance(raw[key], str):
            raise SchemaError(f"'metadata.{key}' must be a string", SchemaErrorCode.INVALID_METADATA)
    return SchemaMetadata(name=raw["name"], version=raw.get("version"), description=raw.get("description"))


def _validate_confidence(raw: Any) -> ConfidenceConfig:
    if not isinstance(raw, dict):
        raise SchemaError("'confidence' must be an object", SchemaErrorCode.INVALID_CONFIDENCE)
    threshold = raw.get("threshold")
    if not _is_number(threshold) or not 0 <= threshold <= 100:
        raise SchemaError(
            "'confidence.threshold' must be a number between 0 and 100",
            SchemaErrorCode.INVALID_CONFIDENCE,
        )
    fail = raw.get("failOnLowConfidence", False)
    if not isinstance(fail, bool):
        raise SchemaError("'confidence.failOnLowConfidence' must be a boolean", SchemaErrorCode.INVALID_CONFIDENCE)
    return ConfidenceConfig(threshold=threshold, fail_on_low_confidence=fail)


def validate_schema(raw: Any) -> Schema:
    """Validate a raw schema mapping and return a frozen Schema.

    Raises SchemaError on the first structural problem found. An already
    validated Schema is returned as-is.
    """
    if isinstance(raw, Schema):
        return raw
    if not isinstance(raw, dict):
        raise SchemaError("Schema must be a JSON object", SchemaErrorCode.INVALID_SCHEMA)

    raw_fields = raw.get("fields")
    if not isinstance(raw_fields, dict) or not raw_fields:
        raise SchemaError("Schema must define at least one field in 'fields'", SchemaErrorCode.MISSING_FIELDS)

    fields: dict[str, FieldDefinition] = {}
    for name, definition in raw_fields.items():
        if not isinstance(name, str) or not name.strip():
            raise SchemaError("Field names must be non-empty strings", SchemaErrorCode.INVALID_FIELD, str(name))
        fields[name] = _validate_field(name, definition)

    metadata = _validate_metadata(raw["metadata"]) if raw.get("metadata") is not None else None
    confidence = _validate_confidence(raw["confidence"]) if raw.get("confidence") is not None else None

    schema = Schema(fields=fields, metadata=metadata, confidence=confidence)
    logger.debug("Validated schema %s with %d fields", schema.name or "<unnamed>", len(fields))
    return schema


def parse_schema(text: str) -> Schema:
    """Decode a JSON schema document and validate it."""
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaError(f"Invalid JSON: {e}", SchemaErrorCode.INVALID_JSON) from e
    return validate_schema(raw)
