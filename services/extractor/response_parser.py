"""Decode the model's answer into the extraction contract and check it against the schema.

parse_extraction_response() enforces only the envelope shape
({data, confidence, confidenceByField}). validate_fields() is the separate,
strict pass over individual values: no coercion, JSON-native types only.
"""

import json
import logging
import re
from datetime import date
from typing import Any

from errors import FieldErrorCode, FieldValidationError, LLMError, LLMErrorCode
from models import ExtractionResponse
from schemas import FieldDefinition, Schema

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```[\w-]*[ \t]*\n?(.*?)\n?[ \t]*```$", re.DOTALL)
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def strip_code_fence(text: str) -> str:
    """Trim whitespace and remove a surrounding markdown code fence, if any."""
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _json_kind(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    return type(value).__name__


def _in_enum(value: Any, allowed: list) -> bool:
    """Enum membership by JSON kind and value: True never matches 1, 1 matches 1.0."""
    kind = _json_kind(value)
    return any(_json_kind(option) == kind and option == value for option in allowed)


def _invalid(reason: str, content: str) -> LLMError:
    return LLMError(
        f"Failed to parse LLM response: {reason}",
        LLMErrorCode.INVALID_RESPONSE,
        details={"content": content, "error": reason},
    )


def parse_extraction_response(raw: str) -> ExtractionResponse:
    """Parse raw assistant text into an ExtractionResponse.

    Raises LLMError(INVALID_RESPONSE) when the text is not JSON, when any of
    data / confidence / confidenceByField is missing or mistyped, or when a
    confidence value falls outside 0-100.
    """
    content = strip_code_fence(raw)
    try:
        parsed = json.loads(content)
    except ValueError as e:
        # JSONDecodeError, or an integer literal past the int conversion limit
        logger.warning("Model response is not valid JSON: %s", content[:200])
        raise _invalid(f"invalid JSON ({e})", raw) from e

    if not isinstance(parsed, dict):
        raise _invalid("response is not a JSON object", raw)
    if not isinstance(parsed.get("data"), dict):
        raise _invalid("response missing data object", raw)

    confidence = parsed.get("confidence")
    if not _is_number(confidence):
        raise _invalid("response missing confidence score", raw)
    if not 0 <= confidence <= 100:
        raise _invalid(f"confidence {confidence} is outside 0-100", raw)

    by_field = parsed.get("confidenceByField")
    if not isinstance(by_field, dict):
        raise _invalid("response missing confidenceByField object", raw)
    for name, score in by_field.items():
        if not _is_number(score):
            raise _invalid(f"confidenceByField.{name} is not a number", raw)
        if not 0 <= score <= 100:
            raise _invalid(f"confidenceByField.{name} ({score}) is outside 0-100", raw)

    return ExtractionResponse(data=parsed["data"], confidence=confidence, confidence_by_field=by_field)


def _check_type(name: str, value: Any, field: FieldDefinition) -> FieldValidationError | None:
    expected = field.type
    if expected == "string":
        ok = isinstance(value, str)
    elif expected == "number":
        ok = _is_number(value)
    elif expected == "integer":
        ok = (isinstance(value, int) and not isinstance(value, bool)) or (
            isinstance(value, float) and value.is_integer()
        )
    elif expected == "boolean":
        ok = isinstance(value, bool)
    elif expected == "date":
        if not isinstance(value, str) or not _ISO_DATE_RE.match(value):
            return FieldValidationError(
                name, f"Field '{name}' must be an ISO date (YYYY-MM-DD), got {value!r}", FieldErrorCode.INVALID_TYPE
            )
        try:
            date.fromisoformat(value)
        except ValueError:
            return FieldValidationError(name, f"Field '{name}' is not a valid date: {value!r}", FieldErrorCode.INVALID_DATE)
        return None
    elif expected == "array":
        ok = isinstance(value, list)
    elif expected == "object":
        ok = isinstance(value, dict)
    else:
        # enum: membership is checked separately
        ok = True

    if not ok:
        return FieldValidationError(
            name,
            f"Field '{name}' expected {expected}, got {type(value).__name__}",
            FieldErrorCode.INVALID_TYPE,
        )
    return None


def _check_field(name: str, value: Any, field: FieldDefinition) -> FieldValidationError | None:
    error = _check_type(name, value, field)
    if error is not None:
        return error

    if field.enum is not None and not _in_enum(value, field.enum):
        return FieldValidationError(
            name,
            f"Field '{name}' value {value!r} is not one of: {', '.join(str(v) for v in field.enum)}",
            FieldErrorCode.ENUM_MISMATCH,
        )

    if _is_number(value):
        if field.min is not None and value < field.min:
            return FieldValidationError(
                name, f"Field '{name}' value {value} is below minimum {field.min}", FieldErrorCode.OUT_OF_RANGE
            )
        if field.max is not None and value > field.max:
            return FieldValidationError(
                name, f"Field '{name}' value {value} is above maximum {field.max}", FieldErrorCode.OUT_OF_RANGE
            )

    if field.pattern is not None and isinstance(value, str) and not re.search(field.pattern, value):
        return FieldValidationError(
            name,
            f"Field '{name}' value {value!r} does not match pattern {field.pattern}",
            FieldErrorCode.PATTERN_MISMATCH,
        )
    return None


def check_response_keys(parsed: ExtractionResponse, schema: Schema) -> list[FieldValidationError]:
    """One error per schema field absent from data and/or confidenceByField.

    The answer must carry every declared field as a key in both maps, with
    null standing in for an unknown value. Fields are reported in
    declaration order.
    """
    errors: list[FieldValidationError] = []
    for name in schema.fields:
        missing = [
            label
            for label, mapping in (("data", parsed.data), ("confidenceByField", parsed.confidence_by_field))
            if name not in mapping
        ]
        if missing:
            errors.append(FieldValidationError(
                name,
                f"Field '{name}' is missing from {' and '.join(missing)}",
                FieldErrorCode.MISSING_FROM_RESPONSE,
            ))

    if errors:
        logger.info("Model answer omitted %d schema key(s): %s", len(errors), ", ".join(e.field for e in errors))
    return errors


def validate_fields(data: dict[str, Any], schema: Schema) -> list[FieldValidationError]:
    """Check every schema field in declaration order; at most one error per field."""
    errors: list[FieldValidationError] = []
    for name, field in schema.fields.items():
        value = data.get(name)
        if value is None:
            if not field.optional:
                errors.append(FieldValidationError(
                    name, f"Required field '{name}' is missing", FieldErrorCode.REQUIRED_FIELD_MISSING
                ))
            continue

        error = _check_field(name, value, field)
        if error is not None:
            errors.append(error)

    if errors:
        logger.info("Field validation found %d error(s): %s", len(errors), ", ".join(e.field for e in errors))
    return errors
