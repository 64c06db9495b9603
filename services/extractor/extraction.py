"""Extraction orchestrator: build prompts, call the completion endpoint, parse and check.

Every call returns exactly one ExtractionResult. Endpoint and parse failures
become a single classified error; field mismatches accumulate next to the
best-effort data so a caller can judge a near miss.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from errors import LLMError
from llm_client import CompletionClient
from models import ErrorDetail, ExtractionMetadata, ExtractionResult, TokenUsage
from prompts import build_messages
from response_parser import check_response_keys, parse_extraction_response, validate_fields
from schemas import Schema, validate_schema

logger = logging.getLogger(__name__)

LOW_CONFIDENCE = "LOW_CONFIDENCE"


def _metadata(
    schema: Schema,
    client: CompletionClient,
    start: float,
    attempts: int = 0,
    usage: TokenUsage | None = None,
) -> ExtractionMetadata:
    return ExtractionMetadata(
        extracted_at=datetime.now(timezone.utc).isoformat(),
        model=client.model,
        schema_name=schema.name,
        duration_ms=int((time.monotonic() - start) * 1000),
        attempts=attempts,
        usage=usage,
    )


def extract(
    input_text: str,
    schema: Schema | dict[str, Any],
    client: CompletionClient,
    system_prompt: str | None = None,
) -> ExtractionResult:
    """Run the extraction pipeline: prompt -> completion -> parse -> field checks -> threshold.

    A raw schema mapping is validated first; SchemaError propagates to the
    caller before any network activity. system_prompt, when given, replaces
    the prompt rendered from the schema.
    """
    schema = validate_schema(schema)
    start = time.monotonic()
    logger.info(
        "Extracting %d field(s) for schema=%s from %d chars",
        len(schema.fields), schema.name or "<unnamed>", len(input_text),
    )

    messages = build_messages(schema, input_text, system_prompt)

    try:
        completion = client.complete(messages)
    except LLMError as e:
        logger.error("Completion failed (%s): %s", e.code.value, e.message)
        return ExtractionResult(
            success=False,
            errors=[ErrorDetail(message=e.message, code=e.code.value)],
            metadata=_metadata(schema, client, start, e.attempts),
        )

    try:
        parsed = parse_extraction_response(completion.content)
    except LLMError as e:
        logger.error("Model response rejected (%s): %s", e.code.value, e.message)
        return ExtractionResult(
            success=False,
            errors=[ErrorDetail(message=e.message, code=e.code.value)],
            metadata=_metadata(schema, client, start, completion.attempts, completion.usage),
        )

    key_errors = check_response_keys(parsed, schema)
    absent = {e.field for e in key_errors if e.field not in parsed.data}
    field_errors = key_errors + [e for e in validate_fields(parsed.data, schema) if e.field not in absent]
    meets_threshold = parsed.confidence >= schema.threshold
    rejected_for_confidence = not meets_threshold and schema.fail_on_low_confidence

    errors = [ErrorDetail(**e.to_dict()) for e in field_errors]
    if rejected_for_confidence:
        errors.append(ErrorDetail(
            message=f"Confidence {parsed.confidence} is below threshold {schema.threshold}",
            code=LOW_CONFIDENCE,
        ))
    elif not meets_threshold:
        logger.warning("Confidence %s below threshold %s (not enforced)", parsed.confidence, schema.threshold)

    success = not errors
    result = ExtractionResult(
        success=success,
        data=parsed.data,
        confidence=parsed.confidence,
        confidence_by_field=parsed.confidence_by_field,
        meets_threshold=meets_threshold,
        errors=errors,
        metadata=_metadata(schema, client, start, completion.attempts, completion.usage),
    )
    logger.info(
        "Extraction finished: success=%s confidence=%s errors=%d in %dms",
        success, parsed.confidence, len(errors), result.metadata.duration_ms,
    )
    return result
