"""Prompt rendering for schema-driven extraction.

Output is a pure function of the schema: the same schema always yields a
byte-identical system prompt.
"""

from models import ChatMessage
from schemas import FieldDefinition, Schema

_ROLE = (
    "You are a data extraction assistant. Extract structured data from the "
    "provided text according to the schema below."
)

_INSTRUCTIONS = """CRITICAL INSTRUCTIONS:
1. Return ONLY valid JSON matching the schema
2. Include confidence scores (0-100) for each field, even if field is null
3. Do not include any explanation or markdown formatting
4. For optional fields: set value to null if not found or confidence too low
5. ALWAYS include ALL fields in confidenceByField, even if value is null"""

_RESPONSE_REMINDER = (
    "IMPORTANT: Include ALL fields in both data and confidenceByField. "
    "Use null for data and 0 for confidence if field not found or uncertain."
)

USER_PROMPT_PREFIX = "Extract data from the following text:\n\n"


def _format_bound(value: float | None, open_end: str) -> str:
    return open_end if value is None else str(value)


def _describe_field(name: str, field: FieldDefinition) -> str:
    line = f"- {name}: {field.type}"
    if field.optional:
        line += " (optional)"
    if field.description:
        line += f" - {field.description}"
    if field.enum:
        line += " - allowed values: " + ", ".join(str(v) for v in field.enum)
    if field.min is not None or field.max is not None:
        line += f" - range: {_format_bound(field.min, '-inf')} to {_format_bound(field.max, 'inf')}"
    if field.pattern:
        line += f" - pattern: {field.pattern}"
    return line


def _response_format(names: list[str]) -> str:
    data_lines = ",\n".join(f'    "{n}": <extracted_value_or_null>' for n in names)
    conf_lines = ",\n".join(f'    "{n}": <confidence_0_to_100_or_0_if_not_found>' for n in names)
    return (
        "RESPONSE FORMAT:\n"
        "{\n"
        '  "data": {\n'
        f"{data_lines}\n"
        "  },\n"
        '  "confidence": <overall_confidence_0_to_100>,\n'
        '  "confidenceByField": {\n'
        f"{conf_lines}\n"
        "  }\n"
        "}"
    )


def build_system_prompt(schema: Schema) -> str:
    """Render the extraction instructions for a validated schema."""
    sections = [_ROLE, _INSTRUCTIONS]
    sections.append("SCHEMA:\n" + "\n".join(_describe_field(n, f) for n, f in schema.fields.items()))

    if schema.confidence is not None:
        sections.append(
            "CONFIDENCE REQUIREMENTS:\n"
            f"- Minimum confidence threshold: {schema.confidence.threshold}%\n"
            "- Provide per-field confidence scores in your response"
        )

    sections.append(_response_format(list(schema.fields)))
    sections.append(_RESPONSE_REMINDER)
    return "\n\n".join(sections)


def build_user_prompt(input_text: str) -> str:
    return USER_PROMPT_PREFIX + input_text


def build_messages(schema: Schema, input_text: str, system_prompt: str | None = None) -> list[ChatMessage]:
    """System and user messages; a caller-supplied system prompt replaces the rendered one."""
    if system_prompt is None:
        system_prompt = build_system_prompt(schema)
    return [
        ChatMessage(role="system", content=system_prompt),
        ChatMessage(role="user", content=build_user_prompt(input_text)),
    ]
