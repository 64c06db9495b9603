"""Tests for system/user prompt rendering."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from prompts import USER_PROMPT_PREFIX, build_messages, build_system_prompt, build_user_prompt
from schemas import validate_schema


def _section(prompt: str, start: str, end: str | None = None) -> str:
    body = prompt.split(start, 1)[1]
    return body.split(end, 1)[0] if end else body


class TestBuildSystemPrompt:
    def test_deterministic(self, invoice_schema: dict):
        schema = validate_schema(invoice_schema)
        assert build_system_prompt(schema) == build_system_prompt(validate_schema(invoice_schema))

    def test_invariant_instructions(self, name_schema: dict):
        prompt = build_system_prompt(validate_schema(name_schema))
        assert prompt.startswith("You are a data extraction assistant.")
        assert "Return ONLY valid JSON" in prompt
        assert "confidence scores (0-100)" in prompt
        assert "set value to null" in prompt
        assert "ALWAYS include ALL fields in confidenceByField" in prompt

    def test_each_field_listed_once_in_schema_section(self, invoice_schema: dict):
        schema = validate_schema(invoice_schema)
        section = _section(build_system_prompt(schema), "SCHEMA:", "CONFIDENCE REQUIREMENTS:")
        for name in schema.fields:
            assert section.count(f"- {name}: ") == 1

    def test_response_format_lists_each_field_twice(self, invoice_schema: dict):
        schema = validate_schema(invoice_schema)
        tail = _section(build_system_prompt(schema), "RESPONSE FORMAT:")
        for name in schema.fields:
            assert tail.count(f'"{name}":') == 2

    def test_field_details_rendered(self, invoice_schema: dict):
        prompt = build_system_prompt(validate_schema(invoice_schema))
        assert "- invoice_id: string - Invoice number - pattern: ^INV-\\d+$" in prompt
        assert "- amount: number - range: 0 to 100000" in prompt
        assert "- currency: enum - allowed values: USD, EUR, GBP" in prompt
        assert "- paid: boolean (optional)" in prompt

    def test_open_ended_range(self):
        schema = validate_schema({"fields": {"age": {"type": "integer", "min": 0}}})
        assert "- age: integer - range: 0 to inf" in build_system_prompt(schema)

    def test_confidence_block_only_when_configured(self, name_schema: dict, invoice_schema: dict):
        assert "CONFIDENCE REQUIREMENTS" not in build_system_prompt(validate_schema(name_schema))
        prompt = build_system_prompt(validate_schema(invoice_schema))
        assert "Minimum confidence threshold: 80%" in prompt

    def test_fields_in_declaration_order(self, invoice_schema: dict):
        prompt = build_system_prompt(validate_schema(invoice_schema))
        positions = [prompt.index(f"- {n}: ") for n in invoice_schema["fields"]]
        assert positions == sorted(positions)


class TestBuildUserPrompt:
    def test_wraps_input(self):
        assert build_user_prompt("My name is John") == "Extract data from the following text:\n\nMy name is John"

    def test_input_kept_verbatim(self):
        text = "  line one\n\nline two  "
        assert build_user_prompt(text) == USER_PROMPT_PREFIX + text


class TestBuildMessages:
    def test_system_then_user(self, name_schema: dict):
        schema = validate_schema(name_schema)
        messages = build_messages(schema, "My name is John")
        assert [m.role for m in messages] == ["system", "user"]
        assert messages[0].content == build_system_prompt(schema)
        assert messages[1].content.endswith("My name is John")

    def test_system_prompt_override(self, name_schema: dict):
        schema = validate_schema(name_schema)
        messages = build_messages(schema, "My name is John", system_prompt="Return JSON only.")
        assert messages[0].content == "Return JSON only."
        assert messages[1].content == build_user_prompt("My name is John")
