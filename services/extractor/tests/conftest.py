"""Shared test fixtures for extraction service tests."""

import json
import sys
from pathlib import Path

import httpx
import pytest

# Add parent directory to path so we can import the modules
sys.path.insert(0, str(Path(__file__).parent.parent))


def completion_body(content: str, usage: dict | None = None) -> dict:
    """An OpenAI-style chat completion body with a single choice."""
    body = {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "test-model",
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"},
        ],
    }
    if usage is not None:
        body["usage"] = usage
    return body


def completion_response(content: str, **kwargs) -> httpx.Response:
    return httpx.Response(200, json=completion_body(content, **kwargs))


@pytest.fixture
def name_schema() -> dict:
    return {"fields": {"name": {"type": "string"}}}


@pytest.fixture
def invoice_schema() -> dict:
    """A schema exercising every constraint kind."""
    return {
        "metadata": {"name": "invoice", "version": "1.0.0", "description": "Supplier invoice"},
        "fields": {
            "invoice_id": {"type": "string", "description": "Invoice number", "pattern": "^INV-\\d+$"},
            "amount": {"type": "number", "min": 0, "max": 100000},
            "currency": {"type": "enum", "enum": ["USD", "EUR", "GBP"]},
            "issued_on": {"type": "date"},
            "paid": {"type": "boolean", "optional": True},
        },
        "confidence": {"threshold": 80, "failOnLowConfidence": True},
    }


@pytest.fixture
def invoice_answer() -> str:
    """A well-formed model answer for invoice_schema."""
    return json.dumps({
        "data": {
            "invoice_id": "INV-1042",
            "amount": 1250.5,
            "currency": "EUR",
            "issued_on": "2024-03-15",
            "paid": None,
        },
        "confidence": 92,
        "confidenceByField": {"invoice_id": 98, "amount": 95, "currency": 90, "issued_on": 88, "paid": 0},
    })


@pytest.fixture
def fenced_invoice_answer(invoice_answer: str) -> str:
    return f"```json\n{invoice_answer}\n```"


@pytest.fixture
def sleeps() -> list[float]:
    """Collects the backoff waits requested by a client under test."""
    return []
