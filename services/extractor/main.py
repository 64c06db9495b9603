"""FastAPI extraction service: schema-first structured extraction from text.

Validates the schema, runs the extraction pipeline against the configured
OpenAI-compatible endpoint and returns the result envelope.
Privacy: input text is never logged, only its length.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from config import settings
from errors import SchemaError
from extraction import extract
from llm_client import CompletionClient
from schemas import validate_schema

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_llm_client: CompletionClient | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the shared completion client on startup if configured."""
    global _llm_client

    if not settings.LLM_BASE_URL:
        logger.info("Completion endpoint not configured (LLM_BASE_URL is empty), extraction disabled")
    else:
        logger.info("Using completion endpoint %s (model=%s)", settings.LLM_BASE_URL, settings.LLM_MODEL)
        _llm_client = CompletionClient()

    yield

    if _llm_client is not None:
        _llm_client.close()
        _llm_client = None


app = FastAPI(title="Schema Extractor", version="1.0.0", lifespan=lifespan)


@app.post("/api/v1/extract")
def extract_endpoint(body: dict[str, Any]):
    """Extract structured fields from text according to the supplied schema."""
    if _llm_client is None:
        return JSONResponse(
            status_code=503,
            content={"detail": "Extraction is not available - no completion endpoint configured"},
        )

    input_text = body.get("input")
    if not isinstance(input_text, str) or not input_text.strip():
        return JSONResponse(status_code=400, content={"detail": "Field 'input' must be a non-empty string"})

    system_prompt = body.get("systemPrompt")
    if system_prompt is not None and (not isinstance(system_prompt, str) or not system_prompt.strip()):
        return JSONResponse(status_code=400, content={"detail": "Field 'systemPrompt' must be a non-empty string"})

    try:
        schema = validate_schema(body.get("schema"))
    except SchemaError as e:
        return JSONResponse(status_code=400, content={"detail": e.message, **e.to_dict()})

    logger.info("Processing extraction: schema=%s input=%d chars", schema.name or "<unnamed>", len(input_text))

    result = extract(input_text, schema, _llm_client, system_prompt=system_prompt)
    return result.to_json_dict()


@app.get("/health")
def health():
    """Return service status and completion endpoint reachability."""
    base = {
        "status": "healthy",
        "llm_configured": _llm_client is not None,
    }

    if _llm_client is not None:
        base["llm_health"] = _llm_client.health()

    return base


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
