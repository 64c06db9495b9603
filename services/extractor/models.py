"""Pydantic models for the completion endpoint and the extraction result contract."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class CompletionRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    temperature: float
    max_tokens: int


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResponse(BaseModel):
    """The single textual choice read back from a chat completion."""

    content: str
    model: str | None = None
    usage: TokenUsage | None = None
    attempts: int = 1


class ExtractionResponse(BaseModel):
    """What the model must answer: data, overall and per-field confidence."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    data: dict[str, Any]
    confidence: float
    confidence_by_field: dict[str, float] = Field(alias="confidenceByField")


class ErrorDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str | None = None
    message: str
    code: str


class ExtractionMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    extracted_at: str = Field(alias="extractedAt")
    model: str
    schema_name: str | None = Field(default=None, alias="schemaName")
    duration_ms: int = Field(alias="durationMs")
    attempts: int = 0
    usage: TokenUsage | None = None


class ExtractionResult(BaseModel):
    """Pipeline output. Built once per call and never mutated."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    success: bool
    data: dict[str, Any] = {}
    confidence: float = 0
    confidence_by_field: dict[str, float] = Field(default_factory=dict, alias="confidenceByField")
    meets_threshold: bool = Field(default=False, alias="meetsThreshold")
    errors: list[ErrorDetail] = []
    metadata: ExtractionMetadata

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with the camelCase keys of the JSON contract."""
        return self.model_dump(by_alias=True)
