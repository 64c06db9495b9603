"""Environment-based configuration for the extraction service."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Extraction service settings, loaded from environment variables."""

    # Server
    PORT: int = 8092
    LOG_LEVEL: str = "INFO"

    # Completion endpoint (empty = extraction disabled, local dev default)
    LLM_BASE_URL: str = ""
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "llama3"

    # Sampling
    LLM_TEMPERATURE: float = 0.0
    LLM_MAX_TOKENS: int = 2000

    # Timeouts and retry
    LLM_TIMEOUT_SECONDS: float = 30.0
    LLM_CONNECT_TIMEOUT: float = 10.0
    LLM_MAX_RETRIES: int = 3
    LLM_RETRY_INITIAL_DELAY: float = 1.0
    LLM_RETRY_MAX_DELAY: float = 10.0
    LLM_RETRY_BACKOFF: float = 2.0

    model_config = {"env_prefix": "", "case_sensitive": True}


settings = Settings()
