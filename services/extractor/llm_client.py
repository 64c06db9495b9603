"""HTTP client for OpenAI-compatible chat completion endpoints.

Uses httpx with a per-request timeout and tenacity for retry with
exponential backoff and jitter on transient failures (network errors,
timeouts, 429 and other non-auth HTTP errors). A 429 Retry-After header
overrides the computed delay. Every failure leaves this module as an
LLMError carrying a classified code.
"""

import logging
import random
import time
from typing import Callable, Iterable

import httpx
from pydantic import ValidationError
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt

from config import settings
from errors import LLMError, LLMErrorCode
from models import ChatMessage, CompletionRequest, CompletionResponse, TokenUsage

logger = logging.getLogger(__name__)

JITTER_RATIO = 0.25


def classify_status(status_code: int) -> LLMErrorCode:
    """Map a non-2xx HTTP status to an error code."""
    if status_code in (401, 403):
        return LLMErrorCode.AUTHENTICATION_ERROR
    if status_code == 429:
        return LLMErrorCode.RATE_LIMIT
    return LLMErrorCode.API_ERROR


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds. Other forms are ignored."""
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def backoff_delay(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    backoff_factor: float,
    retry_after: float | None = None,
) -> float:
    """Seconds to wait after the zero-based failed attempt.

    initial * factor^attempt, plus up to 25% jitter, capped at max_delay.
    A server-supplied Retry-After replaces the computed value but is
    still capped.
    """
    if retry_after is not None:
        return min(max_delay, retry_after)
    base = initial_delay * (backoff_factor ** attempt)
    return min(max_delay, base * (1 + random.uniform(0, JITTER_RATIO)))


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, LLMError) and exc.retryable


class CompletionClient:
    """Chat completion client with timeout, error classification and retry.

    Holds only configuration and a pooled httpx.Client after construction,
    so one instance can serve concurrent extractions.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        connect_timeout: float | None = None,
        max_retries: int | None = None,
        initial_delay: float | None = None,
        max_delay: float | None = None,
        backoff_factor: float | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self._base_url = (base_url or settings.LLM_BASE_URL).rstrip("/")
        if not self._base_url:
            raise ValueError("Completion endpoint base URL is not configured (LLM_BASE_URL)")

        api_key = api_key if api_key is not None else settings.LLM_API_KEY
        self.model = model or settings.LLM_MODEL
        self._temperature = temperature if temperature is not None else settings.LLM_TEMPERATURE
        self._max_tokens = max_tokens if max_tokens is not None else settings.LLM_MAX_TOKENS
        self._timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        self._max_retries = max_retries if max_retries is not None else settings.LLM_MAX_RETRIES
        self._initial_delay = initial_delay if initial_delay is not None else settings.LLM_RETRY_INITIAL_DELAY
        self._max_delay = max_delay if max_delay is not None else settings.LLM_RETRY_MAX_DELAY
        self._backoff_factor = backoff_factor if backoff_factor is not None else settings.LLM_RETRY_BACKOFF
        self._sleep = sleep or time.sleep

        conn_timeout = connect_timeout if connect_timeout is not None else settings.LLM_CONNECT_TIMEOUT
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        # httpx limits each phase (connect, read, write, pool), not the whole call.
        self._client = httpx.Client(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(float(self._timeout), connect=float(conn_timeout)),
        )

    def close(self):
        self._client.close()

    def __enter__(self) -> "CompletionClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def complete(self, messages: Iterable[ChatMessage]) -> CompletionResponse:
        """Run one logical completion call with bounded retries.

        Raises LLMError with the classified code of the last failure once
        retries are exhausted or a non-retryable failure occurs.
        """
        request = CompletionRequest(
            model=self.model,
            messages=list(messages),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        payload = request.model_dump()

        retrying = Retrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self._max_retries + 1),
            wait=self._wait,
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

        start = time.monotonic()
        attempts = 0
        try:
            for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    response = self._send(payload)
        except LLMError as e:
            e.attempts = attempts
            raise

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info("Completion received in %dms (attempt %d, model=%s)", elapsed_ms, attempts, self.model)
        return response.model_copy(update={"attempts": attempts})

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return backoff_delay(
            retry_state.attempt_number - 1,
            self._initial_delay,
            self._max_delay,
            self._backoff_factor,
            retry_after=getattr(error, "retry_after", None),
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Completion attempt %d/%d failed (%s: %s), retrying in %.2fs",
            retry_state.attempt_number,
            self._max_retries + 1,
            error.code.value if isinstance(error, LLMError) else type(error).__name__,
            error,
            retry_state.next_action.sleep,  # type: ignore[union-attr]
        )

    def _send(self, payload: dict) -> CompletionResponse:
        """Send a single completion request and decode the first choice."""
        try:
            resp = self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            logger.warning("Completion request timed out: %s", e)
            raise LLMError(f"Request timeout after {self._timeout}s", LLMErrorCode.TIMEOUT) from e
        except httpx.RequestError as e:
            logger.warning("Completion endpoint connection failed: %s", e)
            raise LLMError(
                f"Network error: {e}",
                LLMErrorCode.NETWORK_ERROR,
                details={"original_error": str(e)},
            ) from e

        if not resp.is_success:
            raise self._error_from_response(resp)

        try:
            body = resp.json()
        except ValueError as e:
            raise LLMError(
                "Completion endpoint returned malformed JSON",
                LLMErrorCode.INVALID_RESPONSE,
                status_code=resp.status_code,
                details={"body": resp.text[:500]},
            ) from e

        choices = body.get("choices") if isinstance(body, dict) else None
        if not isinstance(choices, list) or not choices:
            raise LLMError("No choices in LLM response", LLMErrorCode.INVALID_RESPONSE, resp.status_code)

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise LLMError("No content in LLM response", LLMErrorCode.INVALID_RESPONSE, resp.status_code)

        usage = None
        if isinstance(body.get("usage"), dict):
            try:
                usage = TokenUsage.model_validate(body["usage"])
            except ValidationError:
                logger.debug("Ignoring unreadable usage block: %s", body["usage"])

        model = body.get("model")
        return CompletionResponse(content=content, model=model if isinstance(model, str) else None, usage=usage)

    def _error_from_response(self, resp: httpx.Response) -> LLMError:
        code = classify_status(resp.status_code)
        message = f"API error: {resp.status_code} {resp.reason_phrase}".rstrip()
        try:
            error_body = resp.json()
        except ValueError:
            error_body = None
        if isinstance(error_body, dict) and isinstance(error_body.get("error"), dict):
            provider_message = error_body["error"].get("message")
            if isinstance(provider_message, str) and provider_message.strip():
                message = provider_message

        retry_after = None
        if code == LLMErrorCode.RATE_LIMIT:
            retry_after = parse_retry_after(resp.headers.get("Retry-After"))

        log = logger.error if code == LLMErrorCode.AUTHENTICATION_ERROR else logger.warning
        log("Completion endpoint returned %d (%s): %s", resp.status_code, code.value, message)
        return LLMError(message, code, status_code=resp.status_code, retry_after=retry_after)

    def health(self) -> dict:
        """Check the endpoint's model listing. Returns a status dict, never raises."""
        try:
            resp = self._client.get("/models", timeout=10.0)
        except httpx.HTTPError as e:
            logger.warning("Completion endpoint health check failed: %s", e)
            return {"status": "unreachable", "error": str(e)}
        return {
            "status": "reachable" if resp.is_success else "error",
            "status_code": resp.status_code,
            "model": self.model,
        }
