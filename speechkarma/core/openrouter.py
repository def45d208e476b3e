"""
OpenRouter Chat Completion Client

A small synchronous client for the OpenAI-compatible chat completions
endpoint served by OpenRouter. It is the Content Augmentation Client used
by StatementService to summarise statements.

Every failure is reported as an OpenRouterError subclass:
- OpenRouterAuthError: missing key, 401/403
- OpenRouterValidationError: bad local configuration, or 400
- OpenRouterModelError: 404
- OpenRouterRateLimitError: 429 (carries retry_after when known)
- OpenRouterParseError: response body or content is not valid JSON
- OpenRouterNetworkError: transport failures and timeouts

Callers that treat the call as best-effort only need to catch
OpenRouterError.

Usage:
    with OpenRouterClient(api_key="sk-or-...") as client:
        result = client.chat_completion(
            model="openai/gpt-4o-mini",
            user_message="Summarize this.",
        )
        print(result.content)
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from ..observability import get_logger

logger = get_logger(__name__)


DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_APP_TITLE = "SpeechKarma"


# ============================================================
# EXCEPTIONS
# ============================================================

class OpenRouterError(Exception):
    """Base exception for all OpenRouter failures."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body


class OpenRouterAuthError(OpenRouterError):
    """API key is missing or was rejected."""

    def __init__(self, message: str = "OpenRouter API key is missing or invalid"):
        super().__init__(message, status_code=401)


class OpenRouterValidationError(OpenRouterError):
    """Request configuration was rejected, locally or by the API."""

    def __init__(self, message: str, validation_errors: Optional[list[str]] = None):
        super().__init__(message, status_code=400)
        self.validation_errors = validation_errors or []


class OpenRouterRateLimitError(OpenRouterError):
    """The API refused the request for rate limiting."""

    def __init__(
        self,
        message: str = "OpenRouter API rate limit exceeded",
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class OpenRouterModelError(OpenRouterError):
    """The requested model does not exist or is unavailable."""

    def __init__(self, message: str, model_id: Optional[str] = None):
        super().__init__(message, status_code=404)
        self.model_id = model_id


class OpenRouterParseError(OpenRouterError):
    """Response could not be parsed as JSON."""

    def __init__(self, message: str, raw_content: Optional[str] = None):
        super().__init__(message)
        self.raw_content = raw_content


class OpenRouterNetworkError(OpenRouterError):
    """The request never produced an HTTP response."""

    def __init__(
        self,
        message: str = "Network error while communicating with OpenRouter",
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.original_error = original_error


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass
class ChatCompletionResult:
    """
    One completed chat turn.

    content is a str, or the decoded JSON value when a response_format
    was requested.
    """
    content: Any
    model: str
    finish_reason: str
    usage: Optional[dict[str, Any]] = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


# ============================================================
# VALIDATION
# ============================================================

def validate_request(
    model: str,
    user_message: str,
    response_format: Optional[dict[str, Any]] = None,
    parameters: Optional[dict[str, Any]] = None,
) -> None:
    """
    Check a request before it is sent.

    Raises:
        OpenRouterValidationError listing every problem found
    """
    errors: list[str] = []

    if not model or not model.strip():
        errors.append("Model name is required")
    if not user_message or not user_message.strip():
        errors.append("User message is required")

    params = parameters or {}

    temperature = params.get("temperature")
    if temperature is not None and not 0 <= temperature <= 2:
        errors.append("Temperature must be between 0 and 2")

    max_tokens = params.get("max_tokens")
    if max_tokens is not None and max_tokens < 1:
        errors.append("max_tokens must be at least 1")

    top_p = params.get("top_p")
    if top_p is not None and not 0 <= top_p <= 1:
        errors.append("top_p must be between 0 and 1")

    for penalty in ("frequency_penalty", "presence_penalty"):
        value = params.get(penalty)
        if value is not None and not -2 <= value <= 2:
            errors.append(f"{penalty} must be between -2 and 2")

    if response_format is not None:
        if response_format.get("type") != "json_schema":
            errors.append("response_format.type must be 'json_schema'")
        json_schema = response_format.get("json_schema") or {}
        if not json_schema.get("name"):
            errors.append("response_format.json_schema.name is required")
        if not isinstance(json_schema.get("strict"), bool):
            errors.append("response_format.json_schema.strict must be a boolean")
        if not json_schema.get("schema"):
            errors.append("response_format.json_schema.schema is required")

    if errors:
        raise OpenRouterValidationError(
            f"Configuration validation failed: {', '.join(errors)}",
            errors,
        )


def _error_message(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str):
        return error
    if isinstance(body.get("message"), str):
        return body["message"]
    return None


def _retry_after(body: Any, headers: httpx.Headers) -> Optional[float]:
    if isinstance(body, dict) and isinstance(body.get("retry_after"), (int, float)):
        return float(body["retry_after"])
    header = headers.get("Retry-After")
    if header is not None:
        try:
            return float(header)
        except ValueError:
            return None
    return None


def raise_for_status(response: httpx.Response, body: Any, model: str) -> None:
    """Translate a non-2xx response into the matching OpenRouterError."""
    status = response.status_code
    if status < 400:
        return

    message = _error_message(body)

    if status in (401, 403):
        raise OpenRouterAuthError(message or "Authentication failed")
    if status == 404:
        raise OpenRouterModelError(message or f"Model not found: {model}", model)
    if status == 429:
        raise OpenRouterRateLimitError(
            message or "Rate limit exceeded",
            _retry_after(body, response.headers),
        )
    if status == 400:
        raise OpenRouterValidationError(message or "Invalid request")
    if status in (500, 502, 503):
        raise OpenRouterError(message or "OpenRouter service unavailable", status, body)
    raise OpenRouterError(message or f"API request failed with status {status}", status, body)


# ============================================================
# CLIENT
# ============================================================

class OpenRouterClient:
    """
    Synchronous OpenRouter client.

    The underlying httpx.Client is created lazily and reused; use the
    client as a context manager or call close() when done. Tests inject
    a transport (httpx.MockTransport) instead of touching the network.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 10.0,
        site_url: str = "http://localhost:8000",
        app_title: str = DEFAULT_APP_TITLE,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._site_url = site_url
        self._app_title = app_title
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.BaseTransport] = None) -> "OpenRouterClient":
        """Build a client from an AugmentationConfig."""
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout_seconds=config.timeout_seconds,
            site_url=config.site_url,
            app_title=config.app_title,
            transport=transport,
        )

    def __enter__(self) -> "OpenRouterClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    @property
    def endpoint(self) -> str:
        if self._base_url.endswith("/chat/completions"):
            return self._base_url
        return self._base_url + "/chat/completions"

    def _http(self) -> httpx.Client:
        if self._client is None:
            timeout = httpx.Timeout(
                self._timeout_seconds,
                connect=self._timeout_seconds,
                read=self._timeout_seconds,
                write=self._timeout_seconds,
            )
            self._client = httpx.Client(timeout=timeout, transport=self._transport)
        return self._client

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
            "HTTP-Referer": self._site_url,
            "X-Title": self._app_title,
        }

    def chat_completion(
        self,
        model: str,
        user_message: str,
        system_message: Optional[str] = None,
        response_format: Optional[dict[str, Any]] = None,
        parameters: Optional[dict[str, Any]] = None,
    ) -> ChatCompletionResult:
        """
        Run one chat completion.

        Args:
            model: Model id, e.g. "openai/gpt-4o-mini"
            user_message: The prompt
            system_message: Optional system prompt
            response_format: json_schema response format; when given the
                content is decoded as JSON
            parameters: temperature, max_tokens, top_p, penalties

        Raises:
            OpenRouterError (or a subclass) on any failure
        """
        if not self._api_key:
            raise OpenRouterAuthError("OPENROUTER_API_KEY environment variable is not set")

        validate_request(model, user_message, response_format, parameters)

        messages = []
        if system_message:
            messages.append({"role": "system", "content": system_message})
        messages.append({"role": "user", "content": user_message})

        payload: dict[str, Any] = {"model": model, "messages": messages}
        if response_format is not None:
            payload["response_format"] = response_format
        if parameters:
            payload.update({k: v for k, v in parameters.items() if v is not None})

        try:
            response = self._http().post(self.endpoint, headers=self._headers(), json=payload)
        except httpx.TimeoutException as e:
            raise OpenRouterNetworkError("Request to OpenRouter timed out", e) from e
        except httpx.HTTPError as e:
            raise OpenRouterNetworkError("Failed to communicate with OpenRouter API", e) from e

        try:
            body = response.json()
        except ValueError as e:
            if response.status_code >= 400:
                raise_for_status(response, None, model)
            raise OpenRouterParseError(
                "OpenRouter returned a non-JSON response", response.text
            ) from e

        raise_for_status(response, body, model)

        result = self._extract_result(body, expect_json=response_format is not None)
        logger.debug(
            "Chat completion finished",
            model=result.model,
            finish_reason=result.finish_reason,
        )
        return result

    @staticmethod
    def _extract_result(body: Any, expect_json: bool) -> ChatCompletionResult:
        choices = body.get("choices") if isinstance(body, dict) else None
        if not isinstance(choices, list) or not choices:
            raise OpenRouterError("API response contains no choices", response_body=body)

        choice = choices[0]
        if not isinstance(choice, dict):
            raise OpenRouterError("API response choice is malformed", response_body=body)
        message = choice.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not content:
            raise OpenRouterError("API response choice has no message content", response_body=body)

        if expect_json:
            try:
                content = json.loads(content)
            except (TypeError, ValueError) as e:
                raise OpenRouterParseError(
                    "Failed to parse JSON response from model", str(content)
                ) from e

        return ChatCompletionResult(
            content=content,
            model=body.get("model", ""),
            finish_reason=choice.get("finish_reason") or "unknown",
            usage=body.get("usage"),
            raw=body,
        )
