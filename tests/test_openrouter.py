"""
Tests for the OpenRouter chat completion client.

All traffic goes through httpx.MockTransport; nothing reaches the network.
"""

import json

import httpx
import pytest

from speechkarma.core.openrouter import (
    OpenRouterAuthError,
    OpenRouterClient,
    OpenRouterError,
    OpenRouterModelError,
    OpenRouterNetworkError,
    OpenRouterParseError,
    OpenRouterRateLimitError,
    OpenRouterValidationError,
    validate_request,
)

from conftest import completion_body, make_openrouter_client


MODEL = "openai/gpt-4o-mini"

RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "statement_summary",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {"summary": {"type": "string"}},
            "required": ["summary"],
        },
    },
}


def respond(status: int, **kwargs):
    return lambda request: httpx.Response(status, **kwargs)


class TestValidateRequest:

    def test_valid_request_passes(self):
        validate_request(MODEL, "Summarize", RESPONSE_FORMAT, {"temperature": 0.3, "max_tokens": 150})

    def test_collects_every_problem(self):
        with pytest.raises(OpenRouterValidationError) as exc_info:
            validate_request("", "  ", parameters={"temperature": 3, "max_tokens": 0})
        errors = exc_info.value.validation_errors
        assert "Model name is required" in errors
        assert "User message is required" in errors
        assert "Temperature must be between 0 and 2" in errors
        assert "max_tokens must be at least 1" in errors
        assert exc_info.value.message.startswith("Configuration validation failed:")

    @pytest.mark.parametrize("params", [
        {"top_p": 1.5},
        {"frequency_penalty": -3},
        {"presence_penalty": 2.5},
    ])
    def test_parameter_ranges(self, params):
        with pytest.raises(OpenRouterValidationError):
            validate_request(MODEL, "Summarize", parameters=params)

    def test_response_format_shape(self):
        with pytest.raises(OpenRouterValidationError) as exc_info:
            validate_request(MODEL, "Summarize", {"type": "json_object", "json_schema": {}})
        errors = exc_info.value.validation_errors
        assert "response_format.type must be 'json_schema'" in errors
        assert "response_format.json_schema.name is required" in errors
        assert "response_format.json_schema.schema is required" in errors


class TestChatCompletion:

    def test_plain_text_content(self):
        client = make_openrouter_client(respond(200, json=completion_body("A plain answer.")))
        result = client.chat_completion(MODEL, "Say something")
        assert result.content == "A plain answer."
        assert result.model == MODEL
        assert result.finish_reason == "stop"
        assert result.usage["total_tokens"] == 52

    def test_json_content_decoded(self):
        client = make_openrouter_client(
            respond(200, json=completion_body({"summary": "Short."}))
        )
        result = client.chat_completion(MODEL, "Summarize", response_format=RESPONSE_FORMAT)
        assert result.content == {"summary": "Short."}

    def test_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=completion_body("ok"))

        client = make_openrouter_client(handler)
        client.chat_completion(
            MODEL,
            "User prompt",
            system_message="System prompt",
            parameters={"temperature": 0.3, "max_tokens": None},
        )

        request = seen[0]
        assert str(request.url) == "https://openrouter.test/api/v1/chat/completions"
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer test-key"
        assert request.headers["Content-Type"] == "application/json"

        payload = json.loads(request.content)
        assert payload["messages"] == [
            {"role": "system", "content": "System prompt"},
            {"role": "user", "content": "User prompt"},
        ]
        assert payload["temperature"] == 0.3
        assert "max_tokens" not in payload
        assert "response_format" not in payload

    def test_missing_key_fails_before_sending(self):
        seen = []
        client = OpenRouterClient(
            api_key=None,
            transport=httpx.MockTransport(lambda request: seen.append(request)),
        )
        with pytest.raises(OpenRouterAuthError):
            client.chat_completion(MODEL, "Summarize")
        assert seen == []

    def test_context_manager_closes(self):
        with make_openrouter_client(respond(200, json=completion_body("ok"))) as client:
            client.chat_completion(MODEL, "Summarize")
        assert client._client is None


class TestEndpoint:

    @pytest.mark.parametrize("base_url", [
        "https://openrouter.ai/api/v1",
        "https://openrouter.ai/api/v1/",
        "https://openrouter.ai/api/v1/chat/completions",
    ])
    def test_endpoint_composition(self, base_url):
        client = OpenRouterClient(api_key="k", base_url=base_url)
        assert client.endpoint == "https://openrouter.ai/api/v1/chat/completions"


class TestErrorMapping:

    @pytest.mark.parametrize("status,error_cls", [
        (401, OpenRouterAuthError),
        (403, OpenRouterAuthError),
        (404, OpenRouterModelError),
        (429, OpenRouterRateLimitError),
        (400, OpenRouterValidationError),
    ])
    def test_status_codes(self, status, error_cls):
        client = make_openrouter_client(respond(status, json={"error": {"message": "nope"}}))
        with pytest.raises(error_cls) as exc_info:
            client.chat_completion(MODEL, "Summarize")
        assert exc_info.value.message == "nope"

    @pytest.mark.parametrize("status", [500, 502, 503])
    def test_service_unavailable(self, status):
        client = make_openrouter_client(respond(status, json={}))
        with pytest.raises(OpenRouterError) as exc_info:
            client.chat_completion(MODEL, "Summarize")
        assert exc_info.value.message == "OpenRouter service unavailable"
        assert exc_info.value.status_code == status

    def test_other_status_keeps_code(self):
        client = make_openrouter_client(respond(418, json={}))
        with pytest.raises(OpenRouterError) as exc_info:
            client.chat_completion(MODEL, "Summarize")
        assert exc_info.value.status_code == 418

    def test_model_error_names_model(self):
        client = make_openrouter_client(respond(404, json={}))
        with pytest.raises(OpenRouterModelError) as exc_info:
            client.chat_completion(MODEL, "Summarize")
        assert exc_info.value.model_id == MODEL

    def test_retry_after_from_body(self):
        client = make_openrouter_client(respond(429, json={"retry_after": 12}))
        with pytest.raises(OpenRouterRateLimitError) as exc_info:
            client.chat_completion(MODEL, "Summarize")
        assert exc_info.value.retry_after == 12.0

    def test_retry_after_from_header(self):
        client = make_openrouter_client(respond(429, json={}, headers={"Retry-After": "30"}))
        with pytest.raises(OpenRouterRateLimitError) as exc_info:
            client.chat_completion(MODEL, "Summarize")
        assert exc_info.value.retry_after == 30.0

    def test_non_json_error_body_uses_status(self):
        client = make_openrouter_client(respond(502, text="Bad Gateway"))
        with pytest.raises(OpenRouterError) as exc_info:
            client.chat_completion(MODEL, "Summarize")
        assert exc_info.value.status_code == 502

    def test_non_json_success_body(self):
        client = make_openrouter_client(respond(200, text="<html></html>"))
        with pytest.raises(OpenRouterParseError) as exc_info:
            client.chat_completion(MODEL, "Summarize")
        assert exc_info.value.raw_content == "<html></html>"

    def test_unparseable_json_content(self):
        client = make_openrouter_client(respond(200, json=completion_body("{not json")))
        with pytest.raises(OpenRouterParseError):
            client.chat_completion(MODEL, "Summarize", response_format=RESPONSE_FORMAT)

    def test_no_choices(self):
        client = make_openrouter_client(respond(200, json={"choices": []}))
        with pytest.raises(OpenRouterError, match="no choices"):
            client.chat_completion(MODEL, "Summarize")

    @pytest.mark.parametrize("body", [
        {"model": "m", "choices": {"first": {}}},
        {"model": "m", "choices": "none"},
        {"model": "m", "choices": ["not a choice"]},
        ["not", "an", "object"],
    ])
    def test_malformed_choices(self, body):
        """Unexpected response shapes are reported as OpenRouterError, never KeyError."""
        client = make_openrouter_client(respond(200, json=body))
        with pytest.raises(OpenRouterError):
            client.chat_completion(MODEL, "Summarize")

    def test_empty_content(self):
        body = completion_body("")
        client = make_openrouter_client(respond(200, json=body))
        with pytest.raises(OpenRouterError, match="no message content"):
            client.chat_completion(MODEL, "Summarize")

    def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_openrouter_client(handler)
        with pytest.raises(OpenRouterNetworkError) as exc_info:
            client.chat_completion(MODEL, "Summarize")
        assert isinstance(exc_info.value.original_error, httpx.ConnectError)

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_openrouter_client(handler)
        with pytest.raises(OpenRouterNetworkError, match="timed out"):
            client.chat_completion(MODEL, "Summarize")
