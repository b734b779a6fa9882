"""Tests for kubediag.reasoning.client: request shape and typed errors.

The HTTP layer is replaced with ``httpx.MockTransport`` so that requests go
through the real httpx client without any network.
"""

from __future__ import annotations

import json

import httpx
import pytest

from kubediag.models.config import ReasoningConfig
from kubediag.reasoning.client import (
    DiagnosisResult,
    ReasoningClient,
    ReasoningConfigError,
    ReasoningParseError,
    ReasoningStatusError,
    ReasoningTimeoutError,
    ReasoningUnavailableError,
    extract_content,
    parse_content,
)
from kubediag.reasoning.prompts import SYSTEM_PROMPT, build_messages

_ENDPOINT = "https://llm.example.com/v1/chat/completions"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(**overrides: object) -> ReasoningConfig:
    values: dict[str, object] = {"endpoint": _ENDPOINT, "api_key": "sk-test", "model": "gpt-4o-mini"}
    values.update(overrides)
    return ReasoningConfig(**values)  # type: ignore[arg-type]


def _completion(content: str) -> dict[str, object]:
    return {"id": "cmpl-1", "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}


def _client(handler: httpx.MockTransport | None, config: ReasoningConfig | None = None) -> ReasoningClient:
    http_client = httpx.AsyncClient(transport=handler) if handler is not None else None
    return ReasoningClient(config or _config(), http_client=http_client)


# ---------------------------------------------------------------------------
# Successful calls
# ---------------------------------------------------------------------------


class TestDiagnoseSuccess:
    @pytest.mark.asyncio
    async def test_returns_parsed_result(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_completion('{"rootCause":"OOM","suggestion":"increase memory limit"}'))

        client = _client(httpx.MockTransport(handler))
        result = await client.diagnose("api-7d9f", "Pod entered failed state", "killed")
        assert result == DiagnosisResult(root_cause="OOM", suggestion="increase memory limit")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_request_payload_and_headers(self) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json=_completion('{"rootCause":"a","suggestion":"b"}'))

        client = _client(httpx.MockTransport(handler))
        await client.diagnose("api-7d9f", "container app exited with code 1: Error", "line1\nline2")
        await client.aclose()

        assert len(captured) == 1
        request = captured[0]
        assert request.method == "POST"
        assert str(request.url) == _ENDPOINT
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert request.headers["Content-Type"] == "application/json"

        body = json.loads(request.content)
        assert body["model"] == "gpt-4o-mini"
        assert body["temperature"] == 0.2
        assert body["responseFormat"] == {"type": "json_object"}
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert body["messages"][0]["content"] == SYSTEM_PROMPT
        user = body["messages"][1]["content"]
        assert "api-7d9f" in user
        assert "container app exited with code 1: Error" in user
        assert "line1\nline2" in user


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestDiagnoseErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [{"endpoint": ""}, {"api_key": ""}])
    async def test_missing_configuration_sends_nothing(self, overrides: dict[str, str]) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=_completion("{}"))

        client = _client(httpx.MockTransport(handler), config=_config(**overrides))
        with pytest.raises(ReasoningConfigError):
            await client.diagnose("p", "r", "l")
        assert calls == []

    @pytest.mark.asyncio
    async def test_non_200_status(self) -> None:
        client = _client(httpx.MockTransport(lambda request: httpx.Response(429, text="rate limited")))
        with pytest.raises(ReasoningStatusError) as exc_info:
            await client.diagnose("p", "r", "l")
        assert exc_info.value.status_code == 429
        assert "429" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(httpx.MockTransport(handler))
        with pytest.raises(ReasoningTimeoutError):
            await client.diagnose("p", "r", "l")

    @pytest.mark.asyncio
    async def test_connection_refused(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(httpx.MockTransport(handler))
        with pytest.raises(ReasoningUnavailableError):
            await client.diagnose("p", "r", "l")

    @pytest.mark.asyncio
    async def test_malformed_endpoint_url_is_config_error(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=_completion("{}"))

        client = _client(httpx.MockTransport(handler), config=_config(endpoint="http://[::1"))
        with pytest.raises(ReasoningConfigError, match="invalid reasoning endpoint URL"):
            await client.diagnose("p", "r", "l")
        assert calls == []

    @pytest.mark.asyncio
    async def test_corrupt_compressed_body_is_parse_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"content-encoding": "gzip"}, content=b"definitely not gzip")

        client = _client(httpx.MockTransport(handler))
        with pytest.raises(ReasoningParseError, match="could not be decoded"):
            await client.diagnose("p", "r", "l")

    @pytest.mark.asyncio
    async def test_other_request_errors_are_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.TooManyRedirects("redirect loop", request=request)

        client = _client(httpx.MockTransport(handler))
        with pytest.raises(ReasoningUnavailableError, match="redirect loop"):
            await client.diagnose("p", "r", "l")

    @pytest.mark.asyncio
    async def test_body_not_json(self) -> None:
        client = _client(httpx.MockTransport(lambda request: httpx.Response(200, text="<html>oops</html>")))
        with pytest.raises(ReasoningParseError):
            await client.diagnose("p", "r", "l")

    @pytest.mark.asyncio
    async def test_empty_choices(self) -> None:
        client = _client(httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": []})))
        with pytest.raises(ReasoningParseError, match="no choices"):
            await client.diagnose("p", "r", "l")

    @pytest.mark.asyncio
    async def test_content_not_json(self) -> None:
        client = _client(
            httpx.MockTransport(lambda request: httpx.Response(200, json=_completion("The pod ran out of memory.")))
        )
        with pytest.raises(ReasoningParseError) as exc_info:
            await client.diagnose("p", "r", "l")
        assert exc_info.value.raw_content == "The pod ran out of memory."


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


class TestParseContent:
    def test_round_trip_fields(self) -> None:
        result = parse_content('{"rootCause":"OOM","suggestion":"increase memory limit"}')
        assert result.root_cause == "OOM"
        assert result.suggestion == "increase memory limit"

    def test_partial_fields_rejected(self) -> None:
        with pytest.raises(ReasoningParseError, match="suggestion"):
            parse_content('{"rootCause":"OOM"}')

    def test_non_string_field_rejected(self) -> None:
        with pytest.raises(ReasoningParseError, match="rootCause"):
            parse_content('{"rootCause": 42, "suggestion": "x"}')

    def test_array_rejected(self) -> None:
        with pytest.raises(ReasoningParseError):
            parse_content('["OOM"]')

    def test_raw_content_is_capped(self) -> None:
        with pytest.raises(ReasoningParseError) as exc_info:
            parse_content("x" * 5000)
        assert len(exc_info.value.raw_content) < 2100
        assert exc_info.value.raw_content.endswith("[TRUNCATED]")


class TestExtractContent:
    def test_extracts_first_choice(self) -> None:
        assert extract_content(_completion("hello")) == "hello"

    def test_missing_message(self) -> None:
        with pytest.raises(ReasoningParseError):
            extract_content({"choices": [{"index": 0}]})

    def test_envelope_not_object(self) -> None:
        with pytest.raises(ReasoningParseError):
            extract_content(["not", "an", "object"])


class TestBuildMessages:
    def test_missing_trigger_reason_placeholder(self) -> None:
        messages = build_messages("api-7d9f", "", "logs")
        assert "Trigger reason: unspecified" in messages[1]["content"]
