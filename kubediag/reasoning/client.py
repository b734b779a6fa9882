"""Reasoning client for OpenAI-compatible chat-completions endpoints.

Sends one diagnosis prompt, then parses the model's JSON answer into a
:class:`DiagnosisResult`. Every call is a single attempt: transport errors,
non-200 responses and malformed output are raised as typed
:class:`ReasoningError` subclasses and never retried here.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from kubediag.models.config import ReasoningConfig
from kubediag.observability.metrics import reasoning_duration_seconds, reasoning_requests_total
from kubediag.reasoning.prompts import build_messages

_logger = structlog.get_logger(component="reasoning_client")

_RAW_CONTENT_MAX_CHARS: int = 2_048
_REQUIRED_KEYS: tuple[str, ...] = ("rootCause", "suggestion")


@dataclass(frozen=True)
class DiagnosisResult:
    """Root cause and suggested fix returned by the reasoning service."""

    root_cause: str
    suggestion: str


class ReasoningError(Exception):
    """Base class for every failure of a reasoning call."""


class ReasoningConfigError(ReasoningError):
    """Raised when the endpoint URL or API key is missing or the URL is invalid."""


class ReasoningUnavailableError(ReasoningError):
    """Raised when the endpoint cannot be reached (DNS, connection refused, reset)."""


class ReasoningTimeoutError(ReasoningError):
    """Raised when the HTTP request exceeds the configured timeout."""


class ReasoningStatusError(ReasoningError):
    """Raised when the endpoint answers with a non-200 status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"reasoning endpoint returned HTTP {status_code}")
        self.status_code = status_code


class ReasoningParseError(ReasoningError):
    """Raised when the response envelope or the model's JSON cannot be parsed.

    ``raw_content`` holds the offending text, capped for log safety.
    """

    def __init__(self, message: str, raw_content: str = "") -> None:
        capped = _cap_raw_content(raw_content)
        super().__init__(f"{message}; raw content: {capped!r}" if raw_content else message)
        self.raw_content = capped


class ReasoningClient:
    """Calls the reasoning endpoint with a persistent httpx connection pool.

    The caller is responsible for calling :meth:`aclose` during shutdown.
    """

    def __init__(self, config: ReasoningConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(float(config.http_timeout_seconds)),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )

    async def diagnose(self, pod_name: str, trigger_reason: str, logs: str) -> DiagnosisResult:
        """Ask the reasoning service why *pod_name* failed.

        Raises:
            ReasoningConfigError: endpoint or API key missing, or the URL is invalid.
            ReasoningUnavailableError: the endpoint could not be reached.
            ReasoningTimeoutError: the request timed out.
            ReasoningStatusError: the endpoint returned a non-200 status.
            ReasoningParseError: the response could not be parsed.
        """
        if not self._config.endpoint or not self._config.api_key:
            reasoning_requests_total.labels(outcome="config_error").inc()
            raise ReasoningConfigError("reasoning endpoint URL or API key is not configured")

        payload = {
            "model": self._config.model,
            "messages": build_messages(pod_name, trigger_reason, logs),
            "temperature": self._config.temperature,
            "responseFormat": {"type": "json_object"},
        }

        start = time.monotonic()
        try:
            content = await self._post(payload)
            result = parse_content(content)
        except ReasoningError as exc:
            reasoning_requests_total.labels(outcome=_outcome_label(exc)).inc()
            _logger.warning("reasoning_call_failed", pod=pod_name, error=str(exc))
            raise
        finally:
            reasoning_duration_seconds.observe(time.monotonic() - start)

        reasoning_requests_total.labels(outcome="success").inc()
        _logger.info(
            "reasoning_call_complete",
            pod=pod_name,
            latency_ms=int((time.monotonic() - start) * 1000),
        )
        return result

    async def _post(self, payload: dict[str, Any]) -> str:
        """POST the payload and return ``choices[0].message.content``."""
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_key}",
        }
        try:
            response = await self._client.post(self._config.endpoint, json=payload, headers=headers)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            raise ReasoningConfigError(f"invalid reasoning endpoint URL {self._config.endpoint!r}: {exc}") from exc
        except httpx.TimeoutException as exc:
            raise ReasoningTimeoutError(f"reasoning request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise ReasoningUnavailableError(f"reasoning endpoint unreachable: {exc}") from exc
        except httpx.DecodingError as exc:
            raise ReasoningParseError(f"response body could not be decoded: {exc}") from exc
        except httpx.RequestError as exc:
            raise ReasoningUnavailableError(f"reasoning request failed: {exc}") from exc

        if response.status_code != 200:
            raise ReasoningStatusError(response.status_code)

        try:
            body = response.json()
        except httpx.DecodingError as exc:
            raise ReasoningParseError(f"response body could not be decoded: {exc}") from exc
        except ValueError as exc:
            raise ReasoningParseError(f"response body is not JSON: {exc}", response.text) from exc

        return extract_content(body)

    async def aclose(self) -> None:
        """Close the underlying HTTP client and release connections."""
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def extract_content(body: object) -> str:
    """Pull the first choice's message content out of a completion envelope."""
    if not isinstance(body, dict):
        raise ReasoningParseError("response envelope is not a JSON object", json.dumps(body, default=str))
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ReasoningParseError("response contains no choices", json.dumps(body, default=str))
    try:
        content = choices[0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ReasoningParseError(f"unexpected response structure: {exc}", json.dumps(body, default=str)) from exc
    if not isinstance(content, str):
        raise ReasoningParseError("message content is not a string", json.dumps(content, default=str))
    return content


def parse_content(content: str) -> DiagnosisResult:
    """Parse the model's JSON answer into a :class:`DiagnosisResult`.

    Both ``rootCause`` and ``suggestion`` must be present as strings; a
    partial answer is rejected like a malformed one.
    """
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ReasoningParseError(f"diagnosis content is not valid JSON: {exc}", content) from exc

    if not isinstance(parsed, dict):
        raise ReasoningParseError(f"expected a JSON object, got {type(parsed).__name__}", content)

    missing = [key for key in _REQUIRED_KEYS if not isinstance(parsed.get(key), str)]
    if missing:
        raise ReasoningParseError(f"diagnosis content missing string field(s): {', '.join(missing)}", content)

    return DiagnosisResult(root_cause=parsed["rootCause"], suggestion=parsed["suggestion"])


def _cap_raw_content(text: str) -> str:
    if len(text) <= _RAW_CONTENT_MAX_CHARS:
        return text
    return text[:_RAW_CONTENT_MAX_CHARS] + " [TRUNCATED]"


def _outcome_label(exc: ReasoningError) -> str:
    if isinstance(exc, ReasoningConfigError):
        return "config_error"
    if isinstance(exc, ReasoningTimeoutError):
        return "timeout"
    if isinstance(exc, ReasoningUnavailableError):
        return "unavailable"
    if isinstance(exc, ReasoningStatusError):
        return "http_error"
    return "parse_error"
