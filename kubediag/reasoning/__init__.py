"""Client for the external reasoning (chat-completions) service."""

from kubediag.reasoning.client import (
    DiagnosisResult,
    ReasoningClient,
    ReasoningConfigError,
    ReasoningError,
    ReasoningParseError,
    ReasoningStatusError,
    ReasoningTimeoutError,
    ReasoningUnavailableError,
)

__all__ = [
    "DiagnosisResult",
    "ReasoningClient",
    "ReasoningConfigError",
    "ReasoningError",
    "ReasoningParseError",
    "ReasoningStatusError",
    "ReasoningTimeoutError",
    "ReasoningUnavailableError",
]
