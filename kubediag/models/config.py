"""Configuration data structures.

Built once at startup by :func:`kubediag.config.load_config` and handed to
components through their constructors.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ReasoningConfig:
    """Settings for the OpenAI-compatible reasoning endpoint.

    ``endpoint`` and ``api_key`` have no defaults; leaving either empty makes
    every diagnosis fail with a configuration error instead of calling out.
    """

    endpoint: str = ""
    api_key: str = ""
    model: str = ""
    temperature: float = 0.2
    # Wall-clock budget for one reasoning call, enforced by the controller.
    timeout_seconds: int = 45
    # Transport-level timeout for the underlying HTTP client.
    http_timeout_seconds: int = 30

    @property
    def configured(self) -> bool:
        return bool(self.endpoint and self.api_key)


@dataclass(frozen=True)
class ControllerConfig:
    """Reconciliation settings shared by both controllers."""

    workers: int = 4
    # Empty string watches every namespace.
    namespace: str = ""
    default_tail_lines: int = 100


@dataclass(frozen=True)
class LogConfig:
    level: str = "info"


@dataclass(frozen=True)
class APIConfig:
    enabled: bool = True
    port: int = 8081


@dataclass(frozen=True)
class KubeDiagConfig:
    """Top-level kubediag configuration."""

    reasoning: ReasoningConfig = field(default_factory=ReasoningConfig)
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    log: LogConfig = field(default_factory=LogConfig)
    api: APIConfig = field(default_factory=APIConfig)
