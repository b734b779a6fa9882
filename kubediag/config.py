"""Environment variable configuration loading.

The reasoning endpoint keeps the variable names operators already use for
OpenAI-compatible services (``AI_API_URL``, ``AI_API_KEY``, ``AI_MODEL``);
everything else lives under the ``KUBEDIAG_`` prefix.
"""

from __future__ import annotations

import os

from kubediag.models.config import (
    APIConfig,
    ControllerConfig,
    KubeDiagConfig,
    LogConfig,
    ReasoningConfig,
)

_VALID_LOG_LEVELS: frozenset[str] = frozenset({"debug", "info", "warning", "error"})
_TRUTHY: frozenset[str] = frozenset({"1", "true", "yes", "on"})
_FALSY: frozenset[str] = frozenset({"0", "false", "no", "off", ""})


def load_config() -> KubeDiagConfig:
    """Build a :class:`KubeDiagConfig` from the process environment.

    Raises:
        ValueError: if a value cannot be parsed (non-integer number, unknown
            log level, unrecognised boolean).
    """
    reasoning = ReasoningConfig(
        endpoint=_env_str("AI_API_URL"),
        api_key=_env_str("AI_API_KEY"),
        model=_env_str("AI_MODEL"),
        timeout_seconds=_env_int("KUBEDIAG_REASONING_TIMEOUT", default=45, minimum=5, maximum=300),
        http_timeout_seconds=_env_int("KUBEDIAG_HTTP_TIMEOUT", default=30, minimum=1, maximum=300),
    )
    controller = ControllerConfig(
        workers=_env_int("KUBEDIAG_WORKERS", default=4, minimum=1, maximum=64),
        namespace=_env_str("KUBEDIAG_WATCH_NAMESPACE"),
    )
    log = LogConfig(level=_env_log_level("KUBEDIAG_LOG_LEVEL", default="info"))
    api = APIConfig(
        enabled=_env_bool("KUBEDIAG_API_ENABLED", default=True),
        port=_env_int("KUBEDIAG_API_PORT", default=8081, minimum=1024, maximum=65535),
    )
    return KubeDiagConfig(reasoning=reasoning, controller=controller, log=log, api=api)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def _env_int(name: str, default: int, minimum: int, maximum: int) -> int:
    """Read an integer and clamp it into ``[minimum, maximum]``."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from exc
    return max(minimum, min(maximum, value))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    normalised = raw.strip().lower()
    if normalised in _TRUTHY:
        return True
    if normalised in _FALSY:
        return False
    raise ValueError(f"Invalid boolean for {name}: {raw!r}")


def _env_log_level(name: str, default: str) -> str:
    level = os.environ.get(name, default).strip().lower() or default
    if level not in _VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level for {name}: {level!r} (expected one of {sorted(_VALID_LOG_LEVELS)})")
    return level
