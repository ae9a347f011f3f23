"""
Orchestrator Configuration
===========================

Typed configuration for the orchestrator and each backend service.

Values come from keyword arguments in code and tests, or from the
environment via ``OrchestratorConfig.from_env``. Environment names use the
``TRIPMETA_`` prefix; per-service values add the service kind, e.g.:

    TRIPMETA_MAX_CONCURRENT=5
    TRIPMETA_REQUEST_TIMEOUT_S=30
    TRIPMETA_TEXT_GENERATION_API_KEY=sk-...
    TRIPMETA_TEXT_GENERATION_REQUESTS_PER_MINUTE=60
    TRIPMETA_SPEECH_ENABLED=false
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

from tripmeta.core.types import ServiceKind

ENV_PREFIX = "TRIPMETA_"

# Placeholders shipped in sample configs; never valid credentials.
PLACEHOLDER_KEYS = frozenset({
    "your-openai-api-key",
    "your-azure-speech-key",
    "your-azure-vision-key",
    "changeme",
})

def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(f"{ENV_PREFIX}{name}", default)

def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")

def _env_float(name: str, default: float | None) -> float | None:
    raw = _env(name)
    if raw is None or raw.strip() == "":
        return default
    if raw.strip().lower() == "none":
        return None
    return float(raw)

def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    return default if raw is None or raw.strip() == "" else int(raw)

@dataclass
class ServiceConfig:
    """Configuration record for one backend, consumed once at registration."""

    api_key: str = ""
    endpoint: str = ""
    model: str = ""
    requests_per_minute: int = 60
    rate_window_s: float = 60.0
    timeout_s: float | None = None  # None: orchestrator request_timeout_s
    max_conversation_length: int = 20
    simulated_latency_s: float = 0.0
    enabled: bool = True
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def has_valid_credentials(self) -> bool:
        key = self.api_key.strip()
        return bool(key) and key.lower() not in PLACEHOLDER_KEYS

    @classmethod
    def from_env(cls, kind: ServiceKind) -> ServiceConfig:
        prefix = f"{kind.value.upper()}_"
        defaults = cls()
        return cls(
            api_key=_env(f"{prefix}API_KEY", "") or "",
            endpoint=_env(f"{prefix}ENDPOINT", "") or "",
            model=_env(f"{prefix}MODEL", "") or "",
            requests_per_minute=_env_int(f"{prefix}REQUESTS_PER_MINUTE", defaults.requests_per_minute),
            rate_window_s=_env_float(f"{prefix}RATE_WINDOW_S", defaults.rate_window_s) or defaults.rate_window_s,
            timeout_s=_env_float(f"{prefix}TIMEOUT_S", None),
            max_conversation_length=_env_int(
                f"{prefix}MAX_CONVERSATION_LENGTH", defaults.max_conversation_length
            ),
            simulated_latency_s=_env_float(f"{prefix}SIMULATED_LATENCY_S", 0.0) or 0.0,
            enabled=_env_bool(f"{prefix}ENABLED", True),
        )

@dataclass
class OrchestratorConfig:
    """Top-level orchestrator configuration."""

    max_concurrent: int = 5
    request_timeout_s: float | None = 30.0
    queue_timeout_s: float | None = None
    max_conversation_length: int = 20
    log_level: str = "INFO"
    log_dir: str | None = None
    services: dict[ServiceKind, ServiceConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {self.max_concurrent}")
        if self.request_timeout_s is not None and self.request_timeout_s <= 0:
            raise ValueError("request_timeout_s must be positive or None")
        if self.queue_timeout_s is not None and self.queue_timeout_s <= 0:
            raise ValueError("queue_timeout_s must be positive or None")

    def enabled_services(self) -> dict[ServiceKind, ServiceConfig]:
        return {k: c for k, c in self.services.items() if c.enabled}

    @classmethod
    def from_env(cls, env_file: str | None = None) -> OrchestratorConfig:
        """
        Load configuration from environment variables.

        Args:
            env_file: Optional path to a .env file loaded before reading.
                Existing environment variables take precedence.
        """
        if env_file:
            load_dotenv(env_file, override=False)

        return cls(
            max_concurrent=_env_int("MAX_CONCURRENT", 5),
            request_timeout_s=_env_float("REQUEST_TIMEOUT_S", 30.0),
            queue_timeout_s=_env_float("QUEUE_TIMEOUT_S", None),
            max_conversation_length=_env_int("MAX_CONVERSATION_LENGTH", 20),
            log_level=_env("LOG_LEVEL", "INFO") or "INFO",
            log_dir=_env("LOG_DIR") or None,
            services={kind: ServiceConfig.from_env(kind) for kind in ServiceKind},
        )
