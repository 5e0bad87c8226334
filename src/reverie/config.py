"""Configuration for Reverie.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./reverie.yaml``
  3. ``~/.config/reverie/config.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

_logger = logging.getLogger(__name__)

_API_TYPES = ("openai", "azure_responses", "gemini")


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class ProviderSpec:
    """One backend in the fallback chain.

    ``models`` is an ordered list; index 0 is the provider's default model.
    A request naming another listed model uses that one instead.
    """

    name: str = "openai"
    api_type: str = "openai"  # "openai" | "azure_responses" | "gemini"
    url: str = ""  # empty = adapter default endpoint
    api_key: str = ""
    models: list[str] = field(default_factory=lambda: ["gpt-4o-mini"])
    enabled: bool = True
    supports_tools: bool = True
    max_retries: int | None = None  # None = OrchestratorConfig.max_retries
    api_version: str = ""
    extra_params: dict[str, Any] = field(default_factory=dict)

    # Client-side limits (0 = unlimited); updated from x-ratelimit-* headers
    requests_per_minute: int = 0
    tokens_per_minute: int = 0
    burst_tokens: int = 0
    # Concurrent requests allowed against this provider (0 = unlimited)
    max_concurrency: int = 0

    @property
    def default_model(self) -> str:
        return self.models[0] if self.models else ""

    def model_for(self, requested: str | None) -> str:
        """Return *requested* if this provider serves it, else the default."""
        if requested and requested in self.models:
            return requested
        return self.default_model


@dataclass
class OrchestratorConfig:
    """Top-level config for Reverie."""

    # Ordered fallback chain, primary first
    providers: list[ProviderSpec] = field(default_factory=list)

    # Extra attempts per provider for retryable failures
    max_retries: int = 2
    max_backoff: float = 30.0
    # Random extra delay (seconds) added to each backoff
    backoff_jitter: float = 0.5

    # Per-attempt timeout in seconds (0 = none)
    attempt_timeout: float = 120.0

    # Tool loop
    max_iterations: int = 5

    # Per-tool execution timeout in seconds (0 = none)
    tool_timeout: float = 30.0
    # Consecutive failures before a tool is disabled (0 = never)
    tool_failure_threshold: int = 3
    # Seconds a disabled tool stays disabled
    tool_reset_after: float = 60.0

    # Execution history (0 = unbounded)
    history_capacity: int = 1000

    @property
    def enabled_providers(self) -> list[ProviderSpec]:
        return [p for p in self.providers if p.enabled]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./reverie.yaml"),
    Path.home() / ".config" / "reverie" / "config.yaml",
]


def _parse_provider(raw: dict[str, Any]) -> ProviderSpec:
    api_type = raw.get("api_type", "openai")
    if api_type not in _API_TYPES:
        raise ValueError(
            f"Unknown api_type {api_type!r} for provider "
            f"{raw.get('name', '?')!r} (expected one of {', '.join(_API_TYPES)})"
        )
    api_key = raw.get("api_key", "")
    key_env = raw.get("api_key_env")
    if not api_key and key_env:
        api_key = os.environ.get(key_env, "")
        if not api_key:
            _logger.warning("Environment variable %s is not set", key_env)
    models = raw.get("models") or []
    if isinstance(models, str):
        models = [models]
    return ProviderSpec(
        name=raw.get("name", api_type),
        api_type=api_type,
        url=raw.get("url", ""),
        api_key=api_key,
        models=list(models),
        enabled=bool(raw.get("enabled", True)),
        supports_tools=bool(raw.get("supports_tools", True)),
        max_retries=raw.get("max_retries"),
        api_version=str(raw.get("api_version", "")),
        extra_params=raw.get("extra_params", {}) or {},
        requests_per_minute=int(raw.get("requests_per_minute", 0)),
        tokens_per_minute=int(raw.get("tokens_per_minute", 0)),
        burst_tokens=int(raw.get("burst_tokens", 0)),
        max_concurrency=int(raw.get("max_concurrency", 0)),
    )


def parse_config(raw: dict[str, Any]) -> OrchestratorConfig:
    """Build an :class:`OrchestratorConfig` from an already-parsed mapping."""
    providers = [_parse_provider(p) for p in raw.get("providers", []) or []]
    return OrchestratorConfig(
        providers=providers,
        max_retries=raw.get("max_retries", 2),
        max_backoff=float(raw.get("max_backoff", 30.0)),
        backoff_jitter=float(raw.get("backoff_jitter", 0.5)),
        attempt_timeout=float(raw.get("attempt_timeout", 120.0)),
        max_iterations=raw.get("max_iterations", 5),
        tool_timeout=float(raw.get("tool_timeout", 30.0)),
        tool_failure_threshold=int(raw.get("tool_failure_threshold", 3)),
        tool_reset_after=float(raw.get("tool_reset_after", 60.0)),
        history_capacity=raw.get("history_capacity", 1000),
    )


def load_config(path: str | Path | None = None) -> OrchestratorConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    OrchestratorConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return OrchestratorConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return OrchestratorConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    return parse_config(raw)
