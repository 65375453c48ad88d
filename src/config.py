"""
Centralized configuration for the content pipeline.

All settings are loaded from environment variables with sensible defaults.
Pydantic Settings provides validation and type coercion; static tables
(task routing, plan rate limits, extra model prices) come from YAML files in
the config/ directory.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env then .env.local (so .env.local overrides).
_repo_root = Path(__file__).resolve().parent.parent
load_dotenv(_repo_root / ".env")
_env_local = _repo_root / ".env.local"
if _env_local.exists():
    load_dotenv(_env_local, override=True)


class LLMConfig(BaseSettings):
    """Backend selection, credentials and per-call transport limits."""

    # openai | anthropic | gemini | mock
    provider: str = Field(default="openai", alias="LLM_PROVIDER")

    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    anthropic_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")
    google_api_key: str = Field(default="", alias="GOOGLE_API_KEY")

    # Shared generation params
    temperature: float = Field(default=0.7, alias="LLM_TEMPERATURE")
    max_tokens: int = Field(default=4096, alias="LLM_MAX_TOKENS")

    # Transport
    request_timeout_seconds: float = Field(default=55.0, alias="LLM_REQUEST_TIMEOUT")
    max_attempts: int = Field(default=3, alias="LLM_MAX_ATTEMPTS")
    max_backoff_seconds: float = Field(default=60.0, alias="LLM_MAX_BACKOFF")

    def api_key_for(self, provider: str) -> str:
        """Credential for the given provider name ('' when unset)."""
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "gemini": self.google_api_key,
        }.get(provider, "")


class PipelineConfig(BaseSettings):
    """Content pipeline behavior."""

    target_word_count: int = Field(default=2000, alias="TARGET_WORD_COUNT")
    # Return the last good artifact inside PipelineStepError when a step fails
    allow_partial_results: bool = Field(default=True, alias="ALLOW_PARTIAL_RESULTS")
    default_plan: str = Field(default="pro", alias="DEFAULT_PLAN")
    default_tenant: str = Field(default="default", alias="DEFAULT_TENANT")


class ObservabilityConfig(BaseSettings):
    """Logging and Prometheus metrics."""

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    metrics_enabled: bool = Field(default=False, alias="PROMETHEUS_METRICS_ENABLED")
    metrics_port: int = Field(default=8000, alias="PROMETHEUS_METRICS_PORT")


class YAMLConfigLoader:
    """Loads YAML config files from a configurable directory."""

    def __init__(self, config_dir: str | Path = "config") -> None:
        self._dir = _repo_root / config_dir

    def load(self, filename: str) -> dict[str, Any]:
        """Load a YAML file; returns empty dict if the file is missing or not a mapping."""
        path = self._dir / filename
        if not path.exists():
            return {}
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}


class Settings(BaseSettings):
    """Root settings container; access all config from one object."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    # YAML-loaded config (populated in get_settings)
    model_routing: dict[str, Any] = Field(default_factory=dict)
    rate_limits: dict[str, Any] = Field(default_factory=dict)
    pricing: dict[str, Any] = Field(default_factory=dict)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton settings instance. Cached after first call."""
    settings = Settings()
    loader = YAMLConfigLoader()
    settings.model_routing = loader.load("models.yaml")
    settings.rate_limits = loader.load("rate_limits.yaml")
    settings.pricing = loader.load("pricing.yaml")
    return settings
