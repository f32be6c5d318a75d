"""Configuration models for the Helena agent core."""

from __future__ import annotations

import os
from typing import Any, Protocol

from pydantic import BaseModel, Field


class AgentConfig(BaseModel):
    """Configures the bounded ReAct loop per execution mode."""

    inline_max_steps: int = Field(default=5, ge=1)
    background_max_steps: int = Field(default=20, ge=1)
    inline_timeout_seconds: float = Field(default=30.0, gt=0.0)
    background_timeout_seconds: float = Field(default=180 * 60.0, gt=0.0)
    step_summary_chars: int = Field(default=200, ge=20)
    tool_result_step_chars: int = Field(default=500, ge=50)

    def max_steps(self, mode: str) -> int:
        return self.inline_max_steps if mode == "inline" else self.background_max_steps

    def timeout_seconds(self, mode: str) -> float:
        return (
            self.inline_timeout_seconds
            if mode == "inline"
            else self.background_timeout_seconds
        )


class TokenBudgetConfig(BaseModel):
    """Configures context-window accounting and eviction."""

    chars_per_token: float = Field(default=3.5, gt=0.0)
    message_overhead_tokens: int = Field(default=4, ge=0)
    default_context_window: int = Field(default=32_768, ge=1024)
    truncation_threshold: float = Field(default=0.75, gt=0.0, le=1.0)
    protected_tail_messages: int = Field(default=3, ge=0)


class RateLimitConfig(BaseModel):
    """Configures the fixed-window per-user request limiter."""

    key_prefix: str = "helena:ratelimit:"
    window_seconds: int = Field(default=3600, ge=1)
    default_limit_per_hour: int = Field(default=60, ge=1)
    setting_key: str = "ai.helena.rate_limit_per_hour"


class PipelineConfig(BaseModel):
    """Configures the Schriftsatz drafting pipeline."""

    min_intent_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    max_rag_context_chars: int = Field(default=4000, ge=200)
    gesetz_limit: int = Field(default=8, ge=1)
    urteil_limit: int = Field(default=5, ge=1)
    muster_limit: int = Field(default=3, ge=1)
    pending_ttl_days: int = Field(default=7, ge=1)
    max_rounds: int = Field(default=5, ge=1)


class ModelConfig(BaseModel):
    """Default model identifiers and setting keys for tier selection."""

    default_model: str = "qwen3.5:35b"
    global_model_key: str = "ai.provider.model"
    tier_key_template: str = "ai.helena.tier{tier}_model"


class HelenaSettings(BaseModel):
    """Groups every static configuration section."""

    agent: AgentConfig = Field(default_factory=AgentConfig)
    tokens: TokenBudgetConfig = Field(default_factory=TokenBudgetConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    models: ModelConfig = Field(default_factory=ModelConfig)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "HelenaSettings":
        """Build settings, applying `HELENA_*` environment overrides.

        Supported variables:
        - HELENA_INLINE_MAX_STEPS / HELENA_BACKGROUND_MAX_STEPS
        - HELENA_INLINE_TIMEOUT_SECONDS / HELENA_BACKGROUND_TIMEOUT_SECONDS
        - HELENA_RATE_LIMIT_PER_HOUR
        - HELENA_DEFAULT_MODEL
        """

        env = os.environ if environ is None else environ
        settings = cls()
        agent_overrides: dict[str, Any] = {}
        for name in (
            "inline_max_steps",
            "background_max_steps",
            "inline_timeout_seconds",
            "background_timeout_seconds",
        ):
            raw = env.get(f"HELENA_{name.upper()}")
            if raw:
                agent_overrides[name] = raw
        if agent_overrides:
            settings.agent = AgentConfig.model_validate(
                {**settings.agent.model_dump(), **agent_overrides}
            )

        raw_limit = env.get("HELENA_RATE_LIMIT_PER_HOUR")
        if raw_limit:
            settings.rate_limit = RateLimitConfig.model_validate(
                {**settings.rate_limit.model_dump(), "default_limit_per_hour": raw_limit}
            )

        default_model = env.get("HELENA_DEFAULT_MODEL")
        if default_model:
            settings.models = ModelConfig(
                **{**settings.models.model_dump(), "default_model": default_model}
            )
        return settings


class SettingsProvider(Protocol):
    """Deployment-editable key/value settings (admin settings table)."""

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for `key` or `default`."""


class InMemorySettings:
    """Dictionary-backed settings provider for tests and local runs."""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(values or {})

    def get(self, key: str, default: Any = None) -> Any:
        value = self._values.get(key)
        return default if value in (None, "") else value

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
