"""Configuration loading for the handover engine conversation driver."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Tuple


def _get_env_int(name: str, default: int, minimum: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        number = int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid integer for {name}: {value}") from exc
    if number < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {number}")
    return number


@dataclass(frozen=True)
class EngineConfig:
    """Holds runtime configuration for the conversation driver."""

    openai_api_key: str
    openai_model: str = "gpt-4o"
    batch_models: Tuple[str, ...] = field(default_factory=tuple)
    max_retries: int = 3
    temperature: float = 0.3
    max_tokens: int = 4000
    log_level: str = "INFO"

    @property
    def effective_batch_models(self) -> Tuple[str, ...]:
        return self.batch_models or (self.openai_model,)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create configuration from environment variables with validation."""
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise EnvironmentError("OPENAI_API_KEY must be set")
        if not api_key.startswith("sk-"):
            raise ValueError("OPENAI_API_KEY should start with 'sk-'")

        model = os.getenv("HANDOVER_MODEL", "gpt-4o").strip()
        if not model:
            raise ValueError("HANDOVER_MODEL must not be empty")

        batch_raw = os.getenv("HANDOVER_BATCH_MODELS", "")
        batch_models = tuple(name.strip() for name in batch_raw.split(",") if name.strip())

        max_retries = _get_env_int("HANDOVER_MAX_RETRIES", 3, minimum=1)
        max_tokens = _get_env_int("HANDOVER_MAX_TOKENS", 4000, minimum=1)

        try:
            temperature = float(os.getenv("HANDOVER_TEMPERATURE", "0.3"))
            if not 0.0 <= temperature <= 2.0:
                raise ValueError("Temperature out of range")
        except ValueError as exc:
            raise ValueError("HANDOVER_TEMPERATURE must be a float between 0 and 2") from exc

        log_level = os.getenv("HANDOVER_LOG_LEVEL", "INFO").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"HANDOVER_LOG_LEVEL '{log_level}' is not a logging level")

        return cls(
            openai_api_key=api_key,
            openai_model=model,
            batch_models=batch_models,
            max_retries=max_retries,
            temperature=temperature,
            max_tokens=max_tokens,
            log_level=log_level,
        )
