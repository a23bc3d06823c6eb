"""
Configuration management for MetaIntent.

Sectioned dataclasses with JSON load/save and environment overrides.
A ``.env`` file at the project root is loaded on import.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .errors import ValidationError
from .types import LLMBackend, RetryConfig

# Auto-load .env from project root
_project_root = Path(__file__).parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


DEFAULT_CONFIG_PATH = Path.home() / ".metaintent" / "config.json"


def parse_backend(value: str | LLMBackend) -> LLMBackend:
    """Resolve a backend identifier, rejecting unknown names."""
    if isinstance(value, LLMBackend):
        return value
    try:
        return LLMBackend(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown LLM backend: {value}", field="backend") from None


@dataclass
class BackendConfig:
    """Primary/fallback backend pair and provider settings."""

    primary: str = LLMBackend.CLAUDE.value
    fallback: str = LLMBackend.NIM.value
    claude_model: str = "claude-sonnet-4-20250514"
    anthropic_api_key: str | None = None
    nim_base_url: str = "http://localhost:8000/v1"
    nim_model: str = "meta/llama-3.1-70b-instruct"
    nim_api_key: str | None = None
    request_timeout: float = 30.0

    @property
    def primary_backend(self) -> LLMBackend:
        return parse_backend(self.primary)

    @property
    def fallback_backend(self) -> LLMBackend:
        return parse_backend(self.fallback)


@dataclass
class CacheConfig:
    ttl_seconds: int = 60 * 60
    cache_dir: str | None = None


@dataclass
class LoopConfig:
    """Thresholds of the clarification loop."""

    clarify_threshold: int = 60
    ready_confidence: float = 0.7
    ready_score: int = 40
    max_rounds: int = 5
    analysis_timeout: float = 5.0
    max_questions_per_agent: int = 2


@dataclass
class StorageConfig:
    db_path: str | None = None  # None keeps snapshots in memory
    snapshot_ttl_seconds: int = 24 * 60 * 60


@dataclass
class LoggingConfig:
    level: str = "INFO"
    buffer_size: int = 10
    log_dir: str | None = None

    def level_number(self) -> int:
        """Stdlib logging level for ``level``; unknown names raise."""
        try:
            return logging.getLevelNamesMapping()[self.level.upper()]
        except KeyError:
            raise ValidationError(f"Unknown log level: {self.level}", field="level") from None


@dataclass
class MetaIntentConfig:
    """Complete MetaIntent configuration."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> MetaIntentConfig:
        """Load configuration from file."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MetaIntentConfig:
        config = cls(
            backend=BackendConfig(**data.get("backend", {})),
            retry=RetryConfig(**data.get("retry", {})),
            cache=CacheConfig(**data.get("cache", {})),
            loop=LoopConfig(**data.get("loop", {})),
            storage=StorageConfig(**data.get("storage", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )
        config.validate()
        return config

    @classmethod
    def from_env(cls, base: MetaIntentConfig | None = None) -> MetaIntentConfig:
        """Apply environment overrides on top of ``base`` (or defaults)."""
        config = base or cls()
        env = os.environ

        if "METAINTENT_PRIMARY_BACKEND" in env:
            config.backend.primary = env["METAINTENT_PRIMARY_BACKEND"]
        if "METAINTENT_FALLBACK_BACKEND" in env:
            config.backend.fallback = env["METAINTENT_FALLBACK_BACKEND"]
        config.backend.anthropic_api_key = env.get(
            "ANTHROPIC_API_KEY", config.backend.anthropic_api_key
        )
        config.backend.claude_model = env.get("CLAUDE_MODEL_ID", config.backend.claude_model)
        config.backend.nim_base_url = env.get("NIM_BASE_URL", config.backend.nim_base_url)
        config.backend.nim_model = env.get("NIM_MODEL", config.backend.nim_model)
        config.backend.nim_api_key = env.get("NIM_API_KEY", config.backend.nim_api_key)
        config.cache.cache_dir = env.get("METAINTENT_CACHE_DIR", config.cache.cache_dir)
        config.logging.log_dir = env.get("METAINTENT_LOG_DIR", config.logging.log_dir)
        config.logging.level = env.get("METAINTENT_LOG_LEVEL", config.logging.level)
        config.storage.db_path = env.get("METAINTENT_DB_PATH", config.storage.db_path)
        if "METAINTENT_MAX_ROUNDS" in env:
            try:
                config.loop.max_rounds = int(env["METAINTENT_MAX_ROUNDS"])
            except ValueError:
                raise ValidationError(
                    "METAINTENT_MAX_ROUNDS must be an integer", field="max_rounds"
                ) from None

        config.validate()
        return config

    def validate(self) -> None:
        """Reject settings the engine cannot run with."""
        parse_backend(self.backend.primary)
        parse_backend(self.backend.fallback)
        if self.loop.max_rounds < 1:
            raise ValidationError("max_rounds must be at least 1", field="max_rounds")
        if self.retry.max_attempts < 1:
            raise ValidationError("max_attempts must be at least 1", field="max_attempts")
        self.logging.level_number()

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)


# Default configuration instance
default_config = MetaIntentConfig()


__all__ = [
    "BackendConfig",
    "CacheConfig",
    "LoggingConfig",
    "LoopConfig",
    "MetaIntentConfig",
    "StorageConfig",
    "default_config",
    "parse_backend",
]
