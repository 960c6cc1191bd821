"""Pydantic configuration models for taskweave."""

import os
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

VALID_LLM_PROVIDERS = {"auto", "claude", "openai"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_cron(expr: str) -> str:
    """Validate cron expression format (5 fields)."""
    parts = expr.split()
    if len(parts) != 5:
        raise ValueError(f"Cron must have 5 fields, got {len(parts)}: {expr}")
    for i, part in enumerate(parts):
        if not re.match(r"^[\d\-,\*/]+$", part):
            raise ValueError(f"Invalid cron field {i}: {part}")
    return expr


def _unit_interval(name: str, v: float) -> float:
    if not 0.0 <= v <= 1.0:
        raise ValueError(f"{name} must be 0-1, got {v}")
    return v


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: str = "auto"
    model: Optional[str] = None  # None = the provider's extraction model
    api_key: Optional[str] = None
    embedding_api_key: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"
    timeout: float = 30.0
    enabled: bool = True

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v not in VALID_LLM_PROVIDERS:
            raise ValueError(f"Invalid LLM provider: {v}. Must be one of {VALID_LLM_PROVIDERS}")
        return v


class PathsConfig(BaseModel):
    """File paths configuration."""

    records_db: Path = Path("~/.taskweave/records.db")
    memory_db: Path = Path("~/.taskweave/memory.db")
    patterns_db: Path = Path("~/.taskweave/patterns.db")
    chroma_dir: Path = Path("~/.taskweave/chroma")
    log_file: Path = Path("~/.taskweave/taskweave.log")

    @model_validator(mode="after")
    def expand_paths(self):
        """Expand ~ in all paths."""
        for name in ("records_db", "memory_db", "patterns_db", "chroma_dir", "log_file"):
            setattr(self, name, getattr(self, name).expanduser())
        return self


class SyncConfig(BaseModel):
    """Sync pass defaults."""

    max_items: int = 50
    lookback_days: int = 7
    auto_apply: bool = False
    auto_apply_threshold: float = 0.9
    max_concurrency: int = 5
    success_threshold: float = 0.7

    @field_validator("auto_apply_threshold", "success_threshold")
    @classmethod
    def validate_threshold(cls, v: float, info) -> float:
        return _unit_interval(info.field_name, v)

    @field_validator("max_items", "lookback_days", "max_concurrency")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1, got {v}")
        return v


class ResolverConfig(BaseModel):
    """Entity resolution thresholds."""

    fuzzy_threshold: float = 0.6
    task_threshold: float = 0.5
    semantic_floor: float = 0.7

    @field_validator("fuzzy_threshold", "task_threshold", "semantic_floor")
    @classmethod
    def validate_threshold(cls, v: float, info) -> float:
        return _unit_interval(info.field_name, v)


class MemoryConfig(BaseModel):
    """Tiered memory configuration."""

    hot_threshold: float = 0.7
    hot_capacity: int = 500
    cleanup_importance: float = 0.2
    cleanup_days: int = 90
    use_chroma: bool = True

    @field_validator("hot_threshold", "cleanup_importance")
    @classmethod
    def validate_threshold(cls, v: float, info) -> float:
        return _unit_interval(info.field_name, v)


class PatternsConfig(BaseModel):
    """Pattern learning configuration."""

    enabled: bool = True
    match_similarity: float = 0.7

    @field_validator("match_similarity")
    @classmethod
    def validate_similarity(cls, v: float) -> float:
        return _unit_interval("match_similarity", v)


class RetryConfig(BaseModel):
    """Retry/backoff configuration for LLM and embedding calls."""

    max_attempts: int = 2
    min_wait: float = 1.0
    max_wait: float = 10.0


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_mode: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class ScheduleConfig(BaseModel):
    """Cron expressions for daemon jobs."""

    sync: str = "*/30 * * * *"
    decay: str = "0 3 * * *"
    consolidate: str = "30 3 * * *"
    cleanup: str = "0 4 * * 0"

    @field_validator("sync", "decay", "consolidate", "cleanup")
    @classmethod
    def validate_schedule(cls, v: str) -> str:
        return validate_cron(v)


class TaskweaveConfig(BaseModel):
    """Main configuration model."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    patterns: PatternsConfig = Field(default_factory=PatternsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @model_validator(mode="after")
    def expand_env_vars(self):
        """Expand ${VAR} patterns in API keys."""
        for name in ("api_key", "embedding_api_key"):
            key = getattr(self.llm, name)
            if key and key.startswith("${") and key.endswith("}"):
                setattr(self.llm, name, os.getenv(key[2:-1], ""))
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "TaskweaveConfig":
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        return self.model_dump(mode="python")
