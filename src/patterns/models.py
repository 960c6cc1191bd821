"""Data models for learned patterns."""

from dataclasses import dataclass, field
from datetime import datetime

from shared_types import PatternType


@dataclass
class LearningPattern:
    pattern_name: str
    pattern_type: PatternType
    id: str = ""
    trigger_conditions: list[str] = field(default_factory=list)
    recommended_actions: list[str] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    usage_count: int = 0
    success_rate: float = 0.0
    failure_rate: float = 0.0
    confidence_score: float = 0.0
    last_used_at: datetime | None = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Recommendation:
    recommend: bool
    confidence: float
    reason: str
