"""Data models for the tiered memory store."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class MemoryType(str, Enum):
    WORKING = "working"
    EPISODIC = "episodic"
    SEMANTIC = "semantic"
    PROCEDURAL = "procedural"


class MemoryCategory(str, Enum):
    CONVERSATION = "conversation"
    FACT = "fact"
    PREFERENCE = "preference"
    TASK = "task"
    PATTERN = "pattern"
    GENERAL = "general"


# Importance lost per decay run; working memory is ephemeral, procedural near-permanent
DECAY_RATES = {
    MemoryType.WORKING: 0.2,
    MemoryType.EPISODIC: 0.1,
    MemoryType.SEMANTIC: 0.05,
    MemoryType.PROCEDURAL: 0.02,
}

DECAY_FLOORS = {
    MemoryType.WORKING: 0.0,
    MemoryType.EPISODIC: 0.0,
    MemoryType.SEMANTIC: 0.0,
    MemoryType.PROCEDURAL: 0.3,
}

CATEGORY_TYPES = {
    MemoryCategory.CONVERSATION: MemoryType.EPISODIC,
    MemoryCategory.FACT: MemoryType.SEMANTIC,
    MemoryCategory.PREFERENCE: MemoryType.PROCEDURAL,
    MemoryCategory.TASK: MemoryType.WORKING,
    MemoryCategory.PATTERN: MemoryType.SEMANTIC,
    MemoryCategory.GENERAL: MemoryType.EPISODIC,
}


@dataclass(frozen=True)
class MemoryRecord:
    """Read-only snapshot of a stored memory.

    Importance changes only through decay, re-save and consolidation inside
    the store; callers receive a fresh snapshot after each of those.
    ``similarity`` is set on search results only.
    """

    id: str
    content: str
    memory_type: MemoryType
    importance: float
    category: MemoryCategory = MemoryCategory.GENERAL
    tags: frozenset[str] = frozenset()
    associations: frozenset[str] = frozenset()
    entity_id: str | None = None
    source: str | None = None
    access_count: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    last_accessed_at: datetime | None = None
    decay_rate: float = 0.1
    similarity: float | None = None

    @property
    def score(self) -> float:
        """Search ranking score: similarity x importance."""
        return (self.similarity or 0.0) * self.importance


@dataclass
class RememberResult:
    cold_id: str
    hot_id: str | None = None
    importance: float = 0.0
    updated: bool = False
