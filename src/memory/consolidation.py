"""Grouping of related episodic memories into derived pattern memories."""

from collections import Counter
from dataclasses import dataclass

from .models import MemoryRecord
from .scoring import jaccard

GROUP_THRESHOLD = 0.6
MIN_GROUP_SIZE = 3
COMMON_TAG_RATIO = 0.6


@dataclass
class ConsolidatedPattern:
    content: str
    tags: set[str]
    importance: float
    member_ids: list[str]


def pair_similarity(a: MemoryRecord, b: MemoryRecord) -> float:
    """Tag Jaccard (0.5) + same type (0.3) + time proximity (up to 0.2 at 0h, 0 at 24h)."""
    tag_score = jaccard(set(a.tags), set(b.tags)) * 0.5
    type_score = 0.3 if a.memory_type == b.memory_type else 0.0
    hours_apart = abs((a.created_at - b.created_at).total_seconds()) / 3600
    time_score = max(0.0, 1 - hours_apart / 24) * 0.2
    return tag_score + type_score + time_score


def group_memories(
    memories: list[MemoryRecord], threshold: float = GROUP_THRESHOLD
) -> list[list[MemoryRecord]]:
    """Greedy grouping: each unused memory seeds a group of everything similar to it.

    Seeds are taken in importance order, so the strongest memory anchors a group.
    """
    ordered = sorted(memories, key=lambda m: (-m.importance, m.created_at, m.id))
    used: set[str] = set()
    groups = []
    for seed in ordered:
        if seed.id in used:
            continue
        used.add(seed.id)
        group = [seed]
        for other in ordered:
            if other.id in used:
                continue
            if pair_similarity(seed, other) > threshold:
                group.append(other)
                used.add(other.id)
        groups.append(group)
    return groups


def common_tags(group: list[MemoryRecord], ratio: float = COMMON_TAG_RATIO) -> set[str]:
    counts = Counter(tag for m in group for tag in m.tags)
    return {tag for tag, count in counts.items() if count >= len(group) * ratio}


def extract_pattern(group: list[MemoryRecord]) -> ConsolidatedPattern | None:
    if len(group) < MIN_GROUP_SIZE:
        return None
    tags = common_tags(group)
    if not tags:
        return None
    avg = sum(m.importance for m in group) / len(group)
    return ConsolidatedPattern(
        content=f"pattern: {', '.join(sorted(tags))}",
        tags=tags,
        importance=round(min(1.0, avg * 1.2), 4),
        member_ids=[m.id for m in group],
    )
