"""Suggestion construction, dedup and ranking."""

from collections import Counter
from datetime import datetime

from records.models import ENTITY_TABLES
from shared_types import (
    ChangeType,
    EntityType,
    MatchKind,
    PatternType,
    Priority,
    SuggestionKind,
    priority_to_score,
)

from .diff import DiffDetector
from .models import (
    CreateAction,
    DiffResult,
    NewEntityCandidate,
    ResolvedEntity,
    Suggestion,
    UpdateAction,
)

NEW_TASK_CONFIDENCE = 0.7
NEW_CONTACT_CONFIDENCE = 0.6
MODIFIED_CONFIDENCE = 0.9
ADDED_REMOVED_CONFIDENCE = 0.5

UPDATE_KINDS = {
    EntityType.CLIENT: SuggestionKind.UPDATE_CLIENT,
    EntityType.DEBT: SuggestionKind.UPDATE_DEBT,
    EntityType.TASK: SuggestionKind.UPDATE_TASK,
    EntityType.BUREAUCRACY: SuggestionKind.UPDATE_BUREAUCRACY,
}

_PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}

_diff = DiffDetector()


def change_confidence(change: DiffResult) -> float:
    if change.change_type == ChangeType.MODIFIED:
        return MODIFIED_CONFIDENCE
    return ADDED_REMOVED_CONFIDENCE


def build_update_suggestion(
    entity: ResolvedEntity,
    changes: list[DiffResult],
    observation_id: str | None = None,
) -> Suggestion:
    """One update suggestion carrying every change found for ``entity``.

    Confidence is the strongest per-change confidence, capped at the
    resolution confidence unless the match was exact.
    """
    confidence = max(change_confidence(c) for c in changes)
    if entity.match_kind != MatchKind.EXACT:
        confidence = min(confidence, entity.confidence)

    priority = Priority.HIGH if any(c.field == "amount" for c in changes) else Priority.MEDIUM
    kind = UPDATE_KINDS[entity.entity_type]
    return Suggestion(
        kind=kind,
        priority=priority,
        title=f"Update {entity.entity_type.value}: {entity.display_name}",
        description=_diff.format_change_summary(changes),
        proposed_action=UpdateAction(
            table=ENTITY_TABLES[entity.entity_type],
            record_id=entity.id,
            updates={c.field: c.new_value for c in changes if c.new_value is not None},
        ),
        confidence=confidence,
        source_observation_id=observation_id,
        pattern_key=f"{kind.value}:{entity.match_kind.value}",
        pattern_type=(
            PatternType.SEARCH_SUCCESS
            if entity.match_kind == MatchKind.SEMANTIC
            else PatternType.ENTITY_CONNECTION
        ),
        changes=list(changes),
    )


def build_new_task_suggestion(
    name: str,
    text: str,
    priority: Priority = Priority.MEDIUM,
    observation_id: str | None = None,
    source: str = "email",
    details: dict | None = None,
) -> Suggestion:
    title = f"Follow up: {name}"[:100]
    payload = {
        "title": title,
        "description": text,
        "status": "pending",
        "priority_score": priority_to_score(priority),
        "source": source,
        "source_id": observation_id,
        "created_at": datetime.now().isoformat(),
        **(details or {}),
    }
    return Suggestion(
        kind=SuggestionKind.NEW_TASK,
        priority=priority,
        title=title,
        description=text[:500],
        proposed_action=CreateAction(table=ENTITY_TABLES[EntityType.TASK], payload=payload),
        confidence=NEW_TASK_CONFIDENCE,
        source_observation_id=observation_id,
        pattern_key="new_task",
        pattern_type=PatternType.TASK_CREATION,
    )


def build_new_contact_suggestion(
    candidate: NewEntityCandidate,
    context: str = "",
    observation_id: str | None = None,
    source: str = "email",
) -> Suggestion:
    payload = {
        "name": candidate.name,
        "email": candidate.email,
        "source": source,
        "created_at": datetime.now().isoformat(),
    }
    return Suggestion(
        kind=SuggestionKind.NEW_CONTACT,
        priority=Priority.LOW,
        title=f"New contact: {candidate.name}",
        description=f"Found in {source}: {context}" if context else f"Found in {source}",
        proposed_action=CreateAction(table=ENTITY_TABLES[EntityType.CLIENT], payload=payload),
        confidence=NEW_CONTACT_CONFIDENCE,
        source_observation_id=observation_id,
        pattern_key=f"new_contact:{candidate.type.value}",
        pattern_type=PatternType.ENTITY_CONNECTION,
    )


def build_follow_up_suggestion(
    title: str,
    reason: str,
    confidence: float,
    pattern_key: str,
    triggers: list[str] | None = None,
    observation_id: str | None = None,
    entity: ResolvedEntity | None = None,
) -> Suggestion:
    """High-priority follow-up task raised by cross-domain analysis."""
    title = title[:100]
    payload = {
        "title": title,
        "description": reason,
        "status": "pending",
        "priority_score": priority_to_score(Priority.HIGH),
        "created_at": datetime.now().isoformat(),
    }
    if entity is not None:
        payload["entity_type"] = entity.entity_type.value
        payload["entity_id"] = entity.id
    return Suggestion(
        kind=SuggestionKind.NEW_TASK,
        priority=Priority.HIGH,
        title=title,
        description=reason,
        proposed_action=CreateAction(table=ENTITY_TABLES[EntityType.TASK], payload=payload),
        confidence=confidence,
        source_observation_id=observation_id,
        pattern_key=pattern_key,
        pattern_type=PatternType.CROSS_DOMAIN,
        triggers=list(triggers or []),
    )


def build_cross_domain_suggestion(
    entity: ResolvedEntity,
    confidence: float,
    pattern_key: str,
    triggers: list[str] | None = None,
    observation_id: str | None = None,
) -> Suggestion:
    """Follow-up task for a record in a domain the observation may affect."""
    return build_follow_up_suggestion(
        title=f"Check {entity.entity_type.value}: {entity.display_name}",
        reason=entity.reason,
        confidence=confidence,
        pattern_key=pattern_key,
        triggers=triggers,
        observation_id=observation_id,
        entity=entity,
    )


def dedupe_suggestions(suggestions: list[Suggestion]) -> list[Suggestion]:
    """Collapse suggestions sharing (kind, table, target) to the most confident one."""
    best: dict[tuple, Suggestion] = {}
    for suggestion in suggestions:
        key = suggestion.dedup_key
        current = best.get(key)
        if current is None or suggestion.confidence > current.confidence:
            best[key] = suggestion
    return list(best.values())


def rank_suggestions(suggestions: list[Suggestion]) -> list[Suggestion]:
    return sorted(suggestions, key=lambda s: (_PRIORITY_ORDER[s.priority], -s.confidence))


def summarize(suggestions: list[Suggestion]) -> str:
    if not suggestions:
        return "No updates found"
    high = sum(1 for s in suggestions if s.priority == Priority.HIGH)
    kinds = Counter(s.kind.value for s in suggestions)
    breakdown = ", ".join(f"{count} {kind}" for kind, count in kinds.items())
    return f"Found {len(suggestions)} updates ({high} high priority): {breakdown}"
