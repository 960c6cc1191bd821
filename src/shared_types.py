"""Shared enums and types for taskweave."""

from enum import StrEnum


class EntityType(StrEnum):
    CLIENT = "client"
    DEBT = "debt"
    TASK = "task"
    BUREAUCRACY = "bureaucracy"


class MatchKind(StrEnum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    SEMANTIC = "semantic"
    CROSS_DOMAIN = "cross_domain"


class ObservationSource(StrEnum):
    EMAIL = "email"
    DOCUMENT = "document"
    CHAT = "chat"


class ChangeType(StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class SuggestionKind(StrEnum):
    NEW_TASK = "new_task"
    NEW_CONTACT = "new_contact"
    UPDATE_DEBT = "update_debt"
    UPDATE_TASK = "update_task"
    UPDATE_CLIENT = "update_client"
    UPDATE_BUREAUCRACY = "update_bureaucracy"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PatternType(StrEnum):
    CROSS_DOMAIN = "cross_domain"
    ENTITY_CONNECTION = "entity_connection"
    TASK_CREATION = "task_creation"
    SEARCH_SUCCESS = "search_success"


class SyncState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    RESOLVING = "resolving"
    DIFFING = "diffing"
    CROSS_DOMAIN_ANALYSIS = "cross_domain_analysis"
    DEDUPLICATING = "deduplicating"
    AUTO_APPLYING = "auto_applying"
    REPORTING = "reporting"


# Records carry a numeric priority_score (0-100); suggestions carry the enum.
_PRIORITY_SCORES = {Priority.LOW: 20, Priority.MEDIUM: 50, Priority.HIGH: 80}


def priority_from_score(score: int | float | None) -> Priority:
    """Map a record's 0-100 priority_score onto the suggestion enum."""
    if score is None:
        return Priority.MEDIUM
    if score >= 70:
        return Priority.HIGH
    if score >= 40:
        return Priority.MEDIUM
    return Priority.LOW


def priority_to_score(priority: Priority | str) -> int:
    """Map a suggestion priority back onto the record scale."""
    return _PRIORITY_SCORES[Priority(priority)]
