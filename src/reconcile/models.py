"""Data models for entity resolution, diffs and suggestions."""

import uuid
from dataclasses import asdict, dataclass, field

from errors import InvariantViolationError
from shared_types import ChangeType, EntityType, MatchKind, PatternType, Priority, SuggestionKind

from .matcher import normalize_name


@dataclass
class ResolvedEntity:
    id: str | None
    entity_type: EntityType
    display_name: str
    confidence: float
    match_kind: MatchKind
    reason: str = ""

    @property
    def dedup_key(self) -> tuple[EntityType, str]:
        return (self.entity_type, normalize_name(self.display_name))


@dataclass
class NewEntityCandidate:
    name: str
    type: EntityType
    email: str | None = None


@dataclass
class ResolutionResult:
    clients: list[ResolvedEntity] = field(default_factory=list)
    debts: list[ResolvedEntity] = field(default_factory=list)
    tasks: list[ResolvedEntity] = field(default_factory=list)
    bureaucracy: list[ResolvedEntity] = field(default_factory=list)
    new_entities: list[NewEntityCandidate] = field(default_factory=list)

    _BUCKETS = {
        EntityType.CLIENT: "clients",
        EntityType.DEBT: "debts",
        EntityType.TASK: "tasks",
        EntityType.BUREAUCRACY: "bureaucracy",
    }

    def for_type(self, entity_type: EntityType) -> list[ResolvedEntity]:
        return getattr(self, self._BUCKETS[entity_type])

    def all_entities(self) -> list[ResolvedEntity]:
        return [*self.clients, *self.debts, *self.tasks, *self.bureaucracy]

    def add(self, entity: ResolvedEntity) -> None:
        self.for_type(entity.entity_type).append(entity)

    @property
    def is_empty(self) -> bool:
        return not self.all_entities() and not self.new_entities


@dataclass
class DiffResult:
    field: str
    old_value: object
    new_value: object
    change_type: ChangeType

    def __post_init__(self):
        if self.change_type == ChangeType.ADDED and not (
            self.old_value is None and self.new_value is not None
        ):
            raise InvariantViolationError(f"added diff on {self.field} needs only new_value")
        if self.change_type == ChangeType.REMOVED and not (
            self.old_value is not None and self.new_value is None
        ):
            raise InvariantViolationError(f"removed diff on {self.field} needs only old_value")
        if self.change_type == ChangeType.MODIFIED and (
            self.old_value is None or self.new_value is None or self.old_value == self.new_value
        ):
            raise InvariantViolationError(
                f"modified diff on {self.field} needs two distinct values"
            )


@dataclass
class ExtractedData:
    """Closed set of fields an observation can state about a record."""

    amount: float | None = None
    currency: str | None = None
    deadline: str | None = None
    case_number: str | None = None
    status: str | None = None
    email: str | None = None

    def as_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def fill_from(self, other: "ExtractedData") -> "ExtractedData":
        """Copy of self with gaps filled from ``other``."""
        merged = asdict(self)
        for key, value in asdict(other).items():
            if merged.get(key) is None and value is not None:
                merged[key] = value
        return ExtractedData(**merged)


@dataclass(frozen=True)
class UpdateAction:
    """Update an existing record by id."""

    table: str
    record_id: str
    updates: dict


@dataclass(frozen=True)
class CreateAction:
    """Insert a new record."""

    table: str
    payload: dict


ProposedAction = UpdateAction | CreateAction


@dataclass
class Suggestion:
    kind: SuggestionKind
    priority: Priority
    title: str
    description: str
    proposed_action: ProposedAction
    confidence: float
    source_observation_id: str | None = None
    pattern_key: str = ""
    pattern_type: PatternType = PatternType.ENTITY_CONNECTION
    triggers: list[str] = field(default_factory=list)
    changes: list[DiffResult] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])

    @property
    def target(self) -> str:
        if isinstance(self.proposed_action, UpdateAction):
            return self.proposed_action.record_id
        return normalize_name(self.title)

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.kind.value, self.proposed_action.table, self.target)

    def to_dict(self) -> dict:
        action = self.proposed_action
        if isinstance(action, UpdateAction):
            proposed = {"table": action.table, "id": action.record_id, "updates": action.updates}
        else:
            proposed = {"table": action.table, "data": action.payload}
        return {
            "id": self.id,
            "kind": self.kind.value,
            "priority": self.priority.value,
            "title": self.title,
            "description": self.description,
            "proposed_action": proposed,
            "confidence": round(self.confidence, 3),
            "source_observation_id": self.source_observation_id,
        }
