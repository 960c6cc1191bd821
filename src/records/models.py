"""Record-side data models: observations and entity table layout."""

from dataclasses import dataclass, field
from datetime import datetime

from shared_types import EntityType, ObservationSource, Priority, priority_from_score

OBSERVATIONS_TABLE = "observations"
AUDIT_TABLE = "sync_audit"

ENTITY_TABLES: dict[EntityType, str] = {
    EntityType.CLIENT: "clients",
    EntityType.DEBT: "debts",
    EntityType.TASK: "tasks",
    EntityType.BUREAUCRACY: "bureaucracy",
}

# Fields holding a record's display name, in lookup order
NAME_FIELDS: dict[EntityType, tuple[str, ...]] = {
    EntityType.CLIENT: ("name",),
    EntityType.DEBT: ("company", "collection_company", "original_company", "entity_name"),
    EntityType.TASK: ("title",),
    EntityType.BUREAUCRACY: ("agency", "title", "entity_name"),
}

# Observed fields that are meaningful to diff against each record type
DIFF_FIELDS: dict[EntityType, tuple[str, ...]] = {
    EntityType.CLIENT: ("email", "deadline", "amount"),
    EntityType.DEBT: ("amount", "currency", "deadline", "case_number", "status"),
    EntityType.TASK: ("deadline", "status", "amount"),
    EntityType.BUREAUCRACY: ("deadline", "case_number", "status"),
}


def display_name(record: dict, entity_type: EntityType) -> str:
    for name_field in NAME_FIELDS[entity_type]:
        value = record.get(name_field)
        if value:
            return str(value)
    return str(record.get("id", ""))


@dataclass
class Observation:
    """One unit of incoming text awaiting reconciliation."""

    id: str
    source: ObservationSource
    body_text: str
    received_at: datetime = field(default_factory=datetime.now)
    processed: bool = False
    subject: str = ""
    sender: str = ""
    category: str = ""
    action_needed: bool | None = None
    priority: Priority | None = None
    processed_at: datetime | None = None

    @property
    def text(self) -> str:
        """Subject and body joined, the text handed to resolution."""
        if self.subject and self.subject not in self.body_text:
            return f"{self.subject}\n{self.body_text}"
        return self.body_text

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "source": self.source.value,
            "body_text": self.body_text,
            "received_at": self.received_at.isoformat(),
            "processed": self.processed,
            "subject": self.subject,
            "sender": self.sender,
            "category": self.category,
            "action_needed": self.action_needed,
            "priority": self.priority.value if self.priority else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }

    @classmethod
    def from_record(cls, record: dict) -> "Observation":
        received = record.get("received_at") or record.get("created_at")
        processed_at = record.get("processed_at")
        priority = record.get("priority")
        if priority in {p.value for p in Priority}:
            priority = Priority(priority)
        elif record.get("priority_score") is not None:
            priority = priority_from_score(record["priority_score"])
        else:
            priority = None
        return cls(
            id=record["id"],
            source=ObservationSource(record.get("source", "email")),
            body_text=record.get("body_text") or record.get("summary") or "",
            received_at=datetime.fromisoformat(received) if received else datetime.now(),
            processed=bool(record.get("processed")),
            subject=record.get("subject") or "",
            sender=record.get("sender") or "",
            category=record.get("category") or "",
            action_needed=record.get("action_needed"),
            priority=priority,
            processed_at=datetime.fromisoformat(processed_at) if processed_at else None,
        )
