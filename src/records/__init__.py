"""Record store boundary: entity tables and incoming observations."""

from .base import RecordStore
from .models import ENTITY_TABLES, OBSERVATIONS_TABLE, Observation
from .sqlite import SQLiteRecordStore

__all__ = [
    "RecordStore",
    "SQLiteRecordStore",
    "Observation",
    "ENTITY_TABLES",
    "OBSERVATIONS_TABLE",
]
