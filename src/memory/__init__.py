"""Tiered memory: hot/cold stores with decay and consolidation."""

from .models import MemoryCategory, MemoryRecord, MemoryType, RememberResult
from .store import MemoryStore

__all__ = [
    "MemoryCategory",
    "MemoryRecord",
    "MemoryType",
    "RememberResult",
    "MemoryStore",
]
