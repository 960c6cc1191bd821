"""Reconciliation of incoming observations against tracked records."""

from .diff import DiffDetector
from .models import (
    CreateAction,
    DiffResult,
    ExtractedData,
    NewEntityCandidate,
    ResolutionResult,
    ResolvedEntity,
    Suggestion,
    UpdateAction,
)
from .orchestrator import SyncOptions, SyncOrchestrator, SyncReport
from .resolver import EntityResolver

__all__ = [
    "CreateAction",
    "DiffDetector",
    "DiffResult",
    "EntityResolver",
    "ExtractedData",
    "NewEntityCandidate",
    "ResolutionResult",
    "ResolvedEntity",
    "Suggestion",
    "SyncOptions",
    "SyncOrchestrator",
    "SyncReport",
    "UpdateAction",
]
