"""Shared test fixtures for taskweave."""

import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from observability import metrics  # noqa: E402


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def record_store(tmp_path):
    from records import SQLiteRecordStore

    return SQLiteRecordStore(tmp_path / "records.db")


@pytest.fixture
def memory_store(tmp_path):
    """Memory store without Chroma or embeddings; search is lexical."""
    from memory import MemoryStore

    return MemoryStore(tmp_path / "memory.db")


@pytest.fixture
def learner(tmp_path):
    from patterns import PatternLearner

    return PatternLearner(tmp_path / "patterns.db")


@pytest.fixture
def seeded_records(record_store):
    """Two debts, a client, a task and a bureaucracy case."""
    record_store.upsert("debts", {"id": "d1", "company": "PAIR Finance", "amount": 45.55})
    record_store.upsert("debts", {"id": "d2", "company": "Creditreform", "amount": 120.0})
    record_store.upsert(
        "clients", {"id": "c1", "name": "Lena Hoffmann", "email": "lena@hoffmann-design.de"}
    )
    record_store.upsert(
        "tasks", {"id": "t1", "title": "Renew passport", "status": "pending", "priority_score": 50}
    )
    record_store.upsert(
        "bureaucracy",
        {"id": "b1", "agency": "Techniker Krankenkasse", "type": "health insurance"},
    )
    return record_store


@pytest.fixture
def add_observation(record_store):
    """Insert an unprocessed observation and return its id."""
    from records.models import OBSERVATIONS_TABLE, Observation
    from shared_types import ObservationSource

    counter = {"n": 0}

    def _add(body: str, subject: str = "", **kwargs) -> str:
        counter["n"] += 1
        obs = Observation(
            id=f"obs{counter['n']}",
            source=kwargs.pop("source", ObservationSource.EMAIL),
            body_text=body,
            subject=subject,
            received_at=kwargs.pop("received_at", datetime.now()),
            **kwargs,
        )
        record_store.upsert(OBSERVATIONS_TABLE, obs.to_record())
        return obs.id

    return _add


@pytest.fixture
def mock_provider():
    """LLM provider double returning a fixed response."""
    provider = MagicMock()
    provider.generate.return_value = '{"entity_suggestions": [], "cross_domain_connections": []}'
    return provider
