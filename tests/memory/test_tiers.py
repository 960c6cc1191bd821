"""Tests for the hot and cold memory tiers."""

from datetime import datetime, timedelta

import pytest

from memory.models import MemoryRecord, MemoryType
from memory.scoring import content_key
from memory.tiers import ColdTier, HotTier, MemoryTier


def _record(id, importance, content=None, created_at=None, memory_type=MemoryType.EPISODIC):
    content = content or f"memory {id}"
    return MemoryRecord(
        id=id,
        content=content,
        memory_type=memory_type,
        importance=importance,
        created_at=created_at or datetime.now(),
    )


def _add(tier, record, embedding=None):
    tier.add(record, content_key(record.content), embedding)


class TestHotTier:
    def test_evicts_lowest_importance(self, tmp_path):
        tier = HotTier(tmp_path / "m.db", capacity=2)
        _add(tier, _record("a", 0.9))
        _add(tier, _record("b", 0.8))
        _add(tier, _record("c", 0.95))
        assert tier.count() == 2
        assert tier.get("b") is None

    def test_eviction_ties_drop_oldest(self, tmp_path):
        tier = HotTier(tmp_path / "m.db", capacity=1)
        _add(tier, _record("old", 0.8, created_at=datetime.now() - timedelta(hours=2)))
        _add(tier, _record("new", 0.8))
        assert tier.get("old") is None
        assert tier.get("new") is not None

    def test_cosine_search(self, tmp_path):
        tier = HotTier(tmp_path / "m.db")
        _add(tier, _record("a", 0.8), embedding=[1.0, 0.0])
        _add(tier, _record("b", 0.8), embedding=[0.0, 1.0])
        hits = tier.search("q", query_embedding=[1.0, 0.1], min_similarity=0.5)
        assert [h.id for h in hits] == ["a"]
        assert 0.99 < hits[0].similarity <= 1.0

    def test_cosine_search_reads_rows_once(self, tmp_path, monkeypatch):
        tier = HotTier(tmp_path / "m.db")
        for i in range(3):
            _add(tier, _record(f"m{i}", 0.8, content=f"debt note {i}"), embedding=[1.0, 0.0])
        monkeypatch.setattr(tier, "get", lambda memory_id: pytest.fail("per-hit lookup"))
        hits = tier.search("q", query_embedding=[1.0, 0.0])
        assert {h.id for h in hits} == {"m0", "m1", "m2"}
        assert hits[0].content.startswith("debt note")

    def test_set_tags_and_importance(self, tmp_path):
        tier = HotTier(tmp_path / "m.db")
        _add(tier, _record("a", 0.8))
        tier.set_importance("a", 0.85)
        tier.set_tags("a", {"debt", "pair"})
        record = tier.get("a")
        assert record.importance == 0.85
        assert record.tags == frozenset({"debt", "pair"})


class TestColdTier:
    def test_lexical_fallback_without_chroma(self, tmp_path):
        tier = ColdTier(tmp_path / "m.db")
        _add(tier, _record("a", 0.5, content="Swaprad invoice overdue"))
        _add(tier, _record("b", 0.5, content="passport renewal"))
        assert [h.id for h in tier.search("overdue invoice")] == ["a"]

    def test_unbounded(self, tmp_path):
        tier = ColdTier(tmp_path / "m.db")
        for i in range(20):
            _add(tier, _record(str(i), 0.1))
        assert tier.count() == 20

    def test_find_same_content(self, tmp_path):
        tier = ColdTier(tmp_path / "m.db")
        _add(tier, _record("a", 0.5, content="Call  PAIR Finance"))
        key = content_key("call pair finance")
        assert tier.find_same_content(key, "call pair finance").id == "a"
        assert tier.find_same_content(content_key("something else"), "something else") is None

    def test_shared_prefix_not_same_content(self, tmp_path):
        tier = ColdTier(tmp_path / "m.db")
        head = "x" * 100
        _add(tier, _record("a", 0.5, content=head + " first ending"))
        key = content_key(head + " second ending")
        assert tier.find_same_content(key, head + " second ending") is None

    def test_abstract_tier(self, tmp_path):
        with pytest.raises(TypeError):
            MemoryTier(tmp_path / "m.db", "memories")

    def test_list_records_filters(self, tmp_path):
        tier = ColdTier(tmp_path / "m.db")
        _add(tier, _record("a", 0.5, memory_type=MemoryType.SEMANTIC))
        _add(tier, _record("b", 0.5, created_at=datetime.now() - timedelta(days=3)))
        assert [r.id for r in tier.list_records(memory_type=MemoryType.SEMANTIC)] == ["a"]
        since = datetime.now() - timedelta(days=1)
        assert [r.id for r in tier.list_records(since=since)] == ["a"]

    def test_delete(self, tmp_path):
        tier = ColdTier(tmp_path / "m.db")
        _add(tier, _record("a", 0.5))
        assert tier.delete(["a"]) == 1
        assert tier.delete([]) == 0
        assert tier.get("a") is None


def test_tiers_share_database_file(tmp_path):
    db = tmp_path / "m.db"
    hot, cold = HotTier(db), ColdTier(db)
    _add(hot, _record("a", 0.9))
    assert cold.get("a") is None
    assert hot.get("a") is not None
