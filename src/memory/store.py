"""Tiered memory store: importance-gated hot tier over an unbounded cold archive."""

import uuid
from datetime import datetime, timedelta
from pathlib import Path

import structlog

from cli.retry import llm_retry
from errors import TransientExternalError
from llm.base import LLMError

from .consolidation import extract_pattern, group_memories
from .models import (
    CATEGORY_TYPES,
    DECAY_RATES,
    MemoryCategory,
    MemoryRecord,
    MemoryType,
    RememberResult,
)
from .scoring import clamp, compute_importance, content_key
from .tiers import ColdTier, HotTier

logger = structlog.get_logger()

DEFAULT_HOT_THRESHOLD = 0.7
DEFAULT_HOT_CAPACITY = 500
CONSOLIDATION_WINDOW = timedelta(hours=24)
REINDEX_BATCH = 10


class MemoryStore:
    """Hot/cold memory with semantic search, decay and consolidation.

    Every memory is written to the cold tier. It is also written to the hot
    tier when its importance reaches ``hot_threshold`` or it is tied to an
    entity. Both tiers share the record id. Writes to the two tiers are not
    transactional with each other.
    """

    def __init__(
        self,
        db_path: str | Path,
        chroma_dir: str | Path | None = None,
        embedder=None,
        hot_threshold: float = DEFAULT_HOT_THRESHOLD,
        hot_capacity: int = DEFAULT_HOT_CAPACITY,
        retry_policy=None,
    ):
        self.hot = HotTier(db_path, capacity=hot_capacity)
        self.cold = ColdTier(db_path, chroma_dir=chroma_dir)
        self.embedder = embedder
        self.hot_threshold = hot_threshold
        self._embed_with_retry = (retry_policy or llm_retry())(self._embed_once)

    # --- writes ---

    def remember(
        self,
        content: str,
        importance: float | None = None,
        entity_id: str | None = None,
        category: MemoryCategory | str = MemoryCategory.GENERAL,
        memory_type: MemoryType | str | None = None,
        tags: set[str] | list[str] | None = None,
        source: str | None = None,
    ) -> RememberResult:
        """Store a memory, or raise the importance of an identical one.

        Importance is computed from content when not given. Re-saving the same
        content (after whitespace and case normalization) keeps the existing
        record and lifts its importance to the larger of the two values.
        """
        if not content or not content.strip():
            raise ValueError("Memory content must not be empty")

        category = MemoryCategory(category)
        mtype = MemoryType(memory_type) if memory_type else CATEGORY_TYPES[category]
        if importance is None:
            importance = compute_importance(content, category, entity_id)
        importance = clamp(importance)
        tags = set(tags or ())
        key = content_key(content)

        existing = self.cold.find_same_content(key, content)
        if existing:
            return self._resave(existing, key, importance, tags, entity_id)

        record = MemoryRecord(
            id=uuid.uuid4().hex[:16],
            content=content.strip(),
            memory_type=mtype,
            importance=importance,
            category=category,
            tags=frozenset(tags),
            entity_id=entity_id,
            source=source,
            decay_rate=DECAY_RATES[mtype],
        )
        embedding = self._embed(record.content)
        self.cold.add(record, key, embedding)

        hot_id = None
        if self._belongs_in_hot(importance, entity_id):
            self.hot.add(record, key, embedding)
            hot_id = record.id

        logger.debug(
            "memory_remembered",
            memory_id=record.id,
            memory_type=mtype.value,
            importance=importance,
            hot=hot_id is not None,
        )
        return RememberResult(cold_id=record.id, hot_id=hot_id, importance=importance)

    def _resave(
        self,
        existing: MemoryRecord,
        key: str,
        importance: float,
        tags: set[str],
        entity_id: str | None,
    ) -> RememberResult:
        new_importance = max(existing.importance, importance)
        merged_tags = set(existing.tags) | tags

        if new_importance > existing.importance:
            self.cold.set_importance(existing.id, new_importance)
            self.hot.set_importance(existing.id, new_importance)
        if merged_tags != set(existing.tags):
            self.cold.set_tags(existing.id, merged_tags)
            self.hot.set_tags(existing.id, merged_tags)

        in_hot = self.hot.get(existing.id) is not None
        if not in_hot and self._belongs_in_hot(new_importance, entity_id or existing.entity_id):
            refreshed = self.cold.get(existing.id)
            self.hot.add(refreshed, key, self._embed(refreshed.content))
            in_hot = True

        logger.debug("memory_resaved", memory_id=existing.id, importance=new_importance)
        return RememberResult(
            cold_id=existing.id,
            hot_id=existing.id if in_hot else None,
            importance=new_importance,
            updated=True,
        )

    def _belongs_in_hot(self, importance: float, entity_id: str | None) -> bool:
        return importance >= self.hot_threshold or bool(entity_id)

    def link(self, memory_id: str, other_id: str) -> bool:
        """Associate two memories in both directions. False if either is unknown."""
        if memory_id == other_id:
            return False
        if self.cold.get(memory_id) is None or self.cold.get(other_id) is None:
            return False
        for tier in (self.cold, self.hot):
            tier.add_association(memory_id, other_id)
            tier.add_association(other_id, memory_id)
        return True

    # --- reads ---

    def get(self, memory_id: str) -> MemoryRecord | None:
        return self.hot.get(memory_id) or self.cold.get(memory_id)

    def search(
        self,
        query: str,
        limit: int = 10,
        min_similarity: float = 0.0,
        search_hot: bool = True,
        search_cold: bool = True,
        filter: dict | None = None,
    ) -> list[MemoryRecord]:
        """Merged search over both tiers, ranked by similarity x importance.

        ``filter`` may hold ``memory_type``, ``category``, ``entity_id`` and
        ``tags`` (all listed tags must be present). Results are truncated to
        ``limit`` only after both tiers are merged and sorted.
        """
        if not query or not query.strip():
            return []

        query_embedding = self._embed(query)
        if query_embedding is not None:
            self.reindex()
        hits: list[MemoryRecord] = []
        if search_hot:
            hits.extend(self.hot.search(query, query_embedding, min_similarity=min_similarity))
        if search_cold:
            hits.extend(self.cold.search(query, query_embedding, min_similarity=min_similarity))

        hits = [h for h in hits if _matches_filter(h, filter)]
        results = _dedupe(hits, key=lambda r: (r.score, r.similarity or 0.0))
        results.sort(key=lambda r: (r.score, r.created_at), reverse=True)
        results = results[:limit]

        ids = [r.id for r in results]
        self.hot.record_access(ids)
        self.cold.record_access(ids)
        return results

    def get_recent(self, days: int = 7, limit: int = 20) -> list[MemoryRecord]:
        since = datetime.now() - timedelta(days=days)
        merged = _dedupe(
            self.hot.list_records(since=since) + self.cold.list_records(since=since),
            key=lambda r: r.importance,
        )
        merged.sort(key=lambda r: r.created_at, reverse=True)
        return merged[:limit]

    def get_by_entity(self, entity_id: str, limit: int = 20) -> list[MemoryRecord]:
        merged = _dedupe(
            self.hot.list_records(entity_id=entity_id)
            + self.cold.list_records(entity_id=entity_id),
            key=lambda r: r.importance,
        )
        merged.sort(key=lambda r: r.created_at, reverse=True)
        return merged[:limit]

    def get_by_tags(self, tags: set[str] | list[str], limit: int = 20) -> list[MemoryRecord]:
        """Memories carrying any of ``tags``, most important first."""
        wanted = set(tags)
        matches = [r for r in self.cold.list_records() if r.tags & wanted]
        matches.sort(key=lambda r: (r.importance, r.created_at), reverse=True)
        return matches[:limit]

    def get_working_memory(self, limit: int = 10) -> list[MemoryRecord]:
        return self.hot.list_records(
            memory_type=MemoryType.WORKING,
            limit=limit,
            order_by="importance DESC, created_at DESC",
        )

    def stats(self) -> dict:
        cold = self.cold.list_records()
        avg = sum(r.importance for r in cold) / len(cold) if cold else 0.0
        return {
            "hot_count": self.hot.count(),
            "hot_capacity": self.hot.capacity,
            "cold_count": len(cold),
            "by_type": self.cold.count_by_type(),
            "avg_importance": round(avg, 3),
            "hot_threshold": self.hot_threshold,
        }

    # --- maintenance ---

    def apply_decay(self) -> dict:
        """One decay step over both tiers. Importance never increases."""
        counts = {"hot": self.hot.apply_decay(), "cold": self.cold.apply_decay()}
        logger.info("memory_decay_applied", **counts)
        return counts

    def consolidate(self) -> list[MemoryRecord]:
        """Turn groups of related recent episodic memories into semantic patterns."""
        since = datetime.now() - CONSOLIDATION_WINDOW
        episodic = self.cold.list_records(memory_type=MemoryType.EPISODIC, since=since)
        if len(episodic) < 3:
            return []

        created = []
        for group in group_memories(episodic):
            pattern = extract_pattern(group)
            if pattern is None:
                continue
            result = self.remember(
                pattern.content,
                importance=pattern.importance,
                category=MemoryCategory.PATTERN,
                memory_type=MemoryType.SEMANTIC,
                tags=pattern.tags,
                source="consolidation",
            )
            for member_id in pattern.member_ids:
                self.link(result.cold_id, member_id)
            created.append(self.cold.get(result.cold_id))

        logger.info("memory_consolidated", scanned=len(episodic), patterns=len(created))
        return created

    def cleanup(self, importance_threshold: float = 0.2, days_old: int = 90) -> int:
        """Delete memories below the threshold AND older than ``days_old``.

        Procedural memories are never deleted. Returns the number of distinct
        memories removed.
        """
        cutoff = datetime.now() - timedelta(days=days_old)
        deleted: set[str] = set()
        for tier in (self.cold, self.hot):
            doomed = [
                r.id
                for r in tier.list_records()
                if r.importance < importance_threshold
                and r.created_at < cutoff
                and r.memory_type != MemoryType.PROCEDURAL
            ]
            tier.delete(doomed)
            deleted.update(doomed)

        logger.info("memory_cleanup", deleted=len(deleted), threshold=importance_threshold)
        return len(deleted)

    # --- embeddings ---

    def reindex(self, limit: int = REINDEX_BATCH) -> int:
        """Index cold memories stored while embeddings were failing. Returns rows indexed."""
        if self.embedder is None or not self.cold.has_index:
            return 0
        indexed = 0
        for record in self.cold.pending_index(limit):
            embedding = self._embed(record.content)
            if embedding is None or not self.cold.index(record, embedding):
                break
            indexed += 1
        if indexed:
            logger.info("memory_reindexed", count=indexed)
        return indexed

    def _embed(self, text: str) -> list[float] | None:
        """Embedding for ``text``, or None to fall back to lexical search."""
        if self.embedder is None:
            return None
        try:
            return self._embed_with_retry(text)
        except (LLMError, TransientExternalError) as e:
            logger.warning("embedding_failed", error=str(e))
            return None

    def _embed_once(self, text: str) -> list[float]:
        return self.embedder.embed(text)


def _matches_filter(record: MemoryRecord, filter: dict | None) -> bool:
    if not filter:
        return True
    if "memory_type" in filter and record.memory_type != MemoryType(filter["memory_type"]):
        return False
    if "category" in filter and record.category != MemoryCategory(filter["category"]):
        return False
    if "entity_id" in filter and record.entity_id != filter["entity_id"]:
        return False
    if "tags" in filter and not set(filter["tags"]) <= record.tags:
        return False
    return True


def _dedupe(records: list[MemoryRecord], key) -> list[MemoryRecord]:
    """One record per content-prefix hash, keeping the highest ``key``."""
    best: dict[str, MemoryRecord] = {}
    for record in records:
        k = content_key(record.content)
        if k not in best or key(record) > key(best[k]):
            best[k] = record
    return list(best.values())
