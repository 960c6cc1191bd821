"""Hot and cold memory tiers: SQLite rows, plus a ChromaDB index for the cold tier."""

import sqlite3
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from pathlib import Path

import structlog

from db import dump_json, load_json, wal_connect

from .models import MemoryCategory, MemoryRecord, MemoryType
from .scoring import cosine_similarity, decayed_importance, lexical_similarity, normalize_content

logger = structlog.get_logger()

_COLUMNS = """
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    content_key TEXT NOT NULL,
    memory_type TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'general',
    importance REAL NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    associations TEXT NOT NULL DEFAULT '[]',
    entity_id TEXT,
    source TEXT,
    access_count INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP NOT NULL,
    last_accessed_at TIMESTAMP,
    decay_rate REAL NOT NULL,
    embedding TEXT
"""


class MemoryTier(ABC):
    """One SQLite table of memories. Subclasses decide how search works."""

    name = "tier"

    def __init__(self, db_path: str | Path, table: str):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.table = table
        self._init_db()

    def _init_db(self):
        with wal_connect(self.db_path) as conn:
            conn.execute(f"CREATE TABLE IF NOT EXISTS {self.table} ({_COLUMNS})")
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.table}_key ON {self.table}(content_key)"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.table}_entity ON {self.table}(entity_id)"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.table}_type ON {self.table}(memory_type, created_at)"
            )

    def add(self, record: MemoryRecord, key: str, embedding: list[float] | None = None) -> None:
        with wal_connect(self.db_path) as conn:
            conn.execute(
                f"""INSERT OR REPLACE INTO {self.table}
                   (id, content, content_key, memory_type, category, importance, tags,
                    associations, entity_id, source, access_count, created_at,
                    last_accessed_at, decay_rate, embedding)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.id,
                    record.content,
                    key,
                    record.memory_type.value,
                    record.category.value,
                    record.importance,
                    dump_json(set(record.tags)),
                    dump_json(set(record.associations)),
                    record.entity_id,
                    record.source,
                    record.access_count,
                    record.created_at.isoformat(),
                    record.last_accessed_at.isoformat() if record.last_accessed_at else None,
                    record.decay_rate,
                    dump_json(embedding) if embedding else None,
                ),
            )

    def get(self, memory_id: str) -> MemoryRecord | None:
        rows = self._select("WHERE id = ?", (memory_id,))
        return rows[0] if rows else None

    def get_embedding(self, memory_id: str) -> list[float] | None:
        with wal_connect(self.db_path) as conn:
            row = conn.execute(
                f"SELECT embedding FROM {self.table} WHERE id = ?", (memory_id,)
            ).fetchone()
        return load_json(row[0]) if row else None

    def find_same_content(self, key: str, content: str) -> MemoryRecord | None:
        """Oldest record whose normalized content equals ``content``.

        ``key`` narrows the scan to rows sharing the content-prefix hash; records
        that only share a prefix are different memories.
        """
        wanted = normalize_content(content)
        for record in self._select("WHERE content_key = ? ORDER BY created_at", (key,)):
            if normalize_content(record.content) == wanted:
                return record
        return None

    def list_records(
        self,
        memory_type: MemoryType | None = None,
        since: datetime | None = None,
        entity_id: str | None = None,
        limit: int | None = None,
        order_by: str = "created_at DESC",
    ) -> list[MemoryRecord]:
        clauses, params = [], []
        if memory_type is not None:
            clauses.append("memory_type = ?")
            params.append(memory_type.value)
        if since is not None:
            clauses.append("created_at >= ?")
            params.append(since.isoformat())
        if entity_id is not None:
            clauses.append("entity_id = ?")
            params.append(entity_id)

        sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql += f" ORDER BY {order_by}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return self._select(sql, params)

    def set_importance(self, memory_id: str, importance: float) -> None:
        with wal_connect(self.db_path) as conn:
            conn.execute(
                f"UPDATE {self.table} SET importance = ? WHERE id = ?",
                (importance, memory_id),
            )

    def set_tags(self, memory_id: str, tags: set[str]) -> None:
        with wal_connect(self.db_path) as conn:
            conn.execute(
                f"UPDATE {self.table} SET tags = ? WHERE id = ?",
                (dump_json(tags), memory_id),
            )

    def add_association(self, memory_id: str, other_id: str) -> bool:
        record = self.get(memory_id)
        if record is None:
            return False
        with wal_connect(self.db_path) as conn:
            conn.execute(
                f"UPDATE {self.table} SET associations = ? WHERE id = ?",
                (dump_json(set(record.associations) | {other_id}), memory_id),
            )
        return True

    def record_access(self, memory_ids: list[str]) -> None:
        if not memory_ids:
            return
        now = datetime.now().isoformat()
        with wal_connect(self.db_path) as conn:
            conn.executemany(
                f"""UPDATE {self.table}
                    SET access_count = access_count + 1, last_accessed_at = ?
                    WHERE id = ?""",
                [(now, mid) for mid in memory_ids],
            )

    def apply_decay(self) -> int:
        """Lower every record's importance by one decay step. Returns rows changed."""
        with wal_connect(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT id, memory_type, importance FROM {self.table}"
            ).fetchall()
            updates = []
            for memory_id, memory_type, importance in rows:
                new = decayed_importance(importance, MemoryType(memory_type))
                if new != importance:
                    updates.append((new, memory_id))
            conn.executemany(
                f"UPDATE {self.table} SET importance = ? WHERE id = ?", updates
            )
        return len(updates)

    def delete(self, memory_ids: list[str]) -> int:
        if not memory_ids:
            return 0
        placeholders = ",".join("?" for _ in memory_ids)
        with wal_connect(self.db_path) as conn:
            cur = conn.execute(
                f"DELETE FROM {self.table} WHERE id IN ({placeholders})", list(memory_ids)
            )
        return cur.rowcount

    def count(self) -> int:
        with wal_connect(self.db_path) as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]

    def count_by_type(self) -> dict[str, int]:
        with wal_connect(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT memory_type, COUNT(*) FROM {self.table} GROUP BY memory_type"
            ).fetchall()
        return {r[0]: r[1] for r in rows}

    @abstractmethod
    def search(
        self,
        query: str,
        query_embedding: list[float] | None = None,
        limit: int | None = None,
        min_similarity: float = 0.0,
    ) -> list[MemoryRecord]:
        """Hits above ``min_similarity`` ranked by similarity x importance; no limit returns all."""

    def _lexical_search(
        self, query: str, min_similarity: float, where: str = "", params=()
    ) -> list[MemoryRecord]:
        hits = []
        for record in self._select(where, params):
            sim = lexical_similarity(query, record.content)
            if sim >= min_similarity and sim > 0:
                hits.append(_with_similarity(record, sim))
        return hits

    def _select(self, where: str, params) -> list[MemoryRecord]:
        with wal_connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(f"SELECT * FROM {self.table} {where}", params).fetchall()
            return [self._row_to_record(r) for r in rows]

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> MemoryRecord:
        d = dict(row)
        last = d.get("last_accessed_at")
        return MemoryRecord(
            id=d["id"],
            content=d["content"],
            memory_type=MemoryType(d["memory_type"]),
            importance=d["importance"],
            category=MemoryCategory(d.get("category") or "general"),
            tags=frozenset(load_json(d.get("tags"), default=[])),
            associations=frozenset(load_json(d.get("associations"), default=[])),
            entity_id=d.get("entity_id"),
            source=d.get("source"),
            access_count=d.get("access_count") or 0,
            created_at=datetime.fromisoformat(d["created_at"]),
            last_accessed_at=datetime.fromisoformat(last) if last else None,
            decay_rate=d["decay_rate"],
        )


def _with_similarity(record: MemoryRecord, sim: float) -> MemoryRecord:
    return replace(record, similarity=round(sim, 4))


class HotTier(MemoryTier):
    """Bounded, importance-gated tier. Embeddings live next to the rows."""

    name = "hot"

    def __init__(self, db_path: str | Path, capacity: int = 500):
        super().__init__(db_path, "memories")
        self.capacity = capacity

    def add(self, record: MemoryRecord, key: str, embedding: list[float] | None = None) -> None:
        super().add(record, key, embedding)
        self._evict()

    def _evict(self) -> int:
        """Drop lowest-importance rows (oldest first on ties) above capacity."""
        overflow = self.count() - self.capacity
        if overflow <= 0:
            return 0
        with wal_connect(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT id FROM {self.table} ORDER BY importance ASC, created_at ASC LIMIT ?",
                (overflow,),
            ).fetchall()
        evicted = self.delete([r[0] for r in rows])
        logger.debug("hot_tier_evicted", count=evicted)
        return evicted

    def search(self, query, query_embedding=None, limit=None, min_similarity=0.0):
        if query_embedding is None:
            hits = self._lexical_search(query, min_similarity)
        else:
            hits = []
            with wal_connect(self.db_path) as conn:
                conn.row_factory = sqlite3.Row
                rows = conn.execute(
                    f"SELECT * FROM {self.table} WHERE embedding IS NOT NULL"
                ).fetchall()
            for row in rows:
                sim = cosine_similarity(query_embedding, load_json(row["embedding"], default=[]))
                if sim >= min_similarity:
                    hits.append(_with_similarity(self._row_to_record(row), sim))
        return _ranked(hits, limit)


class ColdTier(MemoryTier):
    """Unbounded archive: SQLite metadata plus a ChromaDB cosine index.

    Only rows stored with an embedding are indexed in Chroma (``indexed = 1``).
    Rows whose embedding failed stay searchable lexically until ``index()``
    catches them up.
    """

    name = "cold"
    collection_name = "memories_cold_index"

    def __init__(self, db_path: str | Path, chroma_dir: str | Path | None = None):
        super().__init__(db_path, "memories_cold")
        self._chroma_dir = Path(chroma_dir).expanduser() if chroma_dir else None
        self._collection = None

    def _init_db(self):
        super()._init_db()
        with wal_connect(self.db_path) as conn:
            columns = {r[1] for r in conn.execute(f"PRAGMA table_info({self.table})")}
            if "indexed" not in columns:
                conn.execute(
                    f"ALTER TABLE {self.table} ADD COLUMN indexed INTEGER NOT NULL DEFAULT 0"
                )

    @property
    def _chroma(self):
        """Lazy-init ChromaDB collection."""
        if self._collection is None and self._chroma_dir:
            try:
                import chromadb
                from chromadb.config import Settings

                self._chroma_dir.mkdir(parents=True, exist_ok=True)
                client = chromadb.PersistentClient(
                    path=str(self._chroma_dir),
                    settings=Settings(anonymized_telemetry=False),
                )
                self._collection = client.get_or_create_collection(
                    name=self.collection_name,
                    metadata={"hnsw:space": "cosine"},
                )
            except Exception as e:
                logger.warning("chroma_init_failed", error=str(e))
        return self._collection

    def add(self, record: MemoryRecord, key: str, embedding: list[float] | None = None) -> None:
        super().add(record, key)
        if embedding:
            self.index(record, embedding)

    def index(self, record: MemoryRecord, embedding: list[float]) -> bool:
        """Upsert one record with its embedding into Chroma and flag the row."""
        coll = self._chroma
        if not coll:
            return False
        try:
            coll.upsert(
                ids=[record.id],
                documents=[record.content],
                embeddings=[embedding],
                metadatas=[
                    {"memory_type": record.memory_type.value, "category": record.category.value}
                ],
            )
        except Exception as e:
            logger.warning("chroma_upsert_failed", memory_id=record.id, error=str(e))
            return False
        with wal_connect(self.db_path) as conn:
            conn.execute(f"UPDATE {self.table} SET indexed = 1 WHERE id = ?", (record.id,))
        return True

    @property
    def has_index(self) -> bool:
        return self._chroma is not None

    def pending_index(self, limit: int = 50) -> list[MemoryRecord]:
        """Rows not yet in the Chroma index, oldest first."""
        return self._select("WHERE indexed = 0 ORDER BY created_at LIMIT ?", (limit,))

    def delete(self, memory_ids: list[str]) -> int:
        deleted = super().delete(memory_ids)
        coll = self._chroma
        if coll and memory_ids:
            try:
                coll.delete(ids=list(memory_ids))
            except Exception as e:
                logger.warning("chroma_delete_failed", error=str(e))
        return deleted

    def search(self, query, query_embedding=None, limit=None, min_similarity=0.0):
        coll = self._chroma
        if not coll or query_embedding is None:
            return _ranked(self._lexical_search(query, min_similarity), limit)

        try:
            hits = self._vector_search(coll, query_embedding, limit, min_similarity)
        except Exception as e:
            logger.warning("chroma_search_failed", error=str(e))
            return _ranked(self._lexical_search(query, min_similarity), limit)

        hits += self._lexical_search(query, min_similarity, "WHERE indexed = 0")
        return _ranked(hits, limit)

    def _vector_search(self, coll, query_embedding, limit, min_similarity) -> list[MemoryRecord]:
        total = coll.count()
        if total == 0:
            return []
        results = coll.query(
            query_embeddings=[query_embedding],
            n_results=min(limit * 2, total) if limit else total,
            include=["distances"],
        )
        ids = results["ids"][0] if results["ids"] else []
        distances = results["distances"][0] if results.get("distances") else [1.0] * len(ids)
        sims = {mid: 1.0 - float(d) for mid, d in zip(ids, distances)}
        wanted = [mid for mid, sim in sims.items() if sim >= min_similarity]
        if not wanted:
            return []
        placeholders = ",".join("?" for _ in wanted)
        records = self._select(f"WHERE id IN ({placeholders}) AND indexed = 1", wanted)
        return [_with_similarity(r, sims[r.id]) for r in records]


def _ranked(hits: list[MemoryRecord], limit: int | None) -> list[MemoryRecord]:
    hits.sort(key=lambda r: r.score, reverse=True)
    return hits[:limit] if limit else hits
