"""SQLite persistence and ranking for learned action patterns."""

import re
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path

import structlog

from db import dump_json, load_json, wal_connect
from memory.models import MemoryCategory
from shared_types import PatternType

from .models import LearningPattern, Recommendation

logger = structlog.get_logger()

RECOMMEND_THRESHOLD = 0.6
# Outcomes needed before the success rate is trusted at full weight
EVIDENCE_SATURATION = 10

_WORD = re.compile(r"\w+", re.UNICODE)


def _tokens(text: str) -> set[str]:
    return {w.lower() for w in _WORD.findall(text or "")}


def _trigger_matches(trigger: str, tokens: set[str]) -> bool:
    words = _tokens(trigger)
    return bool(words) and words <= tokens


class PatternLearner:
    """Counts successes and failures per named pattern and ranks patterns for reuse."""

    def __init__(self, db_path: str | Path, memory=None):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.memory = memory
        self._init_tables()

    def _init_tables(self):
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS learned_patterns (
                    id TEXT PRIMARY KEY,
                    pattern_name TEXT NOT NULL UNIQUE,
                    pattern_type TEXT NOT NULL,
                    trigger_conditions TEXT NOT NULL DEFAULT '[]',
                    recommended_actions TEXT NOT NULL DEFAULT '[]',
                    success_count INTEGER NOT NULL DEFAULT 0,
                    failure_count INTEGER NOT NULL DEFAULT 0,
                    usage_count INTEGER NOT NULL DEFAULT 0,
                    success_rate REAL NOT NULL DEFAULT 0,
                    failure_rate REAL NOT NULL DEFAULT 0,
                    confidence_score REAL NOT NULL DEFAULT 0,
                    last_used_at TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_patterns_type ON learned_patterns(pattern_type)"
            )

    def record_outcome(
        self,
        pattern_key: str,
        was_successful: bool,
        confidence_hint: float | None = None,
        pattern_type: PatternType | str = PatternType.ENTITY_CONNECTION,
        trigger_conditions: list[str] | None = None,
        recommended_actions: list[str] | None = None,
    ) -> LearningPattern:
        """Create or update the pattern; counts and rates change in one transaction.

        Trigger conditions and recommended actions are merged into the
        existing lists. ``confidence_hint`` is averaged into the evidence
        weighted success rate.
        """
        if not pattern_key:
            raise ValueError("pattern_key must not be empty")

        now = datetime.now().isoformat()
        conn = wal_connect(self.db_path, row_factory=True)
        try:
            with conn:
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute(
                    "SELECT * FROM learned_patterns WHERE pattern_name = ?", (pattern_key,)
                ).fetchone()

                if row is None:
                    successes, failures, usage = int(was_successful), int(not was_successful), 1
                    triggers = list(dict.fromkeys(trigger_conditions or []))
                    actions = list(dict.fromkeys(recommended_actions or []))
                    pattern_id = uuid.uuid4().hex[:12]
                else:
                    successes = row["success_count"] + int(was_successful)
                    failures = row["failure_count"] + int(not was_successful)
                    usage = row["usage_count"] + 1
                    triggers = list(
                        dict.fromkeys(load_json(row["trigger_conditions"], []) + (trigger_conditions or []))
                    )
                    actions = list(
                        dict.fromkeys(load_json(row["recommended_actions"], []) + (recommended_actions or []))
                    )
                    pattern_id = row["id"]

                success_rate = successes / usage
                confidence = success_rate * min(1.0, usage / EVIDENCE_SATURATION)
                if confidence_hint is not None:
                    confidence = (confidence + max(0.0, min(1.0, confidence_hint))) / 2

                conn.execute(
                    """INSERT INTO learned_patterns
                       (id, pattern_name, pattern_type, trigger_conditions, recommended_actions,
                        success_count, failure_count, usage_count, success_rate, failure_rate,
                        confidence_score, last_used_at, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(pattern_name) DO UPDATE SET
                         trigger_conditions = excluded.trigger_conditions,
                         recommended_actions = excluded.recommended_actions,
                         success_count = excluded.success_count,
                         failure_count = excluded.failure_count,
                         usage_count = excluded.usage_count,
                         success_rate = excluded.success_rate,
                         failure_rate = excluded.failure_rate,
                         confidence_score = excluded.confidence_score,
                         last_used_at = excluded.last_used_at""",
                    (
                        pattern_id,
                        pattern_key,
                        PatternType(pattern_type).value,
                        dump_json(triggers),
                        dump_json(actions),
                        successes,
                        failures,
                        usage,
                        success_rate,
                        1.0 - success_rate,
                        round(confidence, 4),
                        now,
                        now,
                    ),
                )
        finally:
            conn.close()

        pattern = self.get_pattern(pattern_key)
        logger.debug(
            "pattern_outcome_recorded",
            pattern=pattern_key,
            success=was_successful,
            usage=pattern.usage_count,
            success_rate=round(pattern.success_rate, 3),
        )
        if was_successful and self.memory is not None:
            self._remember_success(pattern)
        return pattern

    def _remember_success(self, pattern: LearningPattern) -> None:
        self.memory.remember(
            f"pattern {pattern.pattern_name} succeeded (use {pattern.usage_count}, "
            f"success rate {pattern.success_rate:.0%})",
            importance=round(0.3 + 0.4 * pattern.success_rate, 4),
            category=MemoryCategory.PATTERN,
            tags={pattern.pattern_type.value, pattern.pattern_name},
            source="pattern_learner",
        )

    def get_pattern(self, pattern_key: str) -> LearningPattern | None:
        with wal_connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM learned_patterns WHERE pattern_name = ?", (pattern_key,)
            ).fetchone()
            return self._row_to_pattern(row) if row else None

    def get_patterns(
        self, pattern_type: PatternType | str | None = None, limit: int = 50
    ) -> list[LearningPattern]:
        """Patterns ordered by confidence score."""
        query = "SELECT * FROM learned_patterns"
        params: list = []
        if pattern_type:
            query += " WHERE pattern_type = ?"
            params.append(PatternType(pattern_type).value)
        query += " ORDER BY confidence_score DESC, usage_count DESC LIMIT ?"
        params.append(limit)
        with wal_connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            return [self._row_to_pattern(r) for r in conn.execute(query, params).fetchall()]

    def get_relevant_patterns(
        self,
        context_text: str,
        limit: int = 5,
        pattern_type: PatternType | str | None = None,
    ) -> list[LearningPattern]:
        """Patterns with a trigger condition found in ``context_text``.

        Ordered by success rate, then usage count.
        """
        tokens = _tokens(context_text)
        if not tokens:
            return []
        relevant = [
            p
            for p in self.get_patterns(pattern_type, limit=1000)
            if any(_trigger_matches(t, tokens) for t in p.trigger_conditions)
        ]
        relevant.sort(key=lambda p: (p.success_rate, p.usage_count), reverse=True)
        return relevant[:limit]

    def match_patterns(
        self,
        text: str,
        pattern_type: PatternType | str | None = None,
        min_similarity: float = 0.7,
    ) -> list[tuple[LearningPattern, float]]:
        """Patterns whose trigger conditions are mostly present in ``text``.

        Similarity is the share of a pattern's triggers found in the text.
        """
        tokens = _tokens(text)
        matches = []
        for pattern in self.get_patterns(pattern_type, limit=1000):
            if not pattern.trigger_conditions:
                continue
            hit = sum(1 for t in pattern.trigger_conditions if _trigger_matches(t, tokens))
            sim = hit / len(pattern.trigger_conditions)
            if sim >= min_similarity:
                matches.append((pattern, sim))
        matches.sort(key=lambda m: (m[1], m[0].success_rate), reverse=True)
        return matches

    def should_recommend(self, pattern_key: str) -> Recommendation:
        pattern = self.get_pattern(pattern_key)
        if pattern is None or pattern.usage_count == 0:
            return Recommendation(True, 0.5, "No prior data - neutral recommendation")

        rate = pattern.success_rate
        if rate > RECOMMEND_THRESHOLD:
            return Recommendation(True, rate, f"Succeeded {rate:.0%} of the time")
        return Recommendation(False, rate, f"Low success rate ({rate:.0%})")

    @staticmethod
    def _row_to_pattern(row: sqlite3.Row) -> LearningPattern:
        d = dict(row)
        last = d.get("last_used_at")
        created = d.get("created_at")
        return LearningPattern(
            id=d["id"],
            pattern_name=d["pattern_name"],
            pattern_type=PatternType(d["pattern_type"]),
            trigger_conditions=load_json(d["trigger_conditions"], []),
            recommended_actions=load_json(d["recommended_actions"], []),
            success_count=d["success_count"],
            failure_count=d["failure_count"],
            usage_count=d["usage_count"],
            success_rate=d["success_rate"],
            failure_rate=d["failure_rate"],
            confidence_score=d["confidence_score"],
            last_used_at=datetime.fromisoformat(last) if last else None,
            created_at=datetime.fromisoformat(created) if created else datetime.now(),
        )
