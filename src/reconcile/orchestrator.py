"""Sync pass: observations in, ranked and deduplicated suggestions out."""

import asyncio
import concurrent.futures
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog
import structlog.contextvars

from errors import RecordNotFoundError, RecordStoreError, StoreUnavailableError, TaskweaveError
from memory.models import MemoryCategory
from observability import log_run_summary, metrics
from records.models import (
    AUDIT_TABLE,
    DIFF_FIELDS,
    ENTITY_TABLES,
    OBSERVATIONS_TABLE,
    Observation,
)
from shared_types import EntityType, MatchKind, PatternType, Priority, SyncState

from .cross_domain import CROSS_DOMAIN_CONFIDENCE, find_cross_domain_matches, triggered_rules
from .diff import DiffDetector
from .extraction import extract_observed_fields, is_actionable
from .models import (
    CreateAction,
    ExtractedData,
    ResolutionResult,
    ResolvedEntity,
    Suggestion,
    UpdateAction,
)
from .suggestions import (
    build_cross_domain_suggestion,
    build_follow_up_suggestion,
    build_new_contact_suggestion,
    build_new_task_suggestion,
    build_update_suggestion,
    dedupe_suggestions,
    rank_suggestions,
    summarize,
)

logger = structlog.get_logger().bind(source="sync")

LEARNED_CONFIDENCE_CAP = 0.85
LEARNED_CONFIDENCE_FLOOR = 0.5


@dataclass
class SyncOptions:
    max_items: int = 50
    lookback_days: int = 7
    force_rescan: bool = False
    auto_apply: bool = False
    auto_apply_threshold: float = 0.9
    max_concurrency: int = 5
    success_threshold: float = 0.7
    pattern_similarity: float = 0.7


@dataclass
class ObservationFailure:
    observation_id: str
    reason: str


@dataclass
class SyncReport:
    run_id: str
    processed: int = 0
    failed: int = 0
    failures: list[ObservationFailure] = field(default_factory=list)
    suggestions: list[Suggestion] = field(default_factory=list)
    applied: list[Suggestion] = field(default_factory=list)
    summary: str = "No updates found"

    @property
    def outcome_line(self) -> str:
        return f"{self.processed} observations processed, {self.failed} failed"

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "processed": self.processed,
            "failed": self.failed,
            "failures": [f.__dict__ for f in self.failures],
            "suggestions": [s.to_dict() for s in self.suggestions],
            "applied": [s.id for s in self.applied],
            "summary": self.summary,
        }


class SyncOrchestrator:
    """Drives one reconciliation pass through the sync state machine.

    Resolution and diffing each fan out over the observations (bounded by
    ``max_concurrency``); each diff worker returns its own suggestion list and
    the lists are merged after all workers finish. Observations are marked
    processed only after the pass's suggestions are written to the audit log
    (and applied, if enabled).
    """

    def __init__(
        self,
        record_store,
        resolver,
        memory=None,
        learner=None,
        extractor=None,
        diff_detector: DiffDetector | None = None,
        options: SyncOptions | None = None,
    ):
        self.records = record_store
        self.resolver = resolver
        self.memory = memory
        self.learner = learner
        self.extractor = extractor
        self.diff = diff_detector or DiffDetector()
        self.options = options or SyncOptions()
        self.state = SyncState.IDLE

    def _enter(self, state: SyncState) -> None:
        self.state = state
        logger.debug("sync_state", state=state.value)

    # --- entry points ---

    def run(self, **overrides) -> SyncReport:
        """Run a pass from sync code. Keyword overrides replace SyncOptions fields."""
        coro = self.run_async(**overrides)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(coro)
        # Already inside an event loop: run the pass on a separate thread's loop
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()

    async def run_async(self, **overrides) -> SyncReport:
        opts = SyncOptions(**{**self.options.__dict__, **overrides})
        run_id = uuid.uuid4().hex[:8]
        structlog.contextvars.bind_contextvars(run_id=run_id)
        started = datetime.now()
        report = SyncReport(run_id=run_id)

        try:
            with metrics.timer("sync_pass_duration"):
                self._enter(SyncState.FETCHING)
                observations = self.fetch(opts)
                if not observations:
                    report.summary = "No new observations to process"
                    logger.info("sync_nothing_to_do", force_rescan=opts.force_rescan)
                    return report

                self._enter(SyncState.RESOLVING)
                resolved, failures = await self._fan_out(
                    [(o, ()) for o in observations], self._timed_resolve, opts
                )

                self._enter(SyncState.DIFFING)
                per_observation, diff_failures = await self._fan_out(
                    [(o, (resolution,)) for o, resolution in resolved], self._timed_diff, opts
                )
                failures.extend(diff_failures)
                report.failures = failures
                report.failed = len(failures)
                report.processed = len(per_observation)

                self._enter(SyncState.CROSS_DOMAIN_ANALYSIS)
                tables = self._load_tables()
                merged: list[Suggestion] = []
                for observation, suggestions in per_observation:
                    merged.extend(suggestions)
                    merged.extend(
                        self.cross_domain_analysis(observation, suggestions, tables, opts)
                    )

                self._enter(SyncState.DEDUPLICATING)
                report.suggestions = rank_suggestions(dedupe_suggestions(merged))
                report.summary = summarize(report.suggestions)

                if opts.auto_apply:
                    self._enter(SyncState.AUTO_APPLYING)
                    eligible = [
                        s for s in report.suggestions if s.confidence > opts.auto_apply_threshold
                    ]
                    report.applied = self._apply(eligible)

                self._enter(SyncState.REPORTING)
                self._report(report, [o for o, _ in per_observation], started, opts)
        finally:
            self._enter(SyncState.IDLE)
            structlog.contextvars.unbind_contextvars("run_id")

        metrics.counter("sync_observations_processed", report.processed)
        metrics.counter("sync_observations_failed", report.failed)
        metrics.counter("sync_suggestions", len(report.suggestions))
        metrics.counter("sync_auto_applied", len(report.applied))
        metrics.count_by("sync_suggestions", (s.kind.value for s in report.suggestions))
        logger.info(
            "sync_completed",
            run_id=run_id,
            processed=report.processed,
            failed=report.failed,
            suggestions=len(report.suggestions),
            applied=len(report.applied),
        )
        log_run_summary(run_id=run_id)
        return report

    # --- stages ---

    def fetch(self, opts: SyncOptions | None = None) -> list[Observation]:
        """Unprocessed observations from the lookback window, newest first."""
        opts = opts or self.options
        since = datetime.now() - timedelta(days=opts.lookback_days)
        rows = self.records.query(
            OBSERVATIONS_TABLE,
            filter=None if opts.force_rescan else {"processed": False},
            since=since,
            since_field="received_at",
            order_by="received_at",
            descending=True,
            limit=opts.max_items,
        )
        return [Observation.from_record(r) for r in rows]

    async def _fan_out(self, work: list[tuple[Observation, tuple]], fn, opts: SyncOptions):
        """Run ``fn(observation, *args)`` on worker threads, at most max_concurrency at once.

        Returns ``(observation, result)`` pairs for the successes and one
        ObservationFailure per observation whose call raised.
        """
        semaphore = asyncio.Semaphore(max(1, opts.max_concurrency))

        async def worker(observation: Observation, args: tuple):
            async with semaphore:
                return await asyncio.to_thread(fn, observation, *args)

        results = await asyncio.gather(
            *(worker(o, args) for o, args in work), return_exceptions=True
        )

        succeeded, failures = [], []
        for (observation, _), result in zip(work, results):
            if isinstance(result, StoreUnavailableError):
                raise result
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    "observation_failed",
                    observation_id=observation.id,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                failures.append(
                    ObservationFailure(observation.id, f"{type(result).__name__}: {result}")
                )
            else:
                succeeded.append((observation, result))
        return succeeded, failures

    def _timed_resolve(self, observation: Observation) -> ResolutionResult:
        with metrics.timer("sync_resolve_duration"):
            return self.resolver.resolve(observation.text)

    def _timed_diff(self, observation: Observation, resolution: ResolutionResult) -> list[Suggestion]:
        with metrics.timer("sync_diff_duration"):
            return self.diff_observation(observation, resolution)

    def diff_observation(
        self, observation: Observation, resolution: ResolutionResult
    ) -> list[Suggestion]:
        """Update and new-entity suggestions for one resolved observation. Runs on a worker thread."""
        text = observation.text
        observed = extract_observed_fields(text)

        suggestions = []
        for entity in resolution.all_entities():
            if entity.id is None or entity.match_kind == MatchKind.CROSS_DOMAIN:
                continue
            try:
                suggestion = self._update_suggestion(entity, text, observed, observation)
            except RecordNotFoundError as e:
                logger.warning("resolved_record_missing", table=e.table, record_id=e.record_id)
                continue
            if suggestion is not None:
                suggestions.append(suggestion)

        suggestions.extend(self._new_entity_suggestions(observation, resolution, observed))
        return suggestions

    def _update_suggestion(
        self,
        entity: ResolvedEntity,
        text: str,
        observed: ExtractedData,
        observation: Observation,
    ) -> Suggestion | None:
        table = ENTITY_TABLES[entity.entity_type]
        record = self.records.get_by_id(table, entity.id)
        if record is None:
            raise RecordNotFoundError(table, entity.id)

        data = observed
        if self.extractor is not None:
            context = self.extractor.extract_diff_context(text, entity.entity_type, record)
            if context is not None:
                data = observed.fill_from(ExtractedData(**context.model_dump()))

        fields = DIFF_FIELDS[entity.entity_type]
        new = {k: v for k, v in data.as_dict().items() if k in fields}
        if not new:
            return None
        old = {k: record.get(k) for k in new}

        changes = self.diff.detect_changes(old, new)
        if not changes:
            return None
        return build_update_suggestion(entity, changes, observation.id)

    def _new_entity_suggestions(
        self,
        observation: Observation,
        resolution: ResolutionResult,
        observed: ExtractedData,
    ) -> list[Suggestion]:
        text = observation.text
        source = observation.source.value
        suggestions = []

        existing = [
            e
            for t in (EntityType.DEBT, EntityType.TASK, EntityType.BUREAUCRACY)
            for e in resolution.for_type(t)
            if e.match_kind != MatchKind.CROSS_DOMAIN
        ]
        if observation.action_needed is None:
            actionable = is_actionable(text) or observed.amount is not None or observed.deadline is not None
        else:
            actionable = observation.action_needed

        if actionable and not existing:
            if resolution.new_entities:
                first = resolution.new_entities[0]
                name = first.name
                details = {"entity_type": first.type.value}
            else:
                name = observation.subject or text[:60]
                details = {}
            details.update(
                {k: v for k, v in observed.as_dict().items() if k in ("amount", "currency", "deadline", "case_number")}
            )
            suggestions.append(
                build_new_task_suggestion(
                    name,
                    text,
                    priority=observation.priority or Priority.MEDIUM,
                    observation_id=observation.id,
                    source=source,
                    details=details,
                )
            )

        for candidate in resolution.new_entities:
            if candidate.email or candidate.type == EntityType.CLIENT:
                suggestions.append(
                    build_new_contact_suggestion(candidate, observation.subject, observation.id, source)
                )
        return suggestions

    def cross_domain_analysis(
        self,
        observation: Observation,
        suggestions: list[Suggestion],
        tables: dict[EntityType, list[dict]],
        opts: SyncOptions | None = None,
    ) -> list[Suggestion]:
        """Rule and learned-pattern matching over an observation and its suggestions."""
        opts = opts or self.options
        text = "\n".join([observation.text, *(f"{s.title} {s.description}" for s in suggestions)])

        found = []
        for rule in triggered_rules(text, self.resolver.rules):
            triggers = rule.matched_keywords(text)
            for entity in find_cross_domain_matches(text, tables, (rule,)):
                found.append(
                    build_cross_domain_suggestion(
                        entity,
                        CROSS_DOMAIN_CONFIDENCE,
                        pattern_key=f"cross_domain:{rule.name}:{entity.id}",
                        triggers=triggers,
                        observation_id=observation.id,
                    )
                )

        if self.learner is not None:
            matches = self.learner.match_patterns(
                text, PatternType.CROSS_DOMAIN, min_similarity=opts.pattern_similarity
            )
            for pattern, sim in matches:
                confidence = min(LEARNED_CONFIDENCE_CAP, sim * pattern.success_rate)
                if confidence < LEARNED_CONFIDENCE_FLOOR:
                    continue
                for action in pattern.recommended_actions:
                    found.append(
                        build_follow_up_suggestion(
                            title=action,
                            reason=f"Learned from {pattern.usage_count} earlier passes",
                            confidence=round(confidence, 4),
                            pattern_key=pattern.pattern_name,
                            triggers=pattern.trigger_conditions,
                            observation_id=observation.id,
                        )
                    )
        return found

    def _load_tables(self) -> dict[EntityType, list[dict]]:
        return {t: self.records.query(table) for t, table in ENTITY_TABLES.items()}

    def _apply(self, suggestions: list[Suggestion]) -> list[Suggestion]:
        applied = []
        for suggestion in suggestions:
            action = suggestion.proposed_action
            try:
                if isinstance(action, UpdateAction):
                    if self.records.get_by_id(action.table, action.record_id) is None:
                        raise RecordNotFoundError(action.table, action.record_id)
                    self.records.upsert(action.table, {"id": action.record_id, **action.updates})
                elif isinstance(action, CreateAction):
                    self.records.upsert(action.table, dict(action.payload))
            except StoreUnavailableError:
                raise
            except RecordStoreError as e:
                logger.warning("suggestion_apply_failed", suggestion_id=suggestion.id, error=str(e))
                continue
            applied.append(suggestion)
            logger.info("suggestion_applied", suggestion_id=suggestion.id, title=suggestion.title)
        return applied

    def _report(
        self,
        report: SyncReport,
        observations: list[Observation],
        started: datetime,
        opts: SyncOptions,
    ) -> None:
        finished = datetime.now()
        self.records.upsert(
            AUDIT_TABLE,
            {
                **report.to_dict(),
                "id": report.run_id,
                "started_at": started.isoformat(),
                "finished_at": finished.isoformat(),
            },
        )
        for observation in observations:
            self.records.upsert(
                OBSERVATIONS_TABLE,
                {"id": observation.id, "processed": True, "processed_at": finished.isoformat()},
            )

        try:
            if self.memory is not None:
                self.memory.remember(
                    f"Sync pass {report.run_id}: {report.summary}. {report.outcome_line}",
                    importance=0.8 if report.suggestions else 0.5,
                    category=MemoryCategory.CONVERSATION,
                    tags={"sync"},
                    source="sync",
                )
            if self.learner is not None:
                for s in report.suggestions:
                    self.learner.record_outcome(
                        s.pattern_key,
                        s.confidence > opts.success_threshold,
                        confidence_hint=s.confidence,
                        pattern_type=s.pattern_type,
                        trigger_conditions=s.triggers,
                        recommended_actions=[s.title] if s.pattern_type == PatternType.CROSS_DOMAIN else None,
                    )
        except (sqlite3.Error, TaskweaveError) as e:
            logger.warning("sync_feedback_failed", error=str(e))

    # --- consumer side ---

    def apply(self, suggestions: list[Suggestion]) -> list[Suggestion]:
        """Apply suggestions accepted by a consumer; acceptance counts as success."""
        applied = self._apply(suggestions)
        if self.learner is not None:
            for s in applied:
                self.learner.record_outcome(
                    s.pattern_key, True, confidence_hint=s.confidence, pattern_type=s.pattern_type
                )
        return applied

    def reject(self, suggestions: list[Suggestion]) -> None:
        """Record suggestions a consumer turned down as failed outcomes."""
        if self.learner is None:
            return
        for s in suggestions:
            self.learner.record_outcome(
                s.pattern_key, False, confidence_hint=s.confidence, pattern_type=s.pattern_type
            )

    def status(self, days: int = 7) -> dict:
        """Pending vs recently processed observation counts, plus the last pass."""
        since = datetime.now() - timedelta(days=days)
        last = self.records.query(AUDIT_TABLE, order_by="finished_at", limit=1)
        return {
            "state": self.state.value,
            "pending": self.records.count(OBSERVATIONS_TABLE, filter={"processed": False}),
            "processed_recent": self.records.count(
                OBSERVATIONS_TABLE,
                filter={"processed": True},
                since=since,
                since_field="processed_at",
            ),
            "last_sync": last[0] if last else None,
        }
