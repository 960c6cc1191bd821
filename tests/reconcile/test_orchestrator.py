"""Tests for the sync pass."""

import asyncio
import threading
import time
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from errors import RecordStoreError, StoreUnavailableError
from llm.extraction import DiffContext
from observability import metrics
from reconcile.models import ResolutionResult
from reconcile.orchestrator import SyncOptions, SyncOrchestrator
from reconcile.resolver import EntityResolver
from records.models import AUDIT_TABLE, OBSERVATIONS_TABLE
from shared_types import PatternType, Priority, SuggestionKind, SyncState

PAIR_TEXT = "PAIR Finance reminder, amount 75.50€, case 50916993"
SWAPRAD_TEXT = "Swaprad GmbH invoice: please pay 49,00 EUR by 2026-11-30"


@pytest.fixture
def orchestrator(seeded_records, memory_store, learner):
    resolver = EntityResolver(seeded_records, memory=memory_store)
    return SyncOrchestrator(seeded_records, resolver, memory=memory_store, learner=learner)


class TestScenarios:
    def test_pair_finance_amount_update(self, orchestrator, add_observation):
        add_observation(PAIR_TEXT)
        report = orchestrator.run()

        assert report.processed == 1
        assert report.failed == 0
        updates = [s for s in report.suggestions if s.kind == SuggestionKind.UPDATE_DEBT]
        assert len(updates) == 1
        update = updates[0]
        assert update.confidence >= 0.9
        assert update.proposed_action.record_id == "d1"
        amount = next(c for c in update.changes if c.field == "amount")
        assert (amount.old_value, amount.new_value, amount.change_type.value) == (
            45.55,
            75.5,
            "modified",
        )
        # A matched debt does not also produce a follow-up task
        assert not [s for s in report.suggestions if s.kind == SuggestionKind.NEW_TASK]

    def test_swaprad_new_task(self, orchestrator, add_observation):
        add_observation(SWAPRAD_TEXT)
        report = orchestrator.run()

        tasks = [s for s in report.suggestions if s.kind == SuggestionKind.NEW_TASK]
        assert len(tasks) == 1
        assert 0.6 <= tasks[0].confidence <= 0.8
        payload = tasks[0].proposed_action.payload
        assert payload["entity_type"] == "debt"
        assert payload["amount"] == 49.0
        assert payload["deadline"] == "2026-11-30"

    def test_observation_priority_carried(self, orchestrator, add_observation):
        add_observation(SWAPRAD_TEXT, priority=Priority.HIGH)
        report = orchestrator.run()
        assert report.suggestions[0].priority == Priority.HIGH

    def test_cross_domain_follow_up(self, orchestrator, add_observation):
        add_observation("NAV has stopped your unemployment benefit from March")
        report = orchestrator.run()

        follow_ups = [s for s in report.suggestions if s.pattern_type == PatternType.CROSS_DOMAIN]
        assert [s.title for s in follow_ups] == ["Check bureaucracy: Techniker Krankenkasse"]
        assert follow_ups[0].priority == Priority.HIGH
        assert follow_ups[0].confidence == 0.7
        assert "nav" in follow_ups[0].triggers

    def test_year_before_currency_word_is_not_an_amount(self, orchestrator, add_observation):
        add_observation("PAIR Finance Bescheid 2024 Krankenkasse, amount 45,55 EUR")
        report = orchestrator.run()
        changed = [c.field for s in report.suggestions for c in s.changes]
        assert "amount" not in changed


class TestConcurrency:
    class CountingResolver:
        def __init__(self):
            self.lock = threading.Lock()
            self.in_flight = 0
            self.peak = 0
            self.calls = 0

        def resolve(self, text):
            with self.lock:
                self.calls += 1
                self.in_flight += 1
                self.peak = max(self.peak, self.in_flight)
            time.sleep(0.05)
            with self.lock:
                self.in_flight -= 1
            return ResolutionResult()

    @pytest.mark.parametrize("limit", [1, 2])
    def test_resolve_calls_bounded(self, seeded_records, add_observation, limit):
        resolver = self.CountingResolver()
        orchestrator = SyncOrchestrator(
            seeded_records, resolver, options=SyncOptions(max_concurrency=limit)
        )
        for i in range(6):
            add_observation(f"Note {i}: nothing to do")

        report = orchestrator.run()
        assert report.processed == 6
        assert resolver.calls == 6
        assert 1 <= resolver.peak <= limit

    def test_zero_limit_still_runs(self, seeded_records, add_observation):
        resolver = self.CountingResolver()
        orchestrator = SyncOrchestrator(
            seeded_records, resolver, options=SyncOptions(max_concurrency=0)
        )
        add_observation("Note: nothing to do")
        assert orchestrator.run().processed == 1
        assert resolver.peak == 1


class TestPassBookkeeping:
    def test_second_pass_is_empty(self, orchestrator, add_observation):
        add_observation(PAIR_TEXT)
        first = orchestrator.run()
        second = orchestrator.run()

        assert first.suggestions
        assert second.processed == 0
        assert second.suggestions == []
        assert second.summary == "No new observations to process"

    def test_force_rescan_reprocesses(self, orchestrator, add_observation):
        add_observation(PAIR_TEXT)
        orchestrator.run()
        again = orchestrator.run(force_rescan=True)
        assert again.processed == 1
        assert [s.kind for s in again.suggestions] == [SuggestionKind.UPDATE_DEBT]

    def test_marks_processed_and_writes_audit(self, orchestrator, add_observation, seeded_records):
        obs_id = add_observation(PAIR_TEXT)
        report = orchestrator.run()

        stored = seeded_records.get_by_id(OBSERVATIONS_TABLE, obs_id)
        assert stored["processed"] is True
        assert stored["processed_at"]
        audit = seeded_records.get_by_id(AUDIT_TABLE, report.run_id)
        assert audit["processed"] == 1
        assert audit["summary"] == report.summary

    def test_lookback_window(self, orchestrator, add_observation):
        add_observation(PAIR_TEXT, received_at=datetime.now() - timedelta(days=30))
        assert orchestrator.run().processed == 0
        assert orchestrator.run(lookback_days=60).processed == 1

    def test_max_items(self, orchestrator, add_observation):
        for i in range(4):
            add_observation(f"Note {i}: please call Creditreform")
        report = orchestrator.run(max_items=2)
        assert report.processed == 2
        assert orchestrator.status()["pending"] == 2

    def test_state_returns_to_idle(self, orchestrator, add_observation):
        add_observation(PAIR_TEXT)
        orchestrator.run()
        assert orchestrator.state == SyncState.IDLE

    def test_state_chain(self, orchestrator, add_observation, monkeypatch):
        add_observation(PAIR_TEXT)
        states = []
        real_enter = orchestrator._enter

        def track(state):
            states.append(state)
            real_enter(state)

        monkeypatch.setattr(orchestrator, "_enter", track)
        orchestrator.run(auto_apply=True)
        assert states == [
            SyncState.FETCHING,
            SyncState.RESOLVING,
            SyncState.DIFFING,
            SyncState.CROSS_DOMAIN_ANALYSIS,
            SyncState.DEDUPLICATING,
            SyncState.AUTO_APPLYING,
            SyncState.REPORTING,
            SyncState.IDLE,
        ]

    def test_metrics_recorded(self, orchestrator, add_observation):
        add_observation(PAIR_TEXT)
        orchestrator.run()
        summary = metrics.summary()
        assert summary["counters"]["sync_observations_processed"] == 1
        assert summary["timers"]["sync_pass_duration"]["count"] == 1
        assert summary["timers"]["sync_resolve_duration"]["count"] == 1
        assert summary["timers"]["sync_diff_duration"]["count"] == 1
        assert summary["counters"]["sync_suggestions.update_debt"] == 1

    def test_status(self, orchestrator, add_observation):
        add_observation(PAIR_TEXT)
        add_observation(SWAPRAD_TEXT)
        before = orchestrator.status()
        assert before["pending"] == 2
        assert before["last_sync"] is None

        report = orchestrator.run()
        after = orchestrator.status()
        assert after["pending"] == 0
        assert after["processed_recent"] == 2
        assert after["last_sync"]["run_id"] == report.run_id
        assert after["state"] == "idle"


class TestFailures:
    def test_one_bad_observation_does_not_abort(self, seeded_records, add_observation):
        resolver = EntityResolver(seeded_records)
        real_resolve = resolver.resolve

        def flaky(text):
            if "boom" in text:
                raise ValueError("unparseable")
            return real_resolve(text)

        resolver.resolve = flaky
        orchestrator = SyncOrchestrator(seeded_records, resolver)
        bad = add_observation("boom")
        good = add_observation(PAIR_TEXT)

        report = orchestrator.run()
        assert report.processed == 1
        assert report.failed == 1
        assert report.failures[0].observation_id == bad
        assert "unparseable" in report.failures[0].reason
        assert report.outcome_line == "1 observations processed, 1 failed"
        # The failed observation stays pending for the next pass
        assert seeded_records.get_by_id(OBSERVATIONS_TABLE, bad)["processed"] is False
        assert seeded_records.get_by_id(OBSERVATIONS_TABLE, good)["processed"] is True

    def test_store_unavailable_aborts(self, seeded_records, add_observation):
        resolver = MagicMock()
        resolver.resolve.side_effect = StoreUnavailableError("locked")
        orchestrator = SyncOrchestrator(seeded_records, resolver)
        add_observation(PAIR_TEXT)

        with pytest.raises(StoreUnavailableError):
            orchestrator.run()
        assert orchestrator.state == SyncState.IDLE

    def test_deleted_record_is_skipped(self, seeded_records, add_observation):
        resolver = EntityResolver(seeded_records)
        orchestrator = SyncOrchestrator(seeded_records, resolver)
        add_observation(PAIR_TEXT)
        real_get = seeded_records.get_by_id
        seeded_records.get_by_id = lambda table, rid: None if rid == "d1" else real_get(table, rid)

        report = orchestrator.run()
        assert report.failed == 0
        assert not [s for s in report.suggestions if s.kind == SuggestionKind.UPDATE_DEBT]

    def test_feedback_failure_does_not_fail_pass(self, seeded_records, add_observation):
        learner = MagicMock()
        learner.match_patterns.return_value = []
        learner.record_outcome.side_effect = RecordStoreError("patterns db locked")
        orchestrator = SyncOrchestrator(
            seeded_records, EntityResolver(seeded_records), learner=learner
        )
        add_observation(PAIR_TEXT)
        report = orchestrator.run()
        assert report.processed == 1


class TestAutoApply:
    def test_threshold_is_strict(self, orchestrator, add_observation, seeded_records):
        add_observation(PAIR_TEXT)
        report = orchestrator.run(auto_apply=True, auto_apply_threshold=0.9)
        assert report.applied == []
        assert seeded_records.get_by_id("debts", "d1")["amount"] == 45.55

    def test_applies_above_threshold(self, orchestrator, add_observation, seeded_records):
        add_observation(PAIR_TEXT)
        report = orchestrator.run(auto_apply=True, auto_apply_threshold=0.85)
        assert [s.kind for s in report.applied] == [SuggestionKind.UPDATE_DEBT]
        debt = seeded_records.get_by_id("debts", "d1")
        assert debt["amount"] == 75.5
        assert debt["case_number"] == "50916993"

    def test_off_by_default(self, orchestrator, add_observation):
        add_observation(PAIR_TEXT)
        assert orchestrator.run().applied == []


class TestLLMDiffContext:
    def test_llm_fills_gaps(self, seeded_records, add_observation):
        extractor = MagicMock()
        extractor.extract_diff_context.return_value = DiffContext(
            amount=999.0, deadline="2026-12-15"
        )
        orchestrator = SyncOrchestrator(
            seeded_records, EntityResolver(seeded_records), extractor=extractor
        )
        add_observation(PAIR_TEXT)
        update = orchestrator.run().suggestions[0]

        # Regex-observed amount wins; the LLM only fills the missing deadline
        assert update.proposed_action.updates["amount"] == 75.5
        assert update.proposed_action.updates["deadline"] == "2026-12-15"

    def test_llm_failure_degrades(self, seeded_records, add_observation):
        extractor = MagicMock()
        extractor.extract_diff_context.return_value = None
        orchestrator = SyncOrchestrator(
            seeded_records, EntityResolver(seeded_records), extractor=extractor
        )
        add_observation(PAIR_TEXT)
        report = orchestrator.run()
        assert report.suggestions[0].proposed_action.updates["amount"] == 75.5


class TestLearning:
    def test_outcomes_recorded(self, orchestrator, add_observation, learner):
        add_observation(PAIR_TEXT)
        orchestrator.run()
        pattern = learner.get_pattern("update_debt:exact")
        assert pattern.usage_count == 1
        assert pattern.success_count == 1

    def test_session_summary_remembered(self, orchestrator, add_observation, memory_store):
        add_observation(PAIR_TEXT)
        report = orchestrator.run()
        recent = memory_store.get_by_tags({"sync"})
        assert len(recent) == 1
        assert report.run_id in recent[0].content
        assert recent[0].importance == 0.8

    def test_learned_cross_domain_pattern_suggests(self, seeded_records, add_observation, learner):
        for _ in range(3):
            learner.record_outcome(
                "cross_domain:court_letters",
                True,
                pattern_type=PatternType.CROSS_DOMAIN,
                trigger_conditions=["amtsgericht", "zahlungsbefehl"],
                recommended_actions=["Call the debt counselling office"],
            )
        orchestrator = SyncOrchestrator(
            seeded_records, EntityResolver(seeded_records), learner=learner
        )
        add_observation("Zahlungsbefehl vom Amtsgericht eingegangen")
        report = orchestrator.run()

        learned = [s for s in report.suggestions if s.title == "Call the debt counselling office"]
        assert len(learned) == 1
        assert learned[0].confidence == 0.85
        assert learned[0].priority == Priority.HIGH

    def test_apply_and_reject_feed_learner(self, orchestrator, add_observation, learner):
        add_observation(PAIR_TEXT)
        report = orchestrator.run()
        update = report.suggestions[0]

        orchestrator.apply([update])
        orchestrator.reject([update])
        pattern = learner.get_pattern(update.pattern_key)
        assert pattern.usage_count == 3
        assert pattern.success_count == 2
        assert pattern.failure_count == 1


def test_run_inside_event_loop(orchestrator, add_observation):
    add_observation(PAIR_TEXT)

    async def caller():
        return orchestrator.run()

    report = asyncio.run(caller())
    assert report.processed == 1


def test_options_defaults():
    opts = SyncOptions()
    assert (opts.max_items, opts.lookback_days, opts.auto_apply, opts.auto_apply_threshold) == (
        50,
        7,
        False,
        0.9,
    )
