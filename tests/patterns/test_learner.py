"""Tests for PatternLearner outcome tracking and matching."""

from unittest.mock import MagicMock

import pytest

from patterns import PatternLearner
from shared_types import PatternType


class TestRecordOutcome:
    def test_first_outcome_creates_pattern(self, learner):
        pattern = learner.record_outcome("update_debt:exact", True)
        assert pattern.usage_count == 1
        assert pattern.success_count == 1
        assert pattern.success_rate == 1.0
        assert pattern.failure_rate == 0.0
        assert pattern.pattern_type == PatternType.ENTITY_CONNECTION

    def test_counts_and_rates(self, learner):
        for outcome in (True, True, False, True):
            learner.record_outcome("new_task", outcome, pattern_type=PatternType.TASK_CREATION)
        pattern = learner.get_pattern("new_task")
        assert (pattern.success_count, pattern.failure_count, pattern.usage_count) == (3, 1, 4)
        assert pattern.success_rate == pytest.approx(0.75)
        assert pattern.success_rate + pattern.failure_rate == pytest.approx(1.0)

    def test_confidence_grows_with_evidence(self, learner):
        early = learner.record_outcome("p", True).confidence_score
        for _ in range(9):
            late = learner.record_outcome("p", True).confidence_score
        assert early == pytest.approx(0.1)
        assert late == pytest.approx(1.0)

    def test_confidence_hint_averaged(self, learner):
        pattern = learner.record_outcome("p", True, confidence_hint=0.9)
        assert pattern.confidence_score == pytest.approx(0.5)

    def test_triggers_and_actions_merged(self, learner):
        learner.record_outcome("cd", True, trigger_conditions=["nav"], recommended_actions=["Call TK"])
        pattern = learner.record_outcome(
            "cd", True, trigger_conditions=["nav", "dagpenger"], recommended_actions=["Call TK"]
        )
        assert pattern.trigger_conditions == ["nav", "dagpenger"]
        assert pattern.recommended_actions == ["Call TK"]

    def test_empty_key_rejected(self, learner):
        with pytest.raises(ValueError):
            learner.record_outcome("", True)

    def test_success_remembered(self, tmp_path):
        memory = MagicMock()
        learner = PatternLearner(tmp_path / "p.db", memory=memory)
        learner.record_outcome("new_task", True)
        learner.record_outcome("new_task", False)
        memory.remember.assert_called_once()
        assert memory.remember.call_args.kwargs["source"] == "pattern_learner"


class TestQueries:
    def test_get_patterns_by_type(self, learner):
        learner.record_outcome("a", True, pattern_type=PatternType.CROSS_DOMAIN)
        learner.record_outcome("b", True)
        names = [p.pattern_name for p in learner.get_patterns(PatternType.CROSS_DOMAIN)]
        assert names == ["a"]

    def test_get_pattern_missing(self, learner):
        assert learner.get_pattern("nope") is None

    def test_relevant_patterns(self, learner):
        learner.record_outcome("nav", True, trigger_conditions=["nav"])
        learner.record_outcome("court", True, trigger_conditions=["court hearing"])
        relevant = learner.get_relevant_patterns("Letter from NAV today")
        assert [p.pattern_name for p in relevant] == ["nav"]

    def test_multiword_trigger_needs_all_words(self, learner):
        learner.record_outcome("court", True, trigger_conditions=["court hearing"])
        assert learner.get_relevant_patterns("court date set") == []
        assert learner.get_relevant_patterns("hearing at the court")


class TestMatchPatterns:
    def test_similarity_is_trigger_share(self, learner):
        learner.record_outcome(
            "cd", True, pattern_type=PatternType.CROSS_DOMAIN, trigger_conditions=["nav", "benefit", "stopped"]
        )
        matches = learner.match_patterns("NAV stopped payments", PatternType.CROSS_DOMAIN, 0.5)
        assert len(matches) == 1
        assert matches[0][1] == pytest.approx(2 / 3)

    def test_below_threshold_excluded(self, learner):
        learner.record_outcome(
            "cd", True, pattern_type=PatternType.CROSS_DOMAIN, trigger_conditions=["nav", "benefit", "stopped"]
        )
        assert learner.match_patterns("NAV letter", PatternType.CROSS_DOMAIN, 0.7) == []

    def test_patterns_without_triggers_skipped(self, learner):
        learner.record_outcome("bare", True, pattern_type=PatternType.CROSS_DOMAIN)
        assert learner.match_patterns("anything", PatternType.CROSS_DOMAIN, 0.0) == []


class TestShouldRecommend:
    def test_no_data_is_neutral(self, learner):
        rec = learner.should_recommend("unknown")
        assert rec.recommend is True
        assert rec.confidence == 0.5

    def test_high_success(self, learner):
        for _ in range(3):
            learner.record_outcome("p", True)
        assert learner.should_recommend("p").recommend is True

    def test_low_success(self, learner):
        learner.record_outcome("p", True)
        learner.record_outcome("p", False)
        rec = learner.should_recommend("p")
        assert rec.recommend is False
        assert rec.confidence == pytest.approx(0.5)
