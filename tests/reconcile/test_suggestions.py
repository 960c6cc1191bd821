"""Tests for suggestion construction, dedup and ranking."""

import pytest

from reconcile.models import CreateAction, DiffResult, NewEntityCandidate, ResolvedEntity, UpdateAction
from reconcile.suggestions import (
    build_cross_domain_suggestion,
    build_new_contact_suggestion,
    build_new_task_suggestion,
    build_update_suggestion,
    dedupe_suggestions,
    rank_suggestions,
    summarize,
)
from shared_types import ChangeType, EntityType, MatchKind, PatternType, Priority, SuggestionKind


def _entity(match_kind=MatchKind.EXACT, confidence=1.0):
    return ResolvedEntity(
        id="d1",
        entity_type=EntityType.DEBT,
        display_name="PAIR Finance",
        confidence=confidence,
        match_kind=match_kind,
    )


AMOUNT_CHANGE = DiffResult("amount", 45.55, 75.5, ChangeType.MODIFIED)
CASE_ADDED = DiffResult("case_number", None, "50916993", ChangeType.ADDED)


class TestUpdateSuggestion:
    def test_exact_modified(self):
        s = build_update_suggestion(_entity(), [AMOUNT_CHANGE, CASE_ADDED], "obs1")
        assert s.kind == SuggestionKind.UPDATE_DEBT
        assert s.confidence == 0.9
        assert s.priority == Priority.HIGH
        assert s.proposed_action == UpdateAction(
            table="debts", record_id="d1", updates={"amount": 75.5, "case_number": "50916993"}
        )
        assert s.pattern_key == "update_debt:exact"
        assert s.source_observation_id == "obs1"
        assert "Amount changed from 45.55 to 75.5" in s.description

    def test_added_only_is_medium(self):
        s = build_update_suggestion(_entity(), [CASE_ADDED])
        assert s.confidence == 0.5
        assert s.priority == Priority.MEDIUM

    def test_fuzzy_match_caps_confidence(self):
        s = build_update_suggestion(_entity(MatchKind.FUZZY, 0.75), [AMOUNT_CHANGE])
        assert s.confidence == 0.75

    def test_semantic_pattern_type(self):
        s = build_update_suggestion(_entity(MatchKind.SEMANTIC, 0.8), [AMOUNT_CHANGE])
        assert s.pattern_type == PatternType.SEARCH_SUCCESS


class TestCreateSuggestions:
    def test_new_task(self):
        s = build_new_task_suggestion(
            "Swaprad GmbH", "Swaprad GmbH invoice", priority=Priority.HIGH, observation_id="o1"
        )
        assert s.kind == SuggestionKind.NEW_TASK
        assert 0.6 <= s.confidence <= 0.8
        assert isinstance(s.proposed_action, CreateAction)
        assert s.proposed_action.table == "tasks"
        assert s.proposed_action.payload["priority_score"] == 80
        assert s.title == "Follow up: Swaprad GmbH"

    def test_title_truncated(self):
        s = build_new_task_suggestion("x" * 200, "text")
        assert len(s.title) == 100

    def test_new_contact(self):
        s = build_new_contact_suggestion(
            NewEntityCandidate("Brightside", EntityType.CLIENT, "hi@brightside.io"), "Kickoff"
        )
        assert s.kind == SuggestionKind.NEW_CONTACT
        assert s.priority == Priority.LOW
        assert s.proposed_action.payload["email"] == "hi@brightside.io"
        assert s.pattern_key == "new_contact:client"

    def test_cross_domain(self):
        entity = ResolvedEntity(
            id="b1",
            entity_type=EntityType.BUREAUCRACY,
            display_name="Techniker Krankenkasse",
            confidence=0.7,
            match_kind=MatchKind.CROSS_DOMAIN,
            reason="Benefit change abroad may affect health insurance status",
        )
        s = build_cross_domain_suggestion(entity, 0.7, "cross_domain:x:b1", triggers=["nav"])
        assert s.title == "Check bureaucracy: Techniker Krankenkasse"
        assert s.priority == Priority.HIGH
        assert s.pattern_type == PatternType.CROSS_DOMAIN
        assert s.triggers == ["nav"]
        assert s.proposed_action.payload["entity_id"] == "b1"


class TestDedupAndRank:
    def test_dedupe_keeps_highest_confidence(self):
        low = build_update_suggestion(_entity(MatchKind.FUZZY, 0.7), [AMOUNT_CHANGE])
        high = build_update_suggestion(_entity(), [AMOUNT_CHANGE])
        result = dedupe_suggestions([low, high])
        assert result == [high]

    def test_dedupe_key_unique(self):
        suggestions = [
            build_new_task_suggestion("Swaprad GmbH", "a"),
            build_new_task_suggestion("swaprad gmbh", "b"),
            build_new_task_suggestion("Other", "c"),
        ]
        result = dedupe_suggestions(suggestions)
        keys = [s.dedup_key for s in result]
        assert len(result) == 2
        assert len(keys) == len(set(keys))

    def test_rank_priority_then_confidence(self):
        task = build_new_task_suggestion("A", "a")  # medium, 0.7
        update = build_update_suggestion(_entity(), [AMOUNT_CHANGE])  # high, 0.9
        contact = build_new_contact_suggestion(NewEntityCandidate("B", EntityType.CLIENT))
        weak_update = build_update_suggestion(_entity(MatchKind.FUZZY, 0.65), [AMOUNT_CHANGE])
        ranked = rank_suggestions([contact, task, weak_update, update])
        assert ranked == [update, weak_update, task, contact]


class TestSummarize:
    def test_empty(self):
        assert summarize([]) == "No updates found"

    def test_counts(self):
        suggestions = [
            build_update_suggestion(_entity(), [AMOUNT_CHANGE]),
            build_new_task_suggestion("A", "a"),
        ]
        assert summarize(suggestions) == "Found 2 updates (1 high priority): 1 update_debt, 1 new_task"


@pytest.mark.parametrize("kind", list(EntityType))
def test_every_entity_type_has_update_kind(kind):
    entity = ResolvedEntity("x", kind, "X", 1.0, MatchKind.EXACT)
    s = build_update_suggestion(entity, [CASE_ADDED])
    assert s.kind.value == f"update_{kind.value}"
