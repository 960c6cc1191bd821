"""Entity resolution: map free-text mentions onto known records or flag them as new."""

import structlog

from llm.extraction import EntityExtraction
from records.models import ENTITY_TABLES, NAME_FIELDS, display_name
from shared_types import EntityType, MatchKind

from .cross_domain import CROSS_DOMAIN_RULES, find_cross_domain_matches
from .extraction import extract_emails, extract_name_candidates, infer_entity_type
from .matcher import normalize_name, similarity
from .models import NewEntityCandidate, ResolutionResult, ResolvedEntity

logger = structlog.get_logger()

MIN_NEW_ENTITY_LENGTH = 3


class EntityResolver:
    """Resolves mentions with exact, fuzzy, cross-domain and semantic strategies.

    All strategies run and contribute; results are deduped by
    ``(type, normalized name)`` keeping the highest confidence. LLM
    extraction is best-effort. Record store failures propagate.
    """

    def __init__(
        self,
        record_store,
        extractor=None,
        memory=None,
        fuzzy_threshold: float = 0.6,
        task_threshold: float = 0.5,
        semantic_floor: float = 0.7,
        rules=CROSS_DOMAIN_RULES,
    ):
        self.records = record_store
        self.extractor = extractor
        self.memory = memory
        self.fuzzy_threshold = fuzzy_threshold
        self.task_threshold = task_threshold
        self.semantic_floor = semantic_floor
        self.rules = rules

    def resolve(self, text: str) -> ResolutionResult:
        result = ResolutionResult()
        if not text or not text.strip():
            return result

        names = extract_name_candidates(text)
        emails = extract_emails(text)
        extraction = self._extract_with_llm(text)
        llm_by_name = {normalize_name(s.name): s for s in extraction.entity_suggestions}

        candidates = list(names)
        for suggestion in extraction.entity_suggestions:
            if suggestion.name not in candidates:
                candidates.append(suggestion.name)

        tables = self._load_tables()
        found: dict[tuple, ResolvedEntity] = {}
        matched: set[str] = set()

        for candidate in candidates:
            hits = self.lookup(candidate, tables)
            if hits:
                matched.add(normalize_name(candidate))
            for entity in hits:
                _keep_best(found, entity)

        for entity in find_cross_domain_matches(text, tables, self.rules):
            _keep_best(found, entity)

        for entity in self._semantic_matches(text, tables):
            _keep_best(found, entity)

        for entity in found.values():
            result.add(entity)

        exact_names = {
            normalize_name(e.display_name)
            for e in found.values()
            if e.match_kind == MatchKind.EXACT and e.confidence >= 1.0
        }
        seen_new: set[str] = set()
        for candidate in candidates:
            key = normalize_name(candidate)
            if len(candidate) <= MIN_NEW_ENTITY_LENGTH or key in matched or key in exact_names:
                continue
            if key in seen_new:
                continue
            seen_new.add(key)

            suggestion = llm_by_name.get(key)
            email = next((e for e in emails if candidate.lower() in e.lower()), None)
            if email is None and suggestion is not None:
                email = suggestion.email
            result.new_entities.append(
                NewEntityCandidate(
                    name=candidate,
                    type=suggestion.type if suggestion else infer_entity_type(text),
                    email=email,
                )
            )

        logger.debug(
            "entities_resolved",
            matched=len(found),
            new=len(result.new_entities),
            candidates=len(candidates),
        )
        return result

    def _extract_with_llm(self, text: str) -> EntityExtraction:
        if self.extractor is None:
            return EntityExtraction()
        # The extractor degrades to an empty result on its own failures
        return self.extractor.extract_entities(text)

    def _load_tables(self) -> dict[EntityType, list[dict]]:
        """Fetch each entity table once per resolve call."""
        return {
            entity_type: self.records.query(table)
            for entity_type, table in ENTITY_TABLES.items()
        }

    def lookup(
        self, name: str, tables: dict[EntityType, list[dict]]
    ) -> list[ResolvedEntity]:
        """Exact then fuzzy match of one name against every entity table."""
        matches = []
        for entity_type, records in tables.items():
            matches.extend(self._lookup_in(name, entity_type, records))
        return matches

    def _lookup_in(
        self, name: str, entity_type: EntityType, records: list[dict]
    ) -> list[ResolvedEntity]:
        wanted = name.lower()
        exact = []
        for record in records:
            values = _name_values(record, entity_type)
            if any(v.lower() == wanted for v in values):
                exact.append(
                    ResolvedEntity(
                        id=record["id"],
                        entity_type=entity_type,
                        display_name=display_name(record, entity_type),
                        confidence=1.0,
                        match_kind=MatchKind.EXACT,
                    )
                )
        if exact:
            return exact

        floor = self.task_threshold if entity_type == EntityType.TASK else self.fuzzy_threshold
        fuzzy = []
        for record in records:
            values = _name_values(record, entity_type)
            if not values:
                continue
            score = max(similarity(name, v) for v in values)
            if score > floor:
                fuzzy.append(
                    ResolvedEntity(
                        id=record["id"],
                        entity_type=entity_type,
                        display_name=display_name(record, entity_type),
                        confidence=round(score, 4),
                        match_kind=MatchKind.FUZZY,
                    )
                )
        return fuzzy

    def _semantic_matches(
        self, text: str, tables: dict[EntityType, list[dict]]
    ) -> list[ResolvedEntity]:
        """Re-resolve the content of similar memories through the name lookup."""
        if self.memory is None:
            return []

        matches = []
        hits = self.memory.search(text, limit=5, min_similarity=self.semantic_floor)
        for memory in hits:
            score = memory.similarity or self.semantic_floor
            for candidate in extract_name_candidates(memory.content):
                for entity in self.lookup(candidate, tables):
                    matches.append(
                        ResolvedEntity(
                            id=entity.id,
                            entity_type=entity.entity_type,
                            display_name=entity.display_name,
                            confidence=round(min(score, entity.confidence), 4),
                            match_kind=MatchKind.SEMANTIC,
                            reason=f"similar memory {memory.id}",
                        )
                    )
        return matches


def _name_values(record: dict, entity_type: EntityType) -> list[str]:
    return [
        str(record[f]) for f in NAME_FIELDS[entity_type] if record.get(f)
    ]


def _keep_best(found: dict[tuple, ResolvedEntity], entity: ResolvedEntity) -> None:
    key = entity.dedup_key
    current = found.get(key)
    if current is None or entity.confidence > current.confidence:
        found[key] = entity
