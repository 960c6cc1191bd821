"""Keyword rules linking administrative domains that share no wording."""

import re
from dataclasses import dataclass

from records.models import NAME_FIELDS, display_name
from shared_types import EntityType, MatchKind

from .models import ResolvedEntity

CROSS_DOMAIN_CONFIDENCE = 0.7

# Extra free-text fields searched besides the name fields
_CONTEXT_FIELDS = ("type", "category", "description", "notes")


@dataclass(frozen=True)
class CrossDomainRule:
    name: str
    keywords: tuple[str, ...]
    target_domain: EntityType
    search_terms: tuple[str, ...]
    reason: str

    def matched_keywords(self, text: str) -> list[str]:
        return [kw for kw in self.keywords if _contains_word(text, kw)]

    def triggered_by(self, text: str) -> bool:
        return bool(self.matched_keywords(text))


CROSS_DOMAIN_RULES: tuple[CrossDomainRule, ...] = (
    CrossDomainRule(
        name="benefits_to_health_insurance",
        keywords=("nav", "norway", "norwegian", "dagpenger", "unemployment benefit"),
        target_domain=EntityType.BUREAUCRACY,
        search_terms=("insurance", "krankenkasse", "tk", "aok", "health"),
        reason="Benefit change abroad may affect health insurance status",
    ),
    CrossDomainRule(
        name="legal_action_to_debt",
        keywords=("court", "gericht", "bailiff", "gerichtsvollzieher", "mahnbescheid"),
        target_domain=EntityType.DEBT,
        search_terms=("inkasso", "collection", "finance", "forderung"),
        reason="Legal action usually concerns an open debt",
    ),
    CrossDomainRule(
        name="insurance_contributions_to_debt",
        keywords=("krankenkasse", "health insurance", "beitrag", "contribution"),
        target_domain=EntityType.DEBT,
        search_terms=("krankenkasse", "insurance", "aok", "tk"),
        reason="Unpaid insurance contributions turn into debts",
    ),
    CrossDomainRule(
        name="tax_to_bureaucracy",
        keywords=("finanzamt", "tax return", "steuer", "vat", "umsatzsteuer"),
        target_domain=EntityType.BUREAUCRACY,
        search_terms=("finanzamt", "tax", "steuer"),
        reason="Tax correspondence belongs to an open tax case",
    ),
    CrossDomainRule(
        name="residence_to_tasks",
        keywords=("residence permit", "visa", "ausländerbehörde", "aufenthalt"),
        target_domain=EntityType.TASK,
        search_terms=("visa", "permit", "residence", "aufenthalt"),
        reason="Residence status changes need follow-up tasks",
    ),
)


def _contains_word(text: str, word: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(word)}(?!\w)", text, re.IGNORECASE) is not None


def _record_matches(record: dict, entity_type: EntityType, terms: tuple[str, ...]) -> bool:
    for field in (*NAME_FIELDS[entity_type], *_CONTEXT_FIELDS):
        value = record.get(field)
        if isinstance(value, str) and any(_contains_word(value, t) for t in terms):
            return True
    return False


def triggered_rules(text: str, rules=CROSS_DOMAIN_RULES) -> list[CrossDomainRule]:
    return [rule for rule in rules if rule.triggered_by(text or "")]


def find_cross_domain_matches(
    text: str,
    records_by_type: dict[EntityType, list[dict]],
    rules=CROSS_DOMAIN_RULES,
) -> list[ResolvedEntity]:
    """Records in a rule's target domain matching its search terms, for every triggered rule."""
    matches = []
    for rule in triggered_rules(text, rules):
        for record in records_by_type.get(rule.target_domain, []):
            if not _record_matches(record, rule.target_domain, rule.search_terms):
                continue
            matches.append(
                ResolvedEntity(
                    id=record["id"],
                    entity_type=rule.target_domain,
                    display_name=display_name(record, rule.target_domain),
                    confidence=CROSS_DOMAIN_CONFIDENCE,
                    match_kind=MatchKind.CROSS_DOMAIN,
                    reason=rule.reason,
                )
            )
    return matches
