"""LLM structured extraction of entities, cross-domain links and diff context.

Every response is parsed as JSON and validated against a pydantic schema.
Malformed output, provider errors and exhausted retries all degrade to an
empty result; nothing from this module is fatal to a sync pass.
"""

import json

import structlog
from pydantic import BaseModel, Field, ValidationError

from cli.retry import llm_retry
from errors import MalformedResponseError, TransientExternalError
from shared_types import EntityType

from .base import LLMError

logger = structlog.get_logger()

_ENTITY_SYSTEM = """You extract entity mentions from personal administrative text
(emails, documents, chat messages) for a task and debt tracker.

Entity types:
  client: a person or company the user works for
  debt: a creditor, collection agency or outstanding payment
  task: a concrete action the user has to take
  bureaucracy: a government agency, insurer or official case

Also list cross-domain connections: one administrative domain affecting
another with no shared wording (e.g. a benefit change in one country
affecting insurance in another).

Respond as a JSON object:
{"entity_suggestions": [{"name": "...", "type": "client|debt|task|bureaucracy", "confidence": 0.0-1.0, "email": "... or null"}],
 "cross_domain_connections": [{"source": "...", "target": "...", "relationship": "...", "confidence": 0.0-1.0}]}
Output ONLY JSON. No preamble."""

_DIFF_SYSTEM = """You compare a stored record with new text about the same entity.
Report only values the text states explicitly.

Respond as a JSON object with any of these keys (omit unknown ones):
{"amount": number, "currency": "EUR", "deadline": "YYYY-MM-DD", "case_number": "...", "status": "..."}
Output ONLY JSON. No preamble."""


class EntitySuggestion(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: EntityType
    confidence: float = Field(0.7, ge=0.0, le=1.0)
    email: str | None = None


class CrossDomainConnection(BaseModel):
    source: str
    target: str
    relationship: str = ""
    confidence: float = Field(0.5, ge=0.0, le=1.0)


class EntityExtraction(BaseModel):
    entity_suggestions: list[EntitySuggestion] = Field(default_factory=list)
    cross_domain_connections: list[CrossDomainConnection] = Field(default_factory=list)


class DiffContext(BaseModel):
    amount: float | None = None
    currency: str | None = None
    deadline: str | None = None
    case_number: str | None = None
    status: str | None = None


def parse_json_response(response: str) -> object:
    """Strip markdown fences and decode. Raises MalformedResponseError."""
    text = (response or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[-1]
    if text.endswith("```"):
        text = text.rsplit("```", 1)[0]
    text = text.strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Not JSON: {text[:200]}") from e


def _validate_items(items, model: type[BaseModel]) -> list:
    """Validate list items one by one, dropping the ones that don't fit."""
    if not isinstance(items, list):
        return []
    valid = []
    for item in items:
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug("extraction_item_dropped", model=model.__name__, error=str(e))
    return valid


class EntityExtractor:
    """Opaque "ask the LLM for structured entities" capability."""

    def __init__(self, provider=None, max_chars: int = 4000, retry_policy=None):
        self._provider = provider
        self.max_chars = max_chars
        self._generate = (retry_policy or llm_retry())(self._generate_once)

    def _get_provider(self):
        if self._provider:
            return self._provider
        from llm.factory import create_extraction_provider

        self._provider = create_extraction_provider()
        return self._provider

    def _generate_once(self, system: str, prompt: str, max_tokens: int) -> str:
        return self._get_provider().generate(
            messages=[{"role": "user", "content": prompt}],
            system=system,
            max_tokens=max_tokens,
        )

    def _call(self, system: str, prompt: str, max_tokens: int = 800):
        """Run one extraction call; returns parsed JSON or None on any failure."""
        try:
            return parse_json_response(self._generate(system, prompt, max_tokens))
        except MalformedResponseError as e:
            logger.warning("extraction_malformed_response", error=str(e))
        except TransientExternalError as e:
            logger.warning("extraction_degraded", reason="transient", error=str(e))
        except LLMError as e:
            logger.warning("extraction_degraded", reason="llm_error", error=str(e))
        return None

    def extract_entities(self, text: str) -> EntityExtraction:
        """Entity suggestions and cross-domain connections for ``text``."""
        if not text or not text.strip():
            return EntityExtraction()

        data = self._call(_ENTITY_SYSTEM, f"Text:\n{text[: self.max_chars]}")
        if not isinstance(data, dict):
            if data is not None:
                logger.warning("extraction_malformed_response", error="top-level is not an object")
            return EntityExtraction()

        return EntityExtraction(
            entity_suggestions=_validate_items(data.get("entity_suggestions"), EntitySuggestion),
            cross_domain_connections=_validate_items(
                data.get("cross_domain_connections"), CrossDomainConnection
            ),
        )

    def extract_diff_context(
        self, text: str, entity_type: EntityType, record: dict
    ) -> DiffContext | None:
        """Field values ``text`` states about an existing record, or None."""
        if not text or not text.strip():
            return None

        stored = {k: v for k, v in record.items() if k not in ("created_at", "updated_at")}
        prompt = (
            f"Record type: {entity_type.value}\n"
            f"Stored record: {json.dumps(stored, default=str)[:1500]}\n\n"
            f"Text:\n{text[: self.max_chars]}"
        )
        data = self._call(_DIFF_SYSTEM, prompt, max_tokens=300)
        if not isinstance(data, dict):
            return None
        try:
            return DiffContext.model_validate(data)
        except ValidationError as e:
            logger.warning("extraction_malformed_response", error=str(e)[:200])
            return None
