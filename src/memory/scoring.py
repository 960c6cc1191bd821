"""Pure scoring helpers: importance, decay, content keys and text similarity."""

import hashlib
import re

import numpy as np

from .models import DECAY_FLOORS, DECAY_RATES, MemoryCategory, MemoryType

IMPORTANCE_KEYWORDS = (
    "important",
    "urgent",
    "always",
    "never",
    "critical",
    "deadline",
    "remember",
)

_WORD = re.compile(r"\w+", re.UNICODE)
_WS = re.compile(r"\s+")
CONTENT_KEY_CHARS = 100


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def compute_importance(
    content: str,
    category: MemoryCategory = MemoryCategory.GENERAL,
    entity_id: str | None = None,
) -> float:
    """Base 0.5, category and entity boosts, +0.05 per keyword occurrence."""
    score = 0.5
    if category == MemoryCategory.PREFERENCE:
        score += 0.2
    elif category == MemoryCategory.FACT:
        score += 0.15
    if entity_id:
        score += 0.1

    words = [w.lower() for w in _WORD.findall(content or "")]
    score += 0.05 * sum(words.count(kw) for kw in IMPORTANCE_KEYWORDS)
    return round(clamp(score), 4)


def decayed_importance(importance: float, memory_type: MemoryType) -> float:
    """One decay step. Never raises importance, even when below the floor."""
    stepped = max(DECAY_FLOORS[memory_type], importance - DECAY_RATES[memory_type])
    return round(min(importance, stepped), 4)


def normalize_content(content: str) -> str:
    return _WS.sub(" ", (content or "").strip()).lower()


def content_key(content: str) -> str:
    """Hash of the first 100 normalized characters, used for cross-tier dedup."""
    prefix = normalize_content(content)[:CONTENT_KEY_CHARS]
    return hashlib.sha1(prefix.encode("utf-8")).hexdigest()


def tokenize(text: str) -> set[str]:
    return {w.lower() for w in _WORD.findall(text or "") if len(w) >= 3}


def lexical_similarity(query: str, content: str) -> float:
    """Share of query tokens present in ``content``; the no-embedding fallback."""
    q = tokenize(query)
    if not q:
        return 0.0
    return len(q & tokenize(content)) / len(q)


def cosine_similarity(a, b) -> float:
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        return 0.0
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def jaccard(a: set, b: set) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)
