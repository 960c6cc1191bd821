"""Rule-based extraction from observation text: name candidates, emails, observed fields."""

import re
from datetime import date

from shared_types import EntityType

from .models import ExtractedData

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

# Sentence-initial and salutation words that are capitalized but never names
_COMMON_WORDS = {
    "the", "this", "that", "these", "there", "please", "dear", "hello", "thanks",
    "thank", "regards", "best", "kind", "subject", "from", "your", "you", "our",
    "we", "they", "with", "for", "and", "but", "fwd", "reminder", "invoice",
    "payment", "today", "tomorrow", "monday", "tuesday", "wednesday", "thursday",
    "friday", "saturday", "sunday", "sehr", "geehrte", "damen", "herren", "liebe",
    "hallo", "danke", "bitte", "ihre", "ihr", "wir", "sie", "die", "der", "das",
    "und", "mit", "freundlichen", "grüßen", "eur", "usd", "nok", "gbp", "ils",
}

_CURRENCIES = {
    "€": "EUR", "eur": "EUR", "euro": "EUR", "$": "USD", "usd": "USD",
    "nok": "NOK", "kr": "NOK", "₪": "ILS", "ils": "ILS", "£": "GBP", "gbp": "GBP",
}
_CUR = r"(?P<cur>€|\$|₪|£|EUR|Euro|USD|NOK|kr|ILS|GBP)"
_NUM = r"(?P<num>\d[\d.,]*\d|\d)"
_AMOUNT_PATTERNS = [
    # Currency words must stand alone: "2024 Krankenkasse" is not 2024 kr
    re.compile(_NUM + r"\s?" + _CUR + r"(?!\w)", re.IGNORECASE),
    re.compile(r"(?<!\w)" + _CUR + r"\s?" + _NUM, re.IGNORECASE),
    re.compile(r"\b(?:amount|betrag|sum|total)\b[\s:of]*" + _NUM, re.IGNORECASE),
]
_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_EU_DATE = re.compile(r"\b(\d{1,2})[./](\d{1,2})[./](\d{4})\b")
_CASE_NUMBER = re.compile(
    r"\b(?:case|file|ref(?:erence)?|aktenzeichen|az|vorgang)\b[\s.:#-]*"
    r"(?:no\.?|number|nr\.?)?[\s.:#-]*([A-Z0-9][A-Z0-9/-]{3,})",
    re.IGNORECASE,
)
_STATUS_WORDS = {
    "paid": "paid", "bezahlt": "paid", "settled": "settled", "overdue": "overdue",
    "überfällig": "overdue", "closed": "closed", "cancelled": "cancelled",
}

_TYPE_KEYWORDS: dict[EntityType, tuple[str, ...]] = {
    EntityType.DEBT: (
        "debt", "inkasso", "collection", "reminder", "mahnung", "payment", "invoice",
        "rechnung", "owe", "overdue", "forderung", "amount", "balance", "creditor",
    ),
    EntityType.BUREAUCRACY: (
        "agency", "office", "amt", "tax", "finanzamt", "nav", "insurance", "visa",
        "permit", "residence", "benefit", "application", "krankenkasse", "court",
        "authority", "ministry",
    ),
    EntityType.CLIENT: (
        "client", "project", "proposal", "quote", "customer", "design", "website",
        "contract", "meeting",
    ),
    EntityType.TASK: ("todo", "task", "follow up", "follow-up", "appointment"),
}

_ACTION_PATTERN = re.compile(
    r"\b(pay|due|deadline|reminder|please|must|need to|required|submit|send|call|"
    r"respond|reply|overdue|frist|bitte|until|by \d)",
    re.IGNORECASE,
)


def _letters(word: str) -> str:
    return "".join(ch for ch in word if ch.isalpha())


def extract_name_candidates(text: str) -> list[str]:
    """Capitalized tokens, merging a capitalized pair into one candidate."""
    words = (text or "").split()
    names: list[str] = []
    i = 0
    while i < len(words):
        word = _letters(words[i])
        i += 1
        if len(word) < 3 or not word[0].isupper() or word.lower() in _COMMON_WORDS:
            continue

        name = word
        if i < len(words):
            next_word = _letters(words[i])
            if (
                len(next_word) > 2
                and next_word[0].isupper()
                and next_word.lower() not in _COMMON_WORDS
            ):
                name = f"{word} {next_word}"
                i += 1
        names.append(name)

    return list(dict.fromkeys(names))


def extract_emails(text: str) -> list[str]:
    return list(dict.fromkeys(EMAIL_RE.findall(text or "")))


def parse_amount(raw: str) -> float | None:
    """Parse 75.50, 75,50, 1.234,56 and 1,234.56 style numbers."""
    s = raw.strip().strip(".,")
    if not s:
        return None
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        head, _, tail = s.rpartition(",")
        s = f"{head.replace(',', '')}.{tail}" if len(tail) != 3 else s.replace(",", "")
    elif s.count(".") > 1 or (s.count(".") == 1 and len(s.rpartition(".")[2]) == 3):
        s = s.replace(".", "")
    try:
        return float(s)
    except ValueError:
        return None


def _extract_amount(text: str) -> tuple[float | None, str | None]:
    for pattern in _AMOUNT_PATTERNS:
        for match in pattern.finditer(text):
            amount = parse_amount(match.group("num"))
            if amount is None:
                continue
            cur = match.groupdict().get("cur")
            return amount, _CURRENCIES.get(cur.lower()) if cur else None
    return None, None


def _extract_deadline(text: str) -> str | None:
    for match in _ISO_DATE.finditer(text):
        try:
            return date(int(match[1]), int(match[2]), int(match[3])).isoformat()
        except ValueError:
            continue
    for match in _EU_DATE.finditer(text):
        try:
            return date(int(match[3]), int(match[2]), int(match[1])).isoformat()
        except ValueError:
            continue
    return None


def _extract_case_number(text: str) -> str | None:
    for match in _CASE_NUMBER.finditer(text):
        value = match.group(1)
        if any(ch.isdigit() for ch in value):
            return value
    return None


def _extract_status(text: str) -> str | None:
    lowered = text.lower()
    for word, status in _STATUS_WORDS.items():
        if re.search(rf"\b{word}\b", lowered):
            return status
    return None


def extract_observed_fields(text: str) -> ExtractedData:
    """Amount, currency, deadline, case number, status and e-mail stated in ``text``."""
    text = text or ""
    amount, currency = _extract_amount(text)
    emails = extract_emails(text)
    return ExtractedData(
        amount=amount,
        currency=currency,
        deadline=_extract_deadline(text),
        case_number=_extract_case_number(text),
        status=_extract_status(text),
        email=emails[0] if emails else None,
    )


def infer_entity_type(text: str) -> EntityType:
    """Guess which domain an unknown mention belongs to from keywords in ``text``."""
    lowered = (text or "").lower()
    scores = {
        entity_type: sum(1 for kw in keywords if re.search(rf"\b{re.escape(kw)}\b", lowered))
        for entity_type, keywords in _TYPE_KEYWORDS.items()
    }
    best = max(scores.values())
    if best == 0:
        return EntityType.CLIENT
    # dict order breaks ties: debt, bureaucracy, client, task
    return next(t for t, s in scores.items() if s == best)


def is_actionable(text: str) -> bool:
    return bool(_ACTION_PATTERN.search(text or ""))
