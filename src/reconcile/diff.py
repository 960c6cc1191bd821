"""Field-level differences between a stored record and newly observed data."""

import re
from datetime import date, datetime

from shared_types import ChangeType

from .models import DiffResult

FIELD_LABELS = {
    "amount": "Amount",
    "currency": "Currency",
    "deadline": "Deadline",
    "status": "Status",
    "priority": "Priority",
    "case_number": "Case number",
    "title": "Title",
    "description": "Description",
    "email": "Email",
}

NO_CHANGES = "no changes"

_EU_DATE = re.compile(r"^(\d{1,2})[./](\d{1,2})[./](\d{4})$")
_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
_DECIMALS = 2


def normalize_value(value):
    """Canonical form used for comparison.

    Dates become ISO-8601 strings (date only when the time is midnight),
    numbers are rounded to two decimals, strings are stripped. Empty
    strings count as absent.
    """
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, datetime):
        if value.time() == datetime.min.time() and value.tzinfo is None:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        return round(float(value), _DECIMALS)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return _normalize_date_string(text)
    return value


def _normalize_date_string(text: str) -> str:
    match = _EU_DATE.match(text)
    if match:
        try:
            return date(int(match[3]), int(match[2]), int(match[1])).isoformat()
        except ValueError:
            return text
    if _ISO_PREFIX.match(text):
        try:
            return normalize_value(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            return text
    return text


def _same(old, new) -> bool:
    if old == new:
        return True
    # "45.55" stored as text still equals 45.55 observed as a number
    numbers = (int, float)
    if isinstance(old, numbers) != isinstance(new, numbers):
        try:
            return round(float(old), _DECIMALS) == round(float(new), _DECIMALS)
        except (TypeError, ValueError):
            return False
    return False


class DiffDetector:
    """Compares two flat records field by field."""

    def detect_changes(self, old: dict | None, new: dict | None) -> list[DiffResult]:
        """Added, removed and modified fields across the union of both key sets.

        A key whose value is None (or an empty string) counts as absent.
        Output is ordered by field name.
        """
        old = {k: normalize_value(v) for k, v in (old or {}).items()}
        new = {k: normalize_value(v) for k, v in (new or {}).items()}

        diffs = []
        for field in sorted(set(old) | set(new)):
            before = old.get(field)
            after = new.get(field)
            if before is None and after is None:
                continue
            if before is None:
                diffs.append(DiffResult(field, None, after, ChangeType.ADDED))
            elif after is None:
                diffs.append(DiffResult(field, before, None, ChangeType.REMOVED))
            elif not _same(before, after):
                diffs.append(DiffResult(field, before, after, ChangeType.MODIFIED))
        return diffs

    @staticmethod
    def describe(diff: DiffResult) -> str:
        label = FIELD_LABELS.get(diff.field, diff.field.replace("_", " ").capitalize())
        if diff.change_type == ChangeType.ADDED:
            return f"{label} set to {diff.new_value}"
        if diff.change_type == ChangeType.REMOVED:
            return f"{label} removed (was {diff.old_value})"
        return f"{label} changed from {diff.old_value} to {diff.new_value}"

    def format_change_summary(self, diffs: list[DiffResult]) -> str:
        if not diffs:
            return NO_CHANGES
        return "; ".join(self.describe(d) for d in diffs)
