"""Normalized string similarity used by every resolver."""

import re

_WS = re.compile(r"\s+")


def normalize_name(value: str) -> str:
    """Casefold and collapse whitespace, the key used for name dedup."""
    return _WS.sub(" ", (value or "").strip()).casefold()


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance with two rolling rows."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Similarity in [0, 1].

    1.0 on case-insensitive equality, 0.8 when one contains the other,
    otherwise 1 - levenshtein / longer length.
    """
    s1 = (a or "").lower()
    s2 = (b or "").lower()

    if s1 == s2:
        return 1.0
    # An empty string is not treated as a containment match
    if s1 and s2 and (s1 in s2 or s2 in s1):
        return 0.8

    longest = max(len(s1), len(s2))
    return 1.0 - edit_distance(s1, s2) / longest
