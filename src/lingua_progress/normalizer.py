"""Canonical lookup keys for words and phrases.

The same key is used for familiarity records and for highlighting words on
a rendered page, so both callers must go through :func:`normalize`.
"""

from __future__ import annotations

import re

# Latin-extended letters kept alongside ASCII a-z.
DIACRITIC_LETTERS = "ğüşıöçéèêëàâäùûîïôÿñ"

_DISALLOWED = re.compile(rf"[^a-z{DIACRITIC_LETTERS}\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str | None) -> str:
    """Return the normalized key for *text*.

    Lower-cases, drops everything that is not a letter from the allow-list
    or whitespace, and collapses whitespace runs to single spaces.
    """
    if not text:
        return ""
    lowered = str(text).lower()
    filtered = _DISALLOWED.sub("", lowered)
    return _WHITESPACE.sub(" ", filtered).strip()
