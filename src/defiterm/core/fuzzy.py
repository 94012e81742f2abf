"""String similarity used by the fuzzy resolver."""

from __future__ import annotations

import difflib

# Prefix matches always outrank plain edit similarity of the same length
PREFIX_BASE = 0.7


def similarity(token: str, name: str) -> float:
    """Normalized similarity in [0, 1] between typed text and a command name.

    Case-insensitive. Exact equality scores 1.0, a prefix scores between
    PREFIX_BASE and 1.0 depending on how much of the name was typed, anything
    else falls back to ``difflib.SequenceMatcher``.
    """
    a = token.strip().lower()
    b = name.lower()
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if b.startswith(a):
        return PREFIX_BASE + (1.0 - PREFIX_BASE) * len(a) / len(b)
    return difflib.SequenceMatcher(None, a, b).ratio() * PREFIX_BASE
