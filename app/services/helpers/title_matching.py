"""
Title similarity scoring for library ↔ automated test reconciliation.

Library test cases and automated tests are named by different people and
share no keys, so candidates are scored on their titles:

    1. normalize  — lowercase, punctuation → space, collapse whitespace
    2. tokenize   — set of words
    3. dice       — 2·|A ∩ B| / (|A| + |B|), scaled to 0–100
    4. boost      — +10 when one normalized title contains the other, capped at 100

The result is an integer 0–100. rank_candidates() orders candidates by
score descending, then shorter (more specific) title, then title, then id,
so the ranking is deterministic for equal scores.
"""

import re

CONTAINMENT_BOOST = 10
MAX_SCORE = 100

_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


def normalize_title(title):
    """Lowercase, strip punctuation and collapse whitespace."""
    if not title:
        return ""
    text = _NON_WORD.sub(" ", title.lower())
    return _WHITESPACE.sub(" ", text).strip()


def tokenize(normalized):
    return set(normalized.split()) if normalized else set()


def similarity_score(left, right):
    """Return the integer similarity (0–100) between two raw titles."""
    a_norm = normalize_title(left)
    b_norm = normalize_title(right)
    a_tokens = tokenize(a_norm)
    b_tokens = tokenize(b_norm)
    if not a_tokens or not b_tokens:
        return 0

    dice = 2 * len(a_tokens & b_tokens) / (len(a_tokens) + len(b_tokens))
    score = int(dice * MAX_SCORE + 0.5)

    if a_norm in b_norm or b_norm in a_norm:
        score += CONTAINMENT_BOOST
    return min(score, MAX_SCORE)


def rank_candidates(title, candidates):
    """Score every candidate against ``title`` and return them best first.

    Args:
        title: Library test case title.
        candidates: Iterable of objects with ``id`` and ``title`` attributes.

    Returns:
        list[tuple[int, candidate]] sorted by the deterministic ranking.
    """
    scored = [(similarity_score(title, c.title), c) for c in candidates]
    scored.sort(key=lambda pair: (
        -pair[0],
        len(normalize_title(pair[1].title)),
        pair[1].title or "",
        str(pair[1].id),
    ))
    return scored
