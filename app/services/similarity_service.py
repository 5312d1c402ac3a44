"""Title similarity used for duplicate detection during imports.

Score in 0..100:
    - identical (case/whitespace-insensitive) titles score 100,
    - otherwise the share of words (longer than two characters) that contain
      or are contained in a word of the other title, relative to the longer
      word list,
    - when one title contains the other the score is at least 70.
"""
from app.utils.helpers import round_half_up

CONTAINMENT_FLOOR = 70
MIN_WORD_LENGTH = 3


def _words(text: str) -> list[str]:
    return [w for w in text.split() if len(w) >= MIN_WORD_LENGTH]


def calculate_similarity(a: str, b: str) -> float:
    s1 = (a or "").lower().strip()
    s2 = (b or "").lower().strip()
    if s1 == s2:
        return 100

    words1, words2 = _words(s1), _words(s2)
    if not words1 or not words2:
        return 0

    matching = sum(1 for w1 in words1 if any(w2 in w1 or w1 in w2 for w2 in words2))
    score = matching / max(len(words1), len(words2)) * 100

    if s1 in s2 or s2 in s1:
        return max(score, CONTAINMENT_FLOOR)
    return round_half_up(score)


def find_similar(title: str, candidates, threshold: float, key=lambda c: c["title"]) -> list[tuple]:
    """(candidate, score) pairs at or above ``threshold``, best first."""
    matches = []
    for candidate in candidates:
        score = calculate_similarity(title, key(candidate))
        if score >= threshold:
            matches.append((candidate, score))
    matches.sort(key=lambda m: m[1], reverse=True)
    return matches
