"""String similarity helpers for catalog matching."""

from typing import Iterable, Optional, Tuple


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance (insertions, deletions, substitutions) between two strings."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    # Keep the shorter string in the inner loop
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized similarity: 1 - distance / max length (1.0 for two empty strings)."""
    max_length = max(len(a), len(b))
    if max_length == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max_length


def best_match(text: str, candidates: Iterable[str]) -> Tuple[Optional[str], float]:
    """Candidate with the highest similarity to text; first one wins ties."""
    best: Optional[str] = None
    best_score = 0.0
    for candidate in candidates:
        score = similarity(text, candidate)
        if score > best_score:
            best, best_score = candidate, score
    return best, best_score
