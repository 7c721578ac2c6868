from typing import Any

from driver_identity.services.normalization import normalize_name


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit insertion, deletion and substitution costs."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    # Two rolling rows of the DP matrix
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current[j] = min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            )
        previous = current
    return previous[len(b)]


def similarity(a: Any, b: Any) -> float:
    """
    Similarity in [0, 1] of two names after normalization.

    Equal normalized names (both empty included) score 1.0, an empty name
    against a non-empty one scores 0.0, otherwise
    (max_len - distance) / max_len.
    """
    norm_a = normalize_name(a)
    norm_b = normalize_name(b)

    if norm_a == norm_b:
        return 1.0
    if not norm_a or not norm_b:
        return 0.0

    max_len = max(len(norm_a), len(norm_b))
    distance = levenshtein_distance(norm_a, norm_b)
    return (max_len - distance) / max_len
