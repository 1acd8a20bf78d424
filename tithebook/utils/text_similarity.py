"""
String similarity helpers built on rapidfuzz.
"""

from typing import List, Sequence, Tuple

from rapidfuzz import fuzz


def ratio(text1: str, text2: str) -> float:
    """Normalized edit similarity in [0, 1]."""
    if not text1 or not text2:
        return 0.0
    return fuzz.ratio(text1.lower(), text2.lower()) / 100.0


def token_sort_similarity(text1: str, text2: str) -> float:
    """Word-order-insensitive similarity in [0, 1]."""
    if not text1 or not text2:
        return 0.0
    return fuzz.token_sort_ratio(text1.lower(), text2.lower()) / 100.0


def rank_scores(scores: Sequence[float], top_k: int = 5) -> List[Tuple[int, float]]:
    """
    Rank candidate scores, best first.

    Ties keep candidate order so results are deterministic.

    Args:
        scores: One score per candidate
        top_k: Number of top results to return

    Returns:
        List of (index, score) tuples
    """
    if top_k <= 0 or not scores:
        return []

    ranked = sorted(enumerate(scores), key=lambda x: (-x[1], x[0]))
    return [(i, float(s)) for i, s in ranked[:top_k]]
