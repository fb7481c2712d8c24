"""
Approximate matching of storage keys.

When an exact lookup misses, the cached artifacts stored next to the
requested one are compared by edit distance on their base names (the file
name without its format extension). The most similar sibling is used if its
similarity ratio is strictly greater than SIMILARITY_THRESHOLD.

Siblings are compared in sorted name order and the first one with the best
ratio wins, so ties resolve to the lexicographically smallest name.
"""

import logging
import os
from typing import Optional, Tuple

from .storage import StorageBackend

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.9


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance with unit cost for insert, delete and substitute."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1 - distance / length of the longer string; 1.0 for two empty strings."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - edit_distance(a, b) / longest


def base_name(path: str) -> str:
    """Last path segment without its extension."""
    name = path.rstrip("/").rsplit("/", 1)[-1]
    return os.path.splitext(name)[0]


def nearest_match(
    backend: StorageBackend,
    path: str,
    threshold: float = SIMILARITY_THRESHOLD,
) -> Tuple[Optional[str], float]:
    """
    Find the stored sibling of path whose base name is closest to path's.

    Args:
        backend: Storage backend to search
        path: Storage path that missed (key plus extension)
        threshold: Matches must score strictly above this ratio

    Returns:
        Tuple of (matched_path, ratio). matched_path is None when no sibling
        scores above the threshold; ratio is the best score seen (0.0 if the
        directory is empty).
    """
    target = base_name(path)
    directory = path.rsplit("/", 1)[0] if "/" in path else ""

    best_name = None
    best_ratio = 0.0
    for name in backend.list_siblings(path):
        ratio = similarity(target, os.path.splitext(name)[0])
        if best_name is None or ratio > best_ratio:
            best_name, best_ratio = name, ratio

    if best_name is None or best_ratio <= threshold:
        return None, best_ratio

    logger.debug("Fuzzy match for %s: %s (ratio %.3f)", path, best_name, best_ratio)
    matched = f"{directory}/{best_name}" if directory else best_name
    return matched, best_ratio
