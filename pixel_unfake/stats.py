"""Small numeric helpers shared by the processing stages."""

from __future__ import annotations

import math
from collections import Counter
from typing import Iterable, Sequence

import numpy as np


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def median(values: Sequence[float]) -> float:
    """Return the median, averaging the middle pair for even lengths.

    An empty sequence yields ``0``.
    """

    ordered = sorted(values)
    count = len(ordered)
    if count == 0:
        return 0
    middle = count // 2
    if count % 2:
        return ordered[middle]
    return (ordered[middle - 1] + ordered[middle]) / 2


def mode(values: Iterable[int]) -> int:
    """Return the value that first reaches the highest count in scan order."""

    counts: dict[int, int] = {}
    best = 0
    best_count = 0
    for value in values:
        seen = counts.get(value, 0) + 1
        counts[value] = seen
        if seen > best_count:
            best_count = seen
            best = value
    return best


def mean(values: Sequence[float]) -> int:
    if len(values) == 0:
        return 0
    return round_half_up(sum(values) / len(values))


def dominant_or_mean(values: Sequence[int], threshold: float = 0.05) -> int:
    """Return the most frequent value when its share reaches ``threshold``.

    Ties go to the smallest value. Otherwise the rounded arithmetic mean is
    returned.
    """

    if len(values) == 0:
        return 0
    counts = Counter(values)
    best_count = max(counts.values())
    best = min(value for value, count in counts.items() if count == best_count)
    if best_count / len(values) >= threshold:
        return best
    return mean(values)


def gcd_array(values: Iterable[int]) -> int:
    result = 0
    for value in values:
        result = math.gcd(result, int(value))
        if result == 1:
            return 1
    return result or 1


def multiply_2x2(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Multiply 2x2 matrices; stacks of shape ``(..., 2, 2)`` broadcast."""

    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    out = np.empty(np.broadcast_shapes(a.shape, b.shape), dtype=np.float64)
    out[..., 0, 0] = a[..., 0, 0] * b[..., 0, 0] + a[..., 0, 1] * b[..., 1, 0]
    out[..., 0, 1] = a[..., 0, 0] * b[..., 0, 1] + a[..., 0, 1] * b[..., 1, 1]
    out[..., 1, 0] = a[..., 1, 0] * b[..., 0, 0] + a[..., 1, 1] * b[..., 1, 0]
    out[..., 1, 1] = a[..., 1, 0] * b[..., 0, 1] + a[..., 1, 1] * b[..., 1, 1]
    return out
