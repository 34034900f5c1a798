"""Node impurity measures over class-count matrices."""

from __future__ import annotations

from typing import Callable, Dict

import numpy as np

ImpurityFn = Callable[[np.ndarray, np.ndarray], np.ndarray]


def _proportions(counts: np.ndarray, totals: np.ndarray) -> np.ndarray:
    totals = np.asarray(totals, dtype=np.float64)
    safe = np.where(totals > 0, totals, 1.0)
    return counts / safe[..., None]


def gini(counts: np.ndarray, totals: np.ndarray) -> np.ndarray:
    """``1 - sum(p_k^2)`` per row of ``counts`` ``[B, K]``."""
    p = _proportions(counts, totals)
    return 1.0 - np.sum(p * p, axis=-1)


def misclassification(counts: np.ndarray, totals: np.ndarray) -> np.ndarray:
    """``1 - max_k p_k``."""
    p = _proportions(counts, totals)
    return 1.0 - np.max(p, axis=-1)


def cross_entropy(counts: np.ndarray, totals: np.ndarray) -> np.ndarray:
    """``-sum(p_k log p_k)`` with ``0 log 0 = 0``."""
    p = _proportions(counts, totals)
    with np.errstate(divide="ignore", invalid="ignore"):
        terms = np.where(p > 0.0, p * np.log(p), 0.0)
    return -np.sum(terms, axis=-1)


IMPURITY_FUNCTIONS: Dict[str, ImpurityFn] = {
    "gini": gini,
    "misclassification": misclassification,
    "cross_entropy": cross_entropy,
}


def get_impurity(name: str) -> ImpurityFn:
    try:
        return IMPURITY_FUNCTIONS[name]
    except KeyError:
        raise ValueError(f"Unsupported impurity measure: {name}") from None


def sum_squared_error(count: np.ndarray, label_sum: np.ndarray, label_sumsq: np.ndarray) -> np.ndarray:
    """Squared error around the mean, summed over label dimensions.

    ``count`` has shape ``[B]`` and the sums ``[B, D]``.
    """
    count = np.asarray(count, dtype=np.float64)
    safe = np.where(count > 0, count, 1.0)
    sse = label_sumsq - (label_sum * label_sum) / safe[..., None]
    # cancellation can leave tiny negatives on constant segments
    return np.maximum(np.sum(sse, axis=-1), 0.0)


__all__ = [
    "IMPURITY_FUNCTIONS",
    "ImpurityFn",
    "cross_entropy",
    "get_impurity",
    "gini",
    "misclassification",
    "sum_squared_error",
]
