"""Best-split search over sorted per-feature row tables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np

from .impurity import get_impurity, sum_squared_error
from .sorted_index import SortedIndex

_MIN_GAIN = 1e-12


@dataclass(frozen=True)
class Split:
    """Candidate split: rows with ``value <= threshold`` go left."""

    feature: int
    threshold: float
    gain: float
    n_left: int
    n_right: int


@dataclass(frozen=True)
class NodeStats:
    """Label statistics of the rows reaching a node.

    ``counts`` is set for classification. Regression keeps ``label_sum``,
    ``label_mean`` and ``label_sumsq``, the per-dimension squared deviation
    from the mean. ``impurity`` is the node impurity (classification) or the sum
    of squared errors around the mean (regression).
    """

    n: int
    impurity: float
    is_pure: bool
    counts: np.ndarray | None = None
    label_sum: np.ndarray | None = None
    label_sumsq: np.ndarray | None = None
    label_mean: np.ndarray | None = None


class _Splitter:
    """Shared single-pass scan; subclasses score the candidate boundaries."""

    task: str = ""

    def __init__(self, node_size: int) -> None:
        if node_size < 1:
            raise ValueError("node_size must be >= 1")
        self.node_size = int(node_size)

    def can_split(self, stats: NodeStats) -> bool:
        return stats.n >= max(self.node_size, 2) and not stats.is_pure

    def find_split(self, index: SortedIndex, features: Iterable[int], stats: NodeStats) -> Split | None:
        """Return the best improving split over ``features`` or ``None``.

        Thresholds sit halfway between consecutive distinct values; among
        equal gains the first feature in iteration order, then the smallest
        threshold, wins.
        """
        if not self.can_split(stats):
            return None
        best: Split | None = None
        min_gain = _MIN_GAIN * max(1.0, stats.impurity)
        for feature in features:
            feature = int(feature)
            rows = index.feature_rows(feature)
            values = index.values[rows, feature]
            boundaries = np.flatnonzero(values[:-1] < values[1:])
            if boundaries.size == 0:
                continue
            children = self._child_impurity(rows, boundaries, stats)
            pos = int(np.argmin(children))
            gain = float(stats.impurity - children[pos])
            if gain <= min_gain or (best is not None and gain <= best.gain):
                continue
            b = int(boundaries[pos])
            best = Split(
                feature=feature,
                threshold=_midpoint(float(values[b]), float(values[b + 1])),
                gain=gain,
                n_left=b + 1,
                n_right=stats.n - b - 1,
            )
        return best

    def _child_impurity(self, rows: np.ndarray, boundaries: np.ndarray, stats: NodeStats) -> np.ndarray:
        raise NotImplementedError


class ClassificationSplitter(_Splitter):
    """Running class counts scored by Gini, misclassification or cross-entropy."""

    task = "classification"

    def __init__(self, labels: np.ndarray, n_classes: int, impurity: str = "gini", node_size: int = 1) -> None:
        super().__init__(node_size)
        self.labels = np.asarray(labels, dtype=np.int64)
        self.n_classes = int(n_classes)
        self.impurity = impurity
        self._impurity_fn = get_impurity(impurity)
        self._one_hot = np.eye(self.n_classes, dtype=np.float64)[self.labels]

    @property
    def n_outputs(self) -> int:
        return self.n_classes

    def node_stats(self, index: SortedIndex) -> NodeStats:
        rows = index.feature_rows(0)
        counts = np.bincount(self.labels[rows], minlength=self.n_classes).astype(np.float64)
        n = int(rows.size)
        impurity = float(self._impurity_fn(counts[None, :], np.array([n]))[0])
        return NodeStats(n=n, impurity=impurity, is_pure=np.count_nonzero(counts) <= 1, counts=counts)

    def leaf_value(self, stats: NodeStats) -> np.ndarray:
        """Class distribution of the node."""
        assert stats.counts is not None
        return stats.counts / max(stats.n, 1)

    def _child_impurity(self, rows: np.ndarray, boundaries: np.ndarray, stats: NodeStats) -> np.ndarray:
        left_counts = np.cumsum(self._one_hot[rows], axis=0)[boundaries]
        right_counts = stats.counts - left_counts
        n_left = (boundaries + 1).astype(np.float64)
        n_right = stats.n - n_left
        weighted = n_left * self._impurity_fn(left_counts, n_left) + n_right * self._impurity_fn(
            right_counts, n_right
        )
        return weighted / stats.n


class RegressionSplitter(_Splitter):
    """Running label sum and sum of squares scored by squared-error reduction."""

    task = "regression"

    def __init__(self, labels: np.ndarray, node_size: int = 5) -> None:
        super().__init__(node_size)
        labels = np.asarray(labels, dtype=np.float64)
        if labels.ndim == 1:
            labels = labels[:, None]
        self.labels = labels

    @property
    def n_outputs(self) -> int:
        return int(self.labels.shape[1])

    def node_stats(self, index: SortedIndex) -> NodeStats:
        rows = index.feature_rows(0)
        node_labels = self.labels[rows]
        n = int(rows.size)
        label_sum = node_labels.sum(axis=0)
        label_mean = label_sum / max(n, 1)
        centered = node_labels - label_mean
        label_sumsq = np.sum(centered * centered, axis=0)
        sse = float(np.sum(label_sumsq))
        is_pure = n == 0 or bool(np.all(node_labels == node_labels[0]))
        return NodeStats(
            n=n,
            impurity=sse,
            is_pure=is_pure,
            label_sum=label_sum,
            label_sumsq=label_sumsq,
            label_mean=label_mean,
        )

    def leaf_value(self, stats: NodeStats) -> np.ndarray:
        """Mean label vector of the node."""
        assert stats.label_mean is not None
        return stats.label_mean

    def _child_impurity(self, rows: np.ndarray, boundaries: np.ndarray, stats: NodeStats) -> np.ndarray:
        # centred at the node mean: raw sums lose all precision once the mean
        # dwarfs the spread
        centered = self.labels[rows] - stats.label_mean
        running_sum = np.cumsum(centered, axis=0)
        running_sumsq = np.cumsum(centered * centered, axis=0)
        left_sum = running_sum[boundaries]
        left_sumsq = running_sumsq[boundaries]
        n_left = (boundaries + 1).astype(np.float64)
        left = sum_squared_error(n_left, left_sum, left_sumsq)
        right = sum_squared_error(stats.n - n_left, running_sum[-1] - left_sum, running_sumsq[-1] - left_sumsq)
        return left + right


def _midpoint(lower: float, upper: float) -> float:
    mid = 0.5 * (lower + upper)
    # adjacent floats can round the midpoint up onto the upper value
    return mid if lower <= mid < upper else lower


__all__ = ["ClassificationSplitter", "NodeStats", "RegressionSplitter", "Split"]
