"""Out-of-bag error and permutation importance estimators."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import torch

from .model import Tree


def tree_error(tree: Tree, X: np.ndarray, labels: np.ndarray, task: str) -> float:
    """Misclassification rate or mean squared Euclidean error of one tree."""
    if task == "classification":
        return float(np.mean(tree.predict_class(X) != labels))
    diff = tree.predict_values(X) - labels
    return float(np.mean(np.sum(diff * diff, axis=1)))


def tree_outputs(tree: Tree, X: np.ndarray, task: str) -> np.ndarray:
    """Predicted class ids (classification) or leaf value rows (regression)."""
    if task == "classification":
        return tree.predict_class(X)
    return tree.predict_values(X)


def permutation_importance(
    tree: Tree,
    X: np.ndarray,
    labels: np.ndarray,
    task: str,
    generator: torch.Generator,
    base_error: float | None = None,
) -> np.ndarray:
    """Increase in ``tree``'s error on ``X`` when each feature is shuffled.

    One permutation per feature is drawn from ``generator`` in feature order.
    Features the tree never splits on score exactly zero.
    """
    if base_error is None:
        base_error = tree_error(tree, X, labels, task)
    n_rows, n_features = X.shape
    increases = np.zeros(n_features, dtype=np.float64)
    used = {node.feature for node in tree.nodes if not node.is_leaf}
    X_perm = np.array(X, dtype=np.float64, copy=True)
    for feature in range(n_features):
        perm = torch.randperm(n_rows, generator=generator).numpy()
        if feature not in used:
            continue
        X_perm[:, feature] = X[perm, feature]
        increases[feature] = tree_error(tree, X_perm, labels, task) - base_error
        X_perm[:, feature] = X[:, feature]
    return increases


@dataclass
class OOBAccumulator:
    """Per-row sums of out-of-bag tree outputs.

    Classification accumulates class votes, regression the summed tree
    predictions. ``merge`` is an element-wise sum, so partial accumulators
    can be combined in any grouping.
    """

    task: str
    n_rows: int
    n_outputs: int
    totals: np.ndarray = field(init=False)
    counts: np.ndarray = field(init=False)

    def __post_init__(self) -> None:
        dtype = np.int64 if self.task == "classification" else np.float64
        self.totals = np.zeros((self.n_rows, self.n_outputs), dtype=dtype)
        self.counts = np.zeros(self.n_rows, dtype=np.int64)

    def add(self, rows: np.ndarray, predictions: np.ndarray) -> None:
        """Record one tree's predictions for its out-of-bag ``rows``.

        ``rows`` holds distinct row ids, as produced by the bootstrap sampler.
        """
        if rows.size == 0:
            return
        if self.task == "classification":
            self.totals[rows, predictions] += 1
        else:
            self.totals[rows] += predictions
        self.counts[rows] += 1

    def add_tree(self, tree: Tree, X: np.ndarray, rows: np.ndarray) -> None:
        self.add(rows, tree_outputs(tree, X[rows], self.task))

    def merge(self, other: "OOBAccumulator") -> "OOBAccumulator":
        if (other.task, other.n_rows, other.n_outputs) != (self.task, self.n_rows, self.n_outputs):
            raise ValueError("cannot merge accumulators of different shapes")
        self.totals += other.totals
        self.counts += other.counts
        return self

    @property
    def n_covered(self) -> int:
        """Rows that were out of bag for at least one tree."""
        return int(np.count_nonzero(self.counts))

    def error(self, labels: np.ndarray) -> float | None:
        """Forest OOB error over covered rows, ``None`` if no row is covered."""
        covered = self.counts > 0
        if not np.any(covered):
            return None
        if self.task == "classification":
            winners = np.argmax(self.totals[covered], axis=1)
            return float(np.mean(winners != labels[covered]))
        mean = self.totals[covered] / self.counts[covered][:, None]
        diff = mean - labels[covered]
        return float(np.mean(np.sum(diff * diff, axis=1)))


@dataclass
class ImportanceAccumulator:
    """Running sum of per-tree permutation importance increases."""

    n_features: int
    totals: np.ndarray = field(init=False)
    n_trees: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self.totals = np.zeros(self.n_features, dtype=np.float64)

    def add(self, increases: np.ndarray) -> None:
        self.totals += increases
        self.n_trees += 1

    def merge(self, other: "ImportanceAccumulator") -> "ImportanceAccumulator":
        if other.n_features != self.n_features:
            raise ValueError("cannot merge importances over different feature counts")
        self.totals += other.totals
        self.n_trees += other.n_trees
        return self

    def mean(self) -> np.ndarray:
        if self.n_trees == 0:
            return np.zeros(self.n_features, dtype=np.float64)
        return self.totals / self.n_trees


__all__ = [
    "ImportanceAccumulator",
    "OOBAccumulator",
    "permutation_importance",
    "tree_error",
    "tree_outputs",
]
