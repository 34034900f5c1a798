"""SPRINT-style per-feature sorted row tables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ..errors import InvalidIndexError


@dataclass(frozen=True)
class SortedIndex:
    """Row ids of a node, kept in ascending order for every feature.

    ``order[f]`` lists the node's row occurrences sorted by
    ``values[row, f]`` with ties broken by row id. A row drawn several times
    by the bootstrap occurs several times in every table. Children are
    produced by stable partitioning, so no table is ever sorted twice.
    """

    values: np.ndarray  # [N, F] full feature matrix, read-only
    order: np.ndarray  # [F, M] int64 row ids

    @classmethod
    def build(cls, values: np.ndarray, rows: np.ndarray | None = None) -> "SortedIndex":
        """Sort ``rows`` (default: every row of ``values``) once per feature."""
        values = np.asarray(values)
        if values.ndim != 2:
            raise ValueError("values must be 2D [rows, features]")
        n_rows, n_features = values.shape
        if rows is None:
            rows = np.arange(n_rows, dtype=np.int64)
        else:
            rows = np.sort(np.asarray(rows, dtype=np.int64), kind="stable")
            _check_row_range(rows, n_rows)
        order = np.empty((n_features, rows.size), dtype=np.int64)
        for feature in range(n_features):
            perm = np.argsort(values[rows, feature], kind="stable")
            order[feature] = rows[perm]
        return cls(values=values, order=order)

    @property
    def n_features(self) -> int:
        return int(self.order.shape[0])

    @property
    def n_occurrences(self) -> int:
        return int(self.order.shape[1])

    @property
    def rows(self) -> np.ndarray:
        """Row occurrences of this node in row-id order."""
        return np.sort(self.order[0], kind="stable")

    def feature_rows(self, feature: int) -> np.ndarray:
        return self.order[feature]

    def feature_values(self, feature: int) -> np.ndarray:
        return self.values[self.order[feature], feature]

    def counts(self) -> np.ndarray:
        """Occurrences per row id over the whole dataset."""
        return np.bincount(self.order[0], minlength=self.values.shape[0])

    def restrict(self, rows: np.ndarray) -> "SortedIndex":
        """Keep only ``rows``; a row listed ``k`` times occurs ``k`` times.

        Every requested row must already be held by this index.
        """
        rows = np.asarray(rows, dtype=np.int64)
        n_total = self.values.shape[0]
        _check_row_range(rows, n_total)
        wanted = np.bincount(rows, minlength=n_total)
        held = self.counts()
        missing = np.flatnonzero((wanted > 0) & (held == 0))
        if missing.size:
            raise InvalidIndexError(
                f"cannot restrict to rows absent from the index: {missing[:10].tolist()}"
            )
        n_features = self.n_features
        order = self.order
        if np.any(held > 1):
            # duplicates of a row share its value, so they sit next to each other
            first = np.ones(order.shape, dtype=bool)
            first[:, 1:] = order[:, 1:] != order[:, :-1]
            order = order[first].reshape(n_features, -1)
        flat = order.reshape(-1)
        restricted = np.repeat(flat, wanted[flat])
        return SortedIndex(values=self.values, order=restricted.reshape(n_features, -1))

    def partition(self, goes_left: np.ndarray) -> Tuple["SortedIndex", "SortedIndex"]:
        """Split into ``(left, right)`` by a boolean predicate indexed by row id."""
        goes_left = np.asarray(goes_left, dtype=bool)
        if self.n_occurrences and goes_left.shape[0] <= int(self.order.max()):
            raise InvalidIndexError(
                f"membership predicate covers {goes_left.shape[0]} rows but the index references row "
                f"{int(self.order.max())}"
            )
        return self._partition_mask(goes_left[self.order])

    def split(self, feature: int, threshold: float) -> Tuple["SortedIndex", "SortedIndex"]:
        """Partition by ``values[:, feature] <= threshold``."""
        column = self.values[:, feature]
        return self._partition_mask(column[self.order] <= threshold)

    def merge(self, other: "SortedIndex") -> "SortedIndex":
        """Stable merge with a sibling partition, reproducing the parent tables."""
        if other.values is not self.values:
            raise InvalidIndexError("cannot merge indexes built over different feature matrices")
        n_features = self.n_features
        merged = np.empty((n_features, self.n_occurrences + other.n_occurrences), dtype=np.int64)
        for feature in range(n_features):
            rows = np.concatenate([self.order[feature], other.order[feature]])
            vals = self.values[rows, feature]
            merged[feature] = rows[np.lexsort((rows, vals))]
        return SortedIndex(values=self.values, order=merged)

    def _partition_mask(self, mask: np.ndarray) -> Tuple["SortedIndex", "SortedIndex"]:
        # every table holds the same multiset, so each row of the mask has the
        # same number of True entries and the boolean selection reshapes cleanly
        n_features = self.n_features
        left = self.order[mask].reshape(n_features, -1)
        right = self.order[~mask].reshape(n_features, -1)
        return SortedIndex(self.values, left), SortedIndex(self.values, right)


def _check_row_range(rows: np.ndarray, n_rows: int) -> None:
    if rows.size and (int(rows.min()) < 0 or int(rows.max()) >= n_rows):
        raise InvalidIndexError(f"row ids must lie in [0, {n_rows}), got range [{rows.min()}, {rows.max()}]")
