"""Configuration objects for sprintforest."""

from __future__ import annotations

import numbers
from dataclasses import asdict, dataclass
from typing import Literal

from .errors import ConfigurationError

IMPURITY_MEASURES = ("gini", "misclassification", "cross_entropy")
TASKS = ("auto", "classification", "regression")


@dataclass(frozen=True, slots=True)
class ForestConfig:
    """Hyper-parameters steering random forest training.

    Parameters
    ----------
    n_trees:
        Number of trees grown in the forest.
    mtry:
        Number of features drawn at random and searched at every node.
        ``None`` resolves at training time to ``sqrt(n_features)`` for
        classification and ``n_features / 3`` for regression.
    node_size:
        Nodes holding fewer rows than this are turned into leaves. ``None``
        resolves to ``1`` for classification and ``5`` for regression.
    oob_ratio:
        Fraction of the dataset drawn per tree when sampling without
        replacement. Must lie in ``(0, 1]``.
    bootstrap_with_replacement:
        Draw ``n_rows`` rows with replacement (classic bootstrap) instead of
        an ``oob_ratio`` subset without replacement.
    impurity:
        Node impurity for classification: ``"gini"``,
        ``"misclassification"`` or ``"cross_entropy"``. Ignored for
        regression, which always scores by squared error.
    compute_feature_importances:
        Estimate permutation importances on the out-of-bag rows.
    compute_oob_error:
        Estimate the forest's out-of-bag error.
    task:
        ``"classification"``, ``"regression"`` or ``"auto"`` to infer the
        task from the label dtype (floats regress, everything else classifies).
    random_state:
        Master seed. Every tree derives its own streams from it, so a fixed
        seed reproduces the forest regardless of ``n_jobs``.
    n_jobs:
        Number of worker threads used to grow trees (``-1`` uses all cores).
    """

    n_trees: int = 100
    mtry: int | None = None
    node_size: int | None = None
    oob_ratio: float = 0.66
    bootstrap_with_replacement: bool = True
    impurity: Literal["gini", "misclassification", "cross_entropy"] = "gini"
    compute_feature_importances: bool = False
    compute_oob_error: bool = False
    task: Literal["auto", "classification", "regression"] = "auto"
    random_state: int | None = None
    n_jobs: int = 1

    def __post_init__(self) -> None:
        if not _is_int(self.n_trees) or self.n_trees < 1:
            raise ConfigurationError(f"n_trees must be a positive integer, got {self.n_trees!r}")
        if self.mtry is not None and (not _is_int(self.mtry) or self.mtry < 1):
            raise ConfigurationError(f"mtry must be a positive integer, got {self.mtry!r}")
        if self.node_size is not None and (not _is_int(self.node_size) or self.node_size < 1):
            raise ConfigurationError(f"node_size must be a positive integer, got {self.node_size!r}")
        if not _is_real(self.oob_ratio) or not 0.0 < float(self.oob_ratio) <= 1.0:
            raise ConfigurationError(f"oob_ratio must be in the interval (0, 1], got {self.oob_ratio!r}")
        if self.impurity not in IMPURITY_MEASURES:
            raise ConfigurationError(
                f"impurity must be one of {', '.join(IMPURITY_MEASURES)}, got {self.impurity!r}"
            )
        if self.task not in TASKS:
            raise ConfigurationError(f"task must be one of {', '.join(TASKS)}, got {self.task!r}")
        if self.random_state is not None and (not _is_int(self.random_state) or self.random_state < 0):
            raise ConfigurationError(f"random_state must be a non-negative integer, got {self.random_state!r}")
        if not _is_int(self.n_jobs) or self.n_jobs == 0:
            raise ConfigurationError(f"n_jobs must be a non-zero integer, got {self.n_jobs!r}")
        for name in ("bootstrap_with_replacement", "compute_feature_importances", "compute_oob_error"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigurationError(f"{name} must be a boolean, got {getattr(self, name)!r}")

    def resolve_mtry(self, n_features: int, task: str) -> int:
        """Return the per-node feature count for a dataset with ``n_features``."""
        if self.mtry is None:
            if task == "classification":
                return max(1, int(n_features ** 0.5))
            return max(1, n_features // 3)
        if self.mtry > n_features:
            raise ConfigurationError(
                f"mtry ({self.mtry}) cannot exceed the number of features ({n_features})"
            )
        return int(self.mtry)

    def resolve_node_size(self, task: str) -> int:
        if self.node_size is not None:
            return int(self.node_size)
        return 1 if task == "classification" else 5

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def _is_int(value: object) -> bool:
    # bool is an int subclass but never a meaningful count
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_real(value: object) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)
