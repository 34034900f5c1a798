"""Dataset preparation for sprintforest."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import pandas as pd
import torch

from .errors import DataError


@dataclass(frozen=True)
class Dataset:
    """Read-only training data: a feature matrix plus one label per row.

    Classification labels are stored as class ids ``0..K-1`` with the
    original values kept in ``classes``. Regression labels are stored as a
    ``(n_rows, label_dimension)`` float matrix; ``label_ndim`` remembers
    whether the caller passed a 1-D target.
    """

    features: np.ndarray
    labels: np.ndarray
    task: str
    classes: np.ndarray | None = None
    label_ndim: int = 1
    feature_names: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        features = self.features
        if not isinstance(features, np.ndarray) or features.ndim != 2:
            raise DataError("features must be a 2D numpy array (n_rows, n_features)")
        if features.shape[0] == 0:
            raise DataError("dataset is empty")
        if features.shape[1] == 0:
            raise DataError("dataset has no features")
        if features.dtype.kind not in "biuf":
            raise DataError(f"features must be numeric, got dtype {features.dtype}")
        if not np.all(np.isfinite(features)):
            raise DataError("features contain NaN or infinite values")
        labels = self.labels
        if not isinstance(labels, np.ndarray) or labels.ndim == 0 or labels.shape[0] != features.shape[0]:
            raise DataError(f"labels must provide one entry per row ({features.shape[0]})")
        if self.task == "classification":
            if self.classes is None or len(self.classes) == 0:
                raise DataError("classification dataset has no classes")
            if labels.ndim != 1 or labels.dtype.kind not in "iu":
                raise DataError("classification labels must be 1D integer class ids")
            if int(labels.min()) < 0 or int(labels.max()) >= len(self.classes):
                raise DataError(f"class ids must lie in [0, {len(self.classes)})")
        elif self.task == "regression":
            if labels.ndim != 2 or labels.shape[1] == 0 or labels.dtype.kind != "f":
                raise DataError("regression labels must be a float matrix (n_rows, label_dimension)")
            if not np.all(np.isfinite(labels)):
                raise DataError("regression labels contain NaN or infinite values")
        else:
            raise DataError(f"unknown task {self.task!r}")
        if self.feature_names and len(self.feature_names) != features.shape[1]:
            raise DataError(f"expected {features.shape[1]} feature names, got {len(self.feature_names)}")

    @property
    def n_rows(self) -> int:
        return int(self.features.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.features.shape[1])

    @property
    def label_cardinality(self) -> int:
        """Number of distinct classes (classification only)."""
        if self.classes is None:
            raise AttributeError("label_cardinality is only defined for classification datasets")
        return int(self.classes.shape[0])

    @property
    def label_dimension(self) -> int:
        """Width of the label vector (regression only)."""
        if self.task != "regression":
            raise AttributeError("label_dimension is only defined for regression datasets")
        return int(self.labels.shape[1])

    @property
    def n_outputs(self) -> int:
        return self.label_cardinality if self.task == "classification" else self.label_dimension

    def __len__(self) -> int:
        return self.n_rows

    def __getitem__(self, row: int) -> tuple[np.ndarray, Any]:
        return self.features[row], self.labels[row]


def ensure_numpy(array: np.ndarray | torch.Tensor | pd.DataFrame | pd.Series | Sequence[Any]) -> np.ndarray:
    """Convert ``array`` to an ``np.ndarray`` without copying when possible."""

    if isinstance(array, np.ndarray):
        return array
    if isinstance(array, torch.Tensor):
        return array.detach().cpu().numpy()
    if isinstance(array, (pd.DataFrame, pd.Series)):
        return array.to_numpy()
    try:
        return np.asarray(array)
    except ValueError as exc:
        # numpy refuses ragged nested sequences
        raise DataError(f"rows have mismatched feature dimensionality: {exc}") from exc


def infer_task(labels: np.ndarray) -> str:
    """Floating-point labels regress; integer, boolean and object labels classify."""
    if labels.dtype.kind == "f":
        return "regression"
    if labels.dtype.kind in "biuOSU":
        return "classification"
    raise DataError(f"cannot infer a learning task from labels of dtype {labels.dtype}")


def make_dataset(
    X: Any,
    y: Any,
    *,
    task: str = "auto",
    feature_names: Sequence[str] | None = None,
) -> Dataset:
    """Validate ``X``/``y`` and wrap them into an immutable :class:`Dataset`.

    Parameters
    ----------
    X:
        Feature matrix of shape ``(n_rows, n_features)``. NumPy arrays, nested
        sequences, ``torch.Tensor`` and ``pandas.DataFrame`` are accepted; the
        column names of a DataFrame become the feature names.
    y:
        Labels of length ``n_rows``. A 2-D float target describes
        multi-output regression.
    task:
        ``"classification"``, ``"regression"`` or ``"auto"``.
    feature_names:
        Optional explicit feature names.
    """

    if feature_names is None and isinstance(X, pd.DataFrame):
        feature_names = [str(c) for c in X.columns]

    X_np = ensure_numpy(X)
    if X_np.dtype == object:
        try:
            X_np = X_np.astype(np.float64)
        except (TypeError, ValueError) as exc:
            raise DataError("features must be numeric with a fixed number of columns per row") from exc
    if X_np.ndim == 1 and X_np.size == 0:
        raise DataError("dataset is empty")
    if X_np.ndim != 2:
        raise DataError(f"X must be 2D (n_rows, n_features), got shape {X_np.shape}")
    n_rows, n_features = X_np.shape
    if n_rows == 0:
        raise DataError("dataset is empty")
    if n_features == 0:
        raise DataError("dataset has no features")
    try:
        features = np.array(X_np, dtype=np.float64, order="C")
    except (TypeError, ValueError) as exc:
        raise DataError("features must be numeric") from exc
    if not np.all(np.isfinite(features)):
        raise DataError("features contain NaN or infinite values")

    y_np = ensure_numpy(y)
    if y_np.ndim == 0 or y_np.shape[0] != n_rows:
        raise DataError(f"y must provide one label per row ({n_rows}), got shape {y_np.shape}")

    if task == "auto":
        task = infer_task(y_np)
    if task == "classification":
        if y_np.ndim != 1:
            raise DataError("classification labels must be 1D")
        classes, encoded = np.unique(y_np, return_inverse=True)
        labels = encoded.astype(np.int64).reshape(-1)
        label_ndim = 1
    elif task == "regression":
        if y_np.ndim > 2:
            raise DataError("regression labels must be 1D or 2D")
        try:
            labels = np.asarray(y_np, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise DataError("regression labels must be numeric") from exc
        label_ndim = labels.ndim
        labels = np.array(labels.reshape(n_rows, -1), order="C")
        if labels.shape[1] == 0:
            raise DataError("regression labels have zero dimensions")
        if not np.all(np.isfinite(labels)):
            raise DataError("regression labels contain NaN or infinite values")
        classes = None
    else:
        raise DataError(f"unknown task {task!r}")

    if feature_names is None:
        names = tuple(f"f{i}" for i in range(n_features))
    else:
        names = tuple(str(n) for n in feature_names)
        if len(names) != n_features:
            raise DataError(f"expected {n_features} feature names, got {len(names)}")

    features.setflags(write=False)
    labels.setflags(write=False)
    return Dataset(
        features=features,
        labels=labels,
        task=task,
        classes=classes,
        label_ndim=label_ndim,
        feature_names=names,
    )


__all__ = ["Dataset", "ensure_numpy", "infer_task", "make_dataset"]
