"""scikit-learn wrappers for sprintforest."""

from __future__ import annotations

from typing import Optional

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin, RegressorMixin

from .config import ForestConfig
from .model import ForestModel
from .trainer import RandomForestTrainer


class _SprintForestEstimator(BaseEstimator):
    _task = "auto"

    def __init__(
        self,
        *,
        n_trees: int = 100,
        mtry: Optional[int] = None,
        node_size: Optional[int] = None,
        oob_ratio: float = 0.66,
        bootstrap_with_replacement: bool = True,
        impurity: str = "gini",
        compute_feature_importances: bool = True,
        compute_oob_error: bool = True,
        random_state: Optional[int] = None,
        n_jobs: int = 1,
    ) -> None:
        self.n_trees = n_trees
        self.mtry = mtry
        self.node_size = node_size
        self.oob_ratio = oob_ratio
        self.bootstrap_with_replacement = bootstrap_with_replacement
        self.impurity = impurity
        self.compute_feature_importances = compute_feature_importances
        self.compute_oob_error = compute_oob_error
        self.random_state = random_state
        self.n_jobs = n_jobs
        self._model: Optional[ForestModel] = None

    def _config(self) -> ForestConfig:
        return ForestConfig(
            n_trees=self.n_trees,
            mtry=self.mtry,
            node_size=self.node_size,
            oob_ratio=self.oob_ratio,
            bootstrap_with_replacement=self.bootstrap_with_replacement,
            impurity=self.impurity,
            compute_feature_importances=self.compute_feature_importances,
            compute_oob_error=self.compute_oob_error,
            task=self._task,
            random_state=self.random_state,
            n_jobs=self.n_jobs,
        )

    def fit(self, X: np.ndarray, y: np.ndarray) -> "_SprintForestEstimator":
        """Fit the forest.

        Parameters
        ----------
        X: np.ndarray
            Feature matrix of shape (n_samples, n_features).
        y: np.ndarray
            Targets of shape (n_samples,), or (n_samples, n_outputs) for
            multi-output regression.
        """
        model = RandomForestTrainer(self._config()).fit(X, y)
        self._model = model
        self.model_ = model
        self.n_features_in_ = model.n_features
        self.oob_error_ = model.oob_error()
        if self.compute_feature_importances:
            self.feature_importances_ = model.feature_importances()
        return self

    def predict(self, X: np.ndarray) -> np.ndarray:
        return self.get_model().predict(np.asarray(X))

    def get_model(self) -> ForestModel:
        if self._model is None:
            raise RuntimeError("Estimator has not been fitted")
        return self._model


class SprintForestClassifier(ClassifierMixin, _SprintForestEstimator):
    """scikit-learn compatible classifier wrapping :class:`RandomForestTrainer`."""

    _task = "classification"

    def fit(self, X: np.ndarray, y: np.ndarray) -> "SprintForestClassifier":
        super().fit(X, y)
        self.classes_ = self.model_.classes
        return self

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        return self.get_model().predict_proba(np.asarray(X))


class SprintForestRegressor(RegressorMixin, _SprintForestEstimator):
    """scikit-learn compatible regressor wrapping :class:`RandomForestTrainer`."""

    _task = "regression"


__all__ = ["SprintForestClassifier", "SprintForestRegressor"]
