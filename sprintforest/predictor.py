"""Standalone prediction utilities for sprintforest models."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np

from .model import ForestModel


class ForestPredictor:
    """Lightweight predictor that depends only on a serialised model."""

    def __init__(self, model: ForestModel) -> None:
        self._model = model

    @classmethod
    def from_json(cls, path: str | Path) -> "ForestPredictor":
        payload = json.loads(Path(path).read_text())
        model = ForestModel.from_dict(payload)
        return cls(model)

    def to_json(self, path: str | Path) -> None:
        payload = self._model.to_dict()
        Path(path).write_text(json.dumps(payload))

    def predict(self, X: np.ndarray) -> np.ndarray:
        return self._model.predict(X)

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        return self._model.predict_proba(X)

    @property
    def model(self) -> ForestModel:
        return self._model


def load_predictor(payload: dict[str, Any]) -> ForestPredictor:
    model = ForestModel.from_dict(payload)
    return ForestPredictor(model)


__all__ = ["ForestPredictor", "load_predictor"]
