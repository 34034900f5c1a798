"""Benchmark sprintforest against scikit-learn's random forest on synthetic data."""

from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List

import numpy as np
import pandas as pd
from sklearn.datasets import make_classification
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import accuracy_score
from sklearn.model_selection import train_test_split

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sprintforest.config import ForestConfig
from sprintforest.trainer import RandomForestTrainer


N_SAMPLES = 4000
N_FEATURES = 20
N_INFORMATIVE = 6
SEED = 123

N_TREES = 100
N_JOBS = -1


@dataclass
class BenchmarkResult:
    name: str
    fit_time: float
    predict_time: float
    accuracy: float
    oob: float | None


def generate_data() -> tuple[np.ndarray, np.ndarray]:
    """Create a binary classification dataset with a few informative features."""
    X, y = make_classification(
        n_samples=N_SAMPLES,
        n_features=N_FEATURES,
        n_informative=N_INFORMATIVE,
        n_redundant=2,
        random_state=SEED,
    )
    return X.astype(np.float32), y


def benchmark(
    name: str,
    fit_fn: Callable[[], float | None],
    predict_fn: Callable[[], np.ndarray],
    y_true: np.ndarray,
) -> BenchmarkResult:
    """Measure fit/predict time and compute test accuracy."""
    t0 = time.perf_counter()
    oob = fit_fn()
    fit_time = time.perf_counter() - t0

    t0 = time.perf_counter()
    preds = predict_fn()
    predict_time = time.perf_counter() - t0

    accuracy = float(accuracy_score(y_true, preds))
    return BenchmarkResult(name=name, fit_time=fit_time, predict_time=predict_time, accuracy=accuracy, oob=oob)


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    X, y = generate_data()
    X_train, X_test, y_train, y_test = train_test_split(X, y, test_size=0.2, random_state=SEED)
    feature_names = [f"f{i}" for i in range(X_train.shape[1])]
    X_train_df = pd.DataFrame(X_train, columns=feature_names)

    results: List[BenchmarkResult] = []

    config = ForestConfig(
        n_trees=N_TREES,
        compute_oob_error=True,
        compute_feature_importances=True,
        random_state=SEED,
        n_jobs=N_JOBS,
    )
    trainer = RandomForestTrainer(config)
    fitted = {}

    def sprint_fit() -> float | None:
        fitted["model"] = trainer.fit(X_train_df, y_train)
        return fitted["model"].oob_error()

    def sprint_predict() -> np.ndarray:
        return fitted["model"].predict(X_test)

    results.append(benchmark("sprintforest", sprint_fit, sprint_predict, y_test))

    sk = RandomForestClassifier(
        n_estimators=N_TREES,
        max_features="sqrt",
        oob_score=True,
        n_jobs=N_JOBS,
        random_state=SEED,
    )

    def sk_fit() -> float | None:
        sk.fit(X_train, y_train)
        return 1.0 - float(sk.oob_score_)

    results.append(benchmark("scikit-learn", sk_fit, lambda: sk.predict(X_test), y_test))

    print("Model          Fit (s)   Predict (s)   Acc     OOB err")
    print("-" * 56)
    for res in results:
        oob = "n/a" if res.oob is None else f"{res.oob:.4f}"
        print(f"{res.name:<13} {res.fit_time:>8.3f} {res.predict_time:>12.3f} {res.accuracy:>7.4f} {oob:>9}")

    importances = fitted["model"].feature_importances()
    top = np.argsort(importances)[::-1][:N_INFORMATIVE]
    print("\nTop permutation importances:")
    for idx in top:
        print(f"  {feature_names[idx]:<4} {importances[idx]:.4f}")
