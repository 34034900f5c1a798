import logging

import numpy as np
import pandas as pd
import pytest
from sklearn.datasets import load_iris, make_classification

from sprintforest.config import ForestConfig
from sprintforest.data import Dataset, make_dataset
from sprintforest.errors import ConfigurationError, DataError
from sprintforest.trainer import RandomForestTrainer


def make_separable(n_rows: int = 200, seed: int = 0):
    rng = np.random.default_rng(seed)
    X = rng.uniform(-1.0, 1.0, size=(n_rows, 3))
    y = (X[:, 0] > 0).astype(np.int64)
    return X, y


def test_iris_forest_fits_training_data():
    iris = load_iris()
    config = ForestConfig(
        n_trees=10,
        mtry=2,
        node_size=1,
        compute_feature_importances=True,
        compute_oob_error=True,
        random_state=0,
    )
    model = RandomForestTrainer(config).fit(iris.data, iris.target)
    accuracy = float(np.mean(model.predict(iris.data) == iris.target))
    assert accuracy >= 0.9
    importances = model.feature_importances()
    assert importances.shape == (4,)
    assert np.all(importances >= 0.0)
    assert model.n_trees == 10
    assert 0.0 <= model.oob_error() <= 1.0


def test_same_seed_is_deterministic_across_thread_counts():
    X, y = make_classification(n_samples=150, n_features=6, n_informative=3, random_state=3)
    base = dict(n_trees=8, compute_feature_importances=True, compute_oob_error=True, random_state=21)
    serial = RandomForestTrainer(ForestConfig(n_jobs=1, **base)).fit(X, y)
    threaded = RandomForestTrainer(ForestConfig(n_jobs=4, **base)).fit(X, y)
    assert [t.to_dict() for t in serial.trees] == [t.to_dict() for t in threaded.trees]
    assert serial.oob_error() == threaded.oob_error()
    np.testing.assert_array_equal(serial.raw_feature_importances, threaded.raw_feature_importances)
    np.testing.assert_array_equal(serial.predict(X), threaded.predict(X))


def test_different_seeds_give_different_forests():
    X, y = make_classification(n_samples=100, n_features=6, random_state=1)
    a = RandomForestTrainer(ForestConfig(n_trees=3, random_state=1)).fit(X, y)
    b = RandomForestTrainer(ForestConfig(n_trees=3, random_state=2)).fit(X, y)
    assert [t.to_dict() for t in a.trees] != [t.to_dict() for t in b.trees]


def test_oob_error_near_zero_on_separable_data():
    X, y = make_separable()
    config = ForestConfig(n_trees=25, compute_oob_error=True, random_state=5)
    model = RandomForestTrainer(config).fit(X, y)
    assert model.oob_error() < 0.05


def test_oob_error_near_chance_on_noise():
    rng = np.random.default_rng(11)
    X = rng.normal(size=(300, 4))
    y = rng.integers(0, 2, size=300)
    config = ForestConfig(n_trees=30, compute_oob_error=True, random_state=5)
    model = RandomForestTrainer(config).fit(X, y)
    assert 0.3 < model.oob_error() < 0.7


def test_informative_feature_dominates_importances():
    X, y = make_separable(seed=2)
    config = ForestConfig(n_trees=20, mtry=3, compute_feature_importances=True, random_state=0)
    model = RandomForestTrainer(config).fit(X, y)
    importances = model.feature_importances()
    assert int(np.argmax(importances)) == 0
    assert importances[0] > 0.2


def test_single_row_dataset_builds_leaf_only_trees():
    config = ForestConfig(n_trees=3, compute_oob_error=True, random_state=0)
    model = RandomForestTrainer(config).fit(np.array([[1.0, 2.0]]), np.array([7]))
    assert all(tree.n_nodes == 1 for tree in model.trees)
    assert model.predict(np.array([[5.0, 5.0]])).tolist() == [7]
    assert model.predict(np.array([5.0, 5.0])) == 7
    # the only row is always drawn, so no OOB estimate exists
    assert model.oob_error() is None


def test_oob_disabled_yields_no_estimates():
    X, y = make_separable()
    model = RandomForestTrainer(ForestConfig(n_trees=2, random_state=0)).fit(X, y)
    assert model.oob_error() is None
    assert model.feature_importances().size == 0
    assert model.tree_oob_errors is None


def test_regression_forest_predicts_means():
    rng = np.random.default_rng(0)
    X = rng.uniform(size=(200, 3))
    y = 4.0 * X[:, 0] + rng.normal(scale=0.05, size=200)
    config = ForestConfig(n_trees=20, mtry=3, compute_oob_error=True, random_state=1)
    model = RandomForestTrainer(config).fit(X, y)
    preds = model.predict(X)
    assert preds.shape == (200,)
    assert float(np.mean((preds - y) ** 2)) < 0.1
    assert model.oob_error() < 0.2
    assert model.aggregation == "mean"


def test_multi_output_regression():
    rng = np.random.default_rng(0)
    X = rng.uniform(size=(120, 2))
    y = np.column_stack([X[:, 0], -X[:, 1]])
    model = RandomForestTrainer(ForestConfig(n_trees=5, random_state=0)).fit(X, y)
    assert model.predict(X).shape == (120, 2)


def test_without_replacement_sampling():
    X, y = make_separable()
    config = ForestConfig(
        n_trees=5,
        bootstrap_with_replacement=False,
        oob_ratio=0.5,
        compute_oob_error=True,
        random_state=3,
    )
    seen = []
    model = RandomForestTrainer(config).fit(X, y, tree_callback=lambda idx, info: seen.append((idx, info)))
    assert [idx for idx, _ in seen] == list(range(5))
    assert all(info["in_bag"] == 100 and info["oob"] == 100 for _, info in seen)
    assert model.trees[0].nodes[0].n_samples == 100


def test_dataframe_input_keeps_feature_names():
    X, y = make_separable(n_rows=60)
    df = pd.DataFrame(X, columns=["a", "b", "c"])
    model = RandomForestTrainer(ForestConfig(n_trees=2, random_state=0)).fit(df, y)
    assert model.feature_names == ("a", "b", "c")
    assert model.predict(df).shape == (60,)


def test_string_labels_are_returned():
    X, y = make_separable(n_rows=80)
    labels = np.where(y == 1, "pos", "neg")
    model = RandomForestTrainer(ForestConfig(n_trees=5, random_state=0)).fit(X, labels)
    assert set(model.predict(X).tolist()) <= {"neg", "pos"}
    proba = model.predict_proba(X)
    np.testing.assert_allclose(proba.sum(axis=1), 1.0)


def test_training_logs_one_entry_per_tree(caplog):
    X, y = make_separable(n_rows=50)
    with caplog.at_level(logging.INFO, logger="sprintforest.trainer"):
        RandomForestTrainer(ForestConfig(n_trees=3, random_state=0)).fit(X, y)
    tree_lines = [r for r in caplog.records if '"tree"' in r.getMessage()]
    assert len(tree_lines) == 3
    assert any('"forest"' in r.getMessage() for r in caplog.records)


def test_errors_are_raised_before_training():
    X, y = make_separable(n_rows=20)
    with pytest.raises(ConfigurationError):
        RandomForestTrainer(ForestConfig(mtry=10)).fit(X, y)
    with pytest.raises(DataError):
        RandomForestTrainer().fit(np.empty((0, 3)), np.empty(0, dtype=np.int64))
    with pytest.raises(DataError):
        RandomForestTrainer().train((X, y))
    with pytest.raises(ConfigurationError):
        RandomForestTrainer(ForestConfig(task="regression")).train(make_dataset(X, y))


def test_predict_checks_feature_count():
    X, y = make_separable(n_rows=20)
    model = RandomForestTrainer(ForestConfig(n_trees=1, random_state=0)).fit(X, y)
    with pytest.raises(ValueError):
        model.predict(np.zeros((2, 5)))


def test_train_rejects_inconsistent_hand_built_dataset():
    with pytest.raises(DataError):
        RandomForestTrainer(ForestConfig(n_trees=2, random_state=0)).train(
            Dataset(
                features=np.arange(10, dtype=np.float64).reshape(5, 2),
                labels=np.array([0, 1]),
                task="classification",
                classes=np.array([0, 1]),
            )
        )
