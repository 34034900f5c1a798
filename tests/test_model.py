import numpy as np
import pytest

from sprintforest.config import ForestConfig
from sprintforest.model import ForestModel, Tree, TreeNode
from sprintforest.predictor import ForestPredictor, load_predictor
from sprintforest.trainer import RandomForestTrainer


def make_stump(left_value, right_value) -> Tree:
    tree = Tree(n_outputs=len(left_value))
    root_id = tree.add_node(
        TreeNode(is_leaf=False, value=np.array([0.5, 0.5]), feature=1, threshold=2.0, left=1, right=2)
    )
    assert root_id == 0
    tree.add_node(TreeNode(is_leaf=True, value=np.asarray(left_value, dtype=float), depth=1))
    tree.add_node(TreeNode(is_leaf=True, value=np.asarray(right_value, dtype=float), depth=1))
    return tree


def make_model() -> ForestModel:
    trees = [make_stump([1.0, 0.0], [0.0, 1.0]), make_stump([1.0, 0.0], [0.0, 1.0]), make_stump([0.0, 1.0], [0.0, 1.0])]
    return ForestModel(
        config=ForestConfig(n_trees=3),
        task="classification",
        trees=trees,
        n_features=2,
        seed=0,
        classes=np.array([10, 20]),
    )


def test_tree_routes_rows_by_threshold():
    tree = make_stump([1.0, 0.0], [0.0, 1.0])
    X = np.array([[0.0, 2.0], [0.0, 2.5], [9.0, -1.0]])
    np.testing.assert_array_equal(tree.apply(X), [1, 2, 1])
    np.testing.assert_array_equal(tree.predict_class(X), [0, 1, 0])
    assert tree.n_leaves == 2
    assert tree.depth == 1


def test_majority_vote_and_probabilities():
    model = make_model()
    X = np.array([[0.0, 1.0], [0.0, 3.0]])
    np.testing.assert_array_equal(model.votes(X), [[2, 1], [0, 3]])
    np.testing.assert_array_equal(model.predict(X), [10, 20])
    np.testing.assert_allclose(model.predict_proba(X), [[2 / 3, 1 / 3], [0.0, 1.0]])
    assert model.apply(X).shape == (2, 3)


def test_vote_ties_pick_lowest_class():
    trees = [make_stump([1.0, 0.0], [1.0, 0.0]), make_stump([0.0, 1.0], [0.0, 1.0])]
    model = ForestModel(
        config=ForestConfig(n_trees=2), task="classification", trees=trees, n_features=2, seed=0,
        classes=np.array(["a", "b"]),
    )
    assert model.predict(np.array([0.0, 0.0])) == "a"


def test_regression_methods_reject_classification_calls():
    tree = Tree(n_outputs=1)
    tree.add_node(TreeNode(is_leaf=True, value=np.array([3.0])))
    model = ForestModel(config=ForestConfig(n_trees=1), task="regression", trees=[tree], n_features=1, seed=0)
    np.testing.assert_allclose(model.predict(np.array([[1.0], [2.0]])), [3.0, 3.0])
    with pytest.raises(RuntimeError):
        model.predict_proba(np.array([[1.0]]))


def test_negative_raw_importances_are_floored():
    model = make_model()
    model.raw_feature_importances = np.array([-0.1, 0.3])
    np.testing.assert_allclose(model.feature_importances(), [0.0, 0.3])


def test_model_dict_round_trip_preserves_predictions():
    rng = np.random.default_rng(0)
    X = rng.normal(size=(80, 3))
    y = (X[:, 1] > 0).astype(np.int64)
    config = ForestConfig(n_trees=4, compute_oob_error=True, compute_feature_importances=True, random_state=2)
    model = RandomForestTrainer(config).fit(X, y)
    restored = ForestModel.from_dict(model.to_dict())
    np.testing.assert_array_equal(restored.predict(X), model.predict(X))
    assert restored.oob_error() == model.oob_error()
    np.testing.assert_allclose(restored.feature_importances(), model.feature_importances())
    assert restored.config == model.config


def test_predictor_json_round_trip(tmp_path):
    rng = np.random.default_rng(1)
    X = rng.uniform(size=(60, 2))
    y = X[:, 0] * 2.0
    model = RandomForestTrainer(ForestConfig(n_trees=3, random_state=4)).fit(X, y)
    path = tmp_path / "forest.json"
    ForestPredictor(model).to_json(path)
    predictor = ForestPredictor.from_json(path)
    np.testing.assert_allclose(predictor.predict(X), model.predict(X))
    assert predictor.model.task == "regression"
    again = load_predictor(model.to_dict())
    np.testing.assert_allclose(again.predict(X), model.predict(X))


def test_trees_without_oob_rows_serialise_as_null(tmp_path):
    X = np.array([[0.0], [1.0], [2.0], [3.0]])
    y = np.array([0, 0, 1, 1])
    # a full subset without replacement leaves every tree without OOB rows
    config = ForestConfig(
        n_trees=2, bootstrap_with_replacement=False, oob_ratio=1.0, compute_oob_error=True, random_state=0
    )
    model = RandomForestTrainer(config).fit(X, y)
    assert np.all(np.isnan(model.tree_oob_errors))
    assert model.to_dict()["tree_oob_errors"] == [None, None]

    path = tmp_path / "forest.json"
    ForestPredictor(model).to_json(path)
    assert "NaN" not in path.read_text()
    restored = ForestPredictor.from_json(path).model
    assert np.all(np.isnan(restored.tree_oob_errors))
    assert restored.oob_error() is None
