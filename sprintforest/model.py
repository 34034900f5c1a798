"""Model structures and inference utilities for sprintforest."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .config import ForestConfig
from .data import ensure_numpy


@dataclass
class TreeNode:
    """Represents a single node of a decision tree.

    Leaves carry ``value``: the class distribution (classification) or the
    mean label vector (regression). Internal nodes route rows with
    ``x[feature] <= threshold`` to ``left`` and the rest to ``right``.
    """

    is_leaf: bool
    value: np.ndarray
    feature: Optional[int] = None
    threshold: Optional[float] = None
    left: Optional[int] = None
    right: Optional[int] = None
    depth: int = 0
    n_samples: int = 0
    gain: float = 0.0


@dataclass
class Tree:
    """Binary tree stored as an arena of nodes, root at index 0."""

    n_outputs: int
    nodes: List[TreeNode] = field(default_factory=list)
    _compiled: Optional[Dict[str, np.ndarray]] = field(default=None, init=False, repr=False)

    def add_node(self, node: TreeNode) -> int:
        """Append ``node`` and return its index."""
        self.nodes.append(node)
        self._compiled = None
        return len(self.nodes) - 1

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_leaves(self) -> int:
        return sum(1 for node in self.nodes if node.is_leaf)

    @property
    def depth(self) -> int:
        return max((node.depth for node in self.nodes), default=0)

    def _ensure_compiled(self) -> Dict[str, np.ndarray]:
        if self._compiled is not None:
            return self._compiled
        n = len(self.nodes)
        compiled = {
            "feature": np.array([-1 if nd.feature is None else nd.feature for nd in self.nodes], dtype=np.int64),
            "threshold": np.array(
                [0.0 if nd.threshold is None else nd.threshold for nd in self.nodes], dtype=np.float64
            ),
            "left": np.array([-1 if nd.left is None else nd.left for nd in self.nodes], dtype=np.int64),
            "right": np.array([-1 if nd.right is None else nd.right for nd in self.nodes], dtype=np.int64),
            "is_leaf": np.array([nd.is_leaf for nd in self.nodes], dtype=bool),
            "value": np.vstack([nd.value for nd in self.nodes]).reshape(n, self.n_outputs),
        }
        self._compiled = compiled
        return compiled

    def apply(self, X: np.ndarray) -> np.ndarray:
        """Return the index of the leaf reached by every row of ``X``."""
        X_arr = np.asarray(X, dtype=np.float64)
        N = X_arr.shape[0]
        c = self._ensure_compiled()
        node_idx = np.zeros(N, dtype=np.int64)
        active = np.arange(N, dtype=np.int64)
        while active.size > 0:
            nodes = node_idx[active]
            leaf_mask = c["is_leaf"][nodes]
            if leaf_mask.any():
                active = active[~leaf_mask]
                nodes = nodes[~leaf_mask]
                if active.size == 0:
                    break
            row_feat = X_arr[active, c["feature"][nodes]]
            go_left = row_feat <= c["threshold"][nodes]
            node_idx[active] = np.where(go_left, c["left"][nodes], c["right"][nodes])
        return node_idx

    def predict_values(self, X: np.ndarray) -> np.ndarray:
        """Leaf values ``[N, n_outputs]`` for the rows of ``X``."""
        return self._ensure_compiled()["value"][self.apply(X)]

    def predict_class(self, X: np.ndarray) -> np.ndarray:
        """Most frequent class of the reached leaf (lowest class id on ties)."""
        return np.argmax(self.predict_values(X), axis=1)

    def to_dict(self) -> Dict[str, object]:
        return {
            "n_outputs": self.n_outputs,
            "nodes": [
                {
                    "is_leaf": node.is_leaf,
                    "value": np.asarray(node.value, dtype=np.float64).tolist(),
                    "feature": node.feature,
                    "threshold": node.threshold,
                    "left": node.left,
                    "right": node.right,
                    "depth": node.depth,
                    "n_samples": node.n_samples,
                    "gain": node.gain,
                }
                for node in self.nodes
            ],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "Tree":
        tree = cls(n_outputs=int(payload["n_outputs"]))  # type: ignore[arg-type]
        for node_data in payload["nodes"]:  # type: ignore[union-attr]
            tree.add_node(
                TreeNode(
                    is_leaf=bool(node_data["is_leaf"]),
                    value=np.asarray(node_data["value"], dtype=np.float64),
                    feature=node_data["feature"],
                    threshold=node_data["threshold"],
                    left=node_data["left"],
                    right=node_data["right"],
                    depth=int(node_data["depth"]),
                    n_samples=int(node_data["n_samples"]),
                    gain=float(node_data["gain"]),
                )
            )
        return tree


@dataclass
class ForestModel:
    """Trained random forest.

    Classification forests predict by majority vote over the trees, regression
    forests by the mean of the tree outputs.
    """

    config: ForestConfig
    task: str
    trees: List[Tree]
    n_features: int
    seed: int
    classes: Optional[np.ndarray] = None
    label_ndim: int = 1
    feature_names: tuple = ()
    raw_feature_importances: Optional[np.ndarray] = None
    oob_error_: Optional[float] = None
    tree_oob_errors: Optional[np.ndarray] = None

    @property
    def n_trees(self) -> int:
        return len(self.trees)

    @property
    def n_outputs(self) -> int:
        return self.trees[0].n_outputs if self.trees else 0

    @property
    def impurity(self) -> str:
        return self.config.impurity if self.task == "classification" else "squared_error"

    @property
    def aggregation(self) -> str:
        return "majority_vote" if self.task == "classification" else "mean"

    def feature_importances(self) -> np.ndarray:
        """Mean increase in OOB error when a feature is permuted, one score per feature.

        Scores are floored at zero; an empty array means importances were not
        computed.
        """
        if self.raw_feature_importances is None:
            return np.empty(0, dtype=np.float64)
        return np.maximum(self.raw_feature_importances, 0.0)

    def oob_error(self) -> Optional[float]:
        """OOB error estimate, or ``None`` when it was not computed."""
        return self.oob_error_

    def _as_matrix(self, X: np.ndarray) -> tuple[np.ndarray, bool]:
        X_arr = np.asarray(ensure_numpy(X), dtype=np.float64)
        single = X_arr.ndim == 1
        if single:
            X_arr = X_arr[None, :]
        if X_arr.ndim != 2 or X_arr.shape[1] != self.n_features:
            raise ValueError(f"X must have {self.n_features} features, got shape {X_arr.shape}")
        return X_arr, single

    def apply(self, X: np.ndarray) -> np.ndarray:
        """Leaf index per row and tree, shape ``[N, n_trees]``."""
        X_arr, _ = self._as_matrix(X)
        return np.stack([tree.apply(X_arr) for tree in self.trees], axis=1)

    def votes(self, X: np.ndarray) -> np.ndarray:
        """Per-class vote counts ``[N, K]`` (classification only)."""
        if self.task != "classification":
            raise RuntimeError("votes() is only defined for classification forests")
        X_arr, _ = self._as_matrix(X)
        counts = np.zeros((X_arr.shape[0], self.n_outputs), dtype=np.int64)
        rows = np.arange(X_arr.shape[0])
        for tree in self.trees:
            np.add.at(counts, (rows, tree.predict_class(X_arr)), 1)
        return counts

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Mean leaf class distribution over the trees."""
        if self.task != "classification":
            raise RuntimeError("predict_proba() is only defined for classification forests")
        X_arr, single = self._as_matrix(X)
        proba = np.zeros((X_arr.shape[0], self.n_outputs), dtype=np.float64)
        for tree in self.trees:
            proba += tree.predict_values(X_arr)
        proba /= max(len(self.trees), 1)
        return proba[0] if single else proba

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Majority-vote class (classification) or mean label (regression).

        A single feature vector yields a single label.
        """
        X_arr, single = self._as_matrix(X)
        if self.task == "classification":
            winners = np.argmax(self.votes(X_arr), axis=1)
            assert self.classes is not None
            preds = self.classes[winners]
        else:
            total = np.zeros((X_arr.shape[0], self.n_outputs), dtype=np.float64)
            for tree in self.trees:
                total += tree.predict_values(X_arr)
            preds = total / max(len(self.trees), 1)
            if self.label_ndim == 1:
                preds = preds[:, 0]
        return preds[0] if single else preds

    def to_dict(self) -> Dict[str, object]:
        """Serialise the model to a dictionary."""
        return {
            "config": self.config.to_dict(),
            "task": self.task,
            "n_features": self.n_features,
            "seed": self.seed,
            "classes": self.classes.tolist() if self.classes is not None else None,
            "label_ndim": self.label_ndim,
            "feature_names": list(self.feature_names),
            "raw_feature_importances": (
                self.raw_feature_importances.tolist() if self.raw_feature_importances is not None else None
            ),
            "oob_error": self.oob_error_,
            # trees without out-of-bag rows have no error; JSON has no NaN
            "tree_oob_errors": (
                [None if np.isnan(err) else float(err) for err in self.tree_oob_errors]
                if self.tree_oob_errors is not None
                else None
            ),
            "trees": [tree.to_dict() for tree in self.trees],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "ForestModel":
        """Create a model from ``payload`` produced by :meth:`to_dict`."""
        config = ForestConfig(**payload["config"])  # type: ignore[arg-type]
        classes_payload = payload["classes"]
        importances = payload["raw_feature_importances"]
        tree_errors = payload["tree_oob_errors"]
        oob = payload["oob_error"]
        return cls(
            config=config,
            task=str(payload["task"]),
            trees=[Tree.from_dict(t) for t in payload["trees"]],  # type: ignore[union-attr]
            n_features=int(payload["n_features"]),  # type: ignore[arg-type]
            seed=int(payload["seed"]),  # type: ignore[arg-type]
            classes=np.asarray(classes_payload) if classes_payload is not None else None,
            label_ndim=int(payload["label_ndim"]),  # type: ignore[arg-type]
            feature_names=tuple(payload["feature_names"]),  # type: ignore[arg-type]
            raw_feature_importances=(
                np.asarray(importances, dtype=np.float64) if importances is not None else None
            ),
            oob_error_=float(oob) if oob is not None else None,  # type: ignore[arg-type]
            tree_oob_errors=(
                np.array([np.nan if err is None else err for err in tree_errors], dtype=np.float64)  # type: ignore[union-attr]
                if tree_errors is not None
                else None
            ),
        )
