"""Random forest trainer: bootstrap, grow, and aggregate out-of-bag statistics."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from time import perf_counter
from typing import Any, Callable, List, Sequence

import numpy as np
from joblib import Parallel, delayed

from .builder import GrowthStats, Splitter, TreeBuilder
from .config import ForestConfig
from .core.sampling import BootstrapSampler, TreeStreams
from .core.sorted_index import SortedIndex
from .core.splitter import ClassificationSplitter, RegressionSplitter
from .data import Dataset, make_dataset
from .errors import ConfigurationError, DataError
from .model import ForestModel, Tree
from .oob import ImportanceAccumulator, OOBAccumulator, permutation_importance, tree_error, tree_outputs


@dataclass(slots=True)
class TreeResult:
    """Everything one tree-construction job hands back for aggregation."""

    tree_index: int
    tree: Tree
    n_in_bag: int
    oob_rows: np.ndarray
    oob_predictions: np.ndarray | None
    oob_error: float | None
    importance: np.ndarray | None
    stats: GrowthStats
    seconds: float

    def to_log(self) -> dict[str, Any]:
        return {
            "tree": self.tree_index,
            "nodes": self.stats.nodes,
            "leaves": self.stats.leaves,
            "depth": self.stats.depth,
            "in_bag": self.n_in_bag,
            "oob": int(self.oob_rows.size),
            "oob_error": self.oob_error,
            "seconds": round(self.seconds, 6),
        }


@dataclass(frozen=True, slots=True)
class _TrainingPlan:
    config: ForestConfig
    entropy: int
    mtry: int
    node_size: int


class RandomForestTrainer:
    """Random forest with an SPRINT-style sorted index and out-of-bag estimates.

    Each tree is grown, unpruned, on its own bootstrap sample. Candidate
    features are drawn per node. The out-of-bag rows of every tree feed the
    forest OOB error and the permutation feature importances. Trees are
    independent and built on a joblib thread pool; their results are reduced
    in tree order, so a fixed ``random_state`` yields the same forest for any
    ``n_jobs``.
    """

    def __init__(self, config: ForestConfig | None = None) -> None:
        self.config = config if config is not None else ForestConfig()
        self._logger = logging.getLogger(__name__)

    # Configuration -----------------------------------------------------

    def _update(self, **changes: Any) -> "RandomForestTrainer":
        self.config = replace(self.config, **changes)
        return self

    def set_n_trees(self, n_trees: int) -> "RandomForestTrainer":
        return self._update(n_trees=n_trees)

    def set_mtry(self, mtry: int | None) -> "RandomForestTrainer":
        return self._update(mtry=mtry)

    def set_node_size(self, node_size: int | None) -> "RandomForestTrainer":
        return self._update(node_size=node_size)

    def set_oob_ratio(self, ratio: float) -> "RandomForestTrainer":
        return self._update(oob_ratio=ratio)

    def set_bootstrap_with_replacement(self, enabled: bool) -> "RandomForestTrainer":
        return self._update(bootstrap_with_replacement=enabled)

    def set_impurity(self, impurity: str) -> "RandomForestTrainer":
        return self._update(impurity=impurity)

    def set_compute_feature_importances(self, enabled: bool) -> "RandomForestTrainer":
        return self._update(compute_feature_importances=enabled)

    def set_compute_oob_error(self, enabled: bool) -> "RandomForestTrainer":
        return self._update(compute_oob_error=enabled)

    # Public -------------------------------------------------------------

    def fit(
        self,
        X: Any,
        y: Any,
        *,
        feature_names: Sequence[str] | None = None,
        tree_callback: Callable[[int, dict[str, Any]], None] | None = None,
    ) -> ForestModel:
        """Build a :class:`~sprintforest.data.Dataset` from ``X``/``y`` and train on it."""
        dataset = make_dataset(X, y, task=self.config.task, feature_names=feature_names)
        return self.train(dataset, tree_callback=tree_callback)

    def train(
        self,
        dataset: Dataset,
        *,
        tree_callback: Callable[[int, dict[str, Any]], None] | None = None,
    ) -> ForestModel:
        """Grow ``config.n_trees`` trees on ``dataset`` and return the forest.

        Either a complete forest is returned or an error is raised before any
        tree is grown (configuration or data problems).
        """
        plan = self._plan(dataset)
        config = plan.config
        X = dataset.features
        labels = dataset.labels
        want_oob = config.compute_oob_error or config.compute_feature_importances

        # sorted once for the whole forest; every tree restricts it to its sample
        full_index = SortedIndex.build(X)
        splitter = self._make_splitter(dataset, plan)
        sampler = BootstrapSampler(dataset.n_rows, config.oob_ratio, config.bootstrap_with_replacement)

        def grow(tree_index: int) -> TreeResult:
            start = perf_counter()
            streams = TreeStreams(plan.entropy, tree_index)
            sample = sampler.sample(streams.bootstrap())
            builder = TreeBuilder(splitter, plan.mtry, streams)
            tree = builder.grow(full_index.restrict(sample.in_bag))

            oob_predictions = None
            oob_err = None
            importance = None
            oob_rows = sample.out_of_bag
            if want_oob and oob_rows.size:
                X_oob = X[oob_rows]
                y_oob = labels[oob_rows]
                oob_err = tree_error(tree, X_oob, y_oob, dataset.task)
                if config.compute_oob_error:
                    oob_predictions = tree_outputs(tree, X_oob, dataset.task)
                if config.compute_feature_importances:
                    importance = permutation_importance(
                        tree, X_oob, y_oob, dataset.task, streams.permutation(), base_error=oob_err
                    )
            return TreeResult(
                tree_index=tree_index,
                tree=tree,
                n_in_bag=sample.n_in_bag,
                oob_rows=oob_rows,
                oob_predictions=oob_predictions,
                oob_error=oob_err,
                importance=importance,
                stats=builder.stats,
                seconds=perf_counter() - start,
            )

        start = perf_counter()
        results: List[TreeResult] = Parallel(n_jobs=config.n_jobs, prefer="threads")(
            delayed(grow)(t) for t in range(config.n_trees)
        )

        # reduction in tree order keeps float sums independent of scheduling
        trees: List[Tree] = []
        oob_total = OOBAccumulator(dataset.task, dataset.n_rows, splitter.n_outputs)
        importance_total = ImportanceAccumulator(dataset.n_features)
        tree_errors = np.full(config.n_trees, np.nan, dtype=np.float64)
        for result in results:
            trees.append(result.tree)
            if result.oob_predictions is not None:
                oob_total.add(result.oob_rows, result.oob_predictions)
            if result.importance is not None:
                importance_total.add(result.importance)
            if result.oob_error is not None:
                tree_errors[result.tree_index] = result.oob_error
            log_entry = result.to_log()
            if self._logger.isEnabledFor(logging.INFO):
                self._logger.info(json.dumps(log_entry))
            if tree_callback is not None:
                tree_callback(result.tree_index, log_entry)

        oob_error = None
        if config.compute_oob_error:
            oob_error = oob_total.error(labels)
            if oob_error is None:
                self._logger.warning("no row was out of bag for any tree; OOB error is undefined")
        raw_importances = None
        if config.compute_feature_importances:
            if importance_total.n_trees == 0:
                self._logger.warning("no tree had out-of-bag rows; feature importances are all zero")
            raw_importances = importance_total.mean()

        model = ForestModel(
            config=config,
            task=dataset.task,
            trees=trees,
            n_features=dataset.n_features,
            seed=plan.entropy,
            classes=dataset.classes,
            label_ndim=dataset.label_ndim,
            feature_names=dataset.feature_names,
            raw_feature_importances=raw_importances,
            oob_error_=oob_error,
            tree_oob_errors=tree_errors if want_oob else None,
        )
        if self._logger.isEnabledFor(logging.INFO):
            self._logger.info(
                json.dumps(
                    {
                        "forest": {
                            "task": dataset.task,
                            "trees": model.n_trees,
                            "rows": dataset.n_rows,
                            "features": dataset.n_features,
                            "mtry": plan.mtry,
                            "node_size": plan.node_size,
                            "oob_error": oob_error,
                            "oob_rows_covered": oob_total.n_covered if config.compute_oob_error else None,
                            "seed": plan.entropy,
                            "n_jobs": config.n_jobs,
                            "seconds": round(perf_counter() - start, 6),
                        }
                    }
                )
            )
        return model

    # Internals ----------------------------------------------------------

    def _plan(self, dataset: Dataset) -> _TrainingPlan:
        config = self.config
        if not isinstance(dataset, Dataset):
            raise DataError(f"train() expects a Dataset, got {type(dataset).__name__}; use fit(X, y)")
        if config.task != "auto" and config.task != dataset.task:
            raise ConfigurationError(f"config task {config.task!r} does not match dataset task {dataset.task!r}")
        mtry = config.resolve_mtry(dataset.n_features, dataset.task)
        node_size = config.resolve_node_size(dataset.task)
        if config.random_state is None:
            entropy = int(np.random.SeedSequence().entropy)
        else:
            entropy = int(config.random_state)
        return _TrainingPlan(config=config, entropy=entropy, mtry=mtry, node_size=node_size)

    def _make_splitter(self, dataset: Dataset, plan: _TrainingPlan) -> Splitter:
        if dataset.task == "classification":
            return ClassificationSplitter(
                dataset.labels,
                dataset.label_cardinality,
                impurity=plan.config.impurity,
                node_size=plan.node_size,
            )
        return RegressionSplitter(dataset.labels, node_size=plan.node_size)


__all__ = ["RandomForestTrainer", "TreeResult"]
