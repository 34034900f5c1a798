"""Unpruned decision-tree growth over a sorted index."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple, Union

import numpy as np
import torch

from .core.sampling import TreeStreams
from .core.sorted_index import SortedIndex
from .core.splitter import ClassificationSplitter, RegressionSplitter
from .model import Tree, TreeNode

Splitter = Union[ClassificationSplitter, RegressionSplitter]


@dataclass(slots=True)
class GrowthStats:
    nodes: int = 0
    leaves: int = 0
    depth: int = 0
    splits_searched: int = 0


class TreeBuilder:
    """Grow one binary tree from the sorted index of a bootstrap sample.

    Nodes are expanded depth-first, left child first. A node becomes a leaf
    when it is smaller than ``node_size``, pure, or when no candidate split
    improves the criterion; otherwise it is split and both children are
    queued. Each node draws its ``mtry`` candidate features from its own
    generator, so the tree depends only on the data and the seeds.
    """

    def __init__(self, splitter: Splitter, mtry: int, streams: TreeStreams, *, track_rows: bool = False) -> None:
        self.splitter = splitter
        self.mtry = int(mtry)
        self.streams = streams
        self.track_rows = track_rows
        self.nodes: List[TreeNode] = []
        self.node_rows: List[np.ndarray] = []
        self.stats = GrowthStats()

    def set_leaf(self, node_id: int, value: np.ndarray) -> None:
        n = self.nodes[node_id]
        n.value = np.asarray(value, dtype=np.float64)
        n.is_leaf = True
        n.feature = None; n.threshold = None; n.left = None; n.right = None

    def split(self, node_id: int, feature: int, threshold: float, gain: float) -> Tuple[int, int]:
        n = self.nodes[node_id]
        n.feature = int(feature); n.threshold = float(threshold); n.gain = float(gain); n.is_leaf = False
        l = self._new_node(n.depth + 1)
        r = self._new_node(n.depth + 1)
        n.left = l; n.right = r
        return l, r

    def _new_node(self, depth: int) -> int:
        self.nodes.append(TreeNode(is_leaf=True, value=np.zeros(self.splitter.n_outputs), depth=depth))
        self.node_rows.append(np.empty(0, dtype=np.int64))
        return len(self.nodes) - 1

    def _candidate_features(self, node_id: int, n_features: int) -> np.ndarray:
        if self.mtry >= n_features:
            return np.arange(n_features, dtype=np.int64)
        generator = self.streams.node(node_id)
        chosen = torch.randperm(n_features, generator=generator)[: self.mtry].numpy()
        return np.sort(chosen.astype(np.int64, copy=False))

    def grow(self, index: SortedIndex) -> Tree:
        """Expand the root over ``index`` until every node is a leaf."""
        if index.n_occurrences == 0:
            raise ValueError("cannot grow a tree on an empty sample")
        self.nodes = []
        self.node_rows = []
        self.stats = GrowthStats()

        root = self._new_node(0)
        stack: List[Tuple[int, SortedIndex]] = [(root, index)]
        while stack:
            node_id, node_index = stack.pop()
            node = self.nodes[node_id]
            stats = self.splitter.node_stats(node_index)
            node.n_samples = stats.n
            if self.track_rows:
                self.node_rows[node_id] = node_index.rows

            split = None
            if self.splitter.can_split(stats):
                features = self._candidate_features(node_id, node_index.n_features)
                self.stats.splits_searched += 1
                split = self.splitter.find_split(node_index, features, stats)
            if split is None:
                self.set_leaf(node_id, self.splitter.leaf_value(stats))
                continue

            left_index, right_index = node_index.split(split.feature, split.threshold)
            left_id, right_id = self.split(node_id, split.feature, split.threshold, split.gain)
            # internal nodes keep their distribution / mean as well
            node.value = np.asarray(self.splitter.leaf_value(stats), dtype=np.float64)
            stack.append((right_id, right_index))
            stack.append((left_id, left_index))

        tree = Tree(n_outputs=self.splitter.n_outputs)
        for node in self.nodes:
            tree.add_node(node)
        self.stats.nodes = tree.n_nodes
        self.stats.leaves = tree.n_leaves
        self.stats.depth = tree.depth
        return tree


__all__ = ["GrowthStats", "Splitter", "TreeBuilder"]
