"""Core data structures for sorted-index tree growth."""

from .sampling import BootstrapSample, BootstrapSampler, TreeStreams
from .sorted_index import SortedIndex
from .splitter import ClassificationSplitter, NodeStats, RegressionSplitter, Split

__all__ = [
    "BootstrapSample",
    "BootstrapSampler",
    "ClassificationSplitter",
    "NodeStats",
    "RegressionSplitter",
    "SortedIndex",
    "Split",
    "TreeStreams",
]
