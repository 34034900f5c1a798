"""Exception hierarchy for sprintforest."""

from __future__ import annotations


class ForestError(Exception):
    """Base class for every error raised by sprintforest."""


class ConfigurationError(ForestError, ValueError):
    """Invalid hyper-parameters; raised before any tree is grown."""


class DataError(ForestError, ValueError):
    """Unusable training data (empty, ragged, non-finite, mismatched labels)."""


class InvalidIndexError(ForestError, RuntimeError):
    """A sorted-index operation referenced a row the table does not hold."""


__all__ = ["ConfigurationError", "DataError", "ForestError", "InvalidIndexError"]
