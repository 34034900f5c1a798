"""sprintforest: random forests grown over SPRINT-style sorted indexes."""

from .config import ForestConfig
from .data import Dataset, make_dataset
from .errors import ConfigurationError, DataError, ForestError, InvalidIndexError
from .model import ForestModel
from .trainer import RandomForestTrainer

__all__ = [
    "ConfigurationError",
    "DataError",
    "Dataset",
    "ForestConfig",
    "ForestError",
    "ForestModel",
    "InvalidIndexError",
    "RandomForestTrainer",
    "make_dataset",
]
