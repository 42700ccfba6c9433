"""
Grid search over the two convolution widths of a small MNIST CNN.
"""

from .config import TrainingConfig, RunConfig
from .model_factory import ModelFactory, RunResult, train_candidate
from .sweep import DEFAULT_LAYER_SIZES, build_grid, run_grid_search, select_best

__all__ = [
    'TrainingConfig', 'RunConfig', 'ModelFactory', 'RunResult', 'train_candidate',
    'DEFAULT_LAYER_SIZES', 'build_grid', 'run_grid_search', 'select_best',
]
