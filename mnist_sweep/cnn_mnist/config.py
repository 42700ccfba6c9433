"""
Configuration for the grid-search CNN.
"""

from dataclasses import dataclass
from typing import Dict, Any


@dataclass
class CNNMNISTConfig:
    """Topology of a sweep candidate. Only the filter counts vary between runs."""

    # Swept hyperparameters
    l1_size: int = 32
    l2_size: int = 64

    # Fixed architecture
    input_channels: int = 1
    image_size: int = 28
    kernel_size: int = 3
    pool_size: int = 2
    dropout_rate: float = 0.2
    num_classes: int = 10

    def feature_map_size(self) -> int:
        """Side length of the feature maps after both conv/pool stages."""
        size = self.image_size
        for _ in range(2):
            size = (size - self.kernel_size + 1) // self.pool_size
        if size < 1:
            raise ValueError(f"Image size {self.image_size} is too small for kernel "
                             f"{self.kernel_size} and pool {self.pool_size}")
        return size

    def flattened_features(self) -> int:
        return self.l2_size * self.feature_map_size() ** 2

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "l1_size": self.l1_size,
            "l2_size": self.l2_size,
            "input_channels": self.input_channels,
            "image_size": self.image_size,
            "kernel_size": self.kernel_size,
            "pool_size": self.pool_size,
            "dropout_rate": self.dropout_rate,
            "num_classes": self.num_classes
        }
