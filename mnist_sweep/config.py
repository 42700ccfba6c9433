"""
Centralized configuration for the MNIST CNN grid search.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional
import os


@dataclass
class TrainingConfig:
    """Settings shared by every run of a sweep."""
    data_dir: str = field(default_factory=lambda: os.getenv("MNIST_SWEEP_DATA_DIR", "data"))
    log_root: str = field(default_factory=lambda: os.getenv("MNIST_SWEEP_LOG_DIR", "logs"))
    checkpoint_root: str = field(default_factory=lambda: os.getenv("MNIST_SWEEP_CHECKPOINT_DIR", "checkpoints"))

    epochs: int = 10
    batch_size: int = 200
    learning_rate: float = 0.001

    # Early stopping on validation loss
    patience: int = 3
    min_delta: float = 0.0

    # 0.0 validates on the evaluation partition
    validation_split: float = 0.0
    seed: int = 42
    num_workers: int = 0
    use_cuda: bool = True

    def __post_init__(self):
        if self.epochs < 1:
            raise ValueError(f"epochs must be positive, got {self.epochs}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if not 0.0 <= self.validation_split < 1.0:
            raise ValueError(f"validation_split must be in [0, 1), got {self.validation_split}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)


@dataclass(frozen=True)
class RunConfig:
    """
    A single candidate of the sweep, identified by its two filter counts.

    The run name, log directory and checkpoint path are all derived from
    ``(l1_size, l2_size)`` so two distinct pairs never share storage.
    """
    l1_size: int
    l2_size: int
    log_root: str = "logs"
    checkpoint_root: str = "checkpoints"

    def __post_init__(self):
        for name in ("l1_size", "l2_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")

    @property
    def run_name(self) -> str:
        return f"conv{self.l1_size}-conv{self.l2_size}"

    @property
    def log_dir(self) -> str:
        return os.path.join(self.log_root, self.run_name)

    @property
    def checkpoint_path(self) -> str:
        return os.path.join(self.checkpoint_root, f"{self.run_name}.pt")

    @classmethod
    def from_training_config(cls, l1_size: int, l2_size: int,
                             config: Optional[TrainingConfig] = None) -> "RunConfig":
        """
        Build a run whose artifacts live under the roots of ``config``.

        Args:
            l1_size: Feature maps of the first convolution
            l2_size: Feature maps of the second convolution
            config: Sweep settings; defaults are used when omitted

        Returns:
            RunConfig: The run configuration
        """
        config = config or TrainingConfig()
        return cls(
            l1_size=l1_size,
            l2_size=l2_size,
            log_root=config.log_root,
            checkpoint_root=config.checkpoint_root,
        )
