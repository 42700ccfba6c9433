import pytest
import numpy as np

from mnist_sweep.config import TrainingConfig
from mnist_sweep.data import build_data_loaders


@pytest.fixture(scope="session")
def raw_images():
    """Synthetic uint8 digits, shaped like the MNIST arrays."""
    rng = np.random.default_rng(0)
    return rng.integers(0, 256, size=(64, 28, 28), dtype=np.uint8)


@pytest.fixture(scope="session")
def raw_labels():
    return np.arange(64) % 10


@pytest.fixture
def training_config(tmp_path):
    """A tiny CPU-only config writing artifacts under tmp_path."""
    return TrainingConfig(
        data_dir=str(tmp_path / "data"),
        log_root=str(tmp_path / "logs"),
        checkpoint_root=str(tmp_path / "checkpoints"),
        epochs=2,
        batch_size=16,
        patience=3,
        use_cuda=False,
    )


@pytest.fixture
def loaders(raw_images, raw_labels, training_config):
    """Train/validation loaders over the synthetic arrays."""
    return build_data_loaders(
        (raw_images, raw_labels),
        (raw_images[:32], raw_labels[:32]),
        training_config,
    )
