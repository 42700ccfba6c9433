"""
Dataset loading and preprocessing for the grid search.
"""

import logging
import os
from typing import Tuple

import numpy as np
import torch
from torch.utils.data import DataLoader, Dataset
from torchvision import datasets

from mnist_sweep.config import TrainingConfig

logger = logging.getLogger(__name__)

NUM_CLASSES = 10
IMAGE_SIZE = 28
PIXEL_SCALE = 255.0


def normalize_pixels(images) -> np.ndarray:
    """
    Scale raw pixel intensities into [0, 1] as single-channel grids.

    Args:
        images: Array of shape (N, 28, 28) or (N, 1, 28, 28)

    Returns:
        np.ndarray: float32 array of shape (N, 1, 28, 28)
    """
    images = np.asarray(images)
    if images.ndim == 3:
        images = images[:, np.newaxis, :, :]
    elif images.ndim != 4 or images.shape[1] != 1:
        raise ValueError(f"Expected images of shape (N, H, W) or (N, 1, H, W), got {images.shape}")

    return images.astype(np.float32) / PIXEL_SCALE


def one_hot_encode(labels, num_classes: int = NUM_CLASSES) -> np.ndarray:
    """
    Convert integer class labels into indicator vectors.

    Args:
        labels: 1-D sequence of integer labels
        num_classes: Width of each indicator vector

    Returns:
        np.ndarray: float32 array of shape (N, num_classes)
    """
    labels = np.asarray(labels)
    if labels.ndim != 1:
        raise ValueError(f"Expected a 1-D array of labels, got shape {labels.shape}")
    if labels.size and (labels.min() < 0 or labels.max() >= num_classes):
        raise ValueError(f"Labels must lie in [0, {num_classes}), got range "
                         f"[{labels.min()}, {labels.max()}]")

    encoded = np.zeros((labels.shape[0], num_classes), dtype=np.float32)
    encoded[np.arange(labels.shape[0]), labels.astype(np.int64)] = 1.0
    return encoded


class MNISTArrayDataset(Dataset):
    """Normalized images paired with one-hot targets."""

    def __init__(self, images, labels, num_classes: int = NUM_CLASSES):
        self.images = torch.from_numpy(normalize_pixels(images))
        self.targets = torch.from_numpy(one_hot_encode(labels, num_classes))
        if len(self.images) != len(self.targets):
            raise ValueError(f"Got {len(self.images)} images but {len(self.targets)} labels")

    def __len__(self):
        return len(self.images)

    def __getitem__(self, index):
        return self.images[index], self.targets[index]


def load_mnist(data_dir: str, download: bool = True) -> Tuple[Tuple[np.ndarray, np.ndarray], Tuple[np.ndarray, np.ndarray]]:
    """
    Fetch MNIST through torchvision and return the raw arrays.

    Args:
        data_dir: Directory to store the dataset
        download: Download the dataset if it is not present

    Returns:
        tuple: ((x_train, y_train), (x_test, y_test)) as uint8 / int64 arrays
    """
    os.makedirs(data_dir, exist_ok=True)

    train_set = datasets.MNIST(root=data_dir, train=True, download=download)
    test_set = datasets.MNIST(root=data_dir, train=False, download=download)

    logger.info(f"Loaded MNIST: {len(train_set)} training / {len(test_set)} evaluation images")
    return (
        (train_set.data.numpy(), train_set.targets.numpy()),
        (test_set.data.numpy(), test_set.targets.numpy()),
    )


def split_train_validation(images: np.ndarray, labels: np.ndarray, validation_split: float,
                           seed: int) -> Tuple[Tuple[np.ndarray, np.ndarray], Tuple[np.ndarray, np.ndarray]]:
    """Hold out a seeded random fraction of the training partition."""
    rng = np.random.default_rng(seed)
    indices = rng.permutation(len(images))
    val_size = int(round(len(images) * validation_split))
    if val_size == 0 or val_size == len(images):
        raise ValueError(f"validation_split={validation_split} leaves an empty partition "
                         f"for {len(images)} samples")

    val_idx, train_idx = indices[:val_size], indices[val_size:]
    return (images[train_idx], labels[train_idx]), (images[val_idx], labels[val_idx])


def build_data_loaders(train_arrays, val_arrays, config: TrainingConfig) -> Tuple[DataLoader, DataLoader]:
    """
    Wrap raw (images, labels) pairs into training and validation loaders.

    Args:
        train_arrays: (images, labels) used for fitting
        val_arrays: (images, labels) used for validation
        config: Sweep settings (batch size, workers, seed, split)

    Returns:
        tuple: (train_loader, val_loader)
    """
    if config.validation_split > 0:
        train_arrays, val_arrays = split_train_validation(
            *train_arrays, config.validation_split, config.seed
        )

    train_dataset = MNISTArrayDataset(*train_arrays)
    val_dataset = MNISTArrayDataset(*val_arrays)

    train_loader = DataLoader(
        train_dataset,
        batch_size=config.batch_size,
        shuffle=True,
        num_workers=config.num_workers,
        generator=torch.Generator().manual_seed(config.seed),
    )
    val_loader = DataLoader(
        val_dataset,
        batch_size=config.batch_size,
        shuffle=False,
        num_workers=config.num_workers,
    )
    return train_loader, val_loader


def get_data_loaders(config: TrainingConfig) -> Tuple[DataLoader, DataLoader]:
    """Download MNIST into ``config.data_dir`` and build the loaders."""
    train_arrays, test_arrays = load_mnist(config.data_dir)
    return build_data_loaders(train_arrays, test_arrays, config)
