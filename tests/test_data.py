import pytest
import numpy as np
import torch

from mnist_sweep.config import TrainingConfig
from mnist_sweep.data import (
    MNISTArrayDataset,
    build_data_loaders,
    normalize_pixels,
    one_hot_encode,
    split_train_validation,
)


def test_normalize_pixels_range(raw_images):
    """Normalized pixel values lie in [0, 1]."""
    images = normalize_pixels(raw_images)
    assert images.dtype == np.float32
    assert images.min() >= 0.0
    assert images.max() <= 1.0


def test_normalize_pixels_extremes():
    images = np.stack([np.zeros((28, 28), np.uint8), np.full((28, 28), 255, np.uint8)])
    normalized = normalize_pixels(images)
    assert normalized[0].max() == 0.0
    assert normalized[1].min() == 1.0


def test_normalize_pixels_adds_channel(raw_images):
    assert normalize_pixels(raw_images).shape == (64, 1, 28, 28)
    assert normalize_pixels(raw_images[:, np.newaxis]).shape == (64, 1, 28, 28)


def test_normalize_pixels_rejects_bad_shape():
    with pytest.raises(ValueError):
        normalize_pixels(np.zeros((28, 28)))
    with pytest.raises(ValueError):
        normalize_pixels(np.zeros((4, 3, 28, 28)))


def test_one_hot_rows_have_single_one(raw_labels):
    """Every one-hot row sums to 1 with exactly one nonzero entry at the label."""
    encoded = one_hot_encode(raw_labels)
    assert encoded.shape == (64, 10)
    assert np.allclose(encoded.sum(axis=1), 1.0)
    assert (np.count_nonzero(encoded, axis=1) == 1).all()
    assert (encoded.argmax(axis=1) == raw_labels).all()


def test_one_hot_rejects_out_of_range_labels():
    with pytest.raises(ValueError):
        one_hot_encode([0, 10])
    with pytest.raises(ValueError):
        one_hot_encode([-1, 3])


def test_one_hot_custom_width():
    assert one_hot_encode([2], num_classes=3).tolist() == [[0.0, 0.0, 1.0]]


def test_dataset_items(raw_images, raw_labels):
    dataset = MNISTArrayDataset(raw_images, raw_labels)
    image, target = dataset[3]
    assert len(dataset) == 64
    assert image.shape == (1, 28, 28)
    assert target.shape == (10,)
    assert target.argmax().item() == raw_labels[3]


def test_dataset_length_mismatch(raw_images, raw_labels):
    with pytest.raises(ValueError):
        MNISTArrayDataset(raw_images, raw_labels[:10])


def test_split_is_seeded_and_disjoint(raw_images, raw_labels):
    (x_train, y_train), (x_val, y_val) = split_train_validation(raw_images, raw_labels, 0.25, seed=1)
    assert len(x_train) == 48
    assert len(x_val) == 16

    (x_train_again, _), _ = split_train_validation(raw_images, raw_labels, 0.25, seed=1)
    assert np.array_equal(x_train, x_train_again)


def test_loaders_batch_shapes(loaders):
    train_loader, val_loader = loaders
    images, targets = next(iter(train_loader))
    assert images.shape == (16, 1, 28, 28)
    assert targets.shape == (16, 10)
    assert len(val_loader.dataset) == 32


def test_loaders_with_validation_split(raw_images, raw_labels, tmp_path):
    config = TrainingConfig(batch_size=8, validation_split=0.5, checkpoint_root=str(tmp_path))
    train_loader, val_loader = build_data_loaders(
        (raw_images, raw_labels), (raw_images[:4], raw_labels[:4]), config
    )
    assert len(train_loader.dataset) == 32
    assert len(val_loader.dataset) == 32
    assert isinstance(next(iter(val_loader))[0], torch.Tensor)
