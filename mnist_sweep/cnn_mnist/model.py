"""
CNN MNIST model implementation.
"""

from dataclasses import replace

import torch
import torch.nn as nn
import torch.nn.functional as F
from typing import Optional

from mnist_sweep.base.base_model import BaseModel
from mnist_sweep.cnn_mnist.config import CNNMNISTConfig


class CNNMNISTModel(nn.Module):
    """
    Convolutional Neural Network for MNIST digit classification.

    Architecture:
    - Convolution (l1_size maps) -> max pooling -> dropout
    - Convolution (l2_size maps) -> max pooling -> dropout
    - Flatten -> dense output layer with 10 classes (softmax head)
    """

    def __init__(self, l1_size: int, l2_size: int, config: Optional[CNNMNISTConfig] = None):
        super(CNNMNISTModel, self).__init__()
        if config is None:
            config = CNNMNISTConfig(l1_size=l1_size, l2_size=l2_size)
        else:
            config = replace(config, l1_size=l1_size, l2_size=l2_size)
        self.config = config

        # First convolution block
        # Input: 1x28x28, Output: l1_size feature maps of 26x26, pooled to 13x13
        self.conv1 = nn.Conv2d(config.input_channels, l1_size, kernel_size=config.kernel_size)

        # Second convolution block
        # Input: l1_size maps of 13x13, Output: l2_size maps of 11x11, pooled to 5x5
        self.conv2 = nn.Conv2d(l1_size, l2_size, kernel_size=config.kernel_size)

        self.pool = nn.MaxPool2d(kernel_size=config.pool_size)
        self.dropout = nn.Dropout(config.dropout_rate)

        self.fc = nn.Linear(config.flattened_features(), config.num_classes)

    def forward(self, x):
        # First convolution block
        x = self.dropout(self.pool(F.relu(self.conv1(x))))

        # Second convolution block
        x = self.dropout(self.pool(F.relu(self.conv2(x))))

        x = torch.flatten(x, 1)

        # Logits; softmax is applied by the loss or by predict_proba
        return self.fc(x)

    def predict_proba(self, x):
        """
        Class probabilities for a batch.

        Args:
            x: Input tensor of shape [batch_size, 1, 28, 28]

        Returns:
            torch.Tensor: Softmax probabilities of shape [batch_size, num_classes]
        """
        with torch.no_grad():
            return F.softmax(self(x), dim=1)


class CNNMNISTClassifier(BaseModel):
    """
    Inference wrapper around a checkpoint produced by a sweep run.
    """

    def __init__(self, l1_size: int, l2_size: int, checkpoint_path: Optional[str] = None):
        """
        Initialize the classifier.

        Args:
            l1_size: Feature maps of the first convolution
            l2_size: Feature maps of the second convolution
            checkpoint_path: Path to the model checkpoint file
        """
        super().__init__(f"conv{l1_size}-conv{l2_size}", checkpoint_path)
        self.l1_size = l1_size
        self.l2_size = l2_size

    def create_model(self) -> nn.Module:
        return CNNMNISTModel(self.l1_size, self.l2_size)

    @classmethod
    def from_checkpoint(cls, checkpoint_path: str) -> "CNNMNISTClassifier":
        """Rebuild the classifier from the filter counts stored in a sweep checkpoint."""
        checkpoint = torch.load(checkpoint_path, map_location="cpu")
        try:
            l1_size, l2_size = checkpoint["l1_size"], checkpoint["l2_size"]
        except (KeyError, TypeError):
            raise ValueError(f"Checkpoint {checkpoint_path} does not record its layer sizes")
        return cls(int(l1_size), int(l2_size), checkpoint_path=checkpoint_path)
