"""
Model factory for building, compiling and training sweep candidates.
"""

import logging
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple

import torch
import torch.nn as nn
import torch.optim as optim
from torch.utils.data import DataLoader

from mnist_sweep.callbacks import Callback, EarlyStopping, ModelCheckpoint, TensorBoardLogger
from mnist_sweep.cnn_mnist.model import CNNMNISTModel
from mnist_sweep.config import RunConfig, TrainingConfig
from mnist_sweep.train import fit, get_device, set_seed

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of training one (l1, l2) candidate."""
    run_name: str
    l1_size: int
    l2_size: int
    best_val_loss: float
    best_val_accuracy: float
    best_epoch: Optional[int]
    checkpoint_path: str
    log_dir: str
    epochs_run: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ModelFactory:
    """
    Factory class for creating, compiling and wiring callbacks for sweep candidates.
    """

    @classmethod
    def create_model(cls, l1_size: int, l2_size: int) -> CNNMNISTModel:
        """
        Create a candidate model.

        Args:
            l1_size: Feature maps of the first convolution
            l2_size: Feature maps of the second convolution

        Returns:
            CNNMNISTModel: Untrained model instance
        """
        return CNNMNISTModel(l1_size, l2_size)

    @classmethod
    def compile(cls, model: nn.Module, config: TrainingConfig) -> Tuple[nn.Module, optim.Optimizer]:
        """
        Fixed loss and optimizer shared by every run.

        Cross-entropy takes the one-hot targets as class probabilities.
        """
        criterion = nn.CrossEntropyLoss()
        optimizer = optim.Adam(model.parameters(), lr=config.learning_rate)
        return criterion, optimizer

    @classmethod
    def create_callbacks(cls, run: RunConfig, config: TrainingConfig) -> List[Callback]:
        """Checkpoint, early stopping and TensorBoard callbacks bound to the run's paths."""
        return [
            ModelCheckpoint(
                run.checkpoint_path,
                monitor="val_loss",
                mode="min",
                metadata={"l1_size": run.l1_size, "l2_size": run.l2_size},
            ),
            EarlyStopping(monitor="val_loss", patience=config.patience, min_delta=config.min_delta),
            TensorBoardLogger(run.log_dir),
        ]


def train_candidate(l1_size: int, l2_size: int, train_loader: DataLoader, val_loader: DataLoader,
                    config: Optional[TrainingConfig] = None, device: Optional[torch.device] = None,
                    show_progress: bool = True) -> RunResult:
    """
    Build, compile and fit one candidate, keeping only its best checkpoint.

    Args:
        l1_size: Feature maps of the first convolution
        l2_size: Feature maps of the second convolution
        train_loader: Training batches
        val_loader: Validation batches
        config: Sweep settings; defaults are used when omitted
        device: Device to train on; derived from ``config.use_cuda`` when omitted
        show_progress: Show per-batch progress bars

    Returns:
        RunResult: Best validation metrics and the run's artifact paths
    """
    config = config or TrainingConfig()
    run = RunConfig.from_training_config(l1_size, l2_size, config)
    device = device or get_device(config.use_cuda)

    set_seed(config.seed)
    # Same shuffle order for a run whether it is trained alone or inside a sweep
    generator = getattr(train_loader, "generator", None)
    if generator is not None:
        generator.manual_seed(config.seed)

    model = ModelFactory.create_model(l1_size, l2_size).to(device)
    criterion, optimizer = ModelFactory.compile(model, config)
    callbacks = ModelFactory.create_callbacks(run, config)

    logger.info(f"Training {run.run_name} for up to {config.epochs} epochs on {device} "
                f"({sum(p.numel() for p in model.parameters()):,} parameters)")

    history = fit(
        model=model,
        train_loader=train_loader,
        val_loader=val_loader,
        criterion=criterion,
        optimizer=optimizer,
        device=device,
        epochs=config.epochs,
        callbacks=callbacks,
        show_progress=show_progress,
    )

    checkpoint = callbacks[0]
    if checkpoint.best_epoch is None:
        logger.warning(f"{run.run_name} never produced a finite val_loss, no checkpoint was written")
        best_val_loss, best_val_accuracy = math.inf, 0.0
    else:
        best_index = history.epochs.index(checkpoint.best_epoch)
        best_val_loss = history.metrics["val_loss"][best_index]
        best_val_accuracy = history.metrics["val_accuracy"][best_index]

    return RunResult(
        run_name=run.run_name,
        l1_size=l1_size,
        l2_size=l2_size,
        best_val_loss=best_val_loss,
        best_val_accuracy=best_val_accuracy,
        best_epoch=checkpoint.best_epoch,
        epochs_run=len(history),
        checkpoint_path=run.checkpoint_path,
        log_dir=run.log_dir,
    )
