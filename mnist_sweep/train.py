#!/usr/bin/env python3
"""
Fit loop for sweep candidates, plus a CLI that trains a single (l1, l2) run.
"""

import argparse
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import torch
import torch.nn as nn
from torch.utils.data import DataLoader
from tqdm import tqdm

from mnist_sweep.callbacks import Callback
from mnist_sweep.config import TrainingConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class TrainingState:
    """What callbacks can see and steer while a model is being fit."""
    model: nn.Module
    optimizer: torch.optim.Optimizer
    stop_training: bool = False
    epochs_run: int = 0
    completed: bool = False


@dataclass
class History:
    """Per-epoch metrics of a fit, keyed like the callback logs."""
    epochs: List[int] = field(default_factory=list)
    metrics: Dict[str, List[float]] = field(default_factory=dict)

    def append(self, epoch: int, logs: Dict[str, float]):
        self.epochs.append(epoch)
        for name, value in logs.items():
            self.metrics.setdefault(name, []).append(value)

    def __len__(self):
        return len(self.epochs)


def get_device(use_cuda: bool = True) -> torch.device:
    return torch.device("cuda" if use_cuda and torch.cuda.is_available() else "cpu")


def set_seed(seed: int):
    torch.manual_seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)


def _batch_correct(output: torch.Tensor, target: torch.Tensor) -> int:
    return (output.argmax(dim=1) == target.argmax(dim=1)).sum().item()


def evaluate(model: nn.Module, loader: DataLoader, criterion: nn.Module,
             device: torch.device) -> Dict[str, float]:
    """
    Mean loss and accuracy of ``model`` over ``loader``.

    Targets are one-hot vectors; accuracy compares arg-max positions.
    """
    model.eval()
    total_loss = 0.0
    correct = 0
    total = 0

    with torch.no_grad():
        for data, target in loader:
            data, target = data.to(device), target.to(device)
            output = model(data)

            total_loss += criterion(output, target).item() * target.size(0)
            correct += _batch_correct(output, target)
            total += target.size(0)

    if total == 0:
        raise ValueError("Cannot evaluate on an empty loader")

    return {"loss": total_loss / total, "accuracy": correct / total}


def fit(model: nn.Module, train_loader: DataLoader, val_loader: DataLoader, criterion: nn.Module,
        optimizer: torch.optim.Optimizer, device: torch.device, epochs: int,
        callbacks: Optional[Sequence[Callback]] = None, show_progress: bool = True) -> History:
    """
    Train ``model`` for at most ``epochs`` epochs.

    Args:
        model (nn.Module): The neural network model
        train_loader (DataLoader): Batches of (images, one-hot targets) to fit on
        val_loader (DataLoader): Batches used for the validation metrics
        criterion (nn.Module): Loss function
        optimizer (Optimizer): Optimizer bound to the model's parameters
        device (torch.device): Device to train on (CPU or GPU)
        epochs (int): Upper bound on the number of epochs
        callbacks: Called after every epoch with the epoch metrics
        show_progress (bool): Show a tqdm progress bar per epoch

    Returns:
        History: Metrics of every completed epoch
    """
    callbacks = list(callbacks or [])
    state = TrainingState(model=model, optimizer=optimizer)
    history = History()

    model.to(device)
    for callback in callbacks:
        callback.set_trainer(state)
        callback.on_train_begin()

    try:
        for epoch in range(epochs):
            # Training phase
            model.train()
            running_loss = 0.0
            correct = 0
            total = 0

            progress_bar = tqdm(train_loader, desc=f"Epoch {epoch+1}/{epochs} [Train]",
                                disable=not show_progress, leave=False)
            for batch_idx, (data, target) in enumerate(progress_bar):
                data, target = data.to(device), target.to(device)

                optimizer.zero_grad()
                output = model(data)
                loss = criterion(output, target)
                loss.backward()
                optimizer.step()

                running_loss += loss.item() * target.size(0)
                correct += _batch_correct(output, target)
                total += target.size(0)
                progress_bar.set_postfix({"loss": running_loss / total})

            if total == 0:
                raise ValueError("Cannot fit on an empty training loader")

            # Evaluation phase
            val_metrics = evaluate(model, val_loader, criterion, device)
            logs = {
                "loss": running_loss / total,
                "accuracy": correct / total,
                "val_loss": val_metrics["loss"],
                "val_accuracy": val_metrics["accuracy"],
            }
            history.append(epoch, logs)
            state.epochs_run = len(history)
            logger.info(f"Epoch {epoch+1}/{epochs} - loss: {logs['loss']:.4f} - "
                        f"accuracy: {logs['accuracy']:.4f} - val_loss: {logs['val_loss']:.4f} - "
                        f"val_accuracy: {logs['val_accuracy']:.4f}")

            for callback in callbacks:
                callback.on_epoch_end(epoch, logs)

            if state.stop_training:
                break

        state.completed = True
    finally:
        for callback in callbacks:
            callback.on_train_end()

    return history


def add_training_arguments(parser: argparse.ArgumentParser):
    """Flags shared by the single-run and sweep CLIs."""
    defaults = TrainingConfig()
    parser.add_argument("--batch-size", type=int, default=defaults.batch_size, help="Batch size for training")
    parser.add_argument("--epochs", type=int, default=defaults.epochs, help="Maximum number of epochs per run")
    parser.add_argument("--lr", type=float, default=defaults.learning_rate, help="Learning rate")
    parser.add_argument("--patience", type=int, default=defaults.patience,
                        help="Epochs without val_loss improvement before stopping")
    parser.add_argument("--validation-split", type=float, default=defaults.validation_split,
                        help="Hold out this fraction of the training set instead of validating on the test set")
    parser.add_argument("--seed", type=int, default=defaults.seed, help="Random seed")
    parser.add_argument("--num-workers", type=int, default=defaults.num_workers, help="DataLoader workers")
    parser.add_argument("--data-dir", type=str, default=defaults.data_dir, help="Directory to store dataset")
    parser.add_argument("--log-dir", type=str, default=defaults.log_root, help="Root of the TensorBoard run directories")
    parser.add_argument("--checkpoint-dir", type=str, default=defaults.checkpoint_root, help="Directory to save checkpoints")
    parser.add_argument("--no-cuda", action="store_true", default=False, help="Disable CUDA training")


def config_from_args(args: argparse.Namespace) -> TrainingConfig:
    return TrainingConfig(
        data_dir=args.data_dir,
        log_root=args.log_dir,
        checkpoint_root=args.checkpoint_dir,
        epochs=args.epochs,
        batch_size=args.batch_size,
        learning_rate=args.lr,
        patience=args.patience,
        validation_split=args.validation_split,
        seed=args.seed,
        num_workers=args.num_workers,
        use_cuda=not args.no_cuda,
    )


def main(argv=None):
    """Train a single candidate of the grid."""
    from mnist_sweep.data import get_data_loaders
    from mnist_sweep.model_factory import train_candidate

    parser = argparse.ArgumentParser(description="Train one CNN candidate on MNIST")
    parser.add_argument("--l1", type=int, required=True, help="Feature maps of the first convolution")
    parser.add_argument("--l2", type=int, required=True, help="Feature maps of the second convolution")
    add_training_arguments(parser)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    config = config_from_args(args)

    train_loader, val_loader = get_data_loaders(config)
    result = train_candidate(args.l1, args.l2, train_loader, val_loader, config)
    if result.best_epoch is None:
        logger.error(f"Run {result.run_name} finished without a checkpoint")
        return 1

    logger.info(f"Run {result.run_name} finished: best val_loss {result.best_val_loss:.4f} "
                f"(val_accuracy {result.best_val_accuracy:.4f}) at epoch {result.best_epoch+1}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
