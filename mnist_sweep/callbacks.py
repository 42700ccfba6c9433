"""
Training callbacks: best-only checkpointing, early stopping and TensorBoard logging.
"""

import logging
import math
import os
from typing import Dict, Optional

import torch
from torch.utils.tensorboard import SummaryWriter

logger = logging.getLogger(__name__)


class Callback:
    """
    Hooks called by the fit loop.

    ``trainer`` is attached by the fit loop before ``on_train_begin`` and exposes
    ``model``, ``optimizer``, a writable ``stop_training`` flag, ``epochs_run`` and
    ``completed``, which is only True in ``on_train_end`` when the fit was not interrupted.
    """

    def __init__(self):
        self.trainer = None

    def set_trainer(self, trainer):
        self.trainer = trainer

    def on_train_begin(self):
        pass

    def on_epoch_end(self, epoch: int, logs: Dict[str, float]):
        pass

    def on_train_end(self):
        pass


class _MonitorMixin:
    """Tracks the best value of a logged metric."""

    def _init_monitor(self, monitor: str, mode: str, min_delta: float = 0.0):
        if mode not in ("min", "max"):
            raise ValueError(f"mode must be 'min' or 'max', got {mode!r}")
        self.monitor = monitor
        self.mode = mode
        self.min_delta = abs(min_delta)
        self.best = math.inf if mode == "min" else -math.inf

    def _current(self, logs: Dict[str, float]) -> float:
        if self.monitor not in logs:
            raise KeyError(f"Monitored metric '{self.monitor}' not in logs. "
                           f"Available metrics: {sorted(logs)}")
        return float(logs[self.monitor])

    def _improved(self, value: float) -> bool:
        if self.mode == "min":
            return value < self.best - self.min_delta
        return value > self.best + self.min_delta


class ModelCheckpoint(_MonitorMixin, Callback):
    """
    Save the model only when the monitored metric improves.

    Args:
        checkpoint_path: File the best snapshot is written to
        monitor: Metric name from the epoch logs
        mode: 'min' for losses, 'max' for accuracies
        metadata: Extra entries stored in the checkpoint (e.g. layer sizes)
    """

    def __init__(self, checkpoint_path: str, monitor: str = "val_loss", mode: str = "min",
                 metadata: Optional[Dict] = None):
        super().__init__()
        self._init_monitor(monitor, mode)
        self.checkpoint_path = checkpoint_path
        self.metadata = dict(metadata or {})
        self.best_epoch: Optional[int] = None

    def on_train_begin(self):
        directory = os.path.dirname(self.checkpoint_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def on_epoch_end(self, epoch, logs):
        value = self._current(logs)
        if not self._improved(value):
            logger.info(f"Epoch {epoch+1}: {self.monitor} did not improve from {self.best:.5f}")
            return

        logger.info(f"Epoch {epoch+1}: {self.monitor} improved from {self.best:.5f} to {value:.5f}, "
                    f"saving model to {self.checkpoint_path}")
        self.best = value
        self.best_epoch = epoch
        torch.save({
            'epoch': epoch,
            'model_state_dict': self.trainer.model.state_dict(),
            'optimizer_state_dict': self.trainer.optimizer.state_dict(),
            'val_loss': logs.get('val_loss'),
            'val_accuracy': logs.get('val_accuracy'),
            **self.metadata,
        }, self.checkpoint_path)

    def on_train_end(self):
        # Only a fit that ran to its end (or stopped early) marks the snapshot as final
        if not self.trainer.completed or self.best_epoch is None:
            return

        checkpoint = torch.load(self.checkpoint_path, map_location="cpu")
        checkpoint["completed"] = True
        checkpoint["epochs_run"] = self.trainer.epochs_run
        torch.save(checkpoint, self.checkpoint_path)


class EarlyStopping(_MonitorMixin, Callback):
    """
    Stop training once the monitored metric has not improved for ``patience`` epochs.
    """

    def __init__(self, monitor: str = "val_loss", patience: int = 3, min_delta: float = 0.0,
                 mode: str = "min"):
        super().__init__()
        if patience < 0:
            raise ValueError(f"patience must be non-negative, got {patience}")
        self._init_monitor(monitor, mode, min_delta)
        self.patience = patience
        self.wait = 0
        self.stopped_epoch: Optional[int] = None

    def on_train_begin(self):
        self.wait = 0
        self.stopped_epoch = None
        self.best = math.inf if self.mode == "min" else -math.inf

    def on_epoch_end(self, epoch, logs):
        value = self._current(logs)
        if self._improved(value):
            self.best = value
            self.wait = 0
            return

        self.wait += 1
        if self.wait >= self.patience:
            self.stopped_epoch = epoch
            self.trainer.stop_training = True
            logger.info(f"Epoch {epoch+1}: early stopping, {self.monitor} has not improved "
                        f"for {self.wait} epochs")


class TensorBoardLogger(Callback):
    """Write every epoch metric as a scalar into a per-run TensorBoard directory."""

    def __init__(self, log_dir: str):
        super().__init__()
        self.log_dir = log_dir
        self.writer: Optional[SummaryWriter] = None

    def on_train_begin(self):
        os.makedirs(self.log_dir, exist_ok=True)
        self.writer = SummaryWriter(log_dir=self.log_dir)

    def on_epoch_end(self, epoch, logs):
        for name, value in logs.items():
            # loss / val_loss share the "loss" chart
            tag = f"{name[4:]}/validation" if name.startswith("val_") else f"{name}/train"
            self.writer.add_scalar(tag, value, epoch)
        self.writer.flush()

    def on_train_end(self):
        if self.writer is not None:
            self.writer.close()
            self.writer = None
