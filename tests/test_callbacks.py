import os

import pytest
import torch
import torch.nn as nn

from mnist_sweep.callbacks import EarlyStopping, ModelCheckpoint, TensorBoardLogger
from mnist_sweep.train import TrainingState


@pytest.fixture
def state():
    model = nn.Linear(4, 2)
    return TrainingState(model=model, optimizer=torch.optim.SGD(model.parameters(), lr=0.1))


def _logs(val_loss, val_accuracy=0.5):
    return {"loss": 1.0, "accuracy": 0.5, "val_loss": val_loss, "val_accuracy": val_accuracy}


def test_checkpoint_saves_only_on_improvement(state, tmp_path):
    """The checkpoint holds the snapshot with the lowest val_loss."""
    path = tmp_path / "ckpt" / "run.pt"
    callback = ModelCheckpoint(str(path), metadata={"l1_size": 8, "l2_size": 16})
    callback.set_trainer(state)
    callback.on_train_begin()

    callback.on_epoch_end(0, _logs(0.9))
    assert path.exists()
    first_mtime = os.path.getmtime(path)

    callback.on_epoch_end(1, _logs(0.4, 0.8))
    callback.on_epoch_end(2, _logs(0.6, 0.9))

    checkpoint = torch.load(path)
    assert checkpoint["epoch"] == 1
    assert checkpoint["val_loss"] == 0.4
    assert checkpoint["val_accuracy"] == 0.8
    assert checkpoint["l1_size"] == 8
    assert checkpoint["l2_size"] == 16
    assert set(checkpoint["model_state_dict"]) == {"weight", "bias"}
    assert callback.best_epoch == 1
    assert os.path.getmtime(path) >= first_mtime


def test_checkpoint_not_written_without_improvement(state, tmp_path):
    path = tmp_path / "run.pt"
    callback = ModelCheckpoint(str(path))
    callback.set_trainer(state)
    callback.on_train_begin()
    callback.on_epoch_end(0, _logs(float("nan")))
    assert not path.exists()


@pytest.mark.parametrize("completed", [True, False])
def test_checkpoint_marked_completed_only_after_clean_fit(state, tmp_path, completed):
    path = tmp_path / "run.pt"
    callback = ModelCheckpoint(str(path))
    callback.set_trainer(state)
    callback.on_train_begin()
    callback.on_epoch_end(0, _logs(0.5))
    callback.on_epoch_end(1, _logs(0.6))

    state.epochs_run = 2
    state.completed = completed
    callback.on_train_end()

    checkpoint = torch.load(path)
    assert checkpoint.get("completed", False) is completed
    assert checkpoint["epoch"] == 0
    if completed:
        assert checkpoint["epochs_run"] == 2

def test_checkpoint_max_mode(state, tmp_path):
    path = tmp_path / "run.pt"
    callback = ModelCheckpoint(str(path), monitor="val_accuracy", mode="max")
    callback.set_trainer(state)
    callback.on_train_begin()
    callback.on_epoch_end(0, _logs(0.5, 0.7))
    callback.on_epoch_end(1, _logs(0.4, 0.6))
    assert torch.load(path)["epoch"] == 0


def test_missing_monitor_raises(state, tmp_path):
    callback = ModelCheckpoint(str(tmp_path / "run.pt"), monitor="val_f1")
    callback.set_trainer(state)
    with pytest.raises(KeyError):
        callback.on_epoch_end(0, _logs(0.5))


def test_invalid_mode():
    with pytest.raises(ValueError):
        EarlyStopping(mode="sideways")


def test_early_stopping_after_patience(state):
    callback = EarlyStopping(patience=2)
    callback.set_trainer(state)
    callback.on_train_begin()

    for epoch, loss in enumerate([0.5, 0.4, 0.45]):
        callback.on_epoch_end(epoch, _logs(loss))
    assert not state.stop_training

    callback.on_epoch_end(3, _logs(0.41))
    assert state.stop_training
    assert callback.stopped_epoch == 3


def test_early_stopping_resets_wait_on_improvement(state):
    callback = EarlyStopping(patience=2)
    callback.set_trainer(state)
    callback.on_train_begin()

    for epoch, loss in enumerate([0.5, 0.6, 0.3, 0.35]):
        callback.on_epoch_end(epoch, _logs(loss))
    assert callback.wait == 1
    assert not state.stop_training


def test_early_stopping_min_delta(state):
    callback = EarlyStopping(patience=1, min_delta=0.1)
    callback.set_trainer(state)
    callback.on_train_begin()
    callback.on_epoch_end(0, _logs(0.5))
    # an improvement smaller than min_delta does not count
    callback.on_epoch_end(1, _logs(0.45))
    assert state.stop_training


def test_tensorboard_writes_event_file(state, tmp_path):
    log_dir = tmp_path / "logs" / "conv8-conv16"
    callback = TensorBoardLogger(str(log_dir))
    callback.set_trainer(state)
    callback.on_train_begin()
    callback.on_epoch_end(0, _logs(0.5))
    callback.on_train_end()

    assert callback.writer is None
    assert any(name.startswith("events.out.tfevents") for name in os.listdir(log_dir))
