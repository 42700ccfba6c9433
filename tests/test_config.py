import pytest

from mnist_sweep.config import RunConfig, TrainingConfig


def test_defaults():
    config = TrainingConfig()
    assert config.epochs == 10
    assert config.batch_size == 200
    assert config.patience == 3
    assert config.to_dict()["learning_rate"] == 0.001


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MNIST_SWEEP_LOG_DIR", "/tmp/tb")
    monkeypatch.setenv("MNIST_SWEEP_CHECKPOINT_DIR", "/tmp/ck")
    config = TrainingConfig()
    assert config.log_root == "/tmp/tb"
    assert config.checkpoint_root == "/tmp/ck"

    run = RunConfig.from_training_config(8, 8, config)
    assert run.log_root == "/tmp/tb"


@pytest.mark.parametrize("kwargs", [
    {"epochs": 0},
    {"batch_size": 0},
    {"validation_split": 1.0},
    {"validation_split": -0.1},
])
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        TrainingConfig(**kwargs)


def test_run_config_is_hashable():
    assert len({RunConfig(8, 16), RunConfig(8, 16), RunConfig(16, 8)}) == 2
