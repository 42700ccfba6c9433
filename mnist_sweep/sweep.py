#!/usr/bin/env python3
"""
Grid search over the filter counts of the two convolution layers.
"""

import argparse
import itertools
import json
import logging
import os
from typing import Iterable, List, Optional, Sequence

import torch

from mnist_sweep.config import RunConfig, TrainingConfig
from mnist_sweep.data import get_data_loaders
from mnist_sweep.model_factory import RunResult, train_candidate
from mnist_sweep.train import LOG_FORMAT, add_training_arguments, config_from_args, get_device

logger = logging.getLogger(__name__)

DEFAULT_LAYER_SIZES = (8, 16, 32, 64, 128)
SUMMARY_FILENAME = "summary.json"


def build_grid(l1_sizes: Sequence[int] = DEFAULT_LAYER_SIZES,
               l2_sizes: Sequence[int] = DEFAULT_LAYER_SIZES,
               config: Optional[TrainingConfig] = None) -> List[RunConfig]:
    """
    Every (l1, l2) pair of the two axes, l1-major, in the given order.

    Args:
        l1_sizes: Candidate filter counts of the first convolution
        l2_sizes: Candidate filter counts of the second convolution
        config: Sweep settings providing the artifact roots

    Returns:
        List[RunConfig]: One run per pair
    """
    for name, sizes in (("l1_sizes", l1_sizes), ("l2_sizes", l2_sizes)):
        if not sizes:
            raise ValueError(f"{name} must not be empty")
        if len(set(sizes)) != len(sizes):
            raise ValueError(f"{name} contains duplicates: {list(sizes)}")

    return [
        RunConfig.from_training_config(l1, l2, config)
        for l1, l2 in itertools.product(l1_sizes, l2_sizes)
    ]


def load_run_result(run: RunConfig) -> Optional[RunResult]:
    """Read the best metrics of a finished run, or None if it never saved or was interrupted."""
    if not os.path.exists(run.checkpoint_path):
        return None

    try:
        checkpoint = torch.load(run.checkpoint_path, map_location="cpu")
    except Exception as e:
        raise RuntimeError(f"Failed to load checkpoint from {run.checkpoint_path}: {e}")

    if not checkpoint.get("completed", False):
        logger.warning(f"Checkpoint for {run.run_name} is from an unfinished run")
        return None

    return RunResult(
        run_name=run.run_name,
        l1_size=run.l1_size,
        l2_size=run.l2_size,
        best_val_loss=float(checkpoint["val_loss"]),
        best_val_accuracy=float(checkpoint["val_accuracy"]),
        best_epoch=int(checkpoint["epoch"]),
        checkpoint_path=run.checkpoint_path,
        log_dir=run.log_dir,
        epochs_run=checkpoint.get("epochs_run"),
    )


def collect_results(grid: Iterable[RunConfig]) -> List[RunResult]:
    """Results of every run in ``grid`` that finished with a checkpoint on disk."""
    results = []
    for run in grid:
        result = load_run_result(run)
        if result is None:
            logger.warning(f"No completed checkpoint for {run.run_name} at {run.checkpoint_path}")
            continue
        results.append(result)
    return results


def rank_results(results: Iterable[RunResult]) -> List[RunResult]:
    """Sort by best validation loss, then by accuracy (descending) to break ties."""
    return sorted(results, key=lambda r: (r.best_val_loss, -r.best_val_accuracy, r.run_name))


def select_best(results: Iterable[RunResult]) -> RunResult:
    """
    The run with the lowest best validation loss.

    Raises:
        ValueError: If there are no results to choose from
    """
    ranked = rank_results(results)
    if not ranked:
        raise ValueError("No run results to select from")
    return ranked[0]


def write_summary(results: Iterable[RunResult], path: str) -> dict:
    """
    Write the ranked results and the winner to a JSON file.

    Returns:
        dict: The summary that was written
    """
    ranked = rank_results(results)
    summary = {
        "best": ranked[0].to_dict() if ranked else None,
        "runs": [result.to_dict() for result in ranked],
    }

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w") as f:
        json.dump(summary, f, indent=2)

    logger.info(f"Wrote summary of {len(ranked)} runs to {path}")
    return summary


def run_grid_search(config: TrainingConfig, l1_sizes: Sequence[int] = DEFAULT_LAYER_SIZES,
                    l2_sizes: Sequence[int] = DEFAULT_LAYER_SIZES, train_loader=None, val_loader=None,
                    resume: bool = False, show_progress: bool = True) -> List[RunResult]:
    """
    Train every candidate of the grid, one after another.

    Args:
        config: Settings shared by every run
        l1_sizes: Candidate filter counts of the first convolution
        l2_sizes: Candidate filter counts of the second convolution
        train_loader: Training batches; MNIST is downloaded when omitted
        val_loader: Validation batches; MNIST is downloaded when omitted
        resume: Skip runs whose checkpoint is marked as completed
        show_progress: Show per-batch progress bars

    Returns:
        List[RunResult]: One result per run, in grid order
    """
    grid = build_grid(l1_sizes, l2_sizes, config)
    if train_loader is None or val_loader is None:
        train_loader, val_loader = get_data_loaders(config)

    device = get_device(config.use_cuda)
    logger.info(f"Starting grid search over {len(grid)} runs on {device}")

    results = []
    for index, run in enumerate(grid, start=1):
        if resume:
            existing = load_run_result(run)
            if existing is not None:
                logger.info(f"[{index}/{len(grid)}] Skipping {run.run_name}, completed checkpoint exists")
                results.append(existing)
                continue

        logger.info(f"[{index}/{len(grid)}] Training {run.run_name}")
        results.append(train_candidate(
            run.l1_size, run.l2_size, train_loader, val_loader, config,
            device=device, show_progress=show_progress,
        ))

    best = select_best(results)
    logger.info(f"Best run: {best.run_name} with val_loss {best.best_val_loss:.4f} "
                f"(val_accuracy {best.best_val_accuracy:.4f})")
    return results


def _parse_sizes(value: str) -> List[int]:
    try:
        return [int(size) for size in value.split(",") if size.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected comma-separated integers, got {value!r}")


def main(argv=None):
    """Run the grid search or summarize an existing one."""
    parser = argparse.ArgumentParser(description="Grid search over CNN filter counts on MNIST")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("run", "Train every (l1, l2) candidate"),
                            ("summary", "Rank existing checkpoints and pick a winner")):
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument("--l1-sizes", type=_parse_sizes, default=list(DEFAULT_LAYER_SIZES),
                               help="Comma-separated filter counts for the first convolution")
        subparser.add_argument("--l2-sizes", type=_parse_sizes, default=list(DEFAULT_LAYER_SIZES),
                               help="Comma-separated filter counts for the second convolution")
        add_training_arguments(subparser)
        if name == "run":
            subparser.add_argument("--resume", action="store_true", default=False,
                                   help="Skip runs that already finished with a checkpoint")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    config = config_from_args(args)

    if args.command == "run":
        results = run_grid_search(config, args.l1_sizes, args.l2_sizes, resume=args.resume)
    else:
        results = collect_results(build_grid(args.l1_sizes, args.l2_sizes, config))

    summary = write_summary(results, os.path.join(config.checkpoint_root, SUMMARY_FILENAME))
    if summary["best"] is None:
        logger.error("No completed runs found")
        return 1

    best = summary["best"]
    print(f"Best run: {best['run_name']} (l1={best['l1_size']}, l2={best['l2_size']}) "
          f"val_loss={best['best_val_loss']:.4f} val_accuracy={best['best_val_accuracy']:.4f}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
