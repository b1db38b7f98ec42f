"""Utility functions for training runs: seeding, timing and TensorBoard logging."""

import random
import time
from contextlib import contextmanager
from pathlib import Path

import numpy as np
import torch
from torch.utils.tensorboard import SummaryWriter


def set_seed(seed: int) -> None:
    """Seed the process-wide generators.

    Units draw from their own `torch.Generator`; this only pins anything else
    that might consult the global state.
    """
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)


def make_generator(seed: int) -> torch.Generator:
    """Private CPU generator for one unit."""
    generator = torch.Generator()
    generator.manual_seed(seed)
    return generator


def format_complex(value: complex, digits: int = 4) -> str:
    """Format a complex number as a+bi."""
    return f"{value.real:.{digits}f}{value.imag:+.{digits}f}i"


class TensorBoardLogger:
    """TensorBoard logging wrapper."""

    def __init__(self, log_dir: str, experiment_name: str):
        """
        Initialize TensorBoard logger.

        Args:
            log_dir: Base directory for logs
            experiment_name: Name of this experiment run
        """
        self.log_path = Path(log_dir) / experiment_name
        self.log_path.mkdir(parents=True, exist_ok=True)
        self.writer = SummaryWriter(log_dir=str(self.log_path))
        print(f"TensorBoard logging to: {self.log_path}")

    def log_probes(self, unit: str | int, probes: dict[str, float], step: int) -> None:
        """
        Log one iteration's probe values for a unit.

        Args:
            unit: Unit identifier, used as the tag prefix
            probes: Mapping probe label -> value
            step: Iteration index
        """
        for label, value in probes.items():
            self.writer.add_scalar(f"unit_{unit}/{label}", value, step)

    def log_fusion(self, target: str | int, source: str | int, step: int) -> None:
        """Mark a fusion event from `source` into `target`."""
        self.writer.add_scalar(f"fusion/unit_{target}_from_{source}", 1.0, step)

    def close(self) -> None:
        """Close the writer."""
        self.writer.close()


@contextmanager
def timed(label: str):
    """Print the wall time spent in the block, prefixed by `label`."""
    start = time.perf_counter()
    try:
        yield
    finally:
        print(f"{label} in {time.perf_counter() - start:.1f}s")
