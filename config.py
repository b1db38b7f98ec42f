"""Configuration dataclasses for single-unit and coupled training."""

from dataclasses import dataclass, field, replace
from typing import Literal


# Determinant probe presets: series label -> index of the variable in the set.
# "observed" reads the second matrix under two labels, as the reference runs did.
PROBE_PRESETS: dict[str, dict[str, int]] = {
    "observed": {"det_a": 0, "det_b": 1, "det_c": 1},
    "distinct": {"det_a": 0, "det_b": 1, "det_c": 2},
}


@dataclass
class UnitConfig:
    """Configuration for one trained unit (three complex matrices a, b, c)."""

    size: int = 3  # Matrix dimension N (every variable is N x N)
    learning_rate: complex = 0.3 + 0.3j  # Complex step; rotates the update in the complex plane
    iterations: int = 1024  # Iteration budget
    max_norm: float = 1.0  # Joint L2 gradient-norm clip threshold
    init_low: float = -1.0  # Lower bound for real and imaginary parts at init
    init_high: float = 1.0  # Upper bound for real and imaginary parts at init
    seed: int = 1  # Seed of the unit's private generator

    # ===========================================================================
    # Diagnostics
    # ===========================================================================

    # Which variables the determinant probes read:
    # - "observed": det_a <- a, det_b <- b, det_c <- b (duplicated probe)
    # - "distinct": det_a <- a, det_b <- b, det_c <- c
    # A dict maps probe label -> variable index directly.
    probe_targets: Literal["observed", "distinct"] | dict[str, int] = "observed"

    # Gradient convention handed to the optimizer:
    # - "holomorphic": plain complex derivative d(cost)/dz; drives the cost to the fixed point
    # - "conjugate": torch's conjugate-Wirtinger gradient (its complex conjugate)
    gradient_convention: Literal["conjugate", "holomorphic"] = "holomorphic"

    def __post_init__(self):
        self.learning_rate = complex(self.learning_rate)
        assert self.size >= 1, "size must be at least 1"
        assert self.iterations >= 0, "iterations must be non-negative"
        assert self.max_norm > 0, "max_norm must be positive"
        assert self.init_low <= self.init_high, "init_low must not exceed init_high"
        assert self.gradient_convention in ("conjugate", "holomorphic"), (
            f"unknown gradient convention: {self.gradient_convention}"
        )
        if isinstance(self.probe_targets, str):
            assert self.probe_targets in PROBE_PRESETS, (
                f"unknown probe preset: {self.probe_targets}"
            )
        else:
            for label, index in self.probe_targets.items():
                assert 0 <= index < 3, f"probe {label} targets variable {index} outside a, b, c"

    def probe_mapping(self) -> dict[str, int]:
        """Resolve probe_targets to an ordered label -> variable index mapping."""
        if isinstance(self.probe_targets, str):
            return dict(PROBE_PRESETS[self.probe_targets])
        return dict(self.probe_targets)

    def experiment_summary(self) -> str:
        """Return a one-line summary of the unit configuration."""
        lr = self.learning_rate
        return (
            f"Unit(N={self.size}, lr={lr.real:g}{lr.imag:+g}i, iters={self.iterations}, "
            f"clip={self.max_norm:g}, probes={self.probe_targets}, "
            f"grad={self.gradient_convention})"
        )


@dataclass
class CouplingConfig:
    """Configuration for two units trained in lockstep with threshold fusion."""

    unit: UnitConfig = field(default_factory=UnitConfig)  # Shared per-unit settings
    seeds: tuple[int, int] = (1, 2)  # Seeds of unit 0 and unit 1
    threshold: float = 128.0  # Cost magnitude above which a unit fires
    variable: str = "a"  # Name of the variable fused between units
    parallel: bool = False  # Advance both units on separate threads within a tick

    def __post_init__(self):
        assert len(self.seeds) == 2, "exactly two seeds are required"
        assert self.threshold >= 0, "threshold must be non-negative"
        assert self.variable in ("a", "b", "c"), f"unknown variable: {self.variable}"

    def unit_config(self, index: int) -> UnitConfig:
        """Return the configuration of unit `index` with its own seed."""
        return replace(self.unit, seed=self.seeds[index])

    def experiment_summary(self) -> str:
        """Return a one-line summary of the coupled configuration."""
        mode = "parallel" if self.parallel else "sequential"
        return (
            f"Coupled(seeds={self.seeds}, threshold={self.threshold:g}, "
            f"fuse={self.variable}, {mode}) x {self.unit.experiment_summary()}"
        )


@dataclass
class TrainConfig:
    """Run-level configuration (outputs and logging)."""

    plot_dir: str = "."  # Directory for rendered probe plots
    render_plots: bool = True  # Render probe series to PNG at the end of a run
    log_dir: str = "runs"  # TensorBoard log directory
    use_tensorboard: bool = True  # Mirror probe series to TensorBoard
