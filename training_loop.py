"""Single-unit training loop with determinant probes and divergence detection."""

import cmath
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
import torch
from tqdm import tqdm

from config import UnitConfig
from cost_graph import CostGraph
from determinant import determinant, make_scratch
from guard import DivergenceGuard, NonFiniteProbe
from matrix_set import ComplexMatrixSet
from optimizer import ComplexClippedSGD
from series import SeriesRecorder
from utils import TensorBoardLogger, make_generator

VARIABLE_NAMES = ("a", "b", "c")


class LoopState(Enum):
    INIT = "init"
    RUNNING = "running"
    COMPLETED = "completed"
    DIVERGED = "diverged"


@dataclass
class Divergence:
    """Where and why a loop stopped early."""

    iteration: int
    label: str
    value: complex


@dataclass
class Unit:
    """One trained unit: its matrices, cost graph, probe series and counter."""

    name: int | str
    matrices: ComplexMatrixSet
    graph: CostGraph
    recorder: SeriesRecorder
    generator: torch.Generator
    iteration: int = 0
    probe_labels: list[str] = field(default_factory=list)


def build_unit(name: int | str, config: UnitConfig) -> Unit:
    """
    Create a unit with randomly initialized a, b, c and its cost graph.

    The unit owns a private generator seeded from `config.seed`.
    """
    generator = make_generator(config.seed)

    matrices = ComplexMatrixSet()
    for variable in VARIABLE_NAMES:
        matrices.add(variable, config.size, config.size)
    matrices.initialize_random(generator, config.init_low, config.init_high)

    graph = CostGraph(matrices, VARIABLE_NAMES, convention=config.gradient_convention)
    labels = list(config.probe_mapping())
    recorder = SeriesRecorder(["cost", "phase", *labels])
    return Unit(
        name=name,
        matrices=matrices,
        graph=graph,
        recorder=recorder,
        generator=generator,
        probe_labels=labels,
    )


class TrainingLoop:
    """
    Drives one unit: gradient, clipped step, probes, guard, record.

    States: INIT -> RUNNING -> {COMPLETED | DIVERGED}. Both end states are
    terminal; `iterate()` on a terminal loop does nothing.

    Args:
        unit: The unit to train (see `build_unit`)
        config: Unit configuration (budget, learning rate, probes)
        logger: Optional TensorBoard logger mirroring the probe series
    """

    def __init__(
        self,
        unit: Unit,
        config: UnitConfig,
        logger: TensorBoardLogger | None = None,
    ):
        self.unit = unit
        self.config = config
        self.logger = logger
        self.optimizer = ComplexClippedSGD(
            unit.matrices.parameters(), lr=config.learning_rate, max_norm=config.max_norm
        )
        self.guard = DivergenceGuard()
        self.probes = config.probe_mapping()
        self.scratch = make_scratch(config.size)
        self.state = LoopState.INIT
        self.divergence: Divergence | None = None

    @classmethod
    def from_config(
        cls, name: int | str, config: UnitConfig, logger: TensorBoardLogger | None = None
    ) -> "TrainingLoop":
        return cls(build_unit(name, config), config, logger=logger)

    @property
    def terminal(self) -> bool:
        return self.state in (LoopState.COMPLETED, LoopState.DIVERGED)

    @property
    def iteration(self) -> int:
        return self.unit.iteration

    def start(self) -> None:
        if self.state is not LoopState.INIT:
            return
        if self.unit.iteration >= self.config.iterations:
            self.state = LoopState.COMPLETED
        else:
            self.state = LoopState.RUNNING

    def probe_determinants(self) -> dict[str, complex]:
        """Determinant of each probed variable, keyed by probe label (no guard)."""
        return {
            label: self._determinant(index) for label, index in self.probes.items()
        }

    def _determinant(self, index: int) -> complex:
        values = self.unit.matrices.by_index(index).flat().cpu().numpy()
        return determinant(np.asarray(values), self.config.size, self.scratch)

    def _diverge(self, error: NonFiniteProbe) -> None:
        self.state = LoopState.DIVERGED
        self.divergence = Divergence(self.unit.iteration, error.label, error.value)
        print(f"Unit {self.unit.name} diverged at iteration {self.unit.iteration}: {error}")

    def iterate(self) -> float | None:
        """
        Run one iteration.

        Returns:
            |cost| for this iteration, or None if the loop was already
            terminal or diverged during this call
        """
        self.start()
        if self.terminal:
            return None

        unit = self.unit
        t = unit.iteration

        unit.matrices.zero_gradients()
        cost = unit.graph.gradient()
        grad_norm = self.optimizer.step()

        logged: dict[str, float] = {}
        try:
            for label, index in self.probes.items():
                magnitude = self.guard.ensure(label, self._determinant(index))
                unit.recorder.record(label, t, magnitude)
                logged[label] = magnitude
            magnitude = self.guard.ensure("cost", cost)
        except NonFiniteProbe as e:
            self._diverge(e)
            return None

        phase = cmath.phase(cost)
        unit.recorder.record("cost", t, magnitude)
        unit.recorder.record("phase", t, phase)

        if self.logger is not None:
            logged.update(cost=magnitude, phase=phase, grad_norm=grad_norm)
            self.logger.log_probes(unit.name, logged, t)

        unit.iteration += 1
        if unit.iteration >= self.config.iterations:
            self.state = LoopState.COMPLETED
        return magnitude

    def run(self, progress: bool = True) -> LoopState:
        """Iterate until the budget is exhausted or the loop diverges."""
        self.start()
        remaining = max(self.config.iterations - self.unit.iteration, 0)
        progress_bar = tqdm(
            total=remaining,
            desc=f"Unit {self.unit.name}",
            leave=True,
            disable=not progress,
        )
        while not self.terminal:
            magnitude = self.iterate()
            if magnitude is None:
                break
            progress_bar.update(1)
            progress_bar.set_postfix({"cost": f"{magnitude:.4f}"})
        progress_bar.close()
        return self.state
