"""Two units trained in lockstep, coupled by threshold-triggered fusion.

After every tick each unit whose cost magnitude exceeded the threshold
"fires": the other unit's fused variable is replaced by the element-wise
average of both units' values. Both triggers are checked every tick and
both fusions read the values captured before either write, so the two
directions do not depend on each other's order.
"""

import threading
from dataclasses import dataclass, field

import torch
from tqdm import tqdm

from config import CouplingConfig
from training_loop import TrainingLoop
from utils import TensorBoardLogger


def fuse(target: torch.Tensor, source: torch.Tensor) -> torch.Tensor:
    """Element-wise average of two same-shape matrices."""
    if target.shape != source.shape:
        raise ValueError(f"cannot fuse {tuple(target.shape)} with {tuple(source.shape)}")
    return (target + source) / 2


@dataclass
class TickResult:
    """Per-tick outputs of both units and the fusions that were applied."""

    tick: int
    costs: tuple[float | None, float | None]
    fired: tuple[bool, bool]
    fusions: list[tuple[int, int]] = field(default_factory=list)  # (target, source)


class CouplingController:
    """
    Advance two training loops one iteration per tick and fuse on threshold.

    Args:
        loop0: First unit's loop
        loop1: Second unit's loop
        threshold: Cost magnitude above which a unit fires
        variable: Name of the fused variable
        parallel: Run both iterations of a tick on separate threads
        logger: Optional TensorBoard logger for fusion events
    """

    def __init__(
        self,
        loop0: TrainingLoop,
        loop1: TrainingLoop,
        threshold: float = 128.0,
        variable: str = "a",
        parallel: bool = False,
        logger: TensorBoardLogger | None = None,
    ):
        self.loops = (loop0, loop1)
        self.threshold = threshold
        self.variable = variable
        self.parallel = parallel
        self.logger = logger
        self.tick_count = 0
        self.fire_counts = [0, 0]
        self.history: list[TickResult] = []
        self._lock = threading.Lock()
        # Fail before training if the variable is missing in either unit
        for loop in self.loops:
            loop.unit.matrices.get(variable)

    @classmethod
    def from_config(
        cls, config: CouplingConfig, logger: TensorBoardLogger | None = None
    ) -> "CouplingController":
        loops = [
            TrainingLoop.from_config(i, config.unit_config(i), logger=logger) for i in range(2)
        ]
        return cls(
            loops[0],
            loops[1],
            threshold=config.threshold,
            variable=config.variable,
            parallel=config.parallel,
            logger=logger,
        )

    @property
    def done(self) -> bool:
        return all(loop.terminal for loop in self.loops)

    def _advance(self) -> tuple[float | None, float | None]:
        if not self.parallel:
            return tuple(loop.iterate() for loop in self.loops)

        results: list[float | None] = [None, None]
        errors: list[Exception] = []

        def work(index: int) -> None:
            try:
                results[index] = self.loops[index].iterate()
            except Exception as e:  # re-raised on the controller thread
                errors.append(e)

        threads = [threading.Thread(target=work, args=(i,), name=f"unit-{i}") for i in range(2)]
        for thread in threads:
            thread.start()
        # Barrier: both units finish the tick before any fusion check
        for thread in threads:
            thread.join()
        if errors:
            raise errors[0]
        return results[0], results[1]

    def _fires(self, cost: float | None) -> bool:
        return cost is not None and cost > self.threshold

    def tick(self) -> TickResult:
        """Advance both units by one iteration, then apply any triggered fusion."""
        with self._lock:
            costs = self._advance()
            fired = (self._fires(costs[0]), self._fires(costs[1]))
            result = TickResult(tick=self.tick_count, costs=costs, fired=fired)

            if any(fired):
                sets = [loop.unit.matrices for loop in self.loops]
                before = [matrices.snapshot(self.variable) for matrices in sets]
                for source, did_fire in enumerate(fired):
                    if not did_fire:
                        continue
                    target = 1 - source
                    print(f"fire {source}")
                    sets[target].assign(self.variable, fuse(before[target], before[source]))
                    self.fire_counts[source] += 1
                    result.fusions.append((target, source))
                    if self.logger is not None:
                        self.logger.log_fusion(target, source, self.tick_count)

            self.tick_count += 1
            self.history.append(result)
            return result

    def run(self, ticks: int | None = None, progress: bool = True) -> list[TickResult]:
        """
        Tick until the budget is spent or both units are terminal.

        Args:
            ticks: Number of ticks (default: the longer of the two budgets)
            progress: Show a tqdm progress bar
        """
        if ticks is None:
            ticks = max(loop.config.iterations for loop in self.loops)
        progress_bar = tqdm(range(ticks), desc="Coupled", leave=True, disable=not progress)
        for _ in progress_bar:
            if self.done:
                break
            result = self.tick()
            progress_bar.set_postfix(
                {
                    "cost0": "-" if result.costs[0] is None else f"{result.costs[0]:.4f}",
                    "cost1": "-" if result.costs[1] is None else f"{result.costs[1]:.4f}",
                    "fires": f"{self.fire_counts[0]}/{self.fire_counts[1]}",
                }
            )
        progress_bar.close()
        return self.history
