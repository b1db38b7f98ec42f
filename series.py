"""Probe time series and their rendering to PNG."""

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt

from cost_graph import CollaboratorFailure


class ProbeSeries:
    """Append-only sequence of (iteration, value) points in non-decreasing order."""

    def __init__(self, name: str):
        self.name = name
        self._points: list[tuple[int, float]] = []

    def append(self, iteration: int, value: float) -> None:
        if self._points and iteration < self._points[-1][0]:
            raise ValueError(
                f"series {self.name}: iteration {iteration} after {self._points[-1][0]}"
            )
        self._points.append((int(iteration), float(value)))

    @property
    def points(self) -> tuple[tuple[int, float], ...]:
        return tuple(self._points)

    @property
    def iterations(self) -> list[int]:
        return [x for x, _ in self._points]

    @property
    def values(self) -> list[float]:
        return [y for _, y in self._points]

    def last(self) -> tuple[int, float] | None:
        return self._points[-1] if self._points else None

    def __len__(self) -> int:
        return len(self._points)

    def __repr__(self) -> str:
        return f"ProbeSeries({self.name!r}, n={len(self)})"


class SeriesRecorder:
    """Named probe series for one unit."""

    def __init__(self, names: list[str] | None = None):
        self.series: dict[str, ProbeSeries] = {}
        for name in names or []:
            self.ensure(name)

    def ensure(self, name: str) -> ProbeSeries:
        if name not in self.series:
            self.series[name] = ProbeSeries(name)
        return self.series[name]

    def record(self, name: str, iteration: int, value: float) -> None:
        self.ensure(name).append(iteration, value)

    def __getitem__(self, name: str) -> ProbeSeries:
        return self.series[name]

    def __contains__(self, name: object) -> bool:
        return name in self.series

    def names(self) -> list[str]:
        return list(self.series)


# ==============================================================================
# Rendering
# ==============================================================================

# Determinant probes are overlaid on one figure in this order.
DET_COLORS = ("#ff0000", "#0000ff", "#00ff00")


def _scatter(ax, series: ProbeSeries, color: str | None = None) -> None:
    ax.scatter(series.iterations, series.values, s=4, marker="o", color=color, label=series.name)


def _save(fig, path: Path) -> None:
    try:
        fig.savefig(path)
    except (OSError, ValueError) as e:
        raise CollaboratorFailure(f"could not render {path}: {e}") from e
    finally:
        plt.close(fig)


def render_unit(
    recorder: SeriesRecorder,
    name: str | int,
    out_dir: str = ".",
    det_labels: list[str] | None = None,
) -> list[Path]:
    """
    Render a unit's probe series as scatter plots.

    Writes `<name>_cost.png`, `<name>_phase.png` and `<name>_det.png`
    (determinant probes overlaid) into `out_dir`.

    Args:
        recorder: The unit's series
        name: Unit identifier used as the file prefix
        out_dir: Output directory (created if missing)
        det_labels: Determinant series to overlay (default: every det_* series)

    Returns:
        Paths of the written images
    """
    out_path = Path(out_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    written = []

    for key, title, ylabel in (
        ("cost", "epochs vs cost", "cost"),
        ("phase", "epochs vs phase", "phase"),
    ):
        fig, ax = plt.subplots(figsize=(8, 8))
        ax.set_title(title)
        ax.set_xlabel("epochs")
        ax.set_ylabel(ylabel)
        if key in recorder:
            _scatter(ax, recorder[key])
        path = out_path / f"{name}_{key}.png"
        _save(fig, path)
        written.append(path)

    if det_labels is None:
        det_labels = [label for label in recorder.names() if label.startswith("det")]
    fig, ax = plt.subplots(figsize=(8, 8))
    ax.set_title("epochs vs det")
    ax.set_xlabel("epochs")
    ax.set_ylabel("det")
    for i, label in enumerate(det_labels):
        if label in recorder:
            _scatter(ax, recorder[label], DET_COLORS[i % len(DET_COLORS)])
    if det_labels:
        ax.legend(loc="upper right")
    path = out_path / f"{name}_det.png"
    _save(fig, path)
    written.append(path)

    return written
