"""Tests for threshold fusion between two coupled units and for rendering."""

import tempfile
from dataclasses import replace
from pathlib import Path
from types import SimpleNamespace

import torch

from config import CouplingConfig, UnitConfig
from coupling import CouplingController, fuse
from matrix_set import ComplexMatrixSet, NotFound
from series import SeriesRecorder, render_unit
from training_loop import LoopState
from utils import make_generator


class ScriptedLoop:
    """Stand-in loop that reports a fixed sequence of cost magnitudes."""

    def __init__(self, costs: list[float | None], seed: int):
        self.costs = list(costs)
        matrices = ComplexMatrixSet()
        for name in ("a", "b", "c"):
            matrices.add(name, 3, 3)
        matrices.initialize_random(make_generator(seed))
        self.unit = SimpleNamespace(matrices=matrices)
        self.config = SimpleNamespace(iterations=len(costs))
        self.terminal = False

    def iterate(self) -> float | None:
        cost = self.costs.pop(0) if self.costs else None
        self.terminal = not self.costs
        return cost


def values(loop, name: str = "a") -> torch.Tensor:
    return loop.unit.matrices.snapshot(name)


def test_fuse_is_pure_average():
    print("Testing fuse()...")
    A = torch.tensor([[1 + 1j, 2], [3j, -4]], dtype=torch.complex128)
    B = torch.tensor([[3 - 1j, 0], [1j, 4]], dtype=torch.complex128)
    A_before, B_before = A.clone(), B.clone()
    fused = fuse(B, A)
    assert torch.equal(fused, (A + B) / 2)
    assert torch.equal(A, A_before) and torch.equal(B, B_before), "inputs must not change"
    try:
        fuse(A, torch.zeros(3, 3, dtype=torch.complex128))
    except ValueError:
        pass
    else:
        raise AssertionError("shape mismatch accepted")
    print("  fuse: PASSED")


def test_only_unit0_fires():
    """unit1.a becomes (A + B) / 2, unit0.a stays A."""
    print("Testing one-directional fusion...")
    loop0, loop1 = ScriptedLoop([200.0], seed=1), ScriptedLoop([5.0], seed=2)
    A, B = values(loop0), values(loop1)
    other = values(loop1, "b")
    controller = CouplingController(loop0, loop1, threshold=128.0)
    result = controller.tick()

    assert result.fired == (True, False)
    assert result.fusions == [(1, 0)]
    assert torch.equal(values(loop0), A)
    assert torch.allclose(values(loop1), (A + B) / 2, rtol=0, atol=1e-15)
    # other variables are never touched
    assert torch.equal(values(loop1, "b"), other)
    assert controller.fire_counts == [1, 0]
    print("  One-directional: PASSED")


def test_only_unit1_fires():
    loop0, loop1 = ScriptedLoop([1.0], seed=1), ScriptedLoop([129.0], seed=2)
    A, B = values(loop0), values(loop1)
    result = CouplingController(loop0, loop1, threshold=128.0).tick()
    assert result.fired == (False, True)
    assert torch.allclose(values(loop0), (A + B) / 2, rtol=0, atol=1e-15)
    assert torch.equal(values(loop1), B)


def test_both_fire_use_prefusion_values():
    print("Testing simultaneous fusion...")
    loop0, loop1 = ScriptedLoop([300.0], seed=1), ScriptedLoop([400.0], seed=2)
    A, B = values(loop0), values(loop1)
    result = CouplingController(loop0, loop1, threshold=128.0).tick()

    assert result.fired == (True, True)
    expected = (A + B) / 2
    assert torch.allclose(values(loop0), expected, rtol=0, atol=1e-15)
    assert torch.allclose(values(loop1), expected, rtol=0, atol=1e-15)
    print("  Simultaneous: PASSED")


def test_threshold_is_strict_and_terminal_units_never_fire():
    print("Testing trigger conditions...")
    loop0, loop1 = ScriptedLoop([128.0, None], seed=1), ScriptedLoop([None, 1.0], seed=2)
    A, B = values(loop0), values(loop1)
    controller = CouplingController(loop0, loop1, threshold=128.0)
    first = controller.tick()
    second = controller.tick()
    assert first.fired == (False, False) and second.fired == (False, False)
    assert torch.equal(values(loop0), A) and torch.equal(values(loop1), B)
    assert [r.tick for r in controller.history] == [0, 1]
    print("  Trigger conditions: PASSED")


def test_missing_variable_rejected():
    loop0, loop1 = ScriptedLoop([1.0], seed=1), ScriptedLoop([1.0], seed=2)
    try:
        CouplingController(loop0, loop1, variable="z")
    except NotFound:
        pass
    else:
        raise AssertionError("unknown variable accepted")


def test_units_do_not_share_state():
    print("Testing unit isolation...")
    controller = CouplingController.from_config(
        CouplingConfig(unit=UnitConfig(iterations=8), seeds=(1, 2), threshold=1e9)
    )
    loop0, loop1 = controller.loops
    for name in ("a", "b", "c"):
        assert loop0.unit.matrices.get(name).value is not loop1.unit.matrices.get(name).value
    controller.run(progress=False)
    assert controller.fire_counts == [0, 0]
    assert loop0.iteration == loop1.iteration
    print("  Isolation: PASSED")


def test_lockstep_with_low_threshold():
    """Every tick advances both units by one; a zero threshold fires every tick."""
    print("Testing lockstep ticks with constant fusion...")
    controller = CouplingController.from_config(
        CouplingConfig(unit=UnitConfig(iterations=12), seeds=(1, 2), threshold=0.0)
    )
    history = controller.run(progress=False)
    loop0, loop1 = controller.loops
    assert len(history) == 12
    assert loop0.iteration == loop1.iteration == 12
    assert loop0.state is LoopState.COMPLETED and loop1.state is LoopState.COMPLETED
    assert controller.fire_counts == [12, 12]
    # with both firing every tick the fused variable ends identical in both units
    assert torch.equal(values(loop0), values(loop1))
    print("  Lockstep: PASSED")


def test_parallel_matches_sequential():
    print("Testing threaded ticks...")
    runs = []
    for parallel in (False, True):
        config = CouplingConfig(
            unit=UnitConfig(iterations=24), seeds=(3, 4), threshold=2.0, parallel=parallel
        )
        controller = CouplingController.from_config(config)
        controller.run(progress=False)
        runs.append(controller)

    sequential, threaded = runs
    assert sequential.fire_counts == threaded.fire_counts
    for loop_s, loop_t in zip(sequential.loops, threaded.loops):
        recorder_s, recorder_t = loop_s.unit.recorder, loop_t.unit.recorder
        for name in recorder_s.names():
            assert recorder_s[name].points == recorder_t[name].points, name
    print(f"  Fires: {threaded.fire_counts}")
    print("  Threaded: PASSED")


def test_unit_config_carries_every_field():
    print("Testing per-unit configuration...")
    base = UnitConfig(
        size=2,
        learning_rate=0.1 - 0.2j,
        iterations=7,
        max_norm=0.5,
        init_low=-0.5,
        init_high=0.25,
        seed=99,
        probe_targets="distinct",
        gradient_convention="conjugate",
    )
    config = CouplingConfig(unit=base, seeds=(5, 6))
    for index, seed in enumerate((5, 6)):
        unit = config.unit_config(index)
        assert unit.seed == seed
        assert replace(unit, seed=base.seed) == base
    assert base.seed == 99
    print("  Per-unit configuration: PASSED")


def test_render_unit_writes_pngs():
    print("Testing rendering...")
    recorder = SeriesRecorder(["cost", "phase", "det_a", "det_b", "det_c"])
    for t in range(10):
        recorder.record("cost", t, 1.0 / (t + 1))
        recorder.record("phase", t, 0.1 * t)
        for label in ("det_a", "det_b", "det_c"):
            recorder.record(label, t, float(t))
    with tempfile.TemporaryDirectory() as tmp:
        paths = render_unit(recorder, 0, out_dir=tmp)
        names = sorted(p.name for p in paths)
        assert names == ["0_cost.png", "0_det.png", "0_phase.png"]
        for path in paths:
            assert Path(path).stat().st_size > 0
    print("  Rendering: PASSED")


def main():
    """Run all tests."""
    print("=" * 60)
    print("Coupling Test Suite")
    print("=" * 60)

    try:
        test_fuse_is_pure_average()
        test_only_unit0_fires()
        test_only_unit1_fires()
        test_both_fire_use_prefusion_values()
        test_threshold_is_strict_and_terminal_units_never_fire()
        test_missing_variable_rejected()
        test_units_do_not_share_state()
        test_lockstep_with_low_threshold()
        test_parallel_matches_sequential()
        test_unit_config_carries_every_field()
        test_render_unit_writes_pngs()

        print("\n" + "=" * 60)
        print("ALL TESTS PASSED!")
        print("=" * 60)

    except Exception as e:
        print(f"\nTEST FAILED: {e}")
        import traceback
        traceback.print_exc()
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
