"""Trifecta: complex matrix fixed-point training with determinant probes."""

from config import CouplingConfig, TrainConfig, UnitConfig, PROBE_PRESETS
from matrix_set import ComplexMatrixSet, Variable, DuplicateName, NotFound
from cost_graph import CostGraph, CollaboratorFailure, Leaf, Multiply, Quadratic, Average, Add
from determinant import MAX_SIZE, cofactor, determinant, make_scratch, matrix_determinant
from optimizer import ComplexClippedSGD, clip_scale, gradient_norm
from guard import DivergenceGuard, GuardSignal, NonFiniteProbe
from series import ProbeSeries, SeriesRecorder, render_unit
from training_loop import Divergence, LoopState, TrainingLoop, Unit, build_unit
from coupling import CouplingController, TickResult, fuse

__all__ = [
    # Configs
    "UnitConfig",
    "CouplingConfig",
    "TrainConfig",
    "PROBE_PRESETS",
    # Variables
    "ComplexMatrixSet",
    "Variable",
    "DuplicateName",
    "NotFound",
    # Cost graph
    "CostGraph",
    "CollaboratorFailure",
    "Leaf",
    "Multiply",
    "Quadratic",
    "Average",
    "Add",
    # Determinant probe
    "MAX_SIZE",
    "cofactor",
    "determinant",
    "make_scratch",
    "matrix_determinant",
    # Optimization
    "ComplexClippedSGD",
    "clip_scale",
    "gradient_norm",
    # Divergence
    "DivergenceGuard",
    "GuardSignal",
    "NonFiniteProbe",
    # Series and rendering
    "ProbeSeries",
    "SeriesRecorder",
    "render_unit",
    # Training
    "Divergence",
    "LoopState",
    "TrainingLoop",
    "Unit",
    "build_unit",
    # Coupling
    "CouplingController",
    "TickResult",
    "fuse",
]
