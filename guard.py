"""Divergence detection for probe values."""

import cmath
import math
from enum import Enum


class GuardSignal(Enum):
    CONTINUE = "continue"
    STOP = "stop"


class NonFiniteProbe(ArithmeticError):
    """A probe evaluated to an infinite or non-finite value."""

    def __init__(self, label: str, value: complex):
        self.label = label
        self.value = value
        super().__init__(f"probe {label} is not finite: {value}")


def magnitude(value: complex) -> float:
    """|value|, saturating to inf where Python's complex abs would overflow."""
    try:
        return abs(value)
    except OverflowError:
        return math.inf


class DivergenceGuard:
    """Stops training once a probe is infinite or its magnitude is non-finite."""

    def check(self, value: complex | float) -> GuardSignal:
        value = complex(value)
        if cmath.isinf(value):
            return GuardSignal.STOP
        if not math.isfinite(magnitude(value)):
            return GuardSignal.STOP
        return GuardSignal.CONTINUE

    def ensure(self, label: str, value: complex | float) -> float:
        """Return |value|, raising NonFiniteProbe if the guard says stop."""
        value = complex(value)
        if self.check(value) is GuardSignal.STOP:
            raise NonFiniteProbe(label, value)
        return magnitude(value)
