"""Complex-rate gradient descent with joint L2 gradient-norm clipping."""

import math
from typing import Iterable

import torch


def gradient_norm(params: Iterable[torch.Tensor]) -> float:
    """L2 norm of all gradients taken together: sqrt(sum |g|^2)."""
    total = 0.0
    for p in params:
        if p.grad is None:
            continue
        total += p.grad.abs().pow(2).sum().item()
    return math.sqrt(total)


def clip_scale(norm: float, max_norm: float = 1.0) -> float:
    """Scale applied to every gradient: 1 inside the clip radius, 1/norm outside."""
    if norm > max_norm:
        return 1.0 / norm
    return 1.0


class ComplexClippedSGD(torch.optim.Optimizer):
    """
    Plain gradient descent with a complex learning rate.

    Each step computes the norm of the gradients of *all* parameters jointly,
    scales them by `clip_scale(norm, max_norm)` and applies

        p <- p - lr * g * scale

    with complex multiplication by `lr`, so a complex rate rotates the step.

    Args:
        params: Complex parameters (e.g. a ComplexMatrixSet's parameters())
        lr: Complex learning rate
        max_norm: Joint clipping threshold
    """

    def __init__(self, params, lr: complex = 0.3 + 0.3j, max_norm: float = 1.0):
        if max_norm <= 0:
            raise ValueError(f"max_norm must be positive, got {max_norm}")
        defaults = dict(lr=complex(lr), max_norm=max_norm)
        super().__init__(params, defaults)
        self.last_norm = 0.0
        self.last_scale = 1.0

    def _all_params(self) -> list[torch.Tensor]:
        return [p for group in self.param_groups for p in group["params"]]

    @torch.no_grad()
    def step(self, closure=None) -> float:
        """
        Apply one clipped update to every parameter.

        Returns:
            The joint gradient norm before clipping
        """
        if closure is not None:
            with torch.enable_grad():
                closure()

        params = self._all_params()
        norm = gradient_norm(params)
        # One clip radius for the whole set; the first group's setting wins.
        scale = clip_scale(norm, self.param_groups[0]["max_norm"])

        for group in self.param_groups:
            lr = group["lr"]
            for p in group["params"]:
                if p.grad is None:
                    continue
                p.sub_(lr * p.grad * scale)

        self.last_norm = norm
        self.last_scale = scale
        return norm
