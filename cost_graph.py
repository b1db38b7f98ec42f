"""Cubic consistency cost over three complex matrices.

The expression

    cost = avg(quadratic(b @ c, a)) + avg(quadratic(a @ c, b)) + avg(quadratic(a @ b, c))

is held as a small tree of typed nodes (Leaf, Multiply, Quadratic, Average,
Add). Each node evaluates itself with torch ops; reverse-mode differentiation
is left to torch autograd.

Gradient conventions:
- "holomorphic" (default): the plain complex derivative d(cost)/dz. The cost
  is complex and holomorphic, so subtracting lr * d(cost)/dz moves the cost
  itself by about -lr * |d(cost)/dz|^2 and drives it toward zero.
- "conjugate": torch's conjugate-Wirtinger gradient, i.e. the conjugate of
  the above. It only descends real losses; on this cost it diverges.
"""

from typing import Literal

import torch

from matrix_set import ComplexMatrixSet, Variable


class CollaboratorFailure(RuntimeError):
    """The differentiation or rendering backend failed; not recoverable."""


# ==============================================================================
# Nodes
# ==============================================================================


class Node:
    """Base node. `value` caches the result of the most recent forward pass."""

    kind = "node"

    def __init__(self, *inputs: "Node"):
        self.inputs = inputs
        self.value: torch.Tensor | None = None

    def evaluate(self, *args: torch.Tensor) -> torch.Tensor:
        raise NotImplementedError

    def forward(self) -> torch.Tensor:
        self.value = self.evaluate(*(node.forward() for node in self.inputs))
        return self.value

    def __repr__(self) -> str:
        inner = ", ".join(repr(node) for node in self.inputs)
        return f"{self.kind}({inner})"


class Leaf(Node):
    kind = "leaf"

    def __init__(self, variable: Variable):
        super().__init__()
        self.variable = variable

    def forward(self) -> torch.Tensor:
        self.value = self.variable.value
        return self.value

    def __repr__(self) -> str:
        return self.variable.name


class Multiply(Node):
    """Matrix product x @ y."""

    kind = "mul"

    def evaluate(self, x: torch.Tensor, y: torch.Tensor) -> torch.Tensor:
        return x @ y


class Quadratic(Node):
    """Per-row half sum of squared residuals, 0.5 * sum_j (x_ij - y_ij)^2.

    The square is the complex square (no conjugation), so the result is
    complex. Output has one entry per row.
    """

    kind = "quadratic"

    def evaluate(self, x: torch.Tensor, y: torch.Tensor) -> torch.Tensor:
        residual = x - y
        return 0.5 * (residual * residual).sum(dim=-1)


class Average(Node):
    kind = "avg"

    def evaluate(self, x: torch.Tensor) -> torch.Tensor:
        return x.mean()


class Add(Node):
    kind = "add"

    def evaluate(self, x: torch.Tensor, y: torch.Tensor) -> torch.Tensor:
        return x + y


# ==============================================================================
# Graph
# ==============================================================================


class CostGraph:
    """Forward/backward driver for the consistency cost of one matrix set."""

    def __init__(
        self,
        matrices: ComplexMatrixSet,
        names: tuple[str, str, str] = ("a", "b", "c"),
        convention: Literal["conjugate", "holomorphic"] = "holomorphic",
    ):
        if convention not in ("conjugate", "holomorphic"):
            raise ValueError(f"unknown gradient convention: {convention}")
        self.matrices = matrices
        self.convention = convention
        a, b, c = (Leaf(matrices.get(name)) for name in names)
        self.leaves = (a, b, c)
        self.products = (Multiply(b, c), Multiply(a, c), Multiply(a, b))
        self.root = Add(
            Add(
                Average(Quadratic(self.products[0], a)),
                Average(Quadratic(self.products[1], b)),
            ),
            Average(Quadratic(self.products[2], c)),
        )

    def forward(self) -> torch.Tensor:
        """Evaluate the cost without touching gradients."""
        try:
            return self.root.forward()
        except RuntimeError as e:
            raise CollaboratorFailure(f"forward pass failed: {e}") from e

    @torch.no_grad()
    def cost(self) -> complex:
        return self.forward().item()

    def gradient(self) -> complex:
        """
        Run one forward and one backward pass.

        Gradients of the cost with respect to each leaf are added to the
        variables' gradient buffers; callers zero them first.

        Returns:
            The complex cost value
        """
        params = [leaf.variable.value for leaf in self.leaves]
        try:
            with torch.enable_grad():
                cost = self.root.forward()
                grads = torch.autograd.grad(cost, params, grad_outputs=torch.ones_like(cost))
        except RuntimeError as e:
            raise CollaboratorFailure(f"gradient evaluation failed: {e}") from e

        with torch.no_grad():
            for param, grad in zip(params, grads):
                if self.convention == "holomorphic":
                    grad = grad.conj()
                if param.grad is None:
                    param.grad = grad.clone()
                else:
                    param.grad.add_(grad)
        return cost.detach().item()

    def __repr__(self) -> str:
        return f"CostGraph({self.root!r}, convention={self.convention!r})"
