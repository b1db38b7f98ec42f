"""Named complex matrix variables and their gradient buffers."""

import torch
import torch.nn as nn


class DuplicateName(ValueError):
    """A variable with this name is already registered."""


class NotFound(KeyError):
    """No variable with this name is registered."""


class Variable:
    """A named complex matrix plus its co-indexed gradient buffer.

    The value buffer is an `nn.Parameter`; its `.grad` is the gradient buffer
    and always exists with the same shape as the value.
    """

    def __init__(self, name: str, rows: int, cols: int, dtype: torch.dtype = torch.complex128):
        self.name = name
        self.value = nn.Parameter(torch.zeros(rows, cols, dtype=dtype))
        self.value.grad = torch.zeros_like(self.value)

    @property
    def shape(self) -> tuple[int, int]:
        return tuple(self.value.shape)

    @property
    def grad(self) -> torch.Tensor:
        return self.value.grad

    def flat(self) -> torch.Tensor:
        """Row-major view of the values."""
        return self.value.detach().reshape(-1)

    def __repr__(self) -> str:
        return f"Variable({self.name!r}, shape={self.shape})"


class ComplexMatrixSet(nn.Module):
    """Ordered collection of same-shape complex matrix variables.

    Variables are registered as parameters, so the set can be handed to a
    `torch.optim.Optimizer` directly. Iteration order is insertion order.
    """

    def __init__(self, dtype: torch.dtype = torch.complex128):
        super().__init__()
        self.dtype = dtype
        self._variables: dict[str, Variable] = {}
        self._initialized = False

    def add(self, name: str, rows: int, cols: int) -> Variable:
        """Register a zero-initialized variable of shape (rows, cols)."""
        if name in self._variables:
            raise DuplicateName(f"variable {name!r} already exists")
        if self._variables:
            expected = next(iter(self._variables.values())).shape
            if (rows, cols) != expected:
                raise ValueError(
                    f"variable {name!r} has shape {(rows, cols)}, set holds {expected}"
                )
        if not name or "." in name or hasattr(self, name):
            raise ValueError(f"{name!r} is not a usable variable name")
        variable = Variable(name, rows, cols, dtype=self.dtype)
        self.register_parameter(name, variable.value)
        self._variables[name] = variable
        return variable

    def get(self, name: str) -> Variable:
        try:
            return self._variables[name]
        except KeyError:
            raise NotFound(f"no variable named {name!r}") from None

    def by_index(self, index: int) -> Variable:
        return list(self._variables.values())[index]

    def names(self) -> list[str]:
        return list(self._variables)

    def variables(self) -> list[Variable]:
        return list(self._variables.values())

    def __len__(self) -> int:
        return len(self._variables)

    def __iter__(self):
        return iter(self._variables.values())

    def __contains__(self, name: object) -> bool:
        return name in self._variables

    @torch.no_grad()
    def initialize_random(self, generator: torch.Generator, low: float = -1.0, high: float = 1.0) -> None:
        """
        Fill every variable with uniform complex values.

        Real and imaginary parts are drawn independently from [low, high]; for
        each entry the real part is drawn first, entries are visited row-major
        and variables in insertion order.

        Args:
            generator: Private generator owned by the caller
            low: Lower bound of both parts
            high: Upper bound of both parts
        """
        if self._initialized:
            raise RuntimeError("variables have already been initialized")
        for variable in self._variables.values():
            real_dtype = variable.value.real.dtype
            # (..., 2) keeps real/imag draws interleaved per entry
            draws = torch.rand(
                (*variable.shape, 2), generator=generator, dtype=real_dtype
            )
            draws = (high - low) * draws + low
            variable.value.copy_(torch.complex(draws[..., 0], draws[..., 1]))
        self._initialized = True

    @torch.no_grad()
    def zero_gradients(self) -> None:
        """Reset every gradient buffer to 0+0i in place."""
        for variable in self._variables.values():
            if variable.value.grad is None:
                variable.value.grad = torch.zeros_like(variable.value)
            else:
                variable.value.grad.zero_()

    def snapshot(self, name: str) -> torch.Tensor:
        """Detached copy of a variable's values."""
        return self.get(name).value.detach().clone()

    @torch.no_grad()
    def assign(self, name: str, values: torch.Tensor) -> None:
        """Overwrite a variable's values in place."""
        self.get(name).value.copy_(values)
