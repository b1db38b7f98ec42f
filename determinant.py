"""Laplace cofactor determinant for small complex matrices.

Used only as a numerical-health probe on the learned matrices. Cost is
O(n!), so the routine is limited to a fixed maximum dimension. Cofactor
minors are written into a preallocated scratch buffer with one row per
recursion depth; no allocation happens inside the recursion.
"""

from typing import Sequence

import numpy as np
import torch

MAX_SIZE = 3


def make_scratch(max_size: int = MAX_SIZE) -> np.ndarray:
    """Scratch space for `determinant`: one max_size x max_size minor per depth."""
    return np.zeros((max_size, max_size * max_size), dtype=np.complex128)


def cofactor(
    mat: Sequence[complex],
    temp: np.ndarray,
    p: int,
    q: int,
    n: int,
    src_stride: int,
    dst_stride: int,
) -> None:
    """
    Copy the minor of `mat` without row p and column q into `temp`.

    Args:
        mat: Flat row-major n x n matrix with row stride src_stride
        temp: Destination buffer, written row-major with row stride dst_stride
        p: Row to delete
        q: Column to delete
        n: Dimension of `mat`
    """
    i, j = 0, 0
    for row in range(n):
        if row == p:
            continue
        for col in range(n):
            if col == q:
                continue
            temp[i * dst_stride + j] = mat[row * src_stride + col]
            j += 1
            if j == n - 1:
                j = 0
                i += 1


def _expand(mat: Sequence[complex], n: int, stride: int, scratch: np.ndarray, depth: int) -> complex:
    if n == 1:
        return complex(mat[0])
    width = scratch.shape[0]
    temp = scratch[depth]
    d = 0j
    sign = 1
    for f in range(n):
        cofactor(mat, temp, 0, f, n, stride, width)
        d += sign * complex(mat[f]) * _expand(temp, n - 1, width, scratch, depth + 1)
        sign = -sign
    return d


def determinant(
    matrix: Sequence[complex] | np.ndarray,
    n: int,
    scratch: np.ndarray | None = None,
) -> complex:
    """
    Determinant of a flat row-major n x n complex matrix.

    Laplace expansion along the first row with alternating signs.

    Args:
        matrix: n * n entries in row-major order
        n: Matrix dimension (1 <= n <= scratch size)
        scratch: Buffer from `make_scratch`; allocated here if omitted

    Returns:
        The complex determinant
    """
    if scratch is None:
        scratch = make_scratch(max(n, 1))
    if n < 1:
        raise ValueError("determinant needs n >= 1")
    if n > scratch.shape[0]:
        raise ValueError(f"n={n} exceeds the scratch dimension {scratch.shape[0]}")
    if len(matrix) < n * n:
        raise ValueError(f"expected {n * n} entries, got {len(matrix)}")
    return _expand(matrix, n, n, scratch, 0)


def matrix_determinant(matrix: torch.Tensor, scratch: np.ndarray | None = None) -> complex:
    """Determinant of a square torch (or numpy) matrix."""
    if len(matrix.shape) != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"expected a square matrix, got shape {tuple(matrix.shape)}")
    n = matrix.shape[0]
    if isinstance(matrix, torch.Tensor):
        matrix = matrix.detach().cpu().numpy()
    return determinant(np.asarray(matrix, dtype=np.complex128).reshape(-1), n, scratch)
