"""Small dense linear algebra kernel used by ridge regression.

Inversion is Gauss-Jordan elimination with partial pivoting. When a pivot
column is numerically zero the routine returns the identity matrix and emits a
``SingularMatrixWarning`` instead of raising; ridge fits treat that as "no
information available".

Note: substituting the identity can hide a genuinely singular design matrix.
The ridge term keeps ``XᵗX + alpha·I`` well conditioned for every alpha in the
trainer's grid, so in practice the fallback only triggers on degenerate
inputs such as an empty feature set.
"""

from __future__ import annotations

import warnings
from typing import Sequence, Union

import numpy as np

from .errors import SingularMatrixWarning

ArrayLike = Union[np.ndarray, Sequence[Sequence[float]]]

EPSILON = float(np.finfo(float).eps)


def transpose(matrix: ArrayLike) -> np.ndarray:
    arr = np.asarray(matrix, dtype=float)
    if arr.size == 0:
        return np.zeros((0, 0))
    return arr.T.copy()


def multiply(a: ArrayLike, b: ArrayLike) -> np.ndarray:
    """Matrix product ``a @ b`` of two 2-D arrays."""
    left = np.asarray(a, dtype=float)
    right = np.asarray(b, dtype=float)
    if left.ndim != 2 or right.ndim != 2:
        raise ValueError("multiply expects two 2-D matrices")
    if left.shape[1] != right.shape[0]:
        raise ValueError(f"Shape mismatch: {left.shape} x {right.shape}")
    return left @ right


def identity(size: int) -> np.ndarray:
    return np.eye(size, dtype=float)


def invert(matrix: ArrayLike) -> np.ndarray:
    """Invert a square matrix, falling back to the identity when singular."""
    arr = np.asarray(matrix, dtype=float)
    if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
        raise ValueError(f"invert expects a square matrix, got shape {arr.shape}")
    size = arr.shape[0]
    augmented = np.hstack([arr, identity(size)])

    for pivot in range(size):
        max_row = pivot + int(np.argmax(np.abs(augmented[pivot:, pivot])))
        if abs(augmented[max_row, pivot]) <= EPSILON:
            warnings.warn(
                f"Singular matrix at pivot {pivot}; returning identity.",
                SingularMatrixWarning,
                stacklevel=2,
            )
            return identity(size)

        if max_row != pivot:
            augmented[[pivot, max_row]] = augmented[[max_row, pivot]]

        augmented[pivot] /= augmented[pivot, pivot]
        for row in range(size):
            if row == pivot:
                continue
            factor = augmented[row, pivot]
            if factor != 0.0:
                augmented[row] -= factor * augmented[pivot]

    return augmented[:, size:].copy()
