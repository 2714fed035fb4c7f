"""Camera-state helpers for building feedback messages.

The rendering host hands over numpy-compatible matrices; these helpers flatten
them into the row-major float sequences the feedback message expects.
"""

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np


def _as_array(values, shape: Tuple[int, ...], name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.shape != shape and arr.size == int(np.prod(shape)):
        arr = arr.reshape(shape)
    if arr.shape != shape:
        raise ValueError(f"{name} must have shape {shape}, got {arr.shape}")
    return arr


def flatten_matrix4(matrix) -> Tuple[float, ...]:
    """Row-major 16-tuple for a 4x4 matrix (projection or model-view)."""

    return tuple(float(v) for v in _as_array(matrix, (4, 4), "matrix").reshape(-1))


def flatten_matrix3(matrix) -> Tuple[float, ...]:
    return tuple(float(v) for v in _as_array(matrix, (3, 3), "rotation").reshape(-1))


def rotation_from_matrix4(matrix) -> Tuple[float, ...]:
    """Upper-left 3x3 block of a 4x4 transform, row-major."""

    arr = _as_array(matrix, (4, 4), "matrix")
    return tuple(float(v) for v in arr[:3, :3].reshape(-1))


def rotation_from_quaternion(quaternion: Sequence[float]) -> Tuple[float, ...]:
    """Row-major 3x3 rotation for a quaternion given as ``(x, y, z, w)``.

    The quaternion is normalized first; a zero quaternion is rejected.
    """

    q = _as_array(quaternion, (4,), "quaternion")
    norm = float(np.linalg.norm(q))
    if norm == 0.0:
        raise ValueError("quaternion must be non-zero")
    x, y, z, w = q / norm
    rot = np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ]
    )
    return tuple(float(v) for v in rot.reshape(-1))


def flatten_vector3(vector) -> Tuple[float, ...]:
    return tuple(float(v) for v in _as_array(vector, (3,), "position"))
