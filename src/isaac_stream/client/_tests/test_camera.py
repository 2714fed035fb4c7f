from __future__ import annotations

import math

import numpy as np
import pytest

from isaac_stream.client.camera import (
    flatten_matrix3,
    flatten_matrix4,
    flatten_vector3,
    rotation_from_matrix4,
    rotation_from_quaternion,
)


def test_flatten_matrix4_is_row_major() -> None:
    matrix = np.arange(16).reshape(4, 4)

    flat = flatten_matrix4(matrix)

    assert flat == tuple(float(v) for v in range(16))
    assert all(isinstance(v, float) for v in flat)


def test_flatten_accepts_flat_sequences() -> None:
    assert flatten_matrix4(list(range(16)))[5] == 5.0
    assert flatten_matrix3(range(9))[8] == 8.0


@pytest.mark.parametrize("shape", [(3, 3), (4, 3), (15,)])
def test_flatten_matrix4_rejects_wrong_shape(shape) -> None:
    with pytest.raises(ValueError):
        flatten_matrix4(np.zeros(shape))


def test_flatten_vector3() -> None:
    assert flatten_vector3(np.array([0, 0.2, 5])) == (0.0, 0.2, 5.0)
    with pytest.raises(ValueError):
        flatten_vector3([1.0, 2.0])


def test_rotation_from_matrix4_takes_upper_left_block() -> None:
    transform = np.eye(4)
    transform[:3, 3] = [7.0, 8.0, 9.0]
    transform[0, 1] = 0.5

    rot = rotation_from_matrix4(transform)

    assert len(rot) == 9
    assert rot == (1.0, 0.5, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0)


def test_identity_quaternion() -> None:
    rot = rotation_from_quaternion((0.0, 0.0, 0.0, 1.0))

    np.testing.assert_allclose(rot, np.eye(3).reshape(-1))


def test_quaternion_about_z() -> None:
    half = math.pi / 4
    rot = np.array(rotation_from_quaternion((0.0, 0.0, math.sin(half), math.cos(half)))).reshape(3, 3)

    np.testing.assert_allclose(rot @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], atol=1e-12)


def test_quaternion_is_normalized() -> None:
    rot = np.array(rotation_from_quaternion((0.0, 0.0, 0.0, 3.0))).reshape(3, 3)

    np.testing.assert_allclose(rot, np.eye(3))


def test_zero_quaternion_rejected() -> None:
    with pytest.raises(ValueError):
        rotation_from_quaternion((0.0, 0.0, 0.0, 0.0))
