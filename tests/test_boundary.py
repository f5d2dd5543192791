import numpy as np
import pytest

from stable_fluids import DoubleField, GridField, ObstacleMask
from stable_fluids import enforce_boundaries, enforce_obstacles, reflect_edges


def _random_field(rng, components):
    f = GridField(6, 5, components=components)
    f.interior[...] = rng.uniform(-1.0, 1.0, f.interior.shape)
    return f


def test_scalar_reflection_copies_edges(backend, rng):
    f = _random_field(rng, 1)
    reflect_edges(f, vector=False, backend=backend)
    d = f.data[0]
    np.testing.assert_array_equal(d[0, 1:-1], d[1, 1:-1])
    np.testing.assert_array_equal(d[-1, 1:-1], d[-2, 1:-1])
    np.testing.assert_array_equal(d[1:-1, 0], d[1:-1, 1])
    np.testing.assert_array_equal(d[1:-1, -1], d[1:-1, -2])


def test_vector_reflection_negates_normal_component(backend, rng):
    f = _random_field(rng, 2)
    reflect_edges(f, vector=True, backend=backend)
    vx, vy = f.data[0], f.data[1]

    # x-velocity flips on the left/right edges, copies on bottom/top
    np.testing.assert_array_equal(vx[1:-1, 0], -vx[1:-1, 1])
    np.testing.assert_array_equal(vx[1:-1, -1], -vx[1:-1, -2])
    np.testing.assert_array_equal(vx[0, 1:-1], vx[1, 1:-1])

    # y-velocity flips on the bottom/top edges, copies on left/right
    np.testing.assert_array_equal(vy[0, 1:-1], -vy[1, 1:-1])
    np.testing.assert_array_equal(vy[-1, 1:-1], -vy[-2, 1:-1])
    np.testing.assert_array_equal(vy[1:-1, 0], vy[1:-1, 1])


def test_corners_average_edge_neighbours(backend, rng):
    f = _random_field(rng, 1)
    reflect_edges(f, backend=backend)
    d = f.data[0]
    np.testing.assert_allclose(d[0, 0], 0.5 * (d[1, 0] + d[0, 1]), rtol=1e-6, atol=1e-6)
    np.testing.assert_allclose(d[-1, -1], 0.5 * (d[-2, -1] + d[-1, -2]), rtol=1e-6, atol=1e-6)


@pytest.fixture
def block_mask():
    # 2x2 solid block at x = 3..4, y = 3..4 of an 8x8 grid
    mask = ObstacleMask(8, 8)
    mask.add_region(3, 3, 2, 2)
    return mask


def test_no_flow_into_obstacle(backend, rng, block_mask):
    velocity = DoubleField(8, 8, 2)
    velocity.read.interior[...] = rng.uniform(-1.0, 1.0, (2, 8, 8))

    enforce_obstacles(velocity, block_mask, damping=0.99, backend=backend)
    vx, vy = velocity.read.interior

    assert (vx[3:5, 2] <= 0.0).all()   # wall on the right
    assert (vx[3:5, 5] >= 0.0).all()   # wall on the left
    assert (vy[2, 3:5] <= 0.0).all()   # wall above
    assert (vy[5, 3:5] >= 0.0).all()   # wall below
    assert not vx[3:5, 3:5].any()
    assert not vy[3:5, 3:5].any()


def test_tangential_velocity_is_damped(backend, block_mask):
    velocity = DoubleField(8, 8, 2)
    velocity.read.interior[1] = 1.0

    enforce_obstacles(velocity, block_mask, damping=0.9, backend=backend)
    vy = velocity.read.interior[1]

    assert vy[3, 2] == pytest.approx(0.9)    # slides past the block's left face
    assert vy[0, 0] == pytest.approx(1.0)    # far from any wall


def test_enforce_boundaries_fills_halo(backend, rng):
    mask = ObstacleMask(6, 6)
    velocity = DoubleField(6, 6, 2)
    velocity.read.interior[...] = rng.uniform(-1.0, 1.0, (2, 6, 6))

    enforce_boundaries(velocity, mask, 0.99, backend)
    halo = velocity.read.data[0]
    if backend == "SEQUENTIAL":
        np.testing.assert_array_equal(halo[1:-1, 0], -halo[1:-1, 1])
    else:
        np.testing.assert_array_equal(halo[1:-1, 0], halo[1:-1, 1])
