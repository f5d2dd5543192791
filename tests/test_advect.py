import numpy as np
import pytest

from stable_fluids import DoubleField, ObstacleMask, advect


def _density(rng, width, height):
    d = DoubleField(width, height, 1)
    d.read.interior[...] = rng.uniform(0.0, 1.0, (1, height, width))
    return d


def test_zero_velocity_is_identity_up_to_dissipation(backend, rng, make_velocity):
    density = _density(rng, 16, 12)
    before = density.read.interior.copy()
    velocity = make_velocity(np.zeros((12, 16)), np.zeros((12, 16)))

    advect(density, velocity, ObstacleMask(16, 12), dt=0.1, dissipation=0.9,
           grid_scale=16.0, backend=backend)

    np.testing.assert_allclose(density.read.interior, 0.9 * before, rtol=1e-6)


def test_uniform_flow_shifts_by_whole_cells(backend, rng, make_velocity):
    density = _density(rng, 12, 8)
    before = density.read.interior.copy()
    velocity = make_velocity(np.ones((8, 12)), np.zeros((8, 12)))

    # velocity * dt * grid_scale = 1 cell to the right
    advect(density, velocity, ObstacleMask(12, 8), dt=1.0, dissipation=1.0,
           grid_scale=1.0, backend=backend)

    np.testing.assert_allclose(density.read.interior[:, :, 1:], before[:, :, :-1], rtol=1e-6)


def test_self_advection_swaps_velocity(backend, make_velocity):
    velocity = make_velocity(np.zeros((6, 6)), np.zeros((6, 6)))
    read = velocity.read
    advect(velocity, velocity, ObstacleMask(6, 6), 0.1, 1.0, 6.0, backend)
    assert velocity.write is read


def test_solid_cells_output_zero(backend, rng, make_velocity):
    mask = ObstacleMask(10, 10)
    mask.add_region(2, 2, 3, 3)
    density = _density(rng, 10, 10)
    velocity = make_velocity(np.zeros((10, 10)), np.zeros((10, 10)))

    advect(density, velocity, mask, 0.1, 1.0, 10.0, backend)

    assert not density.read.interior[0, 2:5, 2:5].any()


def test_backtrace_into_wall_falls_back_to_own_value(backend, make_velocity):
    # Solid columns x = 0..3; the fluid cell at x = 4 traces 3 cells left,
    # and every shortened retry still lands in the wall.
    mask = ObstacleMask(12, 6)
    mask.add_region(0, 0, 4, 6)
    density = DoubleField(12, 6, 1)
    density.read.fill(1.0)
    density.read.interior[0, :, :4] = 100.0
    velocity = make_velocity(np.full((6, 12), 3.0), np.zeros((6, 12)))

    advect(density, velocity, mask, dt=1.0, dissipation=1.0, grid_scale=1.0,
           backend=backend)

    np.testing.assert_allclose(density.read.interior[0, 1:-1, 4], 1.0)
    np.testing.assert_allclose(density.read.interior[0, 1:-1, 8], 1.0)


def test_dissipation_range_checked(make_velocity):
    density = DoubleField(4, 4)
    velocity = make_velocity(np.zeros((4, 4)), np.zeros((4, 4)))
    with pytest.raises(ValueError):
        advect(density, velocity, ObstacleMask(4, 4), 0.1, 1.5, 4.0, "PARALLEL")


def test_shortened_backtrace_samples_first_fluid_point(backend, make_velocity):
    # Same wall, but the field holds its own column index. From x = 6 the
    # full and 0.9 traces land in the wall, the 0.72 trace reaches x = 3.84.
    mask = ObstacleMask(12, 6)
    mask.add_region(0, 0, 4, 6)
    field = DoubleField(12, 6, 1)
    field.read.interior[0] = np.arange(12, dtype=np.float64)
    velocity = make_velocity(np.full((6, 12), 3.0), np.zeros((6, 12)))

    advect(field, velocity, mask, dt=1.0, dissipation=1.0, grid_scale=1.0,
           backend=backend)

    for row in field.read.interior[0]:
        np.testing.assert_allclose(row[4:8], [4.0, 3.6176, 3.84, 4.0], rtol=1e-5)
