import numpy as np
import pytest

from stable_fluids import BACKENDS, DoubleField, FluidConfig, FluidSimulation


@pytest.fixture(params=BACKENDS)
def backend(request):
    """Every property is checked against both execution models."""
    return request.param


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def make_sim(backend):
    def _make(width=32, height=32, **overrides):
        config = FluidConfig.for_backend(backend, **overrides)
        return FluidSimulation(width, height, backend=backend, config=config)
    return _make


@pytest.fixture
def make_velocity():
    """Velocity DoubleField whose interior holds (vx, vy), each (H, W)."""
    def _make(vx, vy):
        h, w = np.shape(vx)
        velocity = DoubleField(w, h, 2)
        velocity.read.interior[0] = vx
        velocity.read.interior[1] = vy
        return velocity
    return _make


@pytest.fixture
def cell_grid():
    """(x, y) interior cell coordinates, each of shape (height, width)."""
    def _make(width, height):
        return np.meshgrid(np.arange(width, dtype=np.float64),
                           np.arange(height, dtype=np.float64))
    return _make
