"""
forces.py — Vorticity Confinement and User Input
=================================================
Semi-Lagrangian advection smears out small swirls. Vorticity confinement
puts that rotational energy back:

  1. curl  ω = 0.5 * ((vy_R - vy_L) - (vx_T - vx_B))
  2. g = ∇|ω| (central differences), normalised when |g| > 1e-4
  3. force = (g.y, -g.x) * ω * strength
  4. v += force * dt

The force is perpendicular to the gradient of spin magnitude, so it pushes
fluid around the vortex centre instead of into it.

User input arrives as "splats": a Gaussian blob of dye or velocity added
around a point, plus direct single-cell injection for the sequential path.
"""

import math

import numpy as np
from numba import njit

from .backend import BACKEND_PARALLEL, BACKEND_SEQUENTIAL, check_backend, dispatch
from .boundary import _reflect_loops
from .grid import DoubleField, GridField, neighbours
from .obstacles import ObstacleMask


VORTICITY_EPSILON = 1e-4


# ── Sequential kernels ────────────────────────────────────────────────────────

@njit(cache=True)
def _curl_loops(curl, vel, solid):
    rows, cols = solid.shape
    for j in range(1, rows - 1):
        for i in range(1, cols - 1):
            if solid[j, i]:
                curl[0, j, i] = 0.0
                continue
            curl[0, j, i] = 0.5 * ((vel[1, j, i + 1] - vel[1, j, i - 1])
                                   - (vel[0, j + 1, i] - vel[0, j - 1, i]))
    _reflect_loops(curl, False)


@njit(cache=True)
def _confine_loops(vel, curl, solid, strength, dt):
    rows, cols = solid.shape
    for j in range(1, rows - 1):
        for i in range(1, cols - 1):
            if solid[j, i]:
                vel[0, j, i] = 0.0
                vel[1, j, i] = 0.0
                continue
            gx = 0.5 * (abs(curl[0, j, i + 1]) - abs(curl[0, j, i - 1]))
            gy = 0.5 * (abs(curl[0, j + 1, i]) - abs(curl[0, j - 1, i]))
            length = math.sqrt(gx * gx + gy * gy)
            if length > VORTICITY_EPSILON:
                gx /= length
                gy /= length
            c = curl[0, j, i] * strength * dt
            vel[0, j, i] += gy * c
            vel[1, j, i] -= gx * c
    _reflect_loops(vel, True)


def _curl_sequential(velocity: DoubleField, curl: GridField, mask: ObstacleMask) -> None:
    _curl_loops(curl.data, velocity.read.data, mask.solid)


def _confine_sequential(velocity: DoubleField, curl: GridField, mask: ObstacleMask,
                        strength: float, dt: float) -> None:
    _confine_loops(velocity.read.data, curl.data, mask.solid, strength, dt)


# ── Parallel kernels ──────────────────────────────────────────────────────────

def _curl_numpy(velocity: DoubleField, curl: GridField, mask: ObstacleMask) -> None:
    velocity.read.replicate_halo()
    left, right, bottom, top, _ = neighbours(velocity.read.data)

    out = curl.interior[0]
    out[...] = 0.5 * ((right[1] - left[1]) - (top[0] - bottom[0]))
    out[mask.faces().center] = 0.0
    curl.replicate_halo()


def _confine_numpy(velocity: DoubleField, curl: GridField, mask: ObstacleMask,
                   strength: float, dt: float) -> None:
    left, right, bottom, top, centre = neighbours(curl.data[0])

    gx = 0.5 * (np.abs(right) - np.abs(left))
    gy = 0.5 * (np.abs(top) - np.abs(bottom))
    length = np.sqrt(gx * gx + gy * gy)

    # Normalise only where the gradient is meaningful
    scale = np.where(length > VORTICITY_EPSILON, 1.0 / np.maximum(length, VORTICITY_EPSILON), 1.0)
    gx = gx * scale
    gy = gy * scale

    c = centre * strength * dt
    src = velocity.read.interior
    out = velocity.write.interior
    out[0] = src[0] + gy * c
    out[1] = src[1] - gx * c
    out[:, mask.faces().center] = 0.0
    velocity.swap()


# ── Public operators ──────────────────────────────────────────────────────────

_CURL    = {BACKEND_SEQUENTIAL: _curl_sequential, BACKEND_PARALLEL: _curl_numpy}
_CONFINE = {BACKEND_SEQUENTIAL: _confine_sequential, BACKEND_PARALLEL: _confine_numpy}


def compute_curl(velocity: DoubleField, curl: GridField, mask: ObstacleMask,
                 backend: str = BACKEND_PARALLEL) -> None:
    """Scalar curl of velocity.read into `curl` (0 inside solids)."""
    dispatch(_CURL, backend)(velocity, curl, mask)


def confine_vorticity(velocity: DoubleField, curl: GridField, mask: ObstacleMask,
                      strength: float, dt: float, backend: str = BACKEND_PARALLEL) -> None:
    """
    Add the vorticity confinement force to the velocity.
    `curl` must already hold compute_curl() of the same velocity.

    Modifies: velocity
    """
    backend = check_backend(backend)
    if strength == 0.0:
        return
    dispatch(_CONFINE, backend)(velocity, curl, mask, strength, dt)


# ── User input ────────────────────────────────────────────────────────────────

def splat(target: DoubleField, x: float, y: float, value, radius: float,
          mask: ObstacleMask = None) -> None:
    """
    Add a Gaussian blob centred on grid position (x, y) to every component:

        target += value * exp(-(dx² + dy²) / (radius * H²))

    `radius` is a fraction of the domain (0.001 gives a blob roughly three
    cells wide at any resolution). Solid cells receive nothing.

    Args:
        target : density or velocity DoubleField
        x, y   : 0-based interior coordinates, may be fractional
        value  : scalar, or one value per component
        radius : Falloff as a fraction of the domain height squared
        mask   : Optional obstacle mask
    """
    if radius <= 0.0:
        raise ValueError(f"Splat radius must be > 0, got {radius}")

    value = np.broadcast_to(np.asarray(value, dtype=np.float64).ravel(), (target.components,))
    h, w = target.height, target.width

    dx = np.arange(w, dtype=np.float64) - x
    dy = np.arange(h, dtype=np.float64) - y
    falloff = np.exp(-(dy[:, None] ** 2 + dx[None, :] ** 2) / (radius * h * h))
    if mask is not None:
        falloff[mask.faces().center] = 0.0

    out = target.write.interior
    out[...] = target.read.interior + value[:, None, None] * falloff
    target.swap()


def add_point(field: DoubleField, row: int, col: int, value) -> None:
    """
    Add `value` to a single cell. (row, col) are 0-based interior indices:
    row = y, col = x. The halo offset is applied here.
    """
    if not (0 <= row < field.height and 0 <= col < field.width):
        raise ValueError(f"Cell ({row}, {col}) outside the "
                         f"{field.height}x{field.width} grid")
    field.read.add(col, row, value)
