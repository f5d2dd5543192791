"""
solver.py — Pressure Projection
================================
The pressure projection step enforces INCOMPRESSIBILITY:
  div(v) = 0 everywhere

After advection, the velocity field is generally NOT divergence-free
(fluid "piles up" in some cells). We fix this by:
  1. Computing divergence of the current velocity field
  2. Solving the Poisson equation for pressure: ∇²p = div(v)
  3. Subtracting the pressure gradient from velocity: v = v - ∇p

This is the Helmholtz-Hodge decomposition: any vector field
can be decomposed into a divergence-free part + a curl-free part (gradient).
We want the divergence-free part.

Walls:
  - divergence treats the velocity of a solid neighbour as 0
  - the gradient replaces a solid neighbour's pressure by the centre
    pressure (Neumann), and solid cells get zero velocity

The result is divergence-free only up to the relaxation residual, which
shrinks with the iteration count.
"""

import time

import numpy as np
from numba import njit

from .backend import BACKEND_PARALLEL, BACKEND_SEQUENTIAL, check_backend, dispatch
from .boundary import _reflect_loops
from .diffuse import relax
from .grid import DoubleField, GridField, neighbours
from .obstacles import ObstacleMask


PRESSURE_ALPHA = -1.0
PRESSURE_BETA  = 4.0


# ── Sequential kernels ────────────────────────────────────────────────────────

@njit(cache=True)
def _divergence_loops(div, vel, solid):
    rows, cols = solid.shape
    for j in range(1, rows - 1):
        for i in range(1, cols - 1):
            if solid[j, i]:
                div[0, j, i] = 0.0
                continue
            left = 0.0 if solid[j, i - 1] else vel[0, j, i - 1]
            right = 0.0 if solid[j, i + 1] else vel[0, j, i + 1]
            bottom = 0.0 if solid[j - 1, i] else vel[1, j - 1, i]
            top = 0.0 if solid[j + 1, i] else vel[1, j + 1, i]
            div[0, j, i] = 0.5 * ((right - left) + (top - bottom))
    _reflect_loops(div, False)


@njit(cache=True)
def _gradient_loops(vel, p, solid):
    rows, cols = solid.shape
    for j in range(1, rows - 1):
        for i in range(1, cols - 1):
            if solid[j, i]:
                vel[0, j, i] = 0.0
                vel[1, j, i] = 0.0
                continue
            centre = p[0, j, i]
            left = centre if solid[j, i - 1] else p[0, j, i - 1]
            right = centre if solid[j, i + 1] else p[0, j, i + 1]
            bottom = centre if solid[j - 1, i] else p[0, j - 1, i]
            top = centre if solid[j + 1, i] else p[0, j + 1, i]
            vel[0, j, i] -= 0.5 * (right - left)
            vel[1, j, i] -= 0.5 * (top - bottom)
    _reflect_loops(vel, True)


def _divergence_sequential(velocity: DoubleField, divergence: GridField,
                           mask: ObstacleMask) -> None:
    _divergence_loops(divergence.data, velocity.read.data, mask.solid)


def _gradient_sequential(velocity: DoubleField, pressure: DoubleField,
                         mask: ObstacleMask) -> None:
    _gradient_loops(velocity.read.data, pressure.read.data, mask.solid)


# ── Parallel kernels ──────────────────────────────────────────────────────────

def _divergence_numpy(velocity: DoubleField, divergence: GridField,
                      mask: ObstacleMask) -> None:
    f = mask.faces()
    velocity.read.replicate_halo()
    left, right, bottom, top, _ = neighbours(velocity.read.data)

    vl = np.where(f.left, 0.0, left[0])
    vr = np.where(f.right, 0.0, right[0])
    vb = np.where(f.bottom, 0.0, bottom[1])
    vt = np.where(f.top, 0.0, top[1])

    out = divergence.interior[0]
    out[...] = 0.5 * ((vr - vl) + (vt - vb))
    out[f.center] = 0.0
    divergence.replicate_halo()


def _gradient_numpy(velocity: DoubleField, pressure: DoubleField,
                    mask: ObstacleMask) -> None:
    f = mask.faces()
    pressure.read.replicate_halo()
    left, right, bottom, top, centre = neighbours(pressure.read.data[0])

    pl = np.where(f.left, centre, left)
    pr = np.where(f.right, centre, right)
    pb = np.where(f.bottom, centre, bottom)
    pt = np.where(f.top, centre, top)

    src = velocity.read.interior
    out = velocity.write.interior
    out[0] = src[0] - 0.5 * (pr - pl)
    out[1] = src[1] - 0.5 * (pt - pb)
    out[:, f.center] = 0.0
    velocity.swap()


# ── Public operators ──────────────────────────────────────────────────────────

_DIVERGENCE = {BACKEND_SEQUENTIAL: _divergence_sequential, BACKEND_PARALLEL: _divergence_numpy}
_GRADIENT   = {BACKEND_SEQUENTIAL: _gradient_sequential, BACKEND_PARALLEL: _gradient_numpy}


def compute_divergence(velocity: DoubleField, divergence: GridField, mask: ObstacleMask,
                       backend: str = BACKEND_PARALLEL) -> None:
    """Central-difference divergence of velocity.read into `divergence`."""
    dispatch(_DIVERGENCE, backend)(velocity, divergence, mask)


def subtract_gradient(velocity: DoubleField, pressure: DoubleField, mask: ObstacleMask,
                      backend: str = BACKEND_PARALLEL) -> None:
    """v -= ∇p, with Neumann pressure at obstacle faces."""
    dispatch(_GRADIENT, backend)(velocity, pressure, mask)


def _fluid_abs(divergence: GridField, mask: ObstacleMask) -> np.ndarray:
    return np.abs(divergence.interior[0][~mask.faces().center])


def project(velocity: DoubleField, pressure: DoubleField, divergence: GridField,
            mask: ObstacleMask, iterations: int = 20,
            backend: str = BACKEND_PARALLEL) -> dict:
    """
    Pressure projection: make the velocity field divergence-free.

    This is the most expensive step in the simulation. Afterwards
    `divergence` holds the residual divergence of the projected field.

    Args:
        velocity   : Velocity DoubleField, modified
        pressure   : Pressure DoubleField, cleared then solved
        divergence : Scratch GridField
        mask       : Obstacle mask
        iterations : Relaxation passes (more = more accurate, slower)
        backend    : "SEQUENTIAL" or "PARALLEL"

    Returns:
        dict with timing and error metrics (for benchmarking)
    """
    backend = check_backend(backend)
    t_start = time.perf_counter()

    # Step 1: divergence of the current velocity field
    compute_divergence(velocity, divergence, mask, backend)
    div_before = _fluid_abs(divergence, mask)

    # Step 2: Poisson solve, starting from zero pressure
    pressure.clear()
    relax(pressure, divergence, mask, PRESSURE_ALPHA, PRESSURE_BETA,
          iterations, backend)

    # Step 3: subtract the pressure gradient
    subtract_gradient(velocity, pressure, mask, backend)

    t_end = time.perf_counter()

    # Post-projection divergence for benchmarking
    compute_divergence(velocity, divergence, mask, backend)
    div_after = _fluid_abs(divergence, mask)

    return {
        "backend"               : backend,
        "time_ms"               : (t_end - t_start) * 1000,
        "iterations"            : iterations,
        "divergence_before_max" : float(div_before.max()) if div_before.size else 0.0,
        "divergence_after_max"  : float(div_after.max()) if div_after.size else 0.0,
        "divergence_after_mean" : float(div_after.mean()) if div_after.size else 0.0,
    }
