"""
diffuse.py — Diffusion via Jacobi-style Relaxation
===================================================
Diffusion makes fluids spread out over time.
  - High diffusion  → density spreads fast (watercolor bleed)
  - Low diffusion   → density stays tight (laser-focused smoke column)
  - High viscosity  → thick fluid (honey)
  - Low viscosity   → thin fluid (air, water)

The math: We need to solve the implicit heat equation:
  (I - a·∇²) x_new = x_old        with a = dt · rate · N²

Implicit diffusion is unconditionally stable, so large dt won't blow up.

One relaxation routine serves every linear system in the solver:

  x = (left + right + bottom + top + alpha · b) / beta

  diffusion : alpha = 1 / a,  beta = 4 + 1 / a   (same as (b + a·Σ) / (1 + 4a))
  pressure  : alpha = -1,     beta = 4

A neighbour inside a wall is replaced by the centre cell's own value, so no
gradient leaks into solids (Neumann). Solid cells stay at 0. The iteration
count is fixed; there is no convergence check, which keeps the frame cost
predictable.

SEQUENTIAL updates in place (Gauss-Seidel order), so every cell already sees
the new values of the cells visited before it. PARALLEL ping-pongs between
the read and write buffers (pure Jacobi).
"""

import numpy as np
from numba import njit

from .backend import BACKEND_PARALLEL, BACKEND_SEQUENTIAL, check_backend, dispatch
from .boundary import _reflect_loops
from .grid import DoubleField, GridField, neighbours
from .obstacles import ObstacleMask


# ── Sequential kernels ────────────────────────────────────────────────────────

@njit(cache=True)
def _relax_loops(x, b, solid, alpha, beta, iterations, vector):
    components, rows, cols = x.shape
    for _ in range(iterations):
        for c in range(components):
            for j in range(1, rows - 1):
                for i in range(1, cols - 1):
                    if solid[j, i]:
                        x[c, j, i] = 0.0
                        continue
                    centre = x[c, j, i]
                    left = centre if solid[j, i - 1] else x[c, j, i - 1]
                    right = centre if solid[j, i + 1] else x[c, j, i + 1]
                    bottom = centre if solid[j - 1, i] else x[c, j - 1, i]
                    top = centre if solid[j + 1, i] else x[c, j + 1, i]
                    x[c, j, i] = (left + right + bottom + top + alpha * b[c, j, i]) / beta
        # Boundary conditions are applied after each sweep
        _reflect_loops(x, vector)


def _relax_sequential(x: DoubleField, b: GridField, mask: ObstacleMask,
                      alpha: float, beta: float, iterations: int, vector: bool) -> None:
    _relax_loops(x.read.data, b.data, mask.solid, alpha, beta, iterations, vector)


# ── Parallel kernels ──────────────────────────────────────────────────────────

def _relax_numpy(x: DoubleField, b: GridField, mask: ObstacleMask,
                 alpha: float, beta: float, iterations: int, vector: bool) -> None:
    f = mask.faces()
    source = alpha * b.interior

    for _ in range(iterations):
        x.read.replicate_halo()
        left, right, bottom, top, centre = neighbours(x.read.data)

        total = (np.where(f.left, centre, left) +
                 np.where(f.right, centre, right) +
                 np.where(f.bottom, centre, bottom) +
                 np.where(f.top, centre, top))

        out = x.write.interior
        out[...] = (total + source) / beta
        out[:, f.center] = 0.0
        x.swap()


# ── Public operators ──────────────────────────────────────────────────────────

_RELAX = {BACKEND_SEQUENTIAL: _relax_sequential, BACKEND_PARALLEL: _relax_numpy}


def relax(x: DoubleField, b: GridField, mask: ObstacleMask, alpha: float, beta: float,
          iterations: int, backend: str = BACKEND_PARALLEL, vector: bool = False) -> None:
    """
    Run `iterations` relaxation passes of
        x = (Σ neighbours(x) + alpha * b) / beta
    starting from the current contents of x.read.

    Args:
        x          : Unknown, refined in place (result ends up in x.read)
        b          : Right-hand side, same shape as x
        mask       : Obstacle mask (solid neighbours → centre value)
        alpha      : Weight of the right-hand side
        beta       : Normalisation
        iterations : Fixed number of passes
        backend    : "SEQUENTIAL" or "PARALLEL"
        vector     : x is a velocity field (sign-flipping edge reflection,
                     sequential path only)
    """
    backend = check_backend(backend)
    if iterations < 1:
        raise ValueError(f"iterations must be >= 1, got {iterations}")
    if beta == 0.0:
        raise ValueError("beta must be non-zero")
    if b.shape != x.read.shape:
        raise ValueError(f"Shape mismatch: b {b.shape} vs x {x.read.shape}")
    dispatch(_RELAX, backend)(x, b, mask, alpha, beta, iterations, vector)


def diffuse(field: DoubleField, mask: ObstacleMask, rate: float, dt: float,
            iterations: int, grid_scale: float, backend: str = BACKEND_PARALLEL,
            vector: bool = False) -> None:
    """
    Implicit diffusion of `field` (dye diffusion, or viscosity when `field`
    is the velocity).

    Modifies: field.read (in place for SEQUENTIAL, via ping-pong for PARALLEL)
    """
    if rate == 0.0:
        return  # Skip if no diffusion (saves time)

    a = dt * rate * grid_scale * grid_scale
    if a <= 0.0:
        return

    b = field.read.copy()
    relax(field, b, mask, alpha=1.0 / a, beta=4.0 + 1.0 / a,
          iterations=iterations, backend=backend, vector=vector)
