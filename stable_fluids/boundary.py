"""
boundary.py — Wall Conditions
==============================
Two kinds of walls live in the simulation:

1. The DOMAIN EDGE, i.e. the halo ring around the grid. The sequential path
   fills the halo by reflection after every operator:
     - scalars (density, pressure) copy the nearest interior cell (Neumann)
     - the velocity component NORMAL to an edge is negated, so the fluid
       can't leave the box; the tangential component is copied (free-slip)
     - corners average their two edge neighbours

   The small integer tag picks the rule per plane:
     0 = scalar, 1 = negate on vertical edges (x-velocity),
     2 = negate on horizontal edges (y-velocity)

2. OBSTACLE FACES from the ObstacleMask, used by both paths:
     - solid cells hold zero velocity
     - a fluid cell next to a solid cell may not move into it
       (one-sided clamp: wall on the left → vx = max(vx, 0), ...)
     - the tangential component is damped by `damping` (wall friction)

Skipping this after any velocity-changing step lets fluid leak into walls.
"""

import numpy as np
from numba import njit

from .backend import BACKEND_PARALLEL, BACKEND_SEQUENTIAL, check_backend, dispatch
from .grid import DoubleField, GridField
from .obstacles import ObstacleMask


BOUNDARY_SCALAR = 0
BOUNDARY_FLIP_X = 1
BOUNDARY_FLIP_Y = 2


# ── Sequential kernels ────────────────────────────────────────────────────────

@njit(cache=True)
def _reflect_plane(x, tag):
    rows, cols = x.shape
    h = rows - 2
    w = cols - 2

    # bottom and top rows
    for i in range(1, w + 1):
        if tag == BOUNDARY_FLIP_Y:
            x[0, i] = -x[1, i]
            x[h + 1, i] = -x[h, i]
        else:
            x[0, i] = x[1, i]
            x[h + 1, i] = x[h, i]

    # left and right columns
    for j in range(1, h + 1):
        if tag == BOUNDARY_FLIP_X:
            x[j, 0] = -x[j, 1]
            x[j, w + 1] = -x[j, w]
        else:
            x[j, 0] = x[j, 1]
            x[j, w + 1] = x[j, w]

    x[0, 0] = 0.5 * (x[1, 0] + x[0, 1])
    x[0, w + 1] = 0.5 * (x[1, w + 1] + x[0, w])
    x[h + 1, 0] = 0.5 * (x[h, 0] + x[h + 1, 1])
    x[h + 1, w + 1] = 0.5 * (x[h, w + 1] + x[h + 1, w])


@njit(cache=True)
def _reflect_loops(data, vector):
    for c in range(data.shape[0]):
        tag = BOUNDARY_SCALAR
        if vector:
            tag = BOUNDARY_FLIP_X if c == 0 else BOUNDARY_FLIP_Y
        _reflect_plane(data[c], tag)


@njit(cache=True)
def _enforce_loops(vel, solid, damping):
    rows, cols = solid.shape
    for j in range(1, rows - 1):
        for i in range(1, cols - 1):
            if solid[j, i]:
                vel[0, j, i] = 0.0
                vel[1, j, i] = 0.0
                continue

            vx = vel[0, j, i]
            vy = vel[1, j, i]
            if solid[j, i - 1]:
                vx = max(vx, 0.0)
                vy *= damping
            if solid[j, i + 1]:
                vx = min(vx, 0.0)
                vy *= damping
            if solid[j - 1, i]:
                vy = max(vy, 0.0)
                vx *= damping
            if solid[j + 1, i]:
                vy = min(vy, 0.0)
                vx *= damping
            vel[0, j, i] = vx
            vel[1, j, i] = vy


# ── Parallel kernels ──────────────────────────────────────────────────────────

def _reflect_numpy(data: np.ndarray, vector: bool) -> None:
    for c in range(data.shape[0]):
        x = data[c]
        flip_x = -1.0 if vector and c == 0 else 1.0
        flip_y = -1.0 if vector and c == 1 else 1.0
        x[0, 1:-1] = flip_y * x[1, 1:-1]
        x[-1, 1:-1] = flip_y * x[-2, 1:-1]
        x[1:-1, 0] = flip_x * x[1:-1, 1]
        x[1:-1, -1] = flip_x * x[1:-1, -2]
        x[0, 0] = 0.5 * (x[1, 0] + x[0, 1])
        x[0, -1] = 0.5 * (x[1, -1] + x[0, -2])
        x[-1, 0] = 0.5 * (x[-2, 0] + x[-1, 1])
        x[-1, -1] = 0.5 * (x[-2, -1] + x[-1, -2])


def _enforce_numpy(velocity: DoubleField, mask: ObstacleMask, damping: float) -> None:
    f = mask.faces()
    src = velocity.read.interior
    vx, vy = src[0], src[1]

    vx = np.where(f.left, np.maximum(vx, 0.0), vx)
    vx = np.where(f.right, np.minimum(vx, 0.0), vx)
    vy = np.where(f.bottom, np.maximum(vy, 0.0), vy)
    vy = np.where(f.top, np.minimum(vy, 0.0), vy)

    # One damping factor per wall face touching the cell
    vy = vy * np.power(damping, f.left.astype(np.int8) + f.right.astype(np.int8))
    vx = vx * np.power(damping, f.bottom.astype(np.int8) + f.top.astype(np.int8))

    dst = velocity.write.interior
    dst[0] = np.where(f.center, 0.0, vx)
    dst[1] = np.where(f.center, 0.0, vy)
    velocity.swap()


# ── Public operators ──────────────────────────────────────────────────────────

def _enforce_sequential(velocity: DoubleField, mask: ObstacleMask, damping: float) -> None:
    _enforce_loops(velocity.read.data, mask.solid, damping)


_REFLECT = {BACKEND_SEQUENTIAL: _reflect_loops, BACKEND_PARALLEL: _reflect_numpy}
_ENFORCE = {BACKEND_SEQUENTIAL: _enforce_sequential, BACKEND_PARALLEL: _enforce_numpy}


def reflect_edges(field: GridField, vector: bool = False,
                  backend: str = BACKEND_SEQUENTIAL) -> None:
    """Fill the halo of `field` by edge reflection (see module docstring)."""
    dispatch(_REFLECT, backend)(field.data, vector)


def enforce_obstacles(velocity: DoubleField, mask: ObstacleMask, damping: float = 0.99,
                      backend: str = BACKEND_PARALLEL) -> None:
    """No-penetration + damped free-slip at every obstacle face."""
    dispatch(_ENFORCE, backend)(velocity, mask, damping)


def enforce_boundaries(velocity: DoubleField, mask: ObstacleMask, damping: float,
                       backend: str) -> None:
    """
    Called by the orchestrator after every velocity-modifying step.

    SEQUENTIAL : obstacle faces (only if the mask has solids), then edge
                 reflection of the halo.
    PARALLEL   : obstacle faces as a full read → write pass, then the halo
                 is clamp-replicated like an edge-clamped texture.
    """
    if check_backend(backend) == BACKEND_SEQUENTIAL:
        if mask.any_solid:
            _enforce_sequential(velocity, mask, damping)
        _reflect_loops(velocity.read.data, True)
    else:
        _enforce_numpy(velocity, mask, damping)
        velocity.read.replicate_halo()
