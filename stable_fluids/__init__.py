"""
stable_fluids/ — 2D Stable Fluids Solver
=========================================
Exports the main interfaces callers use.

Viewer / CLI imports: FluidSimulation → splat(), step(), render()
Tests import the operators directly to check them one at a time.
"""

from .advect import advect
from .backend import BACKEND_PARALLEL, BACKEND_SEQUENTIAL, BACKENDS
from .boundary import enforce_boundaries, enforce_obstacles, reflect_edges
from .config import FluidConfig
from .diffuse import diffuse, relax
from .forces import add_point, compute_curl, confine_vorticity, splat
from .grid import DoubleField, GridField
from .obstacles import ObstacleMask
from .simulation import FluidSimulation
from .solver import compute_divergence, project, subtract_gradient

__all__ = [
    "FluidSimulation", "FluidConfig",
    "GridField", "DoubleField", "ObstacleMask",
    "BACKEND_SEQUENTIAL", "BACKEND_PARALLEL", "BACKENDS",
    "advect", "relax", "diffuse", "project", "compute_divergence", "subtract_gradient",
    "compute_curl", "confine_vorticity", "splat", "add_point",
    "reflect_edges", "enforce_obstacles", "enforce_boundaries",
]
