"""
simulation.py — Master Physics Loop
====================================
The complete simulation step that ties everything together.
One call to `step(dt)` advances the fluid by dt seconds.

Physics pipeline per frame:
  1. Diffuse velocity (viscosity)             → enforce walls
  2. Vorticity confinement (if enabled)       → enforce walls
  3. Advect velocity (self-advection)         → enforce walls
  4. Project velocity (incompressibility)     → enforce walls
  5. Diffuse density (smoke spreading)
  6. Advect density (smoke movement)

Confinement acts on the pre-advected field so the spin it adds is itself
carried forward by step 3. It is on in the PARALLEL preset and off in the
SEQUENTIAL one.

Input (splats, point injection) is applied between steps, never inside one.
"""

import time

import numpy as np
from numba.core.errors import NumbaError

from .advect import advect
from .backend import BACKEND_PARALLEL, BACKEND_SEQUENTIAL, check_backend
from .boundary import enforce_boundaries, reflect_edges
from .config import FluidConfig
from .diffuse import diffuse
from .forces import add_point, compute_curl, confine_vorticity, splat
from .grid import DoubleField, GridField
from .obstacles import ObstacleMask
from .solver import compute_divergence, project


DEBUG_FIELDS = ("density", "velocity", "pressure", "divergence", "curl", "obstacles")


class FluidSimulation:
    """
    The complete 2D fluid simulation.

    Usage:
        sim = FluidSimulation(64, 64, backend="PARALLEL")
        sim.update_boundaries(top=True, bottom=True, left=True, right=True)
        sim.splat("density", 32, 32, 1.0)
        sim.splat("velocity", 32, 32, 10.0, 0.0)
        for frame in range(100):
            sim.step(0.016)
            density = sim.render()     # Hand to visualizer
    """

    def __init__(self, width: int, height: int, backend: str = BACKEND_PARALLEL,
                 config: FluidConfig = None):
        """
        Args:
            width, height : Interior grid size in cells
            backend       : "SEQUENTIAL" (numba loops) or "PARALLEL" (NumPy passes)
            config        : Parameter set; defaults to the backend's preset
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Grid dimensions must be positive, got {width}x{height}")

        self.backend = check_backend(backend)
        if config is None:
            config = FluidConfig.for_backend(self.backend)
        self.config = config.validate()

        dtype = np.dtype(self.config.dtype)
        if not np.issubdtype(dtype, np.floating):
            raise ValueError(f"Floating-point fields are required, got dtype={dtype.name}")

        self.width = int(width)
        self.height = int(height)
        self.grid_scale = self.config.resolve_grid_scale(self.width, self.height)

        self.velocity   = DoubleField(self.width, self.height, 2, dtype)
        self.density    = DoubleField(self.width, self.height, self.config.density_components, dtype)
        self.pressure   = DoubleField(self.width, self.height, 1, dtype)
        self.divergence = GridField(self.width, self.height, 1, dtype)
        self.curl       = GridField(self.width, self.height, 1, dtype)
        self.obstacles  = ObstacleMask(self.width, self.height, dtype)

        self.frame = 0
        self.perf_log = []   # stores timing data per frame

        if self.backend == BACKEND_SEQUENTIAL:
            _compile_kernels(dtype, self.config.density_components)

        print(f"[Simulation] {self.width}x{self.height} grid ready "
              f"(backend={self.backend}, dtype={dtype.name})")

    # ── Input ──────────────────────────────────────────────────────────────

    def _resolve(self, target) -> DoubleField:
        if isinstance(target, DoubleField):
            if target is not self.density and target is not self.velocity:
                raise ValueError("Splat target must be this simulation's density or velocity")
            return target
        if target == "density":
            return self.density
        if target == "velocity":
            return self.velocity
        raise ValueError(f"Unknown splat target: {target}. Use 'density' or 'velocity'.")

    def _refresh_halo(self, field: DoubleField) -> None:
        # The sequential kernels read the reflected halo directly
        if self.backend == BACKEND_SEQUENTIAL:
            reflect_edges(field.read, vector=field is self.velocity,
                          backend=BACKEND_SEQUENTIAL)

    def splat(self, target, x: float, y: float,
              vx: float, vy: float = 0.0, vz: float = 0.0) -> None:
        """
        Gaussian injection around grid position (x, y).

        Args:
            target     : "density", "velocity", or one of the two DoubleFields
            x, y       : 0-based grid coordinates (already mapped from screen space)
            vx, vy, vz : Amount per component; velocity uses (vx, vy),
                         density uses the first `density_components` values
        """
        field = self._resolve(target)
        value = (vx, vy, vz)[:field.components]
        splat(field, x, y, value, self.config.splat_radius, self.obstacles)
        self._refresh_halo(field)

    def add_density(self, row: int, col: int, amount: float) -> None:
        """Add dye to one cell (row = y, col = x, 0-based interior)."""
        add_point(self.density, row, col, amount)
        self._refresh_halo(self.density)

    def add_velocity(self, row: int, col: int, dx: float, dy: float) -> None:
        """Add a velocity impulse to one cell (row = y, col = x, 0-based interior)."""
        add_point(self.velocity, row, col, (dx, dy))
        self._refresh_halo(self.velocity)

    def update_boundaries(self, top: bool, bottom: bool, left: bool, right: bool) -> None:
        """Rebuild the obstacle mask with wall bands on the selected edges."""
        self.obstacles.set_walls(top, bottom, left, right, thickness=self.config.wall_thickness)
        print(f"[Simulation] Walls set: top={top}, bottom={bottom}, "
              f"left={left}, right={right}")

    # ── Stepping ───────────────────────────────────────────────────────────

    def _enforce(self) -> None:
        enforce_boundaries(self.velocity, self.obstacles, self.config.wall_damping, self.backend)

    def step(self, dt: float = 0.016) -> dict:
        """
        Advance simulation by one timestep (dt seconds).

        Returns performance metrics dict for benchmarking.
        """
        if dt <= 0.0:
            raise ValueError(f"dt must be > 0, got {dt}")

        t_total_start = time.perf_counter()
        cfg = self.config
        mask = self.obstacles
        backend = self.backend
        gs = self.grid_scale

        # ── Step 1: Diffuse velocity (viscosity) ───────────────────────────
        t0 = time.perf_counter()
        diffuse(self.velocity, mask, cfg.viscosity, dt, cfg.diffusion_iterations,
                gs, backend, vector=True)
        self._enforce()
        t_diffuse_vel = (time.perf_counter() - t0) * 1000

        # ── Step 2: Vorticity confinement ──────────────────────────────────
        t0 = time.perf_counter()
        if cfg.vorticity > 0.0:
            compute_curl(self.velocity, self.curl, mask, backend)
            confine_vorticity(self.velocity, self.curl, mask, cfg.vorticity, dt, backend)
            self._enforce()
        t_vorticity = (time.perf_counter() - t0) * 1000

        # ── Step 3: Advect velocity (self-advection) ───────────────────────
        t0 = time.perf_counter()
        advect(self.velocity, self.velocity, mask, dt, cfg.velocity_dissipation, gs, backend)
        self._enforce()
        t_advect_vel = (time.perf_counter() - t0) * 1000

        # ── Step 4: Project (enforce incompressibility) ────────────────────
        # This is the expensive step.
        t0 = time.perf_counter()
        proj_metrics = project(self.velocity, self.pressure, self.divergence, mask,
                               cfg.pressure_iterations, backend)
        self._enforce()
        t_project = (time.perf_counter() - t0) * 1000

        # ── Step 5: Diffuse density (smoke spreading) ──────────────────────
        t0 = time.perf_counter()
        diffuse(self.density, mask, cfg.diffusion, dt, cfg.diffusion_iterations,
                gs, backend, vector=False)
        t_diffuse_den = (time.perf_counter() - t0) * 1000

        # ── Step 6: Advect density (smoke movement) ────────────────────────
        t0 = time.perf_counter()
        advect(self.density, self.velocity, mask, dt, cfg.density_dissipation, gs, backend)
        t_advect_den = (time.perf_counter() - t0) * 1000

        # ── Frame bookkeeping ──────────────────────────────────────────────
        self.frame += 1
        t_total = (time.perf_counter() - t_total_start) * 1000

        metrics = {
            "frame"            : self.frame,
            "backend"          : backend,
            "total_ms"         : t_total,
            "fps"              : 1000.0 / t_total if t_total > 0 else 0,
            "diffuse_vel_ms"   : t_diffuse_vel,
            "vorticity_ms"     : t_vorticity,
            "advect_vel_ms"    : t_advect_vel,
            "project_ms"       : t_project,
            "diffuse_den_ms"   : t_diffuse_den,
            "advect_den_ms"    : t_advect_den,
            "divergence_max"   : proj_metrics["divergence_after_max"],
            "divergence_mean"  : proj_metrics["divergence_after_mean"],
            "density_total"    : self.measure_mass(),
        }
        self.perf_log.append(metrics)
        return metrics

    def reset(self) -> None:
        """Zero every field and the frame counter. Walls are kept."""
        for field in (self.velocity, self.density, self.pressure):
            field.clear()
        self.divergence.clear()
        self.curl.clear()
        self.frame = 0
        self.perf_log = []

    # ── Read-back ──────────────────────────────────────────────────────────

    def render(self) -> np.ndarray:
        """
        Read-only view of the current density: (H, W) for single-channel
        dye, (H, W, C) otherwise. Row 0 is the bottom of the domain.

        The view aliases the live read buffer. The next step() swaps that
        buffer into the write slot and overwrites it, so the view is only
        valid until then; copy it to keep a frame.
        """
        interior = self.density.read.interior
        if interior.shape[0] == 1:
            view = interior[0]
        else:
            view = np.moveaxis(interior, 0, -1)
        view = view.view()
        view.flags.writeable = False
        return view

    def read_field(self, name: str) -> np.ndarray:
        """
        Copy of a field for debugging/visualisation.

        Scalars come back as (H, W); velocity as (H, W, 2); density as
        (H, W) or (H, W, C); obstacles as a (H, W) 0/1 array.
        """
        if name == "density":
            return np.array(self.render())
        if name == "velocity":
            return np.moveaxis(self.velocity.read.interior, 0, -1).copy()
        if name == "pressure":
            return self.pressure.read.interior[0].copy()
        if name == "divergence":
            return self.divergence.interior[0].copy()
        if name == "curl":
            return self.curl.interior[0].copy()
        if name == "obstacles":
            return self.obstacles.field.interior[0].copy()
        raise ValueError(f"Unknown field: {name}. Use one of {', '.join(DEBUG_FIELDS)}.")

    def measure_mass(self) -> float:
        """Sum of every density sample. Should only fall between injections."""
        return self.density.read.total()

    def divergence_stats(self) -> dict:
        """Divergence of the current velocity over the fluid cells."""
        compute_divergence(self.velocity, self.divergence, self.obstacles, self.backend)
        div = np.abs(self.divergence.interior[0][~self.obstacles.faces().center])
        if div.size == 0:
            return {"max": 0.0, "mean": 0.0, "rms": 0.0}
        return {
            "max"  : float(div.max()),
            "mean" : float(div.mean()),
            "rms"  : float(np.sqrt(np.mean(div.astype(np.float64) ** 2))),
        }

    def print_status(self):
        """Pretty-print current simulation state."""
        vel = self.velocity.read.interior
        speed = np.sqrt(vel[0].astype(np.float64) ** 2 + vel[1].astype(np.float64) ** 2)
        density = self.density.read.interior
        pressure = self.pressure.read.interior
        div = self.divergence_stats()
        print(f"\n{'='*50}")
        print(f"  Frame: {self.frame}  |  Backend: {self.backend}")
        print(f"  Density   : max={density.max():.4f}, total={self.measure_mass():.2f}")
        print(f"  Velocity  : max_speed={speed.max():.4f}")
        print(f"  Divergence: max={div['max']:.6f}, mean={div['mean']:.8f}")
        print(f"  Pressure  : max={pressure.max():.4f}, min={pressure.min():.4f}")
        if self.perf_log:
            last = self.perf_log[-1]
            print(f"  Perf      : {last['total_ms']:.1f}ms/frame ({last['fps']:.1f} FPS)")
        print(f"{'='*50}")

    def __repr__(self):
        return (f"FluidSimulation({self.width}x{self.height}, backend={self.backend}, "
                f"frame={self.frame})")


def _compile_kernels(dtype, density_components: int) -> None:
    """
    Run every sequential operator once on a tiny grid so numba compiles
    them all now. A kernel that fails to compile stops construction.
    """
    n = 4
    velocity = DoubleField(n, n, 2, dtype)
    density = DoubleField(n, n, density_components, dtype)
    pressure = DoubleField(n, n, 1, dtype)
    divergence = GridField(n, n, 1, dtype)
    curl = GridField(n, n, 1, dtype)
    mask = ObstacleMask(n, n, dtype)
    mask.add_region(0, 0, 1, 1)

    try:
        diffuse(velocity, mask, 1e-4, 0.1, 1, float(n), BACKEND_SEQUENTIAL, vector=True)
        diffuse(density, mask, 1e-4, 0.1, 1, float(n), BACKEND_SEQUENTIAL)
        enforce_boundaries(velocity, mask, 0.99, BACKEND_SEQUENTIAL)
        compute_curl(velocity, curl, mask, BACKEND_SEQUENTIAL)
        confine_vorticity(velocity, curl, mask, 1.0, 0.1, BACKEND_SEQUENTIAL)
        advect(velocity, velocity, mask, 0.1, 1.0, float(n), BACKEND_SEQUENTIAL)
        advect(density, velocity, mask, 0.1, 1.0, float(n), BACKEND_SEQUENTIAL)
        project(velocity, pressure, divergence, mask, 1, BACKEND_SEQUENTIAL)
    except NumbaError as exc:
        raise RuntimeError(f"Sequential kernel compilation failed:\n{exc}") from exc
