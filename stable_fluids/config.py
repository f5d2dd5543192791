"""
config.py — Tunable Solver Parameters
======================================
One dataclass holds every knob the step pipeline reads. Each field carries
metadata (range, label, description) so a GUI can build sliders from it
without hard-coding anything.

Two presets exist because the two execution models were tuned differently:
the sequential reference runs plain Stable Fluids (no confinement, 20
pressure iterations), the parallel path adds vorticity confinement and a
50-iteration pressure solve.
"""

import json
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Optional

import numpy as np

from .backend import BACKEND_PARALLEL, check_backend


@dataclass
class FluidConfig:
    """Parameter set for one FluidSimulation."""

    # ── Velocity ───────────────────────────────────────────────────────────
    viscosity: float = field(
        default=1e-4,
        metadata={"min": 0.0, "max": 1.0, "label": "Viscosity",
                  "description": "Fluid thickness (0 = inviscid)"}
    )
    velocity_dissipation: float = field(
        default=1.0,
        metadata={"min": 0.0, "max": 1.0, "label": "Velocity Dissipation",
                  "description": "Per-step velocity multiplier (1.0 = no decay)"}
    )
    vorticity: float = field(
        default=0.0,
        metadata={"min": 0.0, "max": 60.0, "label": "Vorticity",
                  "description": "Vortex confinement strength (0 = off)"}
    )

    # ── Density (dye) ──────────────────────────────────────────────────────
    diffusion: float = field(
        default=1e-4,
        metadata={"min": 0.0, "max": 1.0, "label": "Diffusion",
                  "description": "How fast dye spreads to neighbouring cells"}
    )
    density_dissipation: float = field(
        default=1.0,
        metadata={"min": 0.0, "max": 1.0, "label": "Density Dissipation",
                  "description": "Per-step dye multiplier (1.0 = no decay)"}
    )
    density_components: int = field(
        default=1,
        metadata={"min": 1, "max": 3, "label": "Dye Channels",
                  "description": "1 = grey smoke, 3 = RGB dye"}
    )

    # ── Solver ─────────────────────────────────────────────────────────────
    pressure_iterations: int = field(
        default=20,
        metadata={"min": 1, "max": 200, "label": "Pressure Iterations",
                  "description": "Relaxation passes for the pressure solve"}
    )
    diffusion_iterations: int = field(
        default=20,
        metadata={"min": 1, "max": 200, "label": "Diffusion Iterations",
                  "description": "Relaxation passes for viscosity and dye diffusion"}
    )
    grid_scale: Optional[float] = field(
        default=None,
        metadata={"min": 0.0, "max": None, "label": "Grid Scale",
                  "description": "1 / cell spacing; None = max(width, height)"}
    )

    # ── Walls & injection ──────────────────────────────────────────────────
    wall_damping: float = field(
        default=0.99,
        metadata={"min": 0.0, "max": 1.0, "label": "Wall Damping",
                  "description": "Tangential velocity kept next to a wall (friction)"}
    )
    wall_thickness: int = field(
        default=2,
        metadata={"min": 1, "max": 64, "label": "Wall Thickness",
                  "description": "Width in cells of the edge wall bands"}
    )
    splat_radius: float = field(
        default=0.001,
        metadata={"min": 1e-6, "max": 1.0, "label": "Splat Radius",
                  "description": "Gaussian falloff of splats, fraction of the domain"}
    )
    dtype: str = field(
        default="float32",
        metadata={"label": "Precision", "description": "Field sample type"}
    )

    @classmethod
    def for_backend(cls, backend: str, **overrides) -> "FluidConfig":
        """Preset matching how each execution model is normally run."""
        backend = check_backend(backend)
        if backend == BACKEND_PARALLEL:
            preset = cls(density_dissipation=0.999, pressure_iterations=50, vorticity=3.0)
        else:
            preset = cls()
        return replace(preset, **overrides)

    def resolve_grid_scale(self, width: int, height: int) -> float:
        if self.grid_scale is None:
            return float(max(width, height))
        return float(self.grid_scale)

    def validate(self) -> "FluidConfig":
        """Raise ValueError on any out-of-range parameter."""
        for name in ("viscosity", "diffusion", "vorticity"):
            if getattr(self, name) < 0.0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        for name in ("velocity_dissipation", "density_dissipation"):
            value = getattr(self, name)
            if not 0.0 < value <= 1.0:
                raise ValueError(f"{name} must be in (0, 1], got {value}")
        for name in ("pressure_iterations", "diffusion_iterations", "wall_thickness"):
            if int(getattr(self, name)) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        if not 1 <= self.density_components <= 3:
            raise ValueError(f"density_components must be 1..3, got {self.density_components}")
        if not 0.0 <= self.wall_damping <= 1.0:
            raise ValueError(f"wall_damping must be in [0, 1], got {self.wall_damping}")
        if self.splat_radius <= 0.0:
            raise ValueError(f"splat_radius must be > 0, got {self.splat_radius}")
        if self.grid_scale is not None and self.grid_scale <= 0.0:
            raise ValueError(f"grid_scale must be > 0, got {self.grid_scale}")
        try:
            np.dtype(self.dtype)
        except TypeError as exc:
            raise ValueError(f"Unknown dtype: {self.dtype}") from exc
        return self

    @classmethod
    def field_info(cls) -> dict:
        """Field name → {type, default, min, max, label, description}."""
        result = {}
        for f in fields(cls):
            info = {"type": f.type, "default": f.default}
            info.update(f.metadata)
            result[f.name] = info
        return result

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: dict) -> "FluidConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        return cls(**values).validate()

    def save(self, path) -> None:
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path) -> "FluidConfig":
        with open(Path(path)) as f:
            return cls.from_dict(json.load(f))
