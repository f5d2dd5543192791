"""
obstacles.py — Solid/Fluid Obstacle Mask
=========================================
A single scalar field: 0 = fluid, 1 = solid. Anything above SOLID_THRESHOLD
counts as solid, so soft (anti-aliased) masks still work.

Every operator consults the mask to keep fluid from flowing through walls.
The mask changes only when the wall configuration is rebuilt, and is
read-only while a step runs.

Per-face neighbour flags ("is my left/right/bottom/top neighbour solid?")
are cached and rebuilt on every change, so the per-cell kernels don't have
to recompute them each pass.
"""

from collections import namedtuple

import numpy as np

from .grid import GridField, neighbours


SOLID_THRESHOLD = 0.1

Faces = namedtuple("Faces", ["left", "right", "bottom", "top", "center"])


class ObstacleMask:
    """Binary solid/fluid mask over a padded grid."""

    def __init__(self, width: int, height: int, dtype="float32"):
        self.field = GridField(width, height, components=1, dtype=dtype)
        self.revision = 0
        self._solid = None
        self._faces = None
        self._rebuild()

    @property
    def width(self) -> int:
        return self.field.width

    @property
    def height(self) -> int:
        return self.field.height

    @property
    def solid(self) -> np.ndarray:
        """Boolean (H + 2, W + 2) array, True where the cell is solid."""
        return self._solid

    @property
    def any_solid(self) -> bool:
        return bool(self._faces.center.any())

    def faces(self) -> Faces:
        """Cached interior-sized solid flags for each neighbour direction."""
        return self._faces

    def is_solid(self, x: int, y: int) -> bool:
        return self.field.get(x, y) > SOLID_THRESHOLD

    # ── Mutators ───────────────────────────────────────────────────────────

    def clear(self) -> None:
        self.field.clear()
        self._rebuild()

    def set_walls(self, top: bool, bottom: bool, left: bool, right: bool,
                  thickness: int = 2) -> None:
        """
        Reset the mask to fluid, then mark `thickness`-cell solid bands
        along the requested domain edges.
        """
        if thickness < 1:
            raise ValueError(f"Wall thickness must be >= 1, got {thickness}")

        cells = self.field.interior[0]
        cells[...] = 0.0
        t = thickness
        if top:
            cells[-t:, :] = 1.0
        if bottom:
            cells[:t, :] = 1.0
        if left:
            cells[:, :t] = 1.0
        if right:
            cells[:, -t:] = 1.0
        self._rebuild()

    def add_region(self, x: int, y: int, w: int, h: int) -> None:
        """Mark the rectangle [x, x + w) × [y, y + h) (interior coords) as solid."""
        cells = self.field.interior[0]
        x0, x1 = max(0, x), min(self.width, x + w)
        y0, y1 = max(0, y), min(self.height, y + h)
        cells[y0:y1, x0:x1] = 1.0
        self._rebuild()

    def add(self, mask: np.ndarray) -> None:
        """Boolean OR of an external (height, width) mask into this one."""
        mask = np.asarray(mask)
        if mask.shape != (self.height, self.width):
            raise ValueError(f"Mask shape {mask.shape} does not match grid "
                             f"{(self.height, self.width)}")
        cells = self.field.interior[0]
        cells[mask > SOLID_THRESHOLD] = 1.0
        self._rebuild()

    # ── Internals ──────────────────────────────────────────────────────────

    def _rebuild(self) -> None:
        # Walls touching the domain edge continue into the halo
        self.field.replicate_halo()
        self._solid = self.field.data[0] > SOLID_THRESHOLD
        self._faces = Faces(*neighbours(self._solid))
        self.revision += 1

    def __repr__(self):
        n_solid = int(self._faces.center.sum())
        return f"ObstacleMask({self.width}x{self.height}, solid_cells={n_solid})"
