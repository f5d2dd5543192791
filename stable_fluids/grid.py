"""
grid.py — Padded Grid Fields and Ping-Pong Buffers
===================================================
The storage every operator works on.

Layout of one field:
  data.shape == (components, height + 2, width + 2)

  - axis 0 : components (1 for scalars, 2 for velocity, up to 4 for dye)
  - axis 1 : rows    → y, row 1 is the bottom of the domain, row H the top
  - axis 2 : columns → x, column 1 is the left edge, column W the right edge

The outer ring (HALO = 1 cell) is padding. It lets every interior cell read
its 4 neighbours without bounds checks. Halo cells only ever hold copies or
reflections of interior values, never primary state.

A DoubleField is a {read, write} pair of identical GridFields. Operators read
`read`, write `write`, then swap(). Swapping exchanges references, not data.
"""

import numpy as np


HALO = 1
MAX_COMPONENTS = 4


class GridField:
    """
    Fixed-size 2D field of scalar or small-vector samples with a halo ring.

    Coordinates passed to get/set/add are 0-based interior coordinates:
    (x, y) = (0, 0) is the bottom-left simulated cell.
    """

    def __init__(self, width: int, height: int, components: int = 1, dtype="float32"):
        if width <= 0 or height <= 0:
            raise ValueError(f"Grid dimensions must be positive, got {width}x{height}")
        if not 1 <= components <= MAX_COMPONENTS:
            raise ValueError(f"components must be in 1..{MAX_COMPONENTS}, got {components}")

        self.width = int(width)
        self.height = int(height)
        self.components = int(components)
        self.data = np.zeros(
            (self.components, self.height + 2 * HALO, self.width + 2 * HALO),
            dtype=np.dtype(dtype),
        )

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    @property
    def shape(self) -> tuple:
        return self.data.shape

    @property
    def interior(self) -> np.ndarray:
        """View of the simulated cells, shape (components, height, width)."""
        return self.data[:, HALO:-HALO, HALO:-HALO]

    def get(self, x: int, y: int):
        sample = self.data[:, y + HALO, x + HALO]
        if self.components == 1:
            return float(sample[0])
        return sample.copy()

    def set(self, x: int, y: int, value) -> None:
        self.data[:, y + HALO, x + HALO] = value

    def add(self, x: int, y: int, value) -> None:
        self.data[:, y + HALO, x + HALO] += value

    def fill(self, value) -> None:
        self.data[...] = value

    def clear(self) -> None:
        self.data.fill(0.0)

    def copy(self) -> "GridField":
        clone = GridField(self.width, self.height, self.components, self.dtype)
        np.copyto(clone.data, self.data)
        return clone

    def copy_from(self, other: "GridField") -> None:
        if other.shape != self.shape:
            raise ValueError(f"Shape mismatch: {other.shape} vs {self.shape}")
        np.copyto(self.data, other.data)

    def total(self) -> float:
        """Sum of every interior sample (all components)."""
        return float(self.interior.sum(dtype=np.float64))

    def replicate_halo(self) -> None:
        """
        Clamp-to-edge padding: every halo cell copies its nearest interior cell.
        This is what texture sampling with CLAMP_TO_EDGE does on a GPU.
        """
        d = self.data
        d[:, 0, :] = d[:, 1, :]
        d[:, -1, :] = d[:, -2, :]
        d[:, :, 0] = d[:, :, 1]
        d[:, :, -1] = d[:, :, -2]

    def __repr__(self):
        return (f"GridField({self.width}x{self.height}, components={self.components}, "
                f"dtype={self.dtype.name})")


class DoubleField:
    """Read/write pair of GridFields with an O(1) identity swap."""

    def __init__(self, width: int, height: int, components: int = 1, dtype="float32"):
        self.read = GridField(width, height, components, dtype)
        self.write = GridField(width, height, components, dtype)

    @property
    def width(self) -> int:
        return self.read.width

    @property
    def height(self) -> int:
        return self.read.height

    @property
    def components(self) -> int:
        return self.read.components

    @property
    def dtype(self) -> np.dtype:
        return self.read.dtype

    def swap(self) -> None:
        self.read, self.write = self.write, self.read

    def clear(self) -> None:
        self.read.clear()
        self.write.clear()

    def __repr__(self):
        return f"DoubleField({self.width}x{self.height}, components={self.components})"


def neighbours(data: np.ndarray) -> tuple:
    """
    Interior-sized views of each cell's left, right, bottom, top and centre
    samples. Works on any array whose last two axes are (H + 2, W + 2).
    """
    return (
        data[..., 1:-1, :-2],   # left   (x - 1)
        data[..., 1:-1, 2:],    # right  (x + 1)
        data[..., :-2, 1:-1],   # bottom (y - 1)
        data[..., 2:, 1:-1],    # top    (y + 1)
        data[..., 1:-1, 1:-1],  # centre
    )
