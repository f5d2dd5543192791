"""
backend.py — Execution Model Switch
====================================
Every operator in this package exists twice:

  SEQUENTIAL : nested loops over the interior cells, one thread, fixed
               row-major order. Compiled with numba so the reference path
               is usable at interactive grid sizes.
  PARALLEL   : per-cell stencils written as whole-array NumPy passes.
               Each pass reads only the `read` buffer of a DoubleField and
               writes only its `write` buffer, so every cell could run at
               the same time (GPU-style).

Operators register one kernel per backend and pick one with `dispatch()`.
"""

BACKEND_SEQUENTIAL = "SEQUENTIAL"
BACKEND_PARALLEL   = "PARALLEL"

BACKENDS = (BACKEND_SEQUENTIAL, BACKEND_PARALLEL)


def check_backend(backend: str) -> str:
    """Normalise a backend name ('parallel' → 'PARALLEL') or raise ValueError."""
    name = str(backend).upper()
    if name not in BACKENDS:
        raise ValueError(f"Unknown backend: {backend}. Use 'SEQUENTIAL' or 'PARALLEL'.")
    return name


def dispatch(kernels: dict, backend: str):
    """Return the kernel registered for `backend`."""
    return kernels[check_backend(backend)]
