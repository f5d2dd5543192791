"""
visualizer.py — Density Viewer with Debug Panel
================================================
Renders the density field of a running FluidSimulation, plus an optional
second panel with one of the solver's internal fields:
  - divergence : what the pressure solve failed to remove (diverging map)
  - pressure   : the Poisson solution (diverging map)
  - velocity   : speed magnitude
  - obstacles  : the solid/fluid mask

Uses matplotlib FuncAnimation for real-time updates. The viewer only
consumes splat(), step() and read-back; it contains no physics.
"""

import numpy as np
import matplotlib.pyplot as plt
import matplotlib.animation as animation
from matplotlib.colors import LinearSegmentedColormap

# Custom smoke colormap: black → orange → white
SMOKE_COLORS = ["#000000", "#1a0a00", "#ff6a00", "#ffffff"]
smoke_cmap = LinearSegmentedColormap.from_list("smoke", SMOKE_COLORS)

DEBUG_CMAPS = {
    "divergence": "coolwarm",
    "pressure":   "coolwarm",
    "velocity":   "viridis",
    "obstacles":  "gray",
}


class FluidVisualizer:
    """
    Real-time viewer of the fluid simulation.

    Usage (standalone):
        from stable_fluids import FluidSimulation
        from visualizer import FluidVisualizer

        sim = FluidSimulation(64, 64)
        viz = FluidVisualizer(sim, debug="divergence")
        viz.run()  # Opens live window
    """

    def __init__(self, simulation, debug: str = None):
        """
        Args:
            simulation : FluidSimulation instance
            debug      : Extra panel ("divergence", "pressure", "velocity",
                         "obstacles") or None for density only
        """
        if debug is not None and debug not in DEBUG_CMAPS:
            raise ValueError(f"Unknown debug field: {debug}. "
                             f"Use one of {', '.join(DEBUG_CMAPS)}.")
        self.sim = simulation
        self.debug = debug
        self._setup_figure()

    def _setup_figure(self):
        """Initialize the matplotlib figure with one or two panels."""
        n_panels = 2 if self.debug else 1
        self.fig, axes = plt.subplots(1, n_panels, figsize=(6 * n_panels, 6))
        self.axes = np.atleast_1d(axes)
        self.fig.patch.set_facecolor('#0a0a0a')

        titles = ["density"] + ([self.debug] if self.debug else [])
        cmaps = [smoke_cmap] + ([DEBUG_CMAPS[self.debug]] if self.debug else [])
        dummy = np.zeros((self.sim.height, self.sim.width))
        self.imgs = []

        for ax, title, cmap in zip(self.axes, titles, cmaps):
            ax.set_facecolor('#0a0a0a')
            ax.set_title(title, color='#aaaaaa', fontsize=9, fontfamily='monospace')
            ax.set_xticks([])
            ax.set_yticks([])
            for spine in ax.spines.values():
                spine.set_edgecolor('#333333')

            img = ax.imshow(
                dummy, cmap=cmap,
                vmin=0, vmax=1.0,
                interpolation='bilinear',
                origin='lower',   # row 0 is the bottom of the domain
                aspect='equal'
            )
            self.imgs.append(img)

        self.title_text = self.fig.suptitle(
            f"Fluid Sim — Frame 0 | {self.sim.backend} | 0.0 FPS",
            color='#cccccc', fontsize=10, fontfamily='monospace'
        )

        plt.tight_layout()

    def _density_image(self) -> np.ndarray:
        d = self.sim.render()
        if d.ndim == 3:
            # Pad 2-channel dye to RGB for imshow
            rgb = np.zeros(d.shape[:2] + (3,), dtype=np.float32)
            rgb[..., :d.shape[2]] = d
            return np.clip(rgb, 0.0, 1.0)
        return d

    def _debug_image(self) -> np.ndarray:
        if self.debug == "velocity":
            v = self.sim.read_field("velocity")
            return np.sqrt(v[..., 0] ** 2 + v[..., 1] ** 2)
        return self.sim.read_field(self.debug)

    def _inject(self):
        """Continuous smoke source near the bottom, pushing upward."""
        x, y = self.sim.width / 2, self.sim.height / 8
        self.sim.splat("density", x, y, 1.0, 1.0, 1.0)
        self.sim.splat("velocity", x, y, 0.0, 5.0)

    def update(self, frame_num):
        """Called by FuncAnimation each frame. Steps sim and updates plots."""
        self._inject()
        metrics = self.sim.step(1.0 / 60.0)

        self.imgs[0].set_data(self._density_image())
        if self.debug:
            data = self._debug_image()
            self.imgs[1].set_data(data)
            if self.debug in ("divergence", "pressure"):
                # Symmetric range so 0 stays white
                lim = max(float(np.abs(data).max()), 1e-6)
                self.imgs[1].set_clim(-lim, lim)
            else:
                self.imgs[1].set_clim(0.0, max(float(data.max()), 1e-6))

        self.title_text.set_text(
            f"Fluid Sim — Frame {metrics['frame']} | {metrics['backend']} | "
            f"{metrics['fps']:.1f} FPS | "
            f"div_max={metrics['divergence_max']:.5f}"
        )

        return self.imgs + [self.title_text]

    def run(self, fps: int = 30, frames: int = 500):
        """
        Start the live animation window.

        Args:
            fps    : Target animation frame rate
            frames : Total frames to render
        """
        interval_ms = 1000 // fps
        self.anim = animation.FuncAnimation(
            self.fig,
            self.update,
            frames=frames,
            interval=interval_ms,
            blit=False
        )
        plt.show()

    def save_gif(self, path: str = "fluid_sim.gif", fps: int = 30, frames: int = 100):
        """Save animation as a GIF (for reports and demos)."""
        print(f"Rendering {frames} frames to {path}...")
        self.anim = animation.FuncAnimation(
            self.fig, self.update, frames=frames, interval=1000 // fps, blit=False
        )
        writer = animation.PillowWriter(fps=fps)
        self.anim.save(path, writer=writer)
        print(f"Saved: {path}")
