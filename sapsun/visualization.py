"""
Diagnostic plots for plants and runs.

Two figures are provided:
- `plot_plant`: the segment tree as colored line segments, with the
  soil surface at y = 0 and roots drawn below it
- `plot_trajectory`: climate, economy and structure over a run

Both take an optional axes (or figure) and return the figure, so they
work headless with the Agg backend.
"""

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.collections import LineCollection

from sapsun.config import SegmentType
from sapsun.rollout import Trajectory
from sapsun.store import StoreSnapshot

SEGMENT_COLORS = {
    SegmentType.SEED: "#C8A165",
    SegmentType.ROOT: "#A0522D",
    SegmentType.TRUNK: "#6B4226",
    SegmentType.BRANCH: "#8B5A2B",
    SegmentType.LEAF: "#4CAF50",
}
DEAD_COLOR = "#7F7F7F"
SOIL_COLOR = "#8D6E63"
SKY_COLOR = "#E3F2FD"


def plot_plant(snapshot: StoreSnapshot, ax=None, show_pressure: bool = False):
    """
    Draw the plant's segment tree.

    Each segment is a line from its parent's position to its own, with
    width proportional to its radius. Dead segments are drawn grey.
    World +y points into the soil, so the y axis is inverted.

    Args:
        snapshot: Store snapshot to draw
        ax: Matplotlib axes (a new figure is created if None)
        show_pressure: Color living segments by water pressure instead of type

    Returns:
        The figure containing `ax`
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 10))
    else:
        fig = ax.figure

    segments = snapshot.segments
    lines, colors, widths = [], [], []
    pressure_cmap = matplotlib.colormaps["Blues"]
    for segment in segments.values():
        if segment.parent_id is None:
            continue
        parent = segments[segment.parent_id]
        lines.append([parent.position, segment.position])
        if not segment.active:
            colors.append(DEAD_COLOR)
        elif show_pressure:
            colors.append(pressure_cmap(0.2 + 0.8 * segment.pressure))
        else:
            colors.append(SEGMENT_COLORS[segment.kind])
        widths.append(1.0 + 120.0 * segment.radius)

    xs = np.array([s.position.x for s in segments.values()])
    ys = np.array([s.position.y for s in segments.values()])
    margin = 0.5
    x_min, x_max = xs.min() - margin, xs.max() + margin
    y_min, y_max = ys.min() - margin, max(ys.max(), 0.0) + margin

    ax.axhspan(0.0, y_max, color=SOIL_COLOR, alpha=0.3, zorder=0)
    ax.axhspan(y_min, 0.0, color=SKY_COLOR, alpha=0.5, zorder=0)
    ax.axhline(0.0, color=SOIL_COLOR, linewidth=1.5, zorder=1)

    if lines:
        ax.add_collection(
            LineCollection(lines, colors=colors, linewidths=widths, capstyle="round", zorder=2)
        )

    seed = segments[snapshot.seed_id]
    ax.scatter([seed.position.x], [seed.position.y], s=80, color=SEGMENT_COLORS[SegmentType.SEED],
               edgecolor="black", zorder=3)
    if snapshot.selected_id is not None and snapshot.selected_id in segments:
        chosen = segments[snapshot.selected_id].position
        ax.scatter([chosen.x], [chosen.y], s=160, facecolor="none", edgecolor="red",
                   linewidth=2, zorder=4)

    ax.set_xlim(x_min, x_max)
    ax.set_ylim(y_max, y_min)  # Inverted: soil at the bottom
    ax.set_aspect("equal")
    ax.set_xlabel("x (m)")
    ax.set_ylabel("depth (m)")
    climate = snapshot.climate
    ax.set_title(
        f"Day {climate.day}, tick {climate.tick}: "
        f"{len(segments)} segments, sugar {snapshot.resources.sugar:.1f}"
    )
    return fig


def plot_trajectory(trajectory: Trajectory, fig=None):
    """
    Plot a run's histories in four stacked panels.

    Panels: climate (sun, soil water, rain), economy (sugar, water),
    metabolism (produced, respired per tick), structure (segment counts
    and mean stress).
    """
    if len(trajectory) == 0:
        raise ValueError("Nothing to plot: trajectory is empty")
    if fig is None:
        fig = plt.figure(figsize=(10, 12))
    axes = fig.subplots(4, 1, sharex=True)
    arrays = {k: np.asarray(v) for k, v in trajectory.get_arrays().items()}
    ticks = np.asarray(trajectory.ticks)

    ax = axes[0]
    ax.plot(ticks, arrays["sun"], color="orange", label="Sun")
    ax.plot(ticks, arrays["soil_water"], color="steelblue", label="Soil water")
    ax.fill_between(ticks, 0, 1, where=arrays["rain"], color="gray", alpha=0.2, label="Rain")
    ax.set_ylim(0, 1.05)
    ax.set_ylabel("Climate")
    ax.legend(loc="upper right")

    ax = axes[1]
    ax.plot(ticks, arrays["sugar"], color="goldenrod", label="Sugar")
    ax.plot(ticks, arrays["water"], color="teal", label="Water")
    ax.set_ylabel("Resources")
    ax.legend(loc="upper right")

    ax = axes[2]
    ax.plot(ticks, arrays["produced"], color="green", label="Produced")
    ax.plot(ticks, arrays["respired"], color="brown", label="Respired")
    ax.set_ylabel("Sugar / tick")
    ax.legend(loc="upper right")

    ax = axes[3]
    ax.plot(ticks, arrays["segments"], color="black", label="Segments")
    ax.plot(ticks, arrays["living"], color="green", linestyle="--", label="Living")
    ax.set_ylabel("Count")
    ax.set_xlabel("Tick")
    stress_ax = ax.twinx()
    stress_ax.plot(ticks, arrays["stress"], color="red", alpha=0.6, label="Mean stress")
    stress_ax.set_ylim(0, 1)
    stress_ax.set_ylabel("Stress")
    ax.legend(loc="upper left")

    fig.tight_layout()
    return fig


def save_figure(fig, path: str, dpi: int = 120) -> None:
    """Save and close a figure."""
    fig.savefig(path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
