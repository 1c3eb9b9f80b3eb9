"""
Particle trajectory visualization.

Trajectories come from the track log written by
``export_trajectories_to_csv`` (or directly from in-memory records via
``trajectories_to_dataframe``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np
import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.colors import Normalize
from matplotlib.cm import ScalarMappable
from mpl_toolkits.mplot3d.art3d import Poly3DCollection

from .. import config
from ..core.geometry import Geometry

# Type alias for trajectory data
TrajectoryDict = Dict[int, pd.DataFrame]


def load_trajectory_data(source: Union[str, Path, pd.DataFrame]) -> TrajectoryDict:
    """Split a track log into one time-ordered frame per particle.

    Parameters
    ----------
    source : str, Path or DataFrame
        Path to a track CSV file or an already loaded frame.
    """
    frame = source if isinstance(source, pd.DataFrame) else pd.read_csv(source)
    return {
        int(pid): group.sort_values("point_id").reset_index(drop=True)
        for pid, group in frame.groupby("particle_id")
    }


def _energy_norm(trajectories: TrajectoryDict, ids) -> Optional[Normalize]:
    energies = np.concatenate([trajectories[i]["energy_eV"].to_numpy() for i in ids]) if ids else np.array([])
    if energies.size == 0:
        return None
    return Normalize(vmin=float(energies.min()), vmax=float(energies.max()))


def _plot_solids(ax, geometry: Geometry) -> None:
    colors = plt.cm.tab10.colors
    for index, solid in enumerate(geometry.solids[1:]):
        mesh = solid.mesh
        v0 = mesh.vertices0
        triangles = np.stack([v0, v0 + mesh.edge1, v0 + mesh.edge2], axis=1)
        collection = Poly3DCollection(list(triangles), alpha=0.1, facecolor=colors[index % len(colors)],
                                      edgecolor="none", linewidths=0)
        ax.add_collection3d(collection)


def _finish(fig, save_path: Optional[str], suffix: str, dpi: int, show: bool):
    if save_path:
        Path(save_path).parent.mkdir(parents=True, exist_ok=True)
        plt.savefig(f"{save_path}_{suffix}.png", dpi=dpi, bbox_inches="tight")
        print(f"[info] Saved trajectory plot to {save_path}_{suffix}.png")
        plt.close(fig)
        return None
    if show:
        plt.show()
        return None
    return fig


def plot_trajectories_3d(
    trajectories: TrajectoryDict,
    geometry: Optional[Geometry] = None,
    max_trajectories: int = config.MAX_TRAJECTORIES_TO_PLOT,
    save_path: Optional[str] = None,
    dpi: int = config.PLOT_DPI,
    show: bool = False,
) -> Optional[plt.Figure]:
    """Plot trajectories in 3D, colored by total energy.

    Returns the figure when neither ``save_path`` nor ``show`` is given.
    """
    ids = sorted(trajectories)[:max_trajectories]
    norm = _energy_norm(trajectories, ids)
    if norm is None:
        print("[warning] No trajectory data to plot.")
        return None

    fig = plt.figure(figsize=(10, 10))
    ax = fig.add_subplot(111, projection="3d")
    cmap = plt.cm.plasma
    if geometry is not None:
        _plot_solids(ax, geometry)

    for pid in ids:
        traj = trajectories[pid]
        if len(traj) < 2:
            continue
        mid_energy = 0.5 * (traj["energy_eV"].iloc[0] + traj["energy_eV"].iloc[-1])
        ax.plot(traj["x_m"], traj["y_m"], traj["z_m"], color=cmap(norm(mid_energy)), linewidth=1.0, alpha=0.6)
        ax.scatter(traj["x_m"].iloc[0], traj["y_m"].iloc[0], traj["z_m"].iloc[0], c="green", s=20)
        ax.scatter(traj["x_m"].iloc[-1], traj["y_m"].iloc[-1], traj["z_m"].iloc[-1], c="red", marker="x", s=20)

    sm = ScalarMappable(cmap=cmap, norm=norm)
    sm.set_array([])
    cbar = plt.colorbar(sm, ax=ax, pad=0.05, shrink=0.5, aspect=30)
    cbar.set_label("Total energy (eV)", fontsize=12)
    ax.set_xlabel("X Position (m)")
    ax.set_ylabel("Y Position (m)")
    ax.set_zlabel("Z Position (m)")
    ax.set_title(f"Particle Trajectories (n={len(ids)})", fontsize=14, fontweight="bold")
    return _finish(fig, save_path, "3d", dpi, show)


def plot_trajectories_2d(
    trajectories: TrajectoryDict,
    max_trajectories: int = config.MAX_TRAJECTORIES_TO_PLOT,
    save_path: Optional[str] = None,
    dpi: int = config.PLOT_DPI,
    show: bool = False,
) -> Optional[plt.Figure]:
    """XY, XZ and YZ projections plus total energy against time."""
    ids = sorted(trajectories)[:max_trajectories]
    norm = _energy_norm(trajectories, ids)
    if norm is None:
        print("[warning] No trajectory data to plot.")
        return None

    fig, axes = plt.subplots(2, 2, figsize=config.TRAJECTORY_FIGSIZE)
    cmap = plt.cm.plasma
    projections = [
        (axes[0, 0], "x_m", "y_m", "XY Projection (Top View)"),
        (axes[0, 1], "x_m", "z_m", "XZ Projection (Side View)"),
        (axes[1, 0], "y_m", "z_m", "YZ Projection (Side View)"),
    ]
    for ax, col1, col2, title in projections:
        for pid in ids:
            traj = trajectories[pid]
            color = cmap(norm(traj["energy_eV"].iloc[0]))
            ax.plot(traj[col1], traj[col2], color=color, linewidth=1.0, alpha=0.5)
        ax.set_xlabel(f"{col1[0].upper()} Position (m)")
        ax.set_ylabel(f"{col2[0].upper()} Position (m)")
        ax.set_title(title, fontsize=12, fontweight="bold")
        ax.grid(True, alpha=0.3)

    ax_e = axes[1, 1]
    for pid in ids:
        traj = trajectories[pid]
        drift = traj["energy_eV"] - traj["energy_eV"].iloc[0]
        ax_e.plot(traj["time_s"], drift, linewidth=1.0, alpha=0.5)
    ax_e.set_xlabel("Time (s)")
    ax_e.set_ylabel("Energy change (eV)")
    ax_e.set_title("Energy Drift", fontsize=12, fontweight="bold")
    ax_e.grid(True, alpha=0.3)

    plt.suptitle(f"Trajectory Projections (n={len(ids)})", fontsize=14, fontweight="bold")
    return _finish(fig, save_path, "2d", dpi, show)
