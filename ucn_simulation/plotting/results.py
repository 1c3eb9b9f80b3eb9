"""
Simulation results visualization.

Summary tables of stop codes per species, statistics of the end records and
overview figures (energies, storage times, outcome counts, MR-DRP maps).
"""

from __future__ import annotations

from typing import List, Optional

import numpy as np
import matplotlib.pyplot as plt
import pandas as pd

from ..core.data_classes import ParticleRecord
from ..core.particle import Species, StopID
from ..core.simulation import OutcomeTally


def print_outcome_table(tally: OutcomeTally):
    """Print how many particles of each species ended with each stop code."""
    print("\n" + "=" * 60)
    print("PARTICLE OUTCOMES")
    print("=" * 60)
    for species in Species:
        total = tally.total(species)
        if total == 0:
            continue
        print(f"{species.value.capitalize()}s: {total}")
        for code in StopID:
            n = tally.count(species, code)
            if n:
                print(f"{int(code):4d}: {n:8d} {species.value}s {code.description} ({100 * n / total:.2f}%)")
        print(f"      average integrator steps: {tally.average_steps(species):.1f}")
        print()
    fatal = tally.fatal_errors()
    if fatal:
        print(f"[warning] {fatal} particles ended with a fatal error - check geometry and fields")
    print("=" * 60 + "\n")


def print_statistics(records: List[ParticleRecord]):
    """Print statistical summary of the end records.

    Parameters
    ----------
    records : List[ParticleRecord]
        Final snapshots of all particles of a run.
    """
    if not records:
        print("\n[Statistics] No particle records to display.")
        return

    for species in Species:
        subset = [r for r in records if r.species == species.value]
        if not subset:
            continue
        elapsed = np.array([r.elapsed_time for r in subset])
        start_e = np.array([r.start_energy for r in subset])
        stop_e = np.array([r.stop_energy for r in subset])
        path = np.array([r.path_length for r in subset])
        bounces = np.array([r.n_specular + r.n_diffuse for r in subset])

        unit, scale = ("neV", 1e9) if species is Species.NEUTRON else ("eV", 1.0)
        print("\n" + "=" * 60)
        print(f"{species.value.upper()} STATISTICS ({len(subset)} particles)")
        print("=" * 60)
        print(f"Start energy ({unit}):")
        print(f"  Mean: {np.mean(start_e) * scale:.4f}, Std: {np.std(start_e) * scale:.4f}")
        print(f"  Range: [{np.min(start_e) * scale:.4f}, {np.max(start_e) * scale:.4f}]")
        print(f"Energy change ({unit}):")
        change = (stop_e - start_e) * scale
        print(f"  Mean: {np.mean(change):.4e}, Max |change|: {np.max(np.abs(change)):.4e}")
        print("Time until stop (s):")
        print(f"  Mean: {np.mean(elapsed):.4e}, Std: {np.std(elapsed):.4e}")
        print(f"  Range: [{np.min(elapsed):.4e}, {np.max(elapsed):.4e}]")
        print("Path length (m):")
        print(f"  Mean: {np.mean(path):.4f}, Max: {np.max(path):.4f}")
        print(f"Wall reflections per particle: mean {np.mean(bounces):.2f}, max {np.max(bounces)}")
        print("=" * 60 + "\n")


def visualize_results(records: List[ParticleRecord], save_path: Optional[str] = None, show: bool = True):
    """Overview figure: start energies, stop times, outcomes and bounces."""
    if not records:
        print("[warning] No particle records to visualize.")
        return

    frame = pd.DataFrame({
        "species": [r.species for r in records],
        "stop_name": [r.stop_name for r in records],
        "start_energy": [r.start_energy for r in records],
        "stop_energy": [r.stop_energy for r in records],
        "elapsed": [r.elapsed_time for r in records],
        "bounces": [r.n_specular + r.n_diffuse for r in records],
    })

    fig, axes = plt.subplots(2, 2, figsize=(12, 10))

    ax1 = axes[0, 0]
    for species, group in frame.groupby("species"):
        ax1.hist(group["start_energy"], bins=50, alpha=0.6, label=species)
    ax1.set_xlabel("Start energy (eV)")
    ax1.set_ylabel("Count")
    ax1.set_title("Start Energy Distribution")
    ax1.legend()
    ax1.grid(True, alpha=0.3)

    ax2 = axes[0, 1]
    for species, group in frame.groupby("species"):
        ax2.hist(group["elapsed"], bins=50, alpha=0.6, label=species)
    ax2.set_xlabel("Time until stop (s)")
    ax2.set_ylabel("Count")
    ax2.set_title("Storage / Flight Time")
    ax2.legend()
    ax2.grid(True, alpha=0.3)

    ax3 = axes[1, 0]
    counts = frame.groupby(["stop_name", "species"]).size().unstack(fill_value=0)
    counts.plot.bar(ax=ax3, alpha=0.8)
    ax3.set_xlabel("Stop code")
    ax3.set_ylabel("Count")
    ax3.set_title("Outcomes")
    ax3.grid(True, alpha=0.3, axis="y")

    ax4 = axes[1, 1]
    ax4.hist(frame["bounces"], bins=50, color="purple", alpha=0.7)
    ax4.axvline(frame["bounces"].mean(), color="red", linestyle="--", linewidth=2,
                label=f"Mean: {frame['bounces'].mean():.1f}")
    ax4.set_xlabel("Wall reflections")
    ax4.set_ylabel("Count")
    ax4.set_title("Reflections per Particle")
    ax4.legend()
    ax4.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches="tight")
        print(f"[info] Saved results overview to {save_path}")
    if show:
        plt.show()
    plt.close(fig)


def plot_mr_angles(table: pd.DataFrame, save_path: Optional[str] = None, show: bool = True):
    """Polar map of an MR-DRP angle table (see ``mr_angle_table``)."""
    pivot = table.pivot(index="theta_o", columns="phi_o", values="mr_drp")
    theta = pivot.index.to_numpy()
    phi = pivot.columns.to_numpy()

    fig, ax = plt.subplots(subplot_kw={"projection": "polar"}, figsize=(7, 6))
    mesh = ax.pcolormesh(phi, np.degrees(theta), pivot.to_numpy(), cmap="viridis", shading="auto")
    ax.set_title("Diffuse reflection probability density")
    plt.colorbar(mesh, ax=ax, label="MR-DRP x sin(theta) (1/sr)")

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches="tight")
        print(f"[info] Saved MR-DRP map to {save_path}")
    if show:
        plt.show()
    plt.close(fig)
