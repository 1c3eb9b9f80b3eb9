"""
Data export utilities for particle records, trajectories and diagnostic tables.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import pandas as pd

from .data_classes import ParticleRecord

END_LOG_COLUMNS = [
    "particle_id", "species", "generation", "parent_id", "polarisation",
    "stop_id", "stop_name", "final_solid",
    "start_time_s", "stop_time_s", "elapsed_time_s",
    "x0_m", "y0_m", "z0_m", "vx0_m_s", "vy0_m_s", "vz0_m_s",
    "x_m", "y_m", "z_m", "vx_m_s", "vy_m_s", "vz_m_s",
    "start_energy_eV", "stop_energy_eV", "max_energy_eV",
    "path_length_m", "n_steps", "n_transmissions", "n_specular", "n_diffuse",
]

TRAJECTORY_COLUMNS = [
    "particle_id", "species", "point_id", "time_s",
    "x_m", "y_m", "z_m", "vx_m_s", "vy_m_s", "vz_m_s", "energy_eV",
]


def records_to_dataframe(records: Sequence[ParticleRecord]) -> pd.DataFrame:
    """One row per terminated particle."""
    rows = []
    for r in records:
        rows.append([
            r.particle_id, r.species, r.generation, r.parent_id, r.polarisation,
            r.stop_id, r.stop_name, r.final_solid,
            r.start_time, r.stop_time, r.elapsed_time,
            *r.start_position, *r.start_velocity,
            *r.stop_position, *r.stop_velocity,
            r.start_energy, r.stop_energy, r.max_energy,
            r.path_length, r.n_steps, r.n_transmissions, r.n_specular, r.n_diffuse,
        ])
    return pd.DataFrame(rows, columns=END_LOG_COLUMNS)


def trajectories_to_dataframe(records: Sequence[ParticleRecord]) -> pd.DataFrame:
    """One row per recorded trajectory point; particles without points are skipped."""
    rows = []
    for r in records:
        if not r.trajectory_points:
            continue
        for point_id, (time, position, velocity, energy) in enumerate(r.trajectory_points):
            rows.append([r.particle_id, r.species, point_id, time, *position, *velocity, energy])
    return pd.DataFrame(rows, columns=TRAJECTORY_COLUMNS)


def _write(frame: pd.DataFrame, filename: str) -> Path:
    output_path = Path(filename)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(output_path, index=False)
    return output_path


def export_records_to_csv(records: List[ParticleRecord], filename: str = "end.csv") -> None:
    """Export the final snapshot of every particle to a CSV file."""
    if not records:
        print("[warning] No particle records to export.")
        return
    frame = records_to_dataframe(records)
    _write(frame, filename)
    print(f"[info] Particle end records exported to {filename}")
    print(f"[info] Total records: {len(frame)}")


def export_trajectories_to_csv(records: List[ParticleRecord], filename: str = "track.csv") -> None:
    """Export recorded trajectory points to a CSV file."""
    frame = trajectories_to_dataframe(records)
    if frame.empty:
        print("[warning] No trajectory points to export (enable trajectory recording).")
        return
    _write(frame, filename)
    print(f"[info] Trajectories exported to {filename}")
    print(f"[info] Total trajectory points: {len(frame)}")


def export_table_to_csv(frame: pd.DataFrame, filename: str, label: str = "Table") -> None:
    """Export a diagnostic table (outcome tally, field cut, MR tables, ...)."""
    _write(frame, filename)
    print(f"[info] {label} exported to {filename} ({len(frame)} rows)")


def load_records_csv(filename: str) -> pd.DataFrame:
    """Read an end log written by :func:`export_records_to_csv`."""
    frame = pd.read_csv(filename)
    missing = set(END_LOG_COLUMNS) - set(frame.columns)
    if missing:
        raise ValueError(f"'{filename}' is missing columns: {sorted(missing)}")
    return frame
