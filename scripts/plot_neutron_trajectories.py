#!/usr/bin/env python
"""
Trajectory Visualization Script

Plots the trajectory log written by ``run_simulation.py run --trajectories``.

Usage:
    python plot_neutron_trajectories.py
    python plot_neutron_trajectories.py --max-trajectories 20 --job 3
    python plot_neutron_trajectories.py --no-geometry
"""

from pathlib import Path
import sys
import argparse

# Make the package importable when running from a source checkout
project_dir = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_dir))

from ucn_simulation import config
from ucn_simulation.plotting import (
    load_trajectory_data,
    plot_trajectories_3d,
    plot_trajectories_2d,
)
from ucn_simulation.runner import build_demo_geometry


def main():
    """Script entry point"""
    parser = argparse.ArgumentParser(description="Plot particle trajectories")
    parser.add_argument("--max-trajectories", "-n", type=int,
                        default=config.MAX_TRAJECTORIES_TO_PLOT,
                        help="Maximum number of trajectories to plot")
    parser.add_argument("--job", "-j", type=int, default=0,
                        help="Job number of the run to plot")
    parser.add_argument("--no-geometry", action="store_true",
                        help="Don't draw the demo vessel")
    parser.add_argument("--data-file", type=Path, default=None,
                        help="Path to trajectory data CSV file")
    parser.add_argument("--show", action="store_true",
                        help="Show the figures instead of saving them")

    args = parser.parse_args()

    data_dir = project_dir / config.DATA_OUTPUT_DIR
    figures_dir = project_dir / config.FIGURES_OUTPUT_DIR

    if args.data_file:
        trajectory_file = args.data_file
    else:
        trajectory_file = data_dir / config.TRAJECTORY_LOG_CSV.format(job=args.job)

    if not trajectory_file.exists():
        print(f"[error] Trajectory file not found: {trajectory_file}")
        print("[info] Run 'run_simulation.py run --trajectories' first to generate trajectory data.")
        sys.exit(1)

    print(f"[info] Loading trajectory data from {trajectory_file}")
    trajectories = load_trajectory_data(str(trajectory_file))
    print(f"[info] Loaded {len(trajectories)} trajectories")

    geometry = None if args.no_geometry else build_demo_geometry()
    save_base = None if args.show else str(figures_dir / f"{args.job:06d}trajectories")

    plot_trajectories_3d(trajectories, geometry=geometry, max_trajectories=args.max_trajectories,
                         save_path=save_base, show=args.show)
    plot_trajectories_2d(trajectories, max_trajectories=args.max_trajectories,
                         save_path=save_base, show=args.show)


if __name__ == "__main__":
    main()
