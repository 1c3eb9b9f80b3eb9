"""
Plotting subpackage for the UCN simulation.

Example usage:
    from ucn_simulation.plotting import load_trajectory_data, plot_trajectories_3d

    trajectories = load_trajectory_data('Data/000001track.csv')
    plot_trajectories_3d(trajectories, max_trajectories=20, save_path='Figures/run1')

    from ucn_simulation.plotting import print_outcome_table
    print_outcome_table(result.tally)
"""

from .trajectories import (
    load_trajectory_data,
    plot_trajectories_3d,
    plot_trajectories_2d,
)

from .results import (
    print_outcome_table,
    print_statistics,
    visualize_results,
    plot_mr_angles,
)

__all__ = [
    # Trajectory plotting
    "load_trajectory_data",
    "plot_trajectories_3d",
    "plot_trajectories_2d",
    # Simulation results
    "print_outcome_table",
    "print_statistics",
    "visualize_results",
    "plot_mr_angles",
]
