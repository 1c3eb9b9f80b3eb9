"""
UCN Simulation Runner Module

This module provides the simulation runner functions that can be called
from scripts or imported directly, plus the command-line entry point.

Sub-commands:
    run        track particles through the demo storage vessel
    field-cut  evaluate the field on a plane spanned by three points
    ramp-heating  field on an r/z grid and the accessible volume per energy
    geometry   throw random segments through the geometry and list all hits
    mr-angles  tabulate the micro-roughness reflection density over angles
    mr-total   tabulate the integrated micro-roughness reflection probability
    validate   check the demo meshes for closedness and orientation
"""

from __future__ import annotations

import argparse
import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import numpy as np

from . import config
from .config import SimulationConfig, default_config, output_path
from .core.data_classes import Material
from .core.errors import SimulationAborted
from .core.fields import (
    LinearField,
    ZeroField,
    ramp_heating_table,
    sample_field_cut,
    sample_field_rz,
    uniform_field,
)
from .core.geometry import Geometry, print_geometry_stats
from .core.io_utils import (
    export_records_to_csv,
    export_table_to_csv,
    export_trajectories_to_csv,
    trajectories_to_dataframe,
)
from .core.microroughness import mr_angle_table, mr_total_table
from .core.particle import Species
from .core.simulation import SimulationResult, run_simulation
from .core.source import MonteCarloSource
from .logging_config import configure_logging, flush_logging
from .plotting import (
    load_trajectory_data,
    plot_mr_angles,
    plot_trajectories_2d,
    plot_trajectories_3d,
    print_outcome_table,
    print_statistics,
    visualize_results,
)
from .testing import create_storage_vessel, print_validation_results, validate_geometry

logger = logging.getLogger(__name__)

ABORT_SIGNALS = ("SIGINT", "SIGTERM", "SIGXCPU", "SIGUSR1", "SIGUSR2")


def _raise_abort(signum, frame):
    raise SimulationAborted(signum)


@contextmanager
def abort_on_signals(names: Sequence[str] = ABORT_SIGNALS) -> Iterator[None]:
    """Turn the given signals into :class:`SimulationAborted` while active.

    Signals that do not exist on this platform are skipped.
    """
    previous = {}
    for name in names:
        signum = getattr(signal, name, None)
        if signum is None:
            continue
        previous[signum] = signal.signal(signum, _raise_abort)
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def build_demo_geometry() -> Geometry:
    """Closed stainless-steel-like cylinder with an evacuated storage volume."""
    wall = Material(
        "stainless steel",
        fermi_real_nev=config.DEMO_WALL_FERMI_REAL_NEV,
        fermi_imag_nev=config.DEMO_WALL_FERMI_IMAG_NEV,
        diffuse_probability=config.DEMO_WALL_DIFFUSE_PROBABILITY,
    )
    solids = create_storage_vessel(
        wall,
        radius=config.DEMO_VESSEL_RADIUS_M,
        height=config.DEMO_VESSEL_HEIGHT_M,
        wall_thickness=config.DEMO_WALL_THICKNESS_M,
    )
    return Geometry(solids)


def build_demo_source(geometry: Geometry, sim_config: SimulationConfig) -> MonteCarloSource:
    r = config.DEMO_VESSEL_RADIUS_M
    return MonteCarloSource(
        geometry,
        Species.NEUTRON,
        box=((-r, -r, 0.0), (r, r, config.DEMO_VESSEL_HEIGHT_M)),
        energy_min=config.DEMO_ENERGY_MIN_EV,
        energy_max=config.DEMO_ENERGY_MAX_EV,
        volume="storage volume",
        polarisations=(-1, 1),
        max_retries=sim_config.source_max_retries,
    )


def run_full_simulation(
    output_dir: Optional[Path] = None,
    n_particles: Optional[int] = None,
    job: int = 0,
    seed: Optional[int] = None,
    sim_config: Optional[SimulationConfig] = None,
    bfield: Sequence[float] = (0.0, 0.0, 0.0),
    save_results: bool = True,
    generate_plots: bool = True,
) -> SimulationResult:
    """Run a complete storage simulation in the demo vessel.

    This handles:
    1. Building the geometry and the field
    2. Running the tracking loop (interruptible by signals)
    3. Printing the outcome table and statistics
    4. Exporting results
    5. Generating visualization plots

    Parameters
    ----------
    output_dir : Path, optional
        Directory for output files (Data/, Figures/). If None, uses current working directory.
    n_particles : int, optional
        Number of primary particles. If None, uses config default.
    job : int
        Job number, used in output file names and log lines.
    seed : int, optional
        Seed of the random generator; defaults to the job number.
    bfield : sequence of float
        Uniform magnetic field (T); all zeros means no field at all.

    Returns
    -------
    SimulationResult
        Records and outcome tally; ``aborted`` is set when a signal stopped the run.
    """
    output_dir = Path.cwd() if output_dir is None else Path(output_dir)
    if n_particles is None:
        n_particles = config.DEFAULT_N_PARTICLES
    if sim_config is None:
        sim_config = default_config()
    rng = np.random.default_rng(job if seed is None else seed)

    geometry = build_demo_geometry()
    field = uniform_field(B=bfield) if np.any(np.asarray(bfield) != 0.0) else ZeroField()
    source = build_demo_source(geometry, sim_config)

    print("\n" + "=" * 70)
    print("RUN CONFIGURATION")
    print("=" * 70)
    print(f"Job number: {job}, seed: {job if seed is None else seed}")
    print(f"Primary particles: {n_particles} {source.species.value}s")
    print(f"Vessel: radius {config.DEMO_VESSEL_RADIUS_M} m, height {config.DEMO_VESSEL_HEIGHT_M} m")
    print(f"Energy range: {source.energy_min * 1e9:.1f} - {source.energy_max * 1e9:.1f} neV")
    print(f"Secondaries: {'on' if sim_config.simulate_secondaries else 'off'}, "
          f"decay: {'on' if sim_config.decay_enabled else 'off'}")
    print("=" * 70 + "\n")

    with abort_on_signals():
        result = run_simulation(
            source.generate(n_particles, rng),
            geometry,
            field,
            sim_config,
            rng,
            n_total=n_particles,
        )
    logger.info("Job %d finished with %d records", job, len(result.records))
    if result.aborted:
        print(f"[warning] Run interrupted by signal {result.signum}; results are partial")

    print_outcome_table(result.tally)
    print_statistics(result.records)
    print_geometry_stats(geometry.stats)

    if save_results and result.records:
        export_records_to_csv(
            result.records, str(output_path(config.DATA_OUTPUT_DIR, config.END_LOG_CSV, job, output_dir))
        )
        export_table_to_csv(
            result.tally.to_dataframe(),
            str(output_path(config.DATA_OUTPUT_DIR, config.OUTCOME_TABLE_CSV, job, output_dir)),
            label="Outcome table",
        )
        if sim_config.record_trajectories:
            export_trajectories_to_csv(
                result.records, str(output_path(config.DATA_OUTPUT_DIR, config.TRAJECTORY_LOG_CSV, job, output_dir))
            )

    if generate_plots and result.records:
        print("[info] Generating visualizations...")
        figure = output_path(config.FIGURES_OUTPUT_DIR, config.OUTCOME_FIGURE, job, output_dir)
        visualize_results(result.records, save_path=str(figure), show=False)
        if sim_config.record_trajectories:
            trajectories = load_trajectory_data(trajectories_to_dataframe(result.records))
            base = str(output_path(config.FIGURES_OUTPUT_DIR, config.TRAJECTORY_FIGURE, job, output_dir))
            base = base[: -len(".png")]
            plot_trajectories_3d(trajectories, geometry=geometry, save_path=base)
            plot_trajectories_2d(trajectories, save_path=base)
        print("[info] Visualization complete!")

    flush_logging()
    return result


def _field_cut(args) -> int:
    field = uniform_field(B=args.bfield)
    frame = sample_field_cut(field, args.p1, args.p2, args.p3, args.n1, args.n2, time=args.time)
    export_table_to_csv(frame, str(output_path(config.DATA_OUTPUT_DIR, config.FIELD_CUT_CSV, args.job, args.output_dir)),
                        label="Field cut")
    return 0


def _ramp_heating(args) -> int:
    gradient = np.zeros((3, 3))
    gradient[2, 2] = args.dbdz
    field = LinearField(B0=args.bfield, gradient=gradient)
    grid = sample_field_rz(field, (args.r_min, args.r_max), (args.z_min, args.z_max), args.dr, args.dz,
                           time=args.time)
    export_table_to_csv(grid, str(output_path(config.DATA_OUTPUT_DIR, config.BFIELD_GRID_CSV, args.job, args.output_dir)),
                        label="Field grid")

    table = ramp_heating_table(grid, np.arange(0.0, args.energy_max_nev + 1.0), args.dr, args.dz)
    print("\nEnergy [neV]   Volume without B [m^3]   Volume with B [m^3]   Heating [neV]")
    for row in table.itertuples(index=False):
        print(f"{row.energy_neV:>12.0f}   {row.volume_without_B_m3:>22.6g}   "
              f"{row.volume_with_B_m3:>19.6g}   {row.heating_neV:>13.6g}")
    export_table_to_csv(table, str(output_path(config.DATA_OUTPUT_DIR, config.RAMP_HEATING_CSV, args.job, args.output_dir)),
                        label="Ramp heating table")
    return 0


def _geometry(args) -> int:
    geometry = build_demo_geometry()
    rng = np.random.default_rng(args.job if args.seed is None else args.seed)
    frame = geometry.sample_collisions(rng, args.segments)
    export_table_to_csv(frame, str(output_path(config.DATA_OUTPUT_DIR, config.GEOMETRY_SAMPLE_CSV, args.job, args.output_dir)),
                        label="Geometry sample")
    print_geometry_stats(geometry.stats)
    return 0


def _mr_angles(args) -> int:
    speed = Species.NEUTRON.speed_from_energy(args.energy_nev * 1e-9)
    frame = mr_angle_table(speed, np.radians(args.theta_i), args.fermi, args.rms, args.corr)
    export_table_to_csv(frame, str(output_path(config.DATA_OUTPUT_DIR, config.MR_ANGLE_CSV, args.job, args.output_dir)),
                        label="MR-DRP angle table")
    if not args.no_plot:
        figure = output_path(config.FIGURES_OUTPUT_DIR, config.MR_ANGLE_CSV.replace(".csv", ".png"), args.job, args.output_dir)
        plot_mr_angles(frame, save_path=str(figure), show=False)
    return 0


def _mr_total(args) -> int:
    theta = np.radians(np.linspace(0.0, 89.0, args.n_theta))
    energies = np.linspace(args.energy_min_nev, args.energy_max_nev, args.n_energy)
    frame = mr_total_table(theta, energies, args.fermi, args.rms, args.corr)
    export_table_to_csv(frame, str(output_path(config.DATA_OUTPUT_DIR, config.MR_TOTAL_CSV, args.job, args.output_dir)),
                        label="Integrated MR-DRP table")
    return 0


def _validate(args) -> int:
    success, results = validate_geometry(build_demo_geometry())
    print_validation_results(results, "DEMO GEOMETRY VALIDATION")
    return 0 if success else 1


def _run(args) -> int:
    sim_config = default_config(
        simulate_secondaries=args.secondaries,
        decay_enabled=not args.no_decay,
        record_trajectories=args.trajectories,
    )
    result = run_full_simulation(
        output_dir=args.output_dir,
        n_particles=args.particles,
        job=args.job,
        seed=args.seed,
        sim_config=sim_config,
        bfield=args.bfield,
        save_results=not args.no_save,
        generate_plots=not args.no_plot,
    )
    if result.aborted:
        return 128 + int(result.signum)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ultra-cold neutron trajectory simulation")
    parser.add_argument("-j", "--job", type=int, default=0, help="Job number (output file prefix)")
    parser.add_argument("-s", "--seed", type=int, default=None, help="Random seed (default: job number)")
    parser.add_argument("--output-dir", type=Path, default=None,
                        help="Output directory for results and figures")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write the log to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Track particles through the demo vessel")
    run.add_argument("-n", "--particles", type=int, default=None, help="Number of primary particles")
    run.add_argument("--secondaries", action="store_true", help="Track decay protons and electrons")
    run.add_argument("--no-decay", action="store_true", help="Disable neutron decay")
    run.add_argument("--trajectories", action="store_true", help="Record and write trajectory points")
    run.add_argument("--bfield", type=float, nargs=3, default=(0.0, 0.0, 0.0), metavar=("BX", "BY", "BZ"),
                     help="Uniform magnetic field (T)")
    run.add_argument("--no-save", action="store_true", help="Don't save results to CSV")
    run.add_argument("--no-plot", action="store_true", help="Don't generate visualization plots")
    run.set_defaults(handler=_run)

    cut = sub.add_parser("field-cut", help="Sample the field on a plane")
    cut.add_argument("--p1", type=float, nargs=3, default=(-0.25, 0.0, 0.0))
    cut.add_argument("--p2", type=float, nargs=3, default=(0.25, 0.0, 0.0))
    cut.add_argument("--p3", type=float, nargs=3, default=(-0.25, 0.0, 0.5))
    cut.add_argument("--n1", type=int, default=51)
    cut.add_argument("--n2", type=int, default=51)
    cut.add_argument("--time", type=float, default=0.0)
    cut.add_argument("--bfield", type=float, nargs=3, default=(0.0, 0.0, 0.0), metavar=("BX", "BY", "BZ"))
    cut.set_defaults(handler=_field_cut)

    ramp = sub.add_parser("ramp-heating", help="Accessible volume per energy with and without the field")
    ramp.add_argument("--r-min", type=float, default=0.12)
    ramp.add_argument("--r-max", type=float, default=0.5)
    ramp.add_argument("--z-min", type=float, default=0.0)
    ramp.add_argument("--z-max", type=float, default=1.2)
    ramp.add_argument("--dr", type=float, default=0.1)
    ramp.add_argument("--dz", type=float, default=0.1)
    ramp.add_argument("--energy-max-nev", type=float, default=108.0)
    ramp.add_argument("--time", type=float, default=0.0)
    ramp.add_argument("--bfield", type=float, nargs=3, default=(0.0, 0.0, 0.0), metavar=("BX", "BY", "BZ"))
    ramp.add_argument("--dbdz", type=float, default=0.0, help="Gradient dBz/dz (T/m)")
    ramp.set_defaults(handler=_ramp_heating)

    geo = sub.add_parser("geometry", help="List intersections of random segments with the geometry")
    geo.add_argument("--segments", type=int, default=1000)
    geo.set_defaults(handler=_geometry)

    angles = sub.add_parser("mr-angles", help="Micro-roughness reflection density over outgoing angles")
    angles.add_argument("--energy-nev", type=float, default=100.0)
    angles.add_argument("--theta-i", type=float, default=45.0, help="Incidence angle (degrees)")
    angles.add_argument("--no-plot", action="store_true")
    _add_roughness_arguments(angles)
    angles.set_defaults(handler=_mr_angles)

    total = sub.add_parser("mr-total", help="Integrated micro-roughness reflection probability")
    total.add_argument("--energy-min-nev", type=float, default=10.0)
    total.add_argument("--energy-max-nev", type=float, default=250.0)
    total.add_argument("--n-energy", type=int, default=25)
    total.add_argument("--n-theta", type=int, default=31)
    _add_roughness_arguments(total)
    total.set_defaults(handler=_mr_total)

    validate = sub.add_parser("validate", help="Check the demo meshes")
    validate.set_defaults(handler=_validate)
    return parser


def _add_roughness_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--fermi", type=float, default=config.DEMO_WALL_FERMI_REAL_NEV,
                        help="Real Fermi potential (neV)")
    parser.add_argument("--rms", type=float, default=1.0, help="RMS roughness (nm)")
    parser.add_argument("--corr", type=float, default=25.0, help="Correlation length (nm)")


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(job=args.job, log_file=args.log_file)
    try:
        return args.handler(args)
    finally:
        flush_logging()


if __name__ == "__main__":
    raise SystemExit(main())
