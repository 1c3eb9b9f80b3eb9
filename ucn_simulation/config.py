"""
Configuration settings for the UCN trajectory simulation.

Module-level constants are the defaults. The engine itself never reads them
directly: :func:`default_config` bundles them into an immutable
:class:`SimulationConfig` that is handed to the integrator, the collision
resolver, the surface model and the tracker. Variants are derived with
``config.replace(...)``.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from .core.particle import Species

# =============================================================================
# Output Paths
# =============================================================================

DATA_OUTPUT_DIR = "Data"
FIGURES_OUTPUT_DIR = "Figures"

# Output file names; {job} is replaced by the job number
END_LOG_CSV = "{job:06d}end.csv"
TRAJECTORY_LOG_CSV = "{job:06d}track.csv"
OUTCOME_TABLE_CSV = "{job:06d}outcomes.csv"
FIELD_CUT_CSV = "{job:06d}fieldcut.csv"
BFIELD_GRID_CSV = "{job:06d}bfield.csv"
RAMP_HEATING_CSV = "{job:06d}rampheating.csv"
GEOMETRY_SAMPLE_CSV = "{job:06d}geometry.csv"
MR_ANGLE_CSV = "{job:06d}mr_angles.csv"
MR_TOTAL_CSV = "{job:06d}mr_total.csv"
OUTCOME_FIGURE = "{job:06d}outcomes.png"
TRAJECTORY_FIGURE = "{job:06d}trajectories.png"

# =============================================================================
# Integration Parameters
# =============================================================================

# Relative error tolerance of the adaptive stepper
DEFAULT_EPS = 1e-9

# Macro step (s), smallest accepted micro step (s) and maximum time (s) per species
NEUTRON_MACRO_STEP_S = 5e-3
NEUTRON_HMIN_S = 1e-12
NEUTRON_MAX_TIME_S = 2000.0

PROTON_MACRO_STEP_S = 1e-8
PROTON_HMIN_S = 1e-18
PROTON_MAX_TIME_S = 1e-3

ELECTRON_MACRO_STEP_S = 1e-10
ELECTRON_HMIN_S = 1e-20
ELECTRON_MAX_TIME_S = 1e-5

# Maximum number of accepted micro steps inside one macro step
MAX_MICRO_STEPS = 10000

# Below this |B| (T) the macro step is divided by 10, below a tenth of it by 100.
# Zero disables the refinement.
LOW_FIELD_THRESHOLD_T = 0.0

# Apply gravity to neutrons
GRAVITY_ENABLED = True

# =============================================================================
# Geometry / Collision Parameters
# =============================================================================

# Crossings closer than this (as a fraction of the segment) are simultaneous
SIMULTANEITY_EPSILON = 1e-9

# After a surface event, crossings of the same solid closer than this (m)
# to the event point are discarded
IGNORE_DISTANCE_M = 1e-8

# Per-priority override of the ignore distance, {priority: distance in m}
IGNORE_DISTANCE_BY_PRIORITY: Dict[int, float] = {}

# Largest deviation (m) of the true path from the chord of one micro step.
# Micro steps are limited to sqrt(8 * MAX_SAG_M / |a|) with the acceleration
# at the start of each macro step. Zero disables the limit.
MAX_SAG_M = 1e-6

# =============================================================================
# Surface Interaction
# =============================================================================

# Gauss-Legendre points per angle for the micro-roughness hemisphere integral
MR_QUADRATURE_POINTS = 48

# Grid points per angle used to bound the MR density before rejection sampling
MR_ENVELOPE_GRID = 24

# Safety factor applied to the envelope maximum
MR_ENVELOPE_SAFETY = 1.05

# =============================================================================
# Particle Source / Run Control
# =============================================================================

DEFAULT_N_PARTICLES = 100

# Attempts to find a valid initial position before giving up on a particle
SOURCE_MAX_RETRIES = 1000

# Track decay protons and electrons after their parent neutron
SIMULATE_SECONDARIES = False

# Let neutrons decay with the free-neutron lifetime
DECAY_ENABLED = True

# Keep per-step trajectory points in memory (and write them out)
RECORD_TRAJECTORIES = False

# =============================================================================
# Demo Geometry (runner without STL input)
# =============================================================================

# Closed cylindrical storage vessel standing on z = 0
DEMO_VESSEL_RADIUS_M = 0.25
DEMO_VESSEL_HEIGHT_M = 0.5
DEMO_WALL_THICKNESS_M = 0.01

# Stainless-steel-like wall
DEMO_WALL_FERMI_REAL_NEV = 183.0
DEMO_WALL_FERMI_IMAG_NEV = 0.0852
DEMO_WALL_DIFFUSE_PROBABILITY = 0.05

# Kinetic energy range of the source (eV), sampled from sqrt(E)
DEMO_ENERGY_MIN_EV = 20e-9
DEMO_ENERGY_MAX_EV = 150e-9

# =============================================================================
# Visualization Settings
# =============================================================================

MAX_TRAJECTORIES_TO_PLOT = 50
PLOT_DPI = 300
TRAJECTORY_FIGSIZE = (14, 6)


@dataclass(frozen=True)
class SpeciesSettings:
    """Integration limits for one particle species."""

    macro_step: float
    hmin: float
    max_time: float
    eps: float = DEFAULT_EPS
    max_micro_steps: int = MAX_MICRO_STEPS

    def __post_init__(self):
        if self.macro_step <= 0.0 or self.max_time <= 0.0:
            raise ValueError("macro_step and max_time must be positive")
        if not 0.0 < self.hmin < self.macro_step:
            raise ValueError(f"hmin must lie in (0, macro_step), got {self.hmin}")
        if self.eps <= 0.0:
            raise ValueError(f"eps must be positive, got {self.eps}")
        if self.max_micro_steps < 1:
            raise ValueError("max_micro_steps must be >= 1")


def _default_species() -> Dict[Species, SpeciesSettings]:
    return {
        Species.NEUTRON: SpeciesSettings(NEUTRON_MACRO_STEP_S, NEUTRON_HMIN_S, NEUTRON_MAX_TIME_S),
        Species.PROTON: SpeciesSettings(PROTON_MACRO_STEP_S, PROTON_HMIN_S, PROTON_MAX_TIME_S),
        Species.ELECTRON: SpeciesSettings(ELECTRON_MACRO_STEP_S, ELECTRON_HMIN_S, ELECTRON_MAX_TIME_S),
    }


@dataclass(frozen=True)
class SimulationConfig:
    """Immutable per-run settings shared by every engine component."""

    species: Mapping[Species, SpeciesSettings] = field(default_factory=_default_species)
    low_field_threshold: float = LOW_FIELD_THRESHOLD_T
    gravity: bool = GRAVITY_ENABLED
    simultaneity_epsilon: float = SIMULTANEITY_EPSILON
    ignore_distance: float = IGNORE_DISTANCE_M
    ignore_distance_by_priority: Mapping[int, float] = field(
        default_factory=lambda: dict(IGNORE_DISTANCE_BY_PRIORITY)
    )
    max_sag: float = MAX_SAG_M
    mr_quadrature_points: int = MR_QUADRATURE_POINTS
    mr_envelope_grid: int = MR_ENVELOPE_GRID
    mr_envelope_safety: float = MR_ENVELOPE_SAFETY
    source_max_retries: int = SOURCE_MAX_RETRIES
    simulate_secondaries: bool = SIMULATE_SECONDARIES
    decay_enabled: bool = DECAY_ENABLED
    record_trajectories: bool = RECORD_TRAJECTORIES

    def __post_init__(self):
        missing = set(Species) - set(self.species)
        if missing:
            raise ValueError(f"No integration settings for {sorted(s.value for s in missing)}")
        if self.low_field_threshold < 0.0:
            raise ValueError("low_field_threshold must be >= 0")
        if not 0.0 <= self.simultaneity_epsilon < 1.0:
            raise ValueError("simultaneity_epsilon must lie in [0, 1)")
        if self.ignore_distance < 0.0 or any(d < 0.0 for d in self.ignore_distance_by_priority.values()):
            raise ValueError("ignore distances must be >= 0")
        if self.max_sag < 0.0:
            raise ValueError("max_sag must be >= 0")
        if self.mr_quadrature_points < 4 or self.mr_envelope_grid < 4:
            raise ValueError("MR quadrature and envelope grids need at least 4 points")
        if self.source_max_retries < 1:
            raise ValueError("source_max_retries must be >= 1")

    def for_species(self, species: Species) -> SpeciesSettings:
        return self.species[Species(species)]

    def ignore_distance_for(self, priority: int) -> float:
        return self.ignore_distance_by_priority.get(priority, self.ignore_distance)

    def replace(self, **changes) -> "SimulationConfig":
        return dataclasses.replace(self, **changes)

    def with_species(self, species: Species, **changes) -> "SimulationConfig":
        """Return a copy with some settings of one species changed."""
        settings = dict(self.species)
        settings[Species(species)] = dataclasses.replace(settings[Species(species)], **changes)
        return self.replace(species=settings)


def default_config(**changes) -> SimulationConfig:
    return SimulationConfig(**changes)


def output_path(directory: str, template: str, job: int, root: Optional[Path] = None) -> Path:
    """Resolve an output file name for ``job`` below ``root``, creating the directory."""
    base = (root or Path.cwd()) / directory
    base.mkdir(parents=True, exist_ok=True)
    return base / template.format(job=job)
