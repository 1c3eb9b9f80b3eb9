"""
Particle state and the termination state machine.

A :class:`ParticleState` is mutated only by the tracker (kinematics, time),
the collision resolver (material stack) and the surface model (velocity on
reflection, stop code). Termination happens exactly once.
"""

from __future__ import annotations

import math
import weakref
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, List, Optional

import numpy as np

from .constants import (
    ELECTRON_MASS_KG,
    ELEMENTARY_CHARGE,
    EV_TO_J,
    INFINITE_LIFETIME,
    NEUTRON_LIFETIME_S,
    NEUTRON_MASS_KG,
    PROTON_MASS_KG,
    SPEED_OF_LIGHT,
)
from .data_classes import ParticleRecord

if TYPE_CHECKING:
    from .collision import MaterialStack


class Species(str, Enum):
    NEUTRON = "neutron"
    PROTON = "proton"
    ELECTRON = "electron"

    @property
    def mass_kg(self) -> float:
        return _MASSES[self]

    @property
    def charge(self) -> float:
        return _CHARGES[self]

    @property
    def mean_lifetime(self) -> float:
        return NEUTRON_LIFETIME_S if self is Species.NEUTRON else INFINITE_LIFETIME

    @property
    def relativistic(self) -> bool:
        return self is Species.ELECTRON

    def kinetic_energy_ev(self, velocity: np.ndarray) -> float:
        """Kinetic energy (eV) for a velocity vector (m/s)."""
        v2 = float(np.dot(velocity, velocity))
        if self.relativistic:
            gamma = 1.0 / math.sqrt(1.0 - v2 / SPEED_OF_LIGHT**2)
            return (gamma - 1.0) * self.mass_kg * SPEED_OF_LIGHT**2 / EV_TO_J
        return 0.5 * self.mass_kg * v2 / EV_TO_J

    def speed_from_energy(self, energy_ev: float) -> float:
        """Speed (m/s) for a kinetic energy (eV)."""
        if energy_ev < 0.0:
            raise ValueError(f"Kinetic energy must be >= 0, got {energy_ev}")
        if self.relativistic:
            gamma = energy_ev * EV_TO_J / (self.mass_kg * SPEED_OF_LIGHT**2) + 1.0
            return SPEED_OF_LIGHT * math.sqrt(1.0 - 1.0 / gamma**2)
        return math.sqrt(2.0 * energy_ev * EV_TO_J / self.mass_kg)


_MASSES = {
    Species.NEUTRON: NEUTRON_MASS_KG,
    Species.PROTON: PROTON_MASS_KG,
    Species.ELECTRON: ELECTRON_MASS_KG,
}

_CHARGES = {
    Species.NEUTRON: 0.0,
    Species.PROTON: ELEMENTARY_CHARGE,
    Species.ELECTRON: -ELEMENTARY_CHARGE,
}


class StopID(IntEnum):
    """Terminal codes; the numeric values match the historic end-log format."""

    ABSORBED_ON_SURFACE = 2
    ABSORBED_IN_MATERIAL = 1
    UNCATEGORIZED = 0
    NOT_FINISHED = -1
    LEFT_OUTER_BOUNDARY = -2
    INTEGRATION_ERROR = -3
    DECAYED = -4
    NO_INITIAL_POSITION = -5
    SPATIAL_QUERY_ERROR = -6
    GEOMETRY_ERROR = -7

    @property
    def is_fatal_error(self) -> bool:
        return self in FATAL_STOP_IDS

    @property
    def description(self) -> str:
        return _STOP_DESCRIPTIONS[self]


FATAL_STOP_IDS = frozenset({
    StopID.INTEGRATION_ERROR,
    StopID.NO_INITIAL_POSITION,
    StopID.SPATIAL_QUERY_ERROR,
    StopID.GEOMETRY_ERROR,
})

_STOP_DESCRIPTIONS = {
    StopID.ABSORBED_ON_SURFACE: "were absorbed on a surface",
    StopID.ABSORBED_IN_MATERIAL: "were absorbed in a material",
    StopID.UNCATEGORIZED: "were not categorized",
    StopID.NOT_FINISHED: "did not finish",
    StopID.LEFT_OUTER_BOUNDARY: "hit outer boundaries",
    StopID.INTEGRATION_ERROR: "produced integration error",
    StopID.DECAYED: "decayed",
    StopID.NO_INITIAL_POSITION: "found no initial position",
    StopID.SPATIAL_QUERY_ERROR: "encountered spatial query error",
    StopID.GEOMETRY_ERROR: "encountered geometry error",
}


class SurfaceOutcome(Enum):
    """Transient states a running particle passes through at a boundary."""

    TRANSMITTED = "transmitted"
    REFLECTED_SPECULAR = "reflected_specular"
    REFLECTED_DIFFUSE = "reflected_diffuse"
    ABSORBED_ON_SURFACE = "absorbed_on_surface"
    ABSORBED_IN_MATERIAL = "absorbed_in_material"


@dataclass(eq=False)
class ParticleState:
    """One simulated particle at one instant."""

    species: Species
    particle_id: int
    position: np.ndarray
    velocity: np.ndarray
    time: float = 0.0
    polarisation: int = 0
    generation: int = 0
    parent_id: Optional[int] = None
    lifetime: float = INFINITE_LIFETIME
    record_trajectory: bool = False

    path_length: float = 0.0
    n_steps: int = 0
    kinetic_energy: float = 0.0  # eV
    potential_energy: float = 0.0  # eV
    start_energy: float = math.nan  # eV
    max_energy: float = -math.inf  # eV

    material_stack: Optional["MaterialStack"] = None

    stop_id: Optional[StopID] = None
    stop_time: Optional[float] = None
    stop_position: Optional[np.ndarray] = None

    n_transmissions: int = 0
    n_specular: int = 0
    n_diffuse: int = 0
    last_outcome: Optional[SurfaceOutcome] = None

    secondaries: List["ParticleState"] = field(default_factory=list)
    trajectory: Optional[list] = None
    _parent_ref: Any = field(default=None, repr=False)

    def __post_init__(self):
        self.position = np.array(self.position, dtype=float)
        self.velocity = np.array(self.velocity, dtype=float)
        self.species = Species(self.species)
        if self.polarisation not in (-1, 0, 1):
            raise ValueError(f"polarisation must be -1, 0 or +1, got {self.polarisation}")
        self.start_time = float(self.time)
        self.start_position = self.position.copy()
        self.start_velocity = self.velocity.copy()
        self.kinetic_energy = self.species.kinetic_energy_ev(self.velocity)
        if self.record_trajectory:
            self.trajectory = []

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------
    @property
    def parent(self) -> Optional["ParticleState"]:
        return self._parent_ref() if self._parent_ref is not None else None

    def spawn(self, species: Species, particle_id: int, velocity: np.ndarray,
              lifetime: float = INFINITE_LIFETIME) -> "ParticleState":
        """Create an independent secondary at the current position and time."""
        child = ParticleState(
            species=species,
            particle_id=particle_id,
            position=self.position.copy(),
            velocity=velocity,
            time=self.time,
            generation=self.generation + 1,
            parent_id=self.particle_id,
            lifetime=lifetime,
            record_trajectory=self.record_trajectory,
        )
        child._parent_ref = weakref.ref(self)
        self.secondaries.append(child)
        return child

    # ------------------------------------------------------------------
    # Kinematics / energy bookkeeping
    # ------------------------------------------------------------------
    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))

    @property
    def total_energy(self) -> float:
        return self.kinetic_energy + self.potential_energy

    @property
    def elapsed_time(self) -> float:
        return self.time - self.start_time

    def update_energy(self, potential_energy: float) -> None:
        self.kinetic_energy = self.species.kinetic_energy_ev(self.velocity)
        self.potential_energy = potential_energy
        if math.isnan(self.start_energy):
            self.start_energy = self.total_energy
        self.max_energy = max(self.max_energy, self.total_energy)

    def move_to(self, time: float, position: np.ndarray, velocity: np.ndarray) -> None:
        self.path_length += float(np.linalg.norm(position - self.position))
        self.time = float(time)
        self.position = np.array(position, dtype=float)
        self.velocity = np.array(velocity, dtype=float)

    def record_point(self) -> None:
        if self.trajectory is not None:
            self.trajectory.append((self.time, self.position.copy(), self.velocity.copy(), self.total_energy))

    def record_outcome(self, outcome: SurfaceOutcome) -> None:
        self.last_outcome = outcome
        if outcome is SurfaceOutcome.TRANSMITTED:
            self.n_transmissions += 1
        elif outcome is SurfaceOutcome.REFLECTED_SPECULAR:
            self.n_specular += 1
        elif outcome is SurfaceOutcome.REFLECTED_DIFFUSE:
            self.n_diffuse += 1

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        return self.stop_id is None

    def terminate(self, stop_id: StopID) -> None:
        if self.stop_id is not None:
            raise RuntimeError(
                f"particle {self.particle_id} already terminated with {self.stop_id.name}, "
                f"refusing second code {StopID(stop_id).name}"
            )
        self.stop_id = StopID(stop_id)
        self.stop_time = self.time
        self.stop_position = self.position.copy()
        self.record_point()

    def snapshot(self, final_solid: str = "") -> ParticleRecord:
        if self.stop_id is None:
            raise RuntimeError(f"particle {self.particle_id} is still running")
        return ParticleRecord(
            particle_id=self.particle_id,
            species=self.species.value,
            generation=self.generation,
            parent_id=self.parent_id,
            polarisation=self.polarisation,
            stop_id=int(self.stop_id),
            stop_name=self.stop_id.name,
            start_time=self.start_time,
            stop_time=float(self.stop_time),
            start_position=self.start_position.copy(),
            start_velocity=self.start_velocity.copy(),
            stop_position=self.stop_position.copy(),
            stop_velocity=self.velocity.copy(),
            start_energy=float(self.start_energy),
            stop_energy=self.total_energy,
            max_energy=float(self.max_energy),
            path_length=self.path_length,
            n_steps=self.n_steps,
            n_transmissions=self.n_transmissions,
            n_specular=self.n_specular,
            n_diffuse=self.n_diffuse,
            final_solid=final_solid,
            trajectory_points=list(self.trajectory) if self.trajectory is not None else None,
        )
