"""
Initial conditions: a deterministic parameter sweep and a Monte-Carlo source.

Both produce :class:`InitialCondition` tuples; :func:`make_particle` turns a
tuple into a :class:`ParticleState` with its own sampled lifetime. Energies
are kinetic energies in eV.
"""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np

from .decay import sample_isotropic_direction, sample_lifetime
from .geometry import Geometry
from .particle import ParticleState, Species

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InitialCondition:
    species: Species
    position: Tuple[float, float, float]
    velocity: Tuple[float, float, float]
    time: float = 0.0
    polarisation: int = 0
    placed: bool = True


def direction_from_angles(theta: float, phi: float) -> np.ndarray:
    """Unit vector from polar angle ``theta`` (from +z) and azimuth ``phi``."""
    return np.array([math.sin(theta) * math.cos(phi), math.sin(theta) * math.sin(phi), math.cos(theta)])


class ParameterSweep:
    """Finite, restartable grid of initial conditions.

    Every combination of the given energies, positions, directions and
    polarisations is produced once, in a fixed order. Iterating again starts
    from the beginning; ``start`` skips already simulated entries.

    Parameters
    ----------
    species : Species
    energies : sequence of float
        Kinetic energies (eV).
    positions : sequence of 3-vectors
    directions : sequence of (theta, phi)
        Launch directions (rad).
    polarisations : sequence of int
    time : float
        Start time of every particle.
    """

    def __init__(
        self,
        species: Species,
        energies: Sequence[float],
        positions: Sequence[Sequence[float]],
        directions: Sequence[Tuple[float, float]] = ((math.pi / 2.0, 0.0),),
        polarisations: Sequence[int] = (0,),
        time: float = 0.0,
    ):
        self.species = Species(species)
        self.energies = tuple(float(e) for e in energies)
        self.positions = tuple(tuple(float(x) for x in p) for p in positions)
        self.directions = tuple((float(t), float(p)) for t, p in directions)
        self.polarisations = tuple(int(p) for p in polarisations)
        self.time = float(time)
        if any(e < 0.0 for e in self.energies):
            raise ValueError("Sweep energies must be >= 0")
        if any(len(p) != 3 for p in self.positions):
            raise ValueError("Sweep positions must be 3-vectors")

    def __len__(self) -> int:
        return len(self.energies) * len(self.positions) * len(self.directions) * len(self.polarisations)

    def __iter__(self) -> Iterator[InitialCondition]:
        return self.iterate()

    def iterate(self, start: int = 0) -> Iterator[InitialCondition]:
        grid = itertools.product(self.energies, self.positions, self.directions, self.polarisations)
        for energy, position, (theta, phi), polarisation in itertools.islice(grid, start, None):
            speed = self.species.speed_from_energy(energy)
            velocity = speed * direction_from_angles(theta, phi)
            yield InitialCondition(
                species=self.species,
                position=position,
                velocity=tuple(velocity),
                time=self.time,
                polarisation=polarisation,
            )


class MonteCarloSource:
    """Random initial conditions inside one solid of a geometry.

    Positions are drawn uniformly in ``box`` and accepted when the authoritative
    solid at that point is ``volume``. Kinetic energies follow ``E^power`` on
    ``[energy_min, energy_max]`` (``power=0.5`` is the usual UCN spectrum),
    directions are isotropic.
    """

    def __init__(
        self,
        geometry: Geometry,
        species: Species,
        box: Tuple[Sequence[float], Sequence[float]],
        energy_min: float,
        energy_max: float,
        volume: Optional[str] = None,
        power: float = 0.5,
        polarisations: Sequence[int] = (0,),
        max_retries: int = 1000,
        time: float = 0.0,
    ):
        if not 0.0 <= energy_min <= energy_max:
            raise ValueError("Need 0 <= energy_min <= energy_max")
        self.geometry = geometry
        self.species = Species(species)
        self.box_min = np.asarray(box[0], dtype=float)
        self.box_max = np.asarray(box[1], dtype=float)
        self.energy_min = float(energy_min)
        self.energy_max = float(energy_max)
        self.power = float(power)
        self.polarisations = tuple(polarisations)
        self.max_retries = int(max_retries)
        self.time = float(time)
        if volume is None:
            self.volume_index = None
        else:
            names = [s.name for s in geometry.solids]
            if volume not in names:
                raise ValueError(f"Unknown source volume '{volume}'")
            self.volume_index = names.index(volume)

    def sample_energy(self, rng: np.random.Generator) -> float:
        """Inverse-CDF draw from ``E^power`` on the energy interval."""
        if self.energy_max == self.energy_min:
            return self.energy_min
        a = self.power + 1.0
        lo = self.energy_min**a
        hi = self.energy_max**a
        return float((lo + rng.random() * (hi - lo)) ** (1.0 / a))

    def sample_position(self, rng: np.random.Generator) -> Tuple[np.ndarray, bool]:
        point = self.box_min
        for _ in range(self.max_retries):
            point = self.box_min + rng.random(3) * (self.box_max - self.box_min)
            if not self.geometry.in_bounds(point):
                continue
            if self.volume_index is None:
                return point, True
            inside = self.geometry.solids_containing(point, self.time)
            if inside[-1] == self.volume_index:
                return point, True
        logger.warning("No initial position found after %d tries", self.max_retries)
        return point, False

    def sample(self, rng: np.random.Generator) -> InitialCondition:
        position, placed = self.sample_position(rng)
        speed = self.species.speed_from_energy(self.sample_energy(rng))
        velocity = speed * sample_isotropic_direction(rng)
        polarisation = self.polarisations[int(rng.integers(len(self.polarisations)))]
        return InitialCondition(
            species=self.species,
            position=tuple(position),
            velocity=tuple(velocity),
            time=self.time,
            polarisation=polarisation,
            placed=placed,
        )

    def generate(self, n: int, rng: np.random.Generator) -> Iterator[InitialCondition]:
        for _ in range(n):
            yield self.sample(rng)


def make_particle(condition: InitialCondition, particle_id: int, rng: np.random.Generator, config) -> ParticleState:
    """Create a running particle (with sampled lifetime) from an initial condition."""
    return ParticleState(
        species=condition.species,
        particle_id=particle_id,
        position=np.array(condition.position, dtype=float),
        velocity=np.array(condition.velocity, dtype=float),
        time=condition.time,
        polarisation=condition.polarisation,
        lifetime=sample_lifetime(rng, Species(condition.species), config.decay_enabled),
        record_trajectory=config.record_trajectories,
    )
