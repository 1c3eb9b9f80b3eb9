"""
Data classes for the UCN tracking engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np


@dataclass
class MeshGeometry:
    """Preprocessed data for fast(ish) segment intersections with an STL mesh."""

    vertices0: np.ndarray
    edge1: np.ndarray
    edge2: np.ndarray
    normals: np.ndarray
    bbox_min: np.ndarray
    bbox_max: np.ndarray

    @property
    def n_facets(self) -> int:
        return int(self.vertices0.shape[0])


@dataclass(frozen=True)
class Material:
    """Surface and bulk properties seen by a particle.

    Attributes
    ----------
    name : str
        Material name, used in logs and summaries.
    fermi_real_nev : float
        Real part of the neutron Fermi potential (neV).
    fermi_imag_nev : float
        Imaginary part of the Fermi potential (neV). Must be >= 0.
    diffuse_probability : float
        Probability of a Lambertian diffuse reflection (used when the
        micro-roughness model is not active).
    loss_per_bounce : float
        Extra absorption probability per wall reflection.
    rms_roughness_nm : float
        RMS roughness height ``b`` of the micro-roughness model (nm).
    correlation_length_nm : float
        Roughness correlation length ``w`` (nm).
    absorber : bool
        Whether the bulk swallows every particle that is transmitted into it.
    """

    name: str
    fermi_real_nev: float = 0.0
    fermi_imag_nev: float = 0.0
    diffuse_probability: float = 0.0
    loss_per_bounce: float = 0.0
    rms_roughness_nm: float = 0.0
    correlation_length_nm: float = 0.0
    absorber: bool = False

    def __post_init__(self):
        if self.fermi_imag_nev < 0.0:
            raise ValueError(f"Material '{self.name}': imaginary Fermi potential must be >= 0")
        for attr in ("diffuse_probability", "loss_per_bounce"):
            value = getattr(self, attr)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Material '{self.name}': {attr} must lie in [0, 1], got {value}")
        if self.rms_roughness_nm < 0.0 or self.correlation_length_nm < 0.0:
            raise ValueError(f"Material '{self.name}': roughness parameters must be >= 0")

    @property
    def uses_microroughness(self) -> bool:
        return self.rms_roughness_nm > 0.0 and self.correlation_length_nm > 0.0

    @property
    def is_vacuum(self) -> bool:
        return self.fermi_real_nev == 0.0 and self.fermi_imag_nev == 0.0 and not self.absorber


VACUUM = Material("vacuum")


@dataclass(frozen=True)
class Solid:
    """A closed volume with a material and a priority.

    ``mesh`` is None only for the unbounded default solid that fills all
    space not claimed by anything else.
    """

    name: str
    material: Material
    priority: int
    mesh: Optional[MeshGeometry] = field(default=None, compare=False, repr=False)
    ignore_times: Tuple[Tuple[float, float], ...] = ()

    def is_ignored(self, time: float) -> bool:
        return any(start <= time < end for start, end in self.ignore_times)


@dataclass(frozen=True)
class Crossing:
    """One intersection of a path segment with a solid boundary."""

    s: float  # parametric position along the segment, (0, 1]
    solid_index: int
    priority: int
    point: np.ndarray = field(compare=False)
    normal: np.ndarray = field(compare=False)  # outward facet normal
    entering: bool

    def sort_key(self) -> Tuple[float, int]:
        return (self.s, -self.priority)


@dataclass(frozen=True)
class ParticleRecord:
    """Complete snapshot of a particle at termination, handed to the logger."""

    particle_id: int
    species: str
    generation: int
    parent_id: Optional[int]
    polarisation: int
    stop_id: int
    stop_name: str
    start_time: float
    stop_time: float
    start_position: np.ndarray
    start_velocity: np.ndarray
    stop_position: np.ndarray
    stop_velocity: np.ndarray
    start_energy: float  # eV
    stop_energy: float  # eV
    max_energy: float  # eV
    path_length: float  # m
    n_steps: int
    n_transmissions: int
    n_specular: int
    n_diffuse: int
    final_solid: str
    trajectory_points: Optional[List[Tuple[float, np.ndarray, np.ndarray, float]]] = None

    @property
    def elapsed_time(self) -> float:
        return self.stop_time - self.start_time
