"""
Static and time-scaled field evaluators.

Every evaluator is a callable ``field(position, time) -> FieldSample`` with
no internal state mutation, so one instance can be shared by every particle
of a run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .constants import GRAVITY, NEUTRON_MAGNETIC_MOMENT, NEUTRON_MASS_KG, NEV_TO_J


@dataclass(frozen=True)
class FieldSample:
    """Field values at one point.

    Attributes
    ----------
    B : np.ndarray, shape (3,)
        Magnetic field (T).
    dBdx : np.ndarray, shape (3, 3)
        Jacobian ``dB_i/dx_j`` (T/m).
    E : np.ndarray, shape (3,)
        Electric field (V/m).
    V : float
        Electric potential (V).
    """

    B: np.ndarray
    dBdx: np.ndarray
    E: np.ndarray
    V: float = 0.0

    @property
    def B_magnitude(self) -> float:
        return float(np.linalg.norm(self.B))

    def grad_B_magnitude(self) -> np.ndarray:
        """Gradient of ``|B|``; zero where the field vanishes."""
        b = self.B_magnitude
        if b == 0.0:
            return np.zeros(3)
        return self.dBdx.T @ self.B / b


ZERO_SAMPLE = FieldSample(B=np.zeros(3), dBdx=np.zeros((3, 3)), E=np.zeros(3), V=0.0)


class ZeroField:
    """No magnetic or electric field anywhere."""

    def __call__(self, position: np.ndarray, time: float) -> FieldSample:
        return ZERO_SAMPLE


class LinearField:
    """Field that is affine in position.

    ``B(x) = B0 + G (x - origin)`` and a uniform electric field ``E`` with
    potential ``V(x) = -E . (x - origin)``. With ``G = 0`` this is a uniform
    field.
    """

    def __init__(
        self,
        B0: Sequence[float] = (0.0, 0.0, 0.0),
        gradient: Optional[np.ndarray] = None,
        E: Sequence[float] = (0.0, 0.0, 0.0),
        origin: Sequence[float] = (0.0, 0.0, 0.0),
    ):
        self.B0 = np.asarray(B0, dtype=float)
        self.gradient = np.zeros((3, 3)) if gradient is None else np.asarray(gradient, dtype=float)
        self.E = np.asarray(E, dtype=float)
        self.origin = np.asarray(origin, dtype=float)
        if self.gradient.shape != (3, 3):
            raise ValueError(f"gradient must have shape (3, 3), got {self.gradient.shape}")

    def __call__(self, position: np.ndarray, time: float) -> FieldSample:
        offset = np.asarray(position, dtype=float) - self.origin
        return FieldSample(
            B=self.B0 + self.gradient @ offset,
            dBdx=self.gradient,
            E=self.E,
            V=-float(self.E @ offset),
        )


def uniform_field(B: Sequence[float] = (0.0, 0.0, 0.0), E: Sequence[float] = (0.0, 0.0, 0.0)) -> LinearField:
    return LinearField(B0=B, E=E)


@dataclass
class FieldManager:
    """Sum of several evaluators, each optionally scaled by a function of time.

    A scale function models a ramped coil or electrode; the time derivative
    of the scale is not fed back into the equations of motion.
    """

    fields: List[Tuple[Callable[[np.ndarray, float], FieldSample], Optional[Callable[[float], float]]]] = field(
        default_factory=list
    )

    def add(self, evaluator, scale: Optional[Callable[[float], float]] = None) -> "FieldManager":
        self.fields.append((evaluator, scale))
        return self

    def __call__(self, position: np.ndarray, time: float) -> FieldSample:
        B = np.zeros(3)
        dBdx = np.zeros((3, 3))
        E = np.zeros(3)
        V = 0.0
        for evaluator, scale in self.fields:
            sample = evaluator(position, time)
            factor = 1.0 if scale is None else float(scale(time))
            B = B + factor * sample.B
            dBdx = dBdx + factor * sample.dBdx
            E = E + factor * sample.E
            V += factor * sample.V
        return FieldSample(B=B, dBdx=dBdx, E=E, V=V)


def sample_field_cut(
    evaluator,
    p1: Sequence[float],
    p2: Sequence[float],
    p3: Sequence[float],
    n1: int,
    n2: int,
    time: float = 0.0,
) -> pd.DataFrame:
    """Evaluate the field on a grid spanning the parallelogram p1, p2, p3.

    The grid runs ``n1`` points from p1 towards p2 and ``n2`` points from p1
    towards p3.
    """
    if n1 < 2 or n2 < 2:
        raise ValueError("A field cut needs at least 2 points in each direction")
    p1 = np.asarray(p1, dtype=float)
    u = np.asarray(p2, dtype=float) - p1
    v = np.asarray(p3, dtype=float) - p1
    if np.linalg.norm(np.cross(u, v)) == 0.0:
        raise ValueError("Field cut points are collinear")

    rows = []
    for a in np.linspace(0.0, 1.0, n1):
        for b in np.linspace(0.0, 1.0, n2):
            point = p1 + a * u + b * v
            sample = evaluator(point, time)
            grad = sample.grad_B_magnitude()
            rows.append({
                "x": point[0], "y": point[1], "z": point[2],
                "Bx": sample.B[0], "By": sample.B[1], "Bz": sample.B[2],
                "B": sample.B_magnitude,
                "dBdx": grad[0], "dBdy": grad[1], "dBdz": grad[2],
                "Ex": sample.E[0], "Ey": sample.E[1], "Ez": sample.E[2],
                "V": sample.V,
            })
    return pd.DataFrame(rows)


def _inclusive_range(start: float, stop: float, step: float) -> np.ndarray:
    if step <= 0.0 or stop < start:
        raise ValueError(f"invalid range {start} .. {stop} with step {step}")
    return start + step * np.arange(int(np.floor((stop - start) / step + 1e-9)) + 1)


def sample_field_rz(
    evaluator,
    r_range: Tuple[float, float] = (0.12, 0.5),
    z_range: Tuple[float, float] = (0.0, 1.2),
    dr: float = 0.1,
    dz: float = 0.1,
    time: float = 0.0,
) -> pd.DataFrame:
    """Evaluate the field on an ``r, z`` grid in the ``phi = 0`` half plane."""
    rows = []
    for r in _inclusive_range(*r_range, dr):
        for z in _inclusive_range(*z_range, dz):
            sample = evaluator(np.array([r, 0.0, z]), time)
            rows.append({
                "r": r, "phi": 0.0, "z": z,
                "Bx": sample.B[0], "By": sample.B[1], "Bz": sample.B[2],
                "B": sample.B_magnitude,
            })
    return pd.DataFrame(rows)


def ramp_heating_table(grid: pd.DataFrame, energies_nev: Sequence[float], dr: float, dz: float) -> pd.DataFrame:
    """Accessible volume per neutron energy with and without the field.

    Each ``r, z`` point of ``grid`` stands for a ring of volume
    ``pi dz ((r + dr/2)^2 - (r - dr/2)^2)``. A ring is accessible to a
    low-field seeker of total energy ``E`` if ``E - m g z - |mu| B >= 0``.
    Compressing the accessible volume adiabatically (``kappa = 5/3``) heats
    the neutrons by ``E (V / V_B)^(2/3) - E``.
    """
    r = grid["r"].to_numpy(float)
    gravity_nev = NEUTRON_MASS_KG * GRAVITY * grid["z"].to_numpy(float) / NEV_TO_J
    magnetic_nev = abs(NEUTRON_MAGNETIC_MOMENT) * grid["B"].to_numpy(float) / NEV_TO_J
    ring = np.pi * dz * ((r + 0.5 * dr) ** 2 - (r - 0.5 * dr) ** 2)

    rows = []
    for energy in energies_nev:
        volume = float(ring[energy - gravity_nev >= 0.0].sum())
        volume_b = float(ring[energy - gravity_nev - magnetic_nev >= 0.0].sum())
        heating = energy * (volume / volume_b) ** (2.0 / 3.0) - energy if volume_b > 0.0 else np.nan
        rows.append({
            "energy_neV": energy,
            "volume_without_B_m3": volume,
            "volume_with_B_m3": volume_b,
            "heating_neV": heating,
        })
    return pd.DataFrame(rows)
