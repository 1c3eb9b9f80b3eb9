"""
Equations of motion for neutrons, protons and electrons.

The state vector is ``y = [x, y, z, vx, vy, vz]`` in Cartesian coordinates.
"""

from __future__ import annotations

import numpy as np

from .constants import ELEMENTARY_CHARGE, GRAVITY, NEUTRON_MAGNETIC_MOMENT, SPEED_OF_LIGHT
from .errors import IntegrationError
from .particle import Species

_GRAVITY_VECTOR = np.array([0.0, 0.0, -GRAVITY])


class EquationsOfMotion:
    """Right-hand side ``dy/dt = f(t, y)`` for one species in one field.

    Parameters
    ----------
    species : Species
    field : callable
        ``field(position, time) -> FieldSample``.
    polarisation : int
        Spin projection sign for neutrons; +1 is a low-field seeker.
    gravity : bool
        Apply gravity to neutrons. Charged particles never feel it.
    """

    def __init__(self, species: Species, field, polarisation: int = 0, gravity: bool = True):
        self.species = Species(species)
        self.field = field
        self.polarisation = polarisation
        self.gravity = gravity
        self.mass = self.species.mass_kg
        self.charge = self.species.charge

    def acceleration(self, t: float, position: np.ndarray, velocity: np.ndarray) -> np.ndarray:
        sample = self.field(position, t)
        if self.species is Species.NEUTRON:
            a = np.zeros(3)
            if self.polarisation != 0:
                a = self.polarisation * NEUTRON_MAGNETIC_MOMENT * sample.grad_B_magnitude() / self.mass
            if self.gravity:
                a = a + _GRAVITY_VECTOR
            return a

        lorentz = sample.E + np.cross(velocity, sample.B)
        if self.species.relativistic:
            v2 = float(np.dot(velocity, velocity))
            if v2 >= SPEED_OF_LIGHT**2:
                raise IntegrationError(f"electron speed {np.sqrt(v2):.6e} m/s reached c")
            gamma = 1.0 / np.sqrt(1.0 - v2 / SPEED_OF_LIGHT**2)
            lorentz = lorentz - velocity * np.dot(velocity, sample.E) / SPEED_OF_LIGHT**2
            return self.charge * lorentz / (gamma * self.mass)
        return self.charge * lorentz / self.mass

    def __call__(self, t: float, y: np.ndarray) -> np.ndarray:
        dydt = np.empty(6)
        dydt[:3] = y[3:]
        dydt[3:] = self.acceleration(t, y[:3], y[3:])
        if not np.all(np.isfinite(dydt)):
            raise IntegrationError(f"non-finite derivative at t={t!r}, y={y!r}")
        return dydt

    def potential_energy(self, t: float, position: np.ndarray) -> float:
        """Potential energy (eV) at ``position``."""
        sample = self.field(position, t)
        if self.species is Species.NEUTRON:
            u = -self.polarisation * NEUTRON_MAGNETIC_MOMENT * sample.B_magnitude
            if self.gravity:
                u += self.mass * GRAVITY * float(position[2])
            return u / ELEMENTARY_CHARGE
        return self.charge * sample.V / ELEMENTARY_CHARGE
