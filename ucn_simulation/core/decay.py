"""
Free neutron beta decay: lifetime sampling and decay product kinematics.
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np

from .constants import ELECTRON_ENDPOINT_EV, ELECTRON_MASS_KG, EV_TO_J, PROTON_MASS_KG, SPEED_OF_LIGHT
from .particle import Species

_ELECTRON_REST_EV = ELECTRON_MASS_KG * SPEED_OF_LIGHT**2 / EV_TO_J


def sample_lifetime(rng: np.random.Generator, species: Species, enabled: bool = True) -> float:
    """Exponentially distributed decay time; infinite for stable species."""
    mean = species.mean_lifetime
    if not enabled or math.isinf(mean):
        return math.inf
    return float(rng.exponential(mean))


def sample_isotropic_direction(rng: np.random.Generator) -> np.ndarray:
    cos_theta = 2.0 * rng.random() - 1.0
    phi = 2.0 * math.pi * rng.random()
    sin_theta = math.sqrt(max(0.0, 1.0 - cos_theta**2))
    return np.array([sin_theta * math.cos(phi), sin_theta * math.sin(phi), cos_theta])


def _beta_spectrum(kinetic_ev: np.ndarray) -> np.ndarray:
    """Allowed beta spectrum shape ``p E (E0 - E)^2`` (no Fermi function)."""
    total = kinetic_ev + _ELECTRON_REST_EV
    momentum = np.sqrt(np.maximum(total**2 - _ELECTRON_REST_EV**2, 0.0))
    return momentum * total * (ELECTRON_ENDPOINT_EV - kinetic_ev) ** 2


_SPECTRUM_MAX = 1.05 * float(np.max(_beta_spectrum(np.linspace(0.0, ELECTRON_ENDPOINT_EV, 2001))))


def sample_electron_energy(rng: np.random.Generator) -> float:
    """Electron kinetic energy (eV) from the allowed beta spectrum."""
    while True:
        energy = rng.random() * ELECTRON_ENDPOINT_EV
        if rng.random() * _SPECTRUM_MAX <= _beta_spectrum(np.array(energy)):
            return float(energy)


def decay_velocities(rng: np.random.Generator, neutron_velocity: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Proton and electron velocities (m/s) of one neutron decay.

    The electron energy follows the beta spectrum, electron and antineutrino
    are emitted isotropically and independently, and the proton takes the
    recoil momentum. The neutron's own velocity is added to both.
    """
    electron_kinetic = sample_electron_energy(rng)
    electron_total = electron_kinetic + _ELECTRON_REST_EV
    electron_p = math.sqrt(electron_total**2 - _ELECTRON_REST_EV**2)  # eV/c
    neutrino_p = ELECTRON_ENDPOINT_EV - electron_kinetic  # massless, eV/c

    p_electron = electron_p * sample_isotropic_direction(rng)
    p_neutrino = neutrino_p * sample_isotropic_direction(rng)
    p_proton = -(p_electron + p_neutrino)

    to_si = EV_TO_J / SPEED_OF_LIGHT
    proton_velocity = p_proton * to_si / PROTON_MASS_KG
    electron_velocity = p_electron * SPEED_OF_LIGHT / electron_total
    return proton_velocity + neutron_velocity, electron_velocity + neutron_velocity


def decay(rng: np.random.Generator, neutron, next_id) -> list:
    """Spawn the proton and electron of a decayed neutron.

    ``next_id`` is a callable returning fresh particle ids.
    """
    proton_velocity, electron_velocity = decay_velocities(rng, neutron.velocity)
    return [
        neutron.spawn(Species.PROTON, next_id(), proton_velocity),
        neutron.spawn(Species.ELECTRON, next_id(), electron_velocity),
    ]
