"""
Stochastic surface interaction: Fresnel transmission, specular and diffuse
reflection, surface loss and Beer-Lambert absorption.

At a boundary event the model applies a fixed sequence of independent
Bernoulli draws:

1. transmission with the step-potential probability ``T = 1 - |R|^2``;
2. on reflection, diffuse vs. specular;
3. on reflection, the per-bounce surface loss;
4. Beer-Lambert survival in the material that is being left.

Velocities use the convention that ``normal`` points from the material being
left into the material being entered (``v . n > 0`` for an incoming
particle).
"""

from __future__ import annotations

import cmath
import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .constants import HBAR, NEV_TO_J, NM_TO_M
from .data_classes import Material
from .microroughness import (
    critical_wave_number,
    mr_total_probability,
    sample_lambert_direction,
    sample_mr_direction,
    wave_number,
)
from .particle import Species, StopID, SurfaceOutcome

logger = logging.getLogger(__name__)


def fresnel_reflectivity(e_perp: float, delta_v: float, w_enter: float) -> float:
    """``|R|^2`` of a complex potential step.

    ``R = (k1 - k2) / (k1 + k2)`` with ``k1 = sqrt(E_perp)`` and
    ``k2 = sqrt(E_perp - dV + i W)``; all energies in the same unit.
    """
    k1 = math.sqrt(max(e_perp, 0.0))
    k2 = cmath.sqrt(complex(e_perp - delta_v, w_enter))
    denominator = k1 + k2
    if denominator == 0.0:
        return 1.0
    return min(abs((k1 - k2) / denominator) ** 2, 1.0)


def transmission_probability(e_perp: float, delta_v: float, w_enter: float = 0.0) -> float:
    """Zero at or below the barrier, ``1 - |R|^2`` above it."""
    if e_perp <= delta_v:
        return 0.0
    return 1.0 - fresnel_reflectivity(e_perp, delta_v, w_enter)


def fresnel_loss_probability(e_perp: float, delta_v: float, w_enter: float) -> float:
    """Absorption probability of a reflection below the barrier."""
    if e_perp > delta_v or w_enter == 0.0:
        return 0.0
    return max(1.0 - fresnel_reflectivity(e_perp, delta_v, w_enter), 0.0)


def specular_reflection(velocity: np.ndarray, normal: np.ndarray) -> np.ndarray:
    return velocity - 2.0 * np.dot(velocity, normal) * normal


def beer_lambert_survival(material: Material, dwell_time: float) -> float:
    """``exp(-2 W t / hbar)`` for time ``t`` spent inside ``material``."""
    if material.fermi_imag_nev == 0.0 or dwell_time <= 0.0:
        return 1.0
    return math.exp(-2.0 * material.fermi_imag_nev * NEV_TO_J * dwell_time / HBAR)


def hemisphere_direction(theta: float, phi: float, velocity: np.ndarray, normal: np.ndarray) -> np.ndarray:
    """Unit vector at polar angle ``theta`` around ``-normal``.

    ``phi = 0`` is the direction of the tangential velocity.
    """
    axis = -normal
    tangential = velocity - np.dot(velocity, normal) * normal
    t_norm = np.linalg.norm(tangential)
    if t_norm > 1e-12 * max(np.linalg.norm(velocity), 1e-300):
        t1 = tangential / t_norm
    else:
        helper = np.array([1.0, 0.0, 0.0]) if abs(axis[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
        t1 = np.cross(axis, helper)
        t1 /= np.linalg.norm(t1)
    t2 = np.cross(axis, t1)
    return (math.sin(theta) * math.cos(phi) * t1
            + math.sin(theta) * math.sin(phi) * t2
            + math.cos(theta) * axis)


@dataclass
class SurfaceResult:
    """Outcome of one boundary event.

    ``crossed`` is True when the particle ends up beyond the boundary, either
    transmitted or absorbed inside the material it entered.
    """

    outcome: SurfaceOutcome
    velocity: np.ndarray
    stop_id: Optional[StopID] = None
    crossed: bool = False

    @property
    def transmitted(self) -> bool:
        return self.outcome is SurfaceOutcome.TRANSMITTED

    @property
    def reflected(self) -> bool:
        return self.outcome in (SurfaceOutcome.REFLECTED_SPECULAR, SurfaceOutcome.REFLECTED_DIFFUSE)


class SurfaceInteractionModel:
    """Decide what happens to a particle at a material boundary.

    Parameters
    ----------
    config : SimulationConfig
        Provides the MR quadrature and envelope settings.
    rng : np.random.Generator
        Source of every random draw.
    """

    def __init__(self, config, rng: np.random.Generator):
        self.rng = rng
        self.quadrature_points = config.mr_quadrature_points
        self.envelope_grid = config.mr_envelope_grid
        self.envelope_safety = config.mr_envelope_safety

    # ------------------------------------------------------------------
    # Probabilities
    # ------------------------------------------------------------------
    def diffuse_probability(self, speed: float, theta_i: float, wall: Material, delta_v_nev: float,
                            mass: float) -> float:
        if not wall.uses_microroughness:
            return wall.diffuse_probability
        return mr_total_probability(
            wave_number(speed, mass),
            critical_wave_number(delta_v_nev, mass),
            theta_i,
            wall.rms_roughness_nm * NM_TO_M,
            wall.correlation_length_nm * NM_TO_M,
            self.quadrature_points,
        )

    def survives(self, material: Material, dwell_time: float) -> bool:
        """Beer-Lambert draw; consumes a random number only for lossy materials."""
        survival = beer_lambert_survival(material, dwell_time)
        if survival >= 1.0:
            return True
        return self.rng.random() < survival

    def hidden_crossing_absorbed(self, material: Material) -> bool:
        """Loss draw for an absorbing solid crossed without a material change."""
        if material.loss_per_bounce <= 0.0:
            return False
        return self.rng.random() < material.loss_per_bounce

    # ------------------------------------------------------------------
    # Event
    # ------------------------------------------------------------------
    def interact(
        self,
        species: Species,
        velocity: np.ndarray,
        normal: np.ndarray,
        leaving: Material,
        entering: Material,
        dwell_time: float = 0.0,
    ) -> SurfaceResult:
        """Resolve one boundary event.

        Parameters
        ----------
        velocity : np.ndarray
            Incoming velocity (m/s).
        normal : np.ndarray
            Unit normal pointing into ``entering``.
        dwell_time : float
            Time spent in ``leaving`` since the last Beer-Lambert check.
        """
        velocity = np.asarray(velocity, dtype=float)
        normal = np.asarray(normal, dtype=float)

        if species is not Species.NEUTRON:
            if entering.is_vacuum:
                return SurfaceResult(SurfaceOutcome.TRANSMITTED, velocity.copy(), crossed=True)
            return SurfaceResult(SurfaceOutcome.ABSORBED_IN_MATERIAL, velocity.copy(),
                                 StopID.ABSORBED_IN_MATERIAL, crossed=True)

        mass = species.mass_kg
        v_perp = float(np.dot(velocity, normal))
        e_perp = 0.5 * mass * v_perp**2 / NEV_TO_J
        delta_v = entering.fermi_real_nev - leaving.fermi_real_nev
        w_enter = entering.fermi_imag_nev

        # 1. transmission
        if self.rng.random() < transmission_probability(e_perp, delta_v, w_enter):
            v_perp_new = math.copysign(math.sqrt(v_perp**2 - 2.0 * delta_v * NEV_TO_J / mass), v_perp)
            new_velocity = velocity + (v_perp_new - v_perp) * normal
            if not self.survives(leaving, dwell_time):
                return SurfaceResult(SurfaceOutcome.ABSORBED_IN_MATERIAL, new_velocity,
                                     StopID.ABSORBED_IN_MATERIAL)
            if entering.absorber:
                return SurfaceResult(SurfaceOutcome.ABSORBED_IN_MATERIAL, new_velocity,
                                     StopID.ABSORBED_IN_MATERIAL, crossed=True)
            return SurfaceResult(SurfaceOutcome.TRANSMITTED, new_velocity, crossed=True)

        # 2. specular or diffuse
        speed = float(np.linalg.norm(velocity))
        theta_i, _ = incidence_angle(velocity, normal)
        diffuse = self.diffuse_probability(speed, theta_i, entering, delta_v, mass)
        if diffuse > 0.0 and self.rng.random() < diffuse:
            outcome = SurfaceOutcome.REFLECTED_DIFFUSE
            new_velocity = speed * self._diffuse_direction(velocity, normal, speed, theta_i, entering,
                                                           delta_v, mass)
        else:
            outcome = SurfaceOutcome.REFLECTED_SPECULAR
            new_velocity = specular_reflection(velocity, normal)

        # 3. surface loss
        loss = 1.0 - (1.0 - entering.loss_per_bounce) * (1.0 - fresnel_loss_probability(e_perp, delta_v, w_enter))
        if loss > 0.0 and self.rng.random() < loss:
            return SurfaceResult(SurfaceOutcome.ABSORBED_ON_SURFACE, new_velocity, StopID.ABSORBED_ON_SURFACE)

        # 4. Beer-Lambert in the material being left
        if not self.survives(leaving, dwell_time):
            return SurfaceResult(SurfaceOutcome.ABSORBED_ON_SURFACE, new_velocity, StopID.ABSORBED_ON_SURFACE)
        return SurfaceResult(outcome, new_velocity)

    def _diffuse_direction(self, velocity, normal, speed, theta_i, wall: Material, delta_v, mass) -> np.ndarray:
        if wall.uses_microroughness:
            theta, phi = sample_mr_direction(
                self.rng,
                wave_number(speed, mass),
                critical_wave_number(delta_v, mass),
                theta_i,
                wall.rms_roughness_nm * NM_TO_M,
                wall.correlation_length_nm * NM_TO_M,
                self.envelope_grid,
                self.envelope_safety,
            )
        else:
            theta, phi = sample_lambert_direction(self.rng)
        return hemisphere_direction(theta, phi, velocity, normal)


def incidence_angle(velocity: np.ndarray, normal: np.ndarray) -> Tuple[float, float]:
    """Return ``(theta_i, |v_perp|)`` for a velocity against a unit normal."""
    v_perp = abs(float(np.dot(velocity, normal)))
    speed = float(np.linalg.norm(velocity))
    if speed == 0.0:
        return 0.0, 0.0
    return math.acos(min(v_perp / speed, 1.0)), v_perp
