"""
Micro-roughness diffuse reflection probability (MR-DRP).

Steyerl's model of diffuse reflection from a surface with Gaussian
correlated roughness (RMS height ``b``, correlation length ``w``). Angles are
measured from the outward surface normal; ``phi_o = 0`` is the forward
direction in the plane of incidence.

All functions take the neutron wave number ``k`` and the critical wave number
``kc = sqrt(2 m V) / hbar`` of the wall in 1/m.
"""

from __future__ import annotations

import math
from functools import lru_cache
from typing import Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.optimize import minimize

from .constants import HBAR, NEUTRON_MASS_KG, NEV_TO_J, NM_TO_M


def wave_number(speed: float, mass: float = NEUTRON_MASS_KG) -> float:
    return mass * speed / HBAR


def critical_wave_number(potential_nev: float, mass: float = NEUTRON_MASS_KG) -> float:
    if potential_nev <= 0.0:
        return 0.0
    return math.sqrt(2.0 * mass * potential_nev * NEV_TO_J) / HBAR


def _s_factor_squared(q, kc):
    """``|S(q)|^2`` with ``S(q) = 2q / (q + sqrt(q^2 - kc^2))``."""
    q = np.asarray(q, dtype=complex)
    s = 2.0 * q / (q + np.sqrt(q * q - kc * kc))
    return np.abs(s) ** 2


def mr_density(theta_o, phi_o, k: float, kc: float, theta_i: float, b: float, w: float):
    """Diffuse reflection probability per unit solid angle.

    Parameters
    ----------
    theta_o, phi_o : float or np.ndarray
        Outgoing polar and azimuthal angle (rad).
    k, kc : float
        Wave number and critical wave number (1/m).
    theta_i : float
        Angle of incidence (rad), in [0, pi/2).
    b, w : float
        RMS roughness and correlation length (m).
    """
    theta_o = np.asarray(theta_o, dtype=float)
    phi_o = np.asarray(phi_o, dtype=float)
    cos_i = math.cos(theta_i)
    if cos_i <= 0.0 or kc == 0.0 or b == 0.0 or w == 0.0:
        return np.zeros(np.broadcast(theta_o, phi_o).shape)
    sin_i = math.sin(theta_i)
    sin_o = np.sin(theta_o)
    k_par2 = k * k * (sin_i**2 + sin_o**2 - 2.0 * sin_i * sin_o * np.cos(phi_o))
    spectrum = math.pi * b * b * w * w * np.exp(-k_par2 * w * w / 4.0)
    prefactor = kc**4 / (16.0 * math.pi**2 * cos_i)
    return (prefactor * _s_factor_squared(k * cos_i, kc)
            * _s_factor_squared(k * np.cos(theta_o), kc) * spectrum)


@lru_cache(maxsize=8)
def _gauss_legendre(n: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Product rule nodes and weights on [0, pi/2] x [0, 2 pi]."""
    x, wts = np.polynomial.legendre.leggauss(n)
    theta = (x + 1.0) * math.pi / 4.0
    theta_w = wts * math.pi / 4.0
    phi = (x + 1.0) * math.pi
    phi_w = wts * math.pi
    return theta, theta_w, phi, phi_w


def mr_total_probability(k: float, kc: float, theta_i: float, b: float, w: float, n_points: int = 48) -> float:
    """Hemisphere integral of :func:`mr_density` (weighted by sin theta), clipped to [0, 1]."""
    theta, theta_w, phi, phi_w = _gauss_legendre(n_points)
    tt, pp = np.meshgrid(theta, phi, indexing="ij")
    values = mr_density(tt, pp, k, kc, theta_i, b, w) * np.sin(tt)
    total = float(theta_w @ values @ phi_w)
    return min(max(total, 0.0), 1.0)


def mr_normalized_density(theta_o, phi_o, k: float, kc: float, theta_i: float, b: float, w: float,
                          n_points: int = 48):
    """:func:`mr_density` divided by its hemisphere integral (integrates to 1)."""
    theta, theta_w, phi, phi_w = _gauss_legendre(n_points)
    tt, pp = np.meshgrid(theta, phi, indexing="ij")
    total = float(theta_w @ (mr_density(tt, pp, k, kc, theta_i, b, w) * np.sin(tt)) @ phi_w)
    if total <= 0.0:
        raise ValueError("MR density vanishes for these parameters")
    return mr_density(theta_o, phi_o, k, kc, theta_i, b, w) / total


def mr_envelope(k: float, kc: float, theta_i: float, b: float, w: float, grid: int = 24,
                safety: float = 1.05) -> float:
    """Upper bound of ``mr_density * sin(theta)`` over the hemisphere.

    A coarse grid finds the best start point, ``scipy.optimize.minimize``
    refines it.
    """
    theta = np.linspace(0.0, math.pi / 2.0, grid)
    phi = np.linspace(0.0, 2.0 * math.pi, grid)
    tt, pp = np.meshgrid(theta, phi, indexing="ij")
    values = mr_density(tt, pp, k, kc, theta_i, b, w) * np.sin(tt)
    i, j = np.unravel_index(np.argmax(values), values.shape)
    best = float(values[i, j])

    def negative(x):
        return -float(mr_density(x[0], x[1], k, kc, theta_i, b, w) * math.sin(x[0]))

    refined = minimize(
        negative,
        x0=np.array([tt[i, j], pp[i, j]]),
        method="L-BFGS-B",
        bounds=[(0.0, math.pi / 2.0), (0.0, 2.0 * math.pi)],
    )
    if refined.success:
        best = max(best, -float(refined.fun))
    return best * safety


def sample_mr_direction(
    rng: np.random.Generator,
    k: float,
    kc: float,
    theta_i: float,
    b: float,
    w: float,
    grid: int = 24,
    safety: float = 1.05,
    max_tries: int = 100000,
) -> Tuple[float, float]:
    """Draw ``(theta_o, phi_o)`` from the MR-DRP by rejection sampling."""
    envelope = mr_envelope(k, kc, theta_i, b, w, grid, safety)
    if envelope <= 0.0:
        raise ValueError("MR density vanishes for these parameters")
    for _ in range(max_tries):
        theta = rng.random() * math.pi / 2.0
        phi = rng.random() * 2.0 * math.pi
        value = float(mr_density(theta, phi, k, kc, theta_i, b, w)) * math.sin(theta)
        if rng.random() * envelope <= value:
            return theta, phi
    raise RuntimeError(f"MR rejection sampling did not accept a direction in {max_tries} tries")


def sample_lambert_direction(rng: np.random.Generator) -> Tuple[float, float]:
    """Cosine law: ``cos(theta) = sqrt(u)``, uniform azimuth."""
    theta = math.acos(math.sqrt(rng.random()))
    phi = rng.random() * 2.0 * math.pi
    return theta, phi


def mr_angle_table(
    speed: float,
    theta_i: float,
    fermi_real_nev: float,
    rms_roughness_nm: float,
    correlation_length_nm: float,
    n_theta: int = 46,
    n_phi: int = 91,
    mass: float = NEUTRON_MASS_KG,
) -> pd.DataFrame:
    """MR-DRP (times sin theta) over outgoing angles for one incidence."""
    k = wave_number(speed, mass)
    kc = critical_wave_number(fermi_real_nev, mass)
    b = rms_roughness_nm * NM_TO_M
    w = correlation_length_nm * NM_TO_M
    theta = np.linspace(0.0, math.pi / 2.0, n_theta)
    phi = np.linspace(0.0, 2.0 * math.pi, n_phi)
    tt, pp = np.meshgrid(theta, phi, indexing="ij")
    values = mr_density(tt, pp, k, kc, theta_i, b, w) * np.sin(tt)
    return pd.DataFrame({
        "phi_o": pp.ravel(),
        "theta_o": tt.ravel(),
        "mr_drp": values.ravel(),
    })


def mr_total_table(
    theta_i_values: Sequence[float],
    energies_nev: Sequence[float],
    fermi_real_nev: float,
    rms_roughness_nm: float,
    correlation_length_nm: float,
    n_points: int = 48,
    mass: float = NEUTRON_MASS_KG,
) -> pd.DataFrame:
    """Integrated MR-DRP over a grid of incidence angles and kinetic energies."""
    kc = critical_wave_number(fermi_real_nev, mass)
    b = rms_roughness_nm * NM_TO_M
    w = correlation_length_nm * NM_TO_M
    rows = []
    for theta_i in theta_i_values:
        for energy in energies_nev:
            k = math.sqrt(2.0 * mass * energy * NEV_TO_J) / HBAR
            rows.append({
                "theta_i": float(theta_i),
                "energy_nev": float(energy),
                "mr_total": mr_total_probability(k, kc, float(theta_i), b, w, n_points),
            })
    return pd.DataFrame(rows)
