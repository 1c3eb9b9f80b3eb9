"""
Adaptive Runge-Kutta integration of one macro step.

A macro step is split into micro steps by :class:`scipy.integrate.RK45`
(Dormand-Prince 5(4) with embedded error control). Each accepted micro step
is handed out together with its dense interpolant, so the tracker can check
it against the geometry and cut it at an exact boundary crossing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

import numpy as np
from scipy.integrate import RK45

from .errors import IntegrationError
from .fields import FieldSample

logger = logging.getLogger(__name__)

# Floors of the absolute tolerance scales (m and m/s)
_POSITION_SCALE_FLOOR = 1e-3
_VELOCITY_SCALE_FLOOR = 1e-3


@dataclass
class MicroStep:
    """One accepted step of the adaptive stepper."""

    t0: float
    t1: float
    y0: np.ndarray
    y1: np.ndarray
    interpolant: object = field(repr=False)

    def __call__(self, t: float) -> np.ndarray:
        if t <= self.t0:
            return self.y0.copy()
        if t >= self.t1:
            return self.y1.copy()
        return self.interpolant(t)


@dataclass
class IntegrationStep:
    """Result of integrating one macro step to completion."""

    t_start: float
    t_end: float
    micro_steps: List[MicroStep]

    @property
    def n_micro_steps(self) -> int:
        return len(self.micro_steps)

    @property
    def times(self) -> np.ndarray:
        return np.array([self.t_start] + [m.t1 for m in self.micro_steps])

    @property
    def states(self) -> np.ndarray:
        if not self.micro_steps:
            return np.empty((0, 6))
        return np.array([self.micro_steps[0].y0] + [m.y1 for m in self.micro_steps])


def macro_step_length(base_step: float, sample: FieldSample, low_field_threshold: float) -> float:
    """Shrink the macro step in weak magnetic fields.

    ``|B|`` below the threshold divides the step by 10, below a tenth of the
    threshold by 100.
    """
    if low_field_threshold <= 0.0:
        return base_step
    b = sample.B_magnitude
    if b < 0.1 * low_field_threshold:
        return base_step / 100.0
    if b < low_field_threshold:
        return base_step / 10.0
    return base_step


def sag_step_limit(acceleration: np.ndarray, max_sag: float) -> Optional[float]:
    """Longest step whose path stays within ``max_sag`` of its chord.

    A path with constant acceleration ``a`` deviates from the chord of a step
    of length ``h`` by at most ``|a| h**2 / 8``. Returns None when there is no
    limit.
    """
    a = float(np.linalg.norm(acceleration))
    if max_sag <= 0.0 or a == 0.0 or not np.isfinite(a):
        return None
    return float(np.sqrt(8.0 * max_sag / a))


class Integrator:
    """Advance ``y = [x, y, z, vx, vy, vz]`` with error control.

    Parameters
    ----------
    settings : SpeciesSettings
        ``eps`` (relative tolerance), ``hmin`` and ``max_micro_steps``.
    """

    def __init__(self, settings):
        self.eps = settings.eps
        self.hmin = settings.hmin
        self.max_micro_steps = settings.max_micro_steps

    def _atol(self, y: np.ndarray) -> np.ndarray:
        pos_scale = max(float(np.linalg.norm(y[:3])), _POSITION_SCALE_FLOOR)
        vel_scale = max(float(np.linalg.norm(y[3:])), _VELOCITY_SCALE_FLOOR)
        return self.eps * np.repeat([pos_scale, vel_scale], 3)

    def micro_steps(self, equations, t0: float, y0: np.ndarray, t_end: float,
                    max_step: Optional[float] = None) -> Iterator[MicroStep]:
        """Yield accepted micro steps from ``t0`` until ``t_end``.

        ``max_step`` caps the micro step length below the macro step length.

        Raises
        ------
        IntegrationError
            The stepper failed, a step below ``hmin`` was needed before the
            end of the macro step, or more than ``max_micro_steps`` steps
            were taken.
        """
        if t_end <= t0:
            raise IntegrationError(f"empty macro step {t0!r} -> {t_end!r}")
        y0 = np.asarray(y0, dtype=float)
        stepper = RK45(
            equations,
            t0,
            y0,
            t_end,
            rtol=self.eps,
            atol=self._atol(y0),
            max_step=min(t_end - t0, max_step) if max_step else t_end - t0,
        )
        count = 0
        while stepper.status == "running":
            t_prev = stepper.t
            y_prev = stepper.y.copy()
            message = stepper.step()
            if stepper.status == "failed":
                raise IntegrationError(f"stepper failed at t={t_prev!r}: {message}")
            count += 1
            if count > self.max_micro_steps:
                raise IntegrationError(
                    f"more than {self.max_micro_steps} micro steps in macro step {t0!r} -> {t_end!r}"
                )
            h = stepper.t - t_prev
            if h < self.hmin and stepper.status == "running":
                raise IntegrationError(f"step size {h:.3e} s below hmin {self.hmin:.3e} s at t={t_prev!r}")
            yield MicroStep(t0=t_prev, t1=stepper.t, y0=y_prev, y1=stepper.y.copy(),
                            interpolant=stepper.dense_output())

    def integrate(self, equations, t0: float, y0: np.ndarray, t_end: float) -> IntegrationStep:
        steps = list(self.micro_steps(equations, t0, y0, t_end))
        logger.debug("Macro step %.6e -> %.6e took %d micro steps", t0, t_end, len(steps))
        return IntegrationStep(t_start=t0, t_end=t_end, micro_steps=steps)
