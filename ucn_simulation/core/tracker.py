"""
Per-particle tracking loop.

One call of :meth:`ParticleTracker.track` runs a particle from its start
state to exactly one terminal state: propose a macro step, walk its accepted
micro steps, check each against the geometry, cut the step at the first
boundary crossing, let the surface model decide, and start over.
"""

from __future__ import annotations

import itertools
import logging
from typing import Callable, Optional

import numpy as np
from scipy.optimize import brentq

from .collision import CollisionResolver, CrossingResolution, MaterialStack, SurfaceEvent
from .decay import decay
from .equations import EquationsOfMotion
from .errors import NoInitialPositionError, TrackingError
from .geometry import Geometry
from .integrator import Integrator, MicroStep, macro_step_length, sag_step_limit
from .particle import ParticleState, Species, StopID, SurfaceOutcome
from .surface import SurfaceInteractionModel

logger = logging.getLogger(__name__)


def crossing_time(micro: MicroStep, point: np.ndarray, normal: np.ndarray, s: float) -> float:
    """Time at which the interpolated path meets the plane through ``point``.

    Falls back to linear interpolation in ``s`` when the curved path does not
    bracket the plane.
    """
    def signed_distance(t):
        return float(np.dot(micro(t)[:3] - point, normal))

    f0 = signed_distance(micro.t0)
    f1 = signed_distance(micro.t1)
    if f0 == 0.0:
        return micro.t0
    if f0 * f1 > 0.0:
        return micro.t0 + s * (micro.t1 - micro.t0)
    return brentq(signed_distance, micro.t0, micro.t1, xtol=max((micro.t1 - micro.t0) * 1e-12, 1e-300))


class ParticleTracker:
    """Run particles through one geometry and field.

    Parameters
    ----------
    geometry : Geometry
    field : callable
        ``field(position, time) -> FieldSample``.
    config : SimulationConfig
    rng : np.random.Generator
    next_id : callable, optional
        Returns fresh particle ids for decay products.
    """

    def __init__(self, geometry: Geometry, field, config, rng: np.random.Generator,
                 next_id: Optional[Callable[[], int]] = None):
        self.geometry = geometry
        self.field = field
        self.config = config
        self.rng = rng
        self.resolver = CollisionResolver(geometry, config)
        self.surface = SurfaceInteractionModel(config, rng)
        self.next_id = next_id if next_id is not None else itertools.count(1).__next__

    def final_solid_name(self, particle: ParticleState) -> str:
        if particle.material_stack is None:
            return ""
        return particle.material_stack.solid.name

    def track(self, particle: ParticleState) -> ParticleState:
        """Integrate ``particle`` until it reaches a terminal state."""
        try:
            self._run(particle)
        except TrackingError as exc:
            logger.warning("Particle %d (%s) stopped with %s: %s",
                           particle.particle_id, particle.species.value, exc.stop_id.name, exc)
            particle.terminate(exc.stop_id)
        if particle.stop_id is StopID.UNCATEGORIZED:
            logger.warning("Particle %d ended uncategorized", particle.particle_id)
        return particle

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    def _run(self, p: ParticleState) -> None:
        settings = self.config.for_species(p.species)
        equations = EquationsOfMotion(p.species, self.field, p.polarisation, self.config.gravity)
        integrator = Integrator(settings)

        if not self.geometry.in_bounds(p.position):
            raise NoInitialPositionError(f"start position {p.position} is outside the geometry")
        if p.material_stack is None:
            p.material_stack = MaterialStack.at_point(self.geometry, p.position, p.time)
        p.update_energy(equations.potential_energy(p.time, p.position))
        p.record_point()

        t_max = p.start_time + settings.max_time
        decay_time = p.start_time + p.lifetime
        last_event: Optional[SurfaceEvent] = None
        last_check = p.time

        while p.is_running:
            base = macro_step_length(settings.macro_step, self.field(p.position, p.time),
                                     self.config.low_field_threshold)
            window_edge = self.geometry.next_ignore_edge(p.time)
            t_end = min(p.time + base, t_max, decay_time, window_edge)
            y0 = np.concatenate([p.position, p.velocity])
            max_step = sag_step_limit(equations.acceleration(p.time, p.position, p.velocity),
                                      self.config.max_sag)

            for micro in integrator.micro_steps(equations, p.time, y0, t_end, max_step):
                p.n_steps += 1
                start = micro.y0[:3]
                end = micro.y1[:3]
                resolution = self.resolver.first_resolution(start, end, micro.t0, p.material_stack, last_event)
                if resolution is None:
                    p.move_to(micro.t1, end, micro.y1[3:])
                    if not self.geometry.in_bounds(end):
                        p.terminate(StopID.LEFT_OUTER_BOUNDARY)
                        break
                    continue

                crossing = resolution.crossing
                t_c = crossing_time(micro, crossing.point, crossing.normal, crossing.s)
                y_c = micro(t_c)
                position = y_c[:3] - np.dot(y_c[:3] - crossing.point, crossing.normal) * crossing.normal
                p.move_to(t_c, position, y_c[3:])
                self._surface_event(p, resolution, p.time - last_check)
                last_check = p.time
                last_event = SurfaceEvent(point=position.copy(),
                                          solid_indices=tuple(c.solid_index for c in resolution.group))
                break

            if not p.is_running:
                break
            p.update_energy(equations.potential_energy(p.time, p.position))
            p.record_point()

            if not self.surface.survives(p.material_stack.material, p.time - last_check):
                p.terminate(StopID.ABSORBED_IN_MATERIAL)
                break
            last_check = p.time

            if p.time >= window_edge:
                # a solid appeared or vanished around the particle
                p.material_stack = MaterialStack.at_point(self.geometry, p.position, p.time)

            if p.time >= decay_time:
                p.terminate(StopID.DECAYED)
                if self.config.simulate_secondaries and p.species is Species.NEUTRON:
                    for child in decay(self.rng, p, self.next_id):
                        child.material_stack = p.material_stack.copy()
            elif p.time >= t_max:
                p.terminate(StopID.NOT_FINISHED)

    def _surface_event(self, p: ParticleState, resolution: CrossingResolution, dwell_time: float) -> None:
        for solid in resolution.hidden_absorbers:
            if self.surface.hidden_crossing_absorbed(solid.material):
                logger.debug("Particle %d absorbed crossing '%s'", p.particle_id, solid.name)
                p.record_outcome(SurfaceOutcome.ABSORBED_ON_SURFACE)
                p.terminate(StopID.ABSORBED_ON_SURFACE)
                return

        if not resolution.is_material_change:
            p.material_stack = resolution.stack_after
            if not self.surface.survives(resolution.leaving.material, dwell_time):
                p.terminate(StopID.ABSORBED_IN_MATERIAL)
            return

        result = self.surface.interact(
            p.species,
            p.velocity,
            resolution.surface_normal(p.velocity),
            resolution.leaving.material,
            resolution.entering.material,
            dwell_time,
        )
        p.record_outcome(result.outcome)
        p.velocity = result.velocity
        if result.crossed:
            p.material_stack = resolution.stack_after
        if result.stop_id is not None:
            p.terminate(result.stop_id)
