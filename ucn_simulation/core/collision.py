"""
Boundary crossing detection and the per-particle material stack.

The material stack holds the indices of every solid that contains the
particle, ordered by priority. Its top is the solid whose material the
particle currently sees. Entering a solid pushes its index, leaving pops it;
nothing else ever changes the stack.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .data_classes import Crossing, Material, Solid
from .errors import GeometryError
from .geometry import DEFAULT_SOLID, Geometry

logger = logging.getLogger(__name__)


class MaterialStack:
    """Priority-ordered list of the solids containing a particle."""

    def __init__(self, geometry: Geometry, keys: Iterable[int] = (DEFAULT_SOLID,)):
        self._geometry = geometry
        keys = set(keys)
        keys.add(DEFAULT_SOLID)
        self._keys: List[int] = sorted(keys, key=geometry.priority)

    @classmethod
    def at_point(cls, geometry: Geometry, point: np.ndarray, time: float = 0.0) -> "MaterialStack":
        return cls(geometry, geometry.solids_containing(point, time))

    def copy(self) -> "MaterialStack":
        clone = MaterialStack.__new__(MaterialStack)
        clone._geometry = self._geometry
        clone._keys = list(self._keys)
        return clone

    @property
    def keys(self) -> Tuple[int, ...]:
        return tuple(self._keys)

    @property
    def top(self) -> int:
        return self._keys[-1]

    @property
    def solid(self) -> Solid:
        return self._geometry[self.top]

    @property
    def material(self) -> Material:
        return self.solid.material

    def __contains__(self, key: int) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __eq__(self, other) -> bool:
        return isinstance(other, MaterialStack) and self._keys == other._keys

    def __repr__(self) -> str:
        names = [self._geometry[k].name for k in self._keys]
        return f"MaterialStack({names})"

    def push(self, key: int) -> None:
        if key in self._keys:
            raise GeometryError(f"entering solid '{self._geometry[key].name}' which already contains the particle")
        priority = self._geometry.priority(key)
        position = len(self._keys)
        while position > 0 and self._geometry.priority(self._keys[position - 1]) > priority:
            position -= 1
        self._keys.insert(position, key)

    def pop(self, key: int) -> None:
        if key == DEFAULT_SOLID:
            raise GeometryError("the default solid cannot be left")
        if key not in self._keys:
            raise GeometryError(f"leaving solid '{self._geometry[key].name}' which does not contain the particle")
        self._keys.remove(key)

    def apply(self, crossings: Sequence[Crossing]) -> "MaterialStack":
        """Return a new stack with all crossings of a group applied."""
        result = self.copy()
        for crossing in crossings:
            if crossing.entering:
                result.push(crossing.solid_index)
            else:
                result.pop(crossing.solid_index)
        return result


@dataclass
class CrossingResolution:
    """What one group of simultaneous crossings means for the particle.

    Attributes
    ----------
    group : list of Crossing
        The crossings, highest priority first.
    stack_after : MaterialStack
        Stack the particle gets if it passes the boundary.
    leaving / entering : Solid
        Top solid before and after the group. Identical for a hidden
        crossing.
    crossing : Crossing
        The crossing that defines the surface (point and normal).
    hidden_absorbers : list of Solid
        Absorbing solids crossed without changing the current material.
    """

    group: List[Crossing]
    stack_after: MaterialStack
    leaving: Solid
    entering: Solid
    crossing: Crossing
    hidden_absorbers: List[Solid] = field(default_factory=list)

    @property
    def is_material_change(self) -> bool:
        return self.leaving is not self.entering

    @property
    def s(self) -> float:
        return self.crossing.s

    def surface_normal(self, velocity: np.ndarray) -> np.ndarray:
        """Facet normal oriented along the direction of motion."""
        n = self.crossing.normal
        return n if np.dot(velocity, n) > 0.0 else -n


@dataclass(frozen=True)
class SurfaceEvent:
    """Where the last surface event happened, for the re-trigger guard."""

    point: np.ndarray
    solid_indices: Tuple[int, ...]


class CollisionResolver:
    """Find, order and interpret boundary crossings of path segments."""

    def __init__(self, geometry: Geometry, config):
        self.geometry = geometry
        self.simultaneity_epsilon = config.simultaneity_epsilon
        self._ignore_distance = config.ignore_distance_for

    def find_crossings(
        self,
        p1: np.ndarray,
        p2: np.ndarray,
        time: float,
        last_event: Optional[SurfaceEvent] = None,
    ) -> List[Crossing]:
        """All crossings on p1 -> p2 except those the re-trigger guard drops."""
        crossings = self.geometry.collide(p1, p2, time)
        if last_event is None:
            return crossings
        kept = []
        for crossing in crossings:
            if crossing.solid_index in last_event.solid_indices:
                distance = float(np.linalg.norm(crossing.point - last_event.point))
                if distance < self._ignore_distance(crossing.priority):
                    continue
            kept.append(crossing)
        return kept

    def group_crossings(self, crossings: Sequence[Crossing]) -> List[List[Crossing]]:
        """Split ordered crossings into simultaneous groups.

        Inside a group, crossings are ordered by priority (highest first),
        repeated hits of the same solid in the same sense (shared facet
        edges) are merged, and an enter/leave pair of one solid cancels.
        """
        groups: List[List[Crossing]] = []
        current: List[Crossing] = []
        for crossing in crossings:
            if current and crossing.s - current[0].s > self.simultaneity_epsilon:
                groups.append(current)
                current = []
            current.append(crossing)
        if current:
            groups.append(current)

        result = []
        for group in groups:
            by_solid = {}
            for crossing in group:
                entry = by_solid.setdefault(crossing.solid_index, {})
                entry.setdefault(crossing.entering, crossing)
            merged = []
            for senses in by_solid.values():
                if len(senses) == 1:
                    merged.extend(senses.values())
            if merged:
                merged.sort(key=lambda c: -c.priority)
                result.append(merged)
        return result

    def resolve(self, group: Sequence[Crossing], stack: MaterialStack) -> CrossingResolution:
        """Interpret one group against the particle's current stack."""
        after = stack.apply(group)
        leaving = stack.solid
        entering = after.solid

        crossing = group[0]
        if leaving is not entering:
            for candidate in group:
                if candidate.solid_index in (stack.top, after.top):
                    crossing = candidate
                    break

        hidden = []
        for candidate in group:
            solid = self.geometry[candidate.solid_index]
            if candidate.solid_index in (stack.top, after.top):
                continue
            if solid.material.absorber:
                hidden.append(solid)
        return CrossingResolution(
            group=list(group),
            stack_after=after,
            leaving=leaving,
            entering=entering,
            crossing=crossing,
            hidden_absorbers=hidden,
        )

    def first_resolution(
        self,
        p1: np.ndarray,
        p2: np.ndarray,
        time: float,
        stack: MaterialStack,
        last_event: Optional[SurfaceEvent] = None,
    ) -> Optional[CrossingResolution]:
        """Resolution of the earliest group on p1 -> p2, or None."""
        groups = self.group_crossings(self.find_crossings(p1, p2, time, last_event))
        if not groups:
            return None
        return self.resolve(groups[0], stack)
