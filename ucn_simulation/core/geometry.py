"""
Geometry processing and segment-mesh intersection utilities.

A :class:`Geometry` is a table of prioritized solids. Index 0 is always the
unbounded default solid; all other entries carry a closed triangle mesh.
Segment queries are vectorized Möller-Trumbore tests over every facet of a
solid, pre-filtered by the solid's bounding box.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .data_classes import VACUUM, Crossing, Material, MeshGeometry, Solid
from .errors import GeometryError, SpatialQueryError

logger = logging.getLogger(__name__)

DEFAULT_SOLID = 0

# Fixed, deliberately irrational-looking direction for parity tests so the
# ray does not run along mesh edges of axis-aligned test bodies.
_PARITY_DIRECTION = np.array([0.5773502691896258, 0.5351837584879964, 0.6167031829307890])
_PARITY_DIRECTION = _PARITY_DIRECTION / np.linalg.norm(_PARITY_DIRECTION)


def prepare_mesh_geometry(mesh: np.ndarray) -> MeshGeometry:
    """Precompute edge vectors, normals and the bounding box for a mesh.

    Parameters
    ----------
    mesh : np.ndarray
        Mesh data with shape (n_facets, 4, 3) where each facet contains
        [normal, v0, v1, v2], or (n_facets, 3, 3) with just vertices.

    Notes
    -----
    Normals are taken from the vertex winding (right-hand rule), which must
    point out of the solid. Stored STL normals are used only for facets whose
    winding normal is degenerate.
    """
    triangles = np.asarray(mesh, dtype=float)
    if triangles.ndim != 3 or triangles.shape[1] not in (3, 4) or triangles.shape[2] != 3:
        raise ValueError(f"Mesh must have shape (n, 3, 3) or (n, 4, 3), got {triangles.shape}")
    if triangles.shape[0] == 0:
        raise ValueError("Mesh does not contain any facets")

    if triangles.shape[1] == 4:
        stl_normals = triangles[:, 0, :]
        vertices = triangles[:, 1:4, :]
    else:
        stl_normals = None
        vertices = triangles

    v0 = vertices[:, 0, :]
    edge1 = vertices[:, 1, :] - v0
    edge2 = vertices[:, 2, :] - v0

    normals = np.cross(edge1, edge2)
    norms = np.linalg.norm(normals, axis=1, keepdims=True)
    degenerate = norms[:, 0] == 0.0
    if np.any(degenerate) and stl_normals is not None:
        normals[degenerate] = stl_normals[degenerate]
        norms = np.linalg.norm(normals, axis=1, keepdims=True)
    norms = np.where(norms > 0, norms, 1.0)
    normals = normals / norms

    flat = vertices.reshape(-1, 3)
    return MeshGeometry(
        vertices0=v0,
        edge1=edge1,
        edge2=edge2,
        normals=normals,
        bbox_min=flat.min(axis=0),
        bbox_max=flat.max(axis=0),
    )


def segment_mesh_intersections(
    p1: np.ndarray,
    p2: np.ndarray,
    geometry: MeshGeometry,
    epsilon: float = 1e-15,
) -> Tuple[np.ndarray, np.ndarray]:
    """Return every facet hit by the segment p1 -> p2.

    Returns
    -------
    s : np.ndarray
        Parametric positions of the hits, in (0, 1].
    facets : np.ndarray
        Indices of the facets that were hit.
    """
    direction = p2 - p1
    return _intersect(p1, direction, geometry, epsilon, upper=1.0)


def ray_mesh_intersections(origin: np.ndarray, direction: np.ndarray, geometry: MeshGeometry,
                           epsilon: float = 1e-15) -> Tuple[np.ndarray, np.ndarray]:
    """Like :func:`segment_mesh_intersections` but for a half-infinite ray."""
    return _intersect(origin, direction, geometry, epsilon, upper=np.inf)


def _intersect(origin, direction, geometry, epsilon, upper):
    v0 = geometry.vertices0
    edge1 = geometry.edge1
    edge2 = geometry.edge2

    dir_tile = direction[np.newaxis, :]
    pvec = np.cross(dir_tile, edge2)
    det = np.einsum("ij,ij->i", edge1, pvec)
    scale = np.linalg.norm(direction) * np.linalg.norm(edge1, axis=1) * np.linalg.norm(edge2, axis=1)
    mask = np.abs(det) > epsilon * np.maximum(scale, 1e-300)
    empty = (np.empty(0), np.empty(0, dtype=int))
    if not np.any(mask):
        return empty
    inv_det = np.zeros_like(det)
    inv_det[mask] = 1.0 / det[mask]

    tvec = origin[np.newaxis, :] - v0
    u = np.zeros_like(det)
    u[mask] = np.einsum("ij,ij->i", tvec[mask], pvec[mask]) * inv_det[mask]
    mask &= (u >= 0.0) & (u <= 1.0)
    if not np.any(mask):
        return empty

    qvec = np.cross(tvec, edge1)
    v = np.zeros_like(det)
    dir_repeated = np.broadcast_to(direction, edge1.shape)
    v[mask] = np.einsum("ij,ij->i", qvec[mask], dir_repeated[mask]) * inv_det[mask]
    mask &= (v >= 0.0) & (u + v <= 1.0)
    if not np.any(mask):
        return empty

    t = np.zeros_like(det)
    t[mask] = np.einsum("ij,ij->i", edge2[mask], qvec[mask]) * inv_det[mask]
    if not np.all(np.isfinite(t[mask])):
        raise SpatialQueryError("non-finite intersection parameter in mesh query")
    mask &= (t > 0.0) & (t <= upper)
    indices = np.where(mask)[0]
    return t[indices], indices


def point_in_mesh(point: np.ndarray, geometry: MeshGeometry) -> bool:
    """Parity test: an odd number of hits along a fixed ray means inside."""
    point = np.asarray(point, dtype=float)
    if np.any(point < geometry.bbox_min) or np.any(point > geometry.bbox_max):
        return False
    s, _ = ray_mesh_intersections(point, _PARITY_DIRECTION, geometry)
    return len(s) % 2 == 1


def _segment_hits_box(p1: np.ndarray, p2: np.ndarray, box_min: np.ndarray, box_max: np.ndarray) -> bool:
    """Slab test of the segment p1 -> p2 against an axis-aligned box."""
    lo = np.minimum(p1, p2)
    hi = np.maximum(p1, p2)
    return bool(np.all(hi >= box_min) and np.all(lo <= box_max))


@dataclass
class GeometryStats:
    """Counters for segment queries against one :class:`Geometry`."""

    total_queries: int = 0
    crossings_found: int = 0
    spatial_errors: int = 0
    out_of_bounds: int = 0

    def reset(self) -> None:
        self.total_queries = 0
        self.crossings_found = 0
        self.spatial_errors = 0
        self.out_of_bounds = 0


def print_geometry_stats(stats: GeometryStats) -> None:
    """Print statistics about segment queries.

    A non-zero spatial error count points at a broken mesh (gaps, degenerate
    triangles, etc.).
    """
    total = stats.total_queries
    if total == 0:
        print("No geometry queries recorded.")
        return

    print("\n" + "=" * 60)
    print("GEOMETRY QUERY STATISTICS")
    print("=" * 60)
    print(f"Total segment queries:     {total:,}")
    print(f"Crossings found:           {stats.crossings_found:,} "
          f"({stats.crossings_found / total:.4f} per query)")
    print(f"Out of bounding box:       {stats.out_of_bounds:,} "
          f"({100 * stats.out_of_bounds / total:.2f}%)")
    print(f"Spatial query errors:      {stats.spatial_errors:,} "
          f"({100 * stats.spatial_errors / total:.2f}%)")
    print("=" * 60)


class Geometry:
    """Prioritized solids plus the default solid that fills the rest of space.

    Parameters
    ----------
    solids : sequence of Solid
        Bounded solids. Priorities must be unique and >= 0, every solid needs
        a mesh.
    default_material : Material
        Material of the unbounded default solid (priority -1).
    bounding_box : tuple of arrays, optional
        Outer limits of the simulated volume. Defaults to the union of the
        solid bounding boxes grown by ``margin``.
    """

    def __init__(
        self,
        solids: Sequence[Solid],
        default_material: Material = VACUUM,
        bounding_box: Optional[Tuple[np.ndarray, np.ndarray]] = None,
        margin: float = 1e-3,
    ):
        seen = {}
        for solid in solids:
            if solid.mesh is None:
                raise ValueError(f"Solid '{solid.name}' has no mesh")
            if solid.priority < 0:
                raise ValueError(f"Solid '{solid.name}': priority must be >= 0, got {solid.priority}")
            if solid.priority in seen:
                raise ValueError(
                    f"Solids '{seen[solid.priority]}' and '{solid.name}' share priority {solid.priority}"
                )
            seen[solid.priority] = solid.name

        self.solids: List[Solid] = [Solid("default", default_material, -1)] + list(solids)

        if bounding_box is None:
            if len(self.solids) == 1:
                raise ValueError("A geometry without solids needs an explicit bounding box")
            lo = np.min([s.mesh.bbox_min for s in self.solids[1:]], axis=0) - margin
            hi = np.max([s.mesh.bbox_max for s in self.solids[1:]], axis=0) + margin
        else:
            lo, hi = (np.asarray(b, dtype=float) for b in bounding_box)
        if np.any(hi <= lo):
            raise ValueError("Bounding box must have positive extent")
        self.bbox_min = lo
        self.bbox_max = hi
        self.stats = GeometryStats()
        logger.info("Geometry with %d solids, bounding box %s .. %s", len(self.solids), lo, hi)

    def __len__(self) -> int:
        return len(self.solids)

    def __getitem__(self, index: int) -> Solid:
        return self.solids[index]

    def priority(self, index: int) -> int:
        return self.solids[index].priority

    def in_bounds(self, point: np.ndarray) -> bool:
        return bool(np.all(point >= self.bbox_min) and np.all(point <= self.bbox_max))

    def collide(self, p1: np.ndarray, p2: np.ndarray, time: float = 0.0) -> List[Crossing]:
        """All boundary crossings on the segment p1 -> p2, ordered by
        parametric position and, at equal position, by descending priority.

        Solids that are ignored at ``time`` are skipped.
        """
        p1 = np.asarray(p1, dtype=float)
        p2 = np.asarray(p2, dtype=float)
        if not (np.all(np.isfinite(p1)) and np.all(np.isfinite(p2))):
            raise GeometryError(f"non-finite segment {p1} -> {p2}")
        self.stats.total_queries += 1
        if not (self.in_bounds(p1) and self.in_bounds(p2)):
            self.stats.out_of_bounds += 1

        direction = p2 - p1
        crossings: List[Crossing] = []
        for index, solid in enumerate(self.solids[1:], start=1):
            if solid.is_ignored(time):
                continue
            mesh = solid.mesh
            if not _segment_hits_box(p1, p2, mesh.bbox_min, mesh.bbox_max):
                continue
            try:
                s_values, facets = segment_mesh_intersections(p1, p2, mesh)
            except SpatialQueryError:
                self.stats.spatial_errors += 1
                raise
            for s, facet in zip(s_values, facets):
                normal = mesh.normals[facet]
                approach = float(np.dot(direction, normal))
                if approach == 0.0:
                    continue
                crossings.append(Crossing(
                    s=float(s),
                    solid_index=index,
                    priority=solid.priority,
                    point=p1 + s * direction,
                    normal=normal.copy(),
                    entering=approach < 0.0,
                ))
        crossings.sort(key=Crossing.sort_key)
        self.stats.crossings_found += len(crossings)
        return crossings

    def solids_containing(self, point: np.ndarray, time: float = 0.0) -> List[int]:
        """Indices of all solids containing ``point``, lowest priority first.

        The default solid is always included.
        """
        point = np.asarray(point, dtype=float)
        inside = [DEFAULT_SOLID]
        for index, solid in enumerate(self.solids[1:], start=1):
            if solid.is_ignored(time):
                continue
            if point_in_mesh(point, solid.mesh):
                inside.append(index)
        inside.sort(key=self.priority)
        return inside

    def next_ignore_edge(self, time: float) -> float:
        """Earliest start or end of an ignore window after ``time``, or inf.

        The set of active solids is constant between two edges.
        """
        edges = [edge for solid in self.solids[1:] for window in solid.ignore_times for edge in window
                 if edge > time]
        return min(edges, default=np.inf)

    def sample_collisions(self, rng: np.random.Generator, n_segments: int, time: float = 0.0) -> pd.DataFrame:
        """Throw random segments through the bounding box and list every hit.

        Useful to check a geometry by eye: plotting ``x, y, z`` of the result
        reproduces all surfaces hit by the segments.
        """
        rows = []
        extent = self.bbox_max - self.bbox_min
        for segment in range(n_segments):
            p1 = self.bbox_min + rng.random(3) * extent
            p2 = self.bbox_min + rng.random(3) * extent
            for crossing in self.collide(p1, p2, time):
                rows.append({
                    "segment": segment,
                    "solid": self.solids[crossing.solid_index].name,
                    "priority": crossing.priority,
                    "s": crossing.s,
                    "x": crossing.point[0],
                    "y": crossing.point[1],
                    "z": crossing.point[2],
                    "nx": crossing.normal[0],
                    "ny": crossing.normal[1],
                    "nz": crossing.normal[2],
                    "entering": crossing.entering,
                })
        columns = ["segment", "solid", "priority", "s", "x", "y", "z", "nx", "ny", "nz", "entering"]
        return pd.DataFrame(rows, columns=columns)
