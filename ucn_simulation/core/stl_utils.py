"""
STL file loading and writing, and construction of solids from STL files.
"""

from __future__ import annotations

import os
from typing import Iterable, List, Optional, Tuple

import numpy as np

from .data_classes import Material, Solid
from .geometry import prepare_mesh_geometry

# Binary STL facet record: 12 little-endian float32 + uint16 attribute
_BINARY_RECORD = np.dtype([("data", "<f4", (12,)), ("attr", "<u2")])


def _read_binary(file_path: str, triangle_count: int) -> Optional[np.ndarray]:
    with open(file_path, "rb") as f:
        f.seek(84)
        raw = f.read()
    if len(raw) != triangle_count * _BINARY_RECORD.itemsize or triangle_count == 0:
        return None
    records = np.frombuffer(raw, dtype=_BINARY_RECORD, count=triangle_count)
    return records["data"].astype(float).reshape(triangle_count, 4, 3)


def _read_ascii(file_path: str) -> Optional[np.ndarray]:
    facets: List[np.ndarray] = []
    current_vertices: List[List[float]] = []
    current_normal: Optional[List[float]] = None
    with open(file_path, "r", encoding="utf-8", errors="ignore") as f:
        for line in f:
            tokens = line.split()
            if not tokens:
                continue
            keyword = tokens[0].lower()
            if keyword == "facet" and len(tokens) >= 5 and tokens[1].lower() == "normal":
                current_normal = [float(t) for t in tokens[2:5]]
                current_vertices = []
            elif keyword == "vertex" and len(tokens) >= 4:
                current_vertices.append([float(t) for t in tokens[1:4]])
            elif keyword == "endfacet":
                if len(current_vertices) >= 3:
                    normal = current_normal if current_normal is not None else [0.0, 0.0, 0.0]
                    facets.append(np.array([normal] + current_vertices[:3], dtype=float))
                current_normal = None
                current_vertices = []
    if not facets:
        return None
    return np.stack(facets, axis=0)


def load_stl_mesh(file_path: str) -> np.ndarray:
    """Load a mesh from an ASCII or binary STL file.

    Parameters
    ----------
    file_path : str
        Path to the STL file on disk.

    Returns
    -------
    np.ndarray, shape (n_facets, 4, 3)
        Each facet is [normal, v0, v1, v2] in file units.
    """
    if not os.path.isfile(file_path):
        raise FileNotFoundError(f"STL file '{file_path}' does not exist")

    file_size = os.path.getsize(file_path)
    with open(file_path, "rb") as f:
        header = f.read(80)
        count_bytes = f.read(4)
    triangle_count = int.from_bytes(count_bytes, byteorder="little", signed=False) if len(count_bytes) == 4 else 0
    is_binary_size = triangle_count > 0 and 84 + triangle_count * _BINARY_RECORD.itemsize == file_size

    # Some exporters write binary files whose header starts with "solid"
    if is_binary_size:
        facets = _read_binary(file_path, triangle_count)
    elif header.decode(errors="ignore").strip().lower().startswith("solid"):
        facets = _read_ascii(file_path)
    else:
        facets = None

    if facets is None:
        raise ValueError(f"No facets were found in '{file_path}' - the file may be corrupt")
    return facets


def write_ascii_stl(file_path: str, triangles: np.ndarray, name: str = "solid") -> None:
    """Write an (n, 3, 3) triangle array as an ASCII STL file."""
    triangles = np.asarray(triangles, dtype=float)
    with open(file_path, "w", encoding="utf-8") as f:
        f.write(f"solid {name}\n")
        for tri in triangles:
            normal = np.cross(tri[1] - tri[0], tri[2] - tri[0])
            norm = np.linalg.norm(normal)
            if norm > 0.0:
                normal = normal / norm
            f.write(f"  facet normal {normal[0]:.9e} {normal[1]:.9e} {normal[2]:.9e}\n")
            f.write("    outer loop\n")
            for vertex in tri:
                f.write(f"      vertex {vertex[0]:.9e} {vertex[1]:.9e} {vertex[2]:.9e}\n")
            f.write("    endloop\n")
            f.write("  endfacet\n")
        f.write(f"endsolid {name}\n")


def load_solid(
    file_path: str,
    material: Material,
    priority: int,
    name: Optional[str] = None,
    scale: float = 1.0e-3,
    ignore_times: Iterable[Tuple[float, float]] = (),
) -> Solid:
    """Build a :class:`Solid` from an STL file.

    ``scale`` converts file units to metres (STL exports are usually in mm).
    """
    facets = load_stl_mesh(file_path)
    facets = facets.copy()
    facets[:, 1:, :] *= scale
    if name is None:
        name = os.path.splitext(os.path.basename(file_path))[0]
    return Solid(
        name=name,
        material=material,
        priority=priority,
        mesh=prepare_mesh_geometry(facets),
        ignore_times=tuple((float(a), float(b)) for a, b in ignore_times),
    )
