"""
Validation utilities for meshes and geometries.

Run these before a long simulation: the tracker assumes every solid is a
closed surface with outward-facing facets, and silently wrong meshes show up
only as odd stop-code statistics much later.
"""

from __future__ import annotations

from collections import Counter
from typing import List, Tuple

import numpy as np

from ..core.data_classes import Material, MeshGeometry
from ..core.geometry import Geometry, point_in_mesh
from .simple_geometry import (
    create_simple_box,
    create_simple_cylinder,
    create_simple_sphere,
    make_simple_solid,
)

Result = Tuple[str, bool, str]


def validate_mesh(mesh: np.ndarray, name: str = "Mesh") -> Tuple[bool, str]:
    """Validate the shape and values of raw mesh data.

    Parameters
    ----------
    mesh : np.ndarray
        Mesh data to validate.
    name : str
        Name for error messages.

    Returns
    -------
    valid : bool
        True if mesh is valid.
    message : str
        Description of validation result.
    """
    errors = []

    if mesh.ndim != 3:
        errors.append(f"Expected 3D array, got {mesh.ndim}D")
    elif mesh.shape[1] not in (3, 4):
        errors.append(f"Expected shape (n, 3, 3) or (n, 4, 3), got {mesh.shape}")
    elif mesh.shape[2] != 3:
        errors.append(f"Expected 3D coordinates, got {mesh.shape[2]}D")

    if errors:
        return False, f"{name}: " + "; ".join(errors)

    if not np.all(np.isfinite(mesh)):
        errors.append("Contains NaN or Inf values")

    if mesh.shape[1] == 4:
        norms = np.linalg.norm(mesh[:, 0, :], axis=1)
        if not np.allclose(norms, 1.0, atol=1e-5):
            errors.append("Some normals are not unit vectors")

    if errors:
        return False, f"{name}: " + "; ".join(errors)

    return True, f"{name}: Valid ({mesh.shape[0]} facets)"


def _vertices(mesh: np.ndarray) -> np.ndarray:
    mesh = np.asarray(mesh, dtype=float)
    return mesh[:, 1:4, :] if mesh.shape[1] == 4 else mesh


def open_edge_count(mesh: np.ndarray, decimals: int = 9) -> int:
    """Number of edges not shared by exactly two facets (0 for a closed surface)."""
    triangles = np.round(_vertices(mesh), decimals)
    edges = Counter()
    for tri in triangles:
        points = [tuple(p) for p in tri]
        for a, b in ((0, 1), (1, 2), (2, 0)):
            edges[tuple(sorted((points[a], points[b])))] += 1
    return sum(1 for count in edges.values() if count != 2)


def signed_volume(mesh: np.ndarray) -> float:
    """Enclosed volume; negative when the facet winding points inwards."""
    triangles = _vertices(mesh)
    return float(np.einsum("ij,ij->i", triangles[:, 0], np.cross(triangles[:, 1], triangles[:, 2])).sum() / 6.0)


def validate_solid_mesh(mesh: np.ndarray, name: str = "Mesh") -> List[Result]:
    """Shape, closedness and orientation checks for one solid."""
    valid, message = validate_mesh(mesh, name)
    results: List[Result] = [(f"{name} data", valid, message)]
    if not valid:
        return results

    open_edges = open_edge_count(mesh)
    results.append((f"{name} closed", open_edges == 0, f"{open_edges} open edges"))
    volume = signed_volume(mesh)
    results.append((f"{name} orientation", volume > 0.0, f"signed volume {volume:.6e} m^3"))
    return results


def validate_geometry(geometry: Geometry) -> Tuple[bool, List[Result]]:
    """Check every solid of a geometry and the consistency of its bounding box."""
    results: List[Result] = []
    for solid in geometry.solids[1:]:
        mesh: MeshGeometry = solid.mesh
        v0 = mesh.vertices0
        triangles = np.stack([v0, v0 + mesh.edge1, v0 + mesh.edge2], axis=1)
        results.extend(validate_solid_mesh(triangles, solid.name))
        inside_box = np.all(mesh.bbox_min >= geometry.bbox_min) and np.all(mesh.bbox_max <= geometry.bbox_max)
        results.append((f"{solid.name} in bounds", bool(inside_box), "mesh bounding box inside outer limits"))
    return all(passed for _, passed, _ in results), results


def validate_geometry_module() -> Tuple[bool, List[Result]]:
    """Validate the analytical mesh generators.

    Returns
    -------
    success : bool
        True if all checks pass.
    results : list
        List of (name, passed, message) tuples.
    """
    results: List[Result] = []

    box = create_simple_box(center=(0, 0, 0.1), size=(0.2, 0.2, 0.2))
    results.extend(validate_solid_mesh(box, "Box"))
    results.append(("Box face count", box.shape[0] == 12, f"{box.shape[0]} faces"))
    expected = 0.2 ** 3
    volume = signed_volume(box)
    results.append(("Box volume", bool(np.isclose(volume, expected)), f"{volume:.6e} vs {expected:.6e} m^3"))

    results.extend(validate_solid_mesh(create_simple_cylinder(n_segments=16), "Cylinder"))
    results.extend(validate_solid_mesh(create_simple_sphere(subdivisions=1), "Sphere"))

    solid = make_simple_solid(box, material=Material("check box", fermi_real_nev=100.0), priority=0, name="check box")
    center_inside = point_in_mesh(np.array([0.0, 0.0, 0.1]), solid.mesh)
    outside = point_in_mesh(np.array([0.0, 0.0, 0.5]), solid.mesh)
    results.append(("Box parity test", center_inside and not outside, "inside/outside classification"))

    return all(passed for _, passed, _ in results), results


def print_validation_results(results: List[Result], title: str) -> bool:
    """Print a list of check results and return whether all of them passed."""
    print("=" * 70)
    print(title)
    print("=" * 70)
    for test_name, passed, message in results:
        status = "OK  " if passed else "FAIL"
        print(f"[{status}] {test_name}: {message}")
    success = all(passed for _, passed, _ in results)
    print()
    print("=" * 70)
    print("ALL CHECKS PASSED" if success else "SOME CHECKS FAILED")
    print("=" * 70)
    return success


def run_quick_test(verbose: bool = True) -> bool:
    """Run the generator checks and optionally print the results.

    Example
    -------
    >>> from ucn_simulation.testing import run_quick_test
    >>> success = run_quick_test()
    """
    success, results = validate_geometry_module()
    if verbose:
        print_validation_results(results, "SIMPLE GEOMETRY MODULE VALIDATION")
    return success
