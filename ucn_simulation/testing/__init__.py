"""
Testing subpackage for the UCN simulation.

Tools for testing and debugging without STL input:
- Simple analytical meshes (box, cylinder, sphere, storage vessel)
- Mesh and geometry validation (closed surfaces, outward winding)

Example usage:
    from ucn_simulation.testing import create_storage_vessel, validate_geometry

    solids = create_storage_vessel(wall_material=steel)
    ok, results = validate_geometry(Geometry(solids))
"""

from .simple_geometry import (
    create_simple_box,
    create_simple_cylinder,
    create_simple_sphere,
    create_storage_vessel,
    make_simple_solid,
    print_mesh_info,
)

from .validation import (
    open_edge_count,
    print_validation_results,
    run_quick_test,
    signed_volume,
    validate_geometry,
    validate_geometry_module,
    validate_mesh,
    validate_solid_mesh,
)

__all__ = [
    # Simple geometry
    "create_simple_box",
    "create_simple_cylinder",
    "create_simple_sphere",
    "create_storage_vessel",
    "make_simple_solid",
    "print_mesh_info",
    # Validation
    "open_edge_count",
    "print_validation_results",
    "run_quick_test",
    "signed_volume",
    "validate_geometry",
    "validate_geometry_module",
    "validate_mesh",
    "validate_solid_mesh",
]
