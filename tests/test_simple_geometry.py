"""
Unit tests for the analytical mesh generators and mesh validation
"""

import numpy as np
import pytest

from ucn_simulation.testing import (
    create_simple_box,
    create_simple_cylinder,
    create_simple_sphere,
    create_storage_vessel,
    open_edge_count,
    run_quick_test,
    signed_volume,
    validate_mesh,
    validate_solid_mesh,
)


class TestSimpleSphere:
    """Icosphere generation"""

    def test_sphere_center(self):
        center = (0.1, 0.2, 0.3)
        mesh = create_simple_sphere(center=center, radius=0.1, subdivisions=1)

        mesh_center = np.mean(mesh[:, 1:, :].reshape(-1, 3), axis=0)
        np.testing.assert_array_almost_equal(mesh_center, center, decimal=2)

    def test_sphere_radius(self):
        radius = 0.25
        mesh = create_simple_sphere(center=(0, 0, 0), radius=radius, subdivisions=2)

        vertices = mesh[:, 1:, :].reshape(-1, 3)
        distances = np.linalg.norm(vertices, axis=1)
        np.testing.assert_array_almost_equal(distances, radius, decimal=10)

    def test_sphere_is_closed_and_outward(self):
        mesh = create_simple_sphere(radius=0.1, subdivisions=2)
        assert open_edge_count(mesh) == 0
        volume = signed_volume(mesh)
        assert 0.0 < volume < 4.0 / 3.0 * np.pi * 0.1 ** 3


class TestSimpleCylinder:
    """Closed cylinder generation"""

    def test_cylinder_length(self):
        mesh = create_simple_cylinder(start_point=(0, 0, 0), end_point=(0, 0, 0.5), radius=0.1)

        z_coords = mesh[:, 1:, 2].ravel()
        assert np.ptp(z_coords) == pytest.approx(0.5)

    def test_cylinder_volume_converges(self):
        mesh = create_simple_cylinder(radius=0.1, end_point=(0, 0, 1.0), n_segments=256)
        assert signed_volume(mesh) == pytest.approx(np.pi * 0.01, rel=1e-3)

    def test_cylinder_tilted_axis(self):
        mesh = create_simple_cylinder(start_point=(0, 0, 0), end_point=(1, 1, 0), radius=0.1, n_segments=16)
        assert open_edge_count(mesh) == 0
        assert signed_volume(mesh) > 0.0

    def test_degenerate_axis_rejected(self):
        with pytest.raises(ValueError):
            create_simple_cylinder(start_point=(0, 0, 1), end_point=(0, 0, 1))


class TestSimpleBox:
    """Box generation"""

    def test_box_creation(self):
        mesh = create_simple_box(center=(0, 0, 0), size=(1, 2, 3))
        assert len(mesh) == 12  # 6 faces * 2 triangles

    def test_box_size(self):
        size = (2.0, 4.0, 6.0)
        mesh = create_simple_box(center=(0, 0, 0), size=size)

        vertices = mesh[:, 1:, :].reshape(-1, 3)
        for i, s in enumerate(size):
            assert abs(np.ptp(vertices[:, i]) - s) < 1e-10

    def test_box_normals_point_outward(self):
        mesh = create_simple_box(center=(1.0, 0.0, 0.0), size=(0.5, 0.5, 0.5))
        centroids = mesh[:, 1:, :].mean(axis=1)
        outward = np.einsum("ij,ij->i", mesh[:, 0, :], centroids - np.array([1.0, 0.0, 0.0]))
        assert np.all(outward > 0.0)
        assert signed_volume(mesh) == pytest.approx(0.125)

    @pytest.mark.parametrize("mesh_factory", [create_simple_box, create_simple_cylinder, create_simple_sphere])
    def test_generated_meshes_validate(self, mesh_factory):
        mesh = mesh_factory()
        is_valid, message = validate_mesh(mesh)
        assert is_valid, message
        assert all(passed for _, passed, _ in validate_solid_mesh(mesh))


class TestValidation:
    """Mesh validation helpers"""

    def test_open_mesh_detected(self):
        mesh = create_simple_box()[:-1]
        assert open_edge_count(mesh) > 0

    def test_inverted_mesh_detected(self):
        mesh = create_simple_box()[:, [0, 1, 3, 2], :]
        results = dict((name, passed) for name, passed, _ in validate_solid_mesh(mesh, "box"))
        assert not results["box orientation"]

    def test_bad_shape(self):
        is_valid, message = validate_mesh(np.zeros((4, 2, 3)))
        assert not is_valid
        assert "shape" in message

    def test_non_finite_values(self):
        mesh = create_simple_box()
        mesh[0, 1, 0] = np.nan
        is_valid, _ = validate_mesh(mesh)
        assert not is_valid

    def test_quick_test_passes(self, capsys):
        assert run_quick_test(verbose=True)
        assert "ALL CHECKS PASSED" in capsys.readouterr().out


class TestStorageVessel:
    """Wall + interior construction"""

    def test_priorities(self, perfect_wall):
        wall, interior = create_storage_vessel(perfect_wall)
        assert interior.priority > wall.priority
        assert interior.material.is_vacuum
        assert wall.material is perfect_wall


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
