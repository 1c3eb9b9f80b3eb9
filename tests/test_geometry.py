"""
Tests for segment queries, point classification and STL input/output
"""

import numpy as np
import pytest

from ucn_simulation.core.data_classes import Material
from ucn_simulation.core.errors import GeometryError
from ucn_simulation.core.geometry import (
    DEFAULT_SOLID,
    Geometry,
    point_in_mesh,
    prepare_mesh_geometry,
    print_geometry_stats,
    segment_mesh_intersections,
)
from ucn_simulation.core.stl_utils import load_solid, load_stl_mesh, write_ascii_stl
from ucn_simulation.testing import create_simple_box, create_simple_sphere, make_simple_solid


class TestPrepareMesh:
    def test_normals_from_winding(self):
        mesh = create_simple_box(size=(1.0, 1.0, 1.0))
        geometry = prepare_mesh_geometry(mesh)
        np.testing.assert_allclose(geometry.normals, mesh[:, 0, :], atol=1e-12)
        np.testing.assert_allclose(geometry.bbox_min, [-0.5, -0.5, -0.5])
        np.testing.assert_allclose(geometry.bbox_max, [0.5, 0.5, 0.5])
        assert geometry.n_facets == 12

    def test_vertices_only(self):
        mesh = create_simple_box()[:, 1:, :]
        assert prepare_mesh_geometry(mesh).n_facets == 12

    @pytest.mark.parametrize("shape", [(0, 4, 3), (3, 2, 3), (3, 4)])
    def test_bad_shapes(self, shape):
        with pytest.raises(ValueError):
            prepare_mesh_geometry(np.zeros(shape))


class TestSegmentQueries:
    def test_segment_through_box(self):
        mesh = prepare_mesh_geometry(create_simple_box(size=(0.2, 0.2, 0.2)))
        s, facets = segment_mesh_intersections(np.array([-0.5, 0.01, 0.02]), np.array([0.5, 0.01, 0.02]), mesh)
        np.testing.assert_allclose(np.sort(s), [0.4, 0.6])
        assert len(facets) == 2

    def test_segment_misses(self):
        mesh = prepare_mesh_geometry(create_simple_box(size=(0.2, 0.2, 0.2)))
        s, _ = segment_mesh_intersections(np.array([-0.5, 0.5, 0.0]), np.array([0.5, 0.5, 0.0]), mesh)
        assert len(s) == 0

    def test_point_in_mesh(self):
        mesh = prepare_mesh_geometry(create_simple_sphere(radius=0.1, subdivisions=2))
        assert point_in_mesh(np.zeros(3), mesh)
        assert point_in_mesh(np.array([0.05, -0.03, 0.02]), mesh)
        assert not point_in_mesh(np.array([0.2, 0.0, 0.0]), mesh)
        assert not point_in_mesh(np.array([0.09, 0.09, 0.0]), mesh)


class TestGeometry:
    def test_default_solid_first(self, box_geometry):
        assert len(box_geometry) == 2
        assert box_geometry[DEFAULT_SOLID].priority == -1
        assert box_geometry[DEFAULT_SOLID].material.is_vacuum

    def test_collide_orders_by_position(self, box_geometry):
        crossings = box_geometry.collide(np.array([-0.5, 0.01, 0.02]), np.array([0.5, 0.01, 0.02]))
        assert [c.entering for c in crossings] == [True, False]
        assert crossings[0].s < crossings[1].s
        np.testing.assert_allclose(crossings[0].point, [-0.1, 0.01, 0.02], atol=1e-12)
        np.testing.assert_allclose(crossings[0].normal, [-1.0, 0.0, 0.0], atol=1e-12)

    def test_collide_is_deterministic(self, box_geometry, rng):
        p1 = rng.uniform(-0.5, 0.5, 3)
        p2 = rng.uniform(-0.5, 0.5, 3)
        first = box_geometry.collide(p1, p2)
        second = box_geometry.collide(p1, p2)
        assert [(c.s, c.solid_index) for c in first] == [(c.s, c.solid_index) for c in second]

    def test_equal_position_orders_by_priority(self, perfect_wall):
        inner = make_simple_solid(create_simple_box(size=(0.2, 0.2, 0.2)), Material("inner"), priority=5)
        outer = make_simple_solid(create_simple_box(size=(0.2, 0.2, 0.2)), perfect_wall, priority=1)
        geometry = Geometry([outer, inner])
        crossings = geometry.collide(np.array([-0.5, 0.01, 0.02]), np.array([0.0, 0.01, 0.02]))
        assert [c.priority for c in crossings] == [5, 1]

    def test_non_finite_segment(self, box_geometry):
        with pytest.raises(GeometryError):
            box_geometry.collide(np.array([np.nan, 0.0, 0.0]), np.zeros(3))

    def test_duplicate_priority_rejected(self, perfect_wall):
        a = make_simple_solid(create_simple_box(), perfect_wall, priority=1, name="a")
        b = make_simple_solid(create_simple_box(center=(1, 0, 0)), perfect_wall, priority=1, name="b")
        with pytest.raises(ValueError, match="share priority"):
            Geometry([a, b])

    def test_negative_priority_rejected(self, perfect_wall):
        with pytest.raises(ValueError):
            Geometry([make_simple_solid(create_simple_box(), perfect_wall, priority=-2)])

    def test_solids_containing(self, vessel_geometry):
        inside = vessel_geometry.solids_containing(np.array([0.0, 0.0, 0.25]))
        assert inside == [0, 1, 2]
        in_wall = vessel_geometry.solids_containing(np.array([0.0, 0.0, -0.005]))
        assert in_wall == [0, 1]

    def test_ignore_times(self, perfect_wall):
        solid = make_simple_solid(create_simple_box(), perfect_wall, priority=1, ignore_times=[(1.0, 2.0)])
        geometry = Geometry([solid], bounding_box=((-1, -1, -1), (1, 1, 1)))
        p1, p2 = np.array([-0.5, 0.01, 0.02]), np.array([0.5, 0.01, 0.02])
        assert len(geometry.collide(p1, p2, time=0.5)) == 2
        assert geometry.collide(p1, p2, time=1.5) == []
        assert geometry.solids_containing(np.zeros(3), time=1.5) == [DEFAULT_SOLID]

    def test_next_ignore_edge(self, perfect_wall):
        a = make_simple_solid(create_simple_box(), perfect_wall, priority=1, ignore_times=[(1.0, 2.0)])
        b = make_simple_solid(create_simple_box(center=(0.5, 0.0, 0.0)), perfect_wall, priority=2,
                              ignore_times=[(0.5, 1.5)])
        geometry = Geometry([a, b])
        assert geometry.next_ignore_edge(0.0) == 0.5
        assert geometry.next_ignore_edge(0.5) == 1.0
        assert geometry.next_ignore_edge(1.2) == 1.5
        assert geometry.next_ignore_edge(2.0) == np.inf
        assert Geometry([], bounding_box=((-1, -1, -1), (1, 1, 1))).next_ignore_edge(0.0) == np.inf

    def test_sample_collisions(self, vessel_geometry, rng, capsys):
        frame = vessel_geometry.sample_collisions(rng, 50)
        assert set(frame["solid"]) <= {"vessel wall", "storage volume"}
        assert len(frame) > 0
        assert vessel_geometry.stats.total_queries == 50
        print_geometry_stats(vessel_geometry.stats)
        assert "GEOMETRY QUERY STATISTICS" in capsys.readouterr().out


class TestStl:
    def test_ascii_round_trip(self, tmp_path):
        mesh = create_simple_box(size=(20.0, 20.0, 20.0))
        path = tmp_path / "cube.stl"
        write_ascii_stl(str(path), mesh[:, 1:, :], name="cube")
        loaded = load_stl_mesh(str(path))
        np.testing.assert_allclose(loaded[:, 1:, :], mesh[:, 1:, :], atol=1e-6)

    def test_load_solid_scales_to_metres(self, tmp_path, perfect_wall):
        path = tmp_path / "cube.stl"
        write_ascii_stl(str(path), create_simple_box(size=(20.0, 20.0, 20.0))[:, 1:, :])
        solid = load_solid(str(path), perfect_wall, priority=3)
        assert solid.name == "cube"
        np.testing.assert_allclose(solid.mesh.bbox_max, [0.01, 0.01, 0.01], atol=1e-9)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_stl_mesh(str(tmp_path / "missing.stl"))
