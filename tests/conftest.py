"""
Shared pytest fixtures for the ucn_simulation test suite.
"""
import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from ucn_simulation.config import default_config
from ucn_simulation.core.data_classes import Material
from ucn_simulation.core.geometry import Geometry
from ucn_simulation.testing import create_simple_box, create_storage_vessel, make_simple_solid


@pytest.fixture
def rng():
    """Numpy Generator with fixed seed for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def config():
    """Default run configuration without decay."""
    return default_config(decay_enabled=False)


@pytest.fixture
def perfect_wall():
    """Lossless, purely specular wall with a high Fermi potential."""
    return Material("perfect wall", fermi_real_nev=250.0)


@pytest.fixture
def steel():
    """Stainless-steel-like wall: small imaginary part, some diffuse reflection."""
    return Material("stainless steel", fermi_real_nev=183.0, fermi_imag_nev=0.0852, diffuse_probability=0.05)


@pytest.fixture
def absorber():
    """Bulk that swallows every transmitted particle."""
    return Material("absorber", fermi_real_nev=0.0, absorber=True)


@pytest.fixture
def box_geometry(perfect_wall):
    """Single 0.2 m cube of wall material centred at the origin."""
    solid = make_simple_solid(create_simple_box(size=(0.2, 0.2, 0.2)), perfect_wall, priority=1, name="cube")
    return Geometry([solid], bounding_box=((-1.0, -1.0, -1.0), (1.0, 1.0, 1.0)))


@pytest.fixture
def vessel_geometry(perfect_wall):
    """Closed cylindrical vessel (radius 0.25 m, height 0.5 m) with perfect walls."""
    return Geometry(create_storage_vessel(perfect_wall, n_segments=24))
