"""
UCN Simulation Package
======================

Trajectory simulation of ultra-cold neutrons and their decay products
(protons, electrons) in gravitational, magnetic and electric fields inside
a geometry of prioritized, material-tagged solids.

Subpackages:
------------
- core: tracking engine (fields, geometry, integrator, collisions,
  surface interaction, decay, tracker, run driver, CSV export)
- plotting: outcome tables, result overviews, trajectory plots
- testing: analytical meshes and mesh validation

Modules:
--------
- config: default parameters and the immutable SimulationConfig
- logging_config: logging set-up
- runner: command-line entry point
"""

from . import config
from .config import SimulationConfig, SpeciesSettings, default_config
from .core import *  # noqa: F401,F403
from .core import __all__ as _core_all
from .logging_config import configure_logging

__version__ = "1.0.0"
__all__ = [
    # Config module
    "config",
    "SimulationConfig",
    "SpeciesSettings",
    "default_config",
    # Logging
    "configure_logging",
] + list(_core_all)
