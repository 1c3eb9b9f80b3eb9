"""
UCN tracking engine core.

Submodules:
- constants: physical constants (CODATA via scipy)
- errors: per-particle fatal errors and the run abort signal
- data_classes: Material, Solid, MeshGeometry, Crossing, ParticleRecord
- particle: species, stop codes, ParticleState
- fields: field evaluators
- geometry / stl_utils: prioritized solids and segment queries
- equations / integrator: equations of motion and adaptive stepping
- collision: crossing ordering and the material stack
- surface / microroughness: boundary interaction model
- decay: neutron decay products
- tracker / simulation: per-particle loop and run driver
- source: parameter sweeps and Monte-Carlo initial conditions
- io_utils: pandas/CSV export
"""

# Data model
from .data_classes import (
    VACUUM,
    Crossing,
    Material,
    MeshGeometry,
    ParticleRecord,
    Solid,
)
from .errors import (
    GeometryError,
    IntegrationError,
    NoInitialPositionError,
    SimulationAborted,
    SpatialQueryError,
    TrackingError,
)
from .particle import ParticleState, Species, StopID, SurfaceOutcome

# Fields
from .fields import (
    FieldManager,
    FieldSample,
    LinearField,
    ZeroField,
    ramp_heating_table,
    sample_field_cut,
    sample_field_rz,
    uniform_field,
)

# Geometry
from .geometry import (
    DEFAULT_SOLID,
    Geometry,
    GeometryStats,
    point_in_mesh,
    prepare_mesh_geometry,
    print_geometry_stats,
    segment_mesh_intersections,
)
from .stl_utils import load_solid, load_stl_mesh, write_ascii_stl

# Engine
from .collision import CollisionResolver, CrossingResolution, MaterialStack
from .equations import EquationsOfMotion
from .integrator import IntegrationStep, Integrator, macro_step_length
from .microroughness import mr_angle_table, mr_density, mr_total_probability, mr_total_table
from .surface import SurfaceInteractionModel, SurfaceResult, transmission_probability
from .tracker import ParticleTracker

# Run
from .io_utils import (
    export_records_to_csv,
    export_table_to_csv,
    export_trajectories_to_csv,
    records_to_dataframe,
    trajectories_to_dataframe,
)
from .simulation import OutcomeTally, SimulationResult, run_simulation
from .source import InitialCondition, MonteCarloSource, ParameterSweep, make_particle

__all__ = [
    # Data model
    'VACUUM',
    'Crossing',
    'Material',
    'MeshGeometry',
    'ParticleRecord',
    'Solid',
    'GeometryError',
    'IntegrationError',
    'NoInitialPositionError',
    'SimulationAborted',
    'SpatialQueryError',
    'TrackingError',
    'ParticleState',
    'Species',
    'StopID',
    'SurfaceOutcome',
    # Fields
    'FieldManager',
    'FieldSample',
    'LinearField',
    'ZeroField',
    'sample_field_cut',
    'sample_field_rz',
    'ramp_heating_table',
    'uniform_field',
    # Geometry
    'DEFAULT_SOLID',
    'Geometry',
    'GeometryStats',
    'point_in_mesh',
    'prepare_mesh_geometry',
    'print_geometry_stats',
    'segment_mesh_intersections',
    'load_solid',
    'load_stl_mesh',
    'write_ascii_stl',
    # Engine
    'CollisionResolver',
    'CrossingResolution',
    'MaterialStack',
    'EquationsOfMotion',
    'IntegrationStep',
    'Integrator',
    'macro_step_length',
    'mr_angle_table',
    'mr_density',
    'mr_total_probability',
    'mr_total_table',
    'SurfaceInteractionModel',
    'SurfaceResult',
    'transmission_probability',
    'ParticleTracker',
    # Run
    'export_records_to_csv',
    'export_table_to_csv',
    'export_trajectories_to_csv',
    'records_to_dataframe',
    'trajectories_to_dataframe',
    'OutcomeTally',
    'SimulationResult',
    'run_simulation',
    'InitialCondition',
    'MonteCarloSource',
    'ParameterSweep',
    'make_particle',
]
