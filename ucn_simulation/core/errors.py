"""
Exceptions raised inside the tracking engine.

Every fatal condition that ends a single particle carries the stop code it
maps to, so the tracker can record it without a lookup table. None of these
ever escapes :func:`ucn_simulation.core.simulation.run_simulation`.
"""

from __future__ import annotations

from .particle import StopID


class TrackingError(Exception):
    """Base class for per-particle fatal failures."""

    stop_id = StopID.UNCATEGORIZED


class IntegrationError(TrackingError):
    """Step size collapsed, non-finite derivative, or too many micro steps."""

    stop_id = StopID.INTEGRATION_ERROR


class GeometryError(TrackingError):
    """Inconsistent material stack or a path that cannot be represented."""

    stop_id = StopID.GEOMETRY_ERROR


class SpatialQueryError(TrackingError):
    """The vectorized mesh query itself produced garbage."""

    stop_id = StopID.SPATIAL_QUERY_ERROR


class NoInitialPositionError(TrackingError):
    """The source could not place a particle after its retry budget."""

    stop_id = StopID.NO_INITIAL_POSITION


class SimulationAborted(Exception):
    """Raised from a signal handler to stop a run in an orderly way."""

    def __init__(self, signum: int):
        super().__init__(f"simulation aborted by signal {signum}")
        self.signum = signum
