"""
High-level simulation driver: one queue of particles, one outcome tally.
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd
from tqdm import tqdm

from .data_classes import ParticleRecord
from .errors import SimulationAborted
from .geometry import Geometry
from .io_utils import records_to_dataframe
from .particle import ParticleState, Species, StopID
from .source import InitialCondition, make_particle
from .tracker import ParticleTracker

logger = logging.getLogger(__name__)


@dataclass
class OutcomeTally:
    """Count of stop codes and integrator steps per species."""

    counts: Dict[Species, Dict[StopID, int]] = field(
        default_factory=lambda: {s: {code: 0 for code in StopID} for s in Species}
    )
    steps: Dict[Species, int] = field(default_factory=lambda: {s: 0 for s in Species})

    def add(self, record: ParticleRecord) -> None:
        species = Species(record.species)
        self.counts[species][StopID(record.stop_id)] += 1
        self.steps[species] += record.n_steps

    def total(self, species: Optional[Species] = None) -> int:
        if species is None:
            return sum(self.total(s) for s in Species)
        return sum(self.counts[Species(species)].values())

    def count(self, species: Species, stop_id: StopID) -> int:
        return self.counts[Species(species)][StopID(stop_id)]

    def average_steps(self, species: Species) -> float:
        n = self.total(species)
        return self.steps[Species(species)] / n if n else 0.0

    def fatal_errors(self) -> int:
        return sum(n for counts in self.counts.values() for code, n in counts.items() if code.is_fatal_error)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per stop code, one column per species."""
        rows = []
        for code in StopID:
            row = {"code": int(code), "name": code.name, "description": code.description}
            for species in Species:
                row[species.value] = self.counts[species][code]
            rows.append(row)
        return pd.DataFrame(rows)


@dataclass
class SimulationResult:
    records: List[ParticleRecord]
    tally: OutcomeTally
    aborted: bool = False
    signum: Optional[int] = None

    def records_dataframe(self) -> pd.DataFrame:
        return records_to_dataframe(self.records)


def run_simulation(
    conditions: Iterable[InitialCondition],
    geometry: Geometry,
    field,
    config,
    rng: np.random.Generator,
    n_total: Optional[int] = None,
    progress: bool = True,
    on_record: Optional[Callable[[ParticleRecord], None]] = None,
) -> SimulationResult:
    """Track every primary produced by ``conditions`` and all their secondaries.

    Secondaries are queued behind their parent and tracked by the same loop.
    A :class:`SimulationAborted` raised while a particle is in flight stops the
    run; that particle is recorded as not finished and the partial result is
    returned with ``aborted=True``.

    Parameters
    ----------
    conditions : iterable of InitialCondition
        Primary particles, e.g. a ParameterSweep or MonteCarloSource.generate().
    n_total : int, optional
        Number of primaries, for the progress bar.
    on_record : callable, optional
        Called with every final snapshot, in order (external logger hook).
    """
    ids = itertools.count(1)
    tracker = ParticleTracker(geometry, field, config, rng, next_id=ids.__next__)
    tally = OutcomeTally()
    records: List[ParticleRecord] = []

    def finish(particle: ParticleState) -> None:
        record = particle.snapshot(tracker.final_solid_name(particle))
        records.append(record)
        tally.add(record)
        if on_record is not None:
            on_record(record)

    current: Optional[ParticleState] = None
    try:
        for condition in tqdm(conditions, total=n_total, desc="Tracking particles", disable=not progress):
            queue = deque([make_particle(condition, next(ids), rng, config)])
            if not condition.placed:
                queue[0].terminate(StopID.NO_INITIAL_POSITION)
            while queue:
                current = queue.popleft()
                if current.is_running:
                    tracker.track(current)
                particle, current = current, None
                finish(particle)
                if config.simulate_secondaries:
                    queue.extend(particle.secondaries)
    except SimulationAborted as exc:
        logger.warning("Run aborted by signal %d after %d particles", exc.signum, len(records))
        if current is not None:
            if current.is_running:
                current.terminate(StopID.NOT_FINISHED)
            finish(current)
        return SimulationResult(records=records, tally=tally, aborted=True, signum=exc.signum)

    logger.info("Tracked %d particles, %d fatal errors", len(records), tally.fatal_errors())
    return SimulationResult(records=records, tally=tally)
