"""
Tests for species kinematics, stop codes and the termination state machine
"""

import math

import numpy as np
import pytest

from ucn_simulation.core.constants import EV_TO_J, NEUTRON_MASS_KG, SPEED_OF_LIGHT
from ucn_simulation.core.particle import FATAL_STOP_IDS, ParticleState, Species, StopID, SurfaceOutcome


def _neutron(**kwargs):
    return ParticleState(Species.NEUTRON, 1, position=(0.0, 0.0, 0.1), velocity=(1.0, 2.0, 2.0), **kwargs)


class TestSpecies:
    def test_neutron_energy(self):
        energy = Species.NEUTRON.kinetic_energy_ev(np.array([3.0, 0.0, 4.0]))
        assert energy == pytest.approx(0.5 * NEUTRON_MASS_KG * 25.0 / EV_TO_J)
        assert Species.NEUTRON.speed_from_energy(energy) == pytest.approx(5.0)

    def test_electron_is_relativistic(self):
        speed = Species.ELECTRON.speed_from_energy(782.3e3)
        assert speed < SPEED_OF_LIGHT
        energy = Species.ELECTRON.kinetic_energy_ev(np.array([speed, 0.0, 0.0]))
        assert energy == pytest.approx(782.3e3, rel=1e-9)

    def test_negative_energy_rejected(self):
        with pytest.raises(ValueError):
            Species.PROTON.speed_from_energy(-1.0)

    def test_charges_and_lifetimes(self):
        assert Species.NEUTRON.charge == 0.0
        assert Species.PROTON.charge == -Species.ELECTRON.charge > 0.0
        assert math.isinf(Species.PROTON.mean_lifetime)
        assert Species.NEUTRON.mean_lifetime == pytest.approx(880.2)


class TestStopID:
    def test_codes(self):
        assert int(StopID.ABSORBED_ON_SURFACE) == 2
        assert int(StopID.NOT_FINISHED) == -1
        assert int(StopID.GEOMETRY_ERROR) == -7

    def test_fatal_codes(self):
        assert FATAL_STOP_IDS == {
            StopID.INTEGRATION_ERROR,
            StopID.NO_INITIAL_POSITION,
            StopID.SPATIAL_QUERY_ERROR,
            StopID.GEOMETRY_ERROR,
        }
        assert not StopID.DECAYED.is_fatal_error
        assert StopID.SPATIAL_QUERY_ERROR.is_fatal_error

    def test_every_code_described(self):
        for code in StopID:
            assert code.description


class TestParticleState:
    def test_initial_bookkeeping(self):
        p = _neutron(time=2.0)
        assert p.is_running
        assert p.start_time == 2.0
        assert p.kinetic_energy == pytest.approx(Species.NEUTRON.kinetic_energy_ev(np.array([1.0, 2.0, 2.0])))
        assert p.speed == pytest.approx(3.0)

    def test_bad_polarisation(self):
        with pytest.raises(ValueError):
            _neutron(polarisation=2)

    def test_terminates_once(self):
        p = _neutron()
        p.terminate(StopID.DECAYED)
        assert not p.is_running
        with pytest.raises(RuntimeError, match="already terminated"):
            p.terminate(StopID.NOT_FINISHED)
        assert p.stop_id is StopID.DECAYED

    def test_snapshot_requires_termination(self):
        p = _neutron()
        with pytest.raises(RuntimeError):
            p.snapshot()
        p.update_energy(0.0)
        p.move_to(0.5, np.array([0.0, 0.0, 1.1]), np.array([0.0, 0.0, -1.0]))
        p.update_energy(0.0)
        p.terminate(StopID.NOT_FINISHED)
        record = p.snapshot("storage volume")
        assert record.stop_id == -1
        assert record.stop_name == "NOT_FINISHED"
        assert record.final_solid == "storage volume"
        assert record.elapsed_time == pytest.approx(0.5)
        assert record.path_length == pytest.approx(1.0)
        assert record.max_energy == pytest.approx(record.start_energy)

    def test_spawn(self):
        p = _neutron(record_trajectory=True)
        child = p.spawn(Species.PROTON, 7, np.array([10.0, 0.0, 0.0]))
        assert child.parent is p
        assert child.parent_id == 1
        assert child.generation == 1
        assert child.trajectory == []
        np.testing.assert_array_equal(child.position, p.position)
        assert p.secondaries == [child]

        # Children do not keep their parent alive
        del p
        assert child.parent is None

    def test_outcome_counters(self):
        p = _neutron()
        for outcome in (SurfaceOutcome.TRANSMITTED, SurfaceOutcome.REFLECTED_SPECULAR,
                        SurfaceOutcome.REFLECTED_SPECULAR, SurfaceOutcome.REFLECTED_DIFFUSE):
            p.record_outcome(outcome)
        assert (p.n_transmissions, p.n_specular, p.n_diffuse) == (1, 2, 1)
        assert p.last_outcome is SurfaceOutcome.REFLECTED_DIFFUSE


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
