"""
Tests for the parameter sweep, the Monte-Carlo source and particle creation
"""

import math

import numpy as np
import pytest

from ucn_simulation.config import default_config
from ucn_simulation.core.particle import Species
from ucn_simulation.core.source import (
    InitialCondition,
    MonteCarloSource,
    ParameterSweep,
    direction_from_angles,
    make_particle,
)

VESSEL_BOX = ((-0.25, -0.25, 0.0), (0.25, 0.25, 0.5))


@pytest.fixture
def sweep():
    return ParameterSweep(
        Species.NEUTRON,
        energies=[100e-9, 200e-9],
        positions=[(0.0, 0.0, 0.1), (0.1, 0.0, 0.1)],
        directions=[(0.0, 0.0)],
        polarisations=[-1, 1],
    )


class TestParameterSweep:
    def test_length(self, sweep):
        assert len(sweep) == 8
        assert len(list(sweep)) == 8

    def test_order(self, sweep):
        conditions = list(sweep)
        assert [c.polarisation for c in conditions[:2]] == [-1, 1]
        assert conditions[0].position == conditions[1].position
        assert conditions[2].position == (0.1, 0.0, 0.1)
        speeds = [np.linalg.norm(c.velocity) for c in conditions]
        assert speeds[0] == pytest.approx(Species.NEUTRON.speed_from_energy(100e-9))
        assert speeds[4] == pytest.approx(Species.NEUTRON.speed_from_energy(200e-9))

    def test_restartable(self, sweep):
        assert list(sweep) == list(sweep)

    def test_start_offset(self, sweep):
        tail = list(sweep.iterate(start=5))
        assert tail == list(sweep)[5:]

    def test_direction(self, sweep):
        condition = next(iter(sweep))
        np.testing.assert_allclose(np.array(condition.velocity) / np.linalg.norm(condition.velocity), [0, 0, 1])
        np.testing.assert_allclose(direction_from_angles(math.pi / 2.0, math.pi / 2.0), [0, 1, 0], atol=1e-15)

    def test_invalid_input(self):
        with pytest.raises(ValueError):
            ParameterSweep(Species.NEUTRON, energies=[-1.0], positions=[(0, 0, 0)])
        with pytest.raises(ValueError):
            ParameterSweep(Species.NEUTRON, energies=[1.0], positions=[(0, 0)])


class TestMonteCarloSource:
    def test_positions_inside_volume(self, vessel_geometry, rng):
        source = MonteCarloSource(vessel_geometry, Species.NEUTRON, VESSEL_BOX, 20e-9, 150e-9,
                                  volume="storage volume", polarisations=(-1, 1))
        for condition in source.generate(30, rng):
            assert condition.placed
            x, y, z = condition.position
            assert math.hypot(x, y) < 0.25
            assert 0.0 < z < 0.5
            assert condition.polarisation in (-1, 1)

    def test_energy_range(self, vessel_geometry, rng):
        source = MonteCarloSource(vessel_geometry, Species.NEUTRON, VESSEL_BOX, 20e-9, 150e-9)
        energies = np.array([source.sample_energy(rng) for _ in range(1000)])
        assert energies.min() >= 20e-9
        assert energies.max() <= 150e-9
        # E^0.5 spectrum puts more particles in the upper half
        assert np.mean(energies > 85e-9) > 0.5

    def test_fixed_energy(self, vessel_geometry, rng):
        source = MonteCarloSource(vessel_geometry, Species.NEUTRON, VESSEL_BOX, 50e-9, 50e-9)
        assert source.sample_energy(rng) == 50e-9

    def test_impossible_volume(self, vessel_geometry, rng):
        # Box below the floor lies entirely inside the wall
        box = ((-0.1, -0.1, -0.009), (0.1, 0.1, -0.001))
        source = MonteCarloSource(vessel_geometry, Species.NEUTRON, box, 20e-9, 150e-9,
                                  volume="storage volume", max_retries=5)
        assert not source.sample(rng).placed

    def test_unknown_volume(self, vessel_geometry):
        with pytest.raises(ValueError, match="Unknown source volume"):
            MonteCarloSource(vessel_geometry, Species.NEUTRON, VESSEL_BOX, 0.0, 1e-7, volume="nowhere")

    def test_bad_energy_range(self, vessel_geometry):
        with pytest.raises(ValueError):
            MonteCarloSource(vessel_geometry, Species.NEUTRON, VESSEL_BOX, 2e-7, 1e-7)


class TestMakeParticle:
    def test_stable_without_decay(self, rng, config):
        condition = InitialCondition(Species.NEUTRON, (0.0, 0.0, 0.1), (0.0, 0.0, 1.0), polarisation=1)
        particle = make_particle(condition, 3, rng, config)
        assert particle.particle_id == 3
        assert particle.polarisation == 1
        assert math.isinf(particle.lifetime)
        assert particle.trajectory is None

    def test_lifetime_sampled(self, rng):
        condition = InitialCondition(Species.NEUTRON, (0.0, 0.0, 0.1), (0.0, 0.0, 1.0))
        config = default_config(record_trajectories=True)
        lifetimes = [make_particle(condition, i, rng, config).lifetime for i in range(200)]
        assert all(0.0 < t < math.inf for t in lifetimes)
        assert np.mean(lifetimes) == pytest.approx(880.2, rel=0.25)
        assert make_particle(condition, 1, rng, config).trajectory == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
