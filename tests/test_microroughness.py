"""
Tests for the micro-roughness diffuse reflection model
"""

import math

import numpy as np
import pytest
from scipy.integrate import dblquad

from ucn_simulation.core.constants import NM_TO_M
from ucn_simulation.core.microroughness import (
    critical_wave_number,
    mr_angle_table,
    mr_density,
    mr_normalized_density,
    mr_total_probability,
    mr_total_table,
    sample_lambert_direction,
    sample_mr_direction,
    wave_number,
)

K = wave_number(5.0)
KC = critical_wave_number(250.0)
B = 3.0 * NM_TO_M
W = 20.0 * NM_TO_M
THETA_I = 0.3


class TestDensity:
    def test_normalized_density_integrates_to_one(self):
        def integrand(phi, theta):
            return float(mr_normalized_density(theta, phi, K, KC, THETA_I, B, W)) * math.sin(theta)

        total, _ = dblquad(integrand, 0.0, math.pi / 2.0, 0.0, 2.0 * math.pi, epsabs=1e-8)
        assert total == pytest.approx(1.0, rel=1e-3)

    def test_total_is_a_probability(self):
        p = mr_total_probability(K, KC, THETA_I, B, W)
        assert 0.0 < p <= 1.0

    def test_vanishes_without_roughness(self):
        assert mr_total_probability(K, KC, THETA_I, 0.0, W) == 0.0
        assert mr_total_probability(K, KC, THETA_I, B, 0.0) == 0.0
        with pytest.raises(ValueError):
            mr_normalized_density(0.1, 0.0, K, KC, THETA_I, 0.0, W)

    def test_grows_with_roughness(self):
        smooth = mr_total_probability(K, KC, THETA_I, 1.0 * NM_TO_M, W)
        rough = mr_total_probability(K, KC, THETA_I, 2.0 * NM_TO_M, W)
        # Density scales with b^2
        assert rough == pytest.approx(4.0 * smooth, rel=1e-9)

    def test_density_non_negative(self):
        theta = np.linspace(0.0, math.pi / 2.0, 11)
        phi = np.linspace(0.0, 2.0 * math.pi, 13)
        tt, pp = np.meshgrid(theta, phi, indexing="ij")
        assert np.all(mr_density(tt, pp, K, KC, THETA_I, B, W) >= 0.0)


class TestSampling:
    def test_mr_direction_within_hemisphere(self, rng):
        for _ in range(50):
            theta, phi = sample_mr_direction(rng, K, KC, THETA_I, B, W)
            assert 0.0 <= theta <= math.pi / 2.0
            assert 0.0 <= phi <= 2.0 * math.pi

    @pytest.mark.parametrize("moment", [
        lambda theta, phi: math.cos(theta),
        lambda theta, phi: math.sin(theta) * math.cos(phi),
    ])
    def test_mr_direction_moments(self, rng, moment):
        def integrand(phi, theta):
            density = float(mr_normalized_density(theta, phi, K, KC, THETA_I, B, W))
            return density * moment(theta, phi) * math.sin(theta)

        expected, _ = dblquad(integrand, 0.0, math.pi / 2.0, 0.0, 2.0 * math.pi, epsabs=1e-8)
        n = 3000
        values = np.array([moment(*sample_mr_direction(rng, K, KC, THETA_I, B, W)) for _ in range(n)])
        sigma = values.std() / math.sqrt(n)
        assert abs(values.mean() - expected) < 4.0 * sigma + 1e-3

    def test_zero_density_cannot_be_sampled(self, rng):
        with pytest.raises(ValueError):
            sample_mr_direction(rng, K, KC, THETA_I, 0.0, W)

    def test_lambert_direction_range(self, rng):
        for _ in range(100):
            theta, phi = sample_lambert_direction(rng)
            assert 0.0 <= theta <= math.pi / 2.0
            assert 0.0 <= phi < 2.0 * math.pi


class TestTables:
    def test_angle_table_shape(self):
        table = mr_angle_table(5.0, THETA_I, 250.0, 3.0, 20.0, n_theta=10, n_phi=20)
        assert list(table.columns) == ["phi_o", "theta_o", "mr_drp"]
        assert len(table) == 200
        assert table["mr_drp"].max() > 0.0

    def test_total_table_shape(self):
        table = mr_total_table([0.0, 0.5, 1.0], [50.0, 100.0], 250.0, 3.0, 20.0)
        assert list(table.columns) == ["theta_i", "energy_nev", "mr_total"]
        assert len(table) == 6
        assert table["mr_total"].between(0.0, 1.0).all()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
