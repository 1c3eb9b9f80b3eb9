"""
Basic usage examples for the ucn_simulation package.

Shows how to build a geometry from analytical meshes, run a small parameter
sweep through it and inspect the results.
"""

import numpy as np

from ucn_simulation import (
    Geometry,
    Material,
    ParameterSweep,
    Species,
    ZeroField,
    default_config,
    run_simulation,
)
from ucn_simulation.core.constants import NM_TO_M
from ucn_simulation.core.microroughness import critical_wave_number, mr_total_probability, wave_number
from ucn_simulation.plotting import print_outcome_table
from ucn_simulation.testing import (
    create_simple_box,
    create_storage_vessel,
    make_simple_solid,
    print_mesh_info,
    run_quick_test,
)


def example_basic_physics():
    """Kinetic energy, speed and reflection probabilities"""
    print("=" * 60)
    print("Basic quantities")
    print("=" * 60)

    energy_ev = 100e-9
    speed = Species.NEUTRON.speed_from_energy(energy_ev)
    print(f"\n100 neV neutron speed: {speed:.3f} m/s")
    print(f"Rise height against gravity: {speed**2 / (2 * 9.80665):.3f} m")

    k = wave_number(speed)
    kc = critical_wave_number(183.0)
    print("\nIntegrated MR reflection probability (b = 1 nm, w = 25 nm):")
    for theta_deg in (0, 30, 60, 85):
        p = mr_total_probability(k, kc, np.radians(theta_deg), 1.0 * NM_TO_M, 25.0 * NM_TO_M)
        print(f"  theta_i = {theta_deg:2d} deg: {p:.4e}")


def example_simple_geometry():
    """Analytical meshes"""
    print("\n" + "=" * 60)
    print("Simple geometry")
    print("=" * 60)

    box = create_simple_box(center=(0, 0, -0.05), size=(1.0, 1.0, 0.1))
    print_mesh_info(box, "Floor slab")
    run_quick_test()


def example_parameter_sweep():
    """Drop neutrons of three energies onto a polished floor"""
    print("\n" + "=" * 60)
    print("Parameter sweep")
    print("=" * 60)

    floor = Material("nickel", fermi_real_nev=252.0, fermi_imag_nev=0.0311, loss_per_bounce=1e-4)
    slab = make_simple_solid(create_simple_box(center=(0, 0, -0.05), size=(1.0, 1.0, 0.1)), floor, priority=1)
    geometry = Geometry([slab], bounding_box=((-0.5, -0.5, -0.2), (0.5, 0.5, 1.0)))

    sweep = ParameterSweep(
        Species.NEUTRON,
        energies=[50e-9, 100e-9, 300e-9],
        positions=[(0.0, 0.0, 0.2)],
        directions=[(np.pi, 0.0)],  # straight down
    )
    config = default_config(decay_enabled=False).with_species(Species.NEUTRON, max_time=2.0)
    result = run_simulation(sweep, geometry, ZeroField(), config, np.random.default_rng(1), n_total=len(sweep))
    print_outcome_table(result.tally)
    for record in result.records:
        print(f"  E = {record.start_energy * 1e9:6.1f} neV -> {record.stop_name}, "
              f"{record.n_specular} specular reflections")


def example_storage_vessel():
    """Storage vessel made of a wall solid and an evacuated interior"""
    steel = Material("stainless steel", fermi_real_nev=183.0, fermi_imag_nev=0.0852, diffuse_probability=0.05)
    geometry = Geometry(create_storage_vessel(steel))
    print("\nSolids (priority, name, material):")
    for index in range(len(geometry)):
        solid = geometry[index]
        print(f"  {solid.priority:3d}  {solid.name:16s} {solid.material.name}")


if __name__ == "__main__":
    example_basic_physics()
    example_simple_geometry()
    example_parameter_sweep()
    example_storage_vessel()
