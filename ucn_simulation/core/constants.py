"""
Physical constants used by the tracking engine.

Values come from CODATA via ``scipy.constants``; the few quantities CODATA
does not carry (neutron lifetime, decay end-point energies) are set here.
"""

from scipy import constants as _sc

# Particle masses (kg)
NEUTRON_MASS_KG = _sc.m_n
PROTON_MASS_KG = _sc.m_p
ELECTRON_MASS_KG = _sc.m_e

# Charges and fundamental constants
ELEMENTARY_CHARGE = _sc.e  # C
SPEED_OF_LIGHT = _sc.c  # m/s
HBAR = _sc.hbar  # J s
GRAVITY = _sc.g  # m/s^2

# Neutron magnetic moment (J/T), negative: spin and moment are antiparallel
NEUTRON_MAGNETIC_MOMENT = _sc.physical_constants["neutron mag. mom."][0]

# Neutron beta decay
NEUTRON_LIFETIME_S = 880.2
ELECTRON_ENDPOINT_EV = 782.3e3  # kinetic end-point of the beta spectrum
PROTON_ENDPOINT_EV = 751.4  # maximum recoil energy

# Unit conversions
EV_TO_J = _sc.e
NEV_TO_J = 1.0e-9 * _sc.e
NM_TO_M = 1.0e-9

# Stable species carry an infinite lifetime
INFINITE_LIFETIME = float("inf")
