"""
Physical constants (SI units) used throughout the simulation.
"""

from __future__ import annotations

import math


ELEMENTARY_CHARGE = 1.602176634e-19  # C
AMU_TO_KG = 1.66053906660e-27  # kg
K_BOLTZMANN = 1.380649e-23  # J/K
EPSILON_0 = 8.8541878128e-12  # F/m
K_COULOMB = 1.0 / (4.0 * math.pi * EPSILON_0)  # V*m/C
