from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from spacecharge_sim.core.constants import AMU_TO_KG, ELEMENTARY_CHARGE


@dataclass(slots=True, eq=False)
class Particle:
    """
    A charged point particle.

    Particles are owned by the caller. Field solvers and integrators only hold
    references to them, so a particle is hashed by identity.

    Attributes:
        location: Position vector in m, shape (3,)
        velocity: Velocity vector in m/s, shape (3,)
        charge: Charge in C
        mass: Mass in kg
        time_of_birth: Simulation time at which the particle starts to move
        active: Inactive particles are skipped by force evaluation and
            position updates
        float_attributes, integer_attributes: Named auxiliary values
    """
    location: np.ndarray
    velocity: np.ndarray
    charge: float
    mass: float
    time_of_birth: float = 0.0
    active: bool = True
    float_attributes: dict[str, float] = field(default_factory=dict)
    integer_attributes: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.location = np.array(self.location, dtype=np.float64).reshape(3)
        self.velocity = np.array(self.velocity, dtype=np.float64).reshape(3)
        self.charge = float(self.charge)
        self.mass = float(self.mass)
        self.time_of_birth = float(self.time_of_birth)

    @classmethod
    def from_amu(
        cls,
        location: Sequence[float],
        velocity: Sequence[float],
        charge_elementary: float,
        mass_amu: float,
        time_of_birth: float = 0.0,
    ) -> "Particle":
        """Build a particle from a charge in elementary charges and a mass in amu."""
        return cls(
            location=location,
            velocity=velocity,
            charge=charge_elementary * ELEMENTARY_CHARGE,
            mass=mass_amu * AMU_TO_KG,
            time_of_birth=time_of_birth,
        )

    @property
    def mass_amu(self) -> float:
        return self.mass / AMU_TO_KG

    @property
    def charge_elementary(self) -> float:
        return self.charge / ELEMENTARY_CHARGE
