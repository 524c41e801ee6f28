"""
Hard sphere collisions with a static background gas.

Per time step a particle collides with probability

    p = n * sigma * v_rel * dt

with the gas number density ``n = P / (k_B T)``, the cross section
``sigma = pi * ((d_particle + d_gas) / 2)^2`` and the mean relative speed
``v_rel`` between the particle and the thermal gas. A collision is elastic;
the relative velocity is scattered into an isotropically sampled direction in
the center of mass frame.

A probability above one means the time step is too long for the gas
conditions. This is reported as ``CollisionProbabilityError``.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import numpy as np

from spacecharge_sim.collision.base import AbstractCollisionModel
from spacecharge_sim.core.constants import AMU_TO_KG, K_BOLTZMANN

if TYPE_CHECKING:
    from spacecharge_sim.core.particle import Particle
    from spacecharge_sim.core.random_pool import AbstractRandomGeneratorPool


logger = logging.getLogger(__name__)

COLLISION_DIAMETER_KEY = "collision diameter"
DEFAULT_PARTICLE_DIAMETER = 1e-9  # m


class CollisionProbabilityError(ValueError):
    """Collision probability of a single time step exceeds one."""


class HardSphereModel(AbstractCollisionModel):
    """
    Stochastic hard sphere background gas model.

    Attributes:
        pressure: Background gas pressure (Pa)
        temperature: Background gas temperature (K)
        gas_mass: Mass of a gas particle (kg)
        gas_diameter: Collision diameter of a gas particle (m)
        particle_diameter: Diameter used for particles without a
            ``"collision diameter"`` float attribute (m)
    """

    def __init__(
        self,
        pressure: float,
        temperature: float,
        gas_mass_amu: float,
        gas_diameter: float,
        random_pool: "AbstractRandomGeneratorPool",
        *,
        particle_diameter: float = DEFAULT_PARTICLE_DIAMETER,
    ):
        if pressure < 0.0:
            raise ValueError(f"background gas pressure must not be negative, got {pressure}")
        if not temperature > 0.0:
            raise ValueError(f"background gas temperature must be positive, got {temperature}")
        if not gas_mass_amu > 0.0:
            raise ValueError(f"background gas mass must be positive, got {gas_mass_amu}")
        self.pressure = float(pressure)
        self.temperature = float(temperature)
        self.gas_mass = float(gas_mass_amu) * AMU_TO_KG
        self.gas_diameter = float(gas_diameter)
        self.particle_diameter = float(particle_diameter)
        self.random_pool = random_pool

        self.number_density = self.pressure / (K_BOLTZMANN * self.temperature)
        # per component standard deviation of the thermal gas velocity
        self.gas_sigma_v = math.sqrt(K_BOLTZMANN * self.temperature / self.gas_mass)
        self.gas_mean_speed = math.sqrt(8.0 * K_BOLTZMANN * self.temperature / (math.pi * self.gas_mass))
        logger.debug(
            "hard sphere gas: n=%.3g m^-3, mean speed %.3g m/s", self.number_density, self.gas_mean_speed
        )

    def initialize_model_parameters(self, particle: "Particle") -> None:
        particle.float_attributes.setdefault(COLLISION_DIAMETER_KEY, self.particle_diameter)

    def collision_probability(self, particle: "Particle", dt: float) -> float:
        d = 0.5 * (particle.float_attributes.get(COLLISION_DIAMETER_KEY, self.particle_diameter) + self.gas_diameter)
        sigma = math.pi * d * d
        speed = float(np.linalg.norm(particle.velocity))
        v_rel = math.sqrt(speed * speed + self.gas_mean_speed * self.gas_mean_speed)
        return self.number_density * sigma * v_rel * dt

    def modify_velocity(self, particle: "Particle", dt: float) -> None:
        p = self.collision_probability(particle, dt)
        if p > 1.0:
            raise CollisionProbabilityError(
                f"collision probability {p:.3g} > 1 for dt={dt:.3g} s; reduce the time step"
            )
        source = self.random_pool.thread_source()
        if not source.uniform() < p:
            return

        gas_v = np.array([source.normal(), source.normal(), source.normal()], dtype=np.float64) * self.gas_sigma_v
        m = particle.mass
        mg = self.gas_mass
        v_cm = (m * particle.velocity + mg * gas_v) / (m + mg)
        g = float(np.linalg.norm(particle.velocity - gas_v))

        cos_t = 2.0 * source.uniform() - 1.0
        sin_t = math.sqrt(max(0.0, 1.0 - cos_t * cos_t))
        phi = 2.0 * math.pi * source.uniform()
        direction = np.array([sin_t * math.cos(phi), sin_t * math.sin(phi), cos_t], dtype=np.float64)

        particle.velocity[:] = v_cm + (mg / (m + mg)) * g * direction
