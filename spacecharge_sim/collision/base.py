"""
Collision model contract.

The integrators call these hooks at fixed points of every time step:

- ``initialize_model_parameters`` once, when a particle is admitted
- ``update_model_timestep_parameters`` once per step, before the force phase
- ``update_model_particle_parameters``, ``modify_acceleration`` and
  ``modify_velocity`` per particle inside the (possibly parallel) force phase
- ``modify_position`` per particle in the serial phase, before the new
  location is committed

Vector arguments are numpy arrays modified in place. Models may be stochastic
(drawing from ``random_pool.thread_source()``) and may deactivate particles.
Every hook defaults to a no-op, so a model overrides only what it needs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from spacecharge_sim.core.particle import Particle


class AbstractCollisionModel:
    def initialize_model_parameters(self, particle: "Particle") -> None:
        pass

    def update_model_timestep_parameters(self, timestep: int, time: float) -> None:
        pass

    def update_model_particle_parameters(self, particle: "Particle") -> None:
        pass

    def modify_acceleration(self, acceleration: np.ndarray, particle: "Particle", dt: float) -> None:
        pass

    def modify_velocity(self, particle: "Particle", dt: float) -> None:
        pass

    def modify_position(self, position: np.ndarray, particle: "Particle", dt: float) -> None:
        pass
