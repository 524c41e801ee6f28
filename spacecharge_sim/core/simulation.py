"""
Build integrators and their collaborators from ``SimulationParams``.

Example:
    >>> params = SimulationParams.load("run.json")
    >>> integrator = create_integrator(params, particles, space_charge_acceleration())
    >>> integrator.run(params.n_timesteps, params.dt)
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Iterable

from spacecharge_sim.collision.hard_sphere import HardSphereModel
from spacecharge_sim.core.random_pool import RandomGeneratorPool
from spacecharge_sim.integration.verlet import (
    AccelerationFunction,
    OtherActionsFunction,
    ParallelVerletIntegrator,
    ParticleStartMonitoringFunction,
    PostTimestepFunction,
    VerletIntegrator,
)
from spacecharge_sim.params import SimulationParams
from spacecharge_sim.physics.forces import FullSumSolver
from spacecharge_sim.physics.octree import SpatialChargeTree
from spacecharge_sim.physics.parallel_octree import ParallelSpatialChargeTree

if TYPE_CHECKING:
    from spacecharge_sim.collision.base import AbstractCollisionModel
    from spacecharge_sim.core.particle import Particle
    from spacecharge_sim.physics.forces import FieldSolverFactory


logger = logging.getLogger(__name__)


def worker_count(params: SimulationParams) -> int:
    if params.integrator != "parallel":
        return 1
    return params.n_workers or os.cpu_count() or 1


def create_random_pool(params: SimulationParams) -> RandomGeneratorPool:
    """One generator per worker thread, all derived from ``params.seed``."""
    return RandomGeneratorPool(worker_count(params), seed=params.seed)


def create_collision_model(
    params: SimulationParams,
    random_pool: RandomGeneratorPool | None = None,
) -> "AbstractCollisionModel | None":
    if params.collision_model == "none":
        return None
    if params.collision_model == "hard_sphere":
        return HardSphereModel(
            params.background_pressure,
            params.background_temperature,
            params.collision_gas_mass_amu,
            params.collision_gas_diameter,
            random_pool or create_random_pool(params),
            particle_diameter=params.particle_diameter,
        )
    raise ValueError(f"unknown collision model: {params.collision_model!r}")


def create_field_solver_factory(params: SimulationParams) -> "FieldSolverFactory":
    theta = params.theta
    min_distance = params.min_distance
    if params.field_solver == "full_sum":
        return lambda particles: FullSumSolver.for_particles(particles, min_distance=min_distance)
    if params.field_solver != "tree":
        raise ValueError(f"unknown field solver: {params.field_solver!r}")
    if params.integrator == "parallel":
        return lambda particles: ParallelSpatialChargeTree.for_particles(
            particles, theta=theta, min_distance=min_distance
        )
    return lambda particles: SpatialChargeTree.for_particles(particles, theta=theta, min_distance=min_distance)


def create_integrator(
    params: SimulationParams,
    particles: Iterable["Particle"],
    acceleration_function: AccelerationFunction,
    post_timestep_function: PostTimestepFunction | None = None,
    other_actions_function: OtherActionsFunction | None = None,
    particle_start_monitoring_function: ParticleStartMonitoringFunction | None = None,
    collision_model: "AbstractCollisionModel | None" = None,
) -> VerletIntegrator:
    """
    Create the integrator selected by ``params.integrator``.

    Without an explicit ``collision_model`` the one configured in ``params``
    is built, drawing from a fresh random pool sized to the worker count.
    """
    if collision_model is None:
        collision_model = create_collision_model(params)
    factory = create_field_solver_factory(params)

    for warning in params.validate():
        logger.warning("%s", warning)

    if params.integrator == "parallel":
        return ParallelVerletIntegrator(
            particles,
            acceleration_function,
            post_timestep_function,
            other_actions_function,
            particle_start_monitoring_function,
            collision_model,
            field_solver_factory=factory,
            theta=params.theta,
            n_workers=worker_count(params),
            chunk_size=params.chunk_size,
        )
    return VerletIntegrator(
        particles,
        acceleration_function,
        post_timestep_function,
        other_actions_function,
        particle_start_monitoring_function,
        collision_model,
        field_solver_factory=factory,
        theta=params.theta,
    )
