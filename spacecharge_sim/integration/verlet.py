"""
Velocity Verlet time integration of charged particle ensembles.

Each time step rebuilds a field solver from the active particles and then
advances every active particle in two phases:

1. Force phase (serial loop, or chunks on a thread pool in
   ``ParallelVerletIntegrator``): tentative new position from the current
   velocity and the previous acceleration, new acceleration evaluated against
   the frozen field solver, trapezoidal velocity update.
2. Commit phase (always serial, after every force phase unit has finished):
   collision model position modifier, other-actions hook, commit location.

No particle therefore observes another particle's partial update within the
same step.

Integrators:
- VerletIntegrator: serial, Barnes-Hut tree by default
- ParallelVerletIntegrator: thread pool force phase, arena tree by default

Example:
    >>> integrator = VerletIntegrator(particles, space_charge_acceleration())
    >>> integrator.run(1000, 1e-8)
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
import os
from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

import numpy as np

from spacecharge_sim.core.random_pool import bind_worker_index
from spacecharge_sim.physics.octree import SpatialChargeTree
from spacecharge_sim.physics.parallel_octree import ParallelSpatialChargeTree

if TYPE_CHECKING:
    from spacecharge_sim.collision.base import AbstractCollisionModel
    from spacecharge_sim.core.particle import Particle
    from spacecharge_sim.physics.forces import FieldSolver, FieldSolverFactory


logger = logging.getLogger(__name__)

AccelerationFunction = Callable[["Particle", int, "FieldSolver", float, int], np.ndarray]
PostTimestepFunction = Callable[["AbstractTimeIntegrator", list["Particle"], float, int, bool], None]
OtherActionsFunction = Callable[[np.ndarray, "Particle", int, float, int], None]
ParticleStartMonitoringFunction = Callable[["Particle", float], None]


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    IN_TERMINATION = "in_termination"
    STOPPED = "stopped"


class AbstractTimeIntegrator:
    """
    Particle bookkeeping, birth queue and simulation clock.

    Registered particles are inactive until their time of birth is reached.
    Admission activates them exactly once; a particle deactivated afterwards
    stays inactive.

    A termination request made while no run is in progress is kept, and the
    next ``run`` stops before its first step.
    """

    def __init__(
        self,
        particles: Iterable["Particle"] = (),
        particle_start_monitoring_function: ParticleStartMonitoringFunction | None = None,
    ):
        self.particles: list["Particle"] = []
        self.particle_start_monitoring_function = particle_start_monitoring_function
        self.run_state = RunState.IDLE
        self._termination_pending = False
        self._time = 0.0
        self._timestep = 0
        self._birth_queue: list[tuple[float, int]] = []
        for particle in particles:
            self.add_particle(particle)

    @property
    def n_particles(self) -> int:
        return len(self.particles)

    def time(self) -> float:
        return self._time

    def time_step(self) -> int:
        return self._timestep

    def add_particle(self, particle: "Particle") -> None:
        """Register a particle; it becomes active once its time of birth is reached."""
        index = len(self.particles)
        self.particles.append(particle)
        particle.active = False
        heapq.heappush(self._birth_queue, (particle.time_of_birth, index))

    def set_termination_state(self) -> None:
        """Request a cooperative stop after the step in flight has finished."""
        if self.run_state is RunState.RUNNING:
            self.run_state = RunState.IN_TERMINATION
            logger.info("termination requested at step %d (t=%.6g)", self._timestep, self._time)
        elif self.run_state in (RunState.IDLE, RunState.STOPPED):
            self._termination_pending = True
            logger.info("termination requested between runs, next run stops at step %d", self._timestep)

    def _start_run(self) -> None:
        if self.run_state in (RunState.RUNNING, RunState.IN_TERMINATION):
            raise RuntimeError("integrator is already running")
        if self._termination_pending:
            self._termination_pending = False
            self.run_state = RunState.IN_TERMINATION
        else:
            self.run_state = RunState.RUNNING

    def _bear_particles(self, time: float) -> None:
        while self._birth_queue and self._birth_queue[0][0] <= time:
            _, index = heapq.heappop(self._birth_queue)
            particle = self.particles[index]
            particle.active = True
            self._particle_born(particle, index)
            if self.particle_start_monitoring_function is not None:
                self.particle_start_monitoring_function(particle, time)
            logger.debug("particle %d born at t=%.6g", index, time)

    def _particle_born(self, particle: "Particle", index: int) -> None:
        pass

    def validate_state(self) -> list[str]:
        """Report particles with non-finite positions or velocities."""
        issues: list[str] = []
        for i, p in enumerate(self.particles):
            if not (
                all(math.isfinite(c) for c in p.location)
                and all(math.isfinite(c) for c in p.velocity)
            ):
                issues.append(f"particle {i} has non-finite position/velocity")
        return issues


class VerletIntegrator(AbstractTimeIntegrator):
    """
    Serial velocity Verlet integrator with space charge and collision hooks.

    Attributes:
        acceleration_function: ``(particle, index, field_solver, time, timestep) -> a``
        post_timestep_function: ``(integrator, particles, time, timestep, last_step)``
        other_actions_function: ``(new_position, particle, index, time, timestep)``,
            may modify ``new_position`` in place
        collision_model: Optional collision model receiving the per-step hooks
        field_solver: Field solver of the current step (None before the first step)
    """

    def __init__(
        self,
        particles: Iterable["Particle"],
        acceleration_function: AccelerationFunction,
        post_timestep_function: PostTimestepFunction | None = None,
        other_actions_function: OtherActionsFunction | None = None,
        particle_start_monitoring_function: ParticleStartMonitoringFunction | None = None,
        collision_model: "AbstractCollisionModel | None" = None,
        *,
        field_solver_factory: "FieldSolverFactory | None" = None,
        theta: float = 0.5,
    ):
        self.acceleration_function = acceleration_function
        self.post_timestep_function = post_timestep_function
        self.other_actions_function = other_actions_function
        self.collision_model = collision_model
        self.theta = float(theta)
        self.field_solver_factory = field_solver_factory or self._default_field_solver_factory
        self.field_solver: "FieldSolver | None" = None
        self._new_pos: list[np.ndarray] = []
        self._a_t: list[np.ndarray] = []
        super().__init__(particles, particle_start_monitoring_function)

    def _default_field_solver_factory(self, particles: Sequence["Particle"]) -> "FieldSolver":
        return SpatialChargeTree.for_particles(particles, theta=self.theta)

    def add_particle(self, particle: "Particle") -> None:
        """
        Register a particle, also while a run is in progress.

        The acceleration history of the particle starts at zero and it enters
        the field solver with the next rebuild.
        """
        self._new_pos.append(np.zeros(3, dtype=np.float64))
        self._a_t.append(np.zeros(3, dtype=np.float64))
        super().add_particle(particle)

    def _particle_born(self, particle: "Particle", index: int) -> None:
        self._a_t[index][:] = 0.0
        if self.collision_model is not None:
            self.collision_model.initialize_model_parameters(particle)

    def run(self, n_timesteps: int, dt: float) -> None:
        """
        Run up to ``n_timesteps`` steps of length ``dt``.

        A further call continues from the current time and time step. The
        termination state is checked before every step.
        """
        self._start_run()
        logger.info("run: %d steps, dt=%.6g, starting at step %d (t=%.6g)", n_timesteps, dt, self._timestep, self._time)
        try:
            self._bear_particles(self._time)
            if self.post_timestep_function is not None:
                self.post_timestep_function(self, self.particles, self._time, self._timestep, False)

            for _ in range(int(n_timesteps)):
                if self.run_state is RunState.IN_TERMINATION:
                    break
                self.run_single_step(dt)
            if self.run_state is RunState.IN_TERMINATION:
                logger.info("run terminated at step %d (t=%.6g)", self._timestep, self._time)
            self.finalize_simulation()
        finally:
            self.run_state = RunState.STOPPED
            self._run_finished()
        logger.info("run finished at step %d (t=%.6g)", self._timestep, self._time)

    def _run_finished(self) -> None:
        pass

    def finalize_simulation(self) -> None:
        if self.post_timestep_function is not None:
            self.post_timestep_function(self, self.particles, self._time, self._timestep, True)

    def _rebuild_field_solver(self) -> list[int]:
        active = [i for i, p in enumerate(self.particles) if p.active]
        solver = self.field_solver_factory([self.particles[i] for i in active])
        for i in active:
            solver.insert_particle(self.particles[i], i)
        self.field_solver = solver
        return active

    def _advance_particle(self, index: int, dt: float) -> None:
        particle = self.particles[index]
        cm = self.collision_model
        if cm is not None:
            cm.update_model_particle_parameters(particle)

        a_t = self._a_t[index]
        self._new_pos[index] = particle.location + particle.velocity * dt + a_t * (0.5 * dt * dt)
        a_new = np.array(
            self.acceleration_function(particle, index, self.field_solver, self._time, self._timestep),
            dtype=np.float64,
        )
        if cm is not None:
            cm.modify_acceleration(a_new, particle, dt)

        particle.velocity += (a_t + a_new) * (0.5 * dt)
        self._a_t[index] = a_new
        if cm is not None:
            cm.modify_velocity(particle, dt)

    def _force_phase(self, active: list[int], dt: float) -> None:
        for i in active:
            if self.particles[i].active:
                self._advance_particle(i, dt)

    def _commit_phase(self, dt: float) -> None:
        cm = self.collision_model
        for i, particle in enumerate(self.particles):
            if not particle.active:
                continue
            new_pos = self._new_pos[i]
            if cm is not None:
                cm.modify_position(new_pos, particle, dt)
            if self.other_actions_function is not None:
                self.other_actions_function(new_pos, particle, i, self._time, self._timestep)
            particle.location[:] = new_pos

    def run_single_step(self, dt: float) -> None:
        self._bear_particles(self._time)
        if self.collision_model is not None:
            self.collision_model.update_model_timestep_parameters(self._timestep, self._time)
        active = self._rebuild_field_solver()

        self._force_phase(active, dt)
        self._commit_phase(dt)

        self._time += dt
        self._timestep += 1
        if self.post_timestep_function is not None:
            self.post_timestep_function(self, self.particles, self._time, self._timestep, False)


class ParallelVerletIntegrator(VerletIntegrator):
    """
    Velocity Verlet integrator with a thread pool force phase.

    Active particles are split into chunks of ``chunk_size`` indices, each
    submitted as its own task, so idle workers pick up remaining chunks. The
    commit phase starts only after all chunks have completed; an exception in
    a worker is re-raised in the calling thread.

    The executor is created on first use and shut down at the end of ``run``,
    by ``close()`` or when leaving a ``with`` block. Worker threads carry a
    stable worker index (see ``core.random_pool``). A collision model with a
    ``random_pool`` needs at least ``n_workers`` sources in it.

    Chunks go to whichever worker is idle, so the generator serving a
    particle depends on thread scheduling. Runs with a stochastic collision
    model such as ``HardSphereModel`` are therefore not reproducible, even
    for a fixed seed and worker count; deterministic models reproduce the
    serial integrator.
    """

    def __init__(
        self,
        particles: Iterable["Particle"],
        acceleration_function: AccelerationFunction,
        post_timestep_function: PostTimestepFunction | None = None,
        other_actions_function: OtherActionsFunction | None = None,
        particle_start_monitoring_function: ParticleStartMonitoringFunction | None = None,
        collision_model: "AbstractCollisionModel | None" = None,
        *,
        field_solver_factory: "FieldSolverFactory | None" = None,
        theta: float = 0.5,
        n_workers: int | None = None,
        chunk_size: int = 40,
    ):
        if n_workers is not None and n_workers < 1:
            raise ValueError(f"n_workers must be at least 1, got {n_workers}")
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
        self.n_workers = int(n_workers or os.cpu_count() or 1)
        self.chunk_size = int(chunk_size)
        random_pool = getattr(collision_model, "random_pool", None)
        if random_pool is not None and len(random_pool) < self.n_workers:
            raise ValueError(
                f"collision model random pool has {len(random_pool)} sources for {self.n_workers} workers"
            )
        self._executor: ThreadPoolExecutor | None = None
        self._closed = False
        super().__init__(
            particles,
            acceleration_function,
            post_timestep_function,
            other_actions_function,
            particle_start_monitoring_function,
            collision_model,
            field_solver_factory=field_solver_factory,
            theta=theta,
        )

    def _default_field_solver_factory(self, particles: Sequence["Particle"]) -> "FieldSolver":
        return ParallelSpatialChargeTree.for_particles(particles, theta=self.theta)

    def __enter__(self) -> "ParallelVerletIntegrator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Shut down the worker threads; the integrator cannot step afterwards."""
        self._shutdown_executor()
        self._closed = True

    def _shutdown_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._closed:
            raise RuntimeError("parallel integrator has been closed")
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.n_workers,
                thread_name_prefix="verlet-worker",
                initializer=bind_worker_index,
                initargs=(itertools.count(),),
            )
        return self._executor

    def _run_finished(self) -> None:
        self._shutdown_executor()

    def _force_phase(self, active: list[int], dt: float) -> None:
        executor = self._ensure_executor()
        step = self.chunk_size
        serial_phase = super()._force_phase
        futures = [
            executor.submit(serial_phase, active[start:start + step], dt)
            for start in range(0, len(active), step)
        ]
        wait(futures)
        for future in futures:
            future.result()
