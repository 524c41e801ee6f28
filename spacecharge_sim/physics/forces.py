"""
Field solver interface and the exact full-sum solver.

Integrators are generic over any object offering the two-method field solver
contract:

- ``insert_particle(particle, index)``
- ``compute_e_field_from_tree(particle) -> numpy.ndarray``

Available solvers:
- SpatialChargeTree (physics.octree): Barnes-Hut octree, O(N log N)
- ParallelSpatialChargeTree (physics.parallel_octree): arena octree for
  concurrent queries
- FullSumSolver (this module): exact O(N^2) summation with NumPy

Example:
    >>> solver = FullSumSolver()
    >>> for i, p in enumerate(particles):
    ...     solver.insert_particle(p, i)
    >>> e_field = solver.compute_e_field_from_tree(particles[0])
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, Sequence

import numpy as np

from spacecharge_sim.core.constants import K_COULOMB
from spacecharge_sim.physics.field_evaluation import MIN_DISTANCE

if TYPE_CHECKING:
    from spacecharge_sim.core.particle import Particle


BOUNDS_PADDING = 1.01
MIN_HALF_EXTENT = 1e-6


class FieldSolver:
    """
    Abstract base interface for space charge field solvers.

    A solver is populated once per time step and then only queried.
    """

    def insert_particle(self, particle: "Particle", index: int) -> None:
        raise NotImplementedError

    def compute_e_field_from_tree(self, particle: "Particle") -> np.ndarray:
        """
        Compute the electric field at the particle location, excluding the
        particle's own contribution.

        Returns:
            Field vector (V/m) of shape (3,)
        """
        raise NotImplementedError


FieldSolverFactory = Callable[[Sequence["Particle"]], FieldSolver]


def enclosing_cube(particles: Sequence["Particle"]) -> tuple[tuple[float, float, float], float]:
    """
    Return ``(center, half)`` of a cube containing all particle locations.

    The cube is padded slightly so that no particle sits exactly on a face.
    """
    if not particles:
        return (0.0, 0.0, 0.0), 1.0
    locs = np.array([p.location for p in particles], dtype=np.float64)
    lo = locs.min(axis=0)
    hi = locs.max(axis=0)
    center = (lo + hi) * 0.5
    half = float(np.max(hi - lo)) * 0.5
    half = max(half, MIN_HALF_EXTENT, float(np.max(np.abs(center))) * 1e-9) * BOUNDS_PADDING
    return (float(center[0]), float(center[1]), float(center[2])), half


class FullSumSolver(FieldSolver):
    """
    Direct O(N²) field solver using NumPy.

    Exact (up to the distance floor) but slow for large N. Inserted particles
    are packed into arrays on the first query after an insert.
    """

    def __init__(self, min_distance: float = MIN_DISTANCE):
        self.min_distance = float(min_distance)
        self._particles: list["Particle"] = []
        self._indices: list[int] = []
        self._rows: dict[int, int] = {}
        self._pos: np.ndarray | None = None
        self._charges: np.ndarray | None = None
        self._lock = threading.Lock()

    @classmethod
    def for_particles(cls, particles: Sequence["Particle"], min_distance: float = MIN_DISTANCE) -> "FullSumSolver":
        return cls(min_distance=min_distance)

    @property
    def n_particles(self) -> int:
        return len(self._particles)

    def insert_particle(self, particle: "Particle", index: int) -> None:
        with self._lock:
            self._rows[id(particle)] = len(self._particles)
            self._particles.append(particle)
            self._indices.append(int(index))
            self._pos = None
            self._charges = None

    def _packed(self) -> tuple[np.ndarray, np.ndarray]:
        with self._lock:
            if self._pos is None or self._charges is None:
                n = len(self._particles)
                pos = np.empty((n, 3), dtype=np.float64)
                charges = np.empty(n, dtype=np.float64)
                for i, p in enumerate(self._particles):
                    pos[i] = p.location
                    charges[i] = p.charge
                self._pos = pos
                self._charges = charges
            return self._pos, self._charges

    def compute_e_field_from_tree(self, particle: "Particle") -> np.ndarray:
        pos, charges = self._packed()
        if pos.shape[0] == 0:
            return np.zeros(3, dtype=np.float64)

        d = particle.location[None, :] - pos
        r2 = np.sum(d * d, axis=1)
        np.maximum(r2, self.min_distance * self.min_distance, out=r2)
        inv_r = 1.0 / np.sqrt(r2)
        f = K_COULOMB * charges * inv_r * inv_r * inv_r

        row = self._rows.get(id(particle))
        if row is not None:
            f[row] = 0.0
        return np.sum(d * f[:, None], axis=0)
