"""
Static external fields and the standard space charge acceleration function.

Finite-extent field sources do not raise when a particle leaves their domain.
They return the ``OUT_OF_DOMAIN`` marker instead, and the acceleration
function turns that into a soft failure: the particle is deactivated and
receives no acceleration, while the rest of the ensemble keeps running.

Example:
    >>> field = UniformField((100.0, 0.0, 0.0), center=(0, 0, 0), half_extent=0.01)
    >>> accel = space_charge_acceleration(field, space_charge_factor=1.0)
    >>> integrator = VerletIntegrator(particles, accel)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Sequence

import numpy as np

if TYPE_CHECKING:
    from spacecharge_sim.core.particle import Particle
    from spacecharge_sim.physics.forces import FieldSolver


logger = logging.getLogger(__name__)


class OutOfDomain:
    """Marker returned by a field source for locations outside its domain."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "OUT_OF_DOMAIN"

    def __bool__(self) -> bool:
        return False


OUT_OF_DOMAIN = OutOfDomain()


class StaticField:
    """Time-independent external electric field."""

    def field_at(self, location: np.ndarray) -> np.ndarray | OutOfDomain:
        raise NotImplementedError


class UniformField(StaticField):
    """
    Homogeneous field inside an axis-aligned box.

    ``half_extent=None`` makes the field unbounded.
    """

    def __init__(
        self,
        field: Sequence[float],
        center: Sequence[float] = (0.0, 0.0, 0.0),
        half_extent: float | Sequence[float] | None = None,
    ):
        self.field = np.array(field, dtype=np.float64).reshape(3)
        self.center = np.array(center, dtype=np.float64).reshape(3)
        if half_extent is None:
            self.half_extent = None
        else:
            self.half_extent = np.broadcast_to(np.asarray(half_extent, dtype=np.float64), (3,)).copy()
            if np.any(self.half_extent <= 0.0):
                raise ValueError(f"half_extent must be positive, got {half_extent}")

    def contains(self, location: np.ndarray) -> bool:
        if self.half_extent is None:
            return True
        return bool(np.all(np.abs(np.asarray(location) - self.center) <= self.half_extent))

    def field_at(self, location: np.ndarray) -> np.ndarray | OutOfDomain:
        if not self.contains(location):
            return OUT_OF_DOMAIN
        return self.field.copy()


AccelerationFunction = Callable[["Particle", int, "FieldSolver", float, int], np.ndarray]


def space_charge_acceleration(
    static_field: StaticField | None = None,
    space_charge_factor: float = 1.0,
) -> AccelerationFunction:
    """
    Build the acceleration function ``(E_static + f * E_sc) * q / m``.

    ``E_sc`` is taken from the field solver passed in by the integrator, so
    the same function works with every solver.
    """
    factor = float(space_charge_factor)

    def acceleration(
        particle: "Particle",
        index: int,
        field_solver: "FieldSolver",
        time: float,
        timestep: int,
    ) -> np.ndarray:
        e_field = np.zeros(3, dtype=np.float64)
        if static_field is not None:
            e_static = static_field.field_at(particle.location)
            if isinstance(e_static, OutOfDomain):
                particle.active = False
                logger.debug("particle %d left the field domain at t=%.6g, deactivated", index, time)
                return np.zeros(3, dtype=np.float64)
            e_field += e_static
        if factor != 0.0:
            e_field += factor * field_solver.compute_e_field_from_tree(particle)
        return e_field * (particle.charge / particle.mass)

    return acceleration
