"""
Record particle start and stop (splat) times and locations.

Simulations may create and destroy particles at will, e.g. with a continuous
particle inflow, so start and splat events are tracked independently of the
integrator's particle list. Every started particle gets a global index,
stored as the ``"global index"`` integer attribute of the particle.

Example:
    >>> tracker = ParticleStartSplatTracker()
    >>> integrator = VerletIntegrator(particles, accel_fct,
    ...                               particle_start_monitoring_function=tracker.particle_start)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from spacecharge_sim.core.particle import Particle


logger = logging.getLogger(__name__)

GLOBAL_INDEX_KEY = "global index"


class ParticleState(IntEnum):
    STARTED = 1
    SPLATTED = 2
    RESTARTED = 3
    SPLATTED_AND_RESTARTED = 4


@dataclass(slots=True)
class StartSplatEntry:
    """Start / splat record of one tracked particle."""
    global_index: int
    state: ParticleState
    start_time: float = 0.0
    splat_time: float = 0.0
    start_location: np.ndarray = field(default_factory=lambda: np.zeros(3))
    splat_location: np.ndarray = field(default_factory=lambda: np.zeros(3))


class ParticleStartSplatTracker:
    def __init__(self) -> None:
        self._entries: dict["Particle", StartSplatEntry] = {}
        self._restarted: list[StartSplatEntry] = []
        self._sorted: list[StartSplatEntry] = []
        self._next_index = 0

    def __len__(self) -> int:
        return len(self._entries)

    def _new_entry(self, particle: "Particle", location: np.ndarray, time: float, state: ParticleState) -> StartSplatEntry:
        entry = StartSplatEntry(
            global_index=self._next_index,
            state=state,
            start_time=float(time),
            start_location=np.array(location, dtype=np.float64),
        )
        particle.integer_attributes[GLOBAL_INDEX_KEY] = entry.global_index
        self._next_index += 1
        return entry

    def particle_start(self, particle: "Particle", time: float) -> None:
        """Register the start of a particle; starting a particle twice is an error."""
        if particle in self._entries:
            raise ValueError("Illegal double insert into start splat tracker: particle is already registered")
        self._entries[particle] = self._new_entry(particle, particle.location, time, ParticleState.STARTED)

    def particle_restart(
        self,
        particle: "Particle",
        old_position: np.ndarray,
        new_position: np.ndarray,
        time: float,
    ) -> None:
        """
        Record a particle that splatted at ``old_position`` and was immediately
        restarted at ``new_position`` (e.g. recycled into the inflow).

        The finished record is archived and the particle continues under a
        new global index.
        """
        entry = self._entries.get(particle)
        if entry is None:
            raise ValueError("Particle to restart was not registered as started before")
        entry.splat_time = float(time)
        entry.splat_location = np.array(old_position, dtype=np.float64)
        entry.state = ParticleState.SPLATTED_AND_RESTARTED
        self._restarted.append(entry)
        self._entries[particle] = self._new_entry(particle, new_position, time, ParticleState.RESTARTED)

    def particle_splat(self, particle: "Particle", time: float) -> None:
        """Register the splat of a started particle at its current location."""
        entry = self._entries.get(particle)
        if entry is None:
            raise ValueError("Particle to splat was not registered as started before")
        entry.splat_location = np.array(particle.location, dtype=np.float64)
        entry.splat_time = float(time)
        entry.state = ParticleState.SPLATTED
        logger.debug("particle %d splatted at t=%.6g", entry.global_index, time)

    def get(self, particle: "Particle") -> StartSplatEntry:
        entry = self._entries.get(particle)
        if entry is None:
            raise ValueError("Particle is not registered in the start splat tracker")
        return entry

    def sort_start_splat_data(self) -> None:
        """Collect all records (including archived restarts) ordered by global index."""
        data = list(self._entries.values()) + self._restarted
        self._sorted = sorted(data, key=lambda e: e.global_index)

    def start_splat_data(self) -> list[StartSplatEntry]:
        return list(self._sorted)

    def splat_states(self) -> list[int]:
        return [int(e.state) for e in self._sorted]

    def start_times(self) -> list[float]:
        return [e.start_time for e in self._sorted]

    def splat_times(self) -> list[float]:
        return [e.splat_time for e in self._sorted]

    def start_locations(self) -> np.ndarray:
        return np.array([e.start_location for e in self._sorted], dtype=np.float64).reshape(-1, 3)

    def splat_locations(self) -> np.ndarray:
        return np.array([e.splat_location for e in self._sorted], dtype=np.float64).reshape(-1, 3)
