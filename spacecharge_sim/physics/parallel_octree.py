"""
Arena-based Barnes-Hut octree for concurrent field queries.

Same contract and approximation as ``SpatialChargeTree``, but the nodes live
in flat per-attribute lists (an arena) addressed by integer node indices, and
the eight children of a node always occupy consecutive slots. Centers of
charge are kept up to date on every insert, so a query performs no writes and
uses an explicit stack instead of recursion.

Usage discipline: insert all particles for a time step first, then query from
any number of threads. Inserting while queries are running is not supported;
the integrators guarantee this by separating the build phase from the
parallel phase.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Sequence

import numpy as np

from spacecharge_sim.physics.field_evaluation import (
    MIN_DISTANCE,
    accepts_node,
    coulomb_field,
    has_center_of_charge,
)
from spacecharge_sim.physics.forces import FieldSolver, enclosing_cube
from spacecharge_sim.physics.octree import MAX_DEPTH, Entry

if TYPE_CHECKING:
    from spacecharge_sim.core.particle import Particle


NO_CHILDREN = -1


class ParallelSpatialChargeTree(FieldSolver):
    """
    Barnes-Hut field solver safe for concurrent read queries.

    Attributes:
        theta: Opening angle parameter (0 = exact)
        min_distance: Distance floor of the Coulomb kernel (m)
    """

    def __init__(
        self,
        center: Sequence[float] = (0.0, 0.0, 0.0),
        half: float = 1.0,
        *,
        theta: float = 0.5,
        min_distance: float = MIN_DISTANCE,
    ):
        if not half > 0.0:
            raise ValueError(f"tree half size must be positive, got {half}")
        if theta < 0.0:
            raise ValueError(f"opening angle theta must not be negative, got {theta}")
        self.theta = float(theta)
        self.min_distance = float(min_distance)

        self._cx: list[float] = []
        self._cy: list[float] = []
        self._cz: list[float] = []
        self._half: list[float] = []
        self._first_child: list[int] = []
        self._entries: list[list[Entry] | None] = []
        self._q: list[float] = []
        self._qx: list[float] = []
        self._qy: list[float] = []
        self._qz: list[float] = []
        self._abs_q: list[float] = []
        self._count: list[int] = []
        # center of charge, NaN while undefined
        self._ccx: list[float] = []
        self._ccy: list[float] = []
        self._ccz: list[float] = []

        self._new_node(float(center[0]), float(center[1]), float(center[2]), float(half))

    @classmethod
    def for_particles(
        cls,
        particles: Sequence["Particle"],
        *,
        theta: float = 0.5,
        min_distance: float = MIN_DISTANCE,
    ) -> "ParallelSpatialChargeTree":
        """Create an empty tree whose cube encloses all given particles."""
        center, half = enclosing_cube(particles)
        return cls(center, half, theta=theta, min_distance=min_distance)

    @property
    def n_nodes(self) -> int:
        return len(self._half)

    @property
    def n_particles(self) -> int:
        return self._count[0]

    @property
    def total_charge(self) -> float:
        return self._q[0]

    def node_charge(self, node: int) -> float:
        return self._q[node]

    def node_children(self, node: int) -> range:
        first = self._first_child[node]
        if first == NO_CHILDREN:
            return range(0)
        return range(first, first + 8)

    def node_entries(self, node: int) -> list[Entry]:
        return list(self._entries[node] or [])

    def _new_node(self, cx: float, cy: float, cz: float, half: float) -> int:
        self._cx.append(cx)
        self._cy.append(cy)
        self._cz.append(cz)
        self._half.append(half)
        self._first_child.append(NO_CHILDREN)
        self._entries.append(None)
        self._q.append(0.0)
        self._qx.append(0.0)
        self._qy.append(0.0)
        self._qz.append(0.0)
        self._abs_q.append(0.0)
        self._count.append(0)
        self._ccx.append(float("nan"))
        self._ccy.append(float("nan"))
        self._ccz.append(float("nan"))
        return len(self._half) - 1

    def _contains(self, node: int, x: float, y: float, z: float) -> bool:
        h = self._half[node]
        return abs(x - self._cx[node]) <= h and abs(y - self._cy[node]) <= h and abs(z - self._cz[node]) <= h

    def _child_for(self, node: int, x: float, y: float, z: float) -> int:
        o = (1 if x >= self._cx[node] else 0) | ((1 if y >= self._cy[node] else 0) << 1) | (
            (1 if z >= self._cz[node] else 0) << 2
        )
        return self._first_child[node] + o

    def _split(self, node: int) -> None:
        h = self._half[node] * 0.5
        cx, cy, cz = self._cx[node], self._cy[node], self._cz[node]
        first = self.n_nodes
        for o in range(8):
            dx = h if (o & 1) else -h
            dy = h if (o & 2) else -h
            dz = h if (o & 4) else -h
            self._new_node(cx + dx, cy + dy, cz + dz, h)
        self._first_child[node] = first

    def _add_charge(self, node: int, entry: Entry) -> None:
        _, _, x, y, z, q = entry
        self._q[node] += q
        self._qx[node] += x * q
        self._qy[node] += y * q
        self._qz[node] += z * q
        self._abs_q[node] += abs(q)
        self._count[node] += 1
        if has_center_of_charge(self._q[node], self._abs_q[node]):
            inv = 1.0 / self._q[node]
            self._ccx[node] = self._qx[node] * inv
            self._ccy[node] = self._qy[node] * inv
            self._ccz[node] = self._qz[node] * inv
        else:
            self._ccx[node] = self._ccy[node] = self._ccz[node] = float("nan")

    def insert_particle(self, particle: "Particle", index: int) -> None:
        x, y, z = (float(c) for c in particle.location)
        if not self._contains(0, x, y, z):
            raise ValueError(
                f"particle {index} at ({x:.6g}, {y:.6g}, {z:.6g}) lies outside the tree bounds "
                f"(center=({self._cx[0]:.6g}, {self._cy[0]:.6g}, {self._cz[0]:.6g}), half={self._half[0]:.6g})"
            )

        pending: list[tuple[Entry, int, int]] = [((int(index), particle, x, y, z, float(particle.charge)), 0, 0)]
        while pending:
            entry, node, depth = pending.pop()
            while True:
                self._add_charge(node, entry)
                if self._first_child[node] == NO_CHILDREN:
                    held = self._entries[node]
                    if not held:
                        self._entries[node] = [entry]
                        break
                    if depth >= MAX_DEPTH:
                        held.append(entry)
                        break
                    self._entries[node] = None
                    self._split(node)
                    for old in held:
                        pending.append((old, self._child_for(node, old[2], old[3], old[4]), depth + 1))
                node = self._child_for(node, entry[2], entry[3], entry[4])
                depth += 1

    def compute_e_field_from_tree(self, particle: "Particle") -> np.ndarray:
        loc = particle.location
        xi, yi, zi = float(loc[0]), float(loc[1]), float(loc[2])
        theta = self.theta
        min_distance = self.min_distance

        ex = ey = ez = 0.0
        stack = [0]
        while stack:
            node = stack.pop()
            if self._count[node] == 0:
                continue

            first = self._first_child[node]
            if first == NO_CHILDREN:
                for _, src, x, y, z, q in self._entries[node] or ():
                    if src is particle:
                        continue
                    fx, fy, fz = coulomb_field(q, xi - x, yi - y, zi - z, min_distance)
                    ex += fx
                    ey += fy
                    ez += fz
                continue

            ccx = self._ccx[node]
            if not math.isnan(ccx) and not self._contains(node, xi, yi, zi):
                dx = xi - ccx
                dy = yi - self._ccy[node]
                dz = zi - self._ccz[node]
                d = ((dx * dx) + (dy * dy) + (dz * dz)) ** 0.5
                if accepts_node(self._half[node] * 2.0, d, theta):
                    fx, fy, fz = coulomb_field(self._q[node], dx, dy, dz, min_distance)
                    ex += fx
                    ey += fy
                    ez += fz
                    continue

            stack.extend(range(first + 7, first - 1, -1))

        return np.array([ex, ey, ez], dtype=np.float64)
