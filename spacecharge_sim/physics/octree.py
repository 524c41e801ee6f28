"""
Barnes-Hut octree for space charge field calculation.

This module provides an octree data structure for approximating the
electrostatic field of N charged particles in O(N log N) time instead of the
naive O(N²) direct summation.

The algorithm works by:
1. Building a tree that recursively subdivides 3D space into octants until
   every leaf holds at most one particle
2. Accumulating the total charge and center of charge of each node while
   particles are inserted
3. For each query, traversing the tree and using the monopole approximation
   for distant nodes (see physics.field_evaluation)

Constants:
    MAX_DEPTH: Maximum tree depth; coincident particles share a leaf there

Example:
    >>> from spacecharge_sim.physics.octree import SpatialChargeTree
    >>> tree = SpatialChargeTree.for_particles(particles, theta=0.5)
    >>> for i, p in enumerate(particles):
    ...     tree.insert_particle(p, i)
    >>> e_field = tree.compute_e_field_from_tree(particles[0])
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Sequence

import numpy as np

from spacecharge_sim.physics.field_evaluation import (
    MIN_DISTANCE,
    accepts_node,
    coulomb_field,
    has_center_of_charge,
)
from spacecharge_sim.physics.forces import FieldSolver, enclosing_cube

if TYPE_CHECKING:
    from spacecharge_sim.core.particle import Particle


MAX_DEPTH = 32

# (global index, particle, x, y, z, charge)
Entry = tuple[int, "Particle", float, float, float, float]


@dataclass(slots=True)
class OctreeNode:
    """
    A node in the Barnes-Hut octree.

    Each node represents a cubic region of space and is either:
    - A leaf node holding zero or one particle (several only at MAX_DEPTH)
    - An internal node with 8 children (one per octant)

    Attributes:
        cx, cy, cz: Center coordinates of this node's region
        half: Half-size of the cubic region (full size = 2 * half)
        child: List of 8 child nodes if internal, None if leaf
        entries: Particles held by this leaf, None if internal
        q: Total charge in this node (sum of all particle charges)
        qx, qy, qz: Charge-weighted position components (for center of charge)
        abs_q: Sum of absolute charges (detects neutral nodes)
        count: Number of particles in the subtree

    The center of charge is computed as: (qx/q, qy/q, qz/q)
    """
    cx: float
    cy: float
    cz: float
    half: float
    child: list["OctreeNode"] | None = None
    entries: list[Entry] | None = None

    q: float = 0.0
    qx: float = 0.0
    qy: float = 0.0
    qz: float = 0.0
    abs_q: float = 0.0
    count: int = 0

    def is_leaf(self) -> bool:
        """Return True if this is a leaf node (no children)."""
        return self.child is None

    def contains(self, x: float, y: float, z: float) -> bool:
        h = self.half
        return abs(x - self.cx) <= h and abs(y - self.cy) <= h and abs(z - self.cz) <= h

    def _octant(self, x: float, y: float, z: float) -> int:
        ox = 1 if x >= self.cx else 0
        oy = 1 if y >= self.cy else 0
        oz = 1 if z >= self.cz else 0
        return ox | (oy << 1) | (oz << 2)

    def _ensure_children(self) -> None:
        if self.child is not None:
            return
        h = self.half * 0.5
        children: list[OctreeNode] = []
        for o in range(8):
            dx = h if (o & 1) else -h
            dy = h if (o & 2) else -h
            dz = h if (o & 4) else -h
            children.append(OctreeNode(self.cx + dx, self.cy + dy, self.cz + dz, h))
        self.child = children

    def _add_charge(self, entry: Entry) -> None:
        _, _, x, y, z, q = entry
        self.q += q
        self.qx += x * q
        self.qy += y * q
        self.qz += z * q
        self.abs_q += abs(q)
        self.count += 1

    def insert(self, entry: Entry, *, depth: int = 0) -> None:
        self._add_charge(entry)
        x, y, z = entry[2], entry[3], entry[4]

        if self.child is None:
            if not self.entries:
                self.entries = [entry]
                return

            if depth >= MAX_DEPTH:
                self.entries.append(entry)
                return

            old = self.entries
            self.entries = None
            self._ensure_children()
            assert self.child is not None
            for e in old:
                o = self._octant(e[2], e[3], e[4])
                self.child[o].insert(e, depth=depth + 1)

        o = self._octant(x, y, z)
        assert self.child is not None
        self.child[o].insert(entry, depth=depth + 1)

    def center_of_charge(self) -> tuple[float, float, float] | None:
        if not has_center_of_charge(self.q, self.abs_q):
            return None
        inv = 1.0 / float(self.q)
        return self.qx * inv, self.qy * inv, self.qz * inv

    def field_on(
        self,
        *,
        particle: "Particle",
        xi: float,
        yi: float,
        zi: float,
        theta: float,
        min_distance: float,
    ) -> tuple[float, float, float]:
        if self.count == 0:
            return 0.0, 0.0, 0.0

        if self.child is None:
            ex = ey = ez = 0.0
            assert self.entries is not None
            for _, src, x, y, z, q in self.entries:
                if src is particle:
                    continue
                fx, fy, fz = coulomb_field(q, xi - x, yi - y, zi - z, min_distance)
                ex += fx
                ey += fy
                ez += fz
            return ex, ey, ez

        center = self.center_of_charge()
        if center is not None and not self.contains(xi, yi, zi):
            dx = xi - center[0]
            dy = yi - center[1]
            dz = zi - center[2]
            d = ((dx * dx) + (dy * dy) + (dz * dz)) ** 0.5
            if accepts_node(self.half * 2.0, d, theta):
                # Monopole approximation: the subtree acts as one charge q at its center of charge
                return coulomb_field(self.q, dx, dy, dz, min_distance)

        ex = ey = ez = 0.0
        assert self.child is not None
        for ch in self.child:
            fx, fy, fz = ch.field_on(
                particle=particle,
                xi=xi,
                yi=yi,
                zi=zi,
                theta=theta,
                min_distance=min_distance,
            )
            ex += fx
            ey += fy
            ez += fz
        return ex, ey, ez


class SpatialChargeTree(FieldSolver):
    """
    Barnes-Hut tree-based field solver.

    Approximates distant particle groups as single charges, achieving
    O(N log N) complexity. The tree is filled once per time step and
    discarded afterwards.

    Attributes:
        theta: Opening angle parameter (0 = exact, higher = faster but less accurate)
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
        """
        Initialize an empty tree covering the cube ``center ± half``.

        Args:
            theta: Opening angle parameter. Typical values:
                   0.0 = exact (same as direct summation)
                   0.3 = accurate
                   0.5 = balanced
                   1.0 = fast but approximate
        """
        if not half > 0.0:
            raise ValueError(f"tree half size must be positive, got {half}")
        if theta < 0.0:
            raise ValueError(f"opening angle theta must not be negative, got {theta}")
        self.theta = float(theta)
        self.min_distance = float(min_distance)
        self.root = OctreeNode(float(center[0]), float(center[1]), float(center[2]), float(half))

    @classmethod
    def for_particles(
        cls,
        particles: Sequence["Particle"],
        *,
        theta: float = 0.5,
        min_distance: float = MIN_DISTANCE,
    ) -> "SpatialChargeTree":
        """Create an empty tree whose cube encloses all given particles."""
        center, half = enclosing_cube(particles)
        return cls(center, half, theta=theta, min_distance=min_distance)

    @property
    def n_particles(self) -> int:
        return self.root.count

    @property
    def total_charge(self) -> float:
        return self.root.q

    def insert_particle(self, particle: "Particle", index: int) -> None:
        x, y, z = (float(c) for c in particle.location)
        if not self.root.contains(x, y, z):
            raise ValueError(
                f"particle {index} at ({x:.6g}, {y:.6g}, {z:.6g}) lies outside the tree bounds "
                f"(center=({self.root.cx:.6g}, {self.root.cy:.6g}, {self.root.cz:.6g}), half={self.root.half:.6g})"
            )
        self.root.insert((int(index), particle, x, y, z, float(particle.charge)))

    def compute_e_field_from_tree(self, particle: "Particle") -> np.ndarray:
        loc = particle.location
        ex, ey, ez = self.root.field_on(
            particle=particle,
            xi=float(loc[0]),
            yi=float(loc[1]),
            zi=float(loc[2]),
            theta=self.theta,
            min_distance=self.min_distance,
        )
        return np.array([ex, ey, ez], dtype=np.float64)

    def iter_nodes(self) -> Iterator[OctreeNode]:
        """Yield all nodes depth-first, root first."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            if node.child is not None:
                stack.extend(node.child)
