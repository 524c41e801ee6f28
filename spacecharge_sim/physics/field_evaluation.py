"""
Field evaluation kernels shared by the field solvers.

The tree solvers walk their node hierarchy depth-first and, for every node,
decide between two options:

1. Accept the node: its whole subtree is replaced by a single point charge
   located at the node's center of charge.
2. Open the node: recurse into its children (or, at a leaf, sum the held
   particles exactly).

A node is accepted when ``size / distance < theta``, where ``size`` is the
edge length of the node cube and ``distance`` is the distance from the query
point to the node's center of charge. With ``theta = 0`` no node is ever
accepted and the traversal reduces to the exact pairwise sum.

Constants:
    MIN_DISTANCE: Default distance floor (m) for the Coulomb kernel
    NEUTRAL_CHARGE_FRACTION: A node whose net charge is smaller than this
        fraction of its absolute charge has no usable center of charge
"""

from __future__ import annotations

import math
from typing import Iterable

import numpy as np

from spacecharge_sim.core.constants import K_COULOMB


MIN_DISTANCE = 1e-9
NEUTRAL_CHARGE_FRACTION = 1e-12


def coulomb_field(
    q: float,
    dx: float,
    dy: float,
    dz: float,
    min_distance: float,
) -> tuple[float, float, float]:
    """
    Electric field of a point charge ``q`` at offset ``(dx, dy, dz)``.

    The offset points from the source to the query point. The distance is
    floored at ``min_distance``; coincident points have a zero offset and
    therefore contribute nothing.
    """
    r2 = (dx * dx) + (dy * dy) + (dz * dz)
    floor2 = min_distance * min_distance
    if r2 < floor2:
        r2 = floor2
    inv_r = 1.0 / math.sqrt(r2)
    f = K_COULOMB * q * inv_r * inv_r * inv_r
    return dx * f, dy * f, dz * f


def accepts_node(size: float, distance: float, theta: float) -> bool:
    """Opening-angle test: True if a node may be used as a single charge."""
    return distance > 0.0 and (size / distance) < theta


def has_center_of_charge(q: float, abs_q: float) -> bool:
    return abs_q > 0.0 and abs(q) > NEUTRAL_CHARGE_FRACTION * abs_q


def direct_field(
    location: np.ndarray,
    sources: Iterable[tuple[np.ndarray, float]],
    min_distance: float = MIN_DISTANCE,
) -> np.ndarray:
    """
    Exact pairwise field at ``location`` from ``(source_location, charge)`` pairs.

    This is the reference used to check the tree approximation.
    """
    xi, yi, zi = float(location[0]), float(location[1]), float(location[2])
    ex = ey = ez = 0.0
    for src, q in sources:
        fx, fy, fz = coulomb_field(
            q, xi - float(src[0]), yi - float(src[1]), zi - float(src[2]), min_distance
        )
        ex += fx
        ey += fy
        ez += fz
    return np.array([ex, ey, ez], dtype=np.float64)
