"""Tests for the field kernels and the full-sum solver."""

import math
import unittest

import numpy as np

from spacecharge_sim.core.constants import ELEMENTARY_CHARGE, K_COULOMB
from spacecharge_sim.core.particle import Particle
from spacecharge_sim.physics.field_evaluation import MIN_DISTANCE, accepts_node, coulomb_field, direct_field
from spacecharge_sim.physics.forces import FieldSolver, FullSumSolver, enclosing_cube


class TestFieldKernels(unittest.TestCase):
    """Tests for the Coulomb kernel and the opening-angle test."""

    def test_coulomb_field_inverse_square(self) -> None:
        """The kernel falls off with the inverse square of the distance."""
        q = ELEMENTARY_CHARGE
        ex, ey, ez = coulomb_field(q, 0.0, 2e-3, 0.0, MIN_DISTANCE)
        self.assertAlmostEqual(ey / (K_COULOMB * q / 4e-6), 1.0, places=12)
        self.assertEqual(ex, 0.0)
        self.assertEqual(ez, 0.0)

    def test_coincident_points_contribute_nothing(self) -> None:
        """A charge exerts no field at its own location."""
        self.assertEqual(coulomb_field(ELEMENTARY_CHARGE, 0.0, 0.0, 0.0, MIN_DISTANCE), (0.0, 0.0, 0.0))

    def test_distance_floor(self) -> None:
        """Below the floor the kernel grows only linearly with the offset."""
        q = ELEMENTARY_CHARGE
        ex, _, _ = coulomb_field(q, 1e-12, 0.0, 0.0, 1e-9)
        self.assertAlmostEqual(ex / (K_COULOMB * q * 1e-12 / 1e-27), 1.0, places=9)
        self.assertTrue(math.isfinite(ex))

    def test_opening_angle(self) -> None:
        """Nodes are accepted only when small enough compared to their distance."""
        self.assertTrue(accepts_node(1.0, 10.0, 0.5))
        self.assertFalse(accepts_node(1.0, 2.0, 0.5))
        self.assertFalse(accepts_node(1.0, 1e6, 0.0))
        self.assertFalse(accepts_node(1.0, 0.0, 0.5))


class TestEnclosingCube(unittest.TestCase):
    """Tests for sizing the root cube."""

    def test_contains_all_particles(self) -> None:
        """Every particle lies strictly inside the cube."""
        particles = [
            Particle.from_amu((x, -2.0 * x, 0.5), (0, 0, 0), 1.0, 1.0) for x in (-1e-3, 0.0, 4e-3)
        ]
        center, half = enclosing_cube(particles)
        for p in particles:
            for axis in range(3):
                self.assertLess(abs(p.location[axis] - center[axis]), half)

    def test_empty_and_single(self) -> None:
        """Empty and single particle sets still yield a valid cube."""
        self.assertEqual(enclosing_cube([]), ((0.0, 0.0, 0.0), 1.0))
        center, half = enclosing_cube([Particle.from_amu((1.0, 2.0, 3.0), (0, 0, 0), 1.0, 1.0)])
        self.assertEqual(center, (1.0, 2.0, 3.0))
        self.assertGreater(half, 0.0)


class TestFullSumSolver(unittest.TestCase):
    """Tests for the direct summation solver."""

    def test_is_field_solver(self) -> None:
        """The full-sum solver implements the field solver interface."""
        self.assertIsInstance(FullSumSolver(), FieldSolver)
        with self.assertRaises(NotImplementedError):
            FieldSolver().compute_e_field_from_tree(Particle.from_amu((0, 0, 0), (0, 0, 0), 1.0, 1.0))

    def test_matches_direct_field(self) -> None:
        """The vectorized sum matches the pairwise reference."""
        rng = np.random.default_rng(2)
        particles = [
            Particle.from_amu(rng.uniform(-1e-3, 1e-3, size=3), (0, 0, 0), rng.choice([-1.0, 1.0]), 50.0)
            for _ in range(30)
        ]
        solver = FullSumSolver.for_particles(particles)
        for i, p in enumerate(particles):
            solver.insert_particle(p, i)

        self.assertEqual(solver.n_particles, 30)
        for idx, p in enumerate(particles):
            sources = [(q.location, q.charge) for j, q in enumerate(particles) if j != idx]
            np.testing.assert_allclose(
                solver.compute_e_field_from_tree(p), direct_field(p.location, sources), rtol=1e-10, atol=1e-20
            )

    def test_repacks_after_insert(self) -> None:
        """Particles inserted after a query take part in the next one."""
        a = Particle.from_amu((0.0, 0.0, 0.0), (0, 0, 0), 1.0, 1.0)
        b = Particle.from_amu((1e-3, 0.0, 0.0), (0, 0, 0), 1.0, 1.0)
        solver = FullSumSolver()
        solver.insert_particle(a, 0)
        np.testing.assert_array_equal(solver.compute_e_field_from_tree(a), np.zeros(3))

        solver.insert_particle(b, 1)
        self.assertLess(solver.compute_e_field_from_tree(a)[0], 0.0)

    def test_empty_solver(self) -> None:
        """An empty solver returns a zero field."""
        p = Particle.from_amu((0.0, 0.0, 0.0), (0, 0, 0), 1.0, 1.0)
        np.testing.assert_array_equal(FullSumSolver().compute_e_field_from_tree(p), np.zeros(3))


if __name__ == "__main__":
    unittest.main()
