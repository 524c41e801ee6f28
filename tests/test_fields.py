"""Tests for static fields and the space charge acceleration function."""

import unittest

import numpy as np

from spacecharge_sim.core.particle import Particle
from spacecharge_sim.physics.fields import OUT_OF_DOMAIN, OutOfDomain, UniformField, space_charge_acceleration
from spacecharge_sim.physics.forces import FullSumSolver


def ion(x: float, charge: float = 1.0) -> Particle:
    return Particle.from_amu((x, 0.0, 0.0), (0.0, 0.0, 0.0), charge, 100.0)


class TestUniformField(unittest.TestCase):
    """Tests for the uniform static field and its domain."""

    def test_inside_and_outside(self) -> None:
        """The field is returned inside its box and OUT_OF_DOMAIN outside."""
        field = UniformField((0.0, 5.0, 0.0), center=(1.0, 0.0, 0.0), half_extent=0.5)
        np.testing.assert_array_equal(field.field_at(np.array([1.2, 0.1, -0.4])), [0.0, 5.0, 0.0])
        self.assertIs(field.field_at(np.array([0.2, 0.0, 0.0])), OUT_OF_DOMAIN)
        self.assertIsInstance(OUT_OF_DOMAIN, OutOfDomain)
        self.assertFalse(OUT_OF_DOMAIN)

    def test_unbounded(self) -> None:
        """Without an extent the field is defined everywhere."""
        field = UniformField((1.0, 0.0, 0.0))
        np.testing.assert_array_equal(field.field_at(np.array([1e9, 0.0, 0.0])), [1.0, 0.0, 0.0])

    def test_invalid_extent(self) -> None:
        """A non-positive half extent is rejected."""
        with self.assertRaises(ValueError):
            UniformField((1.0, 0.0, 0.0), half_extent=(1.0, 0.0, 1.0))


class TestSpaceChargeAcceleration(unittest.TestCase):
    """Tests for the combined static and space charge acceleration."""

    def _solver(self, particles):
        solver = FullSumSolver()
        for i, p in enumerate(particles):
            solver.insert_particle(p, i)
        return solver

    def test_combines_static_and_space_charge(self) -> None:
        """Static and space charge fields add up before division by mass."""
        a, b = ion(0.0), ion(1e-3)
        solver = self._solver([a, b])
        static = UniformField((2.0, 0.0, 0.0))
        q_over_m = a.charge / a.mass

        accel = space_charge_acceleration(static, space_charge_factor=0.5)(a, 0, solver, 0.0, 0)
        expected = (np.array([2.0, 0.0, 0.0]) + 0.5 * solver.compute_e_field_from_tree(a)) * q_over_m
        np.testing.assert_allclose(accel, expected, rtol=1e-12)

    def test_factor_zero_ignores_space_charge(self) -> None:
        """A space charge factor of zero leaves only the static field."""
        a, b = ion(0.0), ion(1e-6)
        solver = self._solver([a, b])
        accel = space_charge_acceleration(None, space_charge_factor=0.0)(a, 0, solver, 0.0, 0)
        np.testing.assert_array_equal(accel, np.zeros(3))

    def test_out_of_domain_is_soft_failure(self) -> None:
        """Leaving the field domain deactivates the particle instead of raising."""
        p = ion(1.0)
        static = UniformField((2.0, 0.0, 0.0), half_extent=0.5)
        accel = space_charge_acceleration(static)(p, 0, self._solver([p]), 0.0, 0)

        np.testing.assert_array_equal(accel, np.zeros(3))
        self.assertFalse(p.active)


if __name__ == "__main__":
    unittest.main()
