"""Tests for the collision model contract and the hard sphere model."""

import unittest

import numpy as np

from spacecharge_sim.collision.base import AbstractCollisionModel
from spacecharge_sim.collision.hard_sphere import (
    COLLISION_DIAMETER_KEY,
    CollisionProbabilityError,
    HardSphereModel,
)
from spacecharge_sim.core.particle import Particle
from spacecharge_sim.core.random_pool import RandomGeneratorPool, TestRandomGeneratorPool


def ion(velocity=(500.0, 0.0, 0.0)) -> Particle:
    return Particle.from_amu((0.0, 0.0, 0.0), velocity, 1.0, 100.0)


class TestAbstractCollisionModel(unittest.TestCase):
    """Tests for the no-op collision model base class."""

    def test_hooks_are_no_ops(self) -> None:
        """The base class hooks leave particle and vectors untouched."""
        model = AbstractCollisionModel()
        p = ion()
        accel = np.array([1.0, 2.0, 3.0])
        pos = np.array([4.0, 5.0, 6.0])

        model.initialize_model_parameters(p)
        model.update_model_timestep_parameters(3, 1e-6)
        model.update_model_particle_parameters(p)
        model.modify_acceleration(accel, p, 1e-9)
        model.modify_velocity(p, 1e-9)
        model.modify_position(pos, p, 1e-9)

        np.testing.assert_array_equal(accel, [1.0, 2.0, 3.0])
        np.testing.assert_array_equal(pos, [4.0, 5.0, 6.0])
        np.testing.assert_array_equal(p.velocity, [500.0, 0.0, 0.0])
        self.assertTrue(p.active)


class TestHardSphereModel(unittest.TestCase):
    """Tests for the hard sphere background gas model."""

    def make_model(self, pressure: float, pool=None) -> HardSphereModel:
        return HardSphereModel(pressure, 298.0, 4.0, 2.1e-10, pool or TestRandomGeneratorPool())

    def test_initialize_sets_default_diameter(self) -> None:
        """Initialization gives particles the default collision diameter."""
        model = self.make_model(1.0)
        p = ion()
        model.initialize_model_parameters(p)
        self.assertEqual(p.float_attributes[COLLISION_DIAMETER_KEY], 1e-9)

        q = ion()
        q.float_attributes[COLLISION_DIAMETER_KEY] = 5e-10
        model.initialize_model_parameters(q)
        self.assertEqual(q.float_attributes[COLLISION_DIAMETER_KEY], 5e-10)

    def test_zero_pressure_never_collides(self) -> None:
        """Without background gas the velocity is never changed."""
        model = self.make_model(0.0)
        p = ion()
        for _ in range(20):
            model.modify_velocity(p, 1e-6)
        np.testing.assert_array_equal(p.velocity, [500.0, 0.0, 0.0])

    def test_probability_above_one_raises(self) -> None:
        """A time step too long for the gas density is reported."""
        model = self.make_model(1e5)
        p = ion()
        self.assertGreater(model.collision_probability(p, 1e-6), 1.0)
        with self.assertRaises(CollisionProbabilityError):
            model.modify_velocity(p, 1e-6)
        self.assertTrue(issubclass(CollisionProbabilityError, ValueError))

    def test_probability_scales_with_pressure_and_dt(self) -> None:
        """Collision probability is linear in pressure and time step."""
        model_a = self.make_model(1.0)
        model_b = self.make_model(2.0)
        p = ion()
        pa = model_a.collision_probability(p, 1e-9)
        self.assertAlmostEqual(model_b.collision_probability(p, 1e-9) / pa, 2.0, places=12)
        self.assertAlmostEqual(model_a.collision_probability(p, 3e-9) / pa, 3.0, places=12)

    def test_collision_conserves_center_of_mass_frame_speed(self) -> None:
        """With a probability above the first test sample a collision happens."""
        model = self.make_model(1.0)
        p = ion()
        dt = 0.8 / model.collision_probability(p, 1.0)
        v_before = p.velocity.copy()

        model.modify_velocity(p, dt)

        self.assertFalse(np.array_equal(p.velocity, v_before))
        self.assertTrue(np.all(np.isfinite(p.velocity)))
        # heavy ion on light gas: the speed change is bounded by the relative speed
        self.assertLess(np.linalg.norm(p.velocity - v_before), 2.0 * (500.0 + 5.0 * model.gas_sigma_v))

    def test_low_probability_skips_collision(self) -> None:
        """A uniform sample above the probability leaves the velocity unchanged."""
        model = self.make_model(1.0)
        p = ion()
        dt = 0.3 / model.collision_probability(p, 1.0)
        model.modify_velocity(p, dt)
        np.testing.assert_array_equal(p.velocity, [500.0, 0.0, 0.0])

    def test_many_collisions_thermalize_direction(self) -> None:
        """Repeated collisions randomize the direction of motion."""
        model = self.make_model(1.0, RandomGeneratorPool(1, seed=4))
        p = ion()
        dt = 0.9 / model.collision_probability(p, 1.0)
        for _ in range(200):
            model.modify_velocity(p, min(dt, 0.9 / model.collision_probability(p, 1.0)))
        self.assertTrue(np.all(np.isfinite(p.velocity)))
        self.assertNotAlmostEqual(float(p.velocity[1]), 0.0)

    def test_invalid_parameters(self) -> None:
        """Negative pressure or non-positive temperature is rejected."""
        with self.assertRaises(ValueError):
            HardSphereModel(-1.0, 298.0, 4.0, 2.1e-10, TestRandomGeneratorPool())
        with self.assertRaises(ValueError):
            HardSphereModel(1.0, 0.0, 4.0, 2.1e-10, TestRandomGeneratorPool())


if __name__ == "__main__":
    unittest.main()
