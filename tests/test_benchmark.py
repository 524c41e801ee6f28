"""Smoke tests for the integrator benchmark."""

import contextlib
import io
import unittest

from spacecharge_sim.utils.benchmark import generate_lattice, run_benchmark


class TestBenchmark(unittest.TestCase):
    """Tests for the serial versus parallel benchmark."""

    def test_lattice_is_centered(self) -> None:
        """The ion lattice is centered on the origin."""
        particles = generate_lattice(3, spacing=1e-4)
        self.assertEqual(len(particles), 27)
        center = sum(p.location for p in particles) / len(particles)
        for c in center:
            self.assertAlmostEqual(float(c), 0.0, places=15)

    def test_serial_and_parallel_agree(self) -> None:
        """Both integrators of the benchmark end in the same positions."""
        with contextlib.redirect_stdout(io.StringIO()) as out:
            results = run_benchmark(2, steps=3, dt=1e-8, theta=0.0, n_workers=2)
        self.assertIn("Summary", out.getvalue())
        self.assertLess(results["position_diff"], 1e-15)


if __name__ == "__main__":
    unittest.main()
