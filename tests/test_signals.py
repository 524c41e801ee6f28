"""Tests for routing termination signals to an integrator."""

import signal
import unittest

import numpy as np

from spacecharge_sim.core.particle import Particle
from spacecharge_sim.integration.verlet import RunState, VerletIntegrator
from spacecharge_sim.utils.signals import TerminationSignalHandler


class TestTerminationSignalHandler(unittest.TestCase):
    """Tests for TerminationSignalHandler."""

    def test_signal_requests_termination(self) -> None:
        """SIGINT during a run stops it after the step in flight."""

        def post_timestep(integrator, particles, time, timestep, last_step):
            if timestep == 5 and not last_step:
                signal.raise_signal(signal.SIGINT)

        p = Particle.from_amu((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), 1.0, 100.0)
        integrator = VerletIntegrator([p], lambda *args: np.zeros(3), post_timestep_function=post_timestep)
        with TerminationSignalHandler(integrator) as handler:
            integrator.run(50, 1e-9)

        self.assertEqual(handler.received, [signal.SIGINT])
        self.assertEqual(integrator.time_step(), 5)
        self.assertIs(integrator.run_state, RunState.STOPPED)

    def test_restore_previous_handlers(self) -> None:
        """Leaving the handler reinstates the handlers that were active before."""
        previous = signal.getsignal(signal.SIGTERM)
        integrator = VerletIntegrator([], lambda *args: np.zeros(3))
        handler = TerminationSignalHandler(integrator, signals=(signal.SIGTERM,))
        handler.install()
        self.assertIs(signal.getsignal(signal.SIGTERM), handler)
        handler.restore()
        self.assertEqual(signal.getsignal(signal.SIGTERM), previous)

    def test_signal_before_run_stops_next_run(self) -> None:
        """A signal arriving between runs is kept for the next run."""
        p = Particle.from_amu((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), 1.0, 100.0)
        integrator = VerletIntegrator([p], lambda *args: np.zeros(3))
        handler = TerminationSignalHandler(integrator)
        handler(signal.SIGTERM, None)
        self.assertIs(integrator.run_state, RunState.IDLE)

        integrator.run(50, 1e-9)
        self.assertEqual(integrator.time_step(), 0)
        self.assertIs(integrator.run_state, RunState.STOPPED)


if __name__ == "__main__":
    unittest.main()
