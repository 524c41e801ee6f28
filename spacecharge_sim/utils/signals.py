"""
Route SIGINT / SIGTERM to the cooperative termination flag of an integrator.

Example:
    >>> with TerminationSignalHandler(integrator):
    ...     integrator.run(100000, 1e-9)
"""

from __future__ import annotations

import logging
import signal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from spacecharge_sim.integration.verlet import AbstractTimeIntegrator


logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class TerminationSignalHandler:
    """
    Signal handler requesting termination instead of aborting the step in flight.

    Handlers can only be installed from the main thread.
    """

    def __init__(self, integrator: "AbstractTimeIntegrator", signals: tuple[int, ...] = DEFAULT_SIGNALS):
        self.integrator = integrator
        self.signals = tuple(signals)
        self.received: list[int] = []
        self._previous: dict[int, Any] = {}

    def __call__(self, signum: int, frame: Any) -> None:
        self.received.append(signum)
        logger.info("received signal %d, requesting termination", signum)
        self.integrator.set_termination_state()

    def install(self) -> None:
        for sig in self.signals:
            self._previous[sig] = signal.signal(sig, self)

    def restore(self) -> None:
        for sig, handler in self._previous.items():
            # None: previous handler was not installed from Python
            signal.signal(sig, signal.SIG_DFL if handler is None else handler)
        self._previous.clear()

    def __enter__(self) -> "TerminationSignalHandler":
        self.install()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()
