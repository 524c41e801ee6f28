"""
Pools of random sources, one per worker thread.

Stochastic collision models draw random numbers inside the parallel phase of
the integrators. Every worker therefore gets its own generator, selected by
the worker index bound to the thread, so no generator is ever shared between
threads. A pool must hold at least as many sources as there are workers.

Available pools:
- RandomGeneratorPool: NumPy generators spawned from one seed sequence
- TestRandomGeneratorPool: short predefined sample sequences for tests

Example:
    >>> pool = RandomGeneratorPool(4, seed=1)
    >>> pool.thread_source().uniform()
"""

from __future__ import annotations

import itertools
import threading

import numpy as np


_worker = threading.local()


def bind_worker_index(counter: "itertools.count[int]") -> None:
    """
    Bind the next value of ``counter`` as worker index of the calling thread.

    Intended as ``initializer`` of a ``ThreadPoolExecutor``.
    """
    _worker.index = next(counter)


def current_worker_index() -> int:
    """Worker index of the calling thread (0 for threads outside a worker pool)."""
    return getattr(_worker, "index", 0)


class RandomSource:
    """Source of uniform [0, 1) and standard normal random values."""

    def __init__(self, generator: np.random.Generator):
        self.generator = generator

    def uniform(self) -> float:
        return float(self.generator.random())

    def normal(self) -> float:
        return float(self.generator.standard_normal())


class TestRandomSource(RandomSource):
    """
    Deterministic source cycling through fixed sample sequences.

    The samples are not random at all, which makes stochastic code paths
    reproducible in tests.
    """

    __test__ = False

    UNIFORM_SAMPLES = (0.5, 0.1, 0.9, 0.3, 0.7, 0.05, 0.95, 0.25, 0.75, 0.6)
    NORMAL_SAMPLES = (0.0, 1.0, -1.0, 0.5, -0.5, 1.5, -1.5, 0.25, -0.25, 2.0)

    def __init__(self) -> None:
        self._uniform_index = 0
        self._normal_index = 0

    def uniform(self) -> float:
        value = self.UNIFORM_SAMPLES[self._uniform_index % len(self.UNIFORM_SAMPLES)]
        self._uniform_index += 1
        return value

    def normal(self) -> float:
        value = self.NORMAL_SAMPLES[self._normal_index % len(self.NORMAL_SAMPLES)]
        self._normal_index += 1
        return value


class AbstractRandomGeneratorPool:
    """A fixed number of random sources addressed by worker index."""

    def __init__(self, sources: list[RandomSource]):
        if not sources:
            raise ValueError("a random generator pool needs at least one source")
        self._sources = sources

    def __len__(self) -> int:
        return len(self._sources)

    def source(self, index: int) -> RandomSource:
        if not 0 <= index < len(self._sources):
            raise ValueError(
                f"worker index {index} has no random source in a pool of {len(self._sources)}"
            )
        return self._sources[index]

    def thread_source(self) -> RandomSource:
        """
        Random source of the calling worker thread.

        Raises ValueError when the pool has fewer sources than there are
        workers, instead of letting two threads share one generator.
        """
        return self.source(current_worker_index())

    def set_seed(self, seed: int | None) -> None:
        raise NotImplementedError


class RandomGeneratorPool(AbstractRandomGeneratorPool):
    """
    Pool of independent NumPy generators.

    The generators are spawned from a single ``SeedSequence``, so a pool of a
    given size and seed always produces the same per-worker streams.
    """

    def __init__(self, n_elements: int, seed: int | None = None):
        self._n_elements = max(1, int(n_elements))
        super().__init__(self._spawn(seed))

    def _spawn(self, seed: int | None) -> list[RandomSource]:
        children = np.random.SeedSequence(seed).spawn(self._n_elements)
        return [RandomSource(np.random.default_rng(child)) for child in children]

    def set_seed(self, seed: int | None) -> None:
        self._sources = self._spawn(seed)


class TestRandomGeneratorPool(AbstractRandomGeneratorPool):
    """Pool of deterministic test sources, one per worker."""

    __test__ = False

    def __init__(self, n_elements: int = 1):
        self._n_elements = max(1, int(n_elements))
        super().__init__([TestRandomSource() for _ in range(self._n_elements)])

    def set_seed(self, seed: int | None) -> None:
        # Restart all sequences; the seed value itself is irrelevant.
        self._sources = [TestRandomSource() for _ in range(self._n_elements)]
