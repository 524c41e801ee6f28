#!/usr/bin/env python3
"""
Performance benchmark for the space charge integrators.

Runs the same cubic ion lattice through the serial and the parallel Verlet
integrator and compares:
- wall clock and CPU time of both runs
- summed position difference between the two final states

Usage:
    python -m spacecharge_sim.utils.benchmark [--lattice 10] [--steps 20]
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

import numpy as np

from spacecharge_sim.core.particle import Particle
from spacecharge_sim.integration.verlet import ParallelVerletIntegrator, VerletIntegrator
from spacecharge_sim.physics.fields import space_charge_acceleration


def generate_lattice(n_per_side: int, spacing: float = 1e-4, mass_amu: float = 100.0) -> list[Particle]:
    """Singly charged ions on a cubic lattice centered at the origin."""
    offset = 0.5 * (n_per_side - 1) * spacing
    particles: list[Particle] = []
    for i in range(n_per_side):
        for j in range(n_per_side):
            for k in range(n_per_side):
                loc = (i * spacing - offset, j * spacing - offset, k * spacing - offset)
                particles.append(Particle.from_amu(loc, (0.0, 0.0, 0.0), 1.0, mass_amu))
    return particles


def benchmark_integrator(integrator: VerletIntegrator, steps: int, dt: float) -> tuple[float, float]:
    """Return (wall seconds, CPU seconds) of one run."""
    wall0 = time.perf_counter()
    cpu0 = time.process_time()
    integrator.run(steps, dt)
    return time.perf_counter() - wall0, time.process_time() - cpu0


def run_benchmark(n_per_side: int, steps: int, dt: float, theta: float, n_workers: int) -> dict:
    """Run both integrators on identical lattices."""
    n = n_per_side ** 3
    print(f"\n{'='*60}")
    print(f"Benchmark: {n} ions, {steps} steps, dt={dt:g}, theta={theta}, workers={n_workers}")
    print(f"{'='*60}")

    accel = space_charge_acceleration()
    results = {}

    print("Serial Verlet...", end=" ", flush=True)
    serial_particles = generate_lattice(n_per_side)
    serial = VerletIntegrator(serial_particles, accel, theta=theta)
    wall, cpu = benchmark_integrator(serial, steps, dt)
    print(f"wall {wall:.3f} s, cpu {cpu:.3f} s")
    results["serial"] = wall

    print("Parallel Verlet...", end=" ", flush=True)
    parallel_particles = generate_lattice(n_per_side)
    with ParallelVerletIntegrator(parallel_particles, accel, theta=theta, n_workers=n_workers) as parallel:
        wall, cpu = benchmark_integrator(parallel, steps, dt)
    print(f"wall {wall:.3f} s, cpu {cpu:.3f} s")
    results["parallel"] = wall

    diff = sum(
        float(np.linalg.norm(a.location - b.location)) for a, b in zip(serial_particles, parallel_particles)
    )
    results["position_diff"] = diff

    print(f"\n{'='*60}")
    print("Summary:")
    print(f"  Serial:   {results['serial']:.3f} s")
    speedup = results["serial"] / results["parallel"] if results["parallel"] > 0 else 0.0
    print(f"  Parallel: {results['parallel']:.3f} s ({speedup:.2f}x)")
    print(f"  Summed position difference: {diff:.6g} m")
    return results


def main():
    parser = argparse.ArgumentParser(description="Benchmark serial and parallel space charge integration")
    parser.add_argument("--lattice", "-n", type=int, default=10, help="Ions per lattice side")
    parser.add_argument("--steps", "-s", type=int, default=20, help="Number of time steps")
    parser.add_argument("--dt", type=float, default=1e-8, help="Time step length (s)")
    parser.add_argument("--theta", type=float, default=0.5, help="Barnes-Hut opening angle")
    parser.add_argument("--workers", "-w", type=int, default=os.cpu_count() or 1, help="Worker threads")
    parser.add_argument("--sweep", action="store_true", help="Run sweep over lattice sizes")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log integrator progress")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, stream=sys.stderr)
    print("Space charge integration benchmark")
    print(f"Platform: {sys.platform}")
    print(f"NumPy: {np.__version__}")

    if args.sweep:
        for n in (4, 6, 8, 10, 12):
            run_benchmark(n, args.steps, args.dt, args.theta, args.workers)
    else:
        run_benchmark(args.lattice, args.steps, args.dt, args.theta, args.workers)


if __name__ == "__main__":
    main()
