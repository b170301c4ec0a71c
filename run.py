#!/usr/bin/env python3
"""Universe Simulation Entrypoint

Headless runner for the actor-driven particle field:
- One attractor (and optional repeller / linear force) acting on the cloud
- Asynchronous sampling feeding the camera feedback controller
- Optional torch profiling of the step

Usage:
    python run.py                          # Run with defaults
    python run.py --particles 65536        # Bigger cloud
    python run.py --exponent 4             # Quartic falloff
    python run.py --repeller 500 --profile
"""

from __future__ import annotations

import argparse

from universe.console import console
from universe.kernels.runtime import resolve_device
from universe.simulation.actors import Actor, ActorKind
from universe.simulation.config import CameraMetric, InitShape, SeedConfig, SimulationConfig
from universe.simulation.simulator import run_simulation


def main():
    parser = argparse.ArgumentParser(
        description="Universe Simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument("--steps", type=int, default=500, help="Number of simulation ticks")
    parser.add_argument("--particles", type=int, default=4096, help="Number of particles (power of two recommended)")
    parser.add_argument("--capacity", type=int, default=4, help="Actor capacity K")
    parser.add_argument("--exponent", type=int, default=2, choices=[1, 2, 4, 6, 8], help="Distance exponent")
    parser.add_argument("--G", type=float, default=1.0, help="Gravitational constant")
    parser.add_argument("--softening", type=float, default=0.01, help="Softening radius")
    parser.add_argument("--decay", type=float, default=1e-5, help="Velocity decay fraction per tick")
    parser.add_argument("--dt", type=float, default=1.0, help="Simulation time step")
    parser.add_argument("--sample-ratio", type=float, default=0.02, help="Fraction of particles sampled per readback")
    parser.add_argument("--metric", type=str, default="area", choices=[m.value for m in CameraMetric],
                        help="Camera metric fed to the zoom policy")
    parser.add_argument("--shape", type=str, default="accretion_disc", choices=[s.value for s in InitShape],
                        help="Initial particle distribution")
    parser.add_argument("--clusters", type=int, default=1, help="Number of particle clusters")
    parser.add_argument("--attractor", type=float, default=None, help="Central attractor mass (default: total particle mass)")
    parser.add_argument("--repeller", type=float, default=None, help="Add a repeller of this mass at +x")
    parser.add_argument("--wind", type=float, default=None, help="Add a linear force of this magnitude along +z")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--device", type=str, default=None, help="Device (cuda, mps, cpu)")
    parser.add_argument("--profile", action="store_true", help="Enable torch profiling")
    parser.add_argument("--log-every", type=int, default=50, help="Progress interval in ticks")

    args = parser.parse_args()

    seeding = SeedConfig(shape=InitShape(args.shape), cluster_count=args.clusters)
    try:
        config = SimulationConfig(
            num_particles=args.particles,
            seeding=seeding,
            actor_capacity=args.capacity,
            gravitational_constant=args.G,
            distance_function=args.exponent,
            softening=args.softening,
            velocity_decay=args.decay,
            dt=args.dt,
            sample_ratio=args.sample_ratio,
            metric=CameraMetric(args.metric),
            seed=args.seed,
            device=str(resolve_device(args.device)),
            num_steps=args.steps,
            log_every=args.log_every,
            profile_enabled=args.profile,
        )
    except ValueError as err:
        console.error("Invalid configuration", detail=str(err))
        raise SystemExit(2)

    attractor_mass = seeding.total_mass if args.attractor is None else args.attractor
    actors = [Actor(ActorKind.ATTRACTOR, position=seeding.origin, mass=attractor_mass)]
    if args.repeller is not None:
        actors.append(Actor(ActorKind.REPELLER, position=(seeding.outer_radius, 0.0, 0.0), mass=args.repeller))
    if args.wind is not None:
        actors.append(Actor(ActorKind.LINEAR_FORCE, facing=(0.0, 0.0, 1.0), force=args.wind))

    result = run_simulation(config, actors)
    c = result["centroid"]
    print("\nFinal results:")
    print(f"  Generations:  {result['generation']}")
    print(f"  Steps/s:      {result['steps_per_second']:.1f}")
    print(f"  Centroid:     ({c[0]:.3f}, {c[1]:.3f}, {c[2]:.3f})")
    print(f"  Mean speed:   {result['mean_speed']:.4f}")
    print(f"  Observations: {result['observations']} ({result['readback_failures']} failed)")


if __name__ == "__main__":
    main()
