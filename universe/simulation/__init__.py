"""Simulation APIs.

This package contains:
- **Actor registry** (`ActorRegistry`, `Actor`) holding the force sources
- **Particle field** (`ParticleFieldStore`) with its two generations
- **Step executor** (`StepExecutor`) advancing the field one tick at a time
- **Simulation context** (`Simulation`, `run_simulation`) wiring it all together
"""

from __future__ import annotations

__all__ = [
    "Actor",
    "ActorKind",
    "ActorRegistry",
    "CapacityExceeded",
    "ParticleFieldStore",
    "ParticleState",
    "Simulation",
    "SimulationConfig",
    "StepExecutor",
    "run_simulation",
    "seed_particles",
]

_LAZY = {
    "Actor": ".actors",
    "ActorKind": ".actors",
    "ActorRegistry": ".actors",
    "CapacityExceeded": ".actors",
    "ParticleFieldStore": ".field",
    "ParticleState": ".field",
    "Simulation": ".simulator",
    "SimulationConfig": ".config",
    "StepExecutor": ".executor",
    "run_simulation": ".simulator",
    "seed_particles": ".seeding",
}


def __getattr__(name: str):  # pragma: no cover
    # Lazy so that kernels can import `actors` without pulling in the simulator.
    if name in _LAZY:
        import importlib

        module = importlib.import_module(_LAZY[name], __name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
