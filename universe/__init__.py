"""Universe simulation.

A double-buffered particle field advanced by a handful of force sources
("actors"), plus an asynchronous sampler that turns live particle
snapshots into smoothed camera motion.
"""

from __future__ import annotations

__all__ = [
    "SimulationConfig",
    "Simulation",
    "run_simulation",
]


def __getattr__(name: str):  # pragma: no cover
    # Keep the top-level import cheap; torch is pulled in on first use.
    if name == "SimulationConfig":
        from .simulation.config import SimulationConfig as _SimulationConfig

        return _SimulationConfig
    if name == "Simulation":
        from .simulation.simulator import Simulation as _Simulation

        return _Simulation
    if name == "run_simulation":
        from .simulation.simulator import run_simulation as _run_simulation

        return _run_simulation
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
