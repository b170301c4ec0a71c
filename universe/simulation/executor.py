from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Optional

import torch

from universe.kernels.force_law import accumulate_forces, integrate

from .actors import ActorRegistry, ActorSnapshot
from .config import SimulationConfig
from .field import ParticleFieldStore


@dataclass
class StepStats:
    """Statistics from a single tick."""
    generation: int
    actor_count: int
    actor_version: int
    dt: float


class StepExecutor:
    """Advances the particle field by one generation per call to `step()`.

    The executor subscribes to the registry, but the callback only raises a
    flag. The actor table is refreshed at the start of a tick, never during
    one, so a tick always sees exactly one registry state.
    """

    def __init__(self, config: SimulationConfig, registry: ActorRegistry, store: ParticleFieldStore):
        self.cfg = config
        self.registry = registry
        self.store = store

        self._dirty = threading.Event()
        self._dirty.set()
        self._unsubscribe: Optional[Callable[[], None]] = registry.subscribe(self._on_actors_changed)

        self._snapshot: Optional[ActorSnapshot] = None
        self._actor_table: Optional[torch.Tensor] = None
        self._closed = False
        self.last_stats: Optional[StepStats] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def snapshot(self) -> Optional[ActorSnapshot]:
        return self._snapshot

    def _on_actors_changed(self, version: int) -> None:
        self._dirty.set()

    def refresh_actors(self) -> ActorSnapshot:
        """Retake the actor snapshot until no change lands while taking it."""
        while True:
            self._dirty.clear()
            snapshot = self.registry.snapshot()
            if not self._dirty.is_set():
                break
        self._snapshot = snapshot
        self._actor_table = snapshot.as_tensor(device=self.store.device, dtype=self.store.dtype)
        return snapshot

    @torch.no_grad()
    def step(self, dt: Optional[float] = None) -> Optional[StepStats]:
        """Run one tick. Returns None once the executor has been closed."""
        if self._closed:
            return None
        dt = float(self.cfg.dt if dt is None else dt)

        if self._dirty.is_set() or self._snapshot is None:
            self.refresh_actors()
        snapshot = self._snapshot
        table = self._actor_table

        lease = self.store.begin_step()
        try:
            src = lease.read
            dst = lease.write.state
            forces = accumulate_forces(
                src.position,
                src.mass,
                table,
                count=snapshot.count,
                gravitational_constant=self.cfg.gravitational_constant,
                exponent=self.cfg.exponent,
                softening=self.cfg.softening,
            )
            integrate(
                src.position,
                src.velocity,
                src.mass,
                forces,
                distance_coeff=self.cfg.distance_coeff,
                dt=dt,
                decay_factor=self.cfg.velocity_decay_factor,
                out_position=dst.position,
                out_velocity=dst.velocity,
            )
            dst.mass.copy_(src.mass)
            dst.entropy.copy_(src.entropy)
        except BaseException:
            self.store.abort_step(lease)
            raise
        generation = self.store.commit_step(lease)

        self.last_stats = StepStats(
            generation=generation,
            actor_count=snapshot.count,
            actor_version=snapshot.version,
            dt=dt,
        )
        return self.last_stats

    def close(self) -> None:
        """Stop dispatching and drop the actor snapshot and both generations."""
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._snapshot = None
        self._actor_table = None
        self.store.release()
