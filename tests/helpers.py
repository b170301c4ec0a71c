"""Shared test doubles."""

from __future__ import annotations

from concurrent.futures import Future

import numpy as np

from universe.camera.sampler import HostSnapshot
from universe.simulation.field import ParticleFieldStore


class ManualTransport:
    """Readback transport whose requests complete only when the test says so."""

    def __init__(self):
        self.requests: list[Future] = []
        self.closed = False

    def request(self) -> Future:
        future: Future = Future()
        self.requests.append(future)
        return future

    def close(self) -> None:
        self.closed = True

    @property
    def pending(self) -> Future:
        return self.requests[-1]

    def complete(self, positions, generation: int = 0) -> None:
        self.pending.set_result(
            HostSnapshot(positions=np.asarray(positions, dtype=np.float64), generation=generation)
        )

    def complete_from(self, store: ParticleFieldStore) -> None:
        view = store.current()
        self.complete(view.position.detach().cpu().numpy(), view.generation)

    def fail(self, message: str = "transport error") -> None:
        self.pending.set_exception(RuntimeError(message))


class FakeClock:
    def __init__(self, t: float = 0.0):
        self.t = float(t)

    def __call__(self) -> float:
        return self.t

    def advance(self, dt: float) -> float:
        self.t += float(dt)
        return self.t
