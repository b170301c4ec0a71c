"""Asynchronous statistical sampler.

The sampler keeps exactly one readback of the current generation in flight.
When it completes, a random sample of the arrived positions is reduced to an
`Observation` (world-space centroid plus clip-space extent) and handed to the
sink, and the next readback is issued straight away against whatever
generation is current by then. A slow transport therefore throttles the
sampling rate without ever stalling the tick loop.

A failed readback, or a failure while reducing or delivering its
observation, is logged and counted, and the chain re-issues against the
latest generation; no observation is emitted for that cycle. `stop()` ends the
chain: a completion that arrives after it neither emits nor re-issues.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import numpy as np
import torch

from universe.console import console
from universe.simulation.config import SimulationConfig
from universe.simulation.field import ParticleFieldStore

from .transforms import project_points


class ReadbackFailed(RuntimeError):
    """A readback request reported an error instead of data."""


@dataclass(frozen=True)
class HostSnapshot:
    """Host-side copy of one generation's positions."""
    positions: np.ndarray   # (N, 3) float
    generation: int


@dataclass(frozen=True)
class Observation:
    """Aggregate statistics of one sampled readback."""
    centroid_world: np.ndarray
    screen_bounds_area: float
    mean_centre_distance: float
    sample_count: int
    generation: int


class ReadbackTransport(Protocol):
    def request(self) -> "Future[HostSnapshot]":
        """Start copying the current generation to the host."""
        ...

    def close(self) -> None:
        ...


class ThreadedReadback:
    """Copies the current generation to the host on a single worker thread.

    The generation is pinned for the duration of the copy, so the step
    cannot recycle it as its write target mid-copy.
    """

    def __init__(self, store: ParticleFieldStore):
        self.store = store
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="readback")

    def _copy(self) -> HostSnapshot:
        with self.store.pinned() as view:
            # numpy has no bfloat16; the host side works in float64 anyway.
            positions = view.position.detach().to("cpu", dtype=torch.float64, copy=True)
            generation = view.generation
        return HostSnapshot(positions=positions.numpy(), generation=generation)

    def request(self) -> "Future[HostSnapshot]":
        return self._pool.submit(self._copy)

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)


def clip_space_stats(clip_xy: np.ndarray) -> tuple[float, float]:
    """Bounding-rectangle area and mean centre distance of clip-space points.

    The rectangle starts degenerate at the origin and only grows, so it
    always contains the screen centre.
    """
    if clip_xy.shape[0] == 0:
        return 0.0, 0.0
    x_min = min(0.0, float(clip_xy[:, 0].min()))
    x_max = max(0.0, float(clip_xy[:, 0].max()))
    y_min = min(0.0, float(clip_xy[:, 1].min()))
    y_max = max(0.0, float(clip_xy[:, 1].max()))
    area = (x_max - x_min) * (y_max - y_min)
    centre_distance = float(np.linalg.norm(clip_xy, axis=1).mean())
    return area, centre_distance


class StatisticalSampler:
    """Self-scheduling, single-flight readback chain feeding observations to a sink."""

    def __init__(
        self,
        config: SimulationConfig,
        transport: ReadbackTransport,
        sink: Callable[[Observation], None],
        view_projection: Callable[[], np.ndarray],
        *,
        rng: Optional[np.random.Generator] = None,
    ):
        self.cfg = config
        self.transport = transport
        self.sink = sink
        self.view_projection = view_projection
        self.rng = rng if rng is not None else np.random.default_rng(config.seed)

        self._lock = threading.RLock()
        self._running = False
        self._pending: Optional[Future] = None

        self.completed = 0
        self.failures = 0
        self.last_observation: Optional[Observation] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> bool:
        return self._pending is not None

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._issue()

    def stop(self) -> None:
        """End the chain. Safe to call more than once."""
        with self._lock:
            self._running = False
            pending, self._pending = self._pending, None
        if pending is not None:
            pending.cancel()

    # ------------------------------------------------------------------
    # Chain
    # ------------------------------------------------------------------

    def _issue(self) -> None:
        with self._lock:
            if not self._running or self._pending is not None:
                return
            future = self.transport.request()
            self._pending = future
        # Attached outside the lock: an already-finished future runs the callback inline.
        future.add_done_callback(self._on_complete)

    def _on_complete(self, future: Future) -> None:
        with self._lock:
            if future is not self._pending:
                return
            self._pending = None
            if not self._running or future.cancelled():
                return

        try:
            exc = future.exception()
            if exc is not None:
                err = exc if isinstance(exc, ReadbackFailed) else ReadbackFailed(str(exc))
                self.failures += 1
                console.warn("Readback failed", detail=str(err))
                return
            try:
                observation = self.observe(future.result())
                self.completed += 1
                self.last_observation = observation
                with self._lock:
                    running = self._running
                if running:
                    self.sink(observation)
            except Exception as err:
                self.failures += 1
                console.warn("Observation failed", detail=f"{type(err).__name__}: {err}")
        finally:
            # The chain continues whatever happened to this cycle.
            self._issue()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def observe(self, snapshot: HostSnapshot) -> Observation:
        """Reduce a random sample (with replacement) of `snapshot` to an Observation."""
        positions = np.asarray(snapshot.positions, dtype=np.float64).reshape(-1, 3)
        n = positions.shape[0]
        if n == 0:
            return Observation(np.zeros(3), 0.0, 0.0, 0, snapshot.generation)

        count = max(1, int(round(n * float(self.cfg.sample_ratio))))
        idx = self.rng.integers(0, n, size=count)
        sample = positions[idx]

        centroid = sample.mean(axis=0)
        clip = project_points(self.view_projection(), sample)
        area, centre_distance = clip_space_stats(clip[:, :2])
        return Observation(
            centroid_world=centroid,
            screen_bounds_area=float(area),
            mean_centre_distance=float(centre_distance),
            sample_count=count,
            generation=snapshot.generation,
        )
