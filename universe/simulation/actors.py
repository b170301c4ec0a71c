"""Actor registry.

Actors are the force sources of the field: attractors, repellers and
constant linear forces. The registry holds at most `capacity` of them and
hands the step a dense, zero-padded snapshot. Padding records carry zero
mass and a zero force vector, so they contribute nothing to the force sum.
"""

from __future__ import annotations

import itertools
import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Tuple

import torch

from universe.console import console

Vec3 = Tuple[float, float, float]

# Columns of the tensor form: position (3), force vector (3), signed mass (1).
RECORD_WIDTH = 7


class CapacityExceeded(RuntimeError):
    """Registration rejected because the registry is full."""

    def __init__(self, capacity: int):
        super().__init__(f"actor registry is full (capacity={capacity})")
        self.capacity = capacity


class ActorKind(Enum):
    ATTRACTOR = "attractor"
    REPELLER = "repeller"
    LINEAR_FORCE = "linear_force"


@dataclass(frozen=True)
class ActorRecord:
    """The per-actor data the step reads."""

    position: Vec3 = (0.0, 0.0, 0.0)
    force_vector: Vec3 = (0.0, 0.0, 0.0)
    mass: float = 0.0

    @property
    def is_padding(self) -> bool:
        return self.mass == 0.0 and not any(self.force_vector)

    def as_row(self) -> List[float]:
        return [*self.position, *self.force_vector, self.mass]


PADDING = ActorRecord()


@dataclass(frozen=True)
class Actor:
    """An actor as its owner describes it.

    `mass` and `force` are magnitudes; `record()` turns them into the signed
    mass / force vector convention the force law expects.
    """

    kind: ActorKind
    position: Vec3 = (0.0, 0.0, 0.0)
    mass: float = 1.0
    force: float = 0.0
    facing: Vec3 = (0.0, 0.0, 1.0)
    radius: float = 0.0  # collision radius, carried for the renderer

    def __post_init__(self):
        object.__setattr__(self, "kind", ActorKind(self.kind))

    def record(self) -> ActorRecord:
        position = tuple(float(c) for c in self.position)
        if self.kind is ActorKind.LINEAR_FORCE:
            fx, fy, fz = (float(c) for c in self.facing)
            norm = math.sqrt(fx * fx + fy * fy + fz * fz)
            if norm == 0.0:
                raise ValueError("LinearForce actor needs a non-zero facing direction")
            scale = float(self.force) / norm
            return ActorRecord(position, (fx * scale, fy * scale, fz * scale), 0.0)
        mass = abs(float(self.mass))
        if self.kind is ActorKind.REPELLER:
            mass = -mass
        return ActorRecord(position, (0.0, 0.0, 0.0), mass)


@dataclass(frozen=True)
class ActorHandle:
    id: int


@dataclass(frozen=True)
class ActorSnapshot:
    """Dense, capacity-sized view of the registry at one version."""

    records: Tuple[ActorRecord, ...]
    count: int
    version: int

    @property
    def capacity(self) -> int:
        return len(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def live(self) -> Tuple[ActorRecord, ...]:
        return self.records[: self.count]

    def as_tensor(self, *, device: torch.device | str = "cpu", dtype: torch.dtype = torch.float32) -> torch.Tensor:
        """(capacity, 7) tensor: position xyz, force xyz, signed mass."""
        rows = [r.as_row() for r in self.records]
        return torch.tensor(rows, device=device, dtype=dtype).reshape(len(rows), RECORD_WIDTH)


class ActorRegistry:
    """Bounded, insertion-ordered set of actors with change notification.

    Single writer, many readers. Subscribers are called synchronously after
    every successful mutation, before `register` / `deregister` return.
    """

    def __init__(self, capacity: int):
        if int(capacity) <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self.capacity = int(capacity)
        self._entries: Dict[ActorHandle, ActorRecord] = {}
        self._ids = itertools.count(1)
        self._version = 0
        self._lock = threading.RLock()
        self._subscribers: List[Callable[[int], None]] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._entries

    @property
    def version(self) -> int:
        return self._version

    def subscribe(self, callback: Callable[[int], None]) -> Callable[[], None]:
        """Register a change callback; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def register(self, actor: Actor | ActorRecord) -> ActorHandle:
        record = actor.record() if isinstance(actor, Actor) else actor
        with self._lock:
            if len(self._entries) >= self.capacity:
                console.warn(
                    "Actor couldn't be registered, the hard limit has been reached",
                    detail=f"capacity={self.capacity}",
                )
                raise CapacityExceeded(self.capacity)
            handle = ActorHandle(next(self._ids))
            self._entries[handle] = record
            self._version += 1
            self._notify()
        return handle

    def deregister(self, handle: ActorHandle) -> bool:
        """Remove `handle`. Absent handles are ignored; returns whether anything changed."""
        with self._lock:
            if handle not in self._entries:
                return False
            del self._entries[handle]
            self._version += 1
            self._notify()
        return True

    def snapshot(self) -> ActorSnapshot:
        with self._lock:
            live = tuple(self._entries.values())
            padding = (PADDING,) * (self.capacity - len(live))
            return ActorSnapshot(records=live + padding, count=len(live), version=self._version)

    def _notify(self) -> None:
        # Called with the lock held so no subscriber sees a later version first.
        for callback in list(self._subscribers):
            callback(self._version)
