"""Double-buffered particle field.

Two equal-length generations live side by side. One is current (readable by
the sampler and the renderer), the other is next (written by the step). A
step is bracketed by `begin_step()` / `commit_step(lease)`; the flip happens
only inside `commit_step`.

Readers that hand a generation to another thread use `pinned()`. A pinned
generation cannot become the write target until the pin is released, so an
in-flight host copy never races the step that would overwrite it.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

import torch


@dataclass
class ParticleState:
    """Structure-of-arrays particle data.

    position, velocity: (N, 3); mass, entropy: (N,).
    """

    position: torch.Tensor
    velocity: torch.Tensor
    mass: torch.Tensor
    entropy: torch.Tensor

    @property
    def n(self) -> int:
        return int(self.position.shape[0])

    @classmethod
    def zeros(cls, n: int, *, device: torch.device | str = "cpu", dtype: torch.dtype = torch.float32) -> "ParticleState":
        return cls(
            position=torch.zeros(n, 3, device=device, dtype=dtype),
            velocity=torch.zeros(n, 3, device=device, dtype=dtype),
            mass=torch.ones(n, device=device, dtype=dtype),
            entropy=torch.zeros(n, device=device, dtype=dtype),
        )

    @classmethod
    def from_arrays(
        cls,
        position,
        velocity=None,
        mass=None,
        entropy=None,
        *,
        device: torch.device | str = "cpu",
        dtype: torch.dtype = torch.float32,
    ) -> "ParticleState":
        pos = torch.as_tensor(position, device=device, dtype=dtype).reshape(-1, 3)
        n = int(pos.shape[0])
        vel = (
            torch.zeros(n, 3, device=device, dtype=dtype)
            if velocity is None
            else torch.as_tensor(velocity, device=device, dtype=dtype).reshape(n, 3)
        )
        m = (
            torch.ones(n, device=device, dtype=dtype)
            if mass is None
            else torch.as_tensor(mass, device=device, dtype=dtype).reshape(n)
        )
        ent = (
            torch.zeros(n, device=device, dtype=dtype)
            if entropy is None
            else torch.as_tensor(entropy, device=device, dtype=dtype).reshape(n)
        )
        return cls(position=pos, velocity=vel, mass=m, entropy=ent)

    def validate(self) -> None:
        n = self.n
        if self.position.shape != (n, 3) or self.velocity.shape != (n, 3):
            raise ValueError("position and velocity must both have shape (N, 3)")
        if self.mass.shape != (n,) or self.entropy.shape != (n,):
            raise ValueError("mass and entropy must both have shape (N,)")
        if n > 0 and bool((self.mass <= 0).any()):
            raise ValueError("particle mass must be > 0")

    def copy_(self, other: "ParticleState") -> "ParticleState":
        self.position.copy_(other.position)
        self.velocity.copy_(other.velocity)
        self.mass.copy_(other.mass)
        self.entropy.copy_(other.entropy)
        return self

    def clone(self) -> "ParticleState":
        return ParticleState(
            position=self.position.clone(),
            velocity=self.velocity.clone(),
            mass=self.mass.clone(),
            entropy=self.entropy.clone(),
        )


class ReadView:
    """Read-only access to one generation.

    Tensors are returned as-is; callers must not write through them and must
    not keep them past the next `commit_step()`.
    """

    __slots__ = ("_state", "generation")

    def __init__(self, state: ParticleState, generation: int):
        self._state = state
        self.generation = generation

    @property
    def n(self) -> int:
        return self._state.n

    @property
    def position(self) -> torch.Tensor:
        return self._state.position

    @property
    def velocity(self) -> torch.Tensor:
        return self._state.velocity

    @property
    def mass(self) -> torch.Tensor:
        return self._state.mass

    @property
    def entropy(self) -> torch.Tensor:
        return self._state.entropy

    def to_host(self) -> ParticleState:
        """Detached CPU copy of this generation."""
        s = self._state
        return ParticleState(
            position=s.position.detach().to("cpu", copy=True),
            velocity=s.velocity.detach().to("cpu", copy=True),
            mass=s.mass.detach().to("cpu", copy=True),
            entropy=s.entropy.detach().to("cpu", copy=True),
        )


class WriteView(ReadView):
    """Exclusive write access to the next generation for one step."""

    __slots__ = ()

    @property
    def state(self) -> ParticleState:
        return self._state


class StepLease:
    """Token for one open step. Consumed by `commit_step`."""

    __slots__ = ("read", "write", "_store", "_committed")

    def __init__(self, store: "ParticleFieldStore", read: ReadView, write: WriteView):
        self._store = store
        self.read = read
        self.write = write
        self._committed = False

    @property
    def committed(self) -> bool:
        return self._committed


class ParticleFieldStore:
    """Owns both particle generations and the read/write selector."""

    def __init__(self, num_particles: int, *, device: torch.device | str = "cpu", dtype: torch.dtype = torch.float32):
        if int(num_particles) <= 0:
            raise ValueError(f"num_particles must be > 0, got {num_particles}")
        self.num_particles = int(num_particles)
        self.device = torch.device(device)
        self.dtype = dtype
        self._buffers: Optional[list[ParticleState]] = [
            ParticleState.zeros(self.num_particles, device=self.device, dtype=dtype),
            ParticleState.zeros(self.num_particles, device=self.device, dtype=dtype),
        ]
        self._read_idx = 0
        self._generation = 0
        self._lease: Optional[StepLease] = None
        self._pins = [0, 0]
        self._cond = threading.Condition()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def released(self) -> bool:
        return self._buffers is None

    def init(self, particles: ParticleState) -> None:
        """Copy the same initial state into both generations."""
        particles.validate()
        if particles.n != self.num_particles:
            raise ValueError(f"expected {self.num_particles} particles, got {particles.n}")
        with self._cond:
            buffers = self._require_buffers()
            if self._lease is not None:
                raise RuntimeError("cannot init while a step is open")
            src = ParticleState(
                position=particles.position.to(self.device, self.dtype),
                velocity=particles.velocity.to(self.device, self.dtype),
                mass=particles.mass.to(self.device, self.dtype),
                entropy=particles.entropy.to(self.device, self.dtype),
            )
            buffers[0].copy_(src)
            buffers[1].copy_(src)
            self._read_idx = 0
            self._generation = 0

    def release(self) -> None:
        """Drop both generations. Further access raises RuntimeError."""
        with self._cond:
            self._buffers = None
            self._lease = None
            self._cond.notify_all()

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def current(self) -> ReadView:
        with self._cond:
            buffers = self._require_buffers()
            return ReadView(buffers[self._read_idx], self._generation)

    @contextmanager
    def pinned(self) -> Iterator[ReadView]:
        """Hold the current generation so the step cannot overwrite it."""
        with self._cond:
            buffers = self._require_buffers()
            idx = self._read_idx
            self._pins[idx] += 1
            view = ReadView(buffers[idx], self._generation)
        try:
            yield view
        finally:
            with self._cond:
                self._pins[idx] -= 1
                self._cond.notify_all()

    # ------------------------------------------------------------------
    # Step bracket
    # ------------------------------------------------------------------

    def begin_step(self) -> StepLease:
        with self._cond:
            self._require_buffers()
            if self._lease is not None:
                raise RuntimeError("begin_step called while a step is already open")
            write_idx = 1 - self._read_idx
            # Wait out readers still copying the generation we are about to overwrite.
            self._cond.wait_for(lambda: self._buffers is None or self._pins[write_idx] == 0)
            buffers = self._require_buffers()
            lease = StepLease(
                self,
                ReadView(buffers[self._read_idx], self._generation),
                WriteView(buffers[write_idx], self._generation + 1),
            )
            self._lease = lease
            return lease

    def commit_step(self, lease: StepLease) -> int:
        """Flip the selector; the just-written generation becomes current."""
        with self._cond:
            self._require_buffers()
            if lease._store is not self:
                raise RuntimeError("commit_step called with a lease this store did not issue")
            if lease._committed:
                raise RuntimeError("step lease already committed")
            if lease is not self._lease:
                raise RuntimeError("commit_step called with a stale lease")
            lease._committed = True
            self._lease = None
            self._read_idx = 1 - self._read_idx
            self._generation += 1
            self._cond.notify_all()
            return self._generation

    def abort_step(self, lease: StepLease) -> None:
        """Close an open step without flipping; the next generation is discarded."""
        with self._cond:
            if lease is self._lease:
                lease._committed = True
                self._lease = None
                self._cond.notify_all()

    def _require_buffers(self) -> list[ParticleState]:
        if self._buffers is None:
            raise RuntimeError("particle field store has been released")
        return self._buffers
