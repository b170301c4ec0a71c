from __future__ import annotations

import random
import threading
import time
from typing import Any, Callable, Dict, Optional

import numpy as np
import torch

from universe.camera.controller import CameraFeedbackController, CameraPose
from universe.camera.sampler import ReadbackTransport, StatisticalSampler, ThreadedReadback
from universe.camera.transforms import CameraRig
from universe.console import console
from universe.kernels.runtime import synchronize

from .actors import Actor, ActorHandle, ActorRegistry, CapacityExceeded
from .config import SimulationConfig
from .executor import StepExecutor, StepStats
from .field import ParticleFieldStore, ParticleState, ReadView
from .profiler import profiled_ticks
from .seeding import seed_particles


class Simulation:
    """One simulation context.

    Owns exactly one actor registry, one particle field, the step executor,
    the camera rig, the feedback controller and the sampler. Nothing here is
    process-global; two contexts never share state.

    Typical use:
        with Simulation(config) as sim:
            sim.add_actor(Actor(ActorKind.ATTRACTOR, mass=1e4))
            for _ in range(steps):
                sim.tick()
                pose = sim.frame(1 / 60)
    """

    def __init__(
        self,
        config: SimulationConfig,
        particles: Optional[ParticleState] = None,
        *,
        transport: Optional[ReadbackTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cfg = config
        self.clock = clock

        random.seed(config.seed)
        np.random.seed(config.seed)
        torch.manual_seed(config.seed)

        if config.collision_detection:
            console.warn("collision_detection is set but has no effect on the step")

        self.registry = ActorRegistry(config.actor_capacity)
        self.store = ParticleFieldStore(config.num_particles, device=config.device, dtype=config.dtype)
        if particles is None:
            particles = seed_particles(
                config.num_particles,
                config.seeding,
                seed=config.seed,
                device=config.device,
                dtype=config.dtype,
            )
        self.store.init(particles)
        self.executor = StepExecutor(config, self.registry, self.store)

        self.camera = CameraRig(
            fov_y=config.fov_y,
            aspect=config.aspect,
            near=config.near,
            far=config.far,
            distance=config.camera_distance,
        )
        # The readback thread projects through this matrix; `frame` replaces it whole.
        self._pose_lock = threading.Lock()
        self._view_projection = self.camera.view_projection()
        self.controller = CameraFeedbackController(
            config,
            clock=clock,
            rng=np.random.default_rng(config.seed + 1),
        )
        self.transport = transport if transport is not None else ThreadedReadback(self.store)
        self.sampler = StatisticalSampler(
            config,
            self.transport,
            sink=self.controller.push,
            view_projection=self.view_projection,
            rng=np.random.default_rng(config.seed),
        )
        self.last_pose: Optional[CameraPose] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the sampling chain."""
        if self._closed:
            raise RuntimeError("simulation has been closed")
        self.sampler.start()

    def close(self) -> None:
        """Stop sampling, stop stepping, release the field."""
        if self._closed:
            return
        self._closed = True
        self.sampler.stop()
        self.transport.close()
        self.executor.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "Simulation":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Actors
    # ------------------------------------------------------------------

    def add_actor(self, actor: Actor) -> Optional[ActorHandle]:
        """Register `actor`; returns None when the registry is full."""
        try:
            return self.registry.register(actor)
        except CapacityExceeded:
            return None

    def remove_actor(self, handle: ActorHandle) -> bool:
        return self.registry.deregister(handle)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def tick(self, dt: Optional[float] = None) -> Optional[StepStats]:
        return self.executor.step(dt)

    def frame(self, frame_dt: float, now: Optional[float] = None) -> CameraPose:
        """Advance the camera by one display frame and apply the pose to the rig."""
        pose = self.controller.update(frame_dt, eye=self.camera.position, now=now)
        self.camera.rotation = pose.rotation
        self.camera.orbit_yaw = pose.orbit_yaw
        self.camera.zoom_offset = pose.zoom_offset
        view_projection = self.camera.view_projection()
        with self._pose_lock:
            self._view_projection = view_projection
        self.last_pose = pose
        return pose

    def view_projection(self) -> np.ndarray:
        """View-projection of the last completed frame; safe from any thread."""
        with self._pose_lock:
            return self._view_projection

    def current(self) -> ReadView:
        """The generation a renderer should draw this frame."""
        return self.store.current()


def _default_actors(config: SimulationConfig) -> list[Actor]:
    total = float(config.seeding.total_mass)
    return [Actor("attractor", position=config.seeding.origin, mass=total)]


def run_simulation(
    config: SimulationConfig,
    actors: Optional[list[Actor]] = None,
    *,
    frame_dt: float = 1.0 / 60.0,
) -> Dict[str, Any]:
    """Run the simulation headless for `config.num_steps` ticks.

    One tick and one camera frame per iteration; the sampler runs on its own
    thread throughout.
    """
    console.header(
        "UNIVERSE SIMULATION",
        Device=str(config.device),
        Particles=str(config.num_particles),
        Actors=f"capacity {config.actor_capacity}",
        Exponent=str(config.exponent),
        Steps=str(config.num_steps),
    )

    with console.spinner("Seeding particles..."):
        sim = Simulation(config)
    for actor in (actors if actors is not None else _default_actors(config)):
        if sim.add_actor(actor) is None:
            break

    t0 = time.perf_counter()
    try:
        sim.start()
        with profiled_ticks(config) as profile_step:
            for step in range(config.num_steps):
                stats = sim.tick()
                pose = sim.frame(frame_dt)
                profile_step()
                if config.log_every > 0 and (step + 1) % config.log_every == 0:
                    look = pose.look_at
                    console.progress(
                        stats.generation,
                        look_at=f"({look[0]:.2f}, {look[1]:.2f}, {look[2]:.2f})",
                        metric=f"{sim.controller.sampled_metric():.4f}",
                        zoom=f"{pose.zoom_offset:.3f}",
                        samples=sim.sampler.completed,
                    )
        synchronize(config.device)
    except KeyboardInterrupt:
        console.warn("Interrupted")
    finally:
        elapsed = time.perf_counter() - t0
        view = sim.current().to_host()
        result = {
            "generation": sim.store.generation,
            "elapsed": elapsed,
            "steps_per_second": (sim.store.generation / elapsed) if elapsed > 0 else 0.0,
            "centroid": view.position.mean(dim=0).numpy(),
            "mean_speed": float(torch.linalg.norm(view.velocity, dim=1).mean().item()),
            "observations": sim.sampler.completed,
            "readback_failures": sim.sampler.failures,
            "look_at": sim.controller.sampled_look_at(),
            "metric": sim.controller.sampled_metric(),
            "zoom_offset": sim.controller.zoom_offset,
        }
        sim.close()

    console.success(
        "Simulation finished",
        detail=f"{result['generation']} generations in {result['elapsed']:.2f}s",
    )
    return result
