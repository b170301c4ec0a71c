from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Tuple

import torch


class DistanceFunction(Enum):
    """Power applied to distance in the inverse force law."""

    LINEAR = 1
    QUADRATIC = 2
    QUARTIC = 4
    SEXTIC = 6
    OCTIC = 8

    @property
    def exponent(self) -> int:
        return int(self.value)


class InitShape(Enum):
    SPHERE = "sphere"
    ACCRETION_DISC = "accretion_disc"


class CameraMetric(Enum):
    """Which scalar the sampler feeds into the controller's metric window."""

    AREA = "area"            # clip-space bounding-rectangle area
    DISTANCE = "distance"    # mean clip-space distance from the screen centre


@dataclass(frozen=True)
class SeedConfig:
    """Procedural initial distribution for the particle field."""

    shape: InitShape = InitShape.ACCRETION_DISC
    cluster_count: int = 1
    cluster_max_radius: float = 0.0
    inner_radius: float = 50.0
    outer_radius: float = 100.0
    linear_velocity: float = 0.5
    disc_velocity: float = 1.0
    total_mass: float = 4096.0
    mass_curve: float = 1.0        # U(0,1]^curve before normalisation
    velocity_curve: float = 1.0
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self):
        object.__setattr__(self, "shape", InitShape(self.shape))
        if self.cluster_count <= 0:
            raise ValueError(f"cluster_count must be > 0, got {self.cluster_count}")
        if self.outer_radius < self.inner_radius:
            raise ValueError(
                f"outer_radius ({self.outer_radius}) must be >= inner_radius ({self.inner_radius})"
            )
        if self.total_mass <= 0.0:
            raise ValueError(f"total_mass must be > 0, got {self.total_mass}")


@dataclass(frozen=True)
class SimulationConfig:
    """Immutable configuration for one simulation run."""

    # Particle field
    num_particles: int = 4096
    seeding: SeedConfig = field(default_factory=SeedConfig)

    # Actors
    actor_capacity: int = 4

    # Force law
    gravitational_constant: float = 1.0
    distance_function: DistanceFunction = DistanceFunction.QUADRATIC
    softening: float = 0.01
    distance_coeff: float = 1.0
    velocity_decay: float = 1e-5   # velocity *= (1 - decay) every tick
    dt: float = 1.0
    collision_detection: bool = False  # carried only; the step ignores it

    # Sampling
    sample_ratio: float = 0.02

    # Camera feedback
    look_at_window: int = 32
    metric_window: int = 32
    metric: CameraMetric = CameraMetric.AREA
    zoom_threshold: float = 0.75
    zoom_band: float = 1.0
    zoom_range: float = 5.0
    zoom_speed: float = 10.0
    look_at_smoothing: float = 0.995
    auto_orbit: bool = True
    orbit_speed: float = 10.0      # degrees per second
    shake_amplitude: float = 0.0
    shake_smoothing: float = 0.9

    # Camera rig (projection used by the sampler)
    fov_y: float = 60.0
    aspect: float = 16.0 / 9.0
    near: float = 0.3
    far: float = 1000.0
    camera_distance: float = 300.0

    # Reproducibility
    seed: int = 0

    # Device
    device: str = "cpu"
    dtype: torch.dtype = field(default_factory=lambda: torch.float32)

    # Headless driver
    num_steps: int = 500
    log_every: int = 50

    # Profiling
    profile_enabled: bool = False
    profile_warmup_steps: int = 10
    profile_output_dir: Path = field(default_factory=lambda: Path("artifacts/profiles"))

    def __post_init__(self):
        if int(self.num_particles) <= 0:
            raise ValueError(f"num_particles must be > 0, got {self.num_particles}")
        try:
            object.__setattr__(self, "distance_function", DistanceFunction(self.distance_function))
        except ValueError:
            allowed = ", ".join(str(d.value) for d in DistanceFunction)
            raise ValueError(
                f"distance_function must be one of {{{allowed}}}, got {self.distance_function!r}"
            ) from None
        object.__setattr__(self, "metric", CameraMetric(self.metric))
        if int(self.actor_capacity) <= 0:
            raise ValueError(f"actor_capacity must be > 0, got {self.actor_capacity}")
        if not (0.0 < float(self.sample_ratio) <= 1.0):
            raise ValueError(f"sample_ratio must be in (0, 1], got {self.sample_ratio}")
        if self.look_at_window <= 0 or self.metric_window <= 0:
            raise ValueError("window capacities must be > 0")
        if float(self.softening) <= 0.0:
            raise ValueError(f"softening must be > 0, got {self.softening}")
        if not (0.0 <= float(self.velocity_decay) < 1.0):
            raise ValueError(f"velocity_decay must be in [0, 1), got {self.velocity_decay}")
        if not (0.0 <= float(self.look_at_smoothing) < 1.0):
            raise ValueError(f"look_at_smoothing must be in [0, 1), got {self.look_at_smoothing}")
        if not (0.0 <= float(self.shake_smoothing) < 1.0):
            raise ValueError(f"shake_smoothing must be in [0, 1), got {self.shake_smoothing}")
        if self.zoom_band <= 0.0:
            raise ValueError(f"zoom_band must be > 0, got {self.zoom_band}")

    @property
    def exponent(self) -> int:
        return self.distance_function.exponent

    @property
    def velocity_decay_factor(self) -> float:
        return 1.0 - float(self.velocity_decay)

    @property
    def sample_count(self) -> int:
        """Indices drawn per completed readback (at least one)."""
        return max(1, int(round(self.num_particles * float(self.sample_ratio))))
