import math
from typing import Optional

import torch

from .config import InitShape, SeedConfig
from .field import ParticleState


def _random_unit_vectors(n: int, *, generator: torch.Generator, dtype: torch.dtype) -> torch.Tensor:
    """Uniform directions on the unit sphere."""
    z = torch.rand(n, generator=generator, dtype=dtype) * 2.0 - 1.0
    theta = torch.rand(n, generator=generator, dtype=dtype) * (2.0 * math.pi)
    s = torch.sqrt((1.0 - z * z).clamp(min=0.0))
    return torch.stack([s * torch.cos(theta), z, s * torch.sin(theta)], dim=1)


def _uniform(n: int, low: float, high: float, *, generator: torch.Generator, dtype: torch.dtype) -> torch.Tensor:
    return low + (high - low) * torch.rand(n, generator=generator, dtype=dtype)


def seed_particles(
    num_particles: int,
    seed_config: Optional[SeedConfig] = None,
    *,
    seed: int = 0,
    device: torch.device | str = "cpu",
    dtype: torch.dtype = torch.float32,
) -> ParticleState:
    """Generate the one-time initial particle field.

    Particles are split evenly over `cluster_count` clusters. Each cluster is
    offset from the origin along a random direction by up to
    `cluster_max_radius`; particles sit between `inner_radius` and
    `outer_radius` from their cluster centre.

    Mass is U(0,1]^mass_curve, rescaled so the field sums to `total_mass`.
    Velocity combines a linear (outward for spheres, tangential for discs)
    and a disc component, both scaled by U[0,1)^velocity_curve.
    """
    cfg = seed_config or SeedConfig()
    n = int(num_particles)
    if n <= 0:
        raise ValueError(f"num_particles must be > 0, got {num_particles}")

    # Draw on CPU with a dedicated generator so results do not depend on device.
    gen = torch.Generator().manual_seed(int(seed))
    work = torch.float64

    cluster_dirs = _random_unit_vectors(cfg.cluster_count, generator=gen, dtype=work)
    cluster_dist = _uniform(cfg.cluster_count, 0.0, cfg.cluster_max_radius, generator=gen, dtype=work)
    cluster_origins = cluster_dirs * cluster_dist.unsqueeze(1)

    entropy = torch.rand(n, generator=gen, dtype=work)
    tiny = torch.finfo(torch.float32).tiny
    mass = _uniform(n, tiny, 1.0, generator=gen, dtype=work).pow(cfg.mass_curve).clamp(min=torch.finfo(work).tiny)
    mass = mass * (cfg.total_mass / mass.sum())

    cluster_idx = torch.div(torch.arange(n, dtype=torch.int64) * cfg.cluster_count, n, rounding_mode="floor")
    alpha = torch.rand(n, generator=gen, dtype=work).pow(cfg.velocity_curve).unsqueeze(1)
    up = torch.tensor([0.0, 1.0, 0.0], dtype=work).expand(n, 3)

    if cfg.shape is InitShape.SPHERE:
        direction = _random_unit_vectors(n, generator=gen, dtype=work)
        linear = direction * alpha
    elif cfg.shape is InitShape.ACCRETION_DISC:
        angle = torch.rand(n, generator=gen, dtype=work) * (2.0 * math.pi)
        direction = torch.stack([torch.cos(angle), torch.zeros_like(angle), torch.sin(angle)], dim=1)
        # Quarter turn about +y: (x, 0, z) -> (z, 0, -x)
        linear = torch.stack([direction[:, 2], torch.zeros_like(angle), -direction[:, 0]], dim=1) * alpha
    else:
        raise ValueError(f"unknown init shape: {cfg.shape!r}")
    disc = torch.linalg.cross(direction, up, dim=1) * alpha

    radius = _uniform(n, cfg.inner_radius, cfg.outer_radius, generator=gen, dtype=work).unsqueeze(1)
    origin = torch.tensor(cfg.origin, dtype=work)
    position = origin + cluster_origins[cluster_idx] + direction * radius
    velocity = linear * cfg.linear_velocity + disc * cfg.disc_velocity

    return ParticleState(
        position=position.to(device=device, dtype=dtype),
        velocity=velocity.to(device=device, dtype=dtype),
        # Steep mass curves leave tails that underflow in narrower dtypes.
        mass=mass.to(device=device, dtype=dtype).clamp(min=torch.finfo(dtype).tiny),
        entropy=entropy.to(device=device, dtype=dtype),
    )
