"""Distance-law force accumulation and the per-tick integrator.

For particle p and actor a (position x_a, force vector f_a, signed mass M_a):

    d = p - x_a
    r = max(|d|, softening)
    F_p += sign(M_a) * (-d / r) * G * |M_a| * m_p / r**k   +   f_a

where k is the configured distance exponent. Padding rows (M_a = 0,
f_a = 0) contribute exactly zero. Then

    v' = (v + F / m * distance_coeff * dt) * (1 - decay)
    x' = x + v' * dt
"""

from __future__ import annotations

import torch

from universe.simulation.actors import RECORD_WIDTH


def accumulate_forces(
    positions: torch.Tensor,
    masses: torch.Tensor,
    actors: torch.Tensor,
    *,
    count: int,
    gravitational_constant: float,
    exponent: int,
    softening: float,
) -> torch.Tensor:
    """Sum actor forces on every particle.

    Args:
        positions: (N, 3) particle positions
        masses: (N,) particle masses
        actors: (K, 7) actor table, live rows first
        count: number of live rows in `actors`
        gravitational_constant: G
        exponent: distance exponent k
        softening: minimum effective distance

    Returns:
        (N, 3) force per particle
    """
    forces = torch.zeros_like(positions)
    if count <= 0:
        return forces
    if actors.ndim != 2 or actors.shape[1] != RECORD_WIDTH:
        raise ValueError(f"actor table must have shape (K, {RECORD_WIDTH}), got {tuple(actors.shape)}")

    live = actors[:count].to(device=positions.device, dtype=positions.dtype)
    a_pos = live[:, 0:3]
    a_force = live[:, 3:6]
    a_mass = live[:, 6]

    d = positions.unsqueeze(1) - a_pos.unsqueeze(0)          # (N, K, 3)
    r = torch.linalg.norm(d, dim=-1).clamp(min=float(softening))  # (N, K)

    magnitude = (
        float(gravitational_constant)
        * a_mass.abs().unsqueeze(0)
        * masses.unsqueeze(1)
        / r.pow(int(exponent))
    )                                                        # (N, K)
    direction = -d / r.unsqueeze(-1) * torch.sign(a_mass).view(1, -1, 1)

    forces += (direction * magnitude.unsqueeze(-1)).sum(dim=1)
    forces += a_force.sum(dim=0)
    return forces


def integrate(
    position: torch.Tensor,
    velocity: torch.Tensor,
    mass: torch.Tensor,
    forces: torch.Tensor,
    *,
    distance_coeff: float,
    dt: float,
    decay_factor: float,
    out_position: torch.Tensor,
    out_velocity: torch.Tensor,
) -> None:
    """Write the next generation's position and velocity into the out tensors."""
    accel = forces / mass.unsqueeze(-1)
    torch.mul(velocity + accel * (float(distance_coeff) * float(dt)), float(decay_factor), out=out_velocity)
    torch.add(position, out_velocity, alpha=float(dt), out=out_position)
