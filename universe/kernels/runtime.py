"""Backend availability detection (CUDA + MPS).

The particle step is a dense per-particle map, so it runs anywhere torch
runs. Accelerators only change throughput; the numbers are the same.
"""

from __future__ import annotations

from typing import Optional, Union

import torch

__all__ = [
    "cuda_supported",
    "mps_supported",
    "get_device",
    "resolve_device",
    "synchronize",
]


def cuda_supported() -> bool:
    try:
        return bool(torch.cuda.is_available())
    except RuntimeError:
        return False


def mps_supported() -> bool:
    """Whether the current runtime can execute on Apple's MPS backend."""
    backend = getattr(torch.backends, "mps", None)
    if backend is None:
        return False
    return bool(backend.is_available())


def get_device() -> str:
    """Pick the best available device for the particle step."""
    if cuda_supported():
        return "cuda"
    if mps_supported():
        return "mps"
    return "cpu"


def resolve_device(device: Optional[Union[str, torch.device]]) -> torch.device:
    """Normalise a user-supplied device, auto-detecting when None."""
    if device is None:
        return torch.device(get_device())
    dev = torch.device(device)
    if dev.type == "cuda" and not cuda_supported():
        raise ValueError(f"device {str(dev)!r} requested but CUDA is not available")
    if dev.type == "mps" and not mps_supported():
        raise ValueError(f"device {str(dev)!r} requested but MPS is not available")
    return dev


def synchronize(device: Union[str, torch.device]) -> None:
    """Block until queued work on `device` has finished."""
    dev = torch.device(device)
    if dev.type == "cuda":
        torch.cuda.synchronize(dev)
    elif dev.type == "mps":
        torch.mps.synchronize()
