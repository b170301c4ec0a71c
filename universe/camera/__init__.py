"""Camera feedback: sampled particle statistics in, smoothed camera pose out."""

from __future__ import annotations

from .controller import CameraFeedbackController, CameraPose, CameraShake
from .sampler import HostSnapshot, Observation, ReadbackFailed, StatisticalSampler, ThreadedReadback
from .transforms import CameraRig
from .window import ScalarWindow, VectorWindow

__all__ = [
    "CameraFeedbackController",
    "CameraPose",
    "CameraRig",
    "CameraShake",
    "HostSnapshot",
    "Observation",
    "ReadbackFailed",
    "ScalarWindow",
    "StatisticalSampler",
    "ThreadedReadback",
    "VectorWindow",
]
