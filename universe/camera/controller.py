"""Camera feedback controller.

Observations arrive at an irregular cadence (whenever a readback lands).
Frames arrive at the display rate. The controller bridges the two:

- `push()` stores the observation in two sliding windows and stamps the
  push time.
- `update()` runs once per frame and derives zoom, orbit and orientation
  from the window means.

Orientation blends toward the look-at target by

    alpha = (now - last_push) / max(push_interval, eps) * (1 - smoothing)

so a frame that lands late relative to the push cadence moves further.

With no data the controller stays inert: identity orientation, zero zoom.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from universe.simulation.config import CameraMetric, SimulationConfig

from . import transforms
from .sampler import Observation
from .window import ScalarWindow, VectorWindow

_EPS = 1e-6


@dataclass(frozen=True)
class CameraPose:
    """Per-frame output consumed by the camera / renderer."""
    look_at: np.ndarray
    rotation: np.ndarray
    zoom_offset: float
    zoom_delta: float
    orbit_yaw: float
    has_data: bool


class CameraShake:
    """Low-passed random offset applied to the controller's output only.

    The offset follows `s <- k * s + (1 - k) * noise`, noise ~ N(0, amplitude).
    It never feeds back into the windows or the smoothed orientation.
    """

    def __init__(self, amplitude: float, smoothing: float, *, rng: Optional[np.random.Generator] = None):
        self.amplitude = float(amplitude)
        self.smoothing = float(smoothing)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.offset = np.zeros(3)

    @property
    def enabled(self) -> bool:
        return self.amplitude > 0.0

    def advance(self) -> np.ndarray:
        if not self.enabled:
            return self.offset
        noise = self.rng.normal(0.0, self.amplitude, size=3)
        self.offset = self.smoothing * self.offset + (1.0 - self.smoothing) * noise
        return self.offset

    def apply(self, look_at: np.ndarray, rotation: np.ndarray, eye: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Shift the look-at point and re-aim the rotation by the same offset."""
        if not self.enabled:
            return look_at, rotation
        shaken = look_at + self.offset
        correction = transforms.from_to_rotation(look_at - eye, shaken - eye)
        return shaken, transforms.normalize(transforms.multiply(correction, rotation))


class CameraFeedbackController:
    """Turns a stream of Observations into smoothed camera parameters."""

    def __init__(
        self,
        config: SimulationConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[np.random.Generator] = None,
    ):
        self.cfg = config
        self.clock = clock

        self.look_at_window = VectorWindow(config.look_at_window)
        self.metric_window = ScalarWindow(config.metric_window)

        self.last_push_time: Optional[float] = None
        self.previous_push_time: Optional[float] = None
        self.pushes = 0

        self.rotation = transforms.identity()
        self.zoom_offset = 0.0
        self.orbit_yaw = 0.0
        self.shake = CameraShake(config.shake_amplitude, config.shake_smoothing, rng=rng)

        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def metric_of(self, observation: Observation) -> float:
        if self.cfg.metric is CameraMetric.DISTANCE:
            return float(observation.mean_centre_distance)
        return float(observation.screen_bounds_area)

    def push(self, observation: Observation, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else float(now)
        with self._lock:
            self.look_at_window.push(observation.centroid_world)
            self.metric_window.push(self.metric_of(observation))
            self.previous_push_time = self.last_push_time
            self.last_push_time = now
            self.pushes += 1

    # ------------------------------------------------------------------
    # Smoothed outputs
    # ------------------------------------------------------------------

    @property
    def has_data(self) -> bool:
        return self.last_push_time is not None

    def sampled_look_at(self) -> np.ndarray:
        """Mean of the position window; zero vector means no data."""
        with self._lock:
            return self.look_at_window.mean()

    def sampled_metric(self) -> float:
        with self._lock:
            return self.metric_window.mean()

    def push_interval(self) -> float:
        """Time between the last two pushes; 0 until two pushes have happened."""
        with self._lock:
            if self.last_push_time is None or self.previous_push_time is None:
                return 0.0
            return self.last_push_time - self.previous_push_time

    def zoom_rate(self, metric: float) -> float:
        """Signed zoom rate in [-zoom_range, zoom_range].

        Zero at the threshold, negative (back away) below it, positive
        (approach) above it, smoothstep-shaped across +/- zoom_band.
        """
        band = float(self.cfg.zoom_band)
        x = float(metric) - float(self.cfg.zoom_threshold)
        s = transforms.smoothstep(-band, band, x)
        return float(self.cfg.zoom_range) * (2.0 * s - 1.0)

    def blend_factor(self, now: float) -> float:
        if self.last_push_time is None:
            return 0.0
        interval = max(self.push_interval(), _EPS)
        elapsed = max(0.0, float(now) - self.last_push_time)
        return min(1.0, elapsed / interval * (1.0 - float(self.cfg.look_at_smoothing)))

    def update(self, frame_dt: float, *, eye: Optional[np.ndarray] = None, now: Optional[float] = None) -> CameraPose:
        """Advance one frame.

        Args:
            frame_dt: seconds since the previous frame
            eye: current camera position (orientation faces from here)
            now: timestamp on the controller's clock; defaults to `clock()`
        """
        now = self.clock() if now is None else float(now)
        eye = np.zeros(3) if eye is None else np.asarray(eye, dtype=np.float64)
        frame_dt = float(frame_dt)

        if self.cfg.auto_orbit:
            self.orbit_yaw = (self.orbit_yaw - float(self.cfg.orbit_speed) * frame_dt) % 360.0

        if not self.has_data:
            return CameraPose(
                look_at=np.zeros(3),
                rotation=self.rotation.copy(),
                zoom_offset=self.zoom_offset,
                zoom_delta=0.0,
                orbit_yaw=self.orbit_yaw,
                has_data=False,
            )

        zoom_delta = self.zoom_rate(self.sampled_metric()) * float(self.cfg.zoom_speed) * frame_dt
        self.zoom_offset += zoom_delta

        look_at = self.sampled_look_at()
        target = transforms.look_rotation(look_at - eye)
        self.rotation = transforms.nlerp(self.rotation, target, self.blend_factor(now))

        self.shake.advance()
        out_look_at, out_rotation = self.shake.apply(look_at, self.rotation, eye)
        return CameraPose(
            look_at=out_look_at,
            rotation=out_rotation,
            zoom_offset=self.zoom_offset,
            zoom_delta=zoom_delta,
            orbit_yaw=self.orbit_yaw,
            has_data=True,
        )
