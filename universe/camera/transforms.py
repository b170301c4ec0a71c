"""Camera math on the host side.

Quaternions are numpy arrays [w, x, y, z]. The camera looks down its local
+z axis with +y up; clip space follows the usual OpenGL convention, so
points inside the view frustum land in [-1, 1] on x and y after the
perspective divide.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

IDENTITY = np.array([1.0, 0.0, 0.0, 0.0])
UP = np.array([0.0, 1.0, 0.0])
_EPS = 1e-9


def identity() -> np.ndarray:
    return IDENTITY.copy()


def normalize(q: np.ndarray) -> np.ndarray:
    n = float(np.linalg.norm(q))
    if n < _EPS:
        return identity()
    return np.asarray(q, dtype=np.float64) / n


def multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product a * b (apply b, then a)."""
    aw, ax, ay, az = a
    bw, bx, by, bz = b
    return np.array([
        aw * bw - ax * bx - ay * by - az * bz,
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
    ])


def to_matrix(q: np.ndarray) -> np.ndarray:
    """Quaternion [w,x,y,z] -> 3x3 rotation matrix."""
    w, x, y, z = q
    return np.array([
        [1 - 2*y*y - 2*z*z, 2*x*y - 2*w*z,     2*x*z + 2*w*y],
        [2*x*y + 2*w*z,     1 - 2*x*x - 2*z*z, 2*y*z - 2*w*x],
        [2*x*z - 2*w*y,     2*y*z + 2*w*x,     1 - 2*x*x - 2*y*y],
    ])


def from_matrix(m: np.ndarray) -> np.ndarray:
    """3x3 rotation matrix -> quaternion [w,x,y,z]."""
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        s = 2.0 * math.sqrt(trace + 1.0)
        q = [0.25 * s, (m[2, 1] - m[1, 2]) / s, (m[0, 2] - m[2, 0]) / s, (m[1, 0] - m[0, 1]) / s]
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = 2.0 * math.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2])
        q = [(m[2, 1] - m[1, 2]) / s, 0.25 * s, (m[0, 1] + m[1, 0]) / s, (m[0, 2] + m[2, 0]) / s]
    elif m[1, 1] > m[2, 2]:
        s = 2.0 * math.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2])
        q = [(m[0, 2] - m[2, 0]) / s, (m[0, 1] + m[1, 0]) / s, 0.25 * s, (m[1, 2] + m[2, 1]) / s]
    else:
        s = 2.0 * math.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1])
        q = [(m[1, 0] - m[0, 1]) / s, (m[0, 2] + m[2, 0]) / s, (m[1, 2] + m[2, 1]) / s, 0.25 * s]
    return normalize(np.array(q))


def rotate(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    return to_matrix(q) @ np.asarray(v, dtype=np.float64)


def from_euler_y(degrees: float) -> np.ndarray:
    half = math.radians(degrees) * 0.5
    return np.array([math.cos(half), 0.0, math.sin(half), 0.0])


def look_rotation(forward: np.ndarray, up: np.ndarray = UP) -> np.ndarray:
    """Rotation whose local +z points along `forward`.

    A zero `forward` yields identity. When `forward` is parallel to `up`, an
    alternative up axis is used.
    """
    f = np.asarray(forward, dtype=np.float64)
    fn = float(np.linalg.norm(f))
    if fn < _EPS:
        return identity()
    f = f / fn
    u = np.asarray(up, dtype=np.float64)
    r = np.cross(u, f)
    if float(np.linalg.norm(r)) < _EPS:
        r = np.cross(np.array([0.0, 0.0, 1.0]) if abs(f[1]) > 0.5 else UP, f)
    r = r / np.linalg.norm(r)
    u = np.cross(f, r)
    return from_matrix(np.column_stack([r, u, f]))


def from_to_rotation(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Shortest-arc rotation taking direction `a` onto direction `b`."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    na, nb = float(np.linalg.norm(a)), float(np.linalg.norm(b))
    if na < _EPS or nb < _EPS:
        return identity()
    a, b = a / na, b / nb
    d = float(np.dot(a, b))
    if d < -1.0 + 1e-9:
        axis = np.cross(np.array([1.0, 0.0, 0.0]), a)
        if float(np.linalg.norm(axis)) < _EPS:
            axis = np.cross(UP, a)
        axis = axis / np.linalg.norm(axis)
        return np.array([0.0, *axis])
    c = np.cross(a, b)
    return normalize(np.array([1.0 + d, *c]))


def nlerp(a: np.ndarray, b: np.ndarray, t: float) -> np.ndarray:
    """Normalised lerp along the shorter arc; t is clamped to [0, 1]."""
    t = min(1.0, max(0.0, float(t)))
    b = np.asarray(b, dtype=np.float64)
    if float(np.dot(a, b)) < 0.0:
        b = -b
    return normalize((1.0 - t) * np.asarray(a, dtype=np.float64) + t * b)


def smoothstep(edge0: float, edge1: float, x: float) -> float:
    t = min(1.0, max(0.0, (float(x) - edge0) / (edge1 - edge0)))
    return t * t * (3.0 - 2.0 * t)


def perspective(fov_y: float, aspect: float, near: float, far: float) -> np.ndarray:
    """Projection for a camera looking down +z."""
    f = 1.0 / math.tan(math.radians(fov_y) * 0.5)
    return np.array([
        [f / aspect, 0.0, 0.0, 0.0],
        [0.0, f, 0.0, 0.0],
        [0.0, 0.0, (far + near) / (far - near), -2.0 * far * near / (far - near)],
        [0.0, 0.0, 1.0, 0.0],
    ])


def project_points(view_projection: np.ndarray, points: np.ndarray) -> np.ndarray:
    """(N, 3) world points -> (N, 3) clip-space points after the perspective divide."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    homo = np.concatenate([pts, np.ones((pts.shape[0], 1))], axis=1) @ view_projection.T
    w = homo[:, 3:4]
    w = np.where(np.abs(w) < _EPS, _EPS, w)
    return homo[:, :3] / w


@dataclass
class CameraRig:
    """Orbiting camera whose view-projection feeds the sampler.

    The camera sits at `pivot + yaw * (0, 0, -distance)`, pushed along its
    own forward axis by `zoom_offset`, and faces along `rotation`.
    """

    fov_y: float = 60.0
    aspect: float = 16.0 / 9.0
    near: float = 0.3
    far: float = 1000.0
    distance: float = 300.0
    pivot: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=identity)
    orbit_yaw: float = 0.0
    zoom_offset: float = 0.0

    @property
    def forward(self) -> np.ndarray:
        return rotate(self.rotation, np.array([0.0, 0.0, 1.0]))

    @property
    def position(self) -> np.ndarray:
        base = self.pivot + rotate(from_euler_y(self.orbit_yaw), np.array([0.0, 0.0, -self.distance]))
        return base + self.forward * self.zoom_offset

    def view_matrix(self) -> np.ndarray:
        r = to_matrix(self.rotation)
        view = np.eye(4)
        view[:3, :3] = r.T
        view[:3, 3] = -r.T @ self.position
        return view

    def projection_matrix(self) -> np.ndarray:
        return perspective(self.fov_y, self.aspect, self.near, self.far)

    def view_projection(self) -> np.ndarray:
        return self.projection_matrix() @ self.view_matrix()
