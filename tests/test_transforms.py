"""Unit tests for the host-side camera math.

Run with:
    pytest tests/test_transforms.py -v
"""

from __future__ import annotations

import numpy as np
import pytest

from universe.camera import transforms
from universe.camera.transforms import CameraRig

Z = np.array([0.0, 0.0, 1.0])


class TestQuaternions:
    @pytest.mark.parametrize(
        "forward",
        [(1.0, 0.0, 0.0), (0.0, 0.0, -1.0), (3.0, 4.0, 5.0), (0.0, 1.0, 0.0), (0.0, -2.0, 0.0)],
    )
    def test_look_rotation_points_z_along_forward(self, forward):
        q = transforms.look_rotation(np.array(forward))
        f = np.array(forward) / np.linalg.norm(forward)
        np.testing.assert_allclose(transforms.rotate(q, Z), f, atol=1e-9)
        assert np.linalg.norm(q) == pytest.approx(1.0)

    def test_look_rotation_of_zero_is_identity(self):
        np.testing.assert_array_equal(transforms.look_rotation(np.zeros(3)), transforms.IDENTITY)

    def test_matrix_round_trip(self):
        q = transforms.normalize(np.array([0.3, -0.2, 0.9, 0.1]))
        back = transforms.from_matrix(transforms.to_matrix(q))
        assert abs(float(np.dot(q, back))) == pytest.approx(1.0)

    def test_multiply_composes_rotations(self):
        a = transforms.from_euler_y(30.0)
        b = transforms.from_euler_y(60.0)
        np.testing.assert_allclose(transforms.multiply(a, b), transforms.from_euler_y(90.0), atol=1e-12)

    @pytest.mark.parametrize("b", [(1.0, 0.0, 0.0), (0.0, 0.0, -1.0), (1.0, 1.0, 1.0)])
    def test_from_to_rotation(self, b):
        q = transforms.from_to_rotation(Z, np.array(b))
        expected = np.array(b) / np.linalg.norm(b)
        np.testing.assert_allclose(transforms.rotate(q, Z), expected, atol=1e-9)

    def test_nlerp_endpoints_and_clamp(self):
        a = transforms.identity()
        b = transforms.from_euler_y(90.0)
        np.testing.assert_allclose(transforms.nlerp(a, b, 0.0), a)
        np.testing.assert_allclose(transforms.nlerp(a, b, 1.0), b)
        np.testing.assert_allclose(transforms.nlerp(a, b, 7.0), b)

    def test_nlerp_takes_shorter_arc(self):
        a = transforms.identity()
        b = -transforms.from_euler_y(10.0)
        mid = transforms.nlerp(a, b, 0.5)
        assert mid[0] > 0.99


class TestSmoothstep:
    def test_edges_and_midpoint(self):
        assert transforms.smoothstep(-1.0, 1.0, -2.0) == 0.0
        assert transforms.smoothstep(-1.0, 1.0, 2.0) == 1.0
        assert transforms.smoothstep(-1.0, 1.0, 0.0) == pytest.approx(0.5)


class TestProjection:
    def test_point_on_axis_projects_to_centre(self):
        proj = transforms.perspective(60.0, 1.0, 0.1, 100.0)
        clip = transforms.project_points(proj, np.array([[0.0, 0.0, 10.0]]))
        np.testing.assert_allclose(clip[0, :2], [0.0, 0.0], atol=1e-12)
        assert -1.0 < clip[0, 2] < 1.0

    def test_depth_range(self):
        proj = transforms.perspective(60.0, 1.0, 0.5, 50.0)
        clip = transforms.project_points(proj, np.array([[0.0, 0.0, 0.5], [0.0, 0.0, 50.0]]))
        np.testing.assert_allclose(clip[:, 2], [-1.0, 1.0], atol=1e-9)

    def test_frustum_edge_maps_to_one(self):
        proj = transforms.perspective(90.0, 1.0, 0.1, 100.0)
        clip = transforms.project_points(proj, np.array([[10.0, 10.0, 10.0]]))
        np.testing.assert_allclose(clip[0, :2], [1.0, 1.0])


class TestCameraRig:
    def test_default_position_is_behind_pivot(self):
        rig = CameraRig(distance=300.0)
        np.testing.assert_allclose(rig.position, [0.0, 0.0, -300.0])

    def test_orbit_yaw_moves_around_pivot(self):
        rig = CameraRig(distance=10.0, orbit_yaw=90.0)
        np.testing.assert_allclose(rig.position, [-10.0, 0.0, 0.0], atol=1e-9)

    def test_zoom_moves_along_forward(self):
        rig = CameraRig(distance=10.0, zoom_offset=4.0)
        np.testing.assert_allclose(rig.position, [0.0, 0.0, -6.0])

    def test_pivot_lands_in_screen_centre(self):
        rig = CameraRig(distance=50.0)
        clip = transforms.project_points(rig.view_projection(), np.zeros((1, 3)))
        np.testing.assert_allclose(clip[0, :2], [0.0, 0.0], atol=1e-12)

    def test_view_matrix_is_inverse_of_pose(self):
        rig = CameraRig(distance=20.0, rotation=transforms.from_euler_y(30.0), orbit_yaw=45.0)
        view = rig.view_matrix()
        eye = np.append(rig.position, 1.0)
        np.testing.assert_allclose(view @ eye, [0.0, 0.0, 0.0, 1.0], atol=1e-9)
