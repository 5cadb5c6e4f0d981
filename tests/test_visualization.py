import math

import numpy as np
import pytest

from visualization import (
    camera_distance_for_width, normalize_pointer, project_points, rotate, splat_points
)


@pytest.mark.parametrize("width,distance", [(320, 140), (599, 140), (600, 120), (899, 120), (900, 100), (1920, 100)])
def test_camera_distance_is_responsive(width, distance):
    assert camera_distance_for_width(width) == distance


def test_pointer_is_normalized_with_y_up():
    assert normalize_pointer((0, 0), 800, 600) == (-1.0, 1.0)
    assert normalize_pointer((400, 300), 800, 600) == (0.0, 0.0)
    assert normalize_pointer((800, 600), 800, 600) == (1.0, -1.0)
    assert normalize_pointer((2000, -50), 800, 600) == (1.0, 1.0)


def test_origin_projects_to_screen_center():
    xy, depth = project_points(np.zeros((1, 3)), width=800, height=600, camera_distance=100)
    assert np.allclose(xy, [[400, 300]])
    assert depth[0] == pytest.approx(100)


def test_positive_y_is_drawn_above_center():
    xy, _ = project_points(np.array([[10.0, 10.0, 0.0]]), width=800, height=600)
    assert xy[0, 0] > 400
    assert xy[0, 1] < 300


def test_nearer_points_spread_further():
    points = np.array([[10.0, 0.0, 0.0], [10.0, 0.0, 50.0]])
    xy, depth = project_points(points, width=800, height=600, camera_distance=100)
    assert depth[1] < depth[0]
    assert xy[1, 0] > xy[0, 0]


def test_field_of_view_edge_maps_to_screen_edge():
    half = 100 * math.tan(math.radians(25))
    xy, _ = project_points(np.array([[0.0, half, 0.0]]), width=800, height=600,
                           camera_distance=100, fov_deg=50)
    assert xy[0, 1] == pytest.approx(0.0, abs=1e-9)


def test_rotation_tilts_and_yaws():
    point = np.array([[0.0, 1.0, 0.0]])
    assert np.allclose(rotate(point, math.pi / 2, 0.0), [[0.0, 0.0, 1.0]])
    point = np.array([[1.0, 0.0, 0.0]])
    assert np.allclose(rotate(point, 0.0, math.pi / 2), [[0.0, 0.0, -1.0]])


def test_splat_accumulates_and_drops_offscreen():
    xy = np.array([[1.2, 1.7], [1.9, 1.1], [5.0, 0.0], [-1.0, 0.0], [0.0, 3.0]])
    weights = np.array([0.25, 0.5, 1.0, 1.0, np.nan])
    buffer = splat_points(xy, weights, 4, 3)
    assert buffer.shape == (4, 3)
    assert buffer[1, 1] == pytest.approx(0.75)
    assert buffer.sum() == pytest.approx(0.75)
