import numpy as np
import pytest
from shapely.geometry import Polygon

from errors import ConfigurationError, DegenerateGeometryError
from mesh import (
    WeightedTriangleMesh, polygons_from_data, repair_polygons, sample_triangles,
    triangle_areas, triangulate
)

BIG = [[0, 0], [3, 0], [0, 2]]      # area 3
SMALL = [[10, 0], [11, 0], [10, 2]]  # area 1


def test_area_weighted_split_is_three_to_one(rng):
    mesh = WeightedTriangleMesh([BIG, SMALL], flip_y=False)
    assert mesh.area() == pytest.approx(4.0)
    p = mesh.sample(4000, rng).positions
    # Centered on the bbox (x center 5.5): the big triangle lies left of 0.
    on_big = int(np.count_nonzero(p[:, 0] < 0))
    assert abs(on_big - 3000) <= 150
    assert abs((4000 - on_big) - 1000) <= 150


def test_pick_triangles_follows_prefix_sum():
    mesh = WeightedTriangleMesh([BIG, SMALL])
    draws = (np.arange(4000) + 0.5) / 4000
    counts = np.bincount(mesh.pick_triangles(draws), minlength=len(mesh.areas))
    expected = mesh.areas / mesh.total_area * 4000
    assert np.all(np.abs(counts - expected) <= 1)


def test_pick_triangles_never_overflows():
    mesh = WeightedTriangleMesh([BIG, SMALL])
    picks = mesh.pick_triangles(np.array([0.0, 0.9999999999, 1.0]))
    assert np.all(picks < len(mesh.areas))


def test_samples_stay_inside_triangle():
    vertices = np.array([[[0.0, 0.0], [4.0, 0.0], [0.0, 4.0]]] * 3)
    r1 = np.array([0.0, 1.0, 0.25])
    r2 = np.array([0.5, 0.0, 1.0])
    points = sample_triangles(vertices, r1, r2)
    assert np.allclose(points[0], [0, 0])
    assert np.allclose(points[1], [4, 0])
    assert np.all(points >= -1e-12)
    assert np.all(points.sum(axis=1) <= 4 + 1e-12)


def test_holes_are_never_sampled(rng):
    square = {"exterior": [[0, 0], [10, 0], [10, 10], [0, 10]],
              "holes": [[[4, 4], [6, 4], [6, 6], [4, 6]]]}
    mesh = WeightedTriangleMesh([square], depth=2)
    assert mesh.area() == pytest.approx(96.0)
    p = mesh.sample(5000, rng).positions
    in_hole = (np.abs(p[:, 0]) < 0.999) & (np.abs(p[:, 1]) < 0.999)
    assert not in_hole.any()
    assert np.all(np.abs(p[:, 2]) <= 1 + 1e-9)
    assert mesh.membership(p, tol=1e-7).all()
    assert not mesh.membership([[0.0, 0.0, 0.0]]).any()


def test_frame_is_centered_flipped_and_scaled():
    # Artwork Y grows downwards: the top of the bbox maps to +Y.
    mesh = WeightedTriangleMesh([[[0, 0], [20, 0], [0, 10]]], bbox=(0, 0, 20, 10), fit_width=10)
    assert mesh.scale == pytest.approx(0.5)
    lo, hi = mesh.bounds()
    assert np.allclose(lo[:2], [-5, -2.5])
    assert np.allclose(hi[:2], [5, 2.5])
    # The right angle sits at artwork (0, 0), now the top-left corner.
    assert mesh.membership([[4.0, 2.4, 0.0]]).all()
    assert not mesh.membership([[4.0, -2.4, 0.0]]).any()


def test_triangulation_covers_polygon_area():
    polygon = Polygon([(0, 0), (4, 0), (4, 3), (2, 5), (0, 3)])
    vertices = triangulate([polygon])
    assert vertices.shape[1:] == (3, 2)
    assert triangle_areas(vertices).sum() == pytest.approx(polygon.area)


def test_self_intersecting_polygon_is_repaired():
    bowtie = Polygon([(0, 0), (2, 2), (2, 0), (0, 2)])
    repaired = repair_polygons([bowtie])
    assert all(p.is_valid for p in repaired)
    assert sum(p.area for p in repaired) == pytest.approx(2.0)


@pytest.mark.parametrize("data", [
    [],
    "not polygons",
    [[[0, 0], [1, 0]]],
    [[[0, 0], [1, float("nan")], [0, 1]]],
    [[[0, 0, 0], [1, 0, 0], [0, 1, 0]]],
    [{"holes": []}],
])
def test_malformed_polygon_data_raises(data):
    with pytest.raises(ConfigurationError):
        polygons_from_data(data)


def test_closing_point_is_optional():
    open_ring, closed_ring = polygons_from_data([BIG, BIG + [BIG[0]]])
    assert open_ring.equals(closed_ring)


def test_zero_area_shape_is_degenerate():
    with pytest.raises(DegenerateGeometryError):
        WeightedTriangleMesh([[[0, 0], [1, 0], [2, 0]]], bbox=(0, 0, 2, 1))
