# mesh.py
"""
Area-weighted sampling of vector artwork.

Closed 2D polygons (with optional holes) are validated, triangulated with
Shapely's constrained Delaunay triangulation and moved into the particle
frame: centered on the artwork's bounding box, Y flipped (artwork Y grows
downwards, the particle frame is Y-up) and uniformly scaled. Sampling
picks a triangle proportionally to its area through a prefix-sum index
(O(log T) per pick) and then a uniform point inside that triangle.
"""
import logging
import math
import numpy as np
import shapely
from shapely.affinity import affine_transform
from shapely.geometry import Polygon
from typing import Any, List, Mapping, Sequence

from errors import ConfigurationError, DegenerateGeometryError
from shapes import ShapeSampler, ShapeSample, _non_negative, _positive, wrap_angle

# --- Data Contracts ---
#
# polygons_from_data(data: Sequence) -> List[Polygon]
#   - Inputs: each entry is either a ring [[x, y], ...] or a mapping
#     {"exterior": ring, "holes": [ring, ...]}. Rings need >= 3 points;
#     closing the ring explicitly is optional.
#   - Errors: ConfigurationError on malformed or non-finite coordinates.
#
# class WeightedTriangleMesh(ShapeSampler):
#   - self.vertices: (T, 3, 2) float64 triangle corners in the particle frame.
#   - self.areas: (T,) float64, self.cumulative: (T,) prefix sum of areas.
#   - Errors: DegenerateGeometryError when the total area is zero.


def _ring(points, where: str) -> np.ndarray:
    try:
        ring = np.asarray(points, dtype=np.float64)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{where}: coordinates must be numeric pairs")
    if ring.ndim != 2 or ring.shape[1] != 2:
        raise ConfigurationError(f"{where}: expected a list of [x, y] pairs, got shape {ring.shape}")
    if not np.all(np.isfinite(ring)):
        raise ConfigurationError(f"{where}: coordinates must be finite")
    if len(ring) > 1 and np.array_equal(ring[0], ring[-1]):
        ring = ring[:-1]
    if len(ring) < 3:
        raise ConfigurationError(f"{where}: a closed polygon needs at least 3 distinct points")
    return ring


def polygons_from_data(data: Sequence[Any]) -> List[Polygon]:
    """Builds Shapely polygons from plain coordinate data."""
    if isinstance(data, (str, bytes)) or not isinstance(data, Sequence) or not data:
        raise ConfigurationError("polygons must be a non-empty list")
    polygons = []
    for index, entry in enumerate(data):
        where = f"polygons[{index}]"
        if isinstance(entry, Mapping):
            if "exterior" not in entry:
                raise ConfigurationError(f"{where}: missing 'exterior'")
            exterior = _ring(entry["exterior"], f"{where}.exterior")
            holes = [
                _ring(hole, f"{where}.holes[{h}]")
                for h, hole in enumerate(entry.get("holes") or [])
            ]
        else:
            exterior = _ring(entry, where)
            holes = []
        polygons.append(Polygon(exterior, holes))
    return polygons


def _polygonal_parts(geometry) -> List[Polygon]:
    parts = []
    for part in shapely.get_parts(geometry):
        if isinstance(part, Polygon):
            parts.append(part)
        elif part.geom_type in ("MultiPolygon", "GeometryCollection"):
            parts.extend(_polygonal_parts(part))
    return parts


def repair_polygons(polygons: Sequence[Polygon]) -> List[Polygon]:
    """Makes self-intersecting input valid, keeping only polygonal pieces."""
    repaired = []
    for index, polygon in enumerate(polygons):
        if polygon.is_valid:
            repaired.append(polygon)
            continue
        logging.warning(
            f"polygons[{index}] is invalid ({shapely.is_valid_reason(polygon)}); repairing."
        )
        repaired.extend(_polygonal_parts(shapely.make_valid(polygon)))
    return repaired


def triangulate(polygons: Sequence[Polygon]) -> np.ndarray:
    """Returns (T, 3, 2) triangle corners covering the polygons, holes excluded."""
    chunks = []
    for polygon in polygons:
        if polygon.is_empty or polygon.area == 0.0:
            continue
        triangles = shapely.get_parts(shapely.constrained_delaunay_triangles(polygon))
        if len(triangles) == 0:
            continue
        coords = shapely.get_coordinates(triangles)
        # Each triangle ring is closed: 4 coordinates, the last repeats the first.
        chunks.append(coords.reshape(-1, 4, 2)[:, :3])
    if not chunks:
        return np.zeros((0, 3, 2), dtype=np.float64)
    return np.concatenate(chunks, axis=0)


def triangle_areas(vertices: np.ndarray) -> np.ndarray:
    ab = vertices[:, 1] - vertices[:, 0]
    ac = vertices[:, 2] - vertices[:, 0]
    return 0.5 * np.abs(ab[:, 0] * ac[:, 1] - ab[:, 1] * ac[:, 0])


def sample_triangles(vertices: np.ndarray, r1: np.ndarray, r2: np.ndarray) -> np.ndarray:
    """
    Uniform points inside triangles (A, B, C).

    P = (1 - s) * A + s * (1 - r2) * B + s * r2 * C with s = sqrt(r1).
    The square root compensates for the triangle widening away from A.
    """
    s = np.sqrt(r1)[:, None]
    r2 = r2[:, None]
    return (1.0 - s) * vertices[:, 0] + s * (1.0 - r2) * vertices[:, 1] + s * r2 * vertices[:, 2]


class WeightedTriangleMesh(ShapeSampler):
    """
    Filled vector shape extruded to a slab of thickness `depth`.

    Args:
        polygons: coordinate data (see polygons_from_data) or Shapely polygons.
        depth: Z extrusion; points get a uniform offset in [-depth/2, depth/2].
        bbox: (min_x, min_y, max_x, max_y) of the artwork, e.g. its viewBox.
            Defaults to the polygons' own bounds.
        scale: uniform scale from artwork units to particle units.
        fit_width: when given, overrides `scale` so the bbox spans this width.
        flip_y: flip Y so the artwork reads upright in a Y-up frame.
    """
    kind = "mesh"

    def __init__(self, polygons, depth=0.0, bbox=None, scale=1.0, fit_width=None,
                 flip_y=True, center=(0.0, 0.0, 0.0)):
        super().__init__(center)
        if polygons and all(isinstance(p, Polygon) for p in polygons):
            shapes = list(polygons)
        else:
            shapes = polygons_from_data(polygons)
        shapes = repair_polygons(shapes)
        if not shapes:
            raise DegenerateGeometryError("vector shape has no polygonal area")
        self.depth = _non_negative("depth", depth)

        if bbox is None:
            min_x, min_y, max_x, max_y = shapely.total_bounds(shapes)
        else:
            try:
                min_x, min_y, max_x, max_y = (float(v) for v in bbox)
            except (TypeError, ValueError):
                raise ConfigurationError(f"bbox must be four numbers, got {bbox!r}")
            if not all(math.isfinite(v) for v in (min_x, min_y, max_x, max_y)):
                raise ConfigurationError(f"bbox must be finite, got {bbox!r}")
        if fit_width is not None:
            span = max_x - min_x
            if span <= 0.0:
                raise ConfigurationError("fit_width needs a bbox with non-zero width")
            self.scale = _positive("fit_width", fit_width) / span
        else:
            self.scale = _positive("scale", scale)

        cx = (min_x + max_x) / 2.0
        cy = (min_y + max_y) / 2.0
        sy = -self.scale if flip_y else self.scale
        # [a, b, d, e, xoff, yoff]: x' = s*(x - cx), y' = +/-s*(y - cy)
        matrix = [self.scale, 0.0, 0.0, sy, -cx * self.scale, -cy * sy]
        self.outline = shapely.union_all([affine_transform(p, matrix) for p in shapes])

        self.vertices = triangulate(_polygonal_parts(self.outline))
        self.areas = triangle_areas(self.vertices)
        self.cumulative = np.cumsum(self.areas)
        self.total_area = float(self.cumulative[-1]) if len(self.cumulative) else 0.0
        if self.total_area <= 0.0:
            raise DegenerateGeometryError("vector shape has zero total area")

        logging.debug(
            f"WeightedTriangleMesh: {len(shapes)} polygons -> {len(self.areas)} triangles, "
            f"area {self.total_area:.3f}, scale {self.scale:.4f}."
        )

    def area(self) -> float:
        return self.total_area

    def bounds(self):
        min_x, min_y, max_x, max_y = self.outline.bounds
        lo = np.array([min_x, min_y, -self.depth / 2.0])
        hi = np.array([max_x, max_y, self.depth / 2.0])
        return self.center + lo, self.center + hi

    def pick_triangles(self, draws: np.ndarray) -> np.ndarray:
        """Maps uniform draws in [0, 1) to triangle indices weighted by area."""
        targets = draws * self.total_area
        picks = np.searchsorted(self.cumulative, targets, side="right")
        return np.minimum(picks, len(self.areas) - 1)

    def _sample_local(self, count, rng):
        draws = rng.random((count, 4))
        chosen = self.vertices[self.pick_triangles(draws[:, 0])]
        planar = sample_triangles(chosen, draws[:, 1], draws[:, 2])
        z = (draws[:, 3] - 0.5) * self.depth
        positions = np.column_stack((planar, z))
        angles = wrap_angle(np.arctan2(planar[:, 1], planar[:, 0]))
        return ShapeSample(positions, angles)

    def _membership_local(self, local, tol):
        distance = shapely.distance(self.outline, shapely.points(local[:, :2]))
        return (distance <= tol) & (np.abs(local[:, 2]) <= self.depth / 2.0 + tol)

    def _boundary_distance_local(self, local):
        return shapely.distance(self.outline.boundary, shapely.points(local[:, :2]))
