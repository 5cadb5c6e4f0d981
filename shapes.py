# shapes.py
"""
Parametric shape samplers.

Every sampler places N points on or inside a target domain with the
density the domain calls for (uniform by area for tori and discs, uniform
by volume for ellipsoids, cylinders and rounded boxes, per face for
rounded-box shells). All randomness comes from a caller-supplied
generator, so a seeded ``np.random.default_rng`` gives reproducible
fields.

Samplers only ever call ``rng.random(shape)``; any object exposing that
method can be injected.
"""
import logging
import math
import numpy as np
from typing import NamedTuple, Sequence, Tuple

from constants import TAU, DEFAULT_RETRY_BUDGET, ROUNDED_BOX_FACE_WEIGHTS
from errors import ConfigurationError, SamplingExhaustion

# --- Data Contracts ---
#
# class ShapeSampler:
#   - sample(self, count: int, rng) -> ShapeSample
#     - Outputs: ShapeSample(positions (count, 3) float64, angles (count,) float64)
#     - Invariants: exactly `count` rows; every row satisfies membership().
#       angles are in [0, 2*pi) and hold the angular coordinate around the
#       shape's ring axis (u for a torus, polar angle for a disc).
#   - membership(self, points: np.ndarray, tol: float) -> np.ndarray[bool]
#   - boundary_distance(self, points: np.ndarray) -> np.ndarray
#     - Non-negative for members; used by edge fades.
#   - area(self) -> float
#     - Area (surfaces) or volume (solids). Zero means degenerate.
#   - bounds(self) -> Tuple[np.ndarray, np.ndarray]


class ShapeSample(NamedTuple):
    positions: np.ndarray
    angles: np.ndarray


def _positive(name: str, value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(number) or number <= 0.0:
        raise ConfigurationError(f"{name} must be a positive finite number, got {value!r}")
    return number


def _non_negative(name: str, value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(number) or number < 0.0:
        raise ConfigurationError(f"{name} must be a non-negative finite number, got {value!r}")
    return number


def _vector3(name: str, value) -> np.ndarray:
    vec = np.asarray(value, dtype=np.float64)
    if vec.shape != (3,) or not np.all(np.isfinite(vec)):
        raise ConfigurationError(f"{name} must be three finite numbers, got {value!r}")
    return vec


def _sector(start_angle, sweep) -> Tuple[float, float]:
    start = float(start_angle)
    if not math.isfinite(start):
        raise ConfigurationError(f"start_angle must be finite, got {start_angle!r}")
    span = _non_negative("sweep", sweep)
    if span > TAU:
        raise ConfigurationError(f"sweep must not exceed 2*pi, got {sweep!r}")
    return start % TAU, span


def wrap_angle(angles):
    """Maps angles into [0, 2*pi)."""
    wrapped = np.mod(angles, TAU)
    # np.mod can return TAU itself for tiny negative inputs.
    return np.where(wrapped >= TAU, 0.0, wrapped)


def _sector_offset(angles: np.ndarray, start: float) -> np.ndarray:
    return wrap_angle(angles - start)


def fibonacci_directions(count: int) -> np.ndarray:
    """Unit vectors spread evenly over the sphere along a golden-angle spiral."""
    if count <= 0:
        return np.zeros((0, 3), dtype=np.float64)
    golden_angle = math.pi * (3.0 - math.sqrt(5.0))
    i = np.arange(count, dtype=np.float64)
    z = 1.0 - 2.0 * (i + 0.5) / count
    r = np.sqrt(np.maximum(0.0, 1.0 - z * z))
    phi = i * golden_angle
    return np.stack((r * np.cos(phi), r * np.sin(phi), z), axis=-1)


def rejection_sample(propose, accept, count: int, budget: int) -> np.ndarray:
    """
    Draws `count` points by rejection with a fixed per-point retry budget.

    Each round proposes a fresh candidate for every point still pending.
    After `budget` rounds the pending points are reported through
    SamplingExhaustion, which carries the last candidate of every point.

    Args:
        propose: callable(k) -> (k, 3) candidates.
        accept: callable(candidates) -> boolean mask.
        count: number of points wanted.
        budget: maximum candidates per point.
    """
    points = np.empty((count, 3), dtype=np.float64)
    done = np.zeros(count, dtype=bool)
    for _ in range(budget):
        pending = np.flatnonzero(~done)
        if pending.size == 0:
            break
        candidates = propose(pending.size)
        points[pending] = candidates
        done[pending[accept(candidates)]] = True
    if not done.all():
        missing = int(np.count_nonzero(~done))
        raise SamplingExhaustion(
            f"{missing} of {count} points exhausted a retry budget of {budget}",
            done, points
        )
    return points


class ShapeSampler:
    """
    Base class for every sampled domain.

    Subclasses implement `_sample_local` in shape-local coordinates; the
    base class applies the center offset.
    """
    kind = "shape"

    def __init__(self, center: Sequence[float] = (0.0, 0.0, 0.0)):
        self.center = _vector3("center", center)

    def area(self) -> float:
        raise NotImplementedError

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        raise NotImplementedError

    def _sample_local(self, count: int, rng) -> ShapeSample:
        raise NotImplementedError

    def _membership_local(self, local: np.ndarray, tol: float) -> np.ndarray:
        raise NotImplementedError

    def _boundary_distance_local(self, local: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def sample(self, count: int, rng) -> ShapeSample:
        """Returns `count` points drawn from this shape."""
        count = int(count)
        if count < 0:
            raise ConfigurationError(f"count must be non-negative, got {count}")
        if count == 0:
            return ShapeSample(np.zeros((0, 3)), np.zeros(0))
        local = self._sample_local(count, rng)
        return ShapeSample(local.positions + self.center, local.angles)

    def sample_point(self, rng) -> np.ndarray:
        return self.sample(1, rng).positions[0]

    def membership(self, points, tol: float = 1e-9) -> np.ndarray:
        local = np.atleast_2d(np.asarray(points, dtype=np.float64)) - self.center
        return self._membership_local(local, tol)

    def boundary_distance(self, points) -> np.ndarray:
        local = np.atleast_2d(np.asarray(points, dtype=np.float64)) - self.center
        return np.maximum(self._boundary_distance_local(local), 0.0)

    def __repr__(self):
        return f"{type(self).__name__}(area={self.area():.4g}, center={self.center.tolist()})"


class Torus(ShapeSampler):
    """
    Torus around the Z axis, ring in the XY plane.

    `thickness_min` < 1 draws a per-point tube radius in
    [thickness_min * r, r], filling the tube instead of its surface.
    A partial ring (a lock shackle arc, a highlighted sector) is set with
    `start_angle` and `sweep`.
    """
    kind = "torus"

    def __init__(self, major_radius, tube_radius, thickness_min=1.0,
                 start_angle=0.0, sweep=TAU, center=(0.0, 0.0, 0.0)):
        super().__init__(center)
        self.major_radius = _positive("major_radius", major_radius)
        self.tube_radius = _positive("tube_radius", tube_radius)
        self.thickness_min = _positive("thickness_min", thickness_min)
        if self.thickness_min > 1.0:
            raise ConfigurationError(f"thickness_min must be in (0, 1], got {thickness_min!r}")
        self.start_angle, self.sweep = _sector(start_angle, sweep)

    def area(self) -> float:
        return 4.0 * math.pi ** 2 * self.major_radius * self.tube_radius * (self.sweep / TAU)

    def bounds(self):
        reach = self.major_radius + self.tube_radius
        extent = np.array([reach, reach, self.tube_radius])
        return self.center - extent, self.center + extent

    def _sample_local(self, count, rng):
        draws = rng.random((count, 3))
        u = self.start_angle + draws[:, 0] * self.sweep
        v = draws[:, 1] * TAU
        r = self.tube_radius * (self.thickness_min + (1.0 - self.thickness_min) * draws[:, 2])
        ring = self.major_radius + r * np.cos(v)
        positions = np.stack((ring * np.cos(u), ring * np.sin(u), r * np.sin(v)), axis=-1)
        return ShapeSample(positions, wrap_angle(u))

    def _tube_distance(self, local):
        planar = np.hypot(local[:, 0], local[:, 1]) - self.major_radius
        return np.hypot(planar, local[:, 2])

    def _membership_local(self, local, tol):
        d = self._tube_distance(local)
        inside = (d <= self.tube_radius + tol) & (d >= self.thickness_min * self.tube_radius - tol)
        if self.sweep < TAU:
            offset = _sector_offset(np.arctan2(local[:, 1], local[:, 0]), self.start_angle)
            inside &= (offset <= self.sweep + tol) | (offset >= TAU - tol)
        return inside

    def _boundary_distance_local(self, local):
        distance = self.tube_radius - self._tube_distance(local)
        if self.sweep < TAU:
            offset = _sector_offset(np.arctan2(local[:, 1], local[:, 0]), self.start_angle)
            arc = np.minimum(offset, np.abs(self.sweep - offset)) * self.major_radius
            distance = np.minimum(distance, arc)
        return distance


class EllipsoidVolume(ShapeSampler):
    """
    Uniform-volume ellipsoid (a sphere when all scale factors are 1).

    Direction: theta = 2*pi*u, phi = acos(2v - 1). Radius: cube root of a
    uniform draw between inner_radius^3 and radius^3, so density is
    uniform through the volume rather than piled up at the center.
    `distribution="fibonacci"` swaps the random directions for a golden
    spiral, which reads as an even shell when inner_radius == radius.
    """
    kind = "ellipsoid"

    def __init__(self, radius, scale=(1.0, 1.0, 1.0), inner_radius=0.0,
                 distribution="random", center=(0.0, 0.0, 0.0)):
        super().__init__(center)
        self.radius = _positive("radius", radius)
        self.inner_radius = _non_negative("inner_radius", inner_radius)
        if self.inner_radius > self.radius:
            raise ConfigurationError(
                f"inner_radius ({inner_radius}) must not exceed radius ({radius})"
            )
        self.scale = _vector3("scale", scale)
        for axis, factor in zip("xyz", self.scale):
            _positive(f"scale.{axis}", factor)
        if distribution not in ("random", "fibonacci"):
            raise ConfigurationError(f"unknown distribution {distribution!r}")
        self.distribution = distribution

    def area(self) -> float:
        shell = self.radius ** 3 - self.inner_radius ** 3
        if shell == 0.0:
            # A pure shell still has a surface to sample.
            return 4.0 * math.pi * self.radius ** 2 * float(np.prod(self.scale))
        return 4.0 / 3.0 * math.pi * shell * float(np.prod(self.scale))

    def bounds(self):
        extent = self.radius * self.scale
        return self.center - extent, self.center + extent

    def _sample_local(self, count, rng):
        draws = rng.random((count, 3))
        if self.distribution == "fibonacci":
            directions = fibonacci_directions(count)
            theta = np.arctan2(directions[:, 1], directions[:, 0])
        else:
            theta = TAU * draws[:, 0]
            phi = np.arccos(2.0 * draws[:, 1] - 1.0)
            sin_phi = np.sin(phi)
            directions = np.stack(
                (sin_phi * np.cos(theta), sin_phi * np.sin(theta), np.cos(phi)), axis=-1
            )
        inner3 = self.inner_radius ** 3
        rho = np.cbrt(inner3 + (self.radius ** 3 - inner3) * draws[:, 2])
        positions = directions * rho[:, None] * self.scale
        return ShapeSample(positions, wrap_angle(theta))

    def _membership_local(self, local, tol):
        rho = np.linalg.norm(local / self.scale, axis=1)
        return (rho <= self.radius + tol) & (rho >= self.inner_radius - tol)

    def _boundary_distance_local(self, local):
        rho = np.linalg.norm(local / self.scale, axis=1)
        distance = self.radius - rho
        if self.inner_radius > 0.0:
            distance = np.minimum(distance, rho - self.inner_radius)
        return distance * float(self.scale.min())


class Disc(ShapeSampler):
    """
    Flat disc or annulus in the XY plane with a shallow Z depth.

    Radius is sqrt(lerp(inner^2, outer^2, w)), uniform by area between the
    two radii. Depth is an independent uniform offset in [-depth/2, depth/2].
    """
    kind = "disc"

    def __init__(self, outer_radius, inner_radius=0.0, depth=0.0,
                 start_angle=0.0, sweep=TAU, center=(0.0, 0.0, 0.0)):
        super().__init__(center)
        self.outer_radius = _positive("outer_radius", outer_radius)
        self.inner_radius = _non_negative("inner_radius", inner_radius)
        if self.inner_radius > self.outer_radius:
            raise ConfigurationError(
                f"inner_radius ({inner_radius}) must not exceed outer_radius ({outer_radius})"
            )
        self.depth = _non_negative("depth", depth)
        self.start_angle, self.sweep = _sector(start_angle, sweep)

    def area(self) -> float:
        return 0.5 * (self.outer_radius ** 2 - self.inner_radius ** 2) * self.sweep

    def bounds(self):
        extent = np.array([self.outer_radius, self.outer_radius, self.depth / 2.0])
        return self.center - extent, self.center + extent

    def _sample_local(self, count, rng):
        draws = rng.random((count, 3))
        angle = self.start_angle + draws[:, 0] * self.sweep
        inner2 = self.inner_radius ** 2
        r = np.sqrt(inner2 + (self.outer_radius ** 2 - inner2) * draws[:, 1])
        z = (draws[:, 2] - 0.5) * self.depth
        positions = np.stack((r * np.cos(angle), r * np.sin(angle), z), axis=-1)
        return ShapeSample(positions, wrap_angle(angle))

    def _membership_local(self, local, tol):
        rho = np.hypot(local[:, 0], local[:, 1])
        inside = (rho <= self.outer_radius + tol) & (rho >= self.inner_radius - tol)
        inside &= np.abs(local[:, 2]) <= self.depth / 2.0 + tol
        if self.sweep < TAU:
            offset = _sector_offset(np.arctan2(local[:, 1], local[:, 0]), self.start_angle)
            inside &= (offset <= self.sweep + tol) | (offset >= TAU - tol)
        return inside

    def _boundary_distance_local(self, local):
        rho = np.hypot(local[:, 0], local[:, 1])
        distance = self.outer_radius - rho
        if self.inner_radius > 0.0:
            distance = np.minimum(distance, rho - self.inner_radius)
        if self.sweep < TAU:
            offset = _sector_offset(np.arctan2(local[:, 1], local[:, 0]), self.start_angle)
            distance = np.minimum(distance, np.minimum(offset, np.abs(self.sweep - offset)) * rho)
        return distance


class Cylinder(ShapeSampler):
    """Tube along the Y axis with an annular cross-section, uniform by volume."""
    kind = "cylinder"

    def __init__(self, radius, height, inner_radius=0.0, center=(0.0, 0.0, 0.0)):
        super().__init__(center)
        self.radius = _positive("radius", radius)
        self.height = _positive("height", height)
        self.inner_radius = _non_negative("inner_radius", inner_radius)
        if self.inner_radius > self.radius:
            raise ConfigurationError(
                f"inner_radius ({inner_radius}) must not exceed radius ({radius})"
            )

    def area(self) -> float:
        return math.pi * (self.radius ** 2 - self.inner_radius ** 2) * self.height

    def bounds(self):
        extent = np.array([self.radius, self.height / 2.0, self.radius])
        return self.center - extent, self.center + extent

    def _sample_local(self, count, rng):
        draws = rng.random((count, 3))
        angle = draws[:, 0] * TAU
        inner2 = self.inner_radius ** 2
        r = np.sqrt(inner2 + (self.radius ** 2 - inner2) * draws[:, 1])
        y = (draws[:, 2] - 0.5) * self.height
        positions = np.stack((r * np.cos(angle), y, r * np.sin(angle)), axis=-1)
        return ShapeSample(positions, angle)

    def _membership_local(self, local, tol):
        rho = np.hypot(local[:, 0], local[:, 2])
        return ((rho <= self.radius + tol) & (rho >= self.inner_radius - tol)
                & (np.abs(local[:, 1]) <= self.height / 2.0 + tol))

    def _boundary_distance_local(self, local):
        rho = np.hypot(local[:, 0], local[:, 2])
        distance = np.minimum(self.radius - rho, self.height / 2.0 - np.abs(local[:, 1]))
        if self.inner_radius > 0.0:
            distance = np.minimum(distance, rho - self.inner_radius)
        return distance


def inside_rounded_rect(x, y, half_width, half_height, radius):
    """
    Membership in a rectangle whose corners are rounded by `radius`.

    A point is inside if it lies in the core rectangle or within a corner
    cap. Both cases reduce to: the overshoot past the inner rectangle
    (half extents minus radius) is no longer than the radius.
    """
    x = np.abs(x)
    y = np.abs(y)
    dx = np.maximum(x - (half_width - radius), 0.0)
    dy = np.maximum(y - (half_height - radius), 0.0)
    return (x <= half_width) & (y <= half_height) & (dx * dx + dy * dy <= radius * radius)


class RoundedBoxVolume(ShapeSampler):
    """
    Box with rounded vertical edges (rounded rectangle in XY, extruded in Z).

    Sampled by rejection inside the bounding box. Every point gets at most
    `retry_budget` candidates; a point that exhausts its budget is placed
    at its last candidate clamped onto the inner rectangle, which is
    always inside the shape. `fallback_count` accumulates how often that
    happened.
    """
    kind = "rounded_box"

    def __init__(self, width, height, depth, corner_radius=0.0,
                 retry_budget=DEFAULT_RETRY_BUDGET, center=(0.0, 0.0, 0.0)):
        super().__init__(center)
        self.width = _positive("width", width)
        self.height = _positive("height", height)
        self.depth = _positive("depth", depth)
        radius = _non_negative("corner_radius", corner_radius)
        self.half_width = self.width / 2.0
        self.half_height = self.height / 2.0
        self.corner_radius = min(radius, self.half_width, self.half_height)
        try:
            budget = int(retry_budget)
        except (TypeError, ValueError):
            raise ConfigurationError(f"retry_budget must be an integer, got {retry_budget!r}")
        if budget < 1:
            raise ConfigurationError(f"retry_budget must be at least 1, got {retry_budget!r}")
        self.retry_budget = budget
        self.fallback_count = 0

    def face_area(self) -> float:
        r = self.corner_radius
        return self.width * self.height - (4.0 - math.pi) * r * r

    def area(self) -> float:
        return self.face_area() * self.depth

    def bounds(self):
        extent = np.array([self.half_width, self.half_height, self.depth / 2.0])
        return self.center - extent, self.center + extent

    def _propose(self, rng, k):
        draws = rng.random((k, 3)) - 0.5
        return draws * np.array([self.width, self.height, self.depth])

    def _accept(self, candidates):
        return inside_rounded_rect(
            candidates[:, 0], candidates[:, 1],
            self.half_width, self.half_height, self.corner_radius
        )

    def fallback(self, candidates: np.ndarray) -> np.ndarray:
        """Nearest point on the inner rectangle (deterministic, always inside)."""
        inner_w = self.half_width - self.corner_radius
        inner_h = self.half_height - self.corner_radius
        out = np.array(candidates, dtype=np.float64, copy=True)
        out[:, 0] = np.clip(out[:, 0], -inner_w, inner_w)
        out[:, 1] = np.clip(out[:, 1], -inner_h, inner_h)
        out[:, 2] = np.clip(out[:, 2], -self.depth / 2.0, self.depth / 2.0)
        return out

    def _fill(self, count, rng) -> np.ndarray:
        try:
            return rejection_sample(
                lambda k: self._propose(rng, k), self._accept, count, self.retry_budget
            )
        except SamplingExhaustion as exc:
            positions = exc.candidates
            missing = ~exc.accepted
            positions[missing] = self.fallback(positions[missing])
            self.fallback_count += int(np.count_nonzero(missing))
            logging.warning(f"{type(self).__name__}: {exc}; used inner-rectangle fallback.")
            return positions

    def _sample_local(self, count, rng):
        positions = self._fill(count, rng)
        angles = wrap_angle(np.arctan2(positions[:, 1], positions[:, 0]))
        return ShapeSample(positions, angles)

    def _membership_local(self, local, tol):
        inside = inside_rounded_rect(
            local[:, 0], local[:, 1],
            self.half_width + tol, self.half_height + tol, self.corner_radius + tol
        )
        return inside & (np.abs(local[:, 2]) <= self.depth / 2.0 + tol)

    def _boundary_distance_local(self, local):
        # Signed distance to the rounded outline in XY, negated so inside is positive.
        r = self.corner_radius
        qx = np.abs(local[:, 0]) - (self.half_width - r)
        qy = np.abs(local[:, 1]) - (self.half_height - r)
        outside = np.hypot(np.maximum(qx, 0.0), np.maximum(qy, 0.0))
        sdf = outside + np.minimum(np.maximum(qx, qy), 0.0) - r
        return -sdf


class RoundedBoxSurface(RoundedBoxVolume):
    """
    Shell of a rounded box: front and back faces plus four side strips.

    `face_weights` holds the share of points for front (+Z), back (-Z),
    top, bottom, left and right. Front and back faces are filled with the
    same bounded rejection and fallback as the volume. Side strips span
    the straight part of each edge, between the corner caps, over the full
    depth.
    """
    kind = "rounded_box_surface"

    def __init__(self, width, height, depth, corner_radius=0.0,
                 face_weights=ROUNDED_BOX_FACE_WEIGHTS,
                 retry_budget=DEFAULT_RETRY_BUDGET, center=(0.0, 0.0, 0.0)):
        super().__init__(width, height, depth, corner_radius, retry_budget, center)
        try:
            weights = np.asarray(face_weights, dtype=np.float64)
        except (TypeError, ValueError):
            raise ConfigurationError(f"face_weights must be six numbers, got {face_weights!r}")
        if (weights.shape != (6,) or not np.all(np.isfinite(weights))
                or np.any(weights < 0.0) or weights.sum() <= 0.0):
            raise ConfigurationError(
                f"face_weights must be six non-negative numbers with a positive sum, got {face_weights!r}"
            )
        self.face_weights = weights / weights.sum()
        self._face_cumulative = np.cumsum(self.face_weights)

    def area(self) -> float:
        perimeter = 2.0 * (self.width + self.height) - (8.0 - TAU) * self.corner_radius
        return 2.0 * self.face_area() + perimeter * self.depth

    def pick_faces(self, draws: np.ndarray) -> np.ndarray:
        """Maps uniform draws in [0, 1) to face indices 0..5."""
        faces = np.searchsorted(self._face_cumulative, draws, side="right")
        return np.minimum(faces, 5)

    def _sample_local(self, count, rng):
        draws = rng.random((count, 3))
        faces = self.pick_faces(draws[:, 0])
        positions = np.empty((count, 3), dtype=np.float64)

        caps = faces < 2
        n_caps = int(np.count_nonzero(caps))
        if n_caps:
            positions[caps] = self._fill(n_caps, rng)
            positions[caps, 2] = np.where(faces[caps] == 0, 0.5, -0.5) * self.depth

        along = draws[:, 1] * 2.0 - 1.0
        horizontal = (faces == 2) | (faces == 3)
        positions[horizontal, 0] = along[horizontal] * (self.half_width - self.corner_radius)
        positions[horizontal, 1] = np.where(faces[horizontal] == 2, self.half_height, -self.half_height)
        vertical = faces >= 4
        positions[vertical, 0] = np.where(faces[vertical] == 5, self.half_width, -self.half_width)
        positions[vertical, 1] = along[vertical] * (self.half_height - self.corner_radius)
        sides = faces >= 2
        positions[sides, 2] = (draws[sides, 2] - 0.5) * self.depth

        angles = wrap_angle(np.arctan2(positions[:, 1], positions[:, 0]))
        return ShapeSample(positions, angles)

    def _membership_local(self, local, tol):
        half_depth = self.depth / 2.0
        z = np.abs(local[:, 2])
        on_face = (np.abs(z - half_depth) <= tol) & inside_rounded_rect(
            local[:, 0], local[:, 1],
            self.half_width + tol, self.half_height + tol, self.corner_radius + tol
        )
        on_side = (z <= half_depth + tol) & (np.abs(self._boundary_distance_local(local)) <= tol)
        return on_face | on_side


def sphere(radius, center=(0.0, 0.0, 0.0), inner_radius=0.0) -> EllipsoidVolume:
    return EllipsoidVolume(radius, inner_radius=inner_radius, center=center)
