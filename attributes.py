# attributes.py
"""
Derives per-particle size and opacity.

Static rules run once after sampling: a vertical gradient, an optional
depth gradient, an edge fade and region highlight overrides. Dynamic
rules run every tick for the regions that declare them: the clockwise
sweep highlight around a ring and the moving "pupil" mask that follows
the smoothed interaction vector.
"""
import logging
import math
import numpy as np
from dataclasses import dataclass
from numba import jit
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from constants import (
    TAU, DEFAULT_OPACITY, DEFAULT_SIZE_RANGE, DEFAULT_OPACITY_BOUNDS, DEFAULT_SIZE_BOUNDS,
    DEFAULT_SWEEP_START_ANGLE, DEFAULT_SWEEP_DIM, DEFAULT_SWEEP_BRIGHT
)
from errors import ConfigurationError
from particle import ParticleField, RegionSpec

# --- Data Contracts ---
#
# class AttributeAssigner:
#   - assign_static(self, field: ParticleField, regions, rng) -> None
#     - Side Effects: fills field.size, field.base_opacity and
#       field.bright_opacity, then freezes the field.
#     - Invariants: size within size_bounds, opacity within opacity_bounds.
#
#   - update(self, field: ParticleField, elapsed: float, interaction) -> None
#     - Inputs: elapsed seconds, smoothed interaction vector (2,).
#     - Side Effects: rewrites field.opacity from base_opacity plus the
#       sweep and mask rules. Never touches the static arrays.
#
# Sweep boundary convention: a particle is bright when its clockwise
# offset from the start direction is <= the sweep angle, except that a
# sweep angle of exactly 0 lights nothing (elapsed = 0 is all dim).


def smoothstep(edge0, edge1, x):
    """Cubic Hermite step: 0 below edge0, 1 above edge1, 3t^2 - 2t^3 between."""
    x = np.asarray(x, dtype=np.float64)
    if edge1 == edge0:
        return np.where(x < edge0, 0.0, 1.0)
    t = np.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


@jit(nopython=True)
def _smoothstep_scalar(edge0, edge1, x):
    if edge1 == edge0:
        return 0.0 if x < edge0 else 1.0
    t = (x - edge0) / (edge1 - edge0)
    if t < 0.0:
        t = 0.0
    elif t > 1.0:
        t = 1.0
    return t * t * (3.0 - 2.0 * t)


@jit(nopython=True)
def _sweep_opacity_numba(angles, bright, out, start, stop, start_angle, direction, sweep_angle, dim):
    """
    Numba-jitted sweep highlight over one region's index range.

    direction is +1 for clockwise and -1 for counter-clockwise.
    """
    tau = 2.0 * np.pi
    for i in range(start, stop):
        offset = (direction * (start_angle - angles[i])) % tau
        if offset >= tau:
            offset = 0.0
        if sweep_angle > 0.0 and offset <= sweep_angle:
            out[i] = bright[i]
        else:
            out[i] = dim


@jit(nopython=True)
def _planar_mask_numba(positions, out, start, stop, focal_x, focal_y, inner, fade):
    """Numba-jitted pupil mask: multiplies opacity by a smoothstep of planar distance."""
    for i in range(start, stop):
        dx = positions[i, 0] - focal_x
        dy = positions[i, 1] - focal_y
        distance = np.sqrt(dx * dx + dy * dy)
        out[i] *= _smoothstep_scalar(inner, inner + fade, distance)


@jit(nopython=True)
def _angular_mask_numba(angles, out, start, stop, focal_angle, inner, fade):
    """Numba-jitted angular mask: distance is the wrapped angle to the focal angle."""
    tau = 2.0 * np.pi
    for i in range(start, stop):
        delta = (angles[i] - focal_angle) % tau
        if delta > np.pi:
            delta = tau - delta
        out[i] *= _smoothstep_scalar(inner, inner + fade, delta)


def sweep_angle(elapsed: float, cycle_duration: float) -> float:
    """Angle swept so far in the current cycle, in [0, 2*pi)."""
    progress = (elapsed % cycle_duration) / cycle_duration
    return progress * TAU


def _range(value, where: str, low: float = 0.0) -> Tuple[float, float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        pair = (float(value), float(value))
    else:
        try:
            lo, hi = value
            pair = (float(lo), float(hi))
        except (TypeError, ValueError):
            raise ConfigurationError(f"{where} must be a number or a [min, max] pair, got {value!r}")
    if not all(math.isfinite(v) for v in pair) or pair[0] > pair[1] or pair[0] < low:
        raise ConfigurationError(f"{where} must be an ordered range >= {low}, got {value!r}")
    return pair


def _number(mapping: Mapping[str, Any], key: str, where: str, default=None) -> float:
    if key not in mapping:
        if default is None:
            raise ConfigurationError(f"{where}.{key} is required")
        return default
    value = mapping[key]
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{where}.{key} must be a number, got {value!r}")
    if not math.isfinite(number):
        raise ConfigurationError(f"{where}.{key} must be finite, got {value!r}")
    return number


def _block(value, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{where} must be an object, got {value!r}")
    return value


@dataclass
class Gradient:
    """opacity = floor + normalized_height * range along `axis`, clamped to [0, 1]."""
    axis: int = 1
    floor: float = 0.1
    range: float = 0.9
    extent: Optional[Tuple[float, float]] = None

    @classmethod
    def from_config(cls, data: Mapping[str, Any], where: str) -> "Gradient":
        data = _block(data, where)
        axis = data.get("axis", 1)
        if isinstance(axis, bool) or not isinstance(axis, int) or axis not in (0, 1, 2):
            raise ConfigurationError(f"{where}.axis must be 0, 1 or 2, got {axis!r}")
        extent = None
        if "extent" in data:
            extent = _range(data["extent"], f"{where}.extent", low=-math.inf)
        return cls(
            axis=axis,
            floor=_number(data, "floor", where, 0.1),
            range=_number(data, "range", where, 0.9),
            extent=extent,
        )

    def apply(self, positions: np.ndarray, field_extent: Tuple[float, float]) -> np.ndarray:
        lo, hi = self.extent if self.extent is not None else field_extent
        span = hi - lo
        if span > 0.0:
            normalized = np.clip((positions[:, self.axis] - lo) / span, 0.0, 1.0)
        else:
            normalized = np.zeros(len(positions))
        return np.clip(self.floor + normalized * self.range, 0.0, 1.0)


@dataclass
class SweepRule:
    cycle_duration: float
    start_angle: float = DEFAULT_SWEEP_START_ANGLE
    clockwise: bool = True
    bright: Tuple[float, float] = DEFAULT_SWEEP_BRIGHT
    dim: float = DEFAULT_SWEEP_DIM

    @classmethod
    def from_config(cls, data: Mapping[str, Any], where: str) -> "SweepRule":
        data = _block(data, where)
        cycle = _number(data, "cycle_duration", where)
        if cycle <= 0.0:
            raise ConfigurationError(f"{where}.cycle_duration must be positive, got {cycle}")
        dim = _number(data, "dim", where, DEFAULT_SWEEP_DIM)
        if not 0.0 <= dim <= 1.0:
            raise ConfigurationError(f"{where}.dim must be in [0, 1], got {dim}")
        clockwise = data.get("clockwise", True)
        if not isinstance(clockwise, bool):
            raise ConfigurationError(f"{where}.clockwise must be true or false, got {clockwise!r}")
        return cls(
            cycle_duration=cycle,
            start_angle=_number(data, "start_angle", where, DEFAULT_SWEEP_START_ANGLE),
            clockwise=clockwise,
            bright=_range(data.get("bright", DEFAULT_SWEEP_BRIGHT), f"{where}.bright"),
            dim=dim,
        )


@dataclass
class MaskRule:
    """
    Moving transparent hole ("pupil").

    The focal point is center + interaction * follow (planar mode) or the
    direction of the interaction vector (angular mode). Opacity is
    multiplied by smoothstep(inner, inner + fade, distance).
    """
    inner_radius: float
    fade: float
    mode: str = "planar"
    center: Tuple[float, float] = (0.0, 0.0)
    follow: float = 1.0
    regions: Optional[Sequence[str]] = None

    @classmethod
    def from_config(cls, data: Mapping[str, Any], where: str) -> "MaskRule":
        data = _block(data, where)
        mode = data.get("mode", "planar")
        if mode not in ("planar", "angular"):
            raise ConfigurationError(f"{where}.mode must be 'planar' or 'angular', got {mode!r}")
        inner = _number(data, "inner_radius", where)
        fade = _number(data, "fade", where)
        if inner < 0.0 or fade < 0.0:
            raise ConfigurationError(f"{where}: inner_radius and fade must be non-negative")
        center = data.get("center", (0.0, 0.0))
        try:
            cx, cy = (float(v) for v in center)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{where}.center must be an [x, y] pair, got {center!r}")
        regions = data.get("regions")
        if regions is not None and (isinstance(regions, str) or not isinstance(regions, Sequence)):
            raise ConfigurationError(f"{where}.regions must be a list of region names")
        return cls(inner, fade, mode, (cx, cy), _number(data, "follow", where, 1.0), regions)

    def focal(self, interaction: np.ndarray) -> Tuple[float, float]:
        if self.mode == "angular":
            return math.atan2(float(interaction[1]), float(interaction[0])), 0.0
        return (self.center[0] + self.follow * float(interaction[0]),
                self.center[1] + self.follow * float(interaction[1]))


@dataclass
class AttributeRule:
    """Per-region attribute rule as read from a region's `attributes` block."""
    size: Tuple[float, float] = DEFAULT_SIZE_RANGE
    opacity: Tuple[float, float] = (DEFAULT_OPACITY, DEFAULT_OPACITY)
    gradient: Optional[Gradient] = None
    depth_gradient: Optional[Gradient] = None
    edge_fade: float = 0.0
    highlight: Optional[Dict[str, Tuple[float, float]]] = None
    sweep: Optional[SweepRule] = None

    @classmethod
    def from_config(cls, data: Optional[Mapping[str, Any]], where: str) -> "AttributeRule":
        data = {} if data is None else _block(data, where)
        rule = cls(
            size=_range(data.get("size", DEFAULT_SIZE_RANGE), f"{where}.size"),
            opacity=_range(data.get("opacity", DEFAULT_OPACITY), f"{where}.opacity"),
        )
        if "gradient" in data:
            rule.gradient = Gradient.from_config(data["gradient"], f"{where}.gradient")
        if "depth_gradient" in data:
            block = _block(data["depth_gradient"], f"{where}.depth_gradient")
            rule.depth_gradient = Gradient.from_config({"axis": 2, **block}, f"{where}.depth_gradient")
        if "edge_fade" in data:
            rule.edge_fade = _number(data, "edge_fade", where)
            if rule.edge_fade < 0.0:
                raise ConfigurationError(f"{where}.edge_fade must be non-negative")
        if "highlight" in data:
            block = data["highlight"]
            block = {} if block is None else _block(block, f"{where}.highlight")
            rule.highlight = {
                key: _range(block[key], f"{where}.highlight.{key}")
                for key in ("opacity", "size") if key in block
            }
        if "sweep" in data:
            rule.sweep = SweepRule.from_config(data["sweep"], f"{where}.sweep")
        return rule


class AttributeAssigner:
    """
    Computes static attributes once and dynamic opacity every tick.
    """
    def __init__(self, opacity_bounds=DEFAULT_OPACITY_BOUNDS, size_bounds=DEFAULT_SIZE_BOUNDS,
                 mask: Optional[MaskRule] = None):
        self.opacity_bounds = _range(opacity_bounds, "opacity_bounds")
        if self.opacity_bounds[1] > 1.0:
            raise ConfigurationError(f"opacity_bounds must lie within [0, 1], got {opacity_bounds!r}")
        self.size_bounds = _range(size_bounds, "size_bounds")
        self.mask = mask
        self.sweeps = []
        self._mask_slices = []

    def _uniform(self, rng, bounds: Tuple[float, float], count: int) -> np.ndarray:
        lo, hi = bounds
        return lo + (hi - lo) * rng.random(count)

    def assign_static(self, field: ParticleField, regions: Sequence[RegionSpec], rng) -> None:
        field_lo, field_hi = field.bounds()
        for region in regions:
            span = field.region(region.name)
            count = span.stop - span.start
            if count == 0:
                continue
            rule = region.rule or AttributeRule()
            positions = field.base_positions[span]

            size_range = rule.size
            if rule.highlight and "size" in rule.highlight:
                size_range = rule.highlight["size"]
            field.size[span] = self._uniform(rng, size_range, count)

            if rule.highlight and "opacity" in rule.highlight:
                opacity = self._uniform(rng, rule.highlight["opacity"], count)
            else:
                if rule.gradient is not None:
                    axis = rule.gradient.axis
                    opacity = rule.gradient.apply(positions, (field_lo[axis], field_hi[axis]))
                else:
                    opacity = self._uniform(rng, rule.opacity, count)
                if rule.depth_gradient is not None:
                    axis = rule.depth_gradient.axis
                    opacity = opacity * rule.depth_gradient.apply(positions, (field_lo[axis], field_hi[axis]))
                if rule.edge_fade > 0.0:
                    distance = region.sampler.boundary_distance(positions)
                    opacity = opacity * smoothstep(0.0, rule.edge_fade, distance)

            if rule.sweep is not None:
                field.bright_opacity[span] = self._uniform(rng, rule.sweep.bright, count)
                opacity = np.full(count, rule.sweep.dim)
                self.sweeps.append((span, rule.sweep))
            else:
                field.bright_opacity[span] = opacity

            field.base_opacity[span] = opacity

        np.nan_to_num(field.base_opacity, copy=False, nan=0.0)
        np.nan_to_num(field.size, copy=False, nan=self.size_bounds[0])
        np.clip(field.base_opacity, *self.opacity_bounds, out=field.base_opacity)
        np.clip(field.bright_opacity, *self.opacity_bounds, out=field.bright_opacity)
        np.clip(field.size, *self.size_bounds, out=field.size)

        if self.mask is not None:
            names = self.mask.regions if self.mask.regions is not None else field.region_names
            unknown = [name for name in names if name not in field.region_slices]
            if unknown:
                raise ConfigurationError(f"mask.regions names unknown regions: {unknown}")
            self._mask_slices = [field.region(name) for name in names]

        field.freeze()
        logging.info(
            f"Static attributes assigned: {len(self.sweeps)} sweep region(s), "
            f"mask {'on' if self.mask else 'off'}."
        )

    @property
    def dynamic(self) -> bool:
        return bool(self.sweeps) or self.mask is not None

    def update(self, field: ParticleField, elapsed: float, interaction: np.ndarray) -> None:
        out = field.opacity
        out[:] = field.base_opacity
        for span, sweep in self.sweeps:
            _sweep_opacity_numba(
                field.angles, field.bright_opacity, out, span.start, span.stop,
                sweep.start_angle, 1.0 if sweep.clockwise else -1.0,
                sweep_angle(elapsed, sweep.cycle_duration), sweep.dim
            )
        if self.mask is not None:
            focal_a, focal_b = self.mask.focal(interaction)
            for span in self._mask_slices:
                if self.mask.mode == "angular":
                    _angular_mask_numba(field.angles, out, span.start, span.stop,
                                        focal_a, self.mask.inner_radius, self.mask.fade)
                else:
                    _planar_mask_numba(field.positions, out, span.start, span.stop,
                                       focal_a, focal_b, self.mask.inner_radius, self.mask.fade)
        np.clip(out, *self.opacity_bounds, out=out)
