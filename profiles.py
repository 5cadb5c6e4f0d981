# profiles.py
"""
Turns a shape profile from the configuration file into a running field.

A profile names its regions, their shapes and attribute rules, plus the
motion, interaction and mask settings. Everything is validated here,
before a single point is sampled, and errors name the offending field
path. `init()` is the entry point a host calls with its render surface.
"""
import inspect
import logging
import math
import numpy as np
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from constants import (
    DEFAULT_FLOAT_AMPLITUDE, DEFAULT_FLOAT_SPEED, DEFAULT_TIME_SCALE,
    DEFAULT_INTERACTION_SCALE, DEFAULT_SMOOTHING, DEFAULT_OPACITY_BOUNDS,
    DEFAULT_SIZE_BOUNDS, DEFAULT_PARTICLE_COLOR
)
from errors import ConfigurationError, DegenerateGeometryError
from shapes import Torus, EllipsoidVolume, Disc, Cylinder, RoundedBoxVolume, RoundedBoxSurface, sphere
from mesh import WeightedTriangleMesh
from particle import AREA_WEIGHTED, RegionSpec, partition_budget, sample_regions
from attributes import AttributeAssigner, AttributeRule, MaskRule
from motion import MotionState, parse_amplitude, parse_speed_range
from interaction import InteractionController
from scheduler import FrameScheduler

# --- Data Contracts ---
#
# parse_profile(name: str, data: Mapping) -> Profile
#   - Inputs: one entry of the config's "profiles" section.
#   - Outputs: a Profile with constructed samplers (None for degenerate
#     regions), attribute rules, assigner, controller and motion settings.
#   - Errors: ConfigurationError naming the field path, e.g.
#     "profiles.home.regions[0].shape.major_radius must be ...".
#
# init(surface, config: Mapping, seed=None, name="profile", **scheduler_options) -> FrameScheduler
#   - Inputs: a surface with positive integer `width`/`height` and a
#     `render(frame)` method (or None to run headless), a profile mapping.
#   - Order: validate, partition budget, sample regions, static
#     attributes, motion parameters, interaction filter, scheduler.
#   - Outputs: the FrameScheduler the host ticks once per frame.

SHAPE_TYPES = {
    "torus": Torus,
    "ellipsoid": EllipsoidVolume,
    "sphere": sphere,
    "disc": Disc,
    "cylinder": Cylinder,
    "rounded_box": RoundedBoxVolume,
    "rounded_box_surface": RoundedBoxSurface,
    "mesh": WeightedTriangleMesh,
}


@dataclass
class Profile:
    """A validated shape profile, ready to be sampled."""
    name: str
    particle_count: int
    regions: List[RegionSpec]
    color: Tuple[int, int, int]
    assigner: AttributeAssigner
    controller: InteractionController
    amplitude: np.ndarray
    speed_range: Tuple[float, float]
    time_scale: float


def _scoped(where: str, factory, *args, **kwargs):
    """Calls a constructor and prefixes its ConfigurationError with the field path."""
    try:
        return factory(*args, **kwargs)
    except ConfigurationError as exc:
        raise ConfigurationError(f"{where}.{exc}") from exc
    except (TypeError, ValueError) as exc:
        if isinstance(exc, DegenerateGeometryError):
            raise
        raise ConfigurationError(f"{where}: {exc}") from exc


def _mapping(data, where: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{where} must be an object, got {type(data).__name__}")
    return data


def parse_color(value, where: str = "color") -> Tuple[int, int, int]:
    """Accepts "#rrggbb" or an [r, g, b] list of 0-255 integers."""
    if value is None:
        return DEFAULT_PARTICLE_COLOR
    if isinstance(value, str):
        text = value.lstrip("#")
        if len(text) != 6:
            raise ConfigurationError(f"{where} must be '#rrggbb', got {value!r}")
        try:
            return tuple(int(text[i:i + 2], 16) for i in (0, 2, 4))
        except ValueError:
            raise ConfigurationError(f"{where} must be '#rrggbb', got {value!r}")
    try:
        rgb = tuple(int(c) for c in value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{where} must be '#rrggbb' or [r, g, b], got {value!r}")
    if len(rgb) != 3 or not all(0 <= c <= 255 for c in rgb):
        raise ConfigurationError(f"{where} must hold three values in 0..255, got {value!r}")
    return rgb


def build_shape(data, where: str):
    """
    Constructs the sampler described by a region's `shape` block.

    Keys the constructor does not take are ignored. Returns None for a
    vector shape with zero total area.
    """
    data = _mapping(data, where)
    kind = data.get("type")
    if not isinstance(kind, str) or kind not in SHAPE_TYPES:
        raise ConfigurationError(f"{where}.type must be one of {sorted(SHAPE_TYPES)}, got {kind!r}")
    factory = SHAPE_TYPES[kind]

    parameters = inspect.signature(factory).parameters
    kwargs = {}
    for param_name, param in parameters.items():
        if param_name in data:
            kwargs[param_name] = data[param_name]
        elif param.default is inspect.Parameter.empty:
            raise ConfigurationError(f"{where}.{param_name} is required")

    try:
        return _scoped(where, factory, **kwargs)
    except DegenerateGeometryError as exc:
        logging.warning(f"{where}: {exc}; region will get no particles.")
        return None


def parse_region(data, where: str) -> RegionSpec:
    data = _mapping(data, where)
    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigurationError(f"{where}.name must be a non-empty string")
    if "shape" not in data:
        raise ConfigurationError(f"{where}.shape is required")
    sampler = build_shape(data["shape"], f"{where}.shape")

    ratio = data.get("ratio", AREA_WEIGHTED)
    if ratio != AREA_WEIGHTED:
        if isinstance(ratio, bool) or not isinstance(ratio, (int, float)) \
                or not math.isfinite(ratio) or not 0.0 <= ratio <= 1.0:
            raise ConfigurationError(f"{where}.ratio must be in [0, 1] or 'area', got {ratio!r}")
        ratio = float(ratio)

    rule = AttributeRule.from_config(data.get("attributes"), f"{where}.attributes")
    return RegionSpec(name=name, sampler=sampler, ratio=ratio, rule=rule)


def _particle_count(data: Mapping[str, Any], regions: List[RegionSpec], where: str) -> int:
    if "particle_count" in data:
        count = data["particle_count"]
        if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise ConfigurationError(f"{where}.particle_count must be a positive integer, got {count!r}")
        return count
    if "area_density" not in data:
        raise ConfigurationError(f"{where}: one of particle_count or area_density is required")
    if not all(r.area_weighted for r in regions):
        raise ConfigurationError(f"{where}.area_density needs every region to use ratio 'area'")
    density = data["area_density"]
    if isinstance(density, bool) or not isinstance(density, (int, float)) \
            or not math.isfinite(density) or density <= 0:
        raise ConfigurationError(f"{where}.area_density must be a positive number, got {density!r}")
    total_area = sum(r.sampler.area() for r in regions if not r.degenerate)
    count = int(round(density * total_area))
    if count <= 0:
        raise ConfigurationError(f"{where}.area_density yields no particles for area {total_area:.4g}")
    logging.debug(f"{where}: area density {density} over area {total_area:.3f} -> {count} particles.")
    return count


def parse_profile(name: str, data) -> Profile:
    """Validates one profile and constructs its samplers and rules."""
    where = f"profiles.{name}"
    data = _mapping(data, where)

    raw_regions = data.get("regions")
    if isinstance(raw_regions, (str, bytes)) or not isinstance(raw_regions, list) or not raw_regions:
        raise ConfigurationError(f"{where}.regions must be a non-empty list")
    regions = [parse_region(entry, f"{where}.regions[{i}]") for i, entry in enumerate(raw_regions)]
    names = [r.name for r in regions]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f"{where}.regions: duplicate region names {duplicates}")
    fixed_sum = sum(r.ratio for r in regions if not r.area_weighted)
    if fixed_sum > 1.0 + 1e-9:
        raise ConfigurationError(f"{where}.regions: ratios sum to {fixed_sum:.4f}, more than 1")
    if all(r.degenerate for r in regions):
        raise ConfigurationError(f"{where}.regions: every region has zero area")

    particle_count = _particle_count(data, regions, where)

    mask = None
    if data.get("mask") is not None:
        mask = MaskRule.from_config(_mapping(data["mask"], f"{where}.mask"), f"{where}.mask")
        unknown = [n for n in (mask.regions or []) if n not in names]
        if unknown:
            raise ConfigurationError(f"{where}.mask.regions names unknown regions: {unknown}")

    assigner = _scoped(
        where, AttributeAssigner,
        opacity_bounds=data.get("opacity_bounds", DEFAULT_OPACITY_BOUNDS),
        size_bounds=data.get("size_bounds", DEFAULT_SIZE_BOUNDS),
        mask=mask,
    )

    motion = _mapping(data.get("motion", {}), f"{where}.motion")
    amplitude = _scoped(where, parse_amplitude, motion.get("amplitude", DEFAULT_FLOAT_AMPLITUDE))
    speed_range = _scoped(where, parse_speed_range, motion.get("speed", DEFAULT_FLOAT_SPEED))
    time_scale = motion.get("time_scale", DEFAULT_TIME_SCALE)
    if isinstance(time_scale, bool) or not isinstance(time_scale, (int, float)) \
            or not math.isfinite(time_scale) or time_scale < 0:
        raise ConfigurationError(f"{where}.motion.time_scale must be a non-negative number, got {time_scale!r}")

    interaction = _mapping(data.get("interaction", {}), f"{where}.interaction")
    controller = _scoped(
        where, InteractionController,
        mode=interaction.get("mode", "rotation"),
        scale=interaction.get("scale", DEFAULT_INTERACTION_SCALE),
        smoothing=interaction.get("smoothing", DEFAULT_SMOOTHING),
        frame_aware=interaction.get("frame_aware", True),
    )

    return Profile(
        name=name,
        particle_count=particle_count,
        regions=regions,
        color=parse_color(data.get("color"), f"{where}.color"),
        assigner=assigner,
        controller=controller,
        amplitude=amplitude,
        speed_range=speed_range,
        time_scale=float(time_scale),
    )


def select_profile(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    """Returns the named entry of the config's "profiles" section."""
    profiles = config.get("profiles")
    if not isinstance(profiles, Mapping) or not profiles:
        raise ConfigurationError("profiles must be a non-empty object")
    if name not in profiles:
        raise ConfigurationError(f"run_control.profile names unknown profile {name!r}; have {sorted(profiles)}")
    return profiles[name]


def _surface_size(surface) -> Tuple[int, int]:
    width = getattr(surface, "width", None)
    height = getattr(surface, "height", None)
    for label, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigurationError(f"surface {label} must be a positive integer, got {value!r}")
    return width, height


def init(surface, config: Mapping[str, Any], seed: Optional[int] = None,
         name: str = "profile", **scheduler_options) -> FrameScheduler:
    """
    Builds a particle field from a profile and returns its scheduler.

    `surface` is the render adapter; pass None to run without rendering.
    `seed` makes every random draw reproducible.
    """
    try:
        if surface is not None:
            width, height = _surface_size(surface)
            logging.debug(f"Render surface is {width}x{height}.")
        profile = parse_profile(name, config)
    except ConfigurationError as exc:
        logging.critical(f"Cannot initialize profile '{name}': {exc}")
        raise

    rng = np.random.default_rng(seed)

    counts = partition_budget(profile.regions, profile.particle_count)
    field = sample_regions(profile.regions, counts, rng)
    profile.assigner.assign_static(field, profile.regions, rng)

    motion = MotionState(
        field.particle_count, rng, profile.amplitude, profile.speed_range, profile.time_scale
    )

    scheduler = FrameScheduler(
        field, profile.assigner, motion, profile.controller,
        renderer=surface, **scheduler_options
    )
    logging.info(
        f"Profile '{name}' initialized: {field.particle_count} particles "
        f"(requested {profile.particle_count}) across {len(profile.regions)} regions."
    )
    return scheduler
