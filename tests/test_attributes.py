import math

import numpy as np
import pytest

from attributes import (
    AttributeAssigner, AttributeRule, Gradient, MaskRule, SweepRule, smoothstep, sweep_angle
)
from errors import ConfigurationError
from particle import ParticleField, RegionSpec, partition_budget, sample_regions
from shapes import Disc, Torus, sphere


def ring_field(angles, rule):
    """A field whose particles sit on the unit circle at the given angles."""
    angles = np.asarray(angles, dtype=np.float64)
    positions = np.stack((np.cos(angles), np.sin(angles), np.zeros_like(angles)), axis=-1)
    field = ParticleField(positions, angles, np.zeros(len(angles)), ["ring"])
    region = RegionSpec("ring", Torus(1, 0.1), 1.0, rule)
    return field, region


def test_smoothstep_edges_and_midpoint():
    assert np.allclose(smoothstep(0.0, 1.0, [-1.0, 0.0, 0.5, 1.0, 2.0]), [0, 0, 0.5, 1, 1])
    assert np.allclose(smoothstep(1.0, 1.0, [0.5, 1.5]), [0, 1])


def test_gradient_normalizes_along_axis():
    gradient = Gradient(axis=1, floor=0.1, range=0.9)
    positions = np.array([[0, -10, 0], [0, 0, 0], [0, 10, 0]], dtype=float)
    assert np.allclose(gradient.apply(positions, (-10, 10)), [0.1, 0.55, 1.0])


def test_gradient_with_zero_span_uses_floor():
    gradient = Gradient(floor=0.2, range=0.5)
    assert np.allclose(gradient.apply(np.zeros((2, 3)), (3.0, 3.0)), 0.2)


def test_static_attributes_within_bounds(rng):
    rule = AttributeRule(size=(1.0, 1.5), gradient=Gradient(floor=-0.5, range=3.0))
    regions = [RegionSpec("body", sphere(10), 1.0, rule)]
    field = sample_regions(regions, partition_budget(regions, 2000), rng)
    assigner = AttributeAssigner(opacity_bounds=(0.0, 1.0), size_bounds=(1.1, 1.4))
    assigner.assign_static(field, regions, rng)
    assert field.base_opacity.min() >= 0.0
    assert field.base_opacity.max() <= 1.0
    assert field.size.min() >= 1.1
    assert field.size.max() <= 1.4
    assert not assigner.dynamic


def test_gradient_opacity_grows_with_height(rng):
    rule = AttributeRule(gradient=Gradient(floor=0.1, range=0.9))
    regions = [RegionSpec("body", sphere(10), 1.0, rule)]
    field = sample_regions(regions, [3000], rng)
    AttributeAssigner().assign_static(field, regions, rng)
    top = field.base_positions[:, 1] > 5
    bottom = field.base_positions[:, 1] < -5
    assert field.base_opacity[top].min() > field.base_opacity[bottom].max()


def test_edge_fade_dims_points_near_the_surface(rng):
    rule = AttributeRule(opacity=(1.0, 1.0), edge_fade=2.0)
    regions = [RegionSpec("disc", Disc(10), 1.0, rule)]
    field = sample_regions(regions, [2000], rng)
    AttributeAssigner().assign_static(field, regions, rng)
    rho = np.hypot(field.base_positions[:, 0], field.base_positions[:, 1])
    assert np.allclose(field.base_opacity[rho < 8], 1.0)
    assert np.all(field.base_opacity[rho > 9.5] < 0.5)


def test_highlight_overrides_opacity_and_size(rng):
    rule = AttributeRule(opacity=(0.1, 0.1), highlight={"opacity": (0.9, 1.0), "size": (2.0, 2.0)})
    regions = [RegionSpec("glint", sphere(1), 1.0, rule)]
    field = sample_regions(regions, [100], rng)
    AttributeAssigner().assign_static(field, regions, rng)
    assert field.base_opacity.min() >= 0.9
    assert np.allclose(field.size, 2.0)


def test_sweep_is_all_dim_at_time_zero(rng):
    sweep = SweepRule(cycle_duration=20.0, bright=(1.0, 1.0), dim=0.15)
    field, region = ring_field(np.linspace(0, 2 * math.pi, 360, endpoint=False), AttributeRule(sweep=sweep))
    assigner = AttributeAssigner()
    assigner.assign_static(field, [region], rng)
    assert assigner.dynamic
    assigner.update(field, 0.0, np.zeros(2))
    assert np.allclose(field.opacity, 0.15)


def test_sweep_lights_everything_just_before_cycle_end(rng):
    sweep = SweepRule(cycle_duration=20.0, bright=(1.0, 1.0), dim=0.15)
    angles = np.linspace(0, 2 * math.pi, 360, endpoint=False)
    field, region = ring_field(angles, AttributeRule(sweep=sweep))
    assigner = AttributeAssigner()
    assigner.assign_static(field, [region], rng)
    assigner.update(field, 20.0 - 1e-3, np.zeros(2))
    # Offsets up to 2*pi - delta are bright; only the last sliver can stay dim.
    offsets = (sweep.start_angle - angles) % (2 * math.pi)
    bright = offsets <= 2 * math.pi - 1e-2
    assert np.allclose(field.opacity[bright], 1.0)


def test_sweep_advances_clockwise_from_twelve(rng):
    sweep = SweepRule(cycle_duration=4.0, bright=(1.0, 1.0), dim=0.0)
    # 12, 3, 6 and 9 o'clock.
    angles = np.array([math.pi / 2, 0.0, 3 * math.pi / 2, math.pi])
    field, region = ring_field(angles, AttributeRule(sweep=sweep))
    assigner = AttributeAssigner()
    assigner.assign_static(field, [region], rng)
    assigner.update(field, 1.5, np.zeros(2))  # swept 135 degrees
    assert np.allclose(field.opacity, [1.0, 1.0, 0.0, 0.0])


def test_sweep_boundary_is_inclusive(rng):
    sweep = SweepRule(cycle_duration=4.0, bright=(1.0, 1.0), dim=0.0)
    # Exactly a quarter turn clockwise from 12 o'clock.
    field, region = ring_field([0.0], AttributeRule(sweep=sweep))
    assigner = AttributeAssigner()
    assigner.assign_static(field, [region], rng)
    assigner.update(field, 1.0, np.zeros(2))
    assert sweep_angle(1.0, 4.0) == pytest.approx(math.pi / 2)
    assert field.opacity[0] == 1.0


def test_sweep_counter_clockwise(rng):
    sweep = SweepRule(cycle_duration=4.0, clockwise=False, bright=(1.0, 1.0), dim=0.0)
    angles = np.array([0.0, math.pi])
    field, region = ring_field(angles, AttributeRule(sweep=sweep))
    assigner = AttributeAssigner()
    assigner.assign_static(field, [region], rng)
    assigner.update(field, 1.5, np.zeros(2))
    assert np.allclose(field.opacity, [0.0, 1.0])


def test_update_never_touches_static_arrays(rng):
    sweep = SweepRule(cycle_duration=2.0)
    field, region = ring_field(np.linspace(0, 6, 50), AttributeRule(sweep=sweep))
    assigner = AttributeAssigner()
    assigner.assign_static(field, [region], rng)
    before = field.base_opacity.copy()
    for t in (0.3, 0.9, 1.7):
        assigner.update(field, t, np.zeros(2))
    assert np.array_equal(field.base_opacity, before)


def test_planar_mask_follows_interaction(rng):
    positions = np.array([[0, 0, 0], [5, 0, 0], [20, 0, 0]], dtype=float)
    field = ParticleField(positions, np.zeros(3), np.zeros(3), ["iris"])
    region = RegionSpec("iris", Disc(30), 1.0, AttributeRule(opacity=(1.0, 1.0)))
    mask = MaskRule(inner_radius=2.0, fade=1.0, follow=5.0)
    assigner = AttributeAssigner(mask=mask)
    assigner.assign_static(field, [region], rng)

    assigner.update(field, 0.0, np.zeros(2))
    assert np.allclose(field.opacity, [0.0, 1.0, 1.0])

    field.positions[:] = field.base_positions
    assigner.update(field, 0.0, np.array([1.0, 0.0]))
    assert np.allclose(field.opacity, [1.0, 0.0, 1.0])


def test_angular_mask_uses_interaction_direction(rng):
    angles = np.array([0.0, math.pi / 2, math.pi])
    field, _ = ring_field(angles, None)
    region = RegionSpec("ring", Torus(1, 0.1), 1.0, AttributeRule(opacity=(1.0, 1.0)))
    assigner = AttributeAssigner(mask=MaskRule(inner_radius=0.1, fade=0.2, mode="angular"))
    assigner.assign_static(field, [region], rng)
    assigner.update(field, 0.0, np.array([0.0, 1.0]))
    assert np.allclose(field.opacity, [1.0, 0.0, 1.0])


def test_mask_with_unknown_region_raises(rng):
    field, region = ring_field([0.0], AttributeRule())
    assigner = AttributeAssigner(mask=MaskRule(inner_radius=1, fade=1, regions=["pupil"]))
    with pytest.raises(ConfigurationError):
        assigner.assign_static(field, [region], rng)


def test_rule_from_config_reads_every_block():
    rule = AttributeRule.from_config({
        "size": [0.9, 1.3],
        "opacity": 0.4,
        "gradient": {"floor": 0.08, "range": 0.2, "extent": [-35, 35]},
        "depth_gradient": {"floor": 0.5, "range": 0.5},
        "edge_fade": 1.5,
        "highlight": {"opacity": [0.8, 1.0]},
        "sweep": {"cycle_duration": 20},
        "unknown_key": True,
    }, "regions[0].attributes")
    assert rule.size == (0.9, 1.3)
    assert rule.opacity == (0.4, 0.4)
    assert rule.gradient.extent == (-35.0, 35.0)
    assert rule.depth_gradient.axis == 2
    assert rule.edge_fade == 1.5
    assert rule.highlight == {"opacity": (0.8, 1.0)}
    assert rule.sweep.start_angle == pytest.approx(math.pi / 2)
    assert rule.sweep.clockwise


@pytest.mark.parametrize("data", [
    {"size": [2.0, 1.0]},
    {"opacity": "bright"},
    {"gradient": {"axis": 3}},
    {"edge_fade": -1},
    {"sweep": {"cycle_duration": 0}},
    {"sweep": {}},
    {"gradient": {"axis": 1.0}},
    {"gradient": {"axis": True}},
    {"gradient": 0.5},
    {"depth_gradient": [0.2, 0.8]},
    {"sweep": 20},
    {"sweep": {"cycle_duration": 20, "clockwise": "false"}},
    {"highlight": 1},
    "bright",
])
def test_rule_from_config_rejects_bad_values(data):
    with pytest.raises(ConfigurationError) as info:
        AttributeRule.from_config(data, "profiles.home.regions[0].attributes")
    assert "profiles.home.regions[0].attributes" in str(info.value)


def test_opacity_bounds_above_one_are_rejected():
    with pytest.raises(ConfigurationError):
        AttributeAssigner(opacity_bounds=(0.0, 1.5))
