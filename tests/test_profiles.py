import copy
from pathlib import Path

import numpy as np
import pytest

from errors import ConfigurationError
from profiles import build_shape, init, parse_color, parse_profile, select_profile
from shapes import RoundedBoxSurface, Torus
from utils import load_config

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"


@pytest.fixture(scope="module")
def config():
    return load_config(str(CONFIG_PATH))


def small(profile, count=1500):
    profile = copy.deepcopy(profile)
    profile["particle_count"] = count
    return profile


def minimal_profile(**overrides):
    profile = {
        "particle_count": 500,
        "regions": [
            {"name": "ring", "ratio": 1.0, "shape": {"type": "torus", "major_radius": 35, "tube_radius": 6}},
        ],
    }
    profile.update(overrides)
    return profile


@pytest.mark.parametrize("name", ["home", "bust", "lock", "logo", "eye"])
def test_every_shipped_profile_runs(config, surface, name):
    scheduler = init(surface, small(config["profiles"][name]), seed=7, name=name)
    assert scheduler.field.particle_count == 1500
    for _ in range(3):
        frame = scheduler.tick(1 / 60, (0.2, -0.4))
    assert len(surface.frames) == 3
    assert np.all(np.isfinite(frame.positions))
    assert frame.opacity.min() >= 0.0
    assert frame.opacity.max() <= 1.0


def test_lock_regions_follow_configured_ratios(config, surface):
    scheduler = init(surface, small(config["profiles"]["lock"], 2000), seed=1, name="lock")
    field = scheduler.field
    sizes = {name: s.stop - s.start for name, s in field.region_slices.items()}
    assert sum(sizes.values()) == 2000
    assert sizes["body"] == 1200
    assert sizes["shackle_arc"] == 500
    assert abs(sizes["shackle_left"] - 150) <= 1
    assert abs(sizes["shackle_right"] - 150) <= 1


def test_lock_body_is_a_rounded_box_shell(config):
    lock = small(config["profiles"]["lock"], 2000)
    body = parse_profile("lock", lock).regions[0].sampler
    assert isinstance(body, RoundedBoxSurface)
    scheduler = init(None, lock, seed=1, name="lock")
    points = scheduler.field.base_positions[scheduler.field.region("body")]
    assert body.membership(points).all()
    on_faces = np.isclose(np.abs(points[:, 2] - body.center[2]), body.depth / 2)
    assert on_faces.mean() == pytest.approx(0.8, abs=0.05)


def test_same_seed_gives_same_field(config):
    profile = small(config["profiles"]["bust"])
    a = init(None, profile, seed=3)
    b = init(None, profile, seed=3)
    assert np.array_equal(a.field.base_positions, b.field.base_positions)
    assert np.array_equal(a.field.base_opacity, b.field.base_opacity)


def test_missing_dimension_names_field_path():
    profile = minimal_profile()
    del profile["regions"][0]["shape"]["major_radius"]
    with pytest.raises(ConfigurationError) as info:
        parse_profile("home", profile)
    assert "profiles.home.regions[0].shape.major_radius" in str(info.value)


def test_invalid_dimension_names_field_path():
    profile = minimal_profile()
    profile["regions"][0]["shape"]["tube_radius"] = -2
    with pytest.raises(ConfigurationError) as info:
        parse_profile("home", profile)
    assert "profiles.home.regions[0].shape.tube_radius" in str(info.value)


def test_unknown_keys_are_ignored():
    profile = minimal_profile(flavour="vanilla")
    profile["regions"][0]["shape"]["wobble"] = 3
    parsed = parse_profile("home", profile)
    assert isinstance(parsed.regions[0].sampler, Torus)


@pytest.mark.parametrize("mutate", [
    lambda p: p.pop("particle_count"),
    lambda p: p.update(particle_count=0),
    lambda p: p.update(particle_count=12.5),
    lambda p: p.update(regions=[]),
    lambda p: p["regions"][0].update(ratio=1.5),
    lambda p: p["regions"][0].update(name=""),
    lambda p: p["regions"][0].pop("shape"),
    lambda p: p["regions"][0]["shape"].update(type="hexagon"),
    lambda p: p["regions"].append(copy.deepcopy(p["regions"][0])),
    lambda p: p.update(color="teal"),
    lambda p: p.update(opacity_bounds=[0.5, 0.2]),
    lambda p: p.update(motion={"amplitude": [1, 2]}),
    lambda p: p.update(interaction={"smoothing": 0}),
    lambda p: p.update(mask={"inner_radius": 2, "fade": 1, "regions": ["pupil"]}),
])
def test_invalid_profiles_raise(mutate):
    profile = minimal_profile()
    mutate(profile)
    with pytest.raises(ConfigurationError):
        parse_profile("home", profile)


@pytest.mark.parametrize("attributes", [
    {"gradient": {"axis": 1.0}},
    {"gradient": {"axis": True}},
    {"sweep": 20},
    {"highlight": 1},
    "bright",
])
def test_malformed_attribute_blocks_fail_before_sampling(attributes):
    profile = minimal_profile()
    profile["regions"][0]["attributes"] = attributes
    with pytest.raises(ConfigurationError) as info:
        init(None, profile, seed=0, name="home")
    assert "profiles.home.regions[0].attributes" in str(info.value)


def test_area_density_sets_particle_count():
    profile = minimal_profile()
    del profile["particle_count"]
    profile["area_density"] = 0.5
    profile["regions"][0]["ratio"] = "area"
    parsed = parse_profile("home", profile)
    assert parsed.particle_count == round(0.5 * Torus(35, 6).area())


def test_area_density_needs_area_regions():
    profile = minimal_profile()
    del profile["particle_count"]
    profile["area_density"] = 0.5
    with pytest.raises(ConfigurationError):
        parse_profile("home", profile)


def test_degenerate_region_reduces_the_count():
    profile = minimal_profile(particle_count=1000)
    profile["regions"] = [
        {"name": "body", "ratio": 0.5, "shape": {"type": "sphere", "radius": 5}},
        {"name": "flat", "ratio": "area",
         "shape": {"type": "mesh", "polygons": [[[0, 0], [1, 0], [2, 0]]], "bbox": [0, 0, 2, 1]}},
    ]
    scheduler = init(None, profile, seed=0)
    assert scheduler.field.particle_count == 500
    assert scheduler.field.region("flat") == slice(0, 0)


def test_bad_surface_is_rejected():
    class Flat:
        width = 0
        height = 600

        def render(self, frame):
            pass

    with pytest.raises(ConfigurationError):
        init(Flat(), minimal_profile())


def test_select_profile(config):
    assert select_profile(config, "eye") is config["profiles"]["eye"]
    with pytest.raises(ConfigurationError):
        select_profile(config, "castle")


def test_build_shape_requires_known_type():
    with pytest.raises(ConfigurationError) as info:
        build_shape({"type": None}, "profiles.x.regions[0].shape")
    assert "profiles.x.regions[0].shape.type" in str(info.value)


def test_parse_color_formats():
    assert parse_color("#adadad") == (173, 173, 173)
    assert parse_color([245, 245, 245]) == (245, 245, 245)
    assert parse_color(None) == (173, 173, 173)
    with pytest.raises(ConfigurationError):
        parse_color([300, 0, 0])
