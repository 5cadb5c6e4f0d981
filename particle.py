# particle.py
"""
Manages the state of all particles in a field.

This module defines the ParticleField class, which stores every
per-particle attribute in index-aligned NumPy arrays, and the helpers that
split a particle budget across the named regions of a composite shape and
sample each region into its own contiguous index range.
"""
import logging
import math
import numpy as np
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from errors import ConfigurationError
from shapes import ShapeSampler

# --- Data Contracts ---
#
# class RegionSpec:
#   - name: unique region name.
#   - sampler: the region's ShapeSampler, or None when the shape was
#     degenerate at construction.
#   - ratio: fraction of the budget (float in [0, 1]) or "area" for an
#     area-proportional share of the budget left after fixed ratios.
#   - rule: the region's attribute rule (attributes.AttributeRule).
#
# partition_budget(regions, total) -> List[int]
#   - Invariants: sum(counts) == total unless a region is degenerate, in
#     which case its share is dropped (documented reduced count).
#     Degenerate regions always get 0.
#
# class ParticleField:
#   - base_positions: (N, 3) float64, read-only after freeze().
#   - angles: (N,) float64 in [0, 2*pi), read-only.
#   - region_ids: (N,) int32 index into region_names, read-only.
#   - size, base_opacity, bright_opacity: (N,) float64, read-only after freeze().
#   - positions: (N, 3) float64, rewritten every tick.
#   - opacity: (N,) float64, rewritten every tick.
#   - Invariants: N is fixed; all arrays share the same particle order.

AREA_WEIGHTED = "area"


@dataclass
class RegionSpec:
    """Descriptor of one named shape region: generator, weight, attribute rule."""
    name: str
    sampler: Optional[ShapeSampler]
    ratio: Union[float, str] = 1.0
    rule: Any = None

    @property
    def area_weighted(self) -> bool:
        return self.ratio == AREA_WEIGHTED

    @property
    def degenerate(self) -> bool:
        return self.sampler is None or not self.sampler.area() > 0.0


def _split_by_weight(budget: int, weights: Sequence[float]) -> List[int]:
    total = float(sum(weights))
    counts = [int(math.floor(budget * w / total)) for w in weights]
    # Rounding remainder goes to the last region, as with a fixed "rest" region.
    counts[-1] += budget - sum(counts)
    return counts


def partition_budget(regions: Sequence[RegionSpec], total: int) -> List[int]:
    """
    Splits `total` particles across regions.

    Fixed-ratio regions get floor(ratio * total). Area-weighted regions
    share what is left in proportion to their area. Without area-weighted
    regions, the rounding remainder goes to the last live region.
    """
    if total <= 0:
        raise ConfigurationError(f"particle_count must be positive, got {total}")
    if not regions:
        raise ConfigurationError("a field needs at least one region")

    fixed_sum = 0.0
    for region in regions:
        if region.area_weighted:
            continue
        ratio = region.ratio
        if isinstance(ratio, bool) or not isinstance(ratio, (int, float)) or not math.isfinite(ratio) or ratio < 0:
            raise ConfigurationError(
                f"region '{region.name}': ratio must be a non-negative number or 'area', got {ratio!r}"
            )
        fixed_sum += ratio
    if fixed_sum > 1.0 + 1e-9:
        raise ConfigurationError(f"region ratios sum to {fixed_sum:.4f}, more than 1")

    counts = [0] * len(regions)
    for i, region in enumerate(regions):
        if not region.area_weighted:
            counts[i] = int(math.floor(region.ratio * total))
    remaining = total - sum(counts)

    for i, region in enumerate(regions):
        if region.degenerate:
            if counts[i] or region.area_weighted:
                logging.warning(f"Region '{region.name}' is degenerate (zero area); allotting 0 particles.")
            counts[i] = 0

    area_live = [i for i, r in enumerate(regions) if r.area_weighted and not r.degenerate]
    if any(r.area_weighted for r in regions):
        if area_live:
            shares = _split_by_weight(remaining, [regions[i].sampler.area() for i in area_live])
            for i, share in zip(area_live, shares):
                counts[i] = share
    else:
        live = [i for i, r in enumerate(regions) if not r.degenerate]
        if live:
            counts[live[-1]] += remaining

    logging.debug(
        "Particle budget split: "
        + ", ".join(f"{r.name}={c}" for r, c in zip(regions, counts))
    )
    return counts


class ParticleField:
    """
    A container for all particles, holding their state in NumPy arrays.
    """
    def __init__(self, base_positions: np.ndarray, angles: np.ndarray,
                 region_ids: np.ndarray, region_names: Sequence[str]):
        self.base_positions = np.ascontiguousarray(base_positions, dtype=np.float64)
        self.particle_count = self.base_positions.shape[0]
        self.angles = np.ascontiguousarray(angles, dtype=np.float64)
        self.region_ids = np.ascontiguousarray(region_ids, dtype=np.int32)
        self.region_names = list(region_names)
        if self.angles.shape != (self.particle_count,) or self.region_ids.shape != (self.particle_count,):
            raise ValueError("per-particle arrays must share the particle count")

        self.region_slices: Dict[str, slice] = {}
        for index, name in enumerate(self.region_names):
            members = np.flatnonzero(self.region_ids == index)
            if members.size:
                self.region_slices[name] = slice(int(members[0]), int(members[-1]) + 1)
            else:
                self.region_slices[name] = slice(0, 0)

        self.size = np.zeros(self.particle_count, dtype=np.float64)
        self.base_opacity = np.zeros(self.particle_count, dtype=np.float64)
        self.bright_opacity = np.zeros(self.particle_count, dtype=np.float64)

        self.positions = self.base_positions.copy()
        self.opacity = np.zeros(self.particle_count, dtype=np.float64)
        self.frozen = False

        logging.info(
            f"ParticleField initialized with {self.particle_count} particles "
            f"in {len(self.region_names)} regions."
        )
        logging.debug(
            f"Particle data arrays created. Positions shape: {self.base_positions.shape}, "
            f"Regions: {self.region_slices}"
        )

    def region(self, name: str) -> slice:
        return self.region_slices[name]

    def bounds(self):
        if self.particle_count == 0:
            return np.zeros(3), np.zeros(3)
        return self.base_positions.min(axis=0), self.base_positions.max(axis=0)

    def freeze(self) -> None:
        """Marks the init-time arrays read-only once static attributes are set."""
        for array in (self.base_positions, self.angles, self.region_ids,
                      self.size, self.base_opacity, self.bright_opacity):
            array.setflags(write=False)
        self.opacity[:] = self.base_opacity
        self.frozen = True


def sample_regions(regions: Sequence[RegionSpec], counts: Sequence[int], rng) -> ParticleField:
    """Samples every region and concatenates them into one field, region by region."""
    positions, angles, ids = [], [], []
    for index, (region, count) in enumerate(zip(regions, counts)):
        if count <= 0:
            continue
        sample = region.sampler.sample(count, rng)
        positions.append(sample.positions)
        angles.append(sample.angles)
        ids.append(np.full(count, index, dtype=np.int32))
    if not positions:
        raise ConfigurationError("every region is degenerate; nothing to sample")
    return ParticleField(
        np.concatenate(positions), np.concatenate(angles), np.concatenate(ids),
        [region.name for region in regions]
    )
