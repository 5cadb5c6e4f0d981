# motion.py
"""
Organic floating motion.

Every particle oscillates around its base position on three independent
sine waves. The displacement is a pure function of time and the
particle's fixed phase and speed, so any time can be rendered directly
and nothing accumulates between ticks.
"""
import logging
import math
import numpy as np
from numba import jit
from typing import Sequence, Tuple

from constants import (
    TAU, FLOAT_FREQUENCIES, DEFAULT_FLOAT_AMPLITUDE, DEFAULT_FLOAT_SPEED, DEFAULT_TIME_SCALE
)
from errors import ConfigurationError

# --- Data Contracts ---
#
# class MotionState:
#   - __init__(self, count: int, rng, amplitude, speed_range, time_scale)
#     - self.phase: (N, 3) float64 uniform in [0, 2*pi), immutable.
#     - self.speed: (N,) float64 uniform in speed_range, immutable.
#   - apply(self, base_positions, elapsed, out) -> None
#     - out[i] = base[i] + (sin(t*s + px)*ax, sin(t*s*0.8 + py)*ay, sin(t*s*0.6 + pz)*az)
#       with t = elapsed * time_scale.
#     - Invariants: |out[i] - base[i]| <= ax + ay + az for every t.


@jit(nopython=True)
def _float_positions_numba(base, phase, speed, frequencies, amplitude, t, out):
    """
    Numba-jitted float displacement.

    Every particle is independent, so the loop order never affects the result.
    """
    particle_count = base.shape[0]
    for i in range(particle_count):
        s = t * speed[i]
        for axis in range(3):
            out[i, axis] = base[i, axis] + np.sin(s * frequencies[axis] + phase[i, axis]) * amplitude[axis]


def parse_amplitude(value) -> np.ndarray:
    try:
        amplitude = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError):
        raise ConfigurationError(f"motion.amplitude must be three numbers, got {value!r}")
    if amplitude.shape == ():
        amplitude = np.full(3, float(amplitude))
    if amplitude.shape != (3,) or not np.all(np.isfinite(amplitude)) or np.any(amplitude < 0):
        raise ConfigurationError(f"motion.amplitude must be three non-negative numbers, got {value!r}")
    return amplitude


def parse_speed_range(value) -> Tuple[float, float]:
    try:
        lo, hi = (float(v) for v in value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"motion.speed must be a [min, max] pair, got {value!r}")
    if not (math.isfinite(lo) and math.isfinite(hi)) or lo < 0 or lo > hi:
        raise ConfigurationError(f"motion.speed must be an ordered non-negative range, got {value!r}")
    return lo, hi


class MotionState:
    """
    Fixed per-particle float parameters plus the profile's amplitudes.
    """
    def __init__(self, count: int, rng, amplitude: Sequence[float] = DEFAULT_FLOAT_AMPLITUDE,
                 speed_range: Sequence[float] = DEFAULT_FLOAT_SPEED,
                 time_scale: float = DEFAULT_TIME_SCALE):
        self.amplitude = parse_amplitude(amplitude)
        self.speed_range = parse_speed_range(speed_range)
        try:
            self.time_scale = float(time_scale)
        except (TypeError, ValueError):
            raise ConfigurationError(f"motion.time_scale must be a number, got {time_scale!r}")
        if not math.isfinite(self.time_scale) or self.time_scale < 0:
            raise ConfigurationError(f"motion.time_scale must be non-negative, got {time_scale!r}")
        self.frequencies = np.array(FLOAT_FREQUENCIES, dtype=np.float64)

        self.phase = rng.random((count, 3)) * TAU
        lo, hi = self.speed_range
        self.speed = lo + (hi - lo) * rng.random(count)
        self.phase.setflags(write=False)
        self.speed.setflags(write=False)

        logging.debug(
            f"MotionState: {count} particles, amplitude {self.amplitude.tolist()}, "
            f"speed {self.speed_range}, time scale {self.time_scale}."
        )

    def displacement_bound(self) -> float:
        """Upper bound on |current - base| for any time."""
        return float(self.amplitude.sum())

    def apply(self, base_positions: np.ndarray, elapsed: float, out: np.ndarray) -> None:
        _float_positions_numba(
            base_positions, self.phase, self.speed, self.frequencies,
            self.amplitude, elapsed * self.time_scale, out
        )

    def positions_at(self, base_positions: np.ndarray, elapsed: float) -> np.ndarray:
        out = np.empty_like(base_positions, dtype=np.float64)
        self.apply(base_positions, elapsed, out)
        return out
