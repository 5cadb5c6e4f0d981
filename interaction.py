# interaction.py
"""
Pointer-driven interaction with exponential smoothing.

A normalized pointer sample in [-1, 1]^2 is mapped to a target vector
(tilt/yaw angles, or a planar offset). Every tick the current vector moves
a fraction alpha of the way to the target. Alpha is rescaled by the tick
duration so the response time does not depend on the frame rate.
"""
import logging
import math
import numpy as np
from typing import Optional, Sequence, Tuple

from constants import DEFAULT_INTERACTION_SCALE, DEFAULT_SMOOTHING, REFERENCE_FPS
from errors import ConfigurationError

# --- Data Contracts ---
#
# class InteractionController:
#   - set_input(self, sample: Tuple[float, float]) -> None
#     - Replaces the target in a single assignment; safe to call from an
#       event callback while a tick is running elsewhere.
#   - step(self, dt: Optional[float] = None, sample=None) -> np.ndarray
#     - current += (target - current) * alpha_eff, alpha_eff = 1 - (1 - alpha)^(dt * 60)
#       (alpha itself when dt is None).
#     - Invariants: with a constant target, |target - current| shrinks
#       monotonically on every axis and never overshoots.

INTERACTION_MODES = ("rotation", "offset")


def ticks_to_converge(alpha: float, epsilon: float) -> int:
    """
    Fixed-alpha ticks needed to close all but `epsilon` of the initial gap.

    The gap after n ticks is (1 - alpha)^n of the initial gap, so
    n = ceil(ln(epsilon) / ln(1 - alpha)).
    """
    if not 0.0 < alpha <= 1.0:
        raise ValueError(f"alpha must be in (0, 1], got {alpha}")
    if not 0.0 < epsilon < 1.0:
        raise ValueError(f"epsilon must be in (0, 1), got {epsilon}")
    if alpha == 1.0:
        return 1
    return int(math.ceil(math.log(epsilon) / math.log(1.0 - alpha)))


class InteractionController:
    """
    Maps pointer samples to a smoothed rotation or offset vector.

    Args:
        mode: "rotation" maps (mx, my) to (-my * scale, mx * scale), a tilt
            about X and a yaw about Y. "offset" maps to (mx * sx, my * sy).
        scale: a number or an (sx, sy) pair.
        smoothing: alpha per reference tick, in (0, 1].
        frame_aware: rescale alpha by measured tick duration.
    """
    def __init__(self, mode: str = "rotation", scale=DEFAULT_INTERACTION_SCALE,
                 smoothing: float = DEFAULT_SMOOTHING, frame_aware: bool = True,
                 reference_fps: float = REFERENCE_FPS):
        if mode not in INTERACTION_MODES:
            raise ConfigurationError(f"interaction.mode must be one of {INTERACTION_MODES}, got {mode!r}")
        self.mode = mode
        try:
            scale_xy = np.broadcast_to(np.asarray(scale, dtype=np.float64), (2,)).copy()
        except (TypeError, ValueError):
            raise ConfigurationError(f"interaction.scale must be a number or a pair, got {scale!r}")
        if not np.all(np.isfinite(scale_xy)):
            raise ConfigurationError(f"interaction.scale must be finite, got {scale!r}")
        self.scale = scale_xy
        try:
            self.smoothing = float(smoothing)
        except (TypeError, ValueError):
            raise ConfigurationError(f"interaction.smoothing must be a number, got {smoothing!r}")
        if not 0.0 < self.smoothing <= 1.0:
            raise ConfigurationError(f"interaction.smoothing must be in (0, 1], got {smoothing!r}")
        self.frame_aware = bool(frame_aware)
        self.reference_fps = float(reference_fps)

        self._target: Tuple[float, float] = (0.0, 0.0)
        self.current = np.zeros(2, dtype=np.float64)

    @property
    def target(self) -> np.ndarray:
        return np.array(self._target, dtype=np.float64)

    def map_input(self, sample: Sequence[float]) -> Optional[Tuple[float, float]]:
        """Maps a normalized pointer sample to a target vector; None if unusable."""
        try:
            mx, my = (float(v) for v in sample)
        except (TypeError, ValueError):
            logging.debug(f"Ignoring malformed pointer sample {sample!r}.")
            return None
        if not (math.isfinite(mx) and math.isfinite(my)):
            logging.debug(f"Ignoring non-finite pointer sample {sample!r}.")
            return None
        mx = min(max(mx, -1.0), 1.0)
        my = min(max(my, -1.0), 1.0)
        if self.mode == "rotation":
            return (-my * self.scale[0], mx * self.scale[1])
        return (mx * self.scale[0], my * self.scale[1])

    def set_input(self, sample: Sequence[float]) -> None:
        target = self.map_input(sample)
        if target is not None:
            # One tuple assignment: a reader sees the old or the new pair, never half of each.
            self._target = target

    def effective_alpha(self, dt: Optional[float] = None) -> float:
        if dt is None or not self.frame_aware:
            return self.smoothing
        if not math.isfinite(dt) or dt <= 0.0:
            return 0.0
        return 1.0 - (1.0 - self.smoothing) ** (dt * self.reference_fps)

    def step(self, dt: Optional[float] = None, sample: Optional[Sequence[float]] = None) -> np.ndarray:
        """Advances the filter by one tick and returns the current vector."""
        if sample is not None:
            self.set_input(sample)
        target = self._target
        alpha = self.effective_alpha(dt)
        self.current[0] += (target[0] - self.current[0]) * alpha
        self.current[1] += (target[1] - self.current[1]) * alpha
        return self.current

    def reset(self) -> None:
        self._target = (0.0, 0.0)
        self.current[:] = 0.0
