# scheduler.py
"""
Advances a particle field one frame at a time.

This module defines the FrameScheduler class. It owns the global elapsed
time and, on every tick, updates the interaction filter, recomputes every
particle's position and dynamic opacity, sanitizes the buffers and hands
them to the render adapter. It owns no thread: the host calls tick() once
per frame and stops by no longer calling it.
"""
import logging
import math
import numpy as np
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from constants import FIXED_STEP, MAX_STEP, DEFAULT_LOG_THROTTLE_TICKS
from particle import ParticleField
from attributes import AttributeAssigner
from motion import MotionState
from interaction import InteractionController

# --- Data Contracts ---
#
# class FrameScheduler:
#   - tick(self, dt: Optional[float] = None, input_sample=None) -> Frame
#     - Inputs: measured seconds since the last tick (fixed_step when None),
#       optional latest pointer sample in [-1, 1]^2.
#     - Order: (1) advance elapsed, (2) step the interaction filter,
#       (3) float positions, (4) dynamic opacity, (5) sanitize and render.
#     - Outputs: the Frame handed to the render adapter.
#     - Invariants: particle count constant; base positions untouched;
#       output buffers finite and within the configured bounds.


@dataclass
class Frame:
    """Per-tick output: views on the field's buffers plus the global transform."""
    positions: np.ndarray
    opacity: np.ndarray
    size: np.ndarray
    interaction: np.ndarray
    interaction_mode: str
    elapsed: float
    tick: int


class RenderAdapter(Protocol):
    """Anything that can draw a Frame. Must treat the buffers as read-only."""
    width: int
    height: int

    def render(self, frame: Frame) -> None:
        ...


class FrameScheduler:
    """
    Runs the per-frame update for one particle field.
    """
    def __init__(self, field: ParticleField, assigner: AttributeAssigner, motion: MotionState,
                 controller: InteractionController, renderer: Optional[RenderAdapter] = None,
                 fixed_step: float = FIXED_STEP, max_step: float = MAX_STEP,
                 log_throttle: int = DEFAULT_LOG_THROTTLE_TICKS):
        self.field = field
        self.assigner = assigner
        self.motion = motion
        self.controller = controller
        self.renderer = renderer
        self.fixed_step = float(fixed_step)
        self.max_step = float(max_step)
        self.log_throttle = max(1, int(log_throttle))

        self.elapsed = 0.0
        self.tick_count = 0
        self.anomaly_count = 0

        logging.info(
            f"FrameScheduler ready: {field.particle_count} particles, "
            f"dynamic opacity {'on' if assigner.dynamic else 'off'}, "
            f"interaction mode '{controller.mode}'."
        )

    def _clamp_step(self, dt: Optional[float]) -> float:
        if dt is None:
            return self.fixed_step
        if not math.isfinite(dt) or dt < 0.0:
            logging.debug(f"Ignoring invalid tick duration {dt!r}.")
            return 0.0
        return min(dt, self.max_step)

    def tick(self, dt: Optional[float] = None,
             input_sample: Optional[Sequence[float]] = None) -> Frame:
        """
        Executes one frame.
        """
        step = self._clamp_step(dt)

        # 1. Advance time
        self.elapsed += step
        self.tick_count += 1

        # 2. Smooth the interaction vector toward the latest target
        interaction = self.controller.step(step if dt is not None else None, input_sample)

        frame = self._compute(interaction)

        if self.tick_count % self.log_throttle == 0:
            logging.debug(
                f"Tick {self.tick_count} | elapsed {self.elapsed:.2f}s | "
                f"interaction ({interaction[0]:.4f}, {interaction[1]:.4f}) | "
                f"mean opacity {float(self.field.opacity.mean()):.4f}"
            )

        # 5. Hand the buffers to the renderer
        if self.renderer is not None:
            self.renderer.render(frame)
        return frame

    def seek(self, elapsed: float) -> Frame:
        """Recomputes the buffers for an arbitrary time without smoothing or rendering."""
        self.elapsed = float(elapsed)
        return self._compute(self.controller.current)

    def _compute(self, interaction: np.ndarray) -> Frame:
        field = self.field
        # 3. Float positions
        self.motion.apply(field.base_positions, self.elapsed, field.positions)
        # 4. Dynamic opacity
        if self.assigner.dynamic:
            self.assigner.update(field, self.elapsed, interaction)
        self._sanitize()
        return Frame(
            positions=field.positions,
            opacity=field.opacity,
            size=field.size,
            interaction=interaction.copy(),
            interaction_mode=self.controller.mode,
            elapsed=self.elapsed,
            tick=self.tick_count,
        )

    def _sanitize(self) -> None:
        """Keeps non-finite values and out-of-bound opacities out of the output buffers."""
        field = self.field
        bad_positions = ~np.isfinite(field.positions).all(axis=1)
        bad_opacity = ~np.isfinite(field.opacity)
        anomalies = int(np.count_nonzero(bad_positions)) + int(np.count_nonzero(bad_opacity))
        if anomalies:
            field.positions[bad_positions] = field.base_positions[bad_positions]
            field.opacity[bad_opacity] = 0.0
            self.anomaly_count += anomalies
            if self.anomaly_count == anomalies or self.tick_count % self.log_throttle == 0:
                logging.warning(
                    f"Sanitized {anomalies} non-finite value(s) at tick {self.tick_count} "
                    f"({self.anomaly_count} total)."
                )
        np.clip(field.opacity, *self.assigner.opacity_bounds, out=field.opacity)

    @property
    def sweep_progress(self):
        """Progress through each sweep cycle, in [0, 1), keyed by cycle duration."""
        return {
            sweep.cycle_duration: (self.elapsed % sweep.cycle_duration) / sweep.cycle_duration
            for _, sweep in self.assigner.sweeps
        }
