# visualization.py
"""
Renders a particle field frame using Pygame.

The core hands over world-space positions, opacities and sizes; this
module owns everything screen-related: the perspective camera, the
responsive camera distance, additive point splatting and pointer polling.
"""
import logging
import math
import pygame
import numpy as np
from typing import Optional, Sequence, Tuple

from constants import (
    BACKGROUND_COLOR, DEFAULT_PARTICLE_COLOR, FULLSCREEN, WINDOW_SIZE,
    CAMERA_FOV_DEG, CAMERA_DISTANCE, DEPTH_SIZE_SCALE, POINT_SIZE
)
from scheduler import Frame

# --- Data Contracts ---
#
# project_points(positions, rotation, width, height, camera_distance, fov_deg)
#   - Inputs: (N, 3) world positions, (tilt_x, yaw_y) radians.
#   - Outputs: (N, 2) pixel coordinates (x right, y down) and (N,) depth
#     along the view axis. Points at or behind the camera get depth <= 0.
#
# class Visualizer:
#   - render(self, frame: Frame) -> None
#     - Side Effects: draws the frame to the Pygame display. Never writes
#       to the frame's buffers.
#   - poll_events(self) -> Tuple[bool, Optional[Tuple[float, float]]]
#     - Outputs: False once the user quits, plus the latest pointer
#       sample normalized to [-1, 1]^2 (y up), or None when it did not move.

NEAR_PLANE = 1.0


def camera_distance_for_width(width: int) -> float:
    """Pulls the camera back on narrow surfaces so the shape still fits."""
    if width < 600:
        return 140.0
    if width < 900:
        return 120.0
    return CAMERA_DISTANCE


def normalize_pointer(pos: Sequence[float], width: int, height: int) -> Tuple[float, float]:
    """Maps a pixel position to [-1, 1]^2 with +y pointing up."""
    mx = pos[0] / width * 2.0 - 1.0
    my = -(pos[1] / height * 2.0 - 1.0)
    return (min(max(mx, -1.0), 1.0), min(max(my, -1.0), 1.0))


def rotate(positions: np.ndarray, tilt: float, yaw: float) -> np.ndarray:
    """Rotates about X by `tilt`, then about Y by `yaw`."""
    ca, sa = math.cos(tilt), math.sin(tilt)
    cb, sb = math.cos(yaw), math.sin(yaw)
    x = positions[:, 0]
    y = ca * positions[:, 1] - sa * positions[:, 2]
    z = sa * positions[:, 1] + ca * positions[:, 2]
    return np.stack((cb * x + sb * z, y, -sb * x + cb * z), axis=-1)


def project_points(positions: np.ndarray, rotation: Sequence[float] = (0.0, 0.0),
                   width: int = WINDOW_SIZE[0], height: int = WINDOW_SIZE[1],
                   camera_distance: float = CAMERA_DISTANCE,
                   fov_deg: float = CAMERA_FOV_DEG) -> Tuple[np.ndarray, np.ndarray]:
    """Perspective projection for a camera on +Z looking at the origin."""
    view = rotate(positions, rotation[0], rotation[1])
    depth = camera_distance - view[:, 2]
    focal = (height / 2.0) / math.tan(math.radians(fov_deg) / 2.0)
    safe = np.where(depth > 0.0, depth, np.inf)
    xy = np.empty((len(positions), 2))
    xy[:, 0] = width / 2.0 + view[:, 0] * focal / safe
    xy[:, 1] = height / 2.0 - view[:, 1] * focal / safe
    return xy, depth


def splat_points(xy: np.ndarray, weights: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Additively accumulates point weights into a (width, height) buffer.

    Off-screen points are dropped. Overlapping points add up, like
    additive blending.
    """
    buffer = np.zeros((width, height), dtype=np.float64)
    px = np.floor(xy[:, 0]).astype(np.int64)
    py = np.floor(xy[:, 1]).astype(np.int64)
    visible = (px >= 0) & (px < width) & (py >= 0) & (py < height) & np.isfinite(weights)
    np.add.at(buffer, (px[visible], py[visible]), weights[visible])
    return buffer


class Visualizer:
    """
    Pygame render adapter for a FrameScheduler.
    """
    def __init__(self, width: int = WINDOW_SIZE[0], height: int = WINDOW_SIZE[1],
                 color: Sequence[int] = DEFAULT_PARTICLE_COLOR, fullscreen: bool = FULLSCREEN,
                 background: Sequence[int] = BACKGROUND_COLOR, fov: float = CAMERA_FOV_DEG,
                 caption: str = "Particle Field"):
        """
        Initializes Pygame and the display window.
        """
        pygame.init()

        if fullscreen:
            display_info = pygame.display.Info()
            width, height = display_info.current_w, display_info.current_h
            self.screen = pygame.display.set_mode((width, height), pygame.FULLSCREEN)
        else:
            self.screen = pygame.display.set_mode((width, height), pygame.RESIZABLE)
        pygame.display.set_caption(caption)
        self.clock = pygame.time.Clock()

        self.color = np.array(color[:3], dtype=np.float64) / 255.0
        self.background = np.array(background[:3], dtype=np.float64)
        self.fov = float(fov)
        self._resize(*self.screen.get_size())

        logging.info(f"Visualizer initialized with Pygame display ({self.width}x{self.height}).")

    def _resize(self, width: int, height: int) -> None:
        self.width = int(width)
        self.height = int(height)
        self.camera_distance = camera_distance_for_width(self.width)
        logging.debug(f"Viewport {self.width}x{self.height}, camera distance {self.camera_distance}.")

    def render(self, frame: Frame) -> None:
        """Projects, splats and presents one frame."""
        rotation = frame.interaction if frame.interaction_mode == "rotation" else (0.0, 0.0)
        xy, depth = project_points(
            frame.positions, rotation, self.width, self.height, self.camera_distance, self.fov
        )
        in_front = depth > NEAR_PLANE
        # Pixel size shrinks with depth; weight grows with the covered area.
        pixel_size = np.where(in_front, frame.size * DEPTH_SIZE_SCALE / np.maximum(depth, NEAR_PLANE), 0.0)
        coverage = np.clip(pixel_size / POINT_SIZE, 0.0, 4.0) ** 2
        weights = np.where(in_front, frame.opacity * coverage, 0.0)

        intensity = np.minimum(splat_points(xy, weights, self.width, self.height), 1.0)
        pixels = self.background + intensity[..., None] * (self.color * 255.0 - self.background)
        pixels = np.clip(pixels, 0, 255).astype(np.uint8)

        pygame.surfarray.blit_array(self.screen, pixels)
        pygame.display.flip()

    def poll_events(self) -> Tuple[bool, Optional[Tuple[float, float]]]:
        """
        Handles window events.

        Returns:
            (running, pointer_sample): running is False if the user has quit.
        """
        sample = None
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                logging.info("Quit event received. Shutting down visualizer.")
                return False, sample

            if event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE:
                logging.info("ESC key pressed. Shutting down visualizer.")
                return False, sample

            if event.type == pygame.VIDEORESIZE:
                self.screen = pygame.display.get_surface()
                self._resize(*self.screen.get_size())

            if event.type == pygame.MOUSEMOTION:
                sample = normalize_pointer(event.pos, self.width, self.height)
        return True, sample

    def wait_frame(self, fps: int) -> float:
        """Caps the frame rate and returns the measured frame time in seconds."""
        return self.clock.tick(fps) / 1000.0

    def close(self):
        """Shuts down Pygame."""
        pygame.quit()
