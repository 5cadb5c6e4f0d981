# constants.py
"""
Application-level constants.

These values are static and do not change between runs. They are the
fallbacks used when a profile in the configuration file leaves a field
out, plus the fixed numbers of the motion and rendering model that are
not part of a profile's tuning.
"""
import math

TAU = 2.0 * math.pi

# --- Frame timing ---
FPS = 60
# Step used when the host does not measure frame time.
FIXED_STEP = 1.0 / FPS
# Larger measured steps are clamped so a stalled host does not jump.
MAX_STEP = 0.1
# Tick rate at which a profile's smoothing factor is specified.
REFERENCE_FPS = 60.0

# --- Organic float motion ---
# Per-axis frequency multipliers applied to a particle's float speed.
FLOAT_FREQUENCIES = (1.0, 0.8, 0.6)
DEFAULT_FLOAT_AMPLITUDE = (0.5, 0.5, 0.3)
DEFAULT_FLOAT_SPEED = (0.3, 1.0)
# Float units per second (0.008 per frame at 60 fps).
DEFAULT_TIME_SCALE = 0.48

# --- Sampling ---
# Maximum candidates drawn per point by rejection samplers.
DEFAULT_RETRY_BUDGET = 20
# Share of points per rounded-box surface face: front, back, top, bottom, left, right.
ROUNDED_BOX_FACE_WEIGHTS = (0.4, 0.4, 0.05, 0.05, 0.05, 0.05)

# --- Attributes ---
DEFAULT_OPACITY_BOUNDS = (0.0, 1.0)
DEFAULT_SIZE_BOUNDS = (0.1, 4.0)
DEFAULT_SIZE_RANGE = (1.0, 1.5)
DEFAULT_OPACITY = 0.5

# --- Sweep highlight ---
DEFAULT_SWEEP_START_ANGLE = math.pi / 2  # 12 o'clock
DEFAULT_SWEEP_DIM = 0.15
DEFAULT_SWEEP_BRIGHT = (0.7, 1.0)

# --- Interaction ---
DEFAULT_INTERACTION_SCALE = 0.12
DEFAULT_SMOOTHING = 0.025

# --- Logging ---
DEFAULT_LOG_THROTTLE_TICKS = 300

# --- Visualization settings ---
FULLSCREEN = False
WINDOW_SIZE = (1280, 720)
BACKGROUND_COLOR = (12, 12, 14)
DEFAULT_PARTICLE_COLOR = (173, 173, 173)  # 0xadadad
CAMERA_FOV_DEG = 50.0
CAMERA_DISTANCE = 100.0
# Point size attenuation numerator (size * base / depth).
DEPTH_SIZE_SCALE = 250.0
POINT_SIZE = 2.0
