import numpy as np
import pytest


class ConstantRng:
    """Stands in for np.random.Generator and returns the same draw every time."""

    def __init__(self, value):
        self.value = value
        self.calls = 0

    def random(self, shape=None):
        self.calls += 1
        if shape is None:
            return self.value
        return np.full(shape, self.value, dtype=np.float64)


class RecordingSurface:
    """Minimal render adapter that keeps a copy of what it was handed."""

    def __init__(self, width=800, height=600):
        self.width = width
        self.height = height
        self.frames = []

    def render(self, frame):
        self.frames.append((frame.tick, frame.positions.copy(), frame.opacity.copy()))


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def constant_rng():
    return ConstantRng
