"""
Shared pytest fixtures for bgremover tests.
"""
from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from bgremover import config


class FakeEngine:
    """Stand-in for OnnxEngine that returns a fixed output."""

    def __init__(self, name="engine", output=None):
        self.name = name
        self.output = output
        self.release_calls = 0
        self.inputs = []

    def run(self, input_tensor):
        self.inputs.append(input_tensor)
        return self.output

    def release(self):
        self.release_calls += 1


class FakeLoader:
    """Callable loader recording every retrieval location it was asked for."""

    def __init__(self, output=None):
        self.output = output
        self.calls = []
        self.engines = []

    def __call__(self, location, on_progress=None):
        self.calls.append(location)
        if on_progress is not None:
            on_progress(1.0)
        engine = FakeEngine(name=location, output=self.output)
        self.engines.append(engine)
        return engine


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; start every test from a clean slate."""
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


@pytest.fixture
def fake_loader():
    return FakeLoader()


@pytest.fixture
def make_image_bytes():
    """Factory encoding an RGB(A) array or a solid color as image bytes."""

    def _make(width=4, height=4, color=(10, 20, 30), pixels=None, fmt="PNG"):
        if pixels is None:
            pixels = np.zeros((height, width, len(color)), dtype=np.uint8)
            pixels[...] = color
        image = Image.fromarray(np.asarray(pixels, dtype=np.uint8))
        buf = BytesIO()
        image.save(buf, format=fmt)
        return buf.getvalue()

    return _make


@pytest.fixture
def random_rgb():
    rng = np.random.default_rng(1234)

    def _make(width, height):
        return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)

    return _make
