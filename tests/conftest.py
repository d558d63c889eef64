import io

import numpy as np
import pytest
from PIL import Image

from stickerprep.config import NormalizerParams, AnalysisParams, CropAnchor
from stickerprep.normalizer import ImageNormalizer


def create_test_image(width=200, height=200, color=(255, 100, 100), format="PNG", mode="RGB", **save_kwargs):
    """Solid-color image encoded to bytes"""
    img = Image.new(mode, (width, height), color=color)
    buf = io.BytesIO()
    img.save(buf, format=format, **save_kwargs)
    return buf.getvalue()


def create_noise_image(width, height, format="PNG", seed=0, **save_kwargs):
    """Random RGB noise, close to incompressible"""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    buf = io.BytesIO()
    Image.fromarray(pixels, "RGB").save(buf, format=format, **save_kwargs)
    return buf.getvalue()


def create_gradient_image(width, height, format="PNG"):
    """Horizontal/vertical gradient, compresses well but is not flat"""
    x = np.linspace(0, 255, width, dtype=np.float32)
    y = np.linspace(0, 255, height, dtype=np.float32)
    r = np.tile(x, (height, 1))
    g = np.tile(y[:, None], (1, width))
    b = np.full((height, width), 128, dtype=np.float32)
    pixels = np.dstack([r, g, b]).astype(np.uint8)
    buf = io.BytesIO()
    Image.fromarray(pixels, "RGB").save(buf, format=format)
    return buf.getvalue()


def open_image(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def make_params(**overrides):
    """NormalizerParams that always take the slow path unless overridden"""
    values = dict(
        max_dimension=1024,
        byte_budget=4 * 1024 * 1024,
        small_image_threshold=0,
        min_dimension=256,
        max_encode_attempts=2,
        final_attempt_quality=0.6,
        switch_format_on_final_attempt=True,
        crop_anchor=CropAnchor.ATTENTION,
    )
    values.update(overrides)
    return NormalizerParams(**values)


@pytest.fixture
def params():
    return make_params()


@pytest.fixture
def normalizer(params):
    return ImageNormalizer(params=params)


@pytest.fixture
def analysis_params():
    return AnalysisParams()
