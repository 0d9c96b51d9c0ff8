"""Pytest configuration and shared fixtures."""

import io
import struct

import numpy as np
import pytest
from PIL import Image


def make_test_image(width: int = 100, height: int = 100, seed: int = 0) -> np.ndarray:
    """Build a noisy gradient image so every stage has something to work on."""
    rng = np.random.default_rng(seed)
    x = np.linspace(0, 255, width, dtype=np.float32)
    y = np.linspace(0, 255, height, dtype=np.float32)
    base = np.empty((height, width, 3), dtype=np.float32)
    base[:, :, 0] = x[np.newaxis, :]
    base[:, :, 1] = y[:, np.newaxis]
    base[:, :, 2] = 128.0
    noise = rng.normal(0.0, 12.0, size=base.shape)
    return np.clip(base + noise, 0, 255).astype(np.uint8)


def encode(array: np.ndarray, fmt: str, **options) -> bytes:
    """Encode a numpy array with Pillow."""
    output = io.BytesIO()
    Image.fromarray(array).save(output, format=fmt, **options)
    return output.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A 100x100 RGB JPEG."""
    return encode(make_test_image(100, 100), "JPEG", quality=90)


def with_declared_size(jpeg: bytes, width: int, height: int) -> bytes:
    """Rewrite the baseline frame header so the JPEG claims other dimensions."""
    sof = jpeg.index(b"\xff\xc0")
    # Marker, segment length and sample precision precede height and width
    return jpeg[: sof + 5] + struct.pack(">HH", height, width) + jpeg[sof + 9 :]


@pytest.fixture
def oversized_jpeg_bytes() -> bytes:
    """A 16x16 JPEG whose header declares 30000x30000 pixels."""
    small = encode(make_test_image(16, 16, seed=7), "JPEG", quality=90)
    return with_declared_size(small, 30000, 30000)


@pytest.fixture
def large_jpeg_bytes() -> bytes:
    """A 400x300 RGB JPEG for resize tests."""
    return encode(make_test_image(400, 300, seed=1), "JPEG", quality=90)


@pytest.fixture
def grayscale_jpeg_bytes() -> bytes:
    """A 64x48 single-channel JPEG."""
    gray = make_test_image(64, 48, seed=2)[:, :, 0]
    return encode(gray, "JPEG", quality=90)


@pytest.fixture
def png_bytes() -> bytes:
    """A 100x100 RGB PNG."""
    return encode(make_test_image(100, 100, seed=3), "PNG")


@pytest.fixture
def rgba_png_bytes() -> bytes:
    """A 50x40 RGBA PNG with a horizontal alpha ramp."""
    rgb = make_test_image(50, 40, seed=4)
    alpha = np.tile(np.linspace(0, 255, 50, dtype=np.uint8), (40, 1))
    return encode(np.dstack([rgb, alpha]), "PNG")


@pytest.fixture
def webp_bytes() -> bytes:
    """A 100x100 lossy WebP."""
    return encode(make_test_image(100, 100, seed=5), "WEBP", quality=80)


@pytest.fixture
def gif_bytes() -> bytes:
    """A 32x32 GIF, a format no stage has an encoder branch for."""
    return encode(make_test_image(32, 32, seed=6), "GIF")


@pytest.fixture
def jpeg_file(tmp_path, jpeg_bytes):
    """A JPEG written to a temporary directory."""
    path = tmp_path / "photo.jpg"
    path.write_bytes(jpeg_bytes)
    return path
