"""
Shared fixtures: synthetic images and their encoded forms.
"""

import io
import os
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def make_rgb(width: int, height: int, seed: int = 7) -> np.ndarray:
    """Deterministic RGB test pattern (H,W,3) uint8."""
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


def encode_pil(pixels: np.ndarray, fmt: str) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(pixels).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def rgb_pixels() -> np.ndarray:
    return make_rgb(64, 48)


@pytest.fixture
def png_bytes(rgb_pixels) -> bytes:
    return encode_pil(rgb_pixels, "PNG")


@pytest.fixture
def image_dir(tmp_path: Path, rgb_pixels) -> Path:
    """Directory with page.tif (64x48 RGB) and bad.tif (not an image)."""
    d = tmp_path / "images"
    d.mkdir()
    (d / "page.tif").write_bytes(encode_pil(rgb_pixels, "TIFF"))
    (d / "bad.tif").write_bytes(b"definitely not a tiff")
    return d
