"""
Image codec capability: bytes <-> DecodedImage.

Pillow does the actual decoding/encoding. Decoded pixels are normalized to
one of L, LA, RGB, RGBA so the transform pipeline only sees uint8 arrays with
1-4 channels.
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image

from common.errors import DecodeError, EncodeError
from common.logging_setup import get_logger
from common.types import DecodedImage
from iiif.formats import ImageFormat


log = get_logger(__name__)

_NATIVE_MODES = ("L", "LA", "RGB", "RGBA")


def _normalize(img: Image.Image) -> Image.Image:
    if img.mode in _NATIVE_MODES:
        return img
    has_alpha = img.mode in ("PA", "La", "RGBa") or "transparency" in img.info
    if img.mode in ("1", "I", "I;16", "I;16B", "I;16L", "F"):
        if img.mode != "1":
            # scale wide gray samples down to 8 bits
            arr = np.asarray(img, dtype=np.float64)
            peak = 65535.0 if img.mode.startswith("I;16") or arr.max(initial=0) > 255 else 255.0
            return Image.fromarray(np.clip(arr * (255.0 / peak), 0, 255).astype(np.uint8))
        return img.convert("L")
    return img.convert("RGBA" if has_alpha else "RGB")


def _to_decoded(img: Image.Image) -> DecodedImage:
    img = _normalize(img)
    return DecodedImage(np.array(img, dtype=np.uint8))


def decode_bytes(data: bytes, fmt: Optional[ImageFormat] = None) -> DecodedImage:
    """
    Decode an encoded image.

    Params:
        data: encoded bytes
        fmt: codec to use; None lets Pillow sniff the content

    Raises:
        DecodeError: on any codec failure (never retried)
    """
    formats = [fmt.codec] if fmt is not None else None
    try:
        with Image.open(io.BytesIO(data), formats=formats) as img:
            img.load()
            return _to_decoded(img)
    except Exception as e:  # Pillow raises a zoo of types (OSError, SyntaxError, ValueError, ...)
        raise DecodeError(f"cannot decode {fmt or 'image'}: {e}") from e


def decode_file(path: Union[str, Path], fmt: Optional[ImageFormat] = None) -> DecodedImage:
    """
    Decode an image file. A missing file raises FileNotFoundError so callers
    can report it as not-found rather than as a codec failure.
    """
    data = Path(path).read_bytes()
    try:
        return decode_bytes(data, fmt)
    except DecodeError as e:
        raise DecodeError(f"{path}: {e}") from e


def _target_mode(mode: str, fmt: ImageFormat) -> str:
    if mode in fmt.modes:
        return mode
    has_alpha = mode in ("LA", "RGBA")
    gray = mode in ("L", "LA")
    if gray and not has_alpha and "L" in fmt.modes:
        return "L"
    if has_alpha and gray and "LA" in fmt.modes:
        return "LA"
    if has_alpha and "RGBA" in fmt.modes:
        return "RGBA"
    if gray and "L" in fmt.modes:
        return "L"
    return "RGB" if "RGB" in fmt.modes else fmt.modes[0]


def encode(image: DecodedImage, fmt: ImageFormat) -> bytes:
    """
    Encode pixels in `fmt`, converting the pixel mode when the codec cannot
    store it (e.g. RGBA -> RGB for JPEG).

    Raises:
        EncodeError: on any codec failure
    """
    try:
        img = Image.fromarray(np.ascontiguousarray(image.pixels))
        mode = _target_mode(img.mode, fmt)
        if mode != img.mode:
            log.debug("Converting %s -> %s for %s", img.mode, mode, fmt.ext)
            img = img.convert(mode)
        buf = io.BytesIO()
        img.save(buf, format=fmt.codec)
        return buf.getvalue()
    except Exception as e:
        raise EncodeError(f"cannot encode as {fmt.ext}: {e}") from e
