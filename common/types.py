from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import numpy as np


_MODES_BY_CHANNELS = {1: "L", 2: "LA", 3: "RGB", 4: "RGBA"}


@dataclass(slots=True)
class DecodedImage:
    """
    A decoded pixel buffer as produced by the codecs and consumed by the
    transform pipeline.

    Attributes:
        pixels: np.ndarray of shape (H,W) for gray, or (H,W,C) with C in
            2 (gray+alpha), 3 (RGB), 4 (RGBA); dtype uint8.
    """
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if not isinstance(self.pixels, np.ndarray):
            raise TypeError("pixels must be a numpy ndarray")
        if self.pixels.ndim == 3 and self.pixels.shape[2] == 1:
            self.pixels = self.pixels[:, :, 0]
        if self.pixels.ndim not in (2, 3):
            raise ValueError("pixels must be 2D (gray) or 3D (H,W,C)")
        if self.pixels.ndim == 3 and self.pixels.shape[2] not in _MODES_BY_CHANNELS:
            raise ValueError(f"unsupported channel count: {self.pixels.shape[2]}")
        if self.pixels.dtype != np.uint8:
            self.pixels = np.clip(self.pixels, 0, 255).astype(np.uint8)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @property
    def mode(self) -> str:
        return _MODES_BY_CHANNELS[self.channels]

    @property
    def has_alpha(self) -> bool:
        return self.channels in (2, 4)

    def as_bytes(self) -> bytes:
        return np.ascontiguousarray(self.pixels).tobytes()

    def to_meta(self) -> Dict[str, Any]:
        """Metadata without pixel data (safe to log/serialize)."""
        return {"width": self.width, "height": self.height, "mode": self.mode}
