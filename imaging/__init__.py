"""
Pixel-level work: Pillow-backed codecs and the crop/resize/rotate pipeline.
"""
from .transform import SizeLimits, transform

__all__ = ["SizeLimits", "transform"]
