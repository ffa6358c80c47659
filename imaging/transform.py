"""
Geometric transform pipeline: crop -> resize -> rotate, always in that order.

All functions are pure: they return a new DecodedImage and never mutate the
input. Any request that cannot be applied to the image at hand raises
BadRequest (UpscaleRejected for a forbidden upscale). Only percent regions
are clipped to the image edges; sizes are never capped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from common.errors import BadRequest, UpscaleRejected
from common.types import DecodedImage
from common.utils import round_half_up, scale_by_pct
from iiif.request import (
    Region,
    RegionAbsolute,
    RegionFull,
    RegionPercent,
    RegionSquare,
    Rotation,
    Size,
    SizeHeight,
    SizeMax,
    SizePercent,
    SizeWidth,
    SizeWidthHeight,
)


@dataclass(frozen=True)
class SizeLimits:
    """Largest output the server agrees to produce (advertised in info.json)."""
    max_width: int = 10_000
    max_height: int = 10_000
    max_area: int = 50_000_000


# Area averaging: smooth when shrinking, bilinear-like when enlarging
RESAMPLE = cv2.INTER_AREA


# -----------------------------
# Crop
# -----------------------------

def region_rect(region: Region, width: int, height: int) -> Tuple[int, int, int, int]:
    """
    Resolve a region to a pixel rectangle (x, y, w, h) on a width x height image.

    Absolute rectangles must lie inside the image. Percent rectangles are
    clipped to the image edges after rounding.

    Raises:
        BadRequest: an absolute rectangle reaches outside the image, or a
            percent rectangle starts outside it or clips to nothing
    """
    if isinstance(region, RegionFull):
        return (0, 0, width, height)
    if isinstance(region, RegionSquare):
        side = min(width, height)
        # equal margins on the longer axis
        return ((width - side) // 2, (height - side) // 2, side, side)
    if isinstance(region, RegionAbsolute):
        x, y, w, h = region.x, region.y, region.w, region.h
        if x + w > width or y + h > height:
            raise BadRequest(
                f"region {region.to_text()} -> ({x},{y},{w},{h}) exceeds {width}x{height} image"
            )
        return (x, y, w, h)
    if not isinstance(region, RegionPercent):
        raise TypeError(f"unknown region: {region!r}")

    x = scale_by_pct(width, region.x)
    y = scale_by_pct(height, region.y)
    if x >= width or y >= height:
        raise BadRequest(f"region {region.to_text()} starts outside the {width}x{height} image")
    # x and w round independently, so the far edge may land one pixel out
    w = min(scale_by_pct(width, region.w), width - x)
    h = min(scale_by_pct(height, region.h), height - y)
    if w <= 0 or h <= 0:
        raise BadRequest(f"region {region.to_text()} is empty on a {width}x{height} image")
    return (x, y, w, h)


def crop_image(image: DecodedImage, region: Region) -> DecodedImage:
    if isinstance(region, RegionFull):
        return image
    x, y, w, h = region_rect(region, image.width, image.height)
    return DecodedImage(image.pixels[y : y + h, x : x + w].copy())


# -----------------------------
# Resize
# -----------------------------

def target_size(size: Size, width: int, height: int) -> Tuple[int, int]:
    """(nw, nh) requested by `size` for a width x height image (before ratio fitting)."""
    kind = size.kind
    if isinstance(kind, SizeMax):
        return (width, height)
    if isinstance(kind, SizeWidth):
        return (kind.w, height)
    if isinstance(kind, SizeHeight):
        return (width, kind.h)
    if isinstance(kind, SizePercent):
        return (scale_by_pct(width, kind.pct), scale_by_pct(height, kind.pct))
    if isinstance(kind, SizeWidthHeight):
        return (kind.w, kind.h)
    raise TypeError(f"unknown size: {kind!r}")


def fit_within(width: int, height: int, box_w: int, box_h: int) -> Tuple[int, int]:
    """Largest (w, h) with the source aspect ratio that fits in box_w x box_h."""
    scale = min(box_w / float(width), box_h / float(height))
    return (max(1, round_half_up(width * scale)), max(1, round_half_up(height * scale)))


def resize_image(image: DecodedImage, size: Size, limits: SizeLimits = SizeLimits()) -> DecodedImage:
    if isinstance(size.kind, SizeMax):
        return image

    w, h = image.width, image.height
    nw, nh = target_size(size, w, h)
    if nw <= 0 or nh <= 0:
        raise BadRequest(f"size {size.to_text()} yields an empty image ({nw}x{nh})")
    if not size.allow_upscale and (nw > w or nh > h):
        raise UpscaleRejected(f"size {size.to_text()} ({nw}x{nh}) exceeds {w}x{h} without '^'")

    if size.maintain_ratio:
        nw, nh = fit_within(w, h, nw, nh)

    if nw > limits.max_width or nh > limits.max_height or nw * nh > limits.max_area:
        raise BadRequest(f"size {nw}x{nh} exceeds server limits")

    if (nw, nh) == (w, h):
        return image
    return DecodedImage(cv2.resize(image.pixels, (nw, nh), interpolation=RESAMPLE))


# -----------------------------
# Rotate
# -----------------------------

def rotate_image(image: DecodedImage, rotation: Rotation) -> DecodedImage:
    """Mirror (horizontal flip) first, then rotate clockwise by a multiple of 90 degrees."""
    px = image.pixels
    if rotation.degrees == 180 and rotation.mirror:
        # flip-horizontal + rotate-180 == flip-vertical
        return DecodedImage(cv2.flip(px, 0))
    if rotation.mirror:
        px = cv2.flip(px, 1)
    if rotation.degrees == 90:
        px = cv2.rotate(px, cv2.ROTATE_90_CLOCKWISE)
    elif rotation.degrees == 180:
        px = cv2.rotate(px, cv2.ROTATE_180)
    elif rotation.degrees == 270:
        px = cv2.rotate(px, cv2.ROTATE_90_COUNTERCLOCKWISE)
    if px is image.pixels:
        return image
    return DecodedImage(np.ascontiguousarray(px))


def transform(
    image: DecodedImage,
    region: Region,
    size: Size,
    rotation: Rotation,
    limits: SizeLimits = SizeLimits(),
) -> DecodedImage:
    """Apply crop, resize and rotate in that fixed order."""
    image = crop_image(image, region)
    image = resize_image(image, size, limits)
    return rotate_image(image, rotation)
