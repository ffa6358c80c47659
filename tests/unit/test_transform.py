"""
Unit tests for the crop -> resize -> rotate pipeline
"""

import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.errors import BadRequest, UpscaleRejected
from common.types import DecodedImage
from common.utils import round_half_up, scale_by_pct
from iiif.request import (
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
    parse_image_request,
    parse_region,
)
from imaging.transform import (
    SizeLimits,
    crop_image,
    fit_within,
    region_rect,
    resize_image,
    rotate_image,
    transform,
)


def _indexed(width, height):
    """Gray image whose pixel value encodes its position."""
    return DecodedImage(np.arange(width * height, dtype=np.uint8).reshape(height, width))


def _rgb(width, height):
    rng = np.random.default_rng(3)
    return DecodedImage(rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8))


class TestRounding:
    """Half-up rounding helpers"""

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.4999) == 2
        assert round_half_up(0.0) == 0

    def test_scale_by_pct(self):
        """Ties go up, unlike Python's banker's rounding"""
        assert scale_by_pct(5, 50) == 3
        assert scale_by_pct(200, 10) == 20
        assert scale_by_pct(3, 50) == 2
        assert scale_by_pct(100, 0) == 0


class TestCrop:
    """Region resolution and cropping"""

    def test_full_is_identity(self):
        img = _indexed(6, 4)
        assert crop_image(img, RegionFull()) is img

    def test_square_landscape_is_centered(self):
        """Margins are (width - side) // 2 on the long axis"""
        assert region_rect(RegionSquare(), 6, 4) == (1, 0, 4, 4)
        assert region_rect(RegionSquare(), 7, 4) == (1, 0, 4, 4)
        assert region_rect(RegionSquare(), 300, 100) == (100, 0, 100, 100)

    def test_square_portrait_is_centered(self):
        assert region_rect(RegionSquare(), 4, 6) == (0, 1, 4, 4)
        assert region_rect(RegionSquare(), 100, 300) == (0, 100, 100, 100)

    def test_square_on_square_image(self):
        assert region_rect(RegionSquare(), 5, 5) == (0, 0, 5, 5)

    def test_square_crop_pixels(self):
        img = _indexed(6, 4)
        out = crop_image(img, RegionSquare())
        np.testing.assert_array_equal(out.pixels, img.pixels[:, 1:5])

    def test_absolute_crop_pixels(self):
        img = _indexed(6, 4)
        out = crop_image(img, RegionAbsolute(2, 1, 3, 2))
        assert (out.width, out.height) == (3, 2)
        np.testing.assert_array_equal(out.pixels, img.pixels[1:3, 2:5])

    def test_crop_does_not_alias_input(self):
        img = _indexed(6, 4)
        out = crop_image(img, RegionAbsolute(0, 0, 2, 2))
        out.pixels[0, 0] = 255
        assert img.pixels[0, 0] == 0

    def test_absolute_out_of_bounds(self):
        """Nothing is clamped"""
        with pytest.raises(BadRequest):
            region_rect(RegionAbsolute(5, 0, 2, 2), 6, 4)
        with pytest.raises(BadRequest):
            region_rect(RegionAbsolute(0, 0, 1, 5), 6, 4)
        with pytest.raises(BadRequest):
            region_rect(RegionAbsolute(6, 0, 1, 1), 6, 4)

    def test_absolute_touching_edge_is_valid(self):
        assert region_rect(RegionAbsolute(4, 2, 2, 2), 6, 4) == (4, 2, 2, 2)

    def test_percent_region(self):
        assert region_rect(RegionPercent(10, 10, 50, 50), 200, 100) == (20, 10, 100, 50)

    def test_percent_region_rounds_half_up(self):
        assert region_rect(RegionPercent(0, 0, 50, 50), 5, 5) == (0, 0, 3, 3)

    def test_percent_region_empty(self):
        with pytest.raises(BadRequest):
            region_rect(RegionPercent(0, 0, 0.1, 50), 100, 100)

    def test_percent_right_half_of_odd_width(self):
        """Rounding x and w up together must not push the edge out"""
        img = DecodedImage(np.zeros((10, 101, 3), dtype=np.uint8))
        out = crop_image(img, parse_region("pct:50,0,50,100"))
        assert (out.width, out.height) == (50, 10)

    def test_percent_bottom_strip_rounding(self):
        img = DecodedImage(np.zeros((100, 10, 3), dtype=np.uint8))
        out = crop_image(img, parse_region("pct:0,66.5,100,33.5"))
        assert (out.width, out.height) == (10, 33)

    def test_percent_region_clipped_to_image(self):
        assert region_rect(RegionPercent(60, 0, 50, 50), 100, 100) == (60, 0, 40, 50)
        assert region_rect(RegionPercent(0, 0, 150, 150), 40, 30) == (0, 0, 40, 30)

    def test_percent_region_starting_outside(self):
        with pytest.raises(BadRequest):
            region_rect(RegionPercent(100, 0, 10, 10), 100, 100)
        with pytest.raises(BadRequest):
            region_rect(RegionPercent(0, 99.6, 10, 10), 100, 100)


class TestResize:
    """Size resolution, ratio fitting, upscale checks and limits"""

    def test_max_is_identity(self):
        img = _rgb(10, 8)
        assert resize_image(img, Size(SizeMax())) is img

    def test_width_only_keeps_height(self):
        out = resize_image(_rgb(100, 80), Size(SizeWidth(50)))
        assert (out.width, out.height) == (50, 80)

    def test_height_only_keeps_width(self):
        out = resize_image(_rgb(100, 80), Size(SizeHeight(40)))
        assert (out.width, out.height) == (100, 40)

    def test_percent(self):
        out = resize_image(_rgb(100, 80), Size(SizePercent(50)))
        assert (out.width, out.height) == (50, 40)

    def test_exact_distorts(self):
        out = resize_image(_rgb(100, 80), Size(SizeWidthHeight(30, 70)))
        assert (out.width, out.height) == (30, 70)

    def test_maintain_ratio_fits_box(self):
        out = resize_image(_rgb(100, 80), Size(SizeWidthHeight(50, 50), maintain_ratio=True))
        assert (out.width, out.height) == (50, 40)

    def test_fit_within(self):
        assert fit_within(100, 80, 50, 50) == (50, 40)
        assert fit_within(80, 100, 50, 50) == (40, 50)
        assert fit_within(1000, 1, 10, 10) == (10, 1)

    def test_upscale_width_rejected(self):
        with pytest.raises(UpscaleRejected):
            resize_image(_rgb(100, 80), Size(SizeWidth(150)))

    def test_upscale_height_rejected(self):
        """Either dimension growing is an upscale"""
        with pytest.raises(UpscaleRejected):
            resize_image(_rgb(100, 80), Size(SizeWidthHeight(50, 90)))

    def test_upscale_rejected_is_bad_request(self):
        with pytest.raises(BadRequest):
            resize_image(_rgb(10, 10), Size(SizePercent(150)))

    def test_upscale_allowed(self):
        out = resize_image(_rgb(100, 80), Size(SizeWidth(150), allow_upscale=True))
        assert (out.width, out.height) == (150, 80)

    def test_upscale_height_only_allowed(self):
        out = resize_image(_rgb(100, 80), Size(SizeHeight(160), allow_upscale=True))
        assert (out.width, out.height) == (100, 160)

    def test_zero_percent_rejected(self):
        with pytest.raises(BadRequest):
            resize_image(_rgb(10, 10), Size(SizePercent(0)))

    def test_limits(self):
        limits = SizeLimits(max_width=120, max_height=120, max_area=10_000)
        with pytest.raises(BadRequest):
            resize_image(_rgb(100, 80), Size(SizeWidth(121), allow_upscale=True), limits)
        with pytest.raises(BadRequest):
            resize_image(_rgb(100, 80), Size(SizeWidthHeight(110, 110), allow_upscale=True), limits)
        out = resize_image(_rgb(100, 80), Size(SizeWidth(120), allow_upscale=True), limits)
        assert out.width == 120

    def test_preserves_channels(self):
        rgba = DecodedImage(np.full((8, 10, 4), 200, dtype=np.uint8))
        out = resize_image(rgba, Size(SizeWidth(5)))
        assert out.mode == "RGBA"
        gray = _indexed(10, 8)
        assert resize_image(gray, Size(SizeWidth(5))).mode == "L"


class TestRotate:
    """Mirror then clockwise rotation"""

    def setup_method(self):
        self.img = _indexed(3, 2)
        self.px = self.img.pixels

    def test_zero_is_identity(self):
        assert rotate_image(self.img, Rotation(0)) is self.img

    def test_clockwise(self):
        np.testing.assert_array_equal(rotate_image(self.img, Rotation(90)).pixels, np.rot90(self.px, k=-1))
        np.testing.assert_array_equal(rotate_image(self.img, Rotation(180)).pixels, np.rot90(self.px, k=2))
        np.testing.assert_array_equal(rotate_image(self.img, Rotation(270)).pixels, np.rot90(self.px, k=1))

    def test_mirror(self):
        np.testing.assert_array_equal(rotate_image(self.img, Rotation(0, True)).pixels, np.fliplr(self.px))

    def test_mirror_then_rotate(self):
        out = rotate_image(self.img, Rotation(90, True))
        np.testing.assert_array_equal(out.pixels, np.rot90(np.fliplr(self.px), k=-1))

    def test_mirrored_180_is_vertical_flip(self):
        out = rotate_image(self.img, Rotation(180, True))
        np.testing.assert_array_equal(out.pixels, np.flipud(self.px))

    def test_rgb_rotation_swaps_dims(self):
        out = rotate_image(_rgb(10, 4), Rotation(270))
        assert (out.width, out.height, out.mode) == (4, 10, "RGB")


class TestTransform:
    """Fixed stage order"""

    def test_crop_resize_rotate(self):
        img = _rgb(200, 100)
        req = parse_image_request("x/pct:10,10,50,50/50,/90/default.png")
        out = transform(img, req.region, req.size, req.rotation)
        # crop 100x50, resize width -> 50x50, rotate keeps square
        assert (out.width, out.height) == (50, 50)

    def test_resize_sees_cropped_dimensions(self):
        """Upscale is judged against the crop, not the source"""
        img = _rgb(200, 100)
        with pytest.raises(UpscaleRejected):
            transform(img, RegionAbsolute(0, 0, 20, 20), Size(SizeWidth(30)), Rotation())

    def test_rotation_applies_last(self):
        img = _rgb(200, 100)
        out = transform(img, RegionFull(), Size(SizeWidthHeight(40, 20)), Rotation(90))
        assert (out.width, out.height) == (20, 40)

    def test_input_untouched(self):
        img = _rgb(20, 10)
        before = img.pixels.copy()
        transform(img, RegionSquare(), Size(SizeWidth(5), maintain_ratio=True), Rotation(180, True))
        np.testing.assert_array_equal(img.pixels, before)
