"""
Tests for preview compositing
"""

import io
from unittest import TestCase

from PIL import Image

from rapidracers.compositor import (WheelPlacement, composite, make_thumbnail, paste_offset,
                                    placements_from_payload, transform_wheel)
from rapidracers.errors import ValidationError
from rapidracers.tests.fakes import png_bytes

CLEAR = (0, 0, 0, 0)
BLUE = (0, 0, 255, 255)


def open_png(data):
    return Image.open(io.BytesIO(data)).convert('RGBA')


class WheelPlacementTest(TestCase):
    """Test placement parsing"""

    def test_defaults(self):
        """Test scale and rotation default when missing"""
        placement = WheelPlacement.from_dict({'x': 10, 'y': 20})

        self.assertEqual((placement.x, placement.y, placement.scale, placement.rotation_degrees),
                         (10.0, 20.0, 1.0, 0.0))

    def test_zero_scale_means_default(self):
        """Test a zero scale falls back to 1"""
        self.assertEqual(WheelPlacement.from_dict({'x': 0, 'y': 0, 'scale': 0}).scale, 1.0)

    def test_invalid_placements(self):
        """Test missing coordinates and negative scales are rejected"""
        for bad in ({'y': 1}, {'x': 'left', 'y': 1}, {'x': 1, 'y': 1, 'scale': -2}, 'wheel'):
            with self.assertRaises(ValidationError):
                WheelPlacement.from_dict(bad)

    def test_non_finite_numbers_rejected(self):
        """Test NaN and infinity are rejected for every numeric field"""
        for bad in ({'x': 'nan', 'y': 10}, {'x': 10, 'y': float('nan')},
                    {'x': 10, 'y': 10, 'scale': 'inf'}, {'x': 10, 'y': 10, 'rotationDegrees': '-Infinity'}):
            with self.assertRaises(ValidationError):
                WheelPlacement.from_dict(bad)

    def test_scale_is_capped(self):
        """Test oversized scales are rejected before any resize"""
        self.assertEqual(WheelPlacement.from_dict({'x': 0, 'y': 0, 'scale': 8}).scale, 8.0)
        with self.assertRaises(ValidationError):
            WheelPlacement.from_dict({'x': 0, 'y': 0, 'scale': 200})

    def test_extra_keys_survive(self):
        """Test unknown editor keys are kept in the JSON form"""
        placement = WheelPlacement.from_dict({'x': 1, 'y': 2, 'rotationDegrees': 15, 'id': 'front'})

        self.assertEqual(placement.toJSON(), {'id': 'front', 'x': 1.0, 'y': 2.0, 'scale': 1.0,
                                              'rotationDegrees': 15.0})

    def test_payload_must_be_a_list(self):
        """Test wheelPositions is either absent or a list"""
        self.assertEqual(placements_from_payload(None), [])
        with self.assertRaises(ValidationError):
            placements_from_payload({'x': 1})


class CompositeTest(TestCase):
    """Test wheel placement onto the body"""

    def setUp(self):
        self.body = png_bytes((1024, 512), CLEAR)
        self.wheel = png_bytes((256, 256), BLUE)

    def test_no_placements_returns_body_unchanged(self):
        """Test zero placements returns the exact body bytes"""
        self.assertIs(composite(self.body, self.wheel, []), self.body)

    def test_paste_offset_centres_wheel(self):
        """Test the top-left corner centres the wheel on (x, y)"""
        self.assertEqual(paste_offset(512, 256, 256, 256), (384, 128))

    def test_single_placement_lands_centred(self):
        """Test a full-size wheel at (512, 256) covers 384..639 x 128..383"""
        result = open_png(composite(self.body, self.wheel, [WheelPlacement(512, 256)]))

        self.assertEqual(result.size, (1024, 512))
        self.assertEqual(result.getbbox(), (384, 128, 640, 384))
        self.assertEqual(result.getpixel((384, 128)), BLUE)
        self.assertEqual(result.getpixel((383, 128)), CLEAR)

    def test_scale_resizes_wheel(self):
        """Test a half-scale wheel is 128 pixels square around its centre"""
        result = open_png(composite(self.body, self.wheel, [WheelPlacement(200, 200, scale=0.5)]))

        self.assertEqual(result.getbbox(), (136, 136, 264, 264))

    def test_rotation_expands_and_stays_centred(self):
        """Test a rotated wheel grows its bounding box around the same centre"""
        wheel = transform_wheel(open_png(self.wheel), WheelPlacement(0, 0, rotation_degrees=45))
        self.assertGreater(wheel.width, 256)

        result = open_png(composite(self.body, self.wheel, [WheelPlacement(512, 256, rotation_degrees=45)]))
        left, top, right, bottom = result.getbbox()
        self.assertAlmostEqual((left + right) / 2, 512, delta=2)
        self.assertAlmostEqual((top + bottom) / 2, 256, delta=2)

    def test_wheel_partly_off_canvas(self):
        """Test placements near the edge are clipped to the body"""
        result = open_png(composite(self.body, self.wheel, [WheelPlacement(0, 0)]))

        self.assertEqual(result.getbbox(), (0, 0, 128, 128))

    def test_unreadable_image(self):
        """Test undecodable images raise ValidationError"""
        with self.assertRaises(ValidationError):
            composite(b'not an image', self.wheel, [WheelPlacement(1, 1)])

    def test_thumbnail_fits_square(self):
        """Test thumbnails keep the aspect ratio inside the square"""
        thumb = open_png(make_thumbnail(png_bytes((1024, 512), BLUE), 256))

        self.assertEqual(thumb.size, (256, 128))
