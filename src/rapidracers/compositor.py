"""Server-side car preview rendering with Pillow.

Wheels are pasted onto the body so that each placement's (x, y) is the visual
centre of the wheel after scaling and rotation.
"""
import io
import logging
import math
from typing import List, Sequence

from PIL import Image, UnidentifiedImageError

from rapidracers.errors import ValidationError

logger = logging.getLogger('RapidRacers.compositor')

# Editor canvas dimensions
BODY_W = 1024
BODY_H = 512
WHEEL_W = 256
WHEEL_H = 256

TRANSPARENT = (0, 0, 0, 0)

# a wheel this large already covers the whole body
MAX_SCALE = 8.0


def _number(value, field, default=None):
    if value is None or value == '':
        if default is None:
            raise ValidationError(f'Wheel placement is missing {field}')
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Wheel placement {field} must be a number, got {value!r}')
    if not math.isfinite(number):
        raise ValidationError(f'Wheel placement {field} must be a finite number, got {value!r}')
    return number


class WheelPlacement:
    def __init__(self, x, y, scale=1.0, rotation_degrees=0.0, extra=None):
        self.x = x
        self.y = y
        self.scale = scale
        self.rotation_degrees = rotation_degrees
        # editor-supplied keys we don't interpret but keep in car.json
        self.extra = extra or {}

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValidationError('Each wheel position must be an object')
        scale = _number(data.get('scale'), 'scale', 1.0) or 1.0
        if scale < 0:
            raise ValidationError('Wheel placement scale must not be negative')
        if scale > MAX_SCALE:
            raise ValidationError(f'Wheel placement scale must be at most {MAX_SCALE:g}')
        known = ('x', 'y', 'scale', 'rotationDegrees')
        return cls(x=_number(data.get('x'), 'x'),
                   y=_number(data.get('y'), 'y'),
                   scale=scale,
                   rotation_degrees=_number(data.get('rotationDegrees'), 'rotationDegrees', 0.0),
                   extra={k: v for k, v in data.items() if k not in known})

    def toJSON(self):
        data = dict(self.extra)
        data.update({'x': self.x, 'y': self.y, 'scale': self.scale, 'rotationDegrees': self.rotation_degrees})
        return data


def paste_offset(x, y, width, height):
    """Top-left corner that centres a width x height image on (x, y)."""
    return round(x - width / 2), round(y - height / 2)


def _open_rgba(data: bytes, what):
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(f'{what} is not a readable image: {e}')
    return image.convert('RGBA')


def transform_wheel(wheel: Image.Image, placement: WheelPlacement) -> Image.Image:
    size = (max(1, round(WHEEL_W * placement.scale)), max(1, round(WHEEL_H * placement.scale)))
    scaled = wheel.resize(size, Image.Resampling.LANCZOS)
    if placement.rotation_degrees:
        # PIL rotates counter-clockwise; the editor's angles are clockwise
        scaled = scaled.rotate(-placement.rotation_degrees, resample=Image.Resampling.BICUBIC,
                               expand=True, fillcolor=TRANSPARENT)
    return scaled


def composite(body_png: bytes, wheel_png: bytes, placements: Sequence[WheelPlacement]) -> bytes:
    if not placements:
        return body_png

    body = _open_rgba(body_png, 'Body image')
    wheel = _open_rgba(wheel_png, 'Wheel image')

    for placement in placements:
        wheel_img = transform_wheel(wheel, placement)
        left, top = paste_offset(placement.x, placement.y, wheel_img.width, wheel_img.height)
        layer = Image.new('RGBA', body.size, TRANSPARENT)
        layer.paste(wheel_img, (left, top))
        body = Image.alpha_composite(body, layer)
        logger.debug('Placed wheel %sx%s at (%s, %s)', wheel_img.width, wheel_img.height, left, top)

    out = io.BytesIO()
    body.save(out, format='PNG')
    return out.getvalue()


def make_thumbnail(png: bytes, size: int) -> bytes:
    image = _open_rgba(png, 'Preview image')
    image.thumbnail((size, size), Image.Resampling.LANCZOS)
    out = io.BytesIO()
    image.save(out, format='PNG')
    return out.getvalue()


def placements_from_payload(wheel_positions) -> List[WheelPlacement]:
    if wheel_positions is None:
        return []
    if not isinstance(wheel_positions, list):
        raise ValidationError('wheelPositions must be a list')
    return [WheelPlacement.from_dict(w) for w in wheel_positions]
