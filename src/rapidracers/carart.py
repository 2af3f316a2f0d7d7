"""Procedural starter art for the garage editor.

Bodies and wheels are drawn with Pillow from a seeded ``random.Random`` so a
seed always produces the same PNG.
"""
import io
import math
import random

from PIL import Image, ImageChops, ImageColor, ImageDraw

from rapidracers.compositor import BODY_H, BODY_W, TRANSPARENT, WHEEL_H, WHEEL_W

BODY_STYLES = ('sports', 'suv', 'coupe', 'sedan', 'truck', 'convertible')

COLOR_SCHEMES = [
    ('#FF6B6B', '#4ECDC4', '#45B7D1'),  # red to teal
    ('#A8E6CF', '#FFD3A5', '#FFAAA5'),  # pastel
    ('#667EEA', '#764BA2', '#F093FB'),  # purple
    ('#F093FB', '#F5576C', '#4ECDC4'),  # pink to coral
    ('#4ECDC4', '#44A08D', '#096D57'),  # greens
    ('#FF4500', '#FFD700', '#000000'),  # orange and gold
    ('#00FF00', '#008000', '#FFFF00'),  # lime
    ('#FF1493', '#8A2BE2', '#00FFFF'),  # neon
    ('#DC143C', '#B22222', '#F0E68C'),  # crimson
    ('#20B2AA', '#5F9EA0', '#F5DEB3'),  # teal
]

# (rim, tire, spokes)
WHEEL_SCHEMES = [
    ('#C0C0C0', '#333333', '#888888'),
    ('#FFD700', '#222222', '#FFA500'),
    ('#B87333', '#666666', '#8B4513'),
    ('#FF1493', '#333333', '#8A2BE2'),
    ('#00FF00', '#222222', '#FFFF00'),
    ('#DC143C', '#666666', '#F0E68C'),
]

OUTLINE = '#333333'
WINDOW = (135, 206, 235, 190)


def _rgba(color, alpha=255):
    return ImageColor.getrgb(color)[:3] + (alpha,)


def _mix(a, b, t):
    return tuple(round(x + (y - x) * t) for x, y in zip(a, b))


def _png(image):
    out = io.BytesIO()
    image.save(out, format='PNG')
    return out.getvalue()


def _ellipse(cx, cy, rx, ry):
    return 'ellipse', (cx - rx, cy - ry, cx + rx, cy + ry)


def _rect(x, y, w, h, radius=0):
    return 'rect', ((x, y, x + w, y + h), round(radius))


def _draw_shape(draw, shape, fill=None, outline=None, width=1):
    kind, geometry = shape
    if kind == 'ellipse':
        draw.ellipse(geometry, fill=fill, outline=outline, width=width)
    elif kind == 'rect':
        box, radius = geometry
        draw.rounded_rectangle(box, radius=radius, fill=fill, outline=outline, width=width)
    elif kind == 'pie':
        box, start, end = geometry
        draw.pieslice(box, start, end, fill=fill, outline=outline, width=width)
    else:
        draw.polygon(geometry, fill=fill, outline=outline)


def _shape_mask(size, shapes):
    mask = Image.new('L', size, 0)
    draw = ImageDraw.Draw(mask)
    for shape in shapes:
        _draw_shape(draw, shape, fill=255)
    return mask


def _paint(canvas, shapes, fill_image, outline, width=2):
    """Fill ``shapes`` from ``fill_image`` and stroke their outlines."""
    if not shapes:
        return
    canvas.paste(fill_image, (0, 0), _shape_mask(canvas.size, shapes))
    draw = ImageDraw.Draw(canvas)
    for shape in shapes:
        _draw_shape(draw, shape, outline=outline, width=width)


def _linear_gradient(size, top, bottom):
    width, height = size
    gradient = Image.new('RGBA', size)
    draw = ImageDraw.Draw(gradient)
    top, bottom = _rgba(top), _rgba(bottom)
    for y in range(height):
        draw.line([(0, y), (width, y)], fill=_mix(top, bottom, y / max(1, height - 1)))
    return gradient


def _radial_gradient(size, center, radius, stops):
    """Concentric fill from ``center``; ``stops`` are (offset 0..1, colour) pairs."""
    gradient = Image.new('RGBA', size, TRANSPARENT)
    draw = ImageDraw.Draw(gradient)
    stops = [(offset, _rgba(color)) for offset, color in stops]
    cx, cy = center
    for r in range(int(math.ceil(radius)), 0, -1):
        t = min(1.0, r / radius)
        for (o1, c1), (o2, c2) in zip(stops, stops[1:]):
            if o1 <= t <= o2:
                color = _mix(c1, c2, (t - o1) / (o2 - o1))
                break
        else:
            color = stops[-1][1]
        draw.ellipse((cx - r, cy - r, cx + r, cy + r), fill=color)
    return gradient


def _polar(cx, cy, angle, radius):
    return cx + math.cos(angle) * radius, cy + math.sin(angle) * radius


def _inset(shape, amount):
    kind, geometry = shape
    if kind == 'polygon':
        mx = sum(x for x, _ in geometry) / len(geometry)
        my = sum(y for _, y in geometry) / len(geometry)
        return kind, [(mx + (x - mx) * 0.75, my + (y - my) * 0.75) for x, y in geometry]
    if kind == 'rect':
        (x0, y0, x1, y1), radius = geometry
        return kind, ((x0 + amount, y0 + amount, x1 - amount, y1 - amount), max(0, radius - amount))
    x0, y0, x1, y1 = geometry
    return kind, (x0 + amount, y0 + amount, x1 - amount, y1 - amount)


def _body_shapes(style, rng, w, h, cx, by):
    """Return (body, roof, trim) shape lists for a body style."""
    if style == 0:
        rx = w * (0.4 + rng.random() * 0.05)
        ry = h * (0.12 + rng.random() * 0.04)
        return ([_ellipse(cx, by, rx, ry)],
                [_rect(cx - w * 0.18, by - ry - h * 0.06, w * 0.36, h * 0.12, w * 0.03)],
                [_ellipse(cx + w * 0.22, by - ry * 0.6, w * 0.05, h * 0.015)])
    if style == 1:
        return ([_rect(cx - w * 0.35, by - h * 0.15, w * 0.7, h * 0.25, w * 0.04)],
                [_rect(cx - w * 0.25, by - h * 0.3, w * 0.5, h * 0.17, w * 0.03)],
                [_rect(cx - w * 0.22, by - h * 0.33, w * 0.44, h * 0.015, 2)])
    if style == 2:
        return ([('polygon', [(cx - w * 0.4, by + h * 0.08), (cx - w * 0.4, by), (cx - w * 0.25, by - h * 0.08),
                              (cx + w * 0.3, by - h * 0.06), (cx + w * 0.42, by + h * 0.01),
                              (cx + w * 0.42, by + h * 0.08)])],
                [('polygon', [(cx - w * 0.2, by - h * 0.07), (cx - w * 0.08, by - h * 0.2),
                              (cx + w * 0.1, by - h * 0.2), (cx + w * 0.22, by - h * 0.065)])],
                [])
    if style == 3:
        return ([_ellipse(cx, by, w * 0.38, h * 0.13), _rect(cx + w * 0.2, by - h * 0.08, w * 0.2, h * 0.15, w * 0.02)],
                [_rect(cx - w * 0.2, by - h * 0.26, w * 0.34, h * 0.15, w * 0.04)],
                [])
    if style == 4:
        return ([_rect(cx - w * 0.38, by - h * 0.28, w * 0.3, h * 0.38, w * 0.03),
                 _rect(cx - w * 0.06, by - h * 0.1, w * 0.46, h * 0.2, w * 0.01)],
                [_rect(cx - w * 0.36, by - h * 0.32, w * 0.24, h * 0.06, w * 0.02)],
                [_rect(cx - w * 0.06, by - h * 0.11, w * 0.46, h * 0.02, 2)])
    return ([_ellipse(cx, by, w * 0.42, h * 0.12)],
            [],
            [('polygon', [(cx - w * 0.1, by - h * 0.1), (cx - w * 0.05, by - h * 0.22),
                          (cx - w * 0.03, by - h * 0.22), (cx - w * 0.07, by - h * 0.1)])])


def _pattern_layer(pattern, rng, size, colors, cx, by):
    w, h = size
    layer = Image.new('RGBA', size, TRANSPARENT)
    draw = ImageDraw.Draw(layer)
    if pattern == 1:
        # racing stripes
        for top in (by - h * 0.03, by + h * 0.01):
            draw.rectangle((cx - w * 0.42, top, cx + w * 0.42, top + h * 0.02), fill=(255, 255, 255, 200))
    elif pattern == 2:
        # flames from the nose
        for i in range(3 + rng.randrange(3)):
            y = by - h * 0.06 + i * h * 0.03
            tip = cx + w * 0.1 - rng.random() * w * 0.15
            draw.polygon([(cx + w * 0.42, y - h * 0.015), (tip, y), (cx + w * 0.42, y + h * 0.015)],
                         fill=_rgba(colors[2], 220))
    elif pattern == 3:
        square = w * 0.03
        for row in range(2):
            for col in range(int(w * 0.84 / square)):
                light = (row + col) % 2 == 0
                x = cx - w * 0.42 + col * square
                y = by - h * 0.01 + row * square
                draw.rectangle((x, y, x + square, y + square),
                               fill=(255, 255, 255, 180) if light else (0, 0, 0, 180))
    return layer


def generate_body(seed, width=BODY_W, height=BODY_H) -> bytes:
    rng = random.Random(seed)
    style = rng.randrange(len(BODY_STYLES))
    colors = COLOR_SCHEMES[rng.randrange(len(COLOR_SCHEMES))]
    detail = rng.randrange(3)
    pattern = rng.randrange(4)
    accessory = rng.randrange(3)

    size = (width, height)
    cx, by = width / 2, height * 0.6
    canvas = Image.new('RGBA', size, TRANSPARENT)
    body, roof, trim = _body_shapes(style, rng, width, height, cx, by)

    _paint(canvas, body, _linear_gradient(size, colors[0], colors[1]), OUTLINE)
    _paint(canvas, roof, _linear_gradient(size, colors[2], colors[1]), OUTLINE)
    _paint(canvas, trim, Image.new('RGBA', size, _rgba(colors[2])), OUTLINE, width=1)

    if pattern:
        layer = _pattern_layer(pattern, rng, size, colors, cx, by)
        # keep the pattern on the bodywork
        layer.putalpha(ImageChops.multiply(layer.getchannel('A'), _shape_mask(size, body)))
        canvas = Image.alpha_composite(canvas, layer)

    details = Image.new('RGBA', size, TRANSPARENT)
    draw = ImageDraw.Draw(details)
    for shape in roof:
        _draw_shape(draw, _inset(shape, 8), fill=WINDOW, outline=(255, 255, 255, 220), width=2)

    front, back = cx + width * 0.38, cx - width * 0.38
    draw.ellipse((front - 14, by - height * 0.02 - 8, front + 14, by - height * 0.02 + 8), fill=(255, 248, 170, 255))
    draw.ellipse((back - 12, by - height * 0.02 - 7, back + 12, by - height * 0.02 + 7), fill=(220, 30, 30, 255))
    if detail >= 1:
        draw.line([(cx - width * 0.02, by - height * 0.08), (cx - width * 0.02, by + height * 0.07)],
                  fill=_rgba(OUTLINE, 160), width=2)
    if detail == 2:
        for i in range(3):
            vx = cx + width * (0.08 + i * 0.03)
            draw.ellipse((vx - 8, by - 4, vx + 8, by + 4), fill=(30, 30, 30, 200))

    if accessory == 1:
        draw.rectangle((back - width * 0.04, by - height * 0.2, back + width * 0.06, by - height * 0.18),
                       fill=_rgba(colors[2]), outline=OUTLINE)
        draw.line([(back + width * 0.01, by - height * 0.18), (back + width * 0.01, by - height * 0.1)],
                  fill=OUTLINE, width=4)
    elif accessory == 2:
        ex, ey = cx - width * 0.41, by + height * 0.06
        draw.ellipse((ex - 12, ey - 7, ex + 12, ey + 7), fill=(128, 128, 128, 255), outline=OUTLINE)

    return _png(Image.alpha_composite(canvas, details))


def _spokes(draw, pattern, rng, cx, cy, rim_radius, color):
    if pattern == 0:
        # cross
        reach = rim_radius * 0.8
        draw.line([(cx, cy - reach), (cx, cy + reach)], fill=color, width=4)
        draw.line([(cx - reach, cy), (cx + reach, cy)], fill=color, width=4)
    elif pattern == 1:
        count = 5 + rng.randrange(3)
        for i in range(count):
            angle = i / count * math.tau
            draw.line([_polar(cx, cy, angle, rim_radius * 0.2), _polar(cx, cy, angle, rim_radius * 0.9)],
                      fill=color, width=3)
    elif pattern == 2:
        count = 3 + rng.randrange(2)
        for i in range(count):
            angle = i / count * math.tau
            tip = _polar(cx, cy, angle + math.pi / (count * 2), rim_radius * 0.9)
            draw.line([_polar(cx, cy, angle, rim_radius * 0.3), tip], fill=color, width=3)
            draw.line([_polar(cx, cy, angle + math.pi / count, rim_radius * 0.3), tip], fill=color, width=3)
    elif pattern == 3:
        count = 6 + rng.randrange(4)
        for i in range(count):
            angle = i / count * math.tau
            start = _polar(cx, cy, angle - math.pi / (count * 2), rim_radius * 0.3)
            end = _polar(cx, cy, angle + math.pi / (count * 2), rim_radius * 0.9)
            control = _polar(cx, cy, angle, rim_radius * 0.6)
            curve = [tuple((1 - t) ** 2 * s + 2 * (1 - t) * t * c + t ** 2 * e
                           for s, c, e in zip(start, control, end))
                     for t in (k / 12 for k in range(13))]
            draw.line(curve, fill=color, width=3, joint='curve')
    elif pattern == 5:
        # zigzag
        for i in range(8):
            angle = i / 8 * math.tau
            a = _polar(cx, cy, angle, rim_radius * 0.2)
            b = _polar(cx, cy, angle + math.pi / 16, rim_radius * 0.6)
            c = _polar(cx, cy, angle - math.pi / 16, rim_radius * 0.9)
            draw.line([a, b, c], fill=color, width=3, joint='curve')
    else:
        r = rim_radius * 0.1
        draw.ellipse((cx - r, cy - r, cx + r, cy + r), fill=color)


def generate_wheel(seed, width=WHEEL_W, height=WHEEL_H) -> bytes:
    rng = random.Random(seed)
    rim_style = rng.randrange(6)
    spoke_pattern = rng.randrange(6)
    rim_color, tire_color, spoke_color = WHEEL_SCHEMES[rng.randrange(len(WHEEL_SCHEMES))]

    size = (width, height)
    cx, cy = width / 2, height / 2
    tire_radius = min(width, height) * (0.45 + rng.random() * 0.04)
    rim_radius = min(width, height) * (0.25 + rng.random() * 0.05)

    canvas = Image.new('RGBA', size, TRANSPARENT)
    tire = [_ellipse(cx, cy, tire_radius, tire_radius)]
    _paint(canvas, tire, _radial_gradient(size, (cx, cy), tire_radius,
                                          [(0, tire_color), (0.7, '#666666'), (1, '#000000')]), '#222222')

    draw = ImageDraw.Draw(canvas)
    treads = 8 + rng.randrange(8)
    for i in range(treads):
        angle = i / treads * math.tau
        draw.line([_polar(cx, cy, angle, tire_radius * 0.85), _polar(cx, cy, angle, tire_radius * 0.95)],
                  fill='#111111', width=1)

    rim_fill = _radial_gradient(size, (cx, cy), rim_radius, [(0, '#FFFFFF'), (1, rim_color)])
    solid_rim = Image.new('RGBA', size, _rgba(rim_color))
    if rim_style == 0:
        # multi-piece
        _paint(canvas, [_ellipse(cx, cy, rim_radius, rim_radius)], rim_fill, '#888888', 1)
        _paint(canvas, [_ellipse(cx, cy, rim_radius * 0.7, rim_radius * 0.7)], solid_rim, '#666666', 1)
        _paint(canvas, [_ellipse(cx, cy, rim_radius * 0.4, rim_radius * 0.4)],
               Image.new('RGBA', size, _rgba('#FFFFFF')), '#CCCCCC', 1)
    elif rim_style == 1:
        # mesh
        _paint(canvas, [_ellipse(cx, cy, rim_radius, rim_radius)], rim_fill, '#888888', 1)
        draw = ImageDraw.Draw(canvas)
        lines = 12 + rng.randrange(8)
        for i in range(lines):
            angle = i / lines * math.tau
            draw.line([_polar(cx, cy, angle, rim_radius * 0.3), _polar(cx, cy, angle, rim_radius * 0.9)],
                      fill=spoke_color, width=2)
    elif rim_style == 2:
        # split
        split = rng.random() * 360
        box = (cx - rim_radius, cy - rim_radius, cx + rim_radius, cy + rim_radius)
        _paint(canvas, [('pie', (box, split, split + 180))], rim_fill, '#888888', 1)
        _paint(canvas, [('pie', (box, split + 180, split + 360))], solid_rim, '#888888', 1)
    elif rim_style == 4:
        hexagon = [_polar(cx, cy, i / 6 * math.tau, rim_radius) for i in range(6)]
        _paint(canvas, [('polygon', hexagon)], rim_fill, '#888888')
    elif rim_style == 5:
        star = [_polar(cx, cy, i / 10 * math.tau, rim_radius if i % 2 == 0 else rim_radius * 0.5)
                for i in range(10)]
        _paint(canvas, [('polygon', star)], rim_fill, '#888888')
    else:
        _paint(canvas, [_ellipse(cx, cy, rim_radius, rim_radius)], rim_fill, '#888888')
        _paint(canvas, [_ellipse(cx, cy, rim_radius * 0.3, rim_radius * 0.3)],
               Image.new('RGBA', size, _rgba('#FFFFFF')), '#CCCCCC', 1)

    _spokes(ImageDraw.Draw(canvas), spoke_pattern, rng, cx, cy, rim_radius, _rgba(spoke_color))
    return _png(canvas)
