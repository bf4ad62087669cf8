"""Deterministic identicon avatars derived from a public key.

The MD5 digest of the key drives both the pattern and the colour: a 5x5 grid
mirrored around the middle column, where a cell is filled when its source byte
is even, and a hue taken from the last three digest bytes.
"""

from __future__ import annotations

import base64
import colorsys
import hashlib
import io

from PIL import Image, ImageDraw

GRID = 5
CELL = 6
MARGIN = 10
CANVAS = 50


def _pattern(digest: bytes) -> list[bool]:
    cells = []
    for row in range(GRID):
        for col in range(GRID):
            mirrored = col if col <= GRID // 2 else GRID - 1 - col
            cells.append(digest[3 * row + mirrored] % 2 == 0)
    return cells


def _color(digest: bytes) -> tuple[int, int, int, int]:
    hue = (digest[13] + digest[14] + digest[15]) / 765
    r, g, b = colorsys.hls_to_rgb(hue, 0.5, 0.95)
    return round(r * 255), round(g * 255), round(b * 255), 255


def render(public_key: str) -> Image.Image:
    digest = hashlib.md5(public_key.encode("utf-8"), usedforsecurity=False).digest()
    color = _color(digest)

    img = Image.new("RGBA", (CANVAS, CANVAS), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    for i, filled in enumerate(_pattern(digest)):
        if not filled:
            continue
        x = MARGIN + (i % GRID) * CELL
        y = MARGIN + (i // GRID) * CELL
        draw.rectangle((x, y, x + CELL - 1, y + CELL - 1), fill=color)
    return img


def generate(public_key: str) -> bytes:
    """Return the PNG bytes of the identicon for `public_key`."""
    buf = io.BytesIO()
    render(public_key).save(buf, format="PNG")
    return buf.getvalue()


def generate_base64(public_key: str) -> str:
    return "data:image/png;base64," + base64.b64encode(generate(public_key)).decode("ascii")
