"""
Letter avatars: a single uppercase initial on a colored tile.

Used as the placeholder avatar for users who have not uploaded an image.
"""

import random
from collections.abc import Sequence
from functools import cache

from PIL import Image, ImageDraw, ImageFont

from board.config import settings

RGB = tuple[int, int, int]
RGBA = tuple[int, int, int, int]

DEFAULT_PALETTE: tuple[RGB, ...] = (
    (0x45, 0xBD, 0xF3),
    (0xE0, 0x8F, 0x70),
    (0x4D, 0xB6, 0xAC),
    (0x95, 0x75, 0xCD),
    (0xB0, 0x85, 0x75),
    (0x77, 0x77, 0x77),
    (0x34, 0x9A, 0xEE),
    (0xFF, 0xA2, 0x4B),
    (0x84, 0xAA, 0x49),
    (0xE5, 0x73, 0x73),
    (0x5C, 0x6B, 0xC0),
    (0xF0, 0x62, 0x92),
    (0x26, 0xA6, 0x9A),
    (0xAB, 0x47, 0xBC),
)

DEFAULT_LETTER_COLOR: RGBA = (0xF0, 0xF0, 0xF0, 0xF0)

# Used when the palette is empty
FALLBACK_BACKGROUND: RGB = (0x00, 0x00, 0x00)

# Glyph size relative to the tile
LETTER_SCALE = 0.6


def pick_letter(name: str) -> str:
    """Uppercased first character of a display name, or a space if it is empty."""
    if not name:
        return " "
    letter = name[0].upper()
    # Some characters uppercase to more than one ("ß" -> "SS")
    return letter if len(letter) == 1 else name[0]


def palette_index(key: str, palette_size: int) -> int:
    """Stable palette position for a key: sum of code points modulo palette size."""
    return sum(ord(char) for char in key) % palette_size


@cache
def load_font(size: int, path: str | None = None) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    if path:
        return ImageFont.truetype(path, size)
    return ImageFont.load_default(size=size)


def draw_letter_avatar(
    size: int,
    letter: str,
    *,
    rng: random.Random | None = None,
    palette: Sequence[RGB] = DEFAULT_PALETTE,
    letter_color: RGBA = DEFAULT_LETTER_COLOR,
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont | None = None,
    palette_key: str | None = None,
) -> Image.Image:
    """Render a size x size RGBA tile with ``letter`` centered on it.

    The background comes from ``palette``: picked by ``palette_key`` when one
    is given, otherwise at random using ``rng``.
    """
    if not palette:
        background = FALLBACK_BACKGROUND
    elif palette_key:
        background = palette[palette_index(palette_key, len(palette))]
    else:
        background = (rng or random).choice(palette)

    if font is None:
        font = load_font(int(size * LETTER_SCALE), settings.LETTER_AVATAR_FONT)

    # The letter color is translucent; it is composited over the opaque tile
    # so the tile itself stays fully opaque
    glyph = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    ImageDraw.Draw(glyph).text(
        (size / 2, size / 2), letter, fill=letter_color, font=font, anchor="mm"
    )

    img = Image.new("RGBA", (size, size), (*background, 0xFF))
    img.alpha_composite(glyph)
    return img
