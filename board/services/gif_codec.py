"""
GIF container reader/writer for animated avatars.

Pillow composites animation frames while decoding, which loses each frame's
own palette, offset and transparent index. This module walks the GIF block
structure itself and only hands the LZW-coded pixel data of each frame to
Pillow, wrapped in a single-frame GIF.

Blocks handled:
- Header and logical screen descriptor (canvas size, global color table)
- Graphic control extension (delay, disposal method, transparent index)
- NETSCAPE2.0 application extension (loop count)
- Image descriptor, local color table and LZW image data
- Any other extension is skipped
"""

import struct
from dataclasses import dataclass, field
from io import BytesIO

from PIL import Image

_EXTENSION = 0x21
_IMAGE_DESCRIPTOR = 0x2C
_TRAILER = 0x3B

_GRAPHIC_CONTROL_LABEL = 0xF9
_APPLICATION_LABEL = 0xFF

_COLOR_TABLE_FLAG = 0x80
_INTERLACE_FLAG = 0x40

_NETSCAPE = b"NETSCAPE2.0"


class GifFormatError(ValueError):
    """Raised for malformed or truncated GIF streams."""


@dataclass(slots=True)
class GifFrame:
    """A single animation frame.

    ``image`` is a mode "P" image of the frame's own size whose pixel values
    index into ``palette`` (packed RGB triplets).
    """

    image: Image.Image
    palette: bytes
    left: int = 0
    top: int = 0
    delay: int = 0  # hundredths of a second
    disposal: int = 0
    transparency: int | None = None

    def to_rgba(self) -> Image.Image:
        """Convert the frame to RGBA, the transparent index becoming alpha 0."""
        image = self.image.copy()
        image.putpalette(self.palette)
        if self.transparency is not None:
            image.info["transparency"] = self.transparency
        return image.convert("RGBA")


@dataclass(slots=True)
class GifAnimation:
    width: int
    height: int
    frames: list[GifFrame] = field(default_factory=list)
    loop_count: int | None = None  # None when the stream has no NETSCAPE2.0 block
    background_index: int = 0


@dataclass(slots=True)
class _RawFrame:
    left: int
    top: int
    width: int
    height: int
    interlaced: bool
    palette: bytes
    lzw_min_code_size: int
    data: bytes  # data sub-blocks including the zero-length terminator
    delay: int
    disposal: int
    transparency: int | None


@dataclass(slots=True)
class _RawGif:
    width: int
    height: int
    background_index: int
    loop_count: int | None
    frames: list[_RawFrame]


class _Reader:
    __slots__ = ("data", "pos")

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def read(self, n: int) -> bytes:
        end = self.pos + n
        if end > len(self.data):
            raise GifFormatError("unexpected end of GIF data")
        chunk = self.data[self.pos : end]
        self.pos = end
        return chunk

    def u8(self) -> int:
        return self.read(1)[0]

    def u16(self) -> int:
        return struct.unpack("<H", self.read(2))[0]

    def sub_blocks(self) -> list[bytes]:
        blocks = []
        while True:
            size = self.u8()
            if size == 0:
                return blocks
            blocks.append(self.read(size))

    def raw_sub_blocks(self) -> bytes:
        """Return the sub-blocks verbatim, size bytes and terminator included."""
        start = self.pos
        self.sub_blocks()
        return self.data[start : self.pos]


def _color_table_size(packed: int) -> int:
    return 3 << ((packed & 0x07) + 1)


def _color_table_bits(palette: bytes) -> int:
    """Size field of the smallest color table that holds ``palette``."""
    entries = max(len(palette) // 3, 2)
    return max((entries - 1).bit_length() - 1, 0)


def _pad_palette(palette: bytes) -> bytes:
    size = 3 << (_color_table_bits(palette) + 1)
    return palette + bytes(size - len(palette))


def _parse(data: bytes) -> _RawGif:
    reader = _Reader(data)

    signature = reader.read(6)
    if signature not in (b"GIF87a", b"GIF89a"):
        raise GifFormatError("not a GIF stream")

    width = reader.u16()
    height = reader.u16()
    packed = reader.u8()
    background_index = reader.u8()
    reader.u8()  # pixel aspect ratio

    global_palette = b""
    if packed & _COLOR_TABLE_FLAG:
        global_palette = reader.read(_color_table_size(packed))

    loop_count: int | None = None
    frames: list[_RawFrame] = []

    # Graphic control values apply to the next image only
    delay = disposal = 0
    transparency: int | None = None

    while True:
        if reader.at_end:
            # Missing trailer is common in the wild
            break

        introducer = reader.u8()

        if introducer == _TRAILER:
            break

        if introducer == _EXTENSION:
            label = reader.u8()
            blocks = reader.sub_blocks()
            if label == _GRAPHIC_CONTROL_LABEL:
                if not blocks or len(blocks[0]) < 4:
                    raise GifFormatError("invalid graphic control extension")
                gce_packed, delay, transparent_index = struct.unpack("<BHB", blocks[0][:4])
                disposal = (gce_packed >> 2) & 0x07
                transparency = transparent_index if gce_packed & 0x01 else None
            elif label == _APPLICATION_LABEL and blocks and blocks[0] == _NETSCAPE:
                if len(blocks) > 1 and len(blocks[1]) >= 3 and blocks[1][0] == 0x01:
                    loop_count = struct.unpack("<H", blocks[1][1:3])[0]
            continue

        if introducer == _IMAGE_DESCRIPTOR:
            left, top, frame_width, frame_height, image_packed = struct.unpack(
                "<HHHHB", reader.read(9)
            )
            palette = global_palette
            if image_packed & _COLOR_TABLE_FLAG:
                palette = reader.read(_color_table_size(image_packed))
            if not palette:
                raise GifFormatError("frame has no color table")
            if frame_width == 0 or frame_height == 0:
                raise GifFormatError("frame has zero size")

            lzw_min_code_size = reader.u8()
            frames.append(
                _RawFrame(
                    left=left,
                    top=top,
                    width=frame_width,
                    height=frame_height,
                    interlaced=bool(image_packed & _INTERLACE_FLAG),
                    palette=palette,
                    lzw_min_code_size=lzw_min_code_size,
                    data=reader.raw_sub_blocks(),
                    delay=delay,
                    disposal=disposal,
                    transparency=transparency,
                )
            )
            delay = disposal = 0
            transparency = None
            continue

        raise GifFormatError(f"unknown block introducer 0x{introducer:02x}")

    if not frames:
        raise GifFormatError("GIF has no frames")

    return _RawGif(
        width=width,
        height=height,
        background_index=background_index,
        loop_count=loop_count,
        frames=frames,
    )


def _graphic_control_block(delay: int, disposal: int, transparency: int | None) -> bytes:
    packed = (disposal & 0x07) << 2
    if transparency is not None:
        packed |= 0x01
    return struct.pack(
        "<BBBBHBB",
        _EXTENSION,
        _GRAPHIC_CONTROL_LABEL,
        4,
        packed,
        delay,
        transparency or 0,
        0,
    )


def _image_block(frame: _RawFrame, left: int, top: int, local_palette: bool) -> bytes:
    packed = _INTERLACE_FLAG if frame.interlaced else 0
    palette = b""
    if local_palette:
        palette = _pad_palette(frame.palette)
        packed |= _COLOR_TABLE_FLAG | _color_table_bits(frame.palette)
    return (
        struct.pack("<BHHHHB", _IMAGE_DESCRIPTOR, left, top, frame.width, frame.height, packed)
        + palette
        + bytes([frame.lzw_min_code_size])
        + frame.data
    )


def _decode_frame(frame: _RawFrame) -> Image.Image:
    """Decode the LZW data of one frame into a mode "P" image of indices."""
    single = (
        b"GIF89a"
        + struct.pack(
            "<HHBBB",
            frame.width,
            frame.height,
            _COLOR_TABLE_FLAG | _color_table_bits(frame.palette),
            0,
            0,
        )
        + _pad_palette(frame.palette)
        + _image_block(frame, 0, 0, local_palette=False)
        + bytes([_TRAILER])
    )
    try:
        with Image.open(BytesIO(single), formats=("GIF",)) as decoded:
            decoded.load()
            # Pillow reports a grayscale ramp palette as mode "L"; in both
            # modes the pixel values are the color table indices.
            indices = decoded.tobytes() if decoded.mode in ("P", "L") else None
    except (OSError, SyntaxError, ValueError) as e:
        raise GifFormatError(f"frame decode failed: {e}") from e

    if indices is None:
        raise GifFormatError("unexpected frame mode")

    image = Image.frombytes("P", (frame.width, frame.height), indices)
    image.putpalette(frame.palette)
    return image


def decode(data: bytes) -> GifAnimation:
    """Decode a (possibly animated) GIF into frames with their own palettes."""
    raw = _parse(data)
    frames = [
        GifFrame(
            image=_decode_frame(raw_frame),
            palette=raw_frame.palette,
            left=raw_frame.left,
            top=raw_frame.top,
            delay=raw_frame.delay,
            disposal=raw_frame.disposal,
            transparency=raw_frame.transparency,
        )
        for raw_frame in raw.frames
    ]
    return GifAnimation(
        width=raw.width,
        height=raw.height,
        frames=frames,
        loop_count=raw.loop_count,
        background_index=raw.background_index,
    )


def _encode_frame(frame: GifFrame) -> _RawFrame:
    """LZW-encode a frame with Pillow and extract its image data."""
    image = Image.frombytes("P", frame.image.size, frame.image.tobytes())
    image.putpalette(frame.palette)

    params: dict[str, object] = {"format": "GIF", "optimize": False}
    if frame.transparency is not None:
        params["transparency"] = frame.transparency

    buffer = BytesIO()
    image.save(buffer, **params)
    return _parse(buffer.getvalue()).frames[0]


def encode(animation: GifAnimation) -> bytes:
    """Encode an animation, one local color table per frame.

    Every frame is written, including frames identical to their predecessor,
    with its original delay and disposal method.
    """
    if not animation.frames:
        raise GifFormatError("GIF has no frames")

    out = BytesIO()
    out.write(b"GIF89a")
    out.write(struct.pack("<HHBBB", animation.width, animation.height, 0, 0, 0))

    if animation.loop_count is not None:
        out.write(bytes([_EXTENSION, _APPLICATION_LABEL, len(_NETSCAPE)]))
        out.write(_NETSCAPE)
        out.write(struct.pack("<BBHB", 3, 0x01, animation.loop_count, 0))

    for frame in animation.frames:
        encoded = _encode_frame(frame)
        out.write(_graphic_control_block(frame.delay, frame.disposal, encoded.transparency))
        out.write(_image_block(encoded, frame.left, frame.top, local_palette=True))

    out.write(bytes([_TRAILER]))
    return out.getvalue()
