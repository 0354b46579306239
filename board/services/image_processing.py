"""
Image processing for avatars: header validation, orientation correction,
resize-to-fill and re-encoding.

All functions here are synchronous and CPU-bound; the avatar service runs
them in the default executor.
"""

from dataclasses import dataclass
from io import BytesIO

from PIL import ExifTags, Image, ImageOps

from board.core.logging import get_logger
from board.services import gif_codec

logger = get_logger(__name__)

# Formats accepted on upload. Only JPEG, PNG and GIF are ever written.
SUPPORTED_FORMATS = ("JPEG", "PNG", "GIF", "BMP", "TIFF", "WEBP")

# Formats that may carry an EXIF orientation tag
EXIF_FORMATS = ("JPEG", "TIFF")

# Transforms that bring an image with the given EXIF orientation upright
ORIENTATION_TRANSPOSES: dict[int, Image.Transpose] = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}


class AvatarError(Exception):
    """Base class for avatar processing errors."""


class ImageDecodeError(AvatarError):
    """The data is not a supported image container."""


class ImageTooSmallError(AvatarError):
    """Image width or height is below the minimum."""


class ImageTooLargeError(AvatarError):
    """Image width or height is above the maximum."""


@dataclass(frozen=True, slots=True)
class ImageInfo:
    format: str
    width: int
    height: int


def probe_image(data: bytes, min_dimension: int, max_dimension: int) -> ImageInfo:
    """Validate image data using only its header.

    Args:
        data: Raw uploaded bytes
        min_dimension: Smallest allowed width/height (inclusive)
        max_dimension: Largest allowed width/height (inclusive)

    Returns:
        Sniffed format and declared dimensions

    Raises:
        ImageDecodeError: Data is not a supported image container
        ImageTooSmallError: Width or height below min_dimension
        ImageTooLargeError: Width or height above max_dimension
    """
    try:
        # Image.open only parses the header, pixels are not decoded here
        with Image.open(BytesIO(data), formats=SUPPORTED_FORMATS) as img:
            width, height = img.size
            image_format = img.format
    except Image.DecompressionBombError as e:
        raise ImageTooLargeError("avatar: image too large") from e
    except (OSError, SyntaxError, ValueError) as e:
        raise ImageDecodeError("avatar: image decode failed") from e

    if image_format is None:
        raise ImageDecodeError("avatar: image decode failed")

    if width < min_dimension or height < min_dimension:
        raise ImageTooSmallError("avatar: image too small")
    if width > max_dimension or height > max_dimension:
        raise ImageTooLargeError("avatar: image too large")

    return ImageInfo(format=image_format, width=width, height=height)


def read_orientation(img: Image.Image) -> int:
    """Read the EXIF orientation tag.

    Returns 0 if the tag is missing, invalid or the EXIF block can't be read.
    """
    try:
        orientation = img.getexif().get(ExifTags.Base.Orientation)
    except Exception as e:
        logger.debug(
            "exif_orientation_unreadable",
            error=str(e),
            error_type=type(e).__name__,
        )
        return 0

    if not isinstance(orientation, int) or not 1 <= orientation <= 8:
        return 0
    return orientation


def resize_to_fill(img: Image.Image, size: int, resample: Image.Resampling) -> Image.Image:
    """Scale so the image covers size x size, then center-crop the overflow."""
    return ImageOps.fit(img, (size, size), method=resample, centering=(0.5, 0.5))


def prepare_image(data: bytes, image_format: str, size: int) -> Image.Image:
    """Decode a static image, fix its orientation and resize it to size x size RGBA."""
    with Image.open(BytesIO(data), formats=SUPPORTED_FORMATS) as img:
        img.load()
        orientation = read_orientation(img) if image_format in EXIF_FORMATS else 0
        rgba = img.convert("RGBA")

    transpose = ORIENTATION_TRANSPOSES.get(orientation)
    if transpose is not None:
        rgba = rgba.transpose(transpose)

    return resize_to_fill(rgba, size, Image.Resampling.BICUBIC)


def is_opaque(img: Image.Image) -> bool:
    """True if the image has no alpha channel or every pixel is fully opaque."""
    if "A" not in img.getbands():
        return True
    return img.getchannel("A").getextrema()[0] == 255


def encode_png(img: Image.Image) -> bytes:
    output = BytesIO()
    img.save(output, format="PNG")
    return output.getvalue()


def encode_image(img: Image.Image, jpeg_quality: int) -> tuple[bytes, str]:
    """Encode as JPEG when fully opaque, PNG otherwise.

    Returns:
        Tuple of (encoded bytes, file extension without dot)
    """
    if not is_opaque(img):
        return encode_png(img), "png"

    output = BytesIO()
    img.convert("RGB").save(output, format="JPEG", quality=jpeg_quality)
    return output.getvalue(), "jpg"


def quantize_to_palette(img: Image.Image, palette: bytes, transparency: int | None) -> Image.Image:
    """Map an RGBA image onto an existing palette without dithering.

    Opaque pixels are matched against every entry except the transparent
    one, so they never turn into holes. Fully transparent pixels get the
    transparent index when there is one.
    """
    entries = len(palette) // 3
    candidates = [i for i in range(entries) if i != transparency] or list(range(entries))
    compact = b"".join(palette[i * 3 : i * 3 + 3] for i in candidates)
    # Pad with copies of the first candidate so padding maps back to a real entry
    padding = 256 - len(candidates)
    palette_image = Image.new("P", (1, 1))
    palette_image.putpalette(compact + compact[:3] * padding)

    matched = img.convert("RGB").quantize(palette=palette_image, dither=Image.Dither.NONE)
    # Translate positions in the reduced palette back to original indices
    lookup = bytes(candidates + candidates[:1] * padding)
    quantized = Image.frombytes("P", img.size, matched.tobytes().translate(lookup))
    quantized.putpalette(palette)

    if transparency is not None:
        transparent = img.getchannel("A").point(lambda a: 255 if a == 0 else 0)
        quantized.paste(transparency, mask=transparent)

    return quantized


def resize_animation(animation: gif_codec.GifAnimation, size: int) -> gif_codec.GifAnimation:
    """Resize every frame of an animation to size x size, in place.

    Frames are composited onto a canvas of the original size, in order and
    without clearing it between frames, then the canvas is resized with
    nearest-neighbor resampling and mapped back onto the frame's palette.
    Disposal methods are not applied.
    """
    if animation.width == size and animation.height == size:
        return animation

    canvas = Image.new("RGBA", (animation.width, animation.height))
    for frame in animation.frames:
        canvas.paste(frame.to_rgba(), (frame.left, frame.top))
        resized = resize_to_fill(canvas, size, Image.Resampling.NEAREST)
        frame.image = quantize_to_palette(resized, frame.palette, frame.transparency)
        frame.left = frame.top = 0

    animation.width = animation.height = size
    return animation


def prepare_animation(data: bytes, size: int) -> gif_codec.GifAnimation:
    """Decode a GIF and resize all its frames to size x size."""
    return resize_animation(gif_codec.decode(data), size)
