"""
Qt-free image I/O: orientation-aware decoding, cropping and PNG encoding.

Source bytes may hold any raster format Pillow understands, or a PSD
document (composited with psd-tools).  Decoded images are rotated upright
according to their EXIF orientation before anything else sees them.
Crops are re-encoded losslessly as PNG; circular crops carry an alpha
channel.  Safe to call from worker threads.
"""

import io
import logging

from PIL import Image, ImageChops, ImageDraw
from psd_tools import PSDImage

from crop_editor.config import EXIF_ORIENTATION_TAG, PNG_COMPRESS_LEVEL
from crop_editor.errors import DecodeError, DegenerateGeometryError
from crop_editor.models import Rect, SourceImage

logger = logging.getLogger(__name__)

# Allow very large images (Pillow's default limit is ~178MP)
Image.MAX_IMAGE_PIXELS = None

_PSD_SIGNATURE = b"8BPS"

# EXIF orientation value -> transpose that makes the pixels upright
_ORIENTATION_TRANSPOSE = {
    3: Image.Transpose.ROTATE_180,
    6: Image.Transpose.ROTATE_270,  # stored 90° CCW, display rotates 90° CW
    8: Image.Transpose.ROTATE_90,
}


# =============================================================================
# Decode
# =============================================================================
def _open_bytes(data: bytes) -> Image.Image:
    """Open image bytes, using psd-tools for PSD and Pillow for the rest."""
    if data[:4] == _PSD_SIGNATURE:
        psd = PSDImage.open(io.BytesIO(data))
        return psd.composite()
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def read_orientation(img: Image.Image) -> int:
    """Return the EXIF orientation value of *img* (1 when absent)."""
    try:
        return int(img.getexif().get(EXIF_ORIENTATION_TAG, 1))
    except (TypeError, ValueError):
        return 1


def apply_orientation(img: Image.Image, orientation: int) -> Image.Image:
    """Rotate *img* upright for orientation 3, 6 or 8; others are returned as-is."""
    method = _ORIENTATION_TRANSPOSE.get(orientation)
    if method is None:
        return img
    return img.transpose(method)


def decode_image(data: bytes) -> SourceImage:
    """Decode source bytes into an upright ``SourceImage``.

    Raises ``DecodeError`` for empty, malformed or unsupported input.
    """
    if not data:
        raise DecodeError("No image data")
    try:
        img = _open_bytes(data)
        orientation = read_orientation(img)
        upright = apply_orientation(img, orientation)
    except Exception as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc

    if upright.width == 0 or upright.height == 0:
        raise DecodeError("Decoded image is empty")
    logger.debug(
        "Decoded %s image %dx%d (orientation %d)",
        img.format or "PSD", upright.width, upright.height, orientation,
    )
    return SourceImage(upright)


# =============================================================================
# Crop & encode
# =============================================================================
def encode_png(img: Image.Image) -> bytes:
    """Encode *img* as PNG."""
    buf = io.BytesIO()
    img.save(buf, "PNG", compress_level=PNG_COMPRESS_LEVEL)
    return buf.getvalue()


def _pixel_box(image: SourceImage, rect: Rect) -> tuple[int, int, int, int]:
    """Truncate *rect* to integers and clamp it to the image as a (l, t, r, b) box."""
    left = min(max(0, int(rect.left)), image.width)
    top = min(max(0, int(rect.top)), image.height)
    right = min(left + max(1, int(rect.width)), image.width)
    bottom = min(top + max(1, int(rect.height)), image.height)
    if right <= left or bottom <= top:
        raise DegenerateGeometryError(f"Crop rectangle {rect} lies outside the {image.width}x{image.height} image")
    return left, top, right, bottom


def crop_rect(image: SourceImage, rect: Rect) -> bytes:
    """Crop a rectangular pixel region and encode it as PNG."""
    box = _pixel_box(image, rect)
    return encode_png(image.pixels.crop(box))


def crop_circle(image: SourceImage, rect: Rect) -> bytes:
    """Crop the circle inscribed in *rect* and encode it as a transparent PNG.

    Center is the center of *rect*; radius is ``floor(min(w, h) / 2)``
    (at least one pixel).  Pixels outside the circle get zero alpha.
    """
    cx, cy = rect.center
    radius = max(1, int(min(rect.width, rect.height)) // 2)
    diameter = radius * 2
    square = Rect(int(cx) - radius, int(cy) - radius, diameter, diameter)
    box = _pixel_box(image, square)

    cropped = image.pixels.crop(box).convert("RGBA")
    # Circle position inside the (possibly edge-clipped) crop
    offset_x = square.left - box[0]
    offset_y = square.top - box[1]
    mask = Image.new("L", cropped.size, 0)
    ImageDraw.Draw(mask).ellipse(
        (offset_x, offset_y, offset_x + diameter - 1, offset_y + diameter - 1),
        fill=255,
    )
    cropped.putalpha(ImageChops.multiply(cropped.getchannel("A"), mask))
    return encode_png(cropped)
