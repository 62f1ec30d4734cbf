"""
Notarium Backend — Image Preprocessing
========================================

What:  Normalizes note photos before they are stored or sent to OCR.
Why:   Phone photos of notebooks are large, rotated by EXIF and low in
       contrast. Smaller grayscale JPEGs upload faster, fit more pages per
       note and read better for OCR.
How:   Pillow, synchronous and stateless:

    1. Apply the EXIF orientation
    2. (enhance) Grayscale with ITU-R 601 luma (0.299 R + 0.587 G + 0.114 B),
       then a linear stretch mapping the darkest pixel to 0 and the
       brightest to 255
    3. Shrink to fit max width × max height, keeping the aspect ratio
       (never upscale)
    4. Re-encode as JPEG

The stretch is idempotent: its output already spans 0..255, so a second
pass maps every value onto itself. A uniform image has no range to stretch
and is returned unchanged.
"""

import logging
from io import BytesIO
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from notarium.config import settings
from notarium.exceptions import ValidationError

logger = logging.getLogger(__name__)

OUTPUT_MIME_TYPE = "image/jpeg"
OUTPUT_EXTENSION = ".jpg"


def to_grayscale(image: Image.Image) -> Image.Image:
    """Luminance grayscale; transparent areas are flattened onto white first."""
    if image.mode in ("RGBA", "LA", "P"):
        image = _flatten(image)
    return image.convert("L")


def stretch_contrast(gray: Image.Image) -> Image.Image:
    """
    Linear contrast stretch of an "L" image to the full 0..255 range.
    """
    low, high = gray.getextrema()
    if high <= low:
        return gray.copy()

    scale = 255.0 / (high - low)
    lut = [min(255, max(0, round((value - low) * scale))) for value in range(256)]
    return gray.point(lut)


def fit_within(image: Image.Image, max_width: int, max_height: int) -> Image.Image:
    """Downscale preserving aspect ratio; images already small enough are kept."""
    if image.width <= max_width and image.height <= max_height:
        return image
    resized = image.copy()
    resized.thumbnail((max_width, max_height), Image.LANCZOS)
    return resized


def _flatten(image: Image.Image) -> Image.Image:
    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, (255, 255, 255))
    background.paste(rgba, mask=rgba.split()[-1])
    return background


def preprocess_image(
    data: bytes,
    enhance: bool = False,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
    quality: Optional[int] = None,
) -> bytes:
    """
    Full pipeline: orientation → (grayscale + stretch) → resize → JPEG.

    Args:
        data:     Encoded source image (PNG, JPEG, WebP)
        enhance:  Apply grayscale and contrast stretch
        max_width / max_height / quality: default to settings

    Returns:
        JPEG bytes.

    Raises:
        ValidationError if the bytes cannot be decoded as an image.
    """
    max_width = max_width or settings.image_max_width
    max_height = max_height or settings.image_max_height
    quality = quality or settings.image_jpeg_quality

    try:
        with Image.open(BytesIO(data)) as source:
            source.load()
            image = ImageOps.exif_transpose(source)
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        logger.warning("Could not decode image (%d bytes): %s", len(data), str(e))
        raise ValidationError(
            message="The image could not be read. Please upload a valid PNG or JPEG photo.",
            field="images",
        )

    if enhance:
        image = stretch_contrast(to_grayscale(image))
    elif image.mode not in ("RGB", "L"):
        image = _flatten(image) if image.mode in ("RGBA", "LA", "P") else image.convert("RGB")

    original_size = image.size
    image = fit_within(image, max_width, max_height)

    buffer = BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    output = buffer.getvalue()

    logger.debug(
        "Preprocessed image %sx%s → %sx%s, %d → %d bytes (enhance=%s)",
        original_size[0],
        original_size[1],
        image.width,
        image.height,
        len(data),
        len(output),
        enhance,
    )
    return output
