"""Attribution watermark rendered onto the public copy of an upload."""

from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from pujo_gallery.core.errors import ValidationError

FONT_SCALE = 0.03
PADDING = 20
TEXT_FILL = (255, 255, 255, 204)
WEBP_QUALITY = 80
WEBP_MAX_DIMENSION = 16383


@dataclass(frozen=True)
class WatermarkedImage:
    """Encoded public image and the dimensions it was rendered at."""

    data: bytes
    width: int
    height: int
    content_type: str = "image/webp"


def font_size_for(width: int, height: int) -> int:
    """Font size proportional to the shorter side of the image."""
    return max(1, round(min(width, height) * FONT_SCALE))


def apply_watermark(image_bytes: bytes, nickname: str, submission_id: str) -> WatermarkedImage:
    """Stamp attribution and the submission id in the bottom-left corner.

    Two lines are drawn at a fixed padding from the bottom-left edge in
    semi-transparent white, then the result is re-encoded as WebP at the
    source dimensions.

    Raises:
        ValidationError: If the bytes cannot be decoded as an image or the
            result cannot be encoded as WebP
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as source:
            source.load()
            has_alpha = "A" in source.getbands()
            base = source.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as err:
        raise ValidationError("Uploaded file is not a readable image") from err

    width, height = base.size
    if max(width, height) > WEBP_MAX_DIMENSION:
        raise ValidationError("Image dimensions are not supported")

    font_size = font_size_for(width, height)
    font = ImageFont.load_default(size=font_size)

    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    # Lines sit one font-height apart, the second one `PADDING` above the bottom edge.
    draw.text(
        (PADDING, height - PADDING - 2 * font_size),
        f"Image Courtesy: {nickname}",
        font=font,
        fill=TEXT_FILL,
    )
    draw.text(
        (PADDING, height - PADDING - font_size),
        f"ID: {submission_id}",
        font=font,
        fill=TEXT_FILL,
    )

    buffer = io.BytesIO()
    try:
        composed = Image.alpha_composite(base, overlay)
        if not has_alpha:
            composed = composed.convert("RGB")
        composed.save(buffer, format="WEBP", quality=WEBP_QUALITY)
    except (OSError, ValueError) as err:
        raise ValidationError("Image dimensions are not supported") from err
    return WatermarkedImage(data=buffer.getvalue(), width=width, height=height)
