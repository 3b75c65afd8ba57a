"""Local thumbnail renderer: resize, filter, rotate and encode with Pillow."""

import asyncio
import io
from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageOps, features

from .exceptions import DecodeError, RenderUnavailable, with_error_handling
from .logging_config import get_component_logger
from .models import ImageFilters, OutputConfig, OutputFormat

DEFAULT_QUALITY = 0.92
MIN_QUALITY = 0.05
# Strength 1.0 would keep 30% of the resolution
COMPRESSION_IMPACT = 0.7

# Rec. 709 luminance weights used by the CSS saturate() filter
_LUMA = np.array([0.213, 0.715, 0.072], dtype=np.float32)


def compute_target_size(
    source_size: Tuple[int, int],
    max_width: int,
    compression_enabled: bool = False,
    compression_strength: float = 0.0,
) -> Tuple[int, int]:
    """
    Compute thumbnail dimensions before rotation.

    The horizontal scale is ``max_width / source_width``; compression shrinks it
    further by ``1 - strength * 0.7``. Height follows the source aspect ratio.

    Args:
        source_size: (width, height) of the decoded source
        max_width: Requested thumbnail width in pixels
        compression_enabled: Whether resolution compression applies
        compression_strength: Compression strength in [0.1, 0.9]

    Returns:
        (target_width, target_height)
    """
    source_width, source_height = source_size
    scale = max_width / source_width
    if compression_enabled and compression_strength > 0:
        scale *= 1 - compression_strength * COMPRESSION_IMPACT

    target_width = round(source_width * scale)
    target_height = round(target_width * source_height / source_width)
    return target_width, target_height


def is_quarter_turn(rotation: int) -> bool:
    """True for odd multiples of 90 degrees (90, 270, -90, ...)."""
    return rotation % 180 == 90


def canvas_size(target_size: Tuple[int, int], rotation: int) -> Tuple[int, int]:
    """Output canvas size; swapped for quarter turns so the content fits exactly."""
    width, height = target_size
    if is_quarter_turn(rotation):
        return height, width
    return width, height


def resolve_quality(use_custom_quality: bool, quality: float) -> float:
    """Encoding quality in (0, 1]: the fixed default unless a custom one is set."""
    if not use_custom_quality:
        return DEFAULT_QUALITY
    return max(MIN_QUALITY, quality)


def apply_filters(image: Image.Image, filters: ImageFilters) -> Image.Image:
    """
    Apply brightness, contrast and saturation as one composed filter.

    Uses the CSS filter-effects formulas, clamping between primitives. Alpha is
    left untouched.
    """
    if (
        filters.brightness == 100
        and filters.contrast == 100
        and filters.saturation == 100
    ):
        return image

    rgba = np.asarray(image.convert("RGBA"), dtype=np.float32) / 255.0
    rgb = rgba[..., :3]

    brightness = filters.brightness / 100.0
    contrast = filters.contrast / 100.0
    saturation = filters.saturation / 100.0

    rgb = np.clip(rgb * brightness, 0.0, 1.0)
    rgb = np.clip(rgb * contrast + (0.5 - 0.5 * contrast), 0.0, 1.0)

    # saturate(s): identity * s + (1 - s) * luminance projection
    matrix = np.outer(np.ones(3, dtype=np.float32), _LUMA) * (1.0 - saturation)
    matrix += np.eye(3, dtype=np.float32) * saturation
    rgb = np.clip(rgb @ matrix.T, 0.0, 1.0)

    rgba[..., :3] = rgb
    return Image.fromarray(np.round(rgba * 255.0).astype(np.uint8))


def rotate_onto_canvas(
    image: Image.Image, rotation: int, size: Tuple[int, int]
) -> Image.Image:
    """Rotate clockwise about the center and clip to a canvas of ``size``."""
    turn = rotation % 360
    if turn == 0:
        return image
    if turn == 90:
        return image.transpose(Image.Transpose.ROTATE_270)
    if turn == 180:
        return image.transpose(Image.Transpose.ROTATE_180)
    if turn == 270:
        return image.transpose(Image.Transpose.ROTATE_90)

    # Pillow rotates counter-clockwise for positive angles
    rotated = image.rotate(
        -rotation,
        resample=Image.Resampling.BICUBIC,
        expand=True,
        fillcolor=(0, 0, 0, 0),
    )
    width, height = size
    left = (rotated.width - width) // 2
    top = (rotated.height - height) // 2
    return rotated.crop((left, top, left + width, top + height))


def _flatten(image: Image.Image) -> Image.Image:
    # Transparent canvas pixels encode as black in formats without alpha
    background = Image.new("RGB", image.size, (0, 0, 0))
    background.paste(image, mask=image.getchannel("A"))
    return background


class TransformEngine:
    """Renders one image into an encoded thumbnail. No disk or network I/O."""

    def __init__(self, logger=None):
        self._logger = logger or get_component_logger("transform")

    def decode(self, image_bytes: bytes) -> Image.Image:
        """Decode and orient the source image."""
        try:
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
        except (OSError, ValueError) as exc:
            raise DecodeError(f"Could not decode source image: {exc}") from exc
        return ImageOps.exif_transpose(image)

    @with_error_handling
    def render(
        self,
        image_bytes: bytes,
        max_width: int,
        filters: Optional[ImageFilters] = None,
        compression_enabled: bool = False,
        compression_strength: float = 0.0,
        format_quality: float = DEFAULT_QUALITY,
        output_format: OutputFormat = OutputFormat.JPEG,
    ) -> bytes:
        """
        Render ``image_bytes`` as a thumbnail.

        Args:
            image_bytes: Encoded source image
            max_width: Target width before compression, in pixels
            filters: Photometric filters and rotation (identity when omitted)
            compression_enabled: Apply resolution compression
            compression_strength: Compression strength in [0.1, 0.9]
            format_quality: Encoder quality in (0, 1]; ignored by PNG
            output_format: Output encoding

        Returns:
            The encoded thumbnail

        Raises:
            DecodeError: If the source cannot be decoded
            RenderUnavailable: If the encoder is missing or the canvas is empty
        """
        filters = filters or ImageFilters()
        if output_format is OutputFormat.WEBP and not features.check("webp"):
            raise RenderUnavailable("WEBP encoder is not available")

        source = self.decode(image_bytes)
        target = compute_target_size(
            source.size, max_width, compression_enabled, compression_strength
        )
        if target[0] < 1 or target[1] < 1:
            raise RenderUnavailable(f"Cannot draw onto a {target[0]}x{target[1]} canvas")
        size = canvas_size(target, filters.rotation)

        self._logger.debug(
            f"Rendering {source.size[0]}x{source.size[1]} -> "
            f"{size[0]}x{size[1]} {output_format.name}"
        )

        image = source.convert("RGBA").resize(target, Image.Resampling.LANCZOS)
        image = apply_filters(image, filters)
        image = rotate_onto_canvas(image, filters.rotation, size)

        return self._encode(image, output_format, format_quality)

    def render_for_config(
        self,
        image_bytes: bytes,
        config: OutputConfig,
        filters: Optional[ImageFilters] = None,
    ) -> bytes:
        """Render using the settings of an :class:`OutputConfig`."""
        return self.render(
            image_bytes,
            max_width=config.max_width,
            filters=filters,
            compression_enabled=config.use_compression,
            compression_strength=config.compression,
            format_quality=resolve_quality(config.use_custom_quality, config.quality),
            output_format=config.format,
        )

    async def render_async(
        self,
        image_bytes: bytes,
        config: OutputConfig,
        filters: Optional[ImageFilters] = None,
    ) -> bytes:
        """Render off the event loop so decode/encode does not block other items."""
        return await asyncio.to_thread(
            self.render_for_config, image_bytes, config, filters
        )

    def _encode(
        self, image: Image.Image, output_format: OutputFormat, quality: float
    ) -> bytes:
        output = io.BytesIO()
        pillow_quality = max(1, min(100, round(quality * 100)))

        if output_format is OutputFormat.JPEG:
            _flatten(image).save(output, format="JPEG", quality=pillow_quality)
        elif output_format is OutputFormat.WEBP:
            image.save(output, format="WEBP", quality=pillow_quality)
        else:
            image.save(output, format="PNG", optimize=True)

        return output.getvalue()


def estimate_file_size(
    engine: TransformEngine,
    image_bytes: bytes,
    config: OutputConfig,
    filters: Optional[ImageFilters] = None,
) -> int:
    """Byte size the current settings would produce, or 0 if rendering fails."""
    try:
        return len(engine.render_for_config(image_bytes, config, filters))
    except Exception as exc:  # noqa: BLE001
        get_component_logger("transform").warning(f"Failed to estimate size: {exc}")
        return 0
