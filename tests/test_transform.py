"""Tests for the local transform engine."""

import asyncio
import io
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

from thumbnail_pipeline.core.exceptions import DecodeError, RenderUnavailable
from thumbnail_pipeline.core.models import ImageFilters, OutputConfig, OutputFormat
from thumbnail_pipeline.core.transform import (
    DEFAULT_QUALITY,
    TransformEngine,
    apply_filters,
    canvas_size,
    compute_target_size,
    estimate_file_size,
    is_quarter_turn,
    resolve_quality,
)
from thumbnail_pipeline.testing import create_noisy_image, create_test_image


def _open(data: bytes) -> Image.Image:
    return Image.open(io.BytesIO(data))


class TestGeometry:
    """Tests for target and canvas sizing."""

    def test_aspect_ratio_is_preserved(self):
        assert compute_target_size((1200, 800), 300) == (300, 200)
        assert compute_target_size((800, 1200), 300) == (300, 450)

    def test_compression_shrinks_resolution(self):
        assert compute_target_size((1200, 800), 300, True, 0.9) == (111, 74)

    def test_compression_ignored_when_disabled(self):
        assert compute_target_size((1200, 800), 300, False, 0.9) == (300, 200)

    def test_upscales_small_sources(self):
        assert compute_target_size((100, 50), 300) == (300, 150)

    @pytest.mark.parametrize(
        "rotation, quarter",
        [(0, False), (90, True), (180, False), (270, True), (-90, True), (45, False)],
    )
    def test_is_quarter_turn(self, rotation, quarter):
        assert is_quarter_turn(rotation) is quarter

    def test_canvas_swaps_for_quarter_turns(self):
        assert canvas_size((300, 200), 90) == (200, 300)
        assert canvas_size((300, 200), 180) == (300, 200)
        assert canvas_size((300, 200), 30) == (300, 200)


class TestQuality:
    """Tests for resolve_quality."""

    def test_default_quality_when_not_custom(self):
        assert resolve_quality(False, 0.3) == DEFAULT_QUALITY == 0.92

    def test_custom_quality(self):
        assert resolve_quality(True, 0.5) == 0.5

    def test_custom_quality_has_floor(self):
        assert resolve_quality(True, 0.01) == 0.05


class TestApplyFilters:
    """Tests for apply_filters."""

    def _solid(self, color):
        return Image.new("RGBA", (8, 8), color)

    def test_identity_returns_same_image(self):
        image = self._solid((10, 20, 30, 255))
        assert apply_filters(image, ImageFilters(rotation=90)) is image

    def test_zero_brightness_is_black(self):
        out = np.asarray(apply_filters(self._solid((200, 100, 50, 255)), ImageFilters(brightness=0)))
        assert out[..., :3].max() == 0
        assert (out[..., 3] == 255).all()

    def test_zero_contrast_is_mid_gray(self):
        out = np.asarray(apply_filters(self._solid((250, 10, 90, 255)), ImageFilters(contrast=0)))
        assert np.allclose(out[..., :3], 128, atol=1)

    def test_zero_saturation_is_gray(self):
        out = np.asarray(apply_filters(self._solid((255, 0, 0, 255)), ImageFilters(saturation=0)))
        red, green, blue = out[0, 0, :3]
        assert red == green == blue
        assert abs(int(red) - round(0.213 * 255)) <= 1

    def test_brightness_clamps(self):
        out = np.asarray(apply_filters(self._solid((200, 200, 200, 255)), ImageFilters(brightness=200)))
        assert (out[..., :3] == 255).all()


class TestTransformEngine:
    """Tests for TransformEngine.render."""

    def test_render_dimensions(self):
        engine = TransformEngine()
        source = create_test_image(400, 200)

        thumbnail = engine.render(source, max_width=100)

        image = _open(thumbnail)
        assert image.format == "JPEG"
        assert image.size == (100, 50)

    def test_quarter_turn_swaps_canvas(self):
        engine = TransformEngine()
        source = create_test_image(400, 200)

        thumbnail = engine.render(
            source, max_width=100, filters=ImageFilters(rotation=90),
            output_format=OutputFormat.PNG,
        )

        assert _open(thumbnail).size == (50, 100)

    def test_arbitrary_angle_keeps_canvas(self):
        engine = TransformEngine()
        source = create_test_image(400, 200)

        thumbnail = engine.render(
            source, max_width=100, filters=ImageFilters(rotation=45),
            output_format=OutputFormat.PNG,
        )

        assert _open(thumbnail).size == (100, 50)

    @pytest.mark.parametrize(
        "output_format, pillow_format",
        [(OutputFormat.JPEG, "JPEG"), (OutputFormat.PNG, "PNG"), (OutputFormat.WEBP, "WEBP")],
    )
    def test_output_formats(self, output_format, pillow_format):
        engine = TransformEngine()
        thumbnail = engine.render(create_test_image(120, 80), max_width=60, output_format=output_format)
        assert _open(thumbnail).format == pillow_format

    def test_compression_reduces_size_monotonically(self):
        engine = TransformEngine()
        source = create_noisy_image(400, 300)

        sizes = [
            len(engine.render(
                source, max_width=300, compression_enabled=True,
                compression_strength=strength, output_format=OutputFormat.PNG,
            ))
            for strength in (0.1, 0.5, 0.9)
        ]

        assert sizes[0] > sizes[1] > sizes[2]

    def test_jpeg_quality_affects_size(self):
        engine = TransformEngine()
        source = create_noisy_image(400, 300)

        low = engine.render(source, max_width=300, format_quality=0.1)
        high = engine.render(source, max_width=300, format_quality=1.0)

        assert len(low) < len(high)

    def test_png_ignores_quality(self):
        engine = TransformEngine()
        source = create_test_image(200, 100)

        low = engine.render(source, max_width=100, format_quality=0.1, output_format=OutputFormat.PNG)
        high = engine.render(source, max_width=100, format_quality=1.0, output_format=OutputFormat.PNG)

        assert low == high

    def test_jpeg_flattens_transparency_to_black(self):
        engine = TransformEngine()
        buffer = io.BytesIO()
        Image.new("RGBA", (40, 40), (255, 255, 255, 0)).save(buffer, format="PNG")

        thumbnail = engine.render(buffer.getvalue(), max_width=20)

        pixels = np.asarray(_open(thumbnail).convert("RGB"))
        assert pixels.max() < 10

    def test_decode_error(self):
        engine = TransformEngine()
        with pytest.raises(DecodeError):
            engine.render(b"definitely not an image", max_width=100)

    def test_empty_canvas_is_unavailable(self):
        engine = TransformEngine()
        source = create_test_image(1000, 10)
        with pytest.raises(RenderUnavailable):
            engine.render(source, max_width=1)

    def test_missing_webp_encoder_is_unavailable(self):
        engine = TransformEngine()
        with patch("thumbnail_pipeline.core.transform.features.check", return_value=False):
            with pytest.raises(RenderUnavailable):
                engine.render(create_test_image(50, 50), max_width=25, output_format=OutputFormat.WEBP)

    def test_render_for_config(self):
        engine = TransformEngine()
        config = OutputConfig(format=OutputFormat.PNG, max_width=80)

        thumbnail = engine.render_for_config(create_test_image(160, 120), config)

        image = _open(thumbnail)
        assert image.format == "PNG"
        assert image.size == (80, 60)

    def test_render_async(self):
        engine = TransformEngine()
        config = OutputConfig(max_width=50)

        thumbnail = asyncio.run(engine.render_async(create_test_image(100, 100), config))

        assert _open(thumbnail).size == (50, 50)


class TestEstimateFileSize:
    """Tests for estimate_file_size."""

    def test_matches_rendered_length(self):
        engine = TransformEngine()
        config = OutputConfig(format=OutputFormat.PNG, max_width=64)
        source = create_test_image(128, 128)

        assert estimate_file_size(engine, source, config) == len(engine.render_for_config(source, config))

    def test_failure_returns_zero(self):
        assert estimate_file_size(TransformEngine(), b"garbage", OutputConfig()) == 0
