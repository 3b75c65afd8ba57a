"""Tests for the pydantic data models."""

import pytest
from pydantic import ValidationError

from thumbnail_pipeline.core.models import (
    BatchProgress,
    ImageFilters,
    OutputConfig,
    OutputFormat,
    PipelineStage,
    ProcessingResult,
    RemoteStoreConfig,
    ResultSource,
    ResultStatus,
    SourceAsset,
)


class TestOutputFormat:
    """Tests for OutputFormat."""

    @pytest.mark.parametrize(
        "output_format, extension",
        [
            (OutputFormat.JPEG, "jpg"),
            (OutputFormat.PNG, "png"),
            (OutputFormat.WEBP, "webp"),
        ],
    )
    def test_extension(self, output_format, extension):
        assert output_format.extension == extension

    def test_values_are_mime_types(self):
        assert OutputFormat("image/webp") is OutputFormat.WEBP
        assert OutputFormat.JPEG.pillow_format == "JPEG"

    def test_only_png_is_lossless(self):
        assert OutputFormat.PNG.is_lossless
        assert not OutputFormat.JPEG.is_lossless
        assert not OutputFormat.WEBP.is_lossless


class TestSourceAsset:
    """Tests for SourceAsset."""

    def test_size_defaults_to_data_length(self):
        asset = SourceAsset(name="cat.png", data=b"12345", content_type="image/png")
        assert asset.size == 5

    def test_explicit_size_is_kept(self):
        asset = SourceAsset(name="cat.png", data=b"12345", size=99)
        assert asset.size == 99

    def test_is_immutable(self):
        asset = SourceAsset(name="cat.png", data=b"x")
        with pytest.raises(ValidationError):
            asset.name = "dog.png"

    def test_stem(self):
        assert SourceAsset(name="holiday.photo.jpg", data=b"x").stem == "holiday.photo"
        assert SourceAsset(name="README", data=b"x").stem == "README"


class TestOutputConfig:
    """Tests for OutputConfig."""

    def test_defaults(self):
        config = OutputConfig()
        assert config.format is OutputFormat.JPEG
        assert config.max_width == 300
        assert not config.use_custom_quality
        assert config.quality == 0.8
        assert not config.use_compression
        assert config.compression == 0.5

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_width": 0},
            {"quality": 0.05},
            {"quality": 1.5},
            {"compression": 0.95},
            {"compression": 0.0},
        ],
    )
    def test_out_of_range_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            OutputConfig(**overrides)


class TestImageFilters:
    """Tests for ImageFilters."""

    def test_default_is_identity(self):
        filters = ImageFilters()
        assert filters.is_identity
        assert filters.brightness == 100
        assert filters.rotation == 0

    def test_changed_filters_are_not_identity(self):
        assert not ImageFilters(contrast=120).is_identity

    def test_rotated_wraps_around(self):
        filters = ImageFilters(rotation=270).rotated(90)
        assert filters.rotation == 0
        assert ImageFilters().rotated(-90).rotation == 270


class TestRemoteStoreConfig:
    """Tests for RemoteStoreConfig."""

    def test_defaults(self):
        config = RemoteStoreConfig()
        assert not config.enabled
        assert config.input_bucket == "cloudthumb-app-input"
        assert config.output_bucket == "cloudthumb-app-output"
        assert config.output_prefix == "thumb-"
        assert config.max_attempts == 30
        assert config.interval_ms == 1000

    def test_blank_credentials_are_not_ready(self):
        config = RemoteStoreConfig(enabled=True, access_key_id="  ", secret_access_key="s")
        assert not config.has_credentials
        assert not config.is_ready

    def test_ready_needs_enabled_and_credentials(self):
        config = RemoteStoreConfig(access_key_id="a", secret_access_key="s")
        assert config.has_credentials
        assert not config.is_ready
        assert config.model_copy(update={"enabled": True}).is_ready

    def test_secret_is_hidden_from_repr(self):
        config = RemoteStoreConfig(access_key_id="a", secret_access_key="hunter2")
        assert "hunter2" not in repr(config)


class TestProcessingResult:
    """Tests for ProcessingResult."""

    def test_defaults(self):
        result = ProcessingResult(original_name="a.jpg")
        assert result.status is ResultStatus.PROCESSING
        assert result.stage is PipelineStage.STAGED
        assert result.source is ResultSource.LOCAL
        assert len(result.id) == 9
        assert not result.is_terminal

    def test_ids_are_unique(self):
        ids = {ProcessingResult(original_name="a.jpg").id for _ in range(50)}
        assert len(ids) == 50

    def test_asset_is_excluded_from_dump(self):
        asset = SourceAsset(name="a.jpg", data=b"abc")
        result = ProcessingResult(original_name="a.jpg", asset=asset)
        assert "asset" not in result.model_dump()
        assert result.asset is asset

    def test_terminal_stages(self):
        assert PipelineStage.COMPLETED.is_terminal
        assert PipelineStage.ERROR.is_terminal
        assert not PipelineStage.OFFLOADING.is_terminal


def test_batch_progress_done():
    result = ProcessingResult(original_name="a.jpg")
    assert BatchProgress(current=3, total=3, result=result).done
    assert not BatchProgress(current=1, total=3, result=result).done


def test_result_to_data_url():
    result = ProcessingResult(original_name="a.png", encoded_thumbnail=b"\x89PNG")
    assert result.to_data_url(OutputFormat.PNG) == "data:image/png;base64,iVBORw=="
