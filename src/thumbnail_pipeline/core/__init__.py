"""Core components of the hybrid thumbnail pipeline."""

from .logging_config import get_component_logger, get_logger, setup_logger
from .exceptions import (
    ThumbnailPipelineError,
    ConfigurationError,
    ImageProcessingError,
    DecodeError,
    RenderUnavailable,
    TaggingError,
    StoreError,
    ObjectNotFound,
    AccessDenied,
    BucketNotFound,
    StoreNetworkError,
    OffloadTimeout,
    OffloadCancelled,
)
from .models import (
    BatchProgress,
    ImageFilters,
    LogEntry,
    MetricPoint,
    OutputConfig,
    OutputFormat,
    PipelineStage,
    ProcessingResult,
    RemoteStoreConfig,
    ResultSource,
    ResultStatus,
    ServiceTag,
    SourceAsset,
    TaggingResult,
)
from .transform import TransformEngine, estimate_file_size
from .offload import OffloadClient, enable_remote_mode, make_unique_key
from .tagging import GeminiTagger, StaticTagger, create_tagger
from .pipeline import ItemPipeline
from .batch import BatchOrchestrator, stage_assets
from .history import EditHistory
from .factories import ProcessingPipelineFactory, S3ClientFactory

__all__ = [
    "setup_logger",
    "get_logger",
    "get_component_logger",
    "ThumbnailPipelineError",
    "ConfigurationError",
    "ImageProcessingError",
    "DecodeError",
    "RenderUnavailable",
    "TaggingError",
    "StoreError",
    "ObjectNotFound",
    "AccessDenied",
    "BucketNotFound",
    "StoreNetworkError",
    "OffloadTimeout",
    "OffloadCancelled",
    "BatchProgress",
    "ImageFilters",
    "LogEntry",
    "MetricPoint",
    "OutputConfig",
    "OutputFormat",
    "PipelineStage",
    "ProcessingResult",
    "RemoteStoreConfig",
    "ResultSource",
    "ResultStatus",
    "ServiceTag",
    "SourceAsset",
    "TaggingResult",
    "TransformEngine",
    "estimate_file_size",
    "OffloadClient",
    "enable_remote_mode",
    "make_unique_key",
    "GeminiTagger",
    "StaticTagger",
    "create_tagger",
    "ItemPipeline",
    "BatchOrchestrator",
    "stage_assets",
    "EditHistory",
    "ProcessingPipelineFactory",
    "S3ClientFactory",
]
