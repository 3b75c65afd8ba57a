"""Shared data models for the thumbnail pipeline."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OutputFormat(str, Enum):
    """Encodings a thumbnail can be written in, keyed by mime type."""

    JPEG = "image/jpeg"
    PNG = "image/png"
    WEBP = "image/webp"

    @property
    def extension(self) -> str:
        return {"image/png": "png", "image/webp": "webp"}.get(self.value, "jpg")

    @property
    def pillow_format(self) -> str:
        return self.name

    @property
    def is_lossless(self) -> bool:
        return self is OutputFormat.PNG


class ResultStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class ResultSource(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


class PipelineStage(str, Enum):
    """States of the per-item state machine."""

    STAGED = "staged"
    TAGGING = "tagging"
    OFFLOADING = "offloading"
    LOCAL_RENDER = "local_render"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.COMPLETED, PipelineStage.ERROR)


class ServiceTag(str, Enum):
    """Logical service a log entry is attributed to."""

    TAGGING = "tagging"
    INPUT_STORE = "input-store"
    OUTPUT_STORE = "output-store"


class SourceAsset(BaseModel):
    """A staged source image. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    name: str
    data: bytes = Field(repr=False)
    content_type: str = "image/jpeg"
    size: int = 0

    @model_validator(mode="before")
    @classmethod
    def _default_size(cls, values: Any) -> Any:
        if isinstance(values, dict) and not values.get("size"):
            values = {**values, "size": len(values.get("data") or b"")}
        return values

    @property
    def stem(self) -> str:
        """Display name without its extension."""
        if "." in self.name:
            return self.name.rsplit(".", 1)[0]
        return self.name


class OutputConfig(BaseModel):
    """Shared output settings for one batch run."""

    model_config = ConfigDict(frozen=True)

    format: OutputFormat = OutputFormat.JPEG
    max_width: int = Field(default=300, gt=0)
    use_custom_quality: bool = False
    quality: float = Field(default=0.8, ge=0.1, le=1.0)
    use_compression: bool = False
    compression: float = Field(default=0.5, ge=0.1, le=0.9)


class ImageFilters(BaseModel):
    """Photometric percentages (100 is identity) and rotation in degrees."""

    brightness: float = 100.0
    contrast: float = 100.0
    saturation: float = 100.0
    rotation: int = 0

    @property
    def is_identity(self) -> bool:
        return self == ImageFilters()

    def rotated(self, delta: int) -> "ImageFilters":
        """Compose an additional rotation, normalised to [0, 360)."""
        return self.model_copy(update={"rotation": (self.rotation + delta) % 360})


class TaggingResult(BaseModel):
    """Descriptive metadata produced by the tagging collaborator."""

    description: str = ""
    tags: List[str] = Field(default_factory=list)
    suggested_name: str = ""


class RemoteStoreConfig(BaseModel):
    """Connection settings for the remote object store round trip."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    access_key_id: str = ""
    secret_access_key: str = Field(default="", repr=False)
    region: str = "us-east-1"
    input_bucket: str = "cloudthumb-app-input"
    output_bucket: str = "cloudthumb-app-output"
    endpoint_url: Optional[str] = None
    output_prefix: str = "thumb-"
    max_attempts: int = Field(default=30, gt=0)
    interval_ms: int = Field(default=1000, ge=0)

    @property
    def has_credentials(self) -> bool:
        return bool(self.access_key_id.strip() and self.secret_access_key.strip())

    @property
    def is_ready(self) -> bool:
        return self.enabled and self.has_credentials


class ProcessingResult(BaseModel):
    """Result of processing a single source asset."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:9])
    original_name: str
    original_size: int = 0
    encoded_thumbnail: bytes = Field(default=b"", repr=False)
    size_bytes: int = 0
    source: ResultSource = ResultSource.LOCAL
    duration_ms: int = 0
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    final_name: str = ""
    status: ResultStatus = ResultStatus.PROCESSING
    stage: PipelineStage = PipelineStage.STAGED
    error: str = ""
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    asset: Optional[SourceAsset] = Field(default=None, exclude=True, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status is not ResultStatus.PROCESSING

    def to_data_url(self, output_format: OutputFormat) -> str:
        """The encoded thumbnail as a base64 ``data:`` URL."""
        from .image_utils import to_data_url

        return to_data_url(self.encoded_thumbnail, output_format)


class MetricPoint(BaseModel):
    """Aggregated remote invocations within one minute bucket."""

    time_bucket: str
    invocation_count: int = 0
    last_duration_ms: int = 0
    error_count: int = 0


class LogLevelName(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogEntry(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:9])
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    level: LogLevelName
    message: str
    service_tag: ServiceTag


class BatchProgress(BaseModel):
    """One progress tick of a batch run: ``current`` out of ``total`` terminal."""

    current: int
    total: int
    index: int = 0
    result: ProcessingResult

    @property
    def done(self) -> bool:
        return self.current >= self.total
