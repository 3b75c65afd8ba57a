"""Protocol definitions for dependency injection and testability."""

from typing import Any, Callable, Dict, Protocol

from .models import ProcessingResult, TaggingResult


class AsyncS3ClientProtocol(Protocol):
    """Subset of the aioboto3 S3 client the offload client relies on."""

    async def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Fetch one object; the body is an async streaming body."""
        ...

    async def put_object(
        self, Bucket: str, Key: str, Body: bytes, ContentType: str
    ) -> Dict[str, Any]:
        ...

    async def list_objects_v2(self, Bucket: str, MaxKeys: int) -> Dict[str, Any]:
        """Used by the connectivity probe."""
        ...


class TaggerProtocol(Protocol):
    """Collaborator that describes an image and suggests a file name."""

    async def analyze(self, image_bytes: bytes, mime_type: str) -> TaggingResult:
        """Describe the image. May raise; callers degrade gracefully."""
        ...


class LoggerProtocol(Protocol):
    """Leveled logger taking an optional ``LogContext`` and extra fields.

    Satisfied by ``ContextLogger`` and by the recording fake in tests.
    """

    def debug(self, message: str, context: Any = None, **fields: Any) -> None: ...

    def info(self, message: str, context: Any = None, **fields: Any) -> None: ...

    def warning(self, message: str, context: Any = None, **fields: Any) -> None: ...

    def error(self, message: str, context: Any = None, **fields: Any) -> None: ...


# Receives a snapshot of a result every time the pipeline mutates it
ResultSink = Callable[[ProcessingResult], None]
