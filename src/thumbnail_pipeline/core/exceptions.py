"""Custom exceptions and error handling utilities for the thumbnail pipeline."""

from __future__ import annotations

from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, TypeVar

from PIL import UnidentifiedImageError

from .logging_config import get_logger


class ThumbnailPipelineError(Exception):
    """Base exception for all thumbnail pipeline errors."""


class ConfigurationError(ThumbnailPipelineError):
    """Error raised for invalid or unusable configuration (credentials, buckets)."""


class ImageProcessingError(ThumbnailPipelineError):
    """Error raised when rendering a single image fails."""


class DecodeError(ImageProcessingError):
    """The source bytes could not be decoded as an image."""


class RenderUnavailable(ImageProcessingError):
    """No drawing surface or encoder is available for the requested output."""


class TaggingError(ThumbnailPipelineError):
    """The tagging collaborator failed or returned an unusable answer."""


class StoreError(ThumbnailPipelineError):
    """Error raised for object store failures."""

    def __init__(self, message: str, code: str = "", status: int = 0):
        super().__init__(message)
        self.code = code
        self.status = status


class ObjectNotFound(StoreError):
    """The requested key does not exist (yet)."""


class AccessDenied(StoreError):
    """Credentials lack permission for the bucket or key."""


class BucketNotFound(StoreError):
    """The addressed bucket does not exist."""


class StoreNetworkError(StoreError):
    """The store could not be reached at all."""


class OffloadTimeout(ThumbnailPipelineError):
    """The derived object never appeared within the polling budget."""

    def __init__(self, key: str, attempts: int):
        super().__init__(
            f"Derived object {key!r} did not appear after {attempts} attempts"
        )
        self.key = key
        self.attempts = attempts


class OffloadCancelled(ThumbnailPipelineError):
    """Polling was aborted through the cancel signal."""


F = TypeVar("F", bound=Callable[..., Any])


def with_error_handling(func: F) -> F:
    """Wrap a render function so that unexpected failures become pipeline errors.

    Pillow's ``UnidentifiedImageError`` maps to :class:`DecodeError`; anything
    else that is not already a pipeline error becomes
    :class:`ImageProcessingError`.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:  # type: ignore[override]
        logger = get_logger("thumbnail-pipeline.render")
        try:
            return func(*args, **kwargs)
        except ThumbnailPipelineError:
            logger.error("Pipeline error", exc_info=True)
            raise
        except UnidentifiedImageError as exc:
            logger.error(f"Could not decode image in {func.__name__}: {exc}")
            raise DecodeError(str(exc)) from exc
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Unhandled error in {func.__name__}: {exc}", exc_info=True)
            raise ImageProcessingError(str(exc)) from exc

    return wrapper  # type: ignore[return-value]


@contextmanager
def batch_error_handler() -> Any:
    """Context manager to wrap batch setup with error handling."""
    try:
        yield
    except ThumbnailPipelineError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise ImageProcessingError(str(exc)) from exc
