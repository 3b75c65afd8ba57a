# src/thumbnail_pipeline/core/error_handling.py

from typing import List, NamedTuple

from botocore.exceptions import (
    ClientError as BotocoreClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
)

from .exceptions import (
    AccessDenied,
    BucketNotFound,
    ConfigurationError,
    ObjectNotFound,
    StoreError,
    StoreNetworkError,
)
from .logging_config import get_component_logger

NOT_FOUND_CODES = ("NoSuchKey", "NotFound", "404")
ACCESS_DENIED_CODES = (
    "AccessDenied",
    "Forbidden",
    "403",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
)
NO_SUCH_BUCKET_CODES = ("NoSuchBucket",)


def classify_store_error(exc: BaseException) -> StoreError:
    """
    Map a botocore (or transport) exception onto the store error taxonomy.

    Args:
        exc: The exception raised by the S3 client

    Returns:
        An ObjectNotFound, AccessDenied, BucketNotFound, StoreNetworkError or
        plain StoreError carrying the original code and HTTP status.
    """
    if isinstance(exc, StoreError):
        return exc

    if isinstance(exc, BotocoreClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        message = f"{code or 'S3 error'}: {error.get('Message', str(exc))}"

        if code in NO_SUCH_BUCKET_CODES:
            return BucketNotFound(message, code=code, status=status or 404)
        if code in NOT_FOUND_CODES or status == 404:
            return ObjectNotFound(message, code=code, status=404)
        if code in ACCESS_DENIED_CODES or status == 403:
            return AccessDenied(message, code=code, status=403)
        return StoreError(message, code=code, status=status)

    if isinstance(exc, (EndpointConnectionError, ConnectionClosedError)):
        return StoreNetworkError(f"Store unreachable: {exc}")
    if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
        return AccessDenied(f"Missing credentials: {exc}", code="NoCredentials")
    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return StoreNetworkError(f"Store unreachable: {exc}")
    return StoreError(str(exc))


def describe_configuration_error(error: StoreError) -> ConfigurationError:
    """Turn a store failure seen while validating a connection into a user-facing error."""
    if isinstance(error, AccessDenied):
        message = "Access denied (403). Check the access keys and bucket permissions."
    elif isinstance(error, BucketNotFound):
        message = "Bucket not found (404)."
    elif isinstance(error, StoreNetworkError):
        message = "Network or CORS failure. Check connectivity and bucket rules."
    else:
        message = str(error) or "Unknown error"
    configuration_error = ConfigurationError(message)
    configuration_error.__cause__ = error
    return configuration_error


class FailedItem(NamedTuple):
    item: str
    error: str


class BatchOperationContextManager:
    """
    Collects per-item failures during a batch run and logs a summary on exit.

    Exceptions raised inside the ``with`` block are logged and re-raised.
    """

    def __init__(self, operation_name: str = "Batch run"):
        self.operation_name = operation_name
        self.errors: List[FailedItem] = []
        self.finished = 0
        self.logger = get_component_logger("batch-summary")

    def __enter__(self) -> "BatchOperationContextManager":
        self.logger.info(f"{self.operation_name} started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None and not self.errors:
            self.logger.error(
                f"{self.operation_name} aborted: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
            return False

        if not self.errors:
            self.logger.info(f"{self.operation_name} finished: {self.finished} ok")
            return False

        self.logger.warning(
            f"{self.operation_name} finished: "
            f"{self.finished - len(self.errors)} ok, {len(self.errors)} failed"
        )
        for position, failure in enumerate(self.errors, start=1):
            self.logger.error(
                f"  [{position}/{len(self.errors)}] {failure.item}: {failure.error}"
            )
        return False

    def record_success(self) -> None:
        self.finished += 1

    def add_error(self, error_message: str, item_identifier: str = "unknown") -> None:
        """Record a failed item. Counts towards ``finished`` as well."""
        self.finished += 1
        self.errors.append(FailedItem(item_identifier, str(error_message)))
        self.logger.debug(f"{self.operation_name}: {item_identifier} failed: {error_message}")
