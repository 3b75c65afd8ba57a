"""Remote offload: upload a source to the input bucket, poll the output bucket."""

import asyncio
import time
from typing import Optional

from .error_handling import classify_store_error, describe_configuration_error
from .exceptions import (
    ConfigurationError,
    ObjectNotFound,
    OffloadCancelled,
    OffloadTimeout,
    StoreError,
)
from .logging_config import get_component_logger
from .models import RemoteStoreConfig, SourceAsset
from .protocols import AsyncS3ClientProtocol


def make_unique_key(name: str, now_ms: Optional[int] = None) -> str:
    """
    Build an input key that does not collide across concurrent items.

    Args:
        name: Display name of the asset
        now_ms: Epoch milliseconds (defaults to the current time)

    Returns:
        ``"<epoch-ms>-<name>"``
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{now_ms}-{name}"


class OffloadClient:
    """Client-side contract for the object-store round trip.

    The S3 client is constructed by the caller (see
    :class:`~thumbnail_pipeline.core.factories.S3ClientFactory`) and passed in.
    """

    def __init__(self, s3_client: AsyncS3ClientProtocol, config: RemoteStoreConfig):
        self._s3_client = s3_client
        self._config = config
        self._logger = get_component_logger("offload")

    @property
    def config(self) -> RemoteStoreConfig:
        return self._config

    def output_key(self, key: str) -> str:
        """Key the external worker writes the derived object under."""
        return f"{self._config.output_prefix}{key}"

    async def upload(self, asset: SourceAsset, destination_key: str) -> str:
        """Write the asset to the input bucket once. Returns the key written."""
        self._logger.debug(
            f"Uploading {asset.name} to s3://{self._config.input_bucket}/{destination_key}"
        )
        try:
            await self._s3_client.put_object(
                Bucket=self._config.input_bucket,
                Key=destination_key,
                Body=asset.data,
                ContentType=asset.content_type,
            )
        except Exception as exc:  # noqa: BLE001
            raise classify_store_error(exc) from exc
        return destination_key

    async def await_derived(
        self,
        key: str,
        max_attempts: Optional[int] = None,
        interval_ms: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> bytes:
        """
        Poll the output bucket until the derived object for ``key`` appears.

        Args:
            key: Input key the source was uploaded under
            max_attempts: Attempt budget (defaults to the store config)
            interval_ms: Wait between attempts (defaults to the store config)
            cancel_event: Optional signal that aborts polling

        Returns:
            Bytes of the derived object

        Raises:
            OffloadTimeout: If the object never appeared within the budget
            OffloadCancelled: If ``cancel_event`` was set
            StoreError: For any failure other than not-found
        """
        attempts = max_attempts if max_attempts is not None else self._config.max_attempts
        interval = (
            interval_ms if interval_ms is not None else self._config.interval_ms
        ) / 1000.0
        output_key = self.output_key(key)

        for attempt in range(1, attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise OffloadCancelled(f"Polling for {output_key!r} was cancelled")

            try:
                return await self._fetch(output_key)
            except ObjectNotFound:
                self._logger.debug(
                    f"{output_key} not ready (attempt {attempt}/{attempts})"
                )

            if attempt < attempts:
                await self._wait(interval, cancel_event, output_key)

        raise OffloadTimeout(output_key, attempts)

    async def validate_connection(self) -> bool:
        """
        Check credentials and permissions by listing at most one input key.

        Raises:
            ConfigurationError: With a user-facing description of the failure
        """
        try:
            await self._s3_client.list_objects_v2(
                Bucket=self._config.input_bucket, MaxKeys=1
            )
        except Exception as exc:  # noqa: BLE001
            error = classify_store_error(exc)
            self._logger.error(f"Connection validation failed: {error}")
            raise describe_configuration_error(error) from exc
        return True

    async def _fetch(self, output_key: str) -> bytes:
        try:
            response = await self._s3_client.get_object(
                Bucket=self._config.output_bucket, Key=output_key
            )
            body = response["Body"]
            async with body as stream:
                return await stream.read()
        except StoreError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise classify_store_error(exc) from exc

    @staticmethod
    async def _wait(
        interval: float, cancel_event: Optional[asyncio.Event], output_key: str
    ) -> None:
        if cancel_event is None:
            await asyncio.sleep(interval)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            return
        raise OffloadCancelled(f"Polling for {output_key!r} was cancelled")


async def enable_remote_mode(
    client: OffloadClient,
) -> RemoteStoreConfig:
    """
    Validate the store and return an enabled copy of its configuration.

    Raises:
        ConfigurationError: If credentials are blank or validation fails
    """
    config = client.config
    if not config.has_credentials:
        raise ConfigurationError("Fill in the credentials before enabling remote mode.")
    await client.validate_connection()
    return config.model_copy(update={"enabled": True})
