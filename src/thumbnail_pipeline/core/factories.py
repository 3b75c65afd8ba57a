"""Factory classes for creating configured service instances."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional, Tuple

import aioboto3

from .batch import SETTLE_DELAY, BatchOrchestrator
from .models import RemoteStoreConfig
from .observability import (
    EventLog,
    MetricsCollector,
    ObservabilityConfig,
    create_event_log,
    create_logger,
    create_metrics_collector,
)
from .offload import OffloadClient
from .pipeline import ItemPipeline
from .protocols import AsyncS3ClientProtocol, LoggerProtocol, ResultSink, TaggerProtocol
from .tagging import StaticTagger
from .transform import TransformEngine


class S3ClientFactory:
    """Builds aioboto3 sessions from explicit credentials.

    A session is only rebuilt when the credentials or the region change.
    """

    def __init__(self):
        self._session: Optional[aioboto3.Session] = None
        self._session_key: Optional[Tuple[str, str, str]] = None

    @staticmethod
    def _key_for(config: RemoteStoreConfig) -> Tuple[str, str, str]:
        return (config.access_key_id, config.secret_access_key, config.region)

    def session_for(self, config: RemoteStoreConfig) -> aioboto3.Session:
        key = self._key_for(config)
        if self._session is None or self._session_key != key:
            self._session = aioboto3.Session(
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                region_name=config.region,
            )
            self._session_key = key
        return self._session

    @asynccontextmanager
    async def open_client(
        self, config: RemoteStoreConfig
    ) -> AsyncIterator[AsyncS3ClientProtocol]:
        """Open an S3 client for the lifetime of the ``async with`` block."""
        session = self.session_for(config)
        async with session.client("s3", endpoint_url=config.endpoint_url) as client:  # type: ignore[reportUnknownMemberType]
            yield client


class ProcessingPipelineFactory:
    """Factory for creating the complete processing pipeline."""

    @staticmethod
    def create_pipeline(
        engine: Optional[TransformEngine] = None,
        tagger: Optional[TaggerProtocol] = None,
        offload_client: Optional[OffloadClient] = None,
        logger: Optional[LoggerProtocol] = None,
        event_log: Optional[EventLog] = None,
        metrics: Optional[MetricsCollector] = None,
        sink: Optional[ResultSink] = None,
        max_concurrency: Optional[int] = None,
        settle_delay: float = SETTLE_DELAY,
        on_complete: Optional[Callable[[int], None]] = None,
        observability: Optional[ObservabilityConfig] = None,
    ) -> BatchOrchestrator:
        """Create a fully configured batch orchestrator."""
        observability = observability or ObservabilityConfig()

        # Create default dependencies if not provided
        engine = engine or TransformEngine()
        tagger = tagger or StaticTagger()
        if logger is None:
            logger = create_logger("items", observability)
        if event_log is None:
            event_log = create_event_log(observability)
        if metrics is None:
            metrics = create_metrics_collector(observability)

        cancel_event = asyncio.Event()
        pipeline = ItemPipeline(
            engine=engine,
            tagger=tagger,
            logger=logger,
            event_log=event_log,
            metrics=metrics,
            offload_client=offload_client,
            sink=sink,
            cancel_event=cancel_event,
        )

        return BatchOrchestrator(
            pipeline=pipeline,
            engine=engine,
            sink=sink,
            max_concurrency=max_concurrency,
            settle_delay=settle_delay,
            on_complete=on_complete,
            cancel_event=cancel_event,
        )
