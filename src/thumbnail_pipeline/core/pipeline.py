"""Per-item processing state machine: tag, offload, fall back, finalize."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional

from .exceptions import ImageProcessingError, OffloadCancelled
from .image_utils import final_name, payload_size, strip_extension
from .models import (
    ImageFilters,
    OutputConfig,
    PipelineStage,
    ProcessingResult,
    ResultSource,
    ResultStatus,
    ServiceTag,
    SourceAsset,
    TaggingResult,
)
from .observability import EventLog, LogContext, MetricsCollector
from .offload import OffloadClient, make_unique_key
from .protocols import LoggerProtocol, ResultSink, TaggerProtocol
from .tagging import degraded_result
from .transform import TransformEngine


@dataclass
class PipelineContext:
    """Per-run bookkeeping for one item."""

    correlation_id: str
    start_time: float = field(default_factory=time.perf_counter)
    log_context: LogContext = field(default_factory=LogContext)

    def elapsed_ms(self) -> int:
        return round((time.perf_counter() - self.start_time) * 1000)


class ItemPipeline:
    """
    Drives one :class:`SourceAsset` from STAGED to COMPLETED or ERROR.

    Tagging is best effort, the remote round trip is an optimization that
    falls back to local rendering, and only a local render failure is fatal
    for the item.
    """

    def __init__(
        self,
        engine: TransformEngine,
        tagger: TaggerProtocol,
        logger: LoggerProtocol,
        event_log: EventLog,
        metrics: Optional[MetricsCollector] = None,
        offload_client: Optional[OffloadClient] = None,
        sink: Optional[ResultSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self._engine = engine
        self._tagger = tagger
        self._logger = logger
        self._event_log = event_log
        self._metrics = metrics
        self._offload_client = offload_client
        self._sink = sink
        self._cancel_event = cancel_event

    @property
    def remote_enabled(self) -> bool:
        return self._offload_client is not None and self._offload_client.config.is_ready

    def new_result(self, asset: SourceAsset) -> ProcessingResult:
        """The PROCESSING result an item starts out with."""
        return ProcessingResult(
            original_name=asset.name,
            original_size=asset.size,
            final_name=asset.name,
            source=ResultSource.REMOTE if self.remote_enabled else ResultSource.LOCAL,
            asset=asset,
        )

    async def run(
        self,
        asset: SourceAsset,
        config: OutputConfig,
        result: Optional[ProcessingResult] = None,
    ) -> ProcessingResult:
        """
        Process ``asset`` and return its terminal result.

        Args:
            asset: The staged source image
            config: Shared output configuration for the run
            result: Pre-created PROCESSING result to fill in (optional)

        Returns:
            The same result object, COMPLETED or ERROR
        """
        result = result or self.new_result(asset)
        context = PipelineContext(
            correlation_id=f"img_{result.id}",
            log_context=LogContext(
                correlation_id=f"img_{result.id}",
                operation="process_item",
                component="item_pipeline",
            ).with_metadata(name=asset.name),
        )
        self._publish(result)

        analysis = await self._tag(asset, result, context)
        base_name = analysis.suggested_name or strip_extension(asset.name)
        display_name = final_name(base_name, config.format)

        thumbnail: Optional[bytes] = None
        if self.remote_enabled:
            try:
                thumbnail = await self._offload(asset, result, context)
            except OffloadCancelled as e:
                return self._fail(result, context, f"Cancelled: {e}")

        source = ResultSource.REMOTE
        if thumbnail is None:
            source = ResultSource.LOCAL
            self._advance(result, PipelineStage.LOCAL_RENDER, source=source)
            try:
                thumbnail = await self._engine.render_async(
                    asset.data, config, ImageFilters()
                )
            except ImageProcessingError as e:
                return self._fail(result, context, str(e))

        duration_ms = context.elapsed_ms()
        result.encoded_thumbnail = thumbnail
        result.size_bytes = payload_size(thumbnail)
        result.source = source
        result.duration_ms = duration_ms
        result.description = analysis.description
        result.tags = list(analysis.tags)
        result.final_name = display_name
        result.status = ResultStatus.COMPLETED
        self._advance(result, PipelineStage.COMPLETED)

        self._logger.info(
            "Item completed",
            context.log_context,
            source=source.value,
            duration_ms=duration_ms,
            size_bytes=result.size_bytes,
        )
        if source is ResultSource.REMOTE:
            if self._metrics is not None:
                self._metrics.record(duration_ms, error=False)
            self._event_log.info(
                f"Image processed successfully: {display_name}", ServiceTag.OUTPUT_STORE
            )
        return result

    async def _tag(
        self, asset: SourceAsset, result: ProcessingResult, context: PipelineContext
    ) -> TaggingResult:
        self._advance(result, PipelineStage.TAGGING)
        try:
            analysis = await self._tagger.analyze(asset.data, asset.content_type)
        except Exception as e:  # noqa: BLE001
            self._event_log.warn(
                f"Tagging unavailable for {asset.name}: {e}", ServiceTag.TAGGING
            )
            return degraded_result(asset.name)

        self._event_log.info(f"Tagged {asset.name}", ServiceTag.TAGGING)
        self._logger.debug("Tagging finished", context.log_context, tags=analysis.tags)
        return analysis

    async def _offload(
        self, asset: SourceAsset, result: ProcessingResult, context: PipelineContext
    ) -> Optional[bytes]:
        """Remote round trip; None means fall back to local rendering."""
        client = self._offload_client
        if client is None:
            return None
        self._advance(result, PipelineStage.OFFLOADING, source=ResultSource.REMOTE)
        key = make_unique_key(asset.name)
        service = ServiceTag.INPUT_STORE

        if self._cancel_event is not None and self._cancel_event.is_set():
            raise OffloadCancelled(f"Upload of {asset.name!r} was cancelled")

        try:
            await client.upload(asset, key)
            self._event_log.info(f"Uploaded {key}", ServiceTag.INPUT_STORE)

            service = ServiceTag.OUTPUT_STORE
            thumbnail = await client.await_derived(
                key, cancel_event=self._cancel_event
            )
        except OffloadCancelled:
            raise
        except Exception as e:  # noqa: BLE001
            self._event_log.warn(
                f"Remote processing failed for {asset.name}, rendering locally: {e}",
                service,
            )
            self._logger.warning(
                "Remote offload failed", context.log_context.with_metadata(error=str(e))
            )
            return None

        self._event_log.info(f"Derived object ready for {key}", ServiceTag.OUTPUT_STORE)
        return thumbnail

    def _fail(
        self, result: ProcessingResult, context: PipelineContext, message: str
    ) -> ProcessingResult:
        result.status = ResultStatus.ERROR
        result.error = message
        result.duration_ms = context.elapsed_ms()
        self._advance(result, PipelineStage.ERROR)
        self._event_log.error(f"Fatal error: {message}", ServiceTag.OUTPUT_STORE)
        self._logger.error(
            "Item failed", context.log_context.with_metadata(error=message)
        )
        return result

    def _advance(
        self,
        result: ProcessingResult,
        stage: PipelineStage,
        source: Optional[ResultSource] = None,
    ) -> None:
        result.stage = stage
        if source is not None:
            result.source = source
        self._publish(result)

    def _publish(self, result: ProcessingResult) -> None:
        if self._sink is not None:
            self._sink(result.model_copy(deep=True))
