"""Batch orchestration: stage assets, fan out item pipelines, aggregate progress."""

import asyncio
from datetime import datetime, timezone
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
)

from .error_handling import BatchOperationContextManager
from .exceptions import ImageProcessingError, batch_error_handler
from .image_utils import final_name, format_bytes, payload_size, strip_extension
from .logging_config import get_component_logger
from .models import (
    BatchProgress,
    ImageFilters,
    OutputConfig,
    PipelineStage,
    ProcessingResult,
    ResultSource,
    ResultStatus,
    ServiceTag,
    SourceAsset,
)
from .observability import EventLog
from .pipeline import ItemPipeline
from .protocols import ResultSink
from .transform import TransformEngine

MAX_FILE_SIZE = 10 * 1024 * 1024
SETTLE_DELAY = 0.5


def stage_assets(
    files: Iterable[Tuple[str, bytes, str]],
    event_log: Optional[EventLog] = None,
    max_file_size: int = MAX_FILE_SIZE,
) -> List[SourceAsset]:
    """
    Build source assets from ``(name, data, content_type)`` triples.

    Files larger than ``max_file_size`` are skipped with a warning.
    """
    logger = get_component_logger("batch")
    staged = []
    with batch_error_handler():
        for name, data, content_type in files:
            if len(data) > max_file_size:
                message = f"File skipped: {name} exceeds the {format_bytes(max_file_size)} limit."
                if event_log is not None:
                    event_log.warn(message, ServiceTag.INPUT_STORE)
                else:
                    logger.warning(message)
                continue
            staged.append(SourceAsset(name=name, data=data, content_type=content_type))
    return staged


class BatchOrchestrator:
    """
    Runs one :class:`ItemPipeline` per asset concurrently on the event loop.

    Every state change of every item is forwarded to ``sink``; since all
    pipelines share one event loop thread, the sink never sees concurrent
    calls.
    """

    def __init__(
        self,
        pipeline: ItemPipeline,
        engine: TransformEngine,
        sink: Optional[ResultSink] = None,
        max_concurrency: Optional[int] = None,
        settle_delay: float = SETTLE_DELAY,
        on_complete: Optional[Callable[[int], None]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self._pipeline = pipeline
        self._engine = engine
        self._sink = sink
        self._max_concurrency = max_concurrency
        self._settle_delay = settle_delay
        self._on_complete = on_complete
        self._cancel_event = cancel_event
        self._logger = get_component_logger("batch")

    def cancel(self) -> None:
        """Abort remote polling for every running item."""
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def run_batch(
        self, assets: Sequence[SourceAsset], config: OutputConfig
    ) -> AsyncIterator[BatchProgress]:
        """
        Process every asset and yield progress as items become terminal.

        Args:
            assets: Staged source assets, one result each
            config: Output configuration shared by every item

        Yields:
            BatchProgress with ``current`` counting terminal items so far
        """
        if self._cancel_event is not None:
            # A cancel only applies to the run it was issued in
            self._cancel_event.clear()
        results = [self._pipeline.new_result(asset) for asset in assets]

        def work(index: int) -> Awaitable[ProcessingResult]:
            return self._pipeline.run(assets[index], config, results[index])

        async for progress in self._fan_out(results, work, "Thumbnail batch"):
            yield progress

    async def process_all(
        self, assets: Sequence[SourceAsset], config: OutputConfig
    ) -> List[ProcessingResult]:
        """Run a batch to completion and return results in input order."""
        results: List[Optional[ProcessingResult]] = [None] * len(assets)
        async for progress in self.run_batch(assets, config):
            results[progress.index] = progress.result
        return [r for r in results if r is not None]

    async def regenerate_all(
        self, existing_results: Sequence[ProcessingResult], config: OutputConfig
    ) -> AsyncIterator[BatchProgress]:
        """
        Re-render already ingested items locally with a new configuration.

        Never contacts the remote store. Items in ERROR are skipped.
        """
        targets = [r for r in existing_results if r.status is not ResultStatus.ERROR]

        def work(index: int) -> Awaitable[ProcessingResult]:
            return self._regenerate(targets[index], config)

        async for progress in self._fan_out(targets, work, "Regenerate all"):
            yield progress

    async def _regenerate(
        self, item: ProcessingResult, config: OutputConfig
    ) -> ProcessingResult:
        updated = item.model_copy(deep=True)
        if updated.asset is not None:
            source_bytes = updated.asset.data
        else:
            self._logger.warning(
                f"No original kept for {item.final_name}; re-rendering the stored thumbnail"
            )
            source_bytes = updated.encoded_thumbnail

        try:
            thumbnail = await self._engine.render_async(
                source_bytes, config, ImageFilters()
            )
        except ImageProcessingError as e:
            # The previous thumbnail stays in place
            self._logger.error(f"Regenerating {item.final_name} failed: {e}")
            return item

        current_name = updated.final_name or updated.original_name
        updated.encoded_thumbnail = thumbnail
        updated.size_bytes = payload_size(thumbnail)
        updated.processed_at = datetime.now(timezone.utc)
        updated.status = ResultStatus.COMPLETED
        updated.stage = PipelineStage.COMPLETED
        updated.source = ResultSource.LOCAL
        updated.final_name = final_name(strip_extension(current_name), config.format)
        return updated

    async def _fan_out(
        self,
        items: Sequence[ProcessingResult],
        work: Callable[[int], Awaitable[ProcessingResult]],
        operation_name: str,
    ) -> AsyncIterator[BatchProgress]:
        total = len(items)
        semaphore = (
            asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None
        )

        async def guarded(index: int) -> Tuple[int, ProcessingResult]:
            try:
                if semaphore is None:
                    return index, await work(index)
                async with semaphore:
                    return index, await work(index)
            except Exception as e:  # noqa: BLE001
                # Never leave an item PROCESSING
                failed = items[index].model_copy(deep=True)
                failed.status = ResultStatus.ERROR
                failed.stage = PipelineStage.ERROR
                failed.error = str(e)
                self._logger.error(f"Item {failed.original_name} crashed: {e}", exc_info=True)
                return index, failed

        current = 0
        with BatchOperationContextManager(operation_name) as batch:
            tasks = [asyncio.ensure_future(guarded(i)) for i in range(total)]
            try:
                for next_done in asyncio.as_completed(tasks):
                    index, result = await next_done
                    current += 1
                    if result.status is ResultStatus.ERROR:
                        batch.add_error(result.error, result.original_name)
                    else:
                        batch.record_success()
                    if self._sink is not None:
                        self._sink(result.model_copy(deep=True))
                    yield BatchProgress(
                        current=current, total=total, index=index, result=result
                    )
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()

        await asyncio.sleep(self._settle_delay)
        if self._on_complete is not None:
            self._on_complete(total)
