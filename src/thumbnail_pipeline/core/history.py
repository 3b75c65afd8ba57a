"""Linear undo/redo history over filter snapshots for the thumbnail editor."""

from datetime import datetime, timezone
from typing import List, Optional

from .exceptions import ThumbnailPipelineError
from .image_utils import payload_size
from .logging_config import get_component_logger
from .models import ImageFilters, OutputConfig, ProcessingResult
from .transform import TransformEngine


class EditHistory:
    """
    Undo/redo stack for one result being edited.

    Commits are explicit (e.g. at the end of a slider drag) so intermediate
    values never enter the history.
    """

    def __init__(self):
        self._snapshots: List[ImageFilters] = []
        self._index = 0
        self._result: Optional[ProcessingResult] = None
        self._logger = get_component_logger("history")

    def open(self, result: ProcessingResult) -> ImageFilters:
        """Start editing ``result`` from a single identity snapshot."""
        self._result = result
        self._snapshots = [ImageFilters()]
        self._index = 0
        return self.current

    def close(self) -> None:
        self._result = None
        self._snapshots = []
        self._index = 0

    @property
    def is_open(self) -> bool:
        return self._result is not None

    @property
    def current(self) -> ImageFilters:
        if not self._snapshots:
            return ImageFilters()
        return self._snapshots[self._index].model_copy()

    @property
    def index(self) -> int:
        return self._index

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._snapshots) - 1

    def commit(self, filters: ImageFilters) -> bool:
        """
        Record ``filters`` if they differ from the current snapshot.

        Any redo tail is discarded. Returns whether a snapshot was added.
        """
        if not self.is_open:
            raise ThumbnailPipelineError("No result is open for editing")
        if filters == self._snapshots[self._index]:
            return False

        del self._snapshots[self._index + 1 :]
        self._snapshots.append(filters.model_copy())
        self._index = len(self._snapshots) - 1
        return True

    def undo(self) -> ImageFilters:
        if self.can_undo:
            self._index -= 1
        return self.current

    def redo(self) -> ImageFilters:
        if self.can_redo:
            self._index += 1
        return self.current

    def save(self, engine: TransformEngine, config: OutputConfig) -> ProcessingResult:
        """
        Render the current snapshot and return the updated result.

        The original source is preferred so that lossy re-encodes never
        compound; the stored thumbnail is only used when no original is kept.
        """
        if self._result is None:
            raise ThumbnailPipelineError("No result is open for editing")

        result = self._result
        if result.asset is not None:
            source_bytes = result.asset.data
        else:
            self._logger.warning(
                f"No original kept for {result.final_name}; editing the thumbnail"
            )
            source_bytes = result.encoded_thumbnail

        thumbnail = engine.render_for_config(source_bytes, config, self.current)
        updated = result.model_copy(
            update={
                "encoded_thumbnail": thumbnail,
                "size_bytes": payload_size(thumbnail),
                "processed_at": datetime.now(timezone.utc),
            }
        )
        self._result = updated
        return updated

    def __len__(self) -> int:
        return len(self._snapshots)
