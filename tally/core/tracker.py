"""Per-block timing state for a single run."""

import logging
from collections.abc import Iterator

from .block_path import block_path
from .models import BlockEvent, BlockPath, BlockTracker

logger = logging.getLogger(__name__)


class BlockTrackerRegistry:
    """Maps block identities to their BlockTracker.

    Entries are created lazily, one per distinct path, and never removed
    during a run so they remain available to the final report.
    """

    def __init__(self) -> None:
        self._trackers: dict[BlockPath, BlockTracker] = {}

    def resolve(self, event: BlockEvent) -> tuple[BlockTracker | None, bool]:
        """Look up or create the tracker for an event.

        Returns:
            (tracker, is_new). is_new is True only on the first
            observation of an identity. Events without parents are not
            tracked and yield (None, False).
        """
        path = block_path(event)
        if path is None:
            return None, False

        tracker = self._trackers.get(path)
        if tracker is not None:
            return tracker, False

        tracker = BlockTracker(
            id=path,
            display_name=path.label,
            type=event.type,
            test_name=event.test,
        )
        self._trackers[path] = tracker
        logger.debug(f"Tracking new block: {path.label}")
        return tracker, True

    def record_before_start(self, path: BlockPath, timestamp: float) -> None:
        self._require(path).before_started_at = timestamp

    def record_after_start(self, path: BlockPath, timestamp: float) -> None:
        self._require(path).after_started_at = timestamp

    def elapsed_since_before_start(self, path: BlockPath, now: float) -> float | None:
        """Milliseconds since the block's before() started, or None if unknown."""
        tracker = self._trackers.get(path)
        if tracker is None or tracker.before_started_at is None:
            return None
        return now - tracker.before_started_at

    def elapsed_since_after_start(self, path: BlockPath, now: float) -> float | None:
        """Milliseconds since the block's after() started, or None if unknown."""
        tracker = self._trackers.get(path)
        if tracker is None or tracker.after_started_at is None:
            return None
        return now - tracker.after_started_at

    def get(self, path: BlockPath) -> BlockTracker | None:
        return self._trackers.get(path)

    def _require(self, path: BlockPath) -> BlockTracker:
        tracker = self._trackers.get(path)
        if tracker is None:
            raise LookupError(
                f"No tracker for block {path.label!r}; resolve() must be called first"
            )
        return tracker

    def __contains__(self, path: object) -> bool:
        return path in self._trackers

    def __len__(self) -> int:
        return len(self._trackers)

    def __iter__(self) -> Iterator[BlockTracker]:
        return iter(self._trackers.values())
