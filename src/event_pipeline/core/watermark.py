import threading
import time
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel
from loguru import logger

from event_pipeline.core.utils import to_epoch_seconds

Timestamp = Union[str, int]


class TimeWindow(BaseModel):
    """Configured event time window for one run."""
    start_time: Optional[Timestamp] = None   # ISO-8601 string or epoch seconds
    end_time: Optional[Timestamp] = None     # ISO-8601 string or epoch seconds

    @property
    def start_epoch(self) -> Optional[int]:
        if self.start_time is None:
            return None
        return to_epoch_seconds(self.start_time)

    @property
    def end_epoch(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return to_epoch_seconds(self.end_time)


class CursorResult(BaseModel):
    """Window the next incremental run should start from."""
    next_start_time: int
    next_end_time: Optional[int] = None

    def to_report(self) -> Dict[str, int]:
        """Render as the report handed back for the next run."""
        report = {"start_time": self.next_start_time}
        if self.next_end_time is not None:
            report["end_time"] = self.next_end_time
        return report


class WatermarkTracker:
    """Tracks the latest event creation time seen during a run.

    ``update`` is a compare-and-set-if-greater under a lock, safe when
    several user branches report timestamps concurrently.
    """

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()
        self._metrics = {
            'watermark_updates': 0
        }

    @property
    def value(self) -> int:
        return self._value

    def update(self, candidate: int) -> bool:
        """Raise the watermark to ``candidate`` if it is greater.

        Returns:
            True if the watermark moved
        """
        with self._lock:
            if candidate > self._value:
                self._value = candidate
                self._metrics['watermark_updates'] += 1
                return True
            return False

    def get_metrics(self) -> Dict[str, Any]:
        """Get watermark-related metrics."""
        metrics = self._metrics.copy()
        metrics['watermark'] = self._value
        return metrics


def _safe_epoch(value: Optional[Timestamp]) -> Optional[int]:
    if value is None:
        return None
    try:
        return to_epoch_seconds(value)
    except ValueError:
        logger.warning(f"Ignoring unparsable start_time '{value}' for the next window")
        return None


def plan_next_cursor(
    incremental: bool,
    last_time: int,
    window: TimeWindow,
    now: Optional[int] = None
) -> Optional[CursorResult]:
    """Compute the window for the next incremental run.

    Args:
        incremental: Whether incremental mode is enabled
        last_time: Latest observed event creation time, 0 if none
        window: Configured time window of this run
        now: Current epoch seconds, defaults to the wall clock

    Returns:
        Next window, or None when not running incrementally
    """
    if not incremental:
        return None

    end_time = window.end_epoch

    if last_time == 0:
        # Nothing observed, don't rescan an empty window
        next_start = int(time.time()) if now is None else now
    elif end_time is not None:
        # end_time can be set in the future
        next_start = min(end_time + 1, last_time + 1)
    else:
        next_start = last_time + 1
    next_start = max(next_start, 1)

    next_end = None
    if end_time is not None:
        start_time = _safe_epoch(window.start_time)
        window_length = end_time - start_time if start_time is not None else 0
        next_end = next_start + max(window_length, 0)

    cursor = CursorResult(next_start_time=next_start, next_end_time=next_end)
    logger.info(f"Next run window: {cursor.to_report()}")
    return cursor
