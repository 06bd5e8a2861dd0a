import threading
from typing import Set

from loguru import logger


class DedupSet:
    """Set of identity keys seen during one run.

    ``add`` is a single check-and-insert under a lock, so when two
    concurrent branches offer the same key exactly one of them is told the
    key is new. Keys are never removed.
    """

    def __init__(self, name: str = "records"):
        self.name = name
        self._seen: Set[str] = set()
        self._lock = threading.Lock()
        self._duplicates = 0

    def add(self, key: str) -> bool:
        """Insert a key.

        Returns:
            True if the key was not seen before
        """
        with self._lock:
            if key in self._seen:
                self._duplicates += 1
                return False
            self._seen.add(key)
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._seen

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    @property
    def duplicates(self) -> int:
        return self._duplicates

    def log_summary(self) -> None:
        logger.info(
            f"{self.name} dedupe: unique={len(self)} removed={self._duplicates}"
        )
