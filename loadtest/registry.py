"""Host-side registry of node base URLs."""

from __future__ import annotations

import threading
import logging
from enum import Enum
from typing import Iterable, List, Set

from loadtest.state import DiscoveredAdd

logger = logging.getLogger(__name__)


class AddResult(str, Enum):
    ADDED = "added"
    ALREADY_EXISTS = "already_exists"


class NodeRegistry:
    """
    Ordered, de-duplicated set of node URLs.

    Entries are compared by exact string equality and listed in insertion
    order. All operations take an internal lock, and ``list()`` returns a
    copy, so callers can iterate while other requests add or clear.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: List[str] = []
        self._index: Set[str] = set()

    def add(self, url: str) -> AddResult:
        with self._lock:
            if url in self._index:
                return AddResult.ALREADY_EXISTS
            self._insert_locked(url)
        logger.info(f"Registered node {url}")
        return AddResult.ADDED

    def add_discovered(self, urls: Iterable[str]) -> DiscoveredAdd:
        result = DiscoveredAdd()
        with self._lock:
            for url in urls:
                if url in self._index:
                    continue
                self._insert_locked(url)
                result.added.append(url)
        result.added_count = len(result.added)
        if result.added:
            logger.info(f"Registered {result.added_count} discovered nodes: {', '.join(result.added)}")
        return result

    def list(self) -> List[str]:
        with self._lock:
            return list(self._nodes)

    def clear(self) -> int:
        with self._lock:
            removed = len(self._nodes)
            self._nodes = []
            self._index = set()
        logger.info(f"Cleared {removed} nodes")
        return removed

    def _insert_locked(self, url: str) -> None:
        self._nodes.append(url)
        self._index.add(url)

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._index
