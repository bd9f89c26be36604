"""
In-process TTL cache for quality results.
"""

import hashlib
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from ..models import QualityMetrics


class QualityCache:
    """Bounded LRU cache whose entries expire after ``ttl_s`` seconds."""

    def __init__(
        self,
        ttl_s: float = 1800.0,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_s = ttl_s
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, QualityMetrics]]" = OrderedDict()

    @staticmethod
    def key(audio: bytes, text: str, reference: Optional[bytes] = None) -> str:
        digest = hashlib.sha256()
        digest.update(audio)
        digest.update(b"\x00")
        digest.update(text.encode("utf-8"))
        digest.update(b"\x00")
        digest.update(reference or b"")
        return digest.hexdigest()

    def get(self, key: str) -> Optional[QualityMetrics]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, metrics = entry
        if self._clock() - stored_at > self.ttl_s:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return metrics

    def put(self, key: str, metrics: QualityMetrics) -> None:
        self._entries[key] = (self._clock(), metrics)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)
