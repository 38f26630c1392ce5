# -*- coding: utf-8 -*-
"""
Time-bounded cache for the "is a discrete NVIDIA GPU supported" verdict.

Probing loads the vendor driver, so the verdict is reused for a TTL. Readers
see one immutable snapshot; writers swap it under a lock.
"""
import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from config.settings import GPU_CAPABILITY_CACHE_TTL_S


@dataclass(frozen=True)
class CapabilitySnapshot:
    verdict: bool
    expires_at: float


class CapabilityCache:
    def __init__(self, ttl_s: float = GPU_CAPABILITY_CACHE_TTL_S, clock: Callable[[], float] = time.monotonic):
        self._ttl_s = ttl_s
        self._clock = clock
        self._snapshot: Optional[CapabilitySnapshot] = None
        self._write_lock = threading.Lock()

    @property
    def snapshot(self) -> Optional[CapabilitySnapshot]:
        return self._snapshot

    def get_or_probe(self, probe: Callable[[], bool]) -> bool:
        """
        Returns the cached verdict while fresh; otherwise runs `probe` and
        caches its result. A probe that raises counts as unsupported and is
        cached like any other verdict.
        """
        current = self._snapshot
        if current is not None and self._clock() < current.expires_at:
            return current.verdict

        with self._write_lock:
            # Another writer may have refreshed while we waited
            current = self._snapshot
            if current is not None and self._clock() < current.expires_at:
                return current.verdict
            try:
                verdict = bool(probe())
            except Exception as e:
                print(f"GPU capability probe failed: {e}", file=sys.stderr)
                verdict = False
            self._snapshot = CapabilitySnapshot(verdict=verdict, expires_at=self._clock() + self._ttl_s)
            return verdict

    def invalidate(self):
        with self._write_lock:
            self._snapshot = None


# Process-wide cache shared by every GPU controller
GPU_CAPABILITY_CACHE = CapabilityCache()
