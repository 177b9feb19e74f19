"""Thread-safe table of live backend processes."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from .models import ProcessHandle, ProcessKey


class ProcessRegistry:
    """Maps a ProcessKey to at most one ProcessHandle.

    Every operation is atomic; callers get copies, never the underlying dict.
    """

    def __init__(self) -> None:
        self._handles: Dict[ProcessKey, ProcessHandle] = {}
        self._lock = threading.Lock()

    def get(self, key: ProcessKey) -> Optional[ProcessHandle]:
        with self._lock:
            return self._handles.get(key)

    def replace(self, key: ProcessKey, handle: ProcessHandle) -> Optional[ProcessHandle]:
        """Register `handle`, returning whatever it displaced."""
        with self._lock:
            previous = self._handles.get(key)
            self._handles[key] = handle
            return previous

    def pop(self, key: ProcessKey) -> Optional[ProcessHandle]:
        with self._lock:
            return self._handles.pop(key, None)

    def remove_if(self, key: ProcessKey, handle: ProcessHandle) -> bool:
        """Remove `key` only while it still maps to this exact handle."""
        with self._lock:
            if self._handles.get(key) is handle:
                del self._handles[key]
                return True
            return False

    def snapshot(self, owner: Optional[str] = None) -> List[ProcessHandle]:
        with self._lock:
            handles = list(self._handles.values())
        if owner is None:
            return handles
        return [handle for handle in handles if handle.key.owner == owner]

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._handles
