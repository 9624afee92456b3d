from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional


class NonceSource:
    """Strictly increasing millisecond nonces for one signing key.

    Wall-clock time seeds each value, but a value never repeats or goes
    backwards even if the clock does or two callers ask within the same ms.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.time
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            candidate = int(self._clock() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return candidate

    @property
    def last(self) -> int:
        return self._last


_sources: Dict[str, NonceSource] = {}
_sources_lock = threading.Lock()


def nonce_source_for(address: str) -> NonceSource:
    """Return the process-wide nonce source shared by every user of ``address``."""
    key = address.lower()
    with _sources_lock:
        source = _sources.get(key)
        if source is None:
            source = NonceSource()
            _sources[key] = source
        return source
