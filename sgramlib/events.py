"""Pipeline lifecycle notifications.

Events and their keyword data:

    pipeline.start     source, samplerate, channels
    pipeline.progress  samples_in, frames_total   (file input only)
    pipeline.error     message
    pipeline.end       rows
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Callable

PIPELINE_START = "pipeline.start"
PIPELINE_PROGRESS = "pipeline.progress"
PIPELINE_ERROR = "pipeline.error"
PIPELINE_END = "pipeline.end"

Handler = Callable[..., Any]


class EventBus:
    """Synchronous publish/subscribe.

    Handlers run on the emitting thread (the pipeline worker), so they
    must be quick.  Subscribing from another thread while events fire is
    safe.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[str, tuple[Handler, ...]] = defaultdict(tuple)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Handler) -> Callable[[], None]:
        """Register *handler*; returns a callable that removes it again."""
        with self._lock:
            self._handlers[event_type] += (handler,)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[event_type] = tuple(
                h for h in self._handlers[event_type] if h is not handler)

    def emit(self, event_type: str, **data: Any) -> None:
        # handler tuples are replaced, never mutated, so no lock is needed here
        for handler in self._handlers.get(event_type, ()):
            handler(**data)
