"""Broadcast signals shared by capture, speech output and the avatar."""

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Handler = Callable[..., None]


class Signal(str, Enum):
    CAPTURE_STARTED = "capture-started"
    CAPTURE_STOPPED = "capture-stopped"
    CAPTURE_ERROR = "capture-error"
    SPEAK_START = "speak-start"
    SPEAK_STOP = "speak-stop"


class SignalBus:
    """Synchronous publish/subscribe. A failing subscriber never blocks the others."""

    def __init__(self):
        self._handlers: Dict[Signal, List[Handler]] = defaultdict(list)

    def subscribe(self, signal: Signal, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` and return a function that removes it."""
        self._handlers[signal].append(handler)

        def unsubscribe():
            if handler in self._handlers[signal]:
                self._handlers[signal].remove(handler)

        return unsubscribe

    def emit(self, signal: Signal, **payload: Any) -> None:
        for handler in list(self._handlers[signal]):
            try:
                handler(**payload)
            except Exception:
                logger.exception("Subscriber failed on %s", signal.value)
