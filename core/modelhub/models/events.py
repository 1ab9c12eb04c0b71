"""
In-process event sink.
Components report what happened through a sink; listeners (API layer, UI
bridge, tests) subscribe to the names they care about.
"""

from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Protocol

from modelhub.utils.logging import logger


class EventName(str, Enum):
    """Notifications published by the registry."""

    DOWNLOAD_UPDATE = "onFileDownloadUpdate"
    DOWNLOAD_SUCCESS = "onFileDownloadSuccess"
    DOWNLOAD_ERROR = "onFileDownloadError"

    IMPORT_UPDATE = "onLocalImportModelUpdate"
    IMPORT_SUCCESS = "onLocalImportModelSuccess"
    IMPORT_FAILED = "onLocalImportModelFailed"
    IMPORT_FINISHED = "onLocalImportModelFinished"

    MODELS_UPDATED = "OnModelsUpdate"


Listener = Callable[[Any], None]


class EventSink(Protocol):
    def emit(self, name: EventName, payload: Any = None) -> None: ...


class NullSink:
    """Sink that drops everything."""

    def emit(self, name: EventName, payload: Any = None) -> None:
        return None


class EventBus:
    """Fire-and-forget publish/subscribe keyed by event name."""

    def __init__(self) -> None:
        self._listeners: dict[EventName, list[Listener]] = defaultdict(list)

    def on(self, name: EventName, listener: Listener) -> None:
        self._listeners[name].append(listener)

    def off(self, name: EventName, listener: Listener) -> None:
        if listener in self._listeners[name]:
            self._listeners[name].remove(listener)

    def emit(self, name: EventName, payload: Any = None) -> None:
        for listener in list(self._listeners[name]):
            try:
                listener(payload)
            except Exception as e:
                # Listener errors never reach the publisher
                logger.error(f"Listener for {name.value} failed: {e}")
