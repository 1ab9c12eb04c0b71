"""Shared registry instance for API routes."""

from typing import Any, Optional

from modelhub.models.descriptor import DownloadState
from modelhub.models.events import EventBus, EventName
from modelhub.models.registry import ModelRegistry

registry: Optional[ModelRegistry] = None

# Latest known transfer state per model id
download_states: dict[str, dict[str, Any]] = {}


def _track(payload: Any) -> None:
    if isinstance(payload, DownloadState) and payload.model_id:
        download_states[payload.model_id] = payload.model_dump(by_alias=True)


def create_registry(**kwargs: Any) -> ModelRegistry:
    """Create the shared registry, wiring download events into the tracker."""
    global registry
    events = kwargs.pop("events", None) or EventBus()
    for name in (
        EventName.DOWNLOAD_UPDATE,
        EventName.DOWNLOAD_SUCCESS,
        EventName.DOWNLOAD_ERROR,
    ):
        events.on(name, _track)
    registry = ModelRegistry(events=events, **kwargs)
    download_states.clear()
    return registry


def get_registry() -> ModelRegistry:
    """Get or create the registry instance."""
    if registry is None:
        return create_registry()
    return registry
