"""Models module - Model descriptors, discovery, import, download and registry."""

from modelhub.models.descriptor import (
    DownloadRequest,
    DownloadState,
    GpuInfo,
    GpuSettings,
    ImportingModel,
    ImportOption,
    InferenceEngine,
    ModelDescriptor,
    ModelSource,
    NetworkOptions,
    default_model,
)
from modelhub.models.events import EventBus, EventName
from modelhub.models.registry import ModelRegistry

__all__ = [
    "DownloadRequest",
    "DownloadState",
    "GpuInfo",
    "GpuSettings",
    "ImportingModel",
    "ImportOption",
    "InferenceEngine",
    "ModelDescriptor",
    "ModelSource",
    "NetworkOptions",
    "default_model",
    "EventBus",
    "EventName",
    "ModelRegistry",
]
