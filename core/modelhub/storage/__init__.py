"""Storage module - JSON resource folders under the data directory."""

from modelhub.storage.collections import (
    ASSISTANTS,
    MODELS,
    THREADS,
    ResourceCollection,
    delete_resource,
    get_resources,
    retrieve_resource,
)

__all__ = [
    "ASSISTANTS",
    "MODELS",
    "THREADS",
    "ResourceCollection",
    "delete_resource",
    "get_resources",
    "retrieve_resource",
]
