"""
Folder-per-resource collections (models, assistants, threads).
Each resource is a folder named after its id holding one JSON metadata file.
"""

import json
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from modelhub.config import BUILTIN_ASSISTANT_ID, DATA_DIR
from modelhub.utils.logging import logger


@dataclass(frozen=True)
class ResourceCollection:
    """Where a resource type lives and how it is described on deletion."""

    dir_name: str
    metadata_file_name: str
    delete_object: str


MODELS = ResourceCollection("models", "model.json", "model")
ASSISTANTS = ResourceCollection("assistants", "assistant.json", "assistant")
THREADS = ResourceCollection("threads", "thread.json", "thread")


def _read_metadata(path: Path) -> Optional[dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.error(f"Unable to read {path}: {e}")
        return None
    return data if isinstance(data, dict) else None


def get_resources(
    collection: ResourceCollection, data_dir: Path = DATA_DIR
) -> list[dict[str, Any]]:
    """All readable resources of a collection. Unreadable entries are skipped."""
    directory = Path(data_dir) / collection.dir_name
    if not directory.exists():
        logger.debug(f"{collection.dir_name} folder not found")
        return []

    resources = []
    for entry in sorted(directory.iterdir()):
        if entry.name == ".DS_Store":
            continue
        data = _read_metadata(entry / collection.metadata_file_name)
        if data is not None:
            resources.append(data)
    return resources


def retrieve_resource(
    collection: ResourceCollection, resource_id: str, data_dir: Path = DATA_DIR
) -> Optional[dict[str, Any]]:
    for resource in get_resources(collection, data_dir):
        if resource.get("id") == resource_id:
            return resource
    return None


def delete_resource(
    collection: ResourceCollection, resource_id: str, data_dir: Path = DATA_DIR
) -> dict[str, Any]:
    """
    Remove a resource folder.

    The built-in assistant is refused without touching the disk.

    Returns:
        ``{"id", "object", "deleted"}`` on success, ``{"message"}`` otherwise
    """
    if collection == ASSISTANTS and resource_id == BUILTIN_ASSISTANT_ID:
        return {"message": "Cannot delete default assistant"}

    if retrieve_resource(collection, resource_id, data_dir) is None:
        return {"message": "Not found"}

    folder = Path(data_dir) / collection.dir_name / resource_id
    try:
        shutil.rmtree(folder)
    except OSError as e:
        logger.error(f"Failed to delete {folder}: {e}")
        return {"message": str(e)}

    return {"id": resource_id, "object": collection.delete_object, "deleted": True}
