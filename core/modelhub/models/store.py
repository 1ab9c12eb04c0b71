"""
Descriptor store.
Every model lives in its own folder under the models root, described by a
model.json file. There is no index: the folder tree is the registry.
"""

import asyncio
import inspect
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from modelhub.config import (
    IGNORED_MODEL_ENTRIES,
    MAX_DESCRIPTOR_SEARCH_DEPTH,
    MODEL_METADATA_FILENAME,
    SUPPORTED_MODEL_FORMAT,
)
from modelhub.models.descriptor import (
    ModelDescriptor,
    ModelSource,
    default_model,
    now_ms,
)
from modelhub.models.metadata import (
    ExtractedSettings,
    MetadataReader,
    TemplateRenderer,
    extract_settings,
    read_gguf_metadata,
    read_metadata_safely,
)
from modelhub.utils.logging import logger

# (folder name, descriptor) -> keep?
Selector = Callable[[str, ModelDescriptor], Union[bool, Awaitable[bool]]]


def find_descriptor_path(
    root: Path, max_depth: int = MAX_DESCRIPTOR_SEARCH_DEPTH
) -> Optional[Path]:
    """
    Find the first model.json at or below ``root``.

    The folder itself is checked before its subfolders, and subfolders are
    visited in name order. Folders deeper than ``max_depth`` are not visited.
    """
    stack: list[tuple[Path, int]] = [(Path(root), 0)]

    while stack:
        folder, depth = stack.pop()
        try:
            entries = sorted(folder.iterdir(), key=lambda p: p.name)
        except (FileNotFoundError, NotADirectoryError):
            continue

        if not entries:
            continue

        for entry in entries:
            if entry.name == MODEL_METADATA_FILENAME and entry.is_file():
                return entry

        if depth >= max_depth:
            continue

        # Reversed so the first subfolder is popped first
        subfolders = [e for e in entries if e.is_dir()]
        for sub in reversed(subfolders):
            stack.append((sub, depth + 1))

    return None


def _promote_legacy_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Older descriptors carry a single ``source_url`` instead of ``sources``."""
    if data.get("source_url") is not None:
        data["sources"] = [{"filename": data.get("id"), "url": data["source_url"]}]
    return data


def read_descriptor(path: Path) -> Optional[ModelDescriptor]:
    """
    Read a model.json file.

    Returns None when the file is missing, is not valid JSON or does not
    describe a model.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Unable to parse model metadata {path}: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Unexpected model metadata in {path}")
        return None

    try:
        model = ModelDescriptor.model_validate(_promote_legacy_fields(data))
    except ValidationError as e:
        logger.warning(f"Invalid model metadata {path}: {e}")
        return None

    model.file_path = str(path)
    model.file_name = MODEL_METADATA_FILENAME
    return model


def persist(path: Path, model: Union[ModelDescriptor, dict[str, Any]]) -> None:
    """Write a descriptor as pretty-printed JSON, replacing the whole file."""
    data = model.to_json_dict() if isinstance(model, ModelDescriptor) else model
    data = {k: v for k, v in data.items() if k not in ("file_path", "file_name")}
    Path(path).write_text(json.dumps(data, indent=2), encoding="utf-8")


def build_user_descriptor(
    model_id: str,
    source_url: str,
    binary_name: str,
    size: int,
    defaults: ModelDescriptor,
    extracted: ExtractedSettings,
) -> ModelDescriptor:
    """Descriptor for a binary the user brought in, layered over the defaults."""
    model = defaults.model_copy(deep=True)
    model.id = model_id
    model.name = model_id
    model.sources = [ModelSource(url=source_url, filename=binary_name)]
    model.parameters = {**model.parameters, **extracted.parameters}
    model.settings = {
        **model.settings,
        **extracted.settings,
        "llama_model_path": binary_name,
    }
    model.created = now_ms()
    model.description = ""
    model.metadata = {"size": size, "author": "User", "tags": []}
    return model


def synthesize_descriptor(
    folder: Path,
    defaults: Optional[ModelDescriptor] = None,
    reader: MetadataReader = read_gguf_metadata,
    renderer: Optional[TemplateRenderer] = None,
) -> Optional[ModelDescriptor]:
    """
    Create model.json for a folder that only holds a model binary.

    Uses the first ``.gguf`` file in name order. Returns None (and writes
    nothing) when the folder has no such file.
    """
    folder = Path(folder)
    defaults = defaults or default_model()

    binary: Optional[Path] = None
    for name in sorted(p.name for p in folder.iterdir()):
        if not name.endswith(SUPPORTED_MODEL_FORMAT):
            continue
        candidate = folder / name
        if candidate.is_dir():
            continue
        binary = candidate
        break

    if binary is None:
        logger.warning(f"Unable to find binary file for model {folder.name}")
        return None

    metadata = read_metadata_safely(reader, binary)
    model = build_user_descriptor(
        model_id=folder.name,
        source_url=binary.name,
        binary_name=binary.name,
        size=binary.stat().st_size,
        defaults=defaults,
        extracted=extract_settings(metadata, defaults, renderer),
    )

    descriptor_path = folder / MODEL_METADATA_FILENAME
    persist(descriptor_path, model)
    logger.info(f"Generated model metadata for {folder.name}")

    model.file_path = str(descriptor_path)
    model.file_name = MODEL_METADATA_FILENAME
    return model


def _load_folder(
    folder: Path,
    defaults: ModelDescriptor,
    reader: MetadataReader,
    renderer: Optional[TemplateRenderer],
) -> tuple[Optional[ModelDescriptor], bool]:
    """Load one model folder. The flag tells whether model.json already existed."""
    descriptor_path = find_descriptor_path(folder)
    if descriptor_path is not None:
        return read_descriptor(descriptor_path), True
    return synthesize_descriptor(folder, defaults, reader, renderer), False


async def load_all(
    root: Path,
    selector: Optional[Selector] = None,
    defaults: Optional[ModelDescriptor] = None,
    reader: MetadataReader = read_gguf_metadata,
    renderer: Optional[TemplateRenderer] = None,
) -> list[ModelDescriptor]:
    """
    Load every model under ``root``.

    Folders are scanned concurrently and the result has no particular order.
    A folder that fails to load is logged and left out; it never fails the
    whole listing. ``selector`` filters models whose model.json already
    existed.
    """
    root = Path(root)
    if not root.is_dir():
        logger.warning(f"Model folder not found: {root}")
        return []

    defaults = defaults or default_model()
    folders = [
        entry
        for entry in sorted(root.iterdir())
        if entry.name not in IGNORED_MODEL_ENTRIES and entry.is_dir()
    ]

    async def load(folder: Path) -> Optional[ModelDescriptor]:
        model, existed = await asyncio.to_thread(
            _load_folder, folder, defaults, reader, renderer
        )
        if model is None or not existed or selector is None:
            return model

        keep = selector(folder.name, model)
        if inspect.isawaitable(keep):
            keep = await keep
        return model if keep else None

    results = await asyncio.gather(*(load(f) for f in folders), return_exceptions=True)

    models: list[ModelDescriptor] = []
    for folder, result in zip(folders, results):
        if isinstance(result, BaseException):
            logger.error(f"Failed to load model folder {folder.name}: {result}")
            continue
        if result is not None:
            models.append(result)
    return models


async def retrieve(
    root: Path, model_id: str, **kwargs: Any
) -> Optional[ModelDescriptor]:
    """Find a model by id, or None."""
    for model in await load_all(root, **kwargs):
        if model.id == model_id:
            return model
    return None
