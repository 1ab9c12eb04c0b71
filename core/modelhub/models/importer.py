"""
Import model binaries the user already has on disk.
Either copies the file into a new model folder, or leaves it where it is and
only records its location in a new descriptor.
"""

import asyncio
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from modelhub.config import (
    IMPORT_POLL_INTERVAL,
    MODEL_METADATA_FILENAME,
    SUPPORTED_MODEL_FORMAT,
)
from modelhub.models.allocator import allocate_folder
from modelhub.models.descriptor import (
    ImportingModel,
    ImportOption,
    ModelDescriptor,
    default_model,
)
from modelhub.models.events import EventName, EventSink, NullSink
from modelhub.models.metadata import (
    MetadataReader,
    TemplateRenderer,
    extract_settings,
    read_gguf_metadata,
    read_metadata_safely,
)
from modelhub.models.store import (
    build_user_descriptor,
    persist,
    synthesize_descriptor,
)
from modelhub.utils.logging import logger


@dataclass
class ImportOutcome:
    """Result of a batch import."""

    imported: list[ModelDescriptor] = field(default_factory=list)
    failed: list[ImportingModel] = field(default_factory=list)


def folder_and_binary_names(source_path: str) -> tuple[str, str]:
    """Folder name and in-folder binary name for an external file."""
    binary_name = re.sub(r"\s", "", Path(source_path).name)

    folder_name = binary_name
    if binary_name.endswith(SUPPORTED_MODEL_FORMAT):
        folder_name = binary_name[: -len(SUPPORTED_MODEL_FORMAT)]
    else:
        binary_name = f"{binary_name}{SUPPORTED_MODEL_FORMAT}"

    return folder_name, binary_name


class ModelImporter:
    """Turns external model files into registered model folders."""

    def __init__(
        self,
        models_dir: Path,
        events: Optional[EventSink] = None,
        defaults: Optional[ModelDescriptor] = None,
        reader: MetadataReader = read_gguf_metadata,
        renderer: Optional[TemplateRenderer] = None,
        poll_interval: float = IMPORT_POLL_INTERVAL,
    ):
        self.models_dir = Path(models_dir)
        self.events = events or NullSink()
        self.defaults = defaults or default_model()
        self.reader = reader
        self.renderer = renderer
        self.poll_interval = poll_interval

    async def import_models(
        self, models: list[ImportingModel], option: ImportOption
    ) -> ImportOutcome:
        """
        Import files one after another.

        Each file gets an update event, then a success or failed event. A
        finished event with every imported descriptor closes the batch, even
        when some files failed.
        """
        outcome = ImportOutcome()

        for model in models:
            self.events.emit(EventName.IMPORT_UPDATE, model)
            try:
                imported = await self.import_model(model, option)
            except Exception as e:
                logger.error(f"Failed to import {model.path}: {e}")
                failed = model.model_copy(update={"error": str(e)})
                outcome.failed.append(failed)
                self.events.emit(EventName.IMPORT_FAILED, failed)
                continue

            outcome.imported.append(imported)
            self.events.emit(
                EventName.IMPORT_SUCCESS,
                model.model_copy(update={"model_id": imported.id}),
            )

        self.events.emit(EventName.IMPORT_FINISHED, outcome.imported)
        return outcome

    async def import_model(
        self, model: ImportingModel, option: ImportOption
    ) -> ModelDescriptor:
        """Import a single file with the given strategy."""
        source = Path(model.path)
        source_size = source.stat().st_size

        folder_name, binary_name = folder_and_binary_names(model.path)
        folder = await asyncio.to_thread(allocate_folder, self.models_dir, folder_name)

        try:
            if option == ImportOption.SYMLINK:
                return await asyncio.to_thread(
                    self._import_link, source, source_size, folder
                )
            return await self._import_copy(model, source, source_size, folder, binary_name)
        except BaseException:
            shutil.rmtree(folder, ignore_errors=True)
            raise

    def _import_link(
        self, source: Path, source_size: int, folder: Path
    ) -> ModelDescriptor:
        """Descriptor pointing at the external file; no bytes are copied."""
        metadata = read_metadata_safely(self.reader, source)
        model = build_user_descriptor(
            model_id=folder.name,
            source_url=str(source),
            binary_name=source.name,
            size=source_size,
            defaults=self.defaults,
            extracted=extract_settings(metadata, self.defaults, self.renderer),
        )

        descriptor_path = folder / MODEL_METADATA_FILENAME
        persist(descriptor_path, model)
        logger.info(f"Linked {source} as model {folder.name}")

        model.file_path = str(descriptor_path)
        model.file_name = MODEL_METADATA_FILENAME
        return model

    async def _import_copy(
        self,
        model: ImportingModel,
        source: Path,
        source_size: int,
        folder: Path,
        binary_name: str,
    ) -> ModelDescriptor:
        destination = folder / binary_name
        poller = asyncio.create_task(
            self._poll_copy_progress(model, destination, source_size)
        )
        try:
            await asyncio.to_thread(shutil.copyfile, source, destination)
        finally:
            poller.cancel()
            try:
                await poller
            except asyncio.CancelledError:
                pass

        descriptor = await asyncio.to_thread(
            synthesize_descriptor, folder, self.defaults, self.reader, self.renderer
        )
        if descriptor is None:
            raise ValueError(f"No model binary found after copying {source}")

        logger.info(f"Imported {source} as model {descriptor.id}")
        return descriptor

    async def _poll_copy_progress(
        self, model: ImportingModel, destination: Path, source_size: int
    ) -> None:
        """
        Report ``destination size / source size`` until cancelled.

        The ratio can briefly pass 1.0; completion is signalled by the success
        event, not by the percentage.
        """
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                copied = destination.stat().st_size
            except FileNotFoundError:
                copied = 0
            percentage = copied / source_size if source_size else 1.0
            self.events.emit(
                EventName.IMPORT_UPDATE,
                model.model_copy(update={"percentage": percentage}),
            )
