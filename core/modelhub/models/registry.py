"""
Registry of local models.
Composes the descriptor store, the importer and the download orchestrator.
Holds no state of its own: everything it knows is read from the models folder.
"""

import asyncio
import shutil
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from modelhub.config import BUILTIN_MODEL_ID, MODEL_METADATA_FILENAME, MODELS_DIR
from modelhub.models import hub, store
from modelhub.models.descriptor import (
    GpuSettings,
    ImportingModel,
    ImportOption,
    InferenceEngine,
    ModelDescriptor,
    NetworkOptions,
    default_model,
)
from modelhub.models.downloader import (
    DownloadOrchestrator,
    HttpTransferService,
    TransferService,
)
from modelhub.models.errors import InvalidDescriptorError, ProtectedResourceError
from modelhub.models.events import EventBus, EventSink
from modelhub.models.gpu import detect_gpu_settings
from modelhub.models.importer import ImportOutcome, ModelImporter
from modelhub.models.metadata import (
    MetadataReader,
    TemplateRenderer,
    fetch_remote_metadata,
    read_gguf_metadata,
)
from modelhub.utils.logging import logger

MERGED_FIELDS = ("settings", "parameters", "metadata")


class ModelRegistry:
    """
    Public surface for listing, updating, deleting, downloading and importing
    models.
    """

    def __init__(
        self,
        models_dir: Path | None = None,
        events: Optional[EventSink] = None,
        transfer: Optional[TransferService] = None,
        defaults: Optional[ModelDescriptor] = None,
        reader: MetadataReader = read_gguf_metadata,
        remote_reader: MetadataReader = fetch_remote_metadata,
        renderer: Optional[TemplateRenderer] = None,
        **orchestrator_options: Any,
    ):
        self.models_dir = Path(models_dir or MODELS_DIR)
        self.events = events if events is not None else EventBus()
        self._defaults = defaults or default_model()
        self.reader = reader
        self.renderer = renderer

        self.importer = ModelImporter(
            self.models_dir,
            events=self.events,
            defaults=self._defaults,
            reader=reader,
            renderer=renderer,
        )
        self.downloader = DownloadOrchestrator(
            self.models_dir,
            transfer=transfer or HttpTransferService(self.events),
            events=self.events,
            defaults=self._defaults,
            remote_reader=remote_reader,
            renderer=renderer,
            **orchestrator_options,
        )

    def default_model(self) -> ModelDescriptor:
        return self._defaults.model_copy(deep=True)

    # ─────────────────────────────────────────────────────────
    # READ
    # ─────────────────────────────────────────────────────────

    async def list_models(self) -> list[ModelDescriptor]:
        """All models, including catalog entries whose binaries are missing."""
        return await store.load_all(
            self.models_dir,
            defaults=self._defaults,
            reader=self.reader,
            renderer=self.renderer,
        )

    async def list_downloaded(self) -> list[ModelDescriptor]:
        """Models that can run: remote-engine models, or local binaries present."""
        return await store.load_all(
            self.models_dir,
            selector=self.downloader.is_downloaded,
            defaults=self._defaults,
            reader=self.reader,
            renderer=self.renderer,
        )

    async def retrieve(self, model_id: str) -> Optional[ModelDescriptor]:
        """Get model by ID."""
        return await store.retrieve(
            self.models_dir,
            model_id,
            defaults=self._defaults,
            reader=self.reader,
            renderer=self.renderer,
        )

    # ─────────────────────────────────────────────────────────
    # WRITE
    # ─────────────────────────────────────────────────────────

    async def update(self, partial: dict[str, Any]) -> Optional[ModelDescriptor]:
        """
        Update a model's descriptor.

        Nested ``settings``, ``parameters`` and ``metadata`` are merged key by
        key into the stored values; other fields are replaced.

        Returns:
            The updated model, or None if the model does not exist

        Raises:
            InvalidDescriptorError: the merged descriptor does not validate
        """
        model_id = partial.get("id")
        if model_id is None:
            raise ValueError("Model ID is required")

        file_path = partial.get("file_path")
        if file_path is None:
            existing = await self.retrieve(model_id)
            if existing is None:
                return None
            file_path = existing.file_path

        current = await asyncio.to_thread(store.read_descriptor, Path(file_path))
        if current is None:
            return None

        data = current.to_json_dict()
        for key, value in partial.items():
            if key in ("file_path", "file_name"):
                continue
            if key in MERGED_FIELDS and isinstance(value, dict):
                data[key] = {**data.get(key, {}), **value}
            else:
                data[key] = value

        try:
            updated = ModelDescriptor.model_validate(data)
        except ValidationError as e:
            raise InvalidDescriptorError(f"Invalid update for model {model_id}: {e}") from e

        await asyncio.to_thread(store.persist, Path(file_path), updated)
        logger.info(f"Updated model {model_id}")

        updated.file_path = str(file_path)
        updated.file_name = MODEL_METADATA_FILENAME
        return updated

    async def delete(self, model_id: str) -> bool:
        """
        Delete a model's files.

        Models the user imported lose their whole folder. Catalog models keep
        their model.json so they can be downloaded again.

        Returns:
            True if the model existed

        Raises:
            ProtectedResourceError: ``model_id`` is the built-in model
        """
        if model_id == BUILTIN_MODEL_ID:
            raise ProtectedResourceError(f"Cannot delete built-in model {model_id}")

        model = await self.retrieve(model_id)
        if model is None or model.file_path is None:
            return False

        folder = Path(model.file_path).parent
        await asyncio.to_thread(self._delete_files, folder, model.is_user_imported)
        logger.info(f"Deleted model {model_id}")
        return True

    @staticmethod
    def _delete_files(folder: Path, whole_folder: bool) -> None:
        if whole_folder:
            shutil.rmtree(folder, ignore_errors=True)
            return

        for entry in folder.iterdir():
            if entry.name == MODEL_METADATA_FILENAME:
                continue
            try:
                if entry.is_dir():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except OSError as e:
                logger.error(f"Failed to delete {entry}: {e}")

    # ─────────────────────────────────────────────────────────
    # ACQUIRE
    # ─────────────────────────────────────────────────────────

    async def download(
        self,
        model: ModelDescriptor,
        gpu_settings: Optional[GpuSettings] = None,
        network: Optional[NetworkOptions] = None,
    ):
        return await self.downloader.download(model, gpu_settings, network)

    async def download_by_id(
        self, model_id: str, network: Optional[NetworkOptions] = None
    ):
        """Download a registered model. Returns None when there is no such model."""
        model = await self.retrieve(model_id)
        if model is None or model.object != "model":
            return None

        gpu_settings = None
        if model.engine == InferenceEngine.NITRO_TENSORRT_LLM.value:
            gpu_settings = await asyncio.to_thread(detect_gpu_settings)
        return await self.downloader.download(model, gpu_settings, network)

    async def cancel_download(self, model_id: str) -> None:
        await self.downloader.cancel(model_id)

    async def import_models(
        self, models: list[ImportingModel], option: ImportOption = ImportOption.COPY
    ) -> ImportOutcome:
        return await self.importer.import_models(models, option)

    async def shutdown(self) -> None:
        await self.downloader.shutdown()

    async def fetch_repo_data(
        self, repo: str, token: Optional[str] = None
    ) -> hub.HuggingFaceRepoData:
        return await asyncio.to_thread(hub.fetch_repo_data, repo, token)
