"""
Download model binaries into their model folders.
Transfers run in the background; progress is reported through the event sink.
"""

import asyncio
import os
import threading
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import urlparse

import httpx

from modelhub.config import (
    INCOMPLETE_MODEL_SUFFIX,
    MODEL_METADATA_FILENAME,
    REMOTE_POLL_GRACE,
    REMOTE_POLL_INTERVAL,
    REMOTE_POLL_TIMEOUT,
    REMOTE_PROGRESS_URL,
    SUPPORTED_MODEL_FORMAT,
    TENSORRT_ENGINE_FORMAT,
    TENSORRT_TARGET_OS,
    TRANSFER_ABORT_WAIT,
    TRANSFER_READ_TIMEOUT,
)
from modelhub.models.descriptor import (
    DownloadRequest,
    DownloadSize,
    DownloadState,
    GpuSettings,
    InferenceEngine,
    ModelDescriptor,
    NetworkOptions,
    default_model,
)
from modelhub.models.events import EventName, EventSink, NullSink
from modelhub.models.gpu import supported_gpu_arch
from modelhub.models.metadata import (
    MetadataReader,
    TemplateRenderer,
    extract_settings,
    fetch_remote_metadata,
    merge_settings,
    read_metadata_safely,
)
from modelhub.models.store import persist
from modelhub.utils.logging import logger


class TransferService(Protocol):
    """Writes remote files to disk in the background."""

    def download(
        self, request: DownloadRequest, network: Optional[NetworkOptions] = None
    ) -> None: ...

    async def abort(self, model_id: str) -> list[str]: ...

    async def shutdown(self) -> None: ...


def extract_file_name(url: str, extension: str = SUPPORTED_MODEL_FORMAT) -> str:
    """Last path segment of ``url``, with ``extension`` appended when missing."""
    if not url:
        return extension
    name = urlparse(url).path.rstrip("/").split("/")[-1]
    if not name.lower().endswith(extension):
        name = f"{name}{extension}"
    return name


class HttpTransferService:
    """
    Streams files over HTTP with httpx.

    Bytes go to ``<local_path>.download`` and the file is renamed once complete,
    so an unfinished transfer is never mistaken for a model binary.
    """

    def __init__(
        self,
        events: Optional[EventSink] = None,
        chunk_size: int = 1024 * 1024,
        transport: Optional[httpx.BaseTransport] = None,
        read_timeout: float = TRANSFER_READ_TIMEOUT,
        abort_wait: float = TRANSFER_ABORT_WAIT,
    ):
        self.events = events or NullSink()
        self.chunk_size = chunk_size
        self.read_timeout = read_timeout
        self.abort_wait = abort_wait
        self._transport = transport
        self._transfers: dict[str, tuple[DownloadRequest, asyncio.Task, threading.Event]] = {}

    def download(
        self, request: DownloadRequest, network: Optional[NetworkOptions] = None
    ) -> None:
        """Start a transfer and return immediately."""
        if request.local_path in self._transfers:
            logger.info(f"Already downloading {request.local_path}")
            return

        cancel_event = threading.Event()
        task = asyncio.create_task(
            self._run(request, network or NetworkOptions(), cancel_event)
        )
        self._transfers[request.local_path] = (request, task, cancel_event)
        task.add_done_callback(lambda t: self._discard(request.local_path, t))

    def _discard(self, local_path: str, task: asyncio.Task) -> None:
        entry = self._transfers.get(local_path)
        if entry and entry[1] is task:
            del self._transfers[local_path]

    async def abort(self, model_id: str) -> list[str]:
        """
        Stop every transfer of a model. Returns the local paths that were stopped.

        Waits at most ``abort_wait`` seconds for the workers. A worker blocked on
        a stalled connection stops on its own once its next read returns or
        times out.
        """
        matching = [
            (local_path, entry)
            for local_path, entry in self._transfers.items()
            if entry[0].model_id == model_id
        ]
        for local_path, _ in matching:
            del self._transfers[local_path]

        await self._stop([entry for _, entry in matching])
        return [local_path for local_path, _ in matching]

    async def shutdown(self) -> None:
        """Stop every transfer."""
        entries = list(self._transfers.values())
        self._transfers.clear()
        await self._stop(entries)

    async def _stop(self, entries) -> None:
        for _, _, cancel_event in entries:
            cancel_event.set()

        tasks = [task for _, task, _ in entries]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=self.abort_wait)
        if pending:
            logger.warning(f"{len(pending)} transfer(s) still stopping after {self.abort_wait}s")

    def is_active(self, local_path: str) -> bool:
        return local_path in self._transfers

    async def _run(
        self,
        request: DownloadRequest,
        network: NetworkOptions,
        cancel_event: threading.Event,
    ) -> None:
        loop = asyncio.get_running_loop()
        file_name = Path(request.local_path).name

        def report(state: DownloadState) -> None:
            loop.call_soon_threadsafe(self.events.emit, EventName.DOWNLOAD_UPDATE, state)

        try:
            await asyncio.to_thread(
                self._transfer, request, network, cancel_event, report
            )
        except InterruptedError:
            logger.info(f"Download cancelled: {request.local_path}")
            return
        except Exception as e:
            if cancel_event.is_set():
                logger.info(f"Download cancelled: {request.local_path}")
                return
            logger.error(f"Download failed: {e}")
            self.events.emit(
                EventName.DOWNLOAD_ERROR,
                DownloadState(
                    model_id=request.model_id,
                    file_name=file_name,
                    download_state="error",
                    error=str(e),
                ),
            )
            return

        logger.info(f"Downloaded to {request.local_path}")
        size = Path(request.local_path).stat().st_size
        self.events.emit(
            EventName.DOWNLOAD_SUCCESS,
            DownloadState(
                model_id=request.model_id,
                file_name=file_name,
                download_state="end",
                percent=1.0,
                size=DownloadSize(total=size, transferred=size),
            ),
        )

    def _transfer(self, request, network, cancel_event, report) -> None:
        dest_path = Path(request.local_path)
        partial_path = Path(f"{request.local_path}{INCOMPLETE_MODEL_SUFFIX}")
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with httpx.Client(
                transport=self._transport,
                follow_redirects=True,
                timeout=httpx.Timeout(None, read=self.read_timeout),
                proxy=network.proxy_url(),
                verify=not network.ignore_ssl,
            ) as client:
                with client.stream("GET", request.url) as response:
                    response.raise_for_status()

                    total_size = int(response.headers.get("content-length", 0))
                    downloaded = 0

                    with open(partial_path, "wb") as f:
                        for chunk in response.iter_bytes(chunk_size=self.chunk_size):
                            if cancel_event.is_set():
                                raise InterruptedError("Download cancelled")

                            if chunk:
                                f.write(chunk)
                                downloaded += len(chunk)
                                report(
                                    DownloadState(
                                        model_id=request.model_id,
                                        file_name=dest_path.name,
                                        download_state="downloading",
                                        percent=downloaded / total_size if total_size else 0.0,
                                        size=DownloadSize(total=total_size, transferred=downloaded),
                                    )
                                )

            if cancel_event.is_set():
                raise InterruptedError("Download cancelled")
            os.replace(partial_path, dest_path)
        except BaseException:
            partial_path.unlink(missing_ok=True)
            raise


class DownloadOrchestrator:
    """Plans and submits the transfers that make a model present on disk."""

    def __init__(
        self,
        models_dir: Path,
        transfer: TransferService,
        events: Optional[EventSink] = None,
        defaults: Optional[ModelDescriptor] = None,
        remote_reader: MetadataReader = fetch_remote_metadata,
        renderer: Optional[TemplateRenderer] = None,
        remote_progress_url: Optional[str] = REMOTE_PROGRESS_URL,
        poll_grace: float = REMOTE_POLL_GRACE,
        poll_interval: float = REMOTE_POLL_INTERVAL,
        poll_timeout: float = REMOTE_POLL_TIMEOUT,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.models_dir = Path(models_dir)
        self.transfer = transfer
        self.events = events or NullSink()
        self.defaults = defaults or default_model()
        self.remote_reader = remote_reader
        self.renderer = renderer
        self.remote_progress_url = remote_progress_url
        self.poll_grace = poll_grace
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self._http_transport = http_transport
        self._pollers: dict[str, asyncio.Task] = {}

    def model_folder(self, model: ModelDescriptor) -> Path:
        if model.file_path:
            return Path(model.file_path).parent
        return self.models_dir / model.id

    async def download(
        self,
        model: ModelDescriptor,
        gpu_settings: Optional[GpuSettings] = None,
        network: Optional[NetworkOptions] = None,
    ) -> list[DownloadRequest]:
        """
        Submit transfers for every source of ``model``.

        Does not wait for the transfers. Nothing is submitted when the
        binaries are already on disk, or (with a log entry) when the engine
        needs a supported GPU and none is available.

        Returns:
            The submitted download requests, empty when nothing was submitted
        """
        folder = self.model_folder(model)
        folder.mkdir(parents=True, exist_ok=True)

        await self._ensure_descriptor(model, folder)

        if model.is_offline and self.is_downloaded(folder.name, model):
            logger.info(f"Model {model.id} is already on disk")
            return []

        if model.engine == InferenceEngine.NITRO_TENSORRT_LLM.value:
            gpu_arch = supported_gpu_arch(gpu_settings)
            if gpu_arch is None:
                return []
            model = model.model_copy(deep=True)
            for source in model.sources:
                source.url = source.url.replace("<os>", TENSORRT_TARGET_OS).replace(
                    "<gpuarch>", gpu_arch
                )

        logger.debug(f"Download sources: {[s.model_dump() for s in model.sources]}")

        # Only a lone source of a GGUF engine is assumed to be a GGUF binary
        extension = ""
        if len(model.sources) == 1 and model.engine != InferenceEngine.NITRO_TENSORRT_LLM.value:
            extension = SUPPORTED_MODEL_FORMAT

        requests = []
        for source in model.sources:
            file_name = source.filename or extract_file_name(source.url, extension)
            request = DownloadRequest(
                url=source.url,
                local_path=str(folder / file_name),
                model_id=model.id,
            )
            self.transfer.download(request, network)
            requests.append(request)

        if len(requests) == 1 and self.remote_progress_url:
            self.start_remote_polling(model.id)

        return requests

    async def _ensure_descriptor(self, model: ModelDescriptor, folder: Path) -> None:
        """Write model.json for a model seen for the first time, with header settings."""
        descriptor_path = (
            Path(model.file_path) if model.file_path else folder / MODEL_METADATA_FILENAME
        )
        if descriptor_path.exists() or not model.sources:
            return

        metadata = await asyncio.to_thread(
            read_metadata_safely, self.remote_reader, model.sources[0].url
        )
        if metadata:
            extracted = extract_settings(metadata, self.defaults, self.renderer)
            model = merge_settings(model, extracted)

        await asyncio.to_thread(persist, descriptor_path, model)
        self.events.emit(EventName.MODELS_UPDATED, {})

    # ─────────────────────────────────────────────────────────
    # REMOTE PROGRESS
    # ─────────────────────────────────────────────────────────

    def start_remote_polling(self, model_id: str) -> asyncio.Task:
        existing = self._pollers.get(model_id)
        if existing and not existing.done():
            return existing

        task = asyncio.create_task(self._poll_remote_progress(model_id))
        self._pollers[model_id] = task
        task.add_done_callback(lambda t: self._discard_poller(model_id, t))
        return task

    def _discard_poller(self, model_id: str, task: asyncio.Task) -> None:
        if self._pollers.get(model_id) is task:
            del self._pollers[model_id]

    def stop_remote_polling(self, model_id: str) -> None:
        task = self._pollers.pop(model_id, None)
        if task:
            task.cancel()

    async def shutdown(self) -> None:
        """Cancel every remote poller and stop the running transfers."""
        tasks = list(self._pollers.values())
        self._pollers.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.transfer.shutdown()

    async def _poll_remote_progress(self, model_id: str) -> None:
        """
        Mirror a transfer run by a remote server.

        Polls until the server reports ``end`` or ``error``, or until the
        timeout passes, which is reported as an error.
        """
        url = f"{self.remote_progress_url}/v1/download/getDownloadProgress/{model_id}"
        loop = asyncio.get_running_loop()

        await asyncio.sleep(self.poll_grace)
        deadline = loop.time() + self.poll_timeout

        async with httpx.AsyncClient(
            transport=self._http_transport,
            headers={"Content-Type": "application/json"},
        ) as client:
            while loop.time() < deadline:
                try:
                    response = await client.get(url)
                    response.raise_for_status()
                    state = DownloadState.model_validate(response.json())
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning(f"Download progress poll failed for {model_id}: {e}")
                else:
                    if state.download_state == "end":
                        self.events.emit(EventName.DOWNLOAD_SUCCESS, state)
                        return
                    if state.download_state == "error":
                        self.events.emit(EventName.DOWNLOAD_ERROR, state)
                        return
                    self.events.emit(EventName.DOWNLOAD_UPDATE, state)

                await asyncio.sleep(self.poll_interval)

        logger.error(f"Gave up waiting for download progress of {model_id}")
        self.events.emit(
            EventName.DOWNLOAD_ERROR,
            DownloadState(model_id=model_id, download_state="error", error="timeout"),
        )

    # ─────────────────────────────────────────────────────────
    # CANCEL / PRESENCE
    # ─────────────────────────────────────────────────────────

    async def cancel(self, model_id: str) -> None:
        """Abort transfers of a model and remove what they left behind."""
        self.stop_remote_polling(model_id)

        paths = [str(self.models_dir / model_id / model_id)]
        try:
            paths.extend(await self.transfer.abort(model_id))
        except Exception as e:
            logger.error(f"Failed to abort download of {model_id}: {e}")

        for path in paths:
            for leftover in (Path(path), Path(f"{path}{INCOMPLETE_MODEL_SUFFIX}")):
                try:
                    leftover.unlink(missing_ok=True)
                except OSError as e:
                    logger.error(f"Failed to remove {leftover}: {e}")

    def is_downloaded(self, folder_name: str, model: ModelDescriptor) -> bool:
        """
        Whether an offline-engine model has its binaries on disk.

        Models for remote engines are always considered present.
        """
        if not model.is_offline:
            return True

        if all(not source.is_remote() for source in model.sources):
            return True

        try:
            files = os.listdir(self.models_dir / folder_name)
        except OSError:
            return False

        if folder_name in files:
            return True

        binaries = [
            f
            for f in files
            if not f.endswith(INCOMPLETE_MODEL_SUFFIX)
            and (
                SUPPORTED_MODEL_FORMAT in f.lower()
                or TENSORRT_ENGINE_FORMAT in f.lower()
            )
        ]
        return len(binaries) >= len(model.sources)
