"""Shared fixtures: fake header reader, event recorder, fake transfer service."""

from pathlib import Path

import pytest

from modelhub.models.descriptor import DownloadRequest, NetworkOptions
from modelhub.models.events import EventBus, EventName

HEADER = {
    "general.architecture": "qwen2",
    "qwen2.context_length": 32768,
    "qwen2.block_count": 28,
    "tokenizer.ggml.tokens": ["<s>", "</s>", "<|im_end|>"],
    "tokenizer.ggml.eos_token_id": 2,
}


def fake_reader(path: str) -> dict:
    return dict(HEADER)


def fake_renderer(metadata: dict) -> str:
    return "<|system|>{system_message}<|user|>{prompt}<|assistant|>"


class RecordingBus(EventBus):
    """EventBus that also keeps every emitted event."""

    def __init__(self):
        super().__init__()
        self.emitted: list[tuple[EventName, object]] = []

    def emit(self, name, payload=None):
        self.emitted.append((name, payload))
        super().emit(name, payload)

    def of(self, name: EventName) -> list:
        return [payload for n, payload in self.emitted if n == name]


class FakeTransfer:
    """Transfer service that records requests instead of downloading."""

    def __init__(self):
        self.requests: list[tuple[DownloadRequest, NetworkOptions | None]] = []
        self.aborted: list[str] = []
        self.shut_down = False

    def download(self, request, network=None):
        self.requests.append((request, network))

    async def abort(self, model_id):
        paths = [r.local_path for r, _ in self.requests if r.model_id == model_id]
        self.aborted.extend(paths)
        return paths

    async def shutdown(self):
        self.shut_down = True


@pytest.fixture
def models_dir(tmp_path) -> Path:
    path = tmp_path / "models"
    path.mkdir()
    return path


@pytest.fixture
def events() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def transfer() -> FakeTransfer:
    return FakeTransfer()


def write_binary(path: Path, size: int = 64) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"GGUF" + b"\0" * (size - 4))
    return path
