"""
Model descriptor types.
The descriptor is the JSON record stored as model.json in every model folder.
"""

import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class InferenceEngine(str, Enum):
    """Inference backends a model can target."""

    NITRO = "nitro"
    NITRO_TENSORRT_LLM = "nitro-tensorrt-llm"
    CORTEX_LLAMACPP = "cortex.llamacpp"
    OPENAI = "openai"
    GROQ = "groq"
    MISTRAL = "mistral"
    ANTHROPIC = "anthropic"


# Engines that need the model binaries on local disk
OFFLINE_ENGINES = (InferenceEngine.NITRO.value, InferenceEngine.NITRO_TENSORRT_LLM.value)


class ModelSource(BaseModel):
    """One declared origin of a model binary."""

    url: str
    filename: Optional[str] = None

    def is_remote(self) -> bool:
        return self.url.startswith("http://") or self.url.startswith("https://")


class ModelDescriptor(BaseModel):
    """
    A registered model.

    Unknown keys found in model.json are preserved so that rewriting the file
    never drops fields written by other tools.
    """

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    id: str
    name: str = ""
    object: str = "model"
    version: str = "1.0"
    format: str = "gguf"
    description: str = ""
    created: int = 0
    sources: list[ModelSource] = []
    settings: dict[str, Any] = {}
    parameters: dict[str, Any] = {}
    metadata: dict[str, Any] = {}
    engine: str = InferenceEngine.NITRO.value

    # Computed from the folder location at read time, never written to disk
    file_path: Optional[str] = Field(default=None, exclude=True)
    file_name: Optional[str] = Field(default=None, exclude=True)

    @property
    def is_user_imported(self) -> bool:
        author = self.metadata.get("author")
        return isinstance(author, str) and author.lower() == "user"

    @property
    def is_offline(self) -> bool:
        return self.engine in OFFLINE_ENGINES

    def to_json_dict(self) -> dict[str, Any]:
        """Serializable form, without the computed location fields."""
        return self.model_dump(mode="json", exclude={"file_path", "file_name"})


def now_ms() -> int:
    return int(time.time() * 1000)


def default_model() -> ModelDescriptor:
    """
    Default descriptor used as the base layer when settings are merged.

    A fresh object is returned on every call; callers own what they get.
    """
    return ModelDescriptor(
        id="default",
        name="Default",
        description="",
        sources=[],
        settings={
            "ctx_len": 4096,
            "ngl": 32,
            "prompt_template": "{system_message}\n### Instruction: {prompt}\n### Response:",
            "llama_model_path": "",
        },
        parameters={
            "temperature": 0.7,
            "top_p": 0.95,
            "stream": True,
            "max_tokens": 2048,
            "stop": [],
            "frequency_penalty": 0,
            "presence_penalty": 0,
        },
        metadata={"author": "User", "tags": [], "size": 0},
        engine=InferenceEngine.NITRO.value,
    )


class ImportOption(str, Enum):
    """How an external binary is brought into the models folder."""

    COPY = "copy"
    SYMLINK = "symlink"


class ImportingModel(BaseModel):
    """A file the user asked to import, with its progress state."""

    path: str
    name: Optional[str] = None
    percentage: float = 0.0
    model_id: Optional[str] = None
    error: Optional[str] = None


class NetworkOptions(BaseModel):
    """Network overrides for a download."""

    proxy: Optional[str] = None
    ignore_ssl: bool = False

    def proxy_url(self) -> Optional[str]:
        if self.proxy and self.proxy.startswith("http"):
            return self.proxy
        return None


class DownloadRequest(BaseModel):
    """A single file transfer handed to the transfer service."""

    url: str
    local_path: str
    model_id: str


class DownloadSize(BaseModel):
    total: int = 0
    transferred: int = 0


class DownloadState(BaseModel):
    """Progress snapshot of one transfer, as reported by the transfer service."""

    model_config = ConfigDict(extra="allow", protected_namespaces=(), populate_by_name=True)

    model_id: str = Field(default="", alias="modelId")
    file_name: str = Field(default="", alias="fileName")
    download_state: str = Field(default="downloading", alias="downloadState")
    percent: float = 0.0
    size: DownloadSize = DownloadSize()
    error: Optional[str] = None


class GpuInfo(BaseModel):
    name: str
    arch: Optional[str] = None
    vram: Optional[int] = None


class GpuSettings(BaseModel):
    gpus: list[GpuInfo] = []
