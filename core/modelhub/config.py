"""Configuration settings for modelhub."""

from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentSettings(BaseSettings):
    """
    Values that can be overridden from the environment (``MODELHUB_*``).
    Everything else in this module is a fixed constant.
    """

    model_config = SettingsConfigDict(env_prefix="MODELHUB_", extra="ignore")

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".modelhub")
    # Remote download-progress endpoint, e.g. "http://127.0.0.1:1337"
    remote_progress_url: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None
    hf_token: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("HF_TOKEN", "MODELHUB_HF_TOKEN"),
    )


settings = EnvironmentSettings()

# Paths
DATA_DIR = settings.data_dir
MODELS_DIR = DATA_DIR / "models"
ASSISTANTS_DIR = DATA_DIR / "assistants"

# Model folder conventions
MODEL_METADATA_FILENAME = "model.json"
SUPPORTED_MODEL_FORMAT = ".gguf"
TENSORRT_ENGINE_FORMAT = ".engine"
INCOMPLETE_MODEL_SUFFIX = ".download"
IGNORED_MODEL_ENTRIES = (".DS_Store", "config")

# Descriptor search / folder allocation bounds
MAX_DESCRIPTOR_SEARCH_DEPTH = 8
MAX_FOLDER_SUFFIX = 10_000

# GPU-specific engine requirements
SUPPORTED_GPU_ARCH = ("ampere", "ada")
TENSORRT_TARGET_OS = "windows"

# Polling
IMPORT_POLL_INTERVAL = 1.0  # seconds
REMOTE_POLL_GRACE = 3.0
REMOTE_POLL_INTERVAL = 1.0
REMOTE_POLL_TIMEOUT = 6 * 60 * 60.0

# Remote download-progress endpoint
REMOTE_PROGRESS_URL = settings.remote_progress_url or None

# Transfers
TRANSFER_READ_TIMEOUT = 60.0  # seconds without bytes before a transfer fails
TRANSFER_ABORT_WAIT = 5.0  # how long cancel waits for a worker to stop

# HuggingFace
HF_TOKEN = settings.hf_token.get_secret_value()

# Server
HOST = "127.0.0.1"
PORT = 7878

# API
API_PREFIX = "/api"
API_VERSION = "0.1.0"

# Built-in assistant that can never be deleted
BUILTIN_ASSISTANT_ID = "default"

# Id of the built-in default model, which can never be deleted
BUILTIN_MODEL_ID = "default"
