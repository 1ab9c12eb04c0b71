"""
Model settings from GGUF header metadata.
Reads the key/value header of a GGUF file and turns it into the settings and
parameters a descriptor needs (context length, layer count, stop token,
prompt template).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from gguf import GGUFReader, GGUFValueType
from huggingface_hub import HfApi
from jinja2 import TemplateError
from jinja2.sandbox import ImmutableSandboxedEnvironment

from modelhub.models.descriptor import ModelDescriptor
from modelhub.utils.logging import logger

# (path) -> raw header metadata
MetadataReader = Callable[[str], dict[str, Any]]
# (raw header metadata) -> prompt template; raises on failure
TemplateRenderer = Callable[[dict[str, Any]], str]

FALLBACK_ARCHITECTURE = "llama"
DEFAULT_CONTEXT_LENGTH = 4096
DEFAULT_BLOCK_COUNT = 32


@dataclass
class ExtractedSettings:
    """Settings and parameters derived from a model header."""

    settings: dict[str, Any] = field(default_factory=dict)
    parameters: dict[str, Any] = field(default_factory=dict)


def _lookup(metadata: dict[str, Any], key: str, default: Any) -> Any:
    architecture = metadata.get("general.architecture")
    for candidate in (f"{architecture}.{key}", f"{FALLBACK_ARCHITECTURE}.{key}"):
        value = metadata.get(candidate)
        if value is not None:
            return value
    return default


def _token(metadata: dict[str, Any], id_key: str) -> Optional[str]:
    token_id = metadata.get(id_key)
    tokens = metadata.get("tokenizer.ggml.tokens")
    if token_id is None or tokens is None:
        return None
    try:
        return tokens[int(token_id)]
    except (IndexError, TypeError, ValueError):
        return ""


def extract_settings(
    metadata: dict[str, Any] | None,
    defaults: ModelDescriptor,
    renderer: Optional[TemplateRenderer] = None,
) -> ExtractedSettings:
    """
    Derive descriptor settings from raw header metadata.

    The layer count reported in the header excludes the output layer, so the
    runtime ``ngl`` setting is the block count plus one.

    Args:
        metadata: Raw GGUF key/value metadata (may be empty)
        defaults: Descriptor providing the fallback template and stop list
        renderer: Prompt template renderer, defaults to the jinja renderer

    Returns:
        ExtractedSettings with ``settings`` and ``parameters`` layers
    """
    metadata = metadata or {}
    renderer = renderer or render_prompt_template

    template = None
    try:
        template = renderer(metadata)
    except Exception as e:
        logger.debug(f"Prompt template rendering failed, using default: {e}")

    if not template:
        template = defaults.settings.get("prompt_template")

    stop_token = _token(metadata, "tokenizer.ggml.eos_token_id")
    if stop_token is not None:
        stop = [stop_token]
    else:
        stop = list(defaults.parameters.get("stop", []))

    return ExtractedSettings(
        settings={
            "prompt_template": template,
            "ctx_len": int(_lookup(metadata, "context_length", DEFAULT_CONTEXT_LENGTH)),
            "ngl": int(_lookup(metadata, "block_count", DEFAULT_BLOCK_COUNT)) + 1,
        },
        parameters={"stop": stop},
    )


def merge_settings(
    model: ModelDescriptor, extracted: ExtractedSettings
) -> ModelDescriptor:
    """Return a copy of ``model`` with extracted values layered over its own."""
    merged = model.model_copy(deep=True)
    merged.settings = {**merged.settings, **extracted.settings}
    merged.parameters = {**merged.parameters, **extracted.parameters}
    return merged


# ─────────────────────────────────────────────────────────
# TEMPLATE RENDERING
# ─────────────────────────────────────────────────────────


def _raise_exception(message: str) -> None:
    raise TemplateError(message)


_jinja_env = ImmutableSandboxedEnvironment(trim_blocks=True, lstrip_blocks=True)
_jinja_env.globals["raise_exception"] = _raise_exception


def render_prompt_template(metadata: dict[str, Any]) -> str:
    """
    Render the chat template embedded in the header into a prompt template.

    The messages carry ``{system_message}`` and ``{prompt}`` placeholders so
    the inference runtime can substitute them later.
    """
    chat_template = metadata.get("tokenizer.chat_template")
    if not chat_template:
        raise ValueError("No chat template in metadata")

    template = _jinja_env.from_string(chat_template)
    return template.render(
        messages=[
            {"role": "system", "content": "{system_message}"},
            {"role": "user", "content": "{prompt}"},
        ],
        bos_token=_token(metadata, "tokenizer.ggml.bos_token_id") or "",
        eos_token=_token(metadata, "tokenizer.ggml.eos_token_id") or "",
        add_generation_prompt=True,
    )


# ─────────────────────────────────────────────────────────
# HEADER READERS
# ─────────────────────────────────────────────────────────


def _field_value(reader_field) -> Any:
    """Decode a GGUFReader field into a plain Python value."""
    if not reader_field.types:
        return None

    value_type = reader_field.types[0]
    if value_type == GGUFValueType.ARRAY:
        item_type = reader_field.types[-1]
        if item_type == GGUFValueType.STRING:
            return [
                bytes(reader_field.parts[idx]).decode("utf-8", errors="replace")
                for idx in reader_field.data
            ]
        return [reader_field.parts[idx].tolist()[0] for idx in reader_field.data]

    part = reader_field.parts[reader_field.data[0]]
    if value_type == GGUFValueType.STRING:
        return bytes(part).decode("utf-8", errors="replace")
    return part.tolist()[0]


def read_gguf_metadata(path: str) -> dict[str, Any]:
    """Read the key/value header of a local GGUF file."""
    reader = GGUFReader(str(path))
    metadata: dict[str, Any] = {}
    for name, reader_field in reader.fields.items():
        if name.startswith("GGUF."):
            continue
        metadata[name] = _field_value(reader_field)
    return metadata


def _repo_id_from_url(url: str) -> Optional[str]:
    parsed = urlparse(url)
    if parsed.hostname != "huggingface.co":
        return None
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) >= 2:
        return "/".join(parts[:2])
    return None


def fetch_remote_metadata(url: str) -> dict[str, Any]:
    """
    Header metadata for a remote GGUF file.

    Uses the GGUF summary HuggingFace publishes for the repository, and maps it
    onto the same keys a local header read produces.
    """
    repo_id = _repo_id_from_url(url)
    if not repo_id:
        return {}

    try:
        info = HfApi().model_info(repo_id)
    except Exception as e:
        logger.warning(f"Failed to fetch GGUF metadata for {repo_id}: {e}")
        return {}

    summary = getattr(info, "gguf", None) or {}
    architecture = summary.get("architecture")
    metadata: dict[str, Any] = {}
    if architecture:
        metadata["general.architecture"] = architecture
        if summary.get("context_length"):
            metadata[f"{architecture}.context_length"] = summary["context_length"]
    if summary.get("chat_template"):
        metadata["tokenizer.chat_template"] = summary["chat_template"]
    if summary.get("eos_token"):
        metadata["tokenizer.ggml.tokens"] = [summary["eos_token"], summary.get("bos_token") or ""]
        metadata["tokenizer.ggml.eos_token_id"] = 0
        metadata["tokenizer.ggml.bos_token_id"] = 1
    return metadata


def read_metadata_safely(reader: MetadataReader, path: str | Path) -> dict[str, Any]:
    """Run a header reader, treating any failure as empty metadata."""
    try:
        return reader(str(path)) or {}
    except Exception as e:
        logger.warning(f"Unable to read model metadata from {path}: {e}")
        return {}
