"""
HuggingFace repository lookups.
Resolves a repository reference and lists the GGUF files it offers.
"""

from typing import Optional
from urllib.parse import urlparse

from huggingface_hub import HfApi
from pydantic import BaseModel

from modelhub.config import HF_TOKEN, SUPPORTED_MODEL_FORMAT
from modelhub.models.errors import (
    InvalidHostError,
    InvalidReferenceError,
    NotSupportedModelError,
)
from modelhub.utils.logging import logger

HF_HOST = "huggingface.co"

# Known quantization levels, matched against file names in this order
QUANTIZATIONS = [
    "IQ1_S",
    "IQ1_M",
    "IQ2_XXS",
    "IQ2_XS",
    "IQ2_S",
    "IQ2_M",
    "IQ3_XXS",
    "IQ3_XS",
    "IQ3_S",
    "IQ3_M",
    "IQ4_XS",
    "IQ4_NL",
    "Q2_K",
    "Q3_K_S",
    "Q3_K_M",
    "Q3_K_L",
    "Q4_0",
    "Q4_1",
    "Q4_K_S",
    "Q4_K_M",
    "Q5_0",
    "Q5_1",
    "Q5_K_S",
    "Q5_K_M",
    "Q6_K",
    "Q8_0",
    "BF16",
    "F16",
    "F32",
]


class RepoSibling(BaseModel):
    """A file in a HuggingFace repository."""

    rfilename: str
    download_url: str
    file_size: int = 0
    quantization: Optional[str] = None


class HuggingFaceRepoData(BaseModel):
    """Repository summary used to offer downloads."""

    id: str
    author: str
    model_url: str
    downloads: int = 0
    likes: int = 0
    tags: list[str] = []
    siblings: list[RepoSibling] = []


def parse_repo_id(repo: str) -> str:
    """
    ``owner/name`` from a repository id or a huggingface.co URL.

    Raises:
        InvalidHostError: URL that is not on huggingface.co, or has no repo path
        InvalidReferenceError: https string that cannot be parsed as a URL
    """
    repo = repo.strip()
    parsed = urlparse(repo)

    if parsed.scheme and parsed.netloc:
        if parsed.hostname != HF_HOST:
            raise InvalidHostError(f"Invalid Hugging Face repo URL: {repo}")
        paths = [p for p in parsed.path.split("/") if p.strip()]
        if len(paths) < 2:
            raise InvalidHostError(f"Invalid Hugging Face repo URL: {repo}")
        return f"{paths[0]}/{paths[1]}"

    if repo.startswith("https"):
        raise InvalidReferenceError(f"Cannot parse url: {repo}")

    return repo


def to_huggingface_url(repo: str) -> str:
    """API URL for a repository reference."""
    return f"https://{HF_HOST}/api/models/{parse_repo_id(repo)}"


def _quantization(filename: str) -> Optional[str]:
    name_upper = filename.upper()
    for quantization in QUANTIZATIONS:
        if quantization in name_upper:
            return quantization
    return None


def fetch_repo_data(repo: str, token: Optional[str] = None) -> HuggingFaceRepoData:
    """
    Look up a repository and its files.

    Args:
        repo: Repository id ("owner/name") or huggingface.co URL
        token: Access token for gated/private repositories

    Raises:
        InvalidReferenceError: Malformed reference
        NotSupportedModelError: Repository is not tagged as GGUF
    """
    repo_id = parse_repo_id(repo)
    token = (token if token is not None else HF_TOKEN).strip() or None

    logger.debug(f"Fetching repository data for {repo_id}")
    info = HfApi(token=token).model_info(repo_id, files_metadata=True)

    tags = list(info.tags or [])
    if "gguf" not in tags:
        raise NotSupportedModelError(
            f"{repo_id} is not supported. Only GGUF models are supported."
        )

    siblings = []
    for sibling in info.siblings or []:
        siblings.append(
            RepoSibling(
                rfilename=sibling.rfilename,
                download_url=f"https://{HF_HOST}/{repo_id}/resolve/main/{sibling.rfilename}",
                file_size=sibling.size or 0,
                quantization=_quantization(sibling.rfilename),
            )
        )

    return HuggingFaceRepoData(
        id=repo_id,
        author=repo_id.split("/")[0],
        model_url=f"https://{HF_HOST}/{repo_id}",
        downloads=info.downloads or 0,
        likes=info.likes or 0,
        tags=tags,
        siblings=siblings,
    )


def gguf_files(data: HuggingFaceRepoData) -> list[RepoSibling]:
    """Siblings that are GGUF binaries."""
    return [s for s in data.siblings if s.rfilename.endswith(SUPPORTED_MODEL_FORMAT)]
