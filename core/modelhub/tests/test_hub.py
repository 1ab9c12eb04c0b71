"""Tests for HuggingFace repository lookups."""

from types import SimpleNamespace

import pytest

from modelhub.models import hub
from modelhub.models.errors import (
    InvalidHostError,
    InvalidReferenceError,
    NotSupportedModelError,
)


class TestParseRepoId:
    def test_plain_id(self):
        assert hub.parse_repo_id("TheBloke/Llama-2-7B-GGUF") == "TheBloke/Llama-2-7B-GGUF"

    def test_url(self):
        url = "https://huggingface.co/TheBloke/Llama-2-7B-GGUF/tree/main"

        assert hub.parse_repo_id(url) == "TheBloke/Llama-2-7B-GGUF"
        assert hub.to_huggingface_url(url) == (
            "https://huggingface.co/api/models/TheBloke/Llama-2-7B-GGUF"
        )

    def test_other_host(self):
        with pytest.raises(InvalidHostError):
            hub.parse_repo_id("https://github.com/owner/repo")

    def test_url_without_repo(self):
        with pytest.raises(InvalidHostError):
            hub.parse_repo_id("https://huggingface.co/owner")

    def test_unparseable_url(self):
        with pytest.raises(InvalidReferenceError):
            hub.parse_repo_id("https:not-a-url")


class FakeHfApi:
    info = None

    def __init__(self, token=None):
        self.token = token

    def model_info(self, repo_id, files_metadata=False):
        return self.info


def repo_info(tags):
    return SimpleNamespace(
        tags=tags,
        downloads=10,
        likes=2,
        siblings=[
            SimpleNamespace(rfilename="README.md", size=100),
            SimpleNamespace(rfilename="llama-2-7b.Q4_K_M.gguf", size=4_000),
            SimpleNamespace(rfilename="llama-2-7b.BF16.gguf", size=None),
        ],
    )


class TestFetchRepoData:
    def test_gguf_repo(self, monkeypatch):
        FakeHfApi.info = repo_info(["gguf", "llama"])
        monkeypatch.setattr(hub, "HfApi", FakeHfApi)

        data = hub.fetch_repo_data("TheBloke/Llama-2-7B-GGUF", token="")

        assert data.author == "TheBloke"
        assert data.model_url == "https://huggingface.co/TheBloke/Llama-2-7B-GGUF"
        files = hub.gguf_files(data)
        assert [f.rfilename for f in files] == [
            "llama-2-7b.Q4_K_M.gguf",
            "llama-2-7b.BF16.gguf",
        ]
        assert [f.quantization for f in files] == ["Q4_K_M", "BF16"]
        assert files[0].download_url == (
            "https://huggingface.co/TheBloke/Llama-2-7B-GGUF/resolve/main/llama-2-7b.Q4_K_M.gguf"
        )
        assert files[1].file_size == 0

    def test_repo_without_gguf_tag(self, monkeypatch):
        FakeHfApi.info = repo_info(["safetensors"])
        monkeypatch.setattr(hub, "HfApi", FakeHfApi)

        with pytest.raises(NotSupportedModelError):
            hub.fetch_repo_data("owner/model", token="")
