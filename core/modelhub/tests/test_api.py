"""Tests for the HTTP routes."""

import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from modelhub import config
from modelhub.api import registry_store
from modelhub.main import app
from modelhub.models import hub
from modelhub.models.descriptor import DownloadState
from modelhub.models.events import EventName

from conftest import fake_reader, fake_renderer, write_binary


@pytest.fixture
def client(models_dir, transfer):
    registry_store.create_registry(
        models_dir=models_dir,
        transfer=transfer,
        reader=fake_reader,
        remote_reader=fake_reader,
        renderer=fake_renderer,
        remote_progress_url=None,
    )
    with TestClient(app) as client:
        yield client
    registry_store.registry = None


def write_model(models_dir, model_id, **fields):
    folder = models_dir / model_id
    folder.mkdir(parents=True, exist_ok=True)
    data = {
        "id": model_id,
        "sources": [{"url": f"https://x.co/{model_id}.gguf"}],
        "settings": {"ctx_len": 4096},
        "metadata": {"author": "Org"},
        **fields,
    }
    (folder / "model.json").write_text(json.dumps(data))
    return folder


class TestModelRoutes:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_list_and_downloaded(self, client, models_dir):
        write_model(models_dir, "catalog")
        write_binary(models_dir / "mine" / "mine.gguf")

        listed = client.get("/api/models").json()["models"]
        downloaded = client.get("/api/models/downloaded").json()["models"]

        assert sorted(m["id"] for m in listed) == ["catalog", "mine"]
        assert [m["id"] for m in downloaded] == ["mine"]
        assert "file_path" not in listed[0]

    def test_get_and_patch(self, client, models_dir):
        write_model(models_dir, "catalog")

        assert client.get("/api/models/catalog").json()["model"]["id"] == "catalog"
        assert client.get("/api/models/ghost").status_code == 404

        response = client.patch("/api/models/catalog", json={"settings": {"ngl": 10}})

        assert response.status_code == 200
        assert response.json()["model"]["settings"] == {"ctx_len": 4096, "ngl": 10}
        assert client.patch("/api/models/ghost", json={"name": "x"}).status_code == 404

    def test_patch_with_invalid_value(self, client, models_dir):
        folder = write_model(models_dir, "catalog")
        before = (folder / "model.json").read_text()

        response = client.patch("/api/models/catalog", json={"settings": "oops"})

        assert response.status_code == 422
        assert "catalog" in response.json()["detail"]
        assert (folder / "model.json").read_text() == before

    def test_delete(self, client, models_dir):
        folder = write_model(models_dir, "catalog")
        write_binary(folder / "catalog.gguf")

        assert client.delete("/api/models/catalog").json() == {"status": "deleted"}
        assert not (folder / "catalog.gguf").exists()
        assert client.delete("/api/models/ghost").status_code == 404
        assert client.delete("/api/models/default").status_code == 403

    def test_download_and_status(self, client, models_dir, transfer):
        write_model(models_dir, "catalog")

        response = client.post(
            "/api/models/catalog/download",
            json={"network": {"proxy": "http://proxy:3128", "ignore_ssl": True}},
        )

        assert response.json()["success"] is True
        request, network = transfer.requests[0]
        assert request.local_path == str(models_dir / "catalog" / "catalog.gguf")
        assert network.ignore_ssl is True

        assert client.get("/api/models/catalog/download").status_code == 404
        registry_store.get_registry().events.emit(
            EventName.DOWNLOAD_UPDATE,
            DownloadState(model_id="catalog", file_name="catalog.gguf", percent=0.25),
        )
        status = client.get("/api/models/catalog/download").json()
        assert status["percent"] == 0.25
        assert status["modelId"] == "catalog"

        cancelled = client.post("/api/models/catalog/cancel").json()
        assert cancelled == {"status": "cancelled", "model_id": "catalog"}
        assert transfer.aborted == [request.local_path]
        assert client.get("/api/models/catalog/download").status_code == 404

    def test_download_unknown(self, client):
        assert client.post("/api/models/ghost/download").status_code == 404

    def test_import(self, client, models_dir, tmp_path):
        source = write_binary(tmp_path / "incoming" / "tiny.gguf")

        response = client.post(
            "/api/models/import",
            json={"models": [{"path": str(source)}, {"path": str(tmp_path / "nope.gguf")}]},
        )

        body = response.json()
        assert [m["id"] for m in body["imported"]] == ["tiny"]
        assert len(body["failed"]) == 1
        assert body["failed"][0]["error"]
        assert (models_dir / "tiny" / "tiny.gguf").exists()

    def test_hub_repo_without_gguf(self, client, monkeypatch):
        class NotGguf:
            def __init__(self, token=None):
                pass

            def model_info(self, repo_id, files_metadata=False):
                return SimpleNamespace(tags=["safetensors"], siblings=[], downloads=0, likes=0)

        monkeypatch.setattr(hub, "HfApi", NotGguf)

        response = client.get("/api/models/hub/owner/model")

        assert response.status_code == 422


class TestAssistantRoutes:
    @pytest.fixture
    def data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "DATA_DIR", tmp_path)
        for assistant_id in ("default", "helper"):
            folder = tmp_path / "assistants" / assistant_id
            folder.mkdir(parents=True)
            (folder / "assistant.json").write_text(json.dumps({"id": assistant_id}))
        return tmp_path

    def test_list_and_get(self, client, data_dir):
        assistants = client.get("/api/assistants").json()["assistants"]

        assert [a["id"] for a in assistants] == ["default", "helper"]
        assert client.get("/api/assistants/helper").json() == {"id": "helper"}
        assert client.get("/api/assistants/ghost").status_code == 404

    def test_delete(self, client, data_dir):
        assert client.delete("/api/assistants/default").json() == {
            "message": "Cannot delete default assistant"
        }
        assert (data_dir / "assistants" / "default").exists()

        assert client.delete("/api/assistants/helper").json()["deleted"] is True
        assert not (data_dir / "assistants" / "helper").exists()
