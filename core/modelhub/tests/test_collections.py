"""Tests for folder-per-resource collections."""

import json

from modelhub.storage.collections import (
    ASSISTANTS,
    MODELS,
    delete_resource,
    get_resources,
    retrieve_resource,
)


def write_resource(data_dir, collection, resource_id, **fields):
    folder = data_dir / collection.dir_name / resource_id
    folder.mkdir(parents=True)
    (folder / collection.metadata_file_name).write_text(
        json.dumps({"id": resource_id, **fields})
    )
    return folder


class TestGetResources:
    def test_reads_each_folder(self, tmp_path):
        write_resource(tmp_path, ASSISTANTS, "default", name="Default")
        write_resource(tmp_path, ASSISTANTS, "helper", name="Helper")
        (tmp_path / "assistants" / "broken").mkdir()
        (tmp_path / "assistants" / "broken" / "assistant.json").write_text("{oops")

        names = [a["name"] for a in get_resources(ASSISTANTS, tmp_path)]

        assert names == ["Default", "Helper"]

    def test_missing_collection(self, tmp_path):
        assert get_resources(MODELS, tmp_path) == []

    def test_retrieve(self, tmp_path):
        write_resource(tmp_path, ASSISTANTS, "helper", name="Helper")

        assert retrieve_resource(ASSISTANTS, "helper", tmp_path)["name"] == "Helper"
        assert retrieve_resource(ASSISTANTS, "ghost", tmp_path) is None


class TestDeleteResource:
    def test_builtin_assistant_is_protected(self, tmp_path):
        folder = write_resource(tmp_path, ASSISTANTS, "default")

        result = delete_resource(ASSISTANTS, "default", tmp_path)

        assert result == {"message": "Cannot delete default assistant"}
        assert (folder / "assistant.json").exists()

    def test_not_found(self, tmp_path):
        assert delete_resource(ASSISTANTS, "ghost", tmp_path) == {"message": "Not found"}

    def test_deletes_folder(self, tmp_path):
        folder = write_resource(tmp_path, ASSISTANTS, "helper")

        result = delete_resource(ASSISTANTS, "helper", tmp_path)

        assert result == {"id": "helper", "object": "assistant", "deleted": True}
        assert not folder.exists()

    def test_model_named_like_builtin_assistant_can_be_deleted(self, tmp_path):
        write_resource(tmp_path, MODELS, "default")

        assert delete_resource(MODELS, "default", tmp_path)["deleted"] is True
