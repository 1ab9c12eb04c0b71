"""Tests for model folder allocation."""

from modelhub.models.allocator import allocate_folder


def test_unused_name_is_taken_as_is(tmp_path):
    folder = allocate_folder(tmp_path, "foo")

    assert folder == tmp_path / "foo"
    assert folder.is_dir()


def test_suffix_skips_existing_folders(tmp_path):
    (tmp_path / "foo").mkdir()
    (tmp_path / "foo-1").mkdir()

    folder = allocate_folder(tmp_path, "foo")

    assert folder.name == "foo-2"
    assert folder.is_dir()


def test_existing_file_also_counts_as_taken(tmp_path):
    (tmp_path / "foo").write_text("not a folder")

    assert allocate_folder(tmp_path, "foo").name == "foo-1"


def test_repeated_allocation_never_reuses(tmp_path):
    names = {allocate_folder(tmp_path, "bar").name for _ in range(4)}

    assert names == {"bar", "bar-1", "bar-2", "bar-3"}


def test_creates_missing_root(tmp_path):
    folder = allocate_folder(tmp_path / "models", "baz")

    assert folder == tmp_path / "models" / "baz"
