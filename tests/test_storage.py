"""Unit tests for storage/ -- layout, ownership-scoped folders, upload pipeline.

Covers:
- FilesystemLayout: deterministic paths, unique names, idempotent removes
- FolderStore: create/list/get/delete scoped by owner; foreign ids are NotFound
- delete: directory removed first, metadata untouched when that fails
- FileUploadPipeline: allowlist (415), size ceiling (413), nothing written
  on rejection, compensating delete when metadata persistence fails
"""

from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from core.errors import NotFound, PersistenceError, StorageIOError, TooLarge, UnsupportedType, ValidationError
from storage.folders import FolderStore
from storage.layout import FilesystemLayout
from storage.store import MetadataStore
from storage.uploads import FileUploadPipeline

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def metadata():
    s = MetadataStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def layout(tmp_path):
    return FilesystemLayout(tmp_path / "uploads")


@pytest.fixture
def folders(metadata, layout):
    return FolderStore(metadata, layout)


@pytest.fixture
def pipeline(folders, metadata, layout):
    return FileUploadPipeline(folders, metadata, layout, max_bytes=1024)


def _payloads(layout: FilesystemLayout) -> list:
    if not layout.upload_root.exists():
        return []
    return [p for p in layout.upload_root.rglob("*") if p.is_file()]


# ---------------------------------------------------------------------------
# FilesystemLayout
# ---------------------------------------------------------------------------


class TestFilesystemLayout:
    def test_path_is_owner_then_folder(self, layout):
        assert layout.path_for(3, 7) == layout.upload_root / "3" / "7"

    def test_unique_names_differ_and_keep_extension(self, layout):
        a = layout.unique_name("Report.PDF")
        b = layout.unique_name("Report.PDF")
        assert a != b
        assert a.endswith(".pdf")
        assert "Report" not in a

    @pytest.mark.parametrize(
        "name,ext",
        [("photo.png", ".png"), ("noext", ""), ("weird.p n g", ""), ("../../etc/passwd", ""), ("", "")],
    )
    def test_extension_sanitized(self, name, ext):
        assert FilesystemLayout.extension(name) == ext

    def test_ensure_dir_twice(self, layout):
        path = layout.path_for(1, 1)
        layout.ensure_dir(path)
        layout.ensure_dir(path)
        assert path.is_dir()

    def test_removes_are_idempotent(self, layout):
        path = layout.path_for(1, 1)
        layout.remove_tree(path)
        layout.remove_file(path / "missing.png")
        layout.ensure_dir(path)
        (path / "a.png").write_bytes(b"x")
        layout.remove_tree(path)
        layout.remove_tree(path)
        assert not path.exists()


# ---------------------------------------------------------------------------
# FolderStore
# ---------------------------------------------------------------------------


class TestFolderStore:
    def test_create_and_list(self, folders):
        created = folders.create(1, "  docs  ")
        assert created.name == "docs"
        assert created.owner_id == 1
        assert created.files == []
        assert [f.id for f in folders.list(1)] == [created.id]

    def test_duplicate_names_allowed(self, folders):
        a = folders.create(1, "docs")
        b = folders.create(1, "docs")
        assert a.id != b.id

    @pytest.mark.parametrize("name", ["", "   ", "x" * 256])
    def test_bad_names_rejected(self, folders, name):
        with pytest.raises(ValidationError):
            folders.create(1, name)

    def test_list_is_scoped_to_owner(self, folders):
        folders.create(1, "mine")
        folders.create(2, "theirs")
        assert [f.name for f in folders.list(1)] == ["mine"]
        assert folders.list(3) == []

    def test_foreign_folder_is_not_found(self, folders):
        folder = folders.create(1, "mine")
        with pytest.raises(NotFound):
            folders.get(2, folder.id)
        with pytest.raises(NotFound):
            folders.delete(2, folder.id)
        with pytest.raises(NotFound):
            folders.list_files(2, folder.id)
        assert folders.get(1, folder.id).id == folder.id

    def test_missing_folder_is_not_found(self, folders):
        with pytest.raises(NotFound):
            folders.get(1, 999)

    def test_delete_removes_directory_and_rows(self, folders, pipeline, metadata, layout):
        folder = folders.create(1, "docs")
        record = pipeline.upload(1, folder.id, "a.png", "image/png", PNG)

        folders.delete(1, folder.id)

        assert not layout.path_for(1, folder.id).exists()
        assert folders.list(1) == []
        assert metadata.get_file(record.id, 1) is None

    def test_delete_keeps_metadata_when_disk_fails(self, folders, pipeline, layout):
        folder = folders.create(1, "docs")
        pipeline.upload(1, folder.id, "a.png", "image/png", PNG)

        with patch.object(layout, "remove_tree", side_effect=PermissionError("denied")):
            with pytest.raises(StorageIOError):
                folders.delete(1, folder.id)

        assert len(folders.get(1, folder.id).files) == 1

    def test_delete_file_removes_payload_and_row(self, folders, pipeline):
        folder = folders.create(1, "docs")
        record = pipeline.upload(1, folder.id, "a.png", "image/png", PNG)

        with pytest.raises(NotFound):
            folders.delete_file(2, record.id)
        folders.delete_file(1, record.id)

        assert folders.list_files(1, folder.id) == []
        with pytest.raises(NotFound):
            folders.get_file(1, record.id)


# ---------------------------------------------------------------------------
# FileUploadPipeline
# ---------------------------------------------------------------------------


class TestFileUploadPipeline:
    def test_upload_commits_payload_and_row(self, folders, pipeline, layout):
        folder = folders.create(1, "photos")
        record = pipeline.upload(1, folder.id, "cat.png", "image/png", PNG)

        assert record.id is not None
        assert record.name == "cat.png"
        assert record.size == len(PNG)
        assert record.content_type == "image/png"
        stored = Path(record.path)
        assert stored.parent == layout.upload_root / "1" / str(folder.id)
        assert stored.name != "cat.png"
        assert stored.read_bytes() == PNG
        assert [f.id for f in folders.get(1, folder.id).files] == [record.id]

    def test_content_type_parameters_ignored(self, folders, pipeline):
        folder = folders.create(1, "docs")
        record = pipeline.upload(1, folder.id, "a.pdf", "Application/PDF; charset=binary", b"%PDF-1.4")
        assert record.content_type == "application/pdf"

    def test_original_name_is_not_a_path(self, folders, pipeline, layout):
        folder = folders.create(1, "docs")
        record = pipeline.upload(1, folder.id, "../../evil.png", "image/png", PNG)
        assert record.name == "evil.png"
        assert layout.path_for(1, folder.id) in [p.parent for p in _payloads(layout)]

    @pytest.mark.parametrize("content_type", ["text/plain", "image/svg+xml", "", None])
    def test_disallowed_type_writes_nothing(self, folders, pipeline, layout, content_type):
        folder = folders.create(1, "docs")
        with pytest.raises(UnsupportedType):
            pipeline.upload(1, folder.id, "a.txt", content_type, b"hello")
        assert _payloads(layout) == []
        assert folders.list_files(1, folder.id) == []

    def test_oversize_writes_nothing(self, folders, pipeline, layout):
        folder = folders.create(1, "docs")
        with pytest.raises(TooLarge):
            pipeline.upload(1, folder.id, "big.png", "image/png", b"\x00" * 1025)
        assert _payloads(layout) == []

    def test_exact_limit_is_accepted(self, folders, pipeline):
        folder = folders.create(1, "docs")
        record = pipeline.upload(1, folder.id, "edge.png", "image/png", b"\x00" * 1024)
        assert record.size == 1024

    def test_foreign_folder_is_not_found_before_any_write(self, folders, pipeline, layout):
        folder = folders.create(1, "docs")
        with pytest.raises(NotFound):
            pipeline.upload(2, folder.id, "a.png", "image/png", PNG)
        assert _payloads(layout) == []

    def test_metadata_failure_removes_payload(self, folders, pipeline, metadata, layout):
        folder = folders.create(1, "docs")
        failure = OperationalError("INSERT", {}, Exception("disk full"))
        with patch.object(metadata, "create_file", side_effect=failure):
            with pytest.raises(PersistenceError):
                pipeline.upload(1, folder.id, "a.png", "image/png", PNG)
        assert _payloads(layout) == []
        assert folders.list_files(1, folder.id) == []

    def test_disk_failure_writes_no_row(self, folders, pipeline, layout):
        folder = folders.create(1, "docs")
        with patch.object(layout, "ensure_dir", side_effect=PermissionError("read-only")):
            with pytest.raises(StorageIOError):
                pipeline.upload(1, folder.id, "a.png", "image/png", PNG)
        assert folders.list_files(1, folder.id) == []
