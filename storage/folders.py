"""
storage/folders.py -- Ownership-scoped folder operations.

Every method takes the acting user's id and re-checks ownership against the
metadata store on each call; nothing is cached between requests. A folder
that belongs to someone else raises NotFound, exactly like a folder that does
not exist, so ids cannot be probed for existence.

Folder deletion is disk-first:
  1. remove {upload_root}/{owner}/{folder}/ recursively
  2. delete the folder row and its file rows in one transaction
If step 1 fails nothing in the metadata store is touched. If step 2 fails the
payloads are already gone and the folder shows up with dangling file rows;
a retry of the delete completes it (step 1 is idempotent).

Concurrent delete and upload on the same folder are not serialized: an
in-flight upload may recreate the directory or insert a row after the delete.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from core.errors import NotFound, PersistenceError, StorageIOError, ValidationError
from storage.layout import FilesystemLayout
from storage.models import FileRecord, Folder
from storage.store import MetadataStore

logger = logging.getLogger("foldervault.storage")

_MAX_FOLDER_NAME = 255


class FolderStore:
    def __init__(self, metadata: MetadataStore, layout: FilesystemLayout) -> None:
        self.metadata = metadata
        self.layout = layout

    def create(self, owner_id: int, name: str) -> Folder:
        """Create a folder for owner_id. Duplicate names are allowed."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Folder name must not be empty.")
        if len(name) > _MAX_FOLDER_NAME:
            raise ValidationError(f"Folder name must be at most {_MAX_FOLDER_NAME} characters.")
        folder = Folder(owner_id=owner_id, name=name)
        try:
            folder.id = self.metadata.create_folder(folder)
        except SQLAlchemyError as exc:
            logger.exception("Creating folder for user %d failed", owner_id)
            raise PersistenceError() from exc
        logger.info("User %d created folder %d", owner_id, folder.id)
        return self.get(owner_id, folder.id)

    def list(self, owner_id: int) -> list[Folder]:
        return self.metadata.list_folders(owner_id)

    def get(self, owner_id: int, folder_id: int) -> Folder:
        folder = self.metadata.get_folder(folder_id, owner_id)
        if folder is None:
            raise NotFound("Folder not found.")
        return folder

    def delete(self, owner_id: int, folder_id: int) -> None:
        folder = self.get(owner_id, folder_id)
        path = self.layout.path_for(owner_id, folder.id)
        try:
            self.layout.remove_tree(path)
        except OSError as exc:
            logger.exception("Removing %s failed; folder %d left intact", path, folder.id)
            raise StorageIOError("Could not remove folder contents.") from exc
        try:
            deleted = self.metadata.delete_folder(folder.id, owner_id)
        except SQLAlchemyError as exc:
            logger.exception("Deleting folder %d metadata failed after its files were removed", folder.id)
            raise PersistenceError() from exc
        if not deleted:
            # Lost a race with another delete of the same folder.
            raise NotFound("Folder not found.")
        logger.info("User %d deleted folder %d (%d file(s))", owner_id, folder.id, len(folder.files))

    def list_files(self, owner_id: int, folder_id: int) -> list[FileRecord]:
        folder = self.get(owner_id, folder_id)
        return self.metadata.list_files(folder.id)

    def get_file(self, owner_id: int, file_id: int) -> FileRecord:
        """Fetch a file whose parent folder owner_id owns. NotFound otherwise."""
        record = self.metadata.get_file(file_id, owner_id)
        if record is None:
            raise NotFound("File not found.")
        return record

    def delete_file(self, owner_id: int, file_id: int) -> None:
        """Remove one file: payload first, then its row."""
        record = self.get_file(owner_id, file_id)
        try:
            self.layout.remove_file(record.path)
        except OSError as exc:
            logger.exception("Removing payload of file %d failed", record.id)
            raise StorageIOError("Could not remove file.") from exc
        try:
            self.metadata.delete_file(record.id)
        except SQLAlchemyError as exc:
            logger.exception("Deleting file %d metadata failed after its payload was removed", record.id)
            raise PersistenceError() from exc
        logger.info("User %d deleted file %d", owner_id, record.id)
