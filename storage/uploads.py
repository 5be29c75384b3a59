"""
storage/uploads.py -- Linear upload pipeline with an explicit compensating action.

    Validating -> Storing -> PersistingMetadata -> Committed
                     |               |
                     +---------------+--> RolledBack

Each stage is a public method that returns its result or raises:

  validate()          UnsupportedType / TooLarge   -- before any byte hits disk
  store()             StorageIOError               -- payload written, no row yet
  persist_metadata()  PersistenceError             -- row written, upload committed

upload() runs them in order after an ownership check (FolderStore.get) that
happens before any disk I/O. If persist_metadata() fails, the payload written
by store() is deleted before the error propagates, so the pipeline never leaves
a payload it has no row for. This is best-effort, not a transaction: a process
kill between store and persist leaves an orphaned payload, never a row that
points at a missing payload.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from core.errors import PersistenceError, StorageIOError, TooLarge, UnsupportedType
from storage.folders import FolderStore
from storage.layout import FilesystemLayout
from storage.models import FileRecord, StoredRef
from storage.store import MetadataStore

logger = logging.getLogger("foldervault.storage")

ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "application/pdf",
    }
)

MAX_UPLOAD_BYTES = 5 * 1024 * 1024  # 5 MiB


def _media_type(content_type: str | None) -> str:
    # Parameters such as "; charset=..." are not part of the media type.
    return (content_type or "").split(";", 1)[0].strip().lower()


class UploadStage(str, Enum):
    validating = "validating"
    storing = "storing"
    persisting_metadata = "persisting_metadata"
    committed = "committed"
    rolled_back = "rolled_back"


class FileUploadPipeline:
    """Validate, store and record one uploaded file inside a folder the caller owns.

    Usage:
        pipeline = FileUploadPipeline(folders, metadata, layout)
        record = pipeline.upload(owner_id, folder_id, "report.pdf", "application/pdf", data)
    """

    def __init__(
        self,
        folders: FolderStore,
        metadata: MetadataStore,
        layout: FilesystemLayout,
        max_bytes: int = MAX_UPLOAD_BYTES,
        allowed_types: frozenset[str] = ALLOWED_CONTENT_TYPES,
    ) -> None:
        self.folders = folders
        self.metadata = metadata
        self.layout = layout
        self.max_bytes = max_bytes
        self.allowed_types = allowed_types

    def validate(self, content_type: str | None, size: int) -> None:
        media_type = _media_type(content_type)
        if media_type not in self.allowed_types:
            raise UnsupportedType(f"File type {media_type or 'unknown'!r} is not allowed.")
        if size > self.max_bytes:
            raise TooLarge(f"File must be {self.max_bytes // (1024 * 1024)} MiB or smaller.")

    def store(self, owner_id: int, folder_id: int, original_name: str, payload: bytes) -> StoredRef:
        """Write payload under a fresh unique name in the folder's directory."""
        directory = self.layout.path_for(owner_id, folder_id)
        stored_name = self.layout.unique_name(original_name)
        target = directory / stored_name
        ref = StoredRef(path=target, stored_name=stored_name, size=len(payload))
        try:
            self.layout.ensure_dir(directory)
        except OSError as exc:
            logger.exception("Creating upload directory %s failed", directory)
            raise StorageIOError() from exc
        try:
            # "xb" refuses to overwrite: a name collision fails instead of clobbering.
            with open(target, "xb") as fh:
                fh.write(payload)
        except FileExistsError as exc:
            logger.error("Stored name collision at %s", target)
            raise StorageIOError() from exc
        except OSError as exc:
            logger.exception("Writing upload to %s failed", target)
            self._rollback(ref)
            raise StorageIOError() from exc
        return ref

    def persist_metadata(
        self,
        folder_id: int,
        original_name: str,
        size: int,
        stored_path: Path,
        content_type: str = "application/octet-stream",
    ) -> FileRecord:
        record = FileRecord(
            folder_id=folder_id,
            name=original_name,
            size=size,
            path=str(stored_path),
            content_type=content_type,
        )
        try:
            record.id = self.metadata.create_file(record)
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc
        return record

    def upload(
        self,
        owner_id: int,
        folder_id: int,
        original_name: str,
        content_type: str | None,
        payload: bytes,
    ) -> FileRecord:
        """Run the full pipeline. Raises NotFound before any disk I/O if owner_id does not own the folder."""
        folder = self.folders.get(owner_id, folder_id)
        name = Path(original_name or "").name or "upload"

        self._enter(UploadStage.validating, folder.id)
        self.validate(content_type, len(payload))
        media_type = _media_type(content_type)

        self._enter(UploadStage.storing, folder.id)
        ref = self.store(owner_id, folder.id, name, payload)

        self._enter(UploadStage.persisting_metadata, folder.id)
        try:
            record = self.persist_metadata(folder.id, name, ref.size, ref.path, media_type)
        except PersistenceError:
            logger.exception("Recording upload in folder %d failed; removing %s", folder.id, ref.path)
            self._rollback(ref)
            raise

        self._enter(UploadStage.committed, folder.id)
        logger.info("User %d uploaded file %d (%d bytes) to folder %d", owner_id, record.id, record.size, folder.id)
        return record

    def _rollback(self, ref: StoredRef) -> None:
        try:
            self.layout.remove_file(ref.path)
        except OSError:
            logger.exception("Compensating delete of %s failed; payload is orphaned", ref.path)
        else:
            logger.info("Upload of %s %s", ref.stored_name, UploadStage.rolled_back.value)

    def _enter(self, stage: UploadStage, folder_id: int) -> None:
        logger.debug("Upload into folder %d: stage -> %s", folder_id, stage.value)
