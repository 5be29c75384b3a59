"""
storage/store.py -- SQLAlchemy-backed metadata repository for folders and files.

Uses SQLAlchemy Core (not ORM) so the dataclasses in storage/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. MetadataStore is the repository; the
_row_to_* functions are the mappers. Services never touch SQL directly.

Ownership: every owner-scoped read puts BOTH the resource id and owner_id in
the WHERE clause. A row owned by someone else is indistinguishable from a
missing row -- both come back as None.

Errors: SQLAlchemyError propagates to the caller; storage/folders.py and
storage/uploads.py translate it into PersistenceError.

Usage:
    store = MetadataStore("sqlite:///:memory:")
    folder_id = store.create_folder(Folder(owner_id=1, name="docs"))
    store.create_file(FileRecord(folder_id=folder_id, name="a.pdf", size=10, path="/x"))
    folders = store.list_folders(owner_id=1)
    store.close()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from storage.models import FileRecord, Folder

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_folders = Table(
    "folders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # users live in the auth database; no cross-store foreign key
    Column("owner_id", Integer, nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_files = Table(
    "files",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("folder_id", Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("size", Integer, nullable=False),
    Column("path", Text, nullable=False),
    Column("content_type", String(100), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and ON DELETE CASCADE support for each new connection."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class MetadataStore:
    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool; the same pooled
            # connection may be used from more than one thread.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def create_folder(self, folder: Folder) -> int:
        """Insert a new folder and return its assigned database ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _folders.insert().values(
                    owner_id=folder.owner_id,
                    name=folder.name,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_folder(self, folder_id: int, owner_id: int) -> Optional[Folder]:
        """Fetch a folder with its files, only if owner_id owns it. Returns None otherwise."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _folders.select().where((_folders.c.id == folder_id) & (_folders.c.owner_id == owner_id))
            ).fetchone()
            if row is None:
                return None
            folder = _row_to_folder(row)
            files = conn.execute(
                _files.select().where(_files.c.folder_id == folder.id).order_by(_files.c.id)
            ).fetchall()
        folder.files = [_row_to_file(f) for f in files]
        return folder

    def list_folders(self, owner_id: int) -> list[Folder]:
        """Return every folder owned by owner_id in insertion order, files attached.

        Two queries regardless of folder count: folders, then all their files.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                _folders.select().where(_folders.c.owner_id == owner_id).order_by(_folders.c.id)
            ).fetchall()
            folders = [_row_to_folder(r) for r in rows]
            if not folders:
                return []
            file_rows = conn.execute(
                _files.select()
                .where(_files.c.folder_id.in_([f.id for f in folders]))
                .order_by(_files.c.id)
            ).fetchall()
        by_id = {f.id: f for f in folders}
        for r in file_rows:
            by_id[r.folder_id].files.append(_row_to_file(r))
        return folders

    def delete_folder(self, folder_id: int, owner_id: int) -> bool:
        """Delete a folder and all of its file rows in one transaction.

        The explicit files delete makes the cascade independent of whether the
        backend enforces ON DELETE CASCADE. Returns False if nothing matched.
        """
        with self.engine.begin() as conn:
            owned = conn.execute(
                select(_folders.c.id).where((_folders.c.id == folder_id) & (_folders.c.owner_id == owner_id))
            ).fetchone()
            if owned is None:
                return False
            conn.execute(_files.delete().where(_files.c.folder_id == folder_id))
            conn.execute(_folders.delete().where(_folders.c.id == folder_id))
        return True

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def create_file(self, record: FileRecord) -> int:
        """Insert a file row and return its ID. The folder must already exist."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _files.insert().values(
                    folder_id=record.folder_id,
                    name=record.name,
                    size=record.size,
                    path=record.path,
                    content_type=record.content_type,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_file(self, file_id: int, owner_id: int) -> Optional[FileRecord]:
        """Fetch a file only if its parent folder belongs to owner_id."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_files)
                .join(_folders, _files.c.folder_id == _folders.c.id)
                .where((_files.c.id == file_id) & (_folders.c.owner_id == owner_id))
            ).fetchone()
        return _row_to_file(row) if row is not None else None

    def list_files(self, folder_id: int) -> list[FileRecord]:
        """Return all file rows of a folder, oldest first. Callers check ownership first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _files.select().where(_files.c.folder_id == folder_id).order_by(_files.c.id)
            ).fetchall()
        return [_row_to_file(r) for r in rows]

    def delete_file(self, file_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_files.delete().where(_files.c.id == file_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_folder(row) -> Folder:
    return Folder(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        created_at=row.created_at,
    )


def _row_to_file(row) -> FileRecord:
    return FileRecord(
        id=row.id,
        folder_id=row.folder_id,
        name=row.name,
        size=row.size,
        path=row.path,
        content_type=row.content_type,
        created_at=row.created_at,
    )
