"""
storage/models.py -- Domain dataclasses for folders and stored files.

These are pure data containers with zero logic. Ownership checks, path
derivation and the upload pipeline live in storage/folders.py,
storage/layout.py and storage/uploads.py.

id is None before the record is written to the database.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class FileRecord:
    """Metadata row for one uploaded payload.

    name is the client's original filename, kept for display and download.
    path is where the payload actually lives; its basename is the generated
    collision-resistant name, never the original one.
    """

    folder_id: int
    name: str
    size: int
    path: str
    content_type: str = "application/octet-stream"
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Folder:
    """A named container owned by exactly one user.

    files is populated by list/get reads; it is empty on a freshly created
    folder and ignored on insert.
    """

    owner_id: int
    name: str
    id: Optional[int] = None
    created_at: str = ""
    files: list[FileRecord] = field(default_factory=list)


@dataclass(frozen=True)
class StoredRef:
    """Result of the pipeline's store stage: a payload on disk, not yet recorded."""

    path: Path
    stored_name: str
    size: int
