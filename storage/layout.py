"""
storage/layout.py -- Deterministic on-disk layout for uploaded payloads.

    {upload_root}/{owner_id}/{folder_id}/{epoch_ms}-{random hex}{.ext}

Owner and folder ids are integers from the database, never user input, so
path components cannot traverse out of upload_root. Original filenames are
never used on disk; only a sanitized extension survives.

Every mutating operation is idempotent:
  ensure_dir()   -- "already exists" (including a concurrent mkdir) is success
  remove_tree()  -- removing an absent directory is success
  remove_file()  -- removing an absent file is success
"""

import re
import secrets
import shutil
import time
from pathlib import Path

_EXT_RE = re.compile(r"^\.[a-z0-9]{1,10}$")


class FilesystemLayout:
    def __init__(self, upload_root: Path) -> None:
        self.upload_root = Path(upload_root)

    def path_for(self, owner_id: int, folder_id: int) -> Path:
        return self.upload_root / str(int(owner_id)) / str(int(folder_id))

    def ensure_dir(self, path: Path) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        return path

    def unique_name(self, original_name: str) -> str:
        """Generate a stored filename that keeps the original extension.

        The millisecond timestamp keeps names roughly sortable; the 64-bit
        random component keeps two uploads in the same millisecond apart.
        """
        return f"{time.time_ns() // 1_000_000}-{secrets.token_hex(8)}{self.extension(original_name)}"

    @staticmethod
    def extension(original_name: str) -> str:
        """Lowercased suffix of original_name, or "" if it is missing or odd-looking."""
        suffix = Path(original_name or "").suffix.lower()
        return suffix if _EXT_RE.match(suffix) else ""

    def remove_tree(self, path: Path) -> None:
        """Recursively delete path. Raises OSError for anything but "not found"."""
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass

    def remove_file(self, path: Path) -> None:
        Path(path).unlink(missing_ok=True)
