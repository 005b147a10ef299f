"""
Folder materialization: walk a folder tree and pack it into a zip archive.
"""
import logging
import os
import posixpath
import tempfile
import zipfile
from typing import Iterator, List, NamedTuple, Optional

from sqlalchemy.orm import Session

from dropshare import crud
from dropshare.core.config import settings
from dropshare.core.errors import ObjectNotFound, StorageError, StorageBackendFailure
from dropshare.models.file import File
from dropshare.services.storage import StorageBackend
from dropshare.utils.naming import dedupe_name

logger = logging.getLogger(__name__)


class ArchiveEntry(NamedTuple):
    file: File
    arcname: str


def collect_files(db: Session, folder_id: int) -> List[ArchiveEntry]:
    """
    Every active file beneath ``folder_id`` with its path relative to it.

    Soft-deleted subfolders prune their whole subtree. A folder reached twice
    (a corrupt parent chain) is logged and skipped.
    """
    entries: List[ArchiveEntry] = []
    visited = set()
    stack = [(folder_id, "")]

    while stack:
        current_id, prefix = stack.pop()
        if current_id in visited:
            logger.warning(f"Folder cycle detected at folder {current_id}, skipping")
            continue
        visited.add(current_id)

        taken = set()
        for f in crud.file.get_active_in_folder(db, folder_id=current_id):
            name = dedupe_name(f.original_name, taken)
            taken.add(name)
            entries.append(ArchiveEntry(f, posixpath.join(prefix, name)))

        children = [c for c in crud.folder.get_child_rows(db, parent_id=current_id) if c.lifecycle.is_eligible]
        # Reversed so the stack pops children in id order
        for child in reversed(children):
            name = dedupe_name(child.name, taken)
            taken.add(name)
            stack.append((child.id, posixpath.join(prefix, name)))

    return entries


class ArchiveJob:
    """
    A zip archive built into a private temp file and streamed back in chunks.

    The temp file is removed when streaming finishes or is abandoned, when
    ``cleanup`` is called, or when the job is used as a context manager and
    the block exits. ``cleanup`` may run any number of times.
    """

    def __init__(
        self,
        storage: StorageBackend,
        entries: List[ArchiveEntry],
        name: str,
        temp_dir: Optional[str] = None,
        chunk_size: Optional[int] = None,
    ):
        self.storage = storage
        self.entries = entries
        self.name = name
        self.temp_dir = temp_dir or settings.ARCHIVE_TEMP_DIR
        self.chunk_size = chunk_size or settings.ARCHIVE_CHUNK_SIZE
        self.path: Optional[str] = None
        self.skipped: List[str] = []

    @property
    def filename(self) -> str:
        return f"{self.name}.zip"

    @property
    def size(self) -> int:
        if self.path is None:
            raise RuntimeError("Archive has not been built")
        return os.path.getsize(self.path)

    def build(self) -> "ArchiveJob":
        temp_zip = tempfile.NamedTemporaryFile(delete=False, suffix=".zip", dir=self.temp_dir)
        temp_zip.close()
        self.path = temp_zip.name

        try:
            with zipfile.ZipFile(self.path, "w", zipfile.ZIP_DEFLATED) as zipf:
                for entry in self.entries:
                    self._add(zipf, entry)
        except StorageError as e:
            logger.error(f"Archive build failed for {self.filename}: {e}")
            self.cleanup()
            if isinstance(e, StorageBackendFailure):
                raise
            raise StorageBackendFailure(str(e)) from e
        except OSError as e:
            logger.error(f"Archive build failed for {self.filename}: {e}")
            self.cleanup()
            raise StorageBackendFailure(f"Could not write archive {self.filename}") from e
        except BaseException:
            self.cleanup()
            raise
        return self

    def _add(self, zipf: zipfile.ZipFile, entry: ArchiveEntry) -> None:
        try:
            chunks = self.storage.get(entry.file.storage_key, self.chunk_size)
        except ObjectNotFound:
            logger.warning(f"Skipping {entry.arcname}: object {entry.file.storage_key} missing from storage")
            self.skipped.append(entry.arcname)
            return

        try:
            with zipf.open(entry.arcname, "w", force_zip64=True) as dest:
                for chunk in chunks:
                    dest.write(chunk)
        finally:
            chunks.close()

    def iter_chunks(self) -> Iterator[bytes]:
        if self.path is None:
            raise RuntimeError("Archive has not been built")
        try:
            with open(self.path, mode="rb") as file_like:
                while chunk := file_like.read(self.chunk_size):
                    yield chunk
        finally:
            self.cleanup()

    def cleanup(self) -> None:
        if self.path and os.path.exists(self.path):
            try:
                os.remove(self.path)
            except FileNotFoundError:
                pass

    def __enter__(self) -> "ArchiveJob":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()
