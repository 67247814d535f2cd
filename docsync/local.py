import hashlib
import os
from datetime import datetime, timezone
from pathlib import Path

from .formats import FormatTag
from .models import RepositoryEntry, SourceItem

ROOT_ID = "."
SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "dist", "build"}
FOLDER_MIME = "inode/directory"


def hash_file(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(65536):
            h.update(chunk)
    return h.hexdigest()


def _timestamp(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class LocalFolderListing:
    """Presents a directory tree as a document repository.

    Item and folder ids are POSIX paths relative to the root (the root itself is
    `ROOT_ID`). Symlinks are links; their target is reported when it resolves
    inside the root.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise NotADirectoryError(f"Repository root '{root}' is not a directory")

    def _path(self, item_id: str) -> Path:
        return self.root if item_id == ROOT_ID else self.root / item_id

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def list(self, folder_id: str) -> list[RepositoryEntry]:
        folder = self._path(folder_id)
        entries = []
        for child in sorted(folder.iterdir(), key=lambda p: p.name):
            if child.name.startswith(".") or child.name in SKIP_DIRS:
                continue
            if child.is_symlink():
                entries.append(self._link_entry(child, folder_id))
            else:
                entries.append(self._entry(child, folder_id))
        return entries

    def _entry(self, path: Path, parent_id: str | None) -> RepositoryEntry:
        stat = path.stat()
        if path.is_dir():
            return RepositoryEntry(
                id=self._relative(path),
                name=path.name,
                mime_type=FOLDER_MIME,
                modified_at=_timestamp(stat.st_mtime),
                parent_id=parent_id,
                is_container=True,
            )
        return RepositoryEntry(
            id=self._relative(path),
            name=path.name,
            mime_type=FormatTag.from_extension(path.suffix).value,
            modified_at=_timestamp(stat.st_mtime),
            created_at=_timestamp(stat.st_ctime),
            size_bytes=stat.st_size,
            content_digest=hash_file(path),
            parent_id=parent_id,
            external_link=path.as_uri(),
        )

    def _link_entry(self, path: Path, parent_id: str) -> RepositoryEntry:
        target = None
        resolved = path.resolve()
        if resolved.exists() and resolved.is_relative_to(self.root):
            target = self._entry(resolved, None)
        return RepositoryEntry(
            id=self._relative(path),
            name=path.name,
            mime_type=FormatTag.from_extension(path.suffix).value,
            modified_at=_timestamp(os.lstat(path).st_mtime),
            parent_id=parent_id,
            is_link=True,
            link_target=target,
        )

    def download(self, item: SourceItem) -> bytes:
        if item.id is None:
            raise FileNotFoundError(f"Item '{item.display_name}' has no id")
        return self._path(item.id).read_bytes()
