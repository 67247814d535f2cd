from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger

from .errors import RepositoryListingError
from .formats import FormatTag
from .models import RepositoryEntry, SourceItem
from .retry import call_with_retry


class RepositoryListing(Protocol):
    def list(self, folder_id: str) -> list[RepositoryEntry]: ...


@dataclass
class Snapshot:
    """Accumulator threaded through the walk and returned to the caller."""

    root_id: str
    items: list[SourceItem] = field(default_factory=list)
    folders: dict[str, str] = field(default_factory=dict)   # folder id -> path from root
    links_followed: int = 0
    links_unresolved: int = 0
    _seen_ids: set[str] = field(default_factory=set, repr=False)

    def add(self, item: SourceItem) -> None:
        # A file reachable both directly and through a shortcut is listed once.
        if item.id is not None:
            if item.id in self._seen_ids:
                return
            self._seen_ids.add(item.id)
        self.items.append(item)


def to_source_item(entry: RepositoryEntry, folder_path: str, is_link: bool = False) -> SourceItem:
    return SourceItem(
        id=entry.id,
        display_name=entry.name,
        format_tag=FormatTag.from_mime(entry.mime_type),
        mime_type=entry.mime_type,
        folder_path=folder_path,
        modified_at=entry.modified_at,
        created_at=entry.created_at,
        size_bytes=entry.size_bytes,
        content_version=entry.content_version,
        content_digest=entry.content_digest,
        external_link=entry.external_link,
        is_link=is_link,
    )


def _join(path: str, name: str) -> str:
    return f"{path}/{name}" if path else name


def build_snapshot(listing: RepositoryListing, root_id: str, retries: int = 3) -> Snapshot:
    """Walk the repository from `root_id` and return every reachable leaf item.

    Shortcuts are followed when the listing reports their target; otherwise they are
    kept as link items for the filter stage to reject. Any listing failure aborts the
    whole walk, since a partial snapshot would turn missing subtrees into deletions.
    """
    snapshot = Snapshot(root_id=root_id)
    visited = {root_id}
    _walk(listing, root_id, "", snapshot, visited, retries)
    logger.info(
        "Snapshot of '{}': {} items in {} folders ({} shortcuts followed, {} unresolved)",
        root_id,
        len(snapshot.items),
        len(snapshot.folders),
        snapshot.links_followed,
        snapshot.links_unresolved,
    )
    return snapshot


def _list(listing: RepositoryListing, folder_id: str, retries: int) -> list[RepositoryEntry]:
    try:
        return call_with_retry(listing.list, folder_id, attempts=retries)
    except Exception as e:
        raise RepositoryListingError(folder_id, str(e)) from e


def _walk(
    listing: RepositoryListing,
    folder_id: str,
    path: str,
    snapshot: Snapshot,
    visited: set[str],
    retries: int,
) -> None:
    for entry in _list(listing, folder_id, retries):
        if entry.is_link:
            target = entry.link_target
            if target is None:
                snapshot.links_unresolved += 1
                snapshot.add(to_source_item(entry, path, is_link=True))
                continue
            snapshot.links_followed += 1
            if target.is_container:
                _descend(listing, target.id, _join(path, entry.name), snapshot, visited, retries)
            else:
                snapshot.add(to_source_item(target, path))
            continue

        if entry.is_container:
            _descend(listing, entry.id, _join(path, entry.name), snapshot, visited, retries)
        else:
            snapshot.add(to_source_item(entry, path))


def _descend(
    listing: RepositoryListing,
    folder_id: str,
    folder_path: str,
    snapshot: Snapshot,
    visited: set[str],
    retries: int,
) -> None:
    if folder_id in visited:
        logger.debug("Folder {} already visited, skipping", folder_path)
        return
    visited.add(folder_id)
    snapshot.folders[folder_id] = folder_path
    _walk(listing, folder_id, folder_path, snapshot, visited, retries)
