from datetime import datetime, timezone

from loguru import logger

from .errors import IndexReadError
from .models import ChunkRecord, DocumentMetadata, IndexedDocument, IndexState
from .naming import normalize_name
from .retry import call_with_retry
from .vector_index import VectorIndex


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _fingerprint(metadata: DocumentMetadata) -> tuple:
    return (
        metadata.document_name,
        metadata.modified_at,
        metadata.last_synced_at,
        metadata.content_version,
        metadata.content_digest,
        metadata.size_bytes,
    )


def _aggregate(records: list[ChunkRecord]) -> IndexedDocument:
    # The most recently synced chunk speaks for the document.
    ordered = sorted(
        records,
        key=lambda r: r.document_metadata.last_synced_at or _EPOCH,
        reverse=True,
    )
    head = ordered[0].document_metadata
    fingerprints = {_fingerprint(r.document_metadata) for r in records}
    return IndexedDocument(
        id=head.document_id,
        display_name=head.document_name,
        modified_at=head.modified_at,
        last_synced_at=head.last_synced_at,
        content_version=head.content_version,
        content_digest=head.content_digest,
        size_bytes=head.size_bytes,
        chunk_ids=tuple(r.chunk_id for r in records),
        inconsistent=len(fingerprints) > 1,
    )


def _read_all(index: VectorIndex) -> list[ChunkRecord]:
    return list(index.scan())


def load_index_state(index: VectorIndex, retries: int = 3) -> IndexState:
    """Rebuild per-document state from a full scan of the chunk records.

    Chunks are grouped by document id; legacy chunks without an id are grouped by
    normalized display name. A read failure is fatal.
    """
    try:
        records = call_with_retry(_read_all, index, attempts=retries)
    except Exception as e:
        raise IndexReadError(f"Failed to read index state: {e}") from e

    with_id: dict[str, list[ChunkRecord]] = {}
    legacy: dict[str, list[ChunkRecord]] = {}
    for record in records:
        if record.document_id:
            with_id.setdefault(record.document_id, []).append(record)
        else:
            legacy.setdefault(normalize_name(record.document_display_name), []).append(record)

    state = IndexState()
    for doc_id, group in with_id.items():
        state.by_id[doc_id] = _aggregate(group)
    for group in legacy.values():
        document = _aggregate(group)
        state.by_name[document.display_name] = document

    synced = [d.last_synced_at for d in state.documents if d.last_synced_at is not None]
    state.latest_synced_at = max(synced) if synced else None

    for document in state.documents:
        if document.inconsistent:
            logger.warning(
                "Chunks of '{}' ({}) carry inconsistent metadata",
                document.display_name,
                document.id or "legacy",
            )
    logger.info(
        "Index state: {} chunks, {} documents with id, {} legacy documents, last sync {}",
        len(records),
        len(state.by_id),
        len(state.by_name),
        state.latest_synced_at.isoformat() if state.latest_synced_at else "never",
    )
    return state
