import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from uuid import uuid4

from loguru import logger

from .embedder import Embedder
from .errors import ContentTooShortError, EmbeddingError, IndexWriteError, ItemError
from .extraction import Extractor
from .models import (
    Action,
    ChunkRecord,
    Classification,
    DocumentMetadata,
    IndexedDocument,
    ItemOutcome,
    SourceItem,
)
from .retry import call_with_retry
from .splitter import split_text
from .vector_index import VectorIndex

MUTATING_ACTIONS = (Action.NEW, Action.MODIFIED, Action.RENAMED, Action.DELETED)


class IndexingDriver:
    """Applies classified actions to the vector index.

    Items are independent and run on a bounded thread pool. Each item's
    delete-then-write sequence runs on a single worker, and cancellation is only
    honored before an item starts.
    """

    def __init__(
        self,
        index: VectorIndex,
        extractor: Extractor | None,
        embedder: Embedder | None,
        *,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        min_content_chars: int = 50,
        upsert_batch: int = 100,
        retries: int = 3,
        workers: int = 4,
        synced_at: datetime | None = None,
        cancel: threading.Event | None = None,
    ):
        self.index = index
        self.extractor = extractor
        self.embedder = embedder
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.min_content_chars = min_content_chars
        self.upsert_batch = upsert_batch
        self.retries = retries
        self.workers = workers
        self.synced_at = synced_at or datetime.now(timezone.utc)
        self.cancel = cancel or threading.Event()

    # -- index calls -------------------------------------------------------

    def _delete(self, name: str, item_id: str | None, chunk_ids: list[str]) -> None:
        if not chunk_ids:
            return
        try:
            call_with_retry(self.index.delete_many, chunk_ids, attempts=self.retries)
        except Exception as e:
            raise IndexWriteError(item_id, name, f"delete of {len(chunk_ids)} chunks failed: {e}") from e

    def _lookup(self, name: str, document_id: str) -> list[str]:
        try:
            return call_with_retry(self.index.query, {"document_id": document_id}, attempts=self.retries)
        except Exception as e:
            raise IndexWriteError(document_id, name, f"chunk lookup failed: {e}") from e

    def _write(self, item: SourceItem, records: list[ChunkRecord]) -> list[str]:
        written: list[str] = []
        for start in range(0, len(records), self.upsert_batch):
            batch = records[start : start + self.upsert_batch]
            try:
                call_with_retry(self.index.upsert, batch, attempts=self.retries)
            except Exception as e:
                self._rollback(item, written)
                raise IndexWriteError(item.id, item.display_name, f"upsert failed: {e}") from e
            written.extend(r.chunk_id for r in batch)
        return written

    def _rollback(self, item: SourceItem, written: list[str]) -> None:
        if not written:
            return
        try:
            self.index.delete_many(written)
            logger.warning("Rolled back {} partially written chunks of '{}'", len(written), item.display_name)
        except Exception as e:
            logger.error(
                "Rollback of {} chunks for '{}' failed, index holds a partial document: {}",
                len(written),
                item.display_name,
                e,
            )

    # -- building chunks ---------------------------------------------------

    def build_records(self, item: SourceItem) -> list[ChunkRecord]:
        text = self.extractor.extract(item)
        length = len(text.strip())
        if length < self.min_content_chars:
            raise ContentTooShortError(item.id, item.display_name, f"content too short ({length} chars)")

        chunks = split_text(text, self.chunk_size, self.chunk_overlap)
        try:
            vectors = call_with_retry(
                self.embedder.embed_batch, [c.text for c in chunks], attempts=self.retries
            )
        except Exception as e:
            raise EmbeddingError(item.id, item.display_name, f"embedding failed: {e}") from e
        if len(vectors) != len(chunks):
            raise EmbeddingError(
                item.id, item.display_name, f"expected {len(chunks)} vectors, got {len(vectors)}"
            )

        metadata = DocumentMetadata.for_item(item, self.synced_at)
        return [
            ChunkRecord(
                chunk_id=str(uuid4()),
                document_id=item.id,
                document_display_name=item.display_name,
                text=chunk.text,
                chunk_index=chunk.index,
                position=chunk.position,
                document_metadata=metadata,
                vector=vector,
            )
            for chunk, vector in zip(chunks, vectors)
        ]

    # -- actions -----------------------------------------------------------

    def _stale_chunk_ids(self, name: str, *document_ids: str | None, known: tuple[str, ...] = ()) -> list[str]:
        ids = dict.fromkeys(known)
        for document_id in dict.fromkeys(d for d in document_ids if d):
            ids.update(dict.fromkeys(self._lookup(name, document_id)))
        return list(ids)

    def process_new(self, item: SourceItem) -> ItemOutcome:
        records = self.build_records(item)
        written = self._write(item, records)
        logger.info("Indexed '{}': {} chunks", item.display_name, len(written))
        return ItemOutcome(
            action=Action.NEW,
            item_id=item.id,
            name=item.display_name,
            chunks_written=len(written),
            chunk_ids=written,
        )

    def process_modified(self, item: SourceItem, document: IndexedDocument) -> ItemOutcome:
        stale = self._stale_chunk_ids(item.display_name, document.id, item.id, known=document.chunk_ids)
        self._delete(item.display_name, item.id, stale)
        logger.info("Deleted {} old chunks of '{}'", len(stale), document.display_name)
        outcome = self.process_new(item)
        return outcome.model_copy(update={"action": Action.MODIFIED, "chunks_deleted": len(stale)})

    def process_renamed(self, item: SourceItem, document: IndexedDocument) -> ItemOutcome:
        payload = {
            "document_name": item.display_name,
            "folder_path": item.folder_path,
            "external_link": item.external_link,
            "modified_at": item.modified_at.isoformat(),
            "last_synced_at": self.synced_at.isoformat(),
        }
        chunk_ids = list(document.chunk_ids)
        try:
            call_with_retry(self.index.set_payload, chunk_ids, payload, attempts=self.retries)
        except Exception as e:
            raise IndexWriteError(item.id, item.display_name, f"metadata update failed: {e}") from e
        logger.info("Renamed '{}' -> '{}' on {} chunks", document.display_name, item.display_name, len(chunk_ids))
        return ItemOutcome(action=Action.RENAMED, item_id=item.id, name=item.display_name, chunk_ids=chunk_ids)

    def process_deleted(self, document: IndexedDocument) -> ItemOutcome:
        stale = self._stale_chunk_ids(document.display_name, document.id, known=document.chunk_ids)
        self._delete(document.display_name, document.id, stale)
        logger.info("Removed '{}': {} chunks", document.display_name, len(stale))
        return ItemOutcome(
            action=Action.DELETED,
            item_id=document.id,
            name=document.display_name,
            chunks_deleted=len(stale),
        )

    def apply(self, classification: Classification) -> ItemOutcome:
        """Run one classified action; per-item failures become a failed outcome."""
        action = classification.action
        if self.cancel.is_set():
            return ItemOutcome(
                action=action,
                item_id=classification.document_id,
                name=classification.name,
                ok=False,
                reason="cancelled before start",
            )
        try:
            if action == Action.NEW:
                return self.process_new(classification.item)
            if action == Action.MODIFIED:
                return self.process_modified(classification.item, classification.document)
            if action == Action.RENAMED:
                return self.process_renamed(classification.item, classification.document)
            if action == Action.DELETED:
                return self.process_deleted(classification.document)
        except ItemError as e:
            logger.error("Failed {} '{}' ({}): {}", action.value, e.name, e.item_id or "no id", e.reason)
            return ItemOutcome(
                action=action,
                item_id=classification.document_id,
                name=classification.name,
                ok=False,
                reason=e.reason,
            )
        raise ValueError(f"Nothing to apply for {action.value}")

    def run(self, classifications: list[Classification]) -> list[ItemOutcome]:
        work = [c for c in classifications if c.action in MUTATING_ACTIONS]
        if not work:
            return []
        logger.info("Applying {} index changes with {} workers", len(work), self.workers)
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="docsync") as pool:
            return list(pool.map(self.apply, work))
