import threading

import pytest

from docsync.driver import IndexingDriver
from docsync.index_state import load_index_state
from docsync.models import Action, ChangeSignals, Classification, IndexedDocument, parse_timestamp
from fakes import FakeEmbedder, FakeExtractor, FakeIndex, make_item, ts

SYNCED_AT = ts("2026-03-01")


@pytest.fixture()
def driver(index: FakeIndex, extractor: FakeExtractor, embedder: FakeEmbedder) -> IndexingDriver:
    return IndexingDriver(
        index,
        extractor,
        embedder,
        chunk_size=200,
        chunk_overlap=40,
        retries=1,
        workers=2,
        synced_at=SYNCED_AT,
    )


def _document(index: FakeIndex, id: str, name: str, chunks: int = 2) -> IndexedDocument:
    ids = index.seed(id, name, chunks=chunks, last_synced_at=ts("2026-01-02"))
    return IndexedDocument(id=id, display_name=name, chunk_ids=tuple(ids))


class TestProcessNew:
    def test_writes_chunks_tagged_with_identity(self, driver: IndexingDriver, index: FakeIndex) -> None:
        item = make_item("Q3 Report.pdf", id="q3", folder_path="Finance")
        outcome = driver.process_new(item)
        assert outcome.ok
        assert outcome.chunks_written == len(index.chunk_ids_for("q3")) > 1
        for chunk_id in outcome.chunk_ids:
            payload = index.points[chunk_id]
            assert payload["document_name"] == "Q3 Report.pdf"
            assert payload["folder_path"] == "Finance"
            assert parse_timestamp(payload["last_synced_at"]) == SYNCED_AT
            assert index.vectors[chunk_id]

    def test_chunks_are_embedded_in_one_batch(self, driver: IndexingDriver, embedder: FakeEmbedder) -> None:
        outcome = driver.process_new(make_item("Q3 Report.pdf", id="q3"))
        assert len(embedder.batches) == 1
        assert len(embedder.batches[0]) == outcome.chunks_written

    def test_short_content_fails_item(self, driver: IndexingDriver, index: FakeIndex, extractor: FakeExtractor) -> None:
        extractor.texts["tiny"] = "Too short."
        outcome = driver.apply(Classification(action=Action.NEW, item=make_item("Tiny.docx", id="tiny")))
        assert not outcome.ok
        assert outcome.reason == "content too short (10 chars)"
        assert index.points == {}

    def test_embedding_failure_fails_item(self, index: FakeIndex, extractor: FakeExtractor) -> None:
        driver = IndexingDriver(index, extractor, FakeEmbedder(fail=True), retries=1)
        outcome = driver.apply(Classification(action=Action.NEW, item=make_item("Q3 Report.pdf", id="q3")))
        assert not outcome.ok
        assert outcome.reason.startswith("embedding failed")

    def test_failed_upsert_rolls_back_written_batches(
        self, index: FakeIndex, extractor: FakeExtractor, embedder: FakeEmbedder
    ) -> None:
        driver = IndexingDriver(index, extractor, embedder, chunk_size=200, chunk_overlap=40, upsert_batch=1, retries=1)
        index.fail_upsert_on = 2
        outcome = driver.apply(Classification(action=Action.NEW, item=make_item("Q3 Report.pdf", id="q3")))
        assert not outcome.ok
        assert outcome.reason.startswith("upsert failed")
        assert index.chunk_ids_for("q3") == set()


class TestProcessModified:
    def test_replaces_old_chunks(self, driver: IndexingDriver, index: FakeIndex) -> None:
        document = _document(index, "pricing", "Pricing.docx")
        item = make_item("Pricing.docx", id="pricing", content_version=4)
        outcome = driver.process_modified(item, document)
        remaining = index.chunk_ids_for("pricing")
        assert outcome.action is Action.MODIFIED
        assert outcome.chunks_deleted == 2
        assert remaining == set(outcome.chunk_ids)
        assert not remaining & set(document.chunk_ids)

    def test_reindexed_chunks_share_metadata(self, driver: IndexingDriver, index: FakeIndex) -> None:
        document = _document(index, "pricing", "Pricing.docx", chunks=3)
        item = make_item("Pricing.docx", id="pricing", folder_path="Sales", content_version=5, size_bytes=4096)
        outcome = driver.process_modified(item, document)
        assert outcome.chunks_written > 1

        state = load_index_state(index, retries=1)
        assert state.by_id["pricing"].inconsistent is False
        per_chunk = {"text", "chunk_index", "char_start", "char_end", "line_from", "line_to"}
        shared = [
            {k: v for k, v in index.points[chunk_id].items() if k not in per_chunk}
            for chunk_id in outcome.chunk_ids
        ]
        assert all(metadata == shared[0] for metadata in shared)
        assert shared[0]["content_version"] == 5

    def test_legacy_chunks_move_to_new_id(self, driver: IndexingDriver, index: FakeIndex) -> None:
        ids = index.seed(None, "Pricing.docx", chunks=2)
        document = IndexedDocument(id=None, display_name="Pricing.docx", chunk_ids=tuple(ids))
        outcome = driver.process_modified(make_item("Pricing.docx", id="pricing"), document)
        assert not set(ids) & set(index.points)
        assert index.chunk_ids_for("pricing") == set(outcome.chunk_ids)

    def test_extraction_failure_leaves_document_absent(
        self, driver: IndexingDriver, index: FakeIndex, extractor: FakeExtractor
    ) -> None:
        document = _document(index, "pricing", "Pricing.docx")
        extractor.failures["pricing"] = "corrupt archive"
        outcome = driver.apply(
            Classification(action=Action.MODIFIED, item=make_item("Pricing.docx", id="pricing"), document=document)
        )
        assert not outcome.ok
        assert outcome.reason == "corrupt archive"
        assert index.chunk_ids_for("pricing") == set()


class TestOtherActions:
    def test_renamed_updates_metadata_without_embedding(
        self, driver: IndexingDriver, index: FakeIndex, embedder: FakeEmbedder, extractor: FakeExtractor
    ) -> None:
        document = _document(index, "pricing", "Pricing.docx")
        item = make_item("Pricing 2026.docx", id="pricing", folder_path="Sales")
        outcome = driver.apply(
            Classification(
                action=Action.RENAMED,
                item=item,
                document=document,
                signals=ChangeSignals(name_changed=True),
            )
        )
        assert outcome.ok
        assert embedder.batches == []
        assert extractor.calls == []
        for chunk_id in document.chunk_ids:
            assert index.points[chunk_id]["document_name"] == "Pricing 2026.docx"
            assert index.points[chunk_id]["folder_path"] == "Sales"
            assert parse_timestamp(index.points[chunk_id]["last_synced_at"]) == SYNCED_AT

    def test_deleted_removes_every_chunk(self, driver: IndexingDriver, index: FakeIndex) -> None:
        document = _document(index, "X", "Old Deck", chunks=3)
        # a chunk the state scan missed is still found by the id lookup
        index.seed("X", "Old Deck", chunks=4)
        outcome = driver.apply(Classification(action=Action.DELETED, document=document))
        assert outcome.ok
        assert outcome.chunks_deleted == 4
        assert index.chunk_ids_for("X") == set()


class TestRun:
    def test_unchanged_items_are_not_touched(self, driver: IndexingDriver, index: FakeIndex) -> None:
        item = make_item("Pricing.docx", id="pricing")
        assert driver.run([Classification(action=Action.UNCHANGED, item=item)]) == []
        assert index.mutations == 0

    def test_failures_do_not_stop_other_items(
        self, driver: IndexingDriver, index: FakeIndex, extractor: FakeExtractor
    ) -> None:
        extractor.failures["bad"] = "password protected"
        work = [
            Classification(action=Action.NEW, item=make_item("Bad.pdf", id="bad")),
            Classification(action=Action.NEW, item=make_item("Good.pdf", id="good")),
        ]
        outcomes = driver.run(work)
        assert [(o.item_id, o.ok) for o in outcomes] == [("bad", False), ("good", True)]
        assert index.chunk_ids_for("good")

    def test_cancel_stops_before_next_item(
        self, index: FakeIndex, extractor: FakeExtractor, embedder: FakeEmbedder
    ) -> None:
        cancel = threading.Event()
        cancel.set()
        driver = IndexingDriver(index, extractor, embedder, retries=1, cancel=cancel)
        outcomes = driver.run([Classification(action=Action.NEW, item=make_item("Good.pdf", id="good"))])
        assert [o.reason for o in outcomes] == ["cancelled before start"]
        assert index.mutations == 0
