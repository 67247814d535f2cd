from collections.abc import Iterator
from typing import Protocol

from loguru import logger
from qdrant_client import QdrantClient, models

from .models import ChunkRecord

SCROLL_PAGE = 250


class VectorIndex(Protocol):
    def scan(self) -> Iterator[ChunkRecord]: ...

    def query(self, filter: dict[str, object]) -> list[str]: ...

    def upsert(self, records: list[ChunkRecord]) -> None: ...

    def delete_many(self, chunk_ids: list[str]) -> None: ...

    def set_payload(self, chunk_ids: list[str], payload: dict) -> None: ...

    def describe_stats(self) -> dict[str, int]: ...


def _point_id(chunk_id: str) -> int | str:
    # Qdrant ids are unsigned ints or UUIDs; ints come back from scroll as str(id)
    return int(chunk_id) if chunk_id.isdigit() else chunk_id


class QdrantIndex:
    def __init__(self, client: QdrantClient, collection_name: str):
        self.client = client
        self.collection_name = collection_name

    @classmethod
    def connect(cls, url: str, collection_name: str, timeout: float = 60.0) -> "QdrantIndex":
        return cls(QdrantClient(url=url, timeout=int(timeout)), collection_name)

    def ensure_collection(self, dimension: int) -> bool:
        """Create the collection if missing. Returns True when it was created."""
        if self.client.collection_exists(self.collection_name):
            return False
        logger.info("Creating collection '{}' (dimension {})", self.collection_name, dimension)
        self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=models.VectorParams(size=dimension, distance=models.Distance.COSINE),
        )
        self.client.create_payload_index(
            collection_name=self.collection_name,
            field_name="document_id",
            field_schema=models.PayloadSchemaType.KEYWORD,
        )
        return True

    def _scroll(self, scroll_filter: models.Filter | None, with_payload: bool) -> Iterator[models.Record]:
        offset = None
        while True:
            points, next_offset = self.client.scroll(
                collection_name=self.collection_name,
                scroll_filter=scroll_filter,
                limit=SCROLL_PAGE,
                offset=offset,
                with_payload=with_payload,
                with_vectors=False,
            )
            yield from points
            if next_offset is None:
                break
            offset = next_offset

    def scan(self) -> Iterator[ChunkRecord]:
        if not self.client.collection_exists(self.collection_name):
            return
        for point in self._scroll(None, with_payload=True):
            yield ChunkRecord.from_payload(str(point.id), point.payload or {})

    def query(self, filter: dict[str, object]) -> list[str]:
        scroll_filter = models.Filter(
            must=[
                models.FieldCondition(key=key, match=models.MatchValue(value=value))
                for key, value in filter.items()
            ]
        )
        return [str(point.id) for point in self._scroll(scroll_filter, with_payload=False)]

    def upsert(self, records: list[ChunkRecord]) -> None:
        if not records:
            return
        self.client.upsert(
            collection_name=self.collection_name,
            points=[
                models.PointStruct(
                    id=_point_id(record.chunk_id),
                    vector=record.vector or [],
                    payload=record.to_payload(),
                )
                for record in records
            ],
            wait=True,
        )

    def delete_many(self, chunk_ids: list[str]) -> None:
        if not chunk_ids:
            return
        self.client.delete(
            collection_name=self.collection_name,
            points_selector=models.PointIdsList(points=[_point_id(c) for c in chunk_ids]),
            wait=True,
        )

    def set_payload(self, chunk_ids: list[str], payload: dict) -> None:
        if not chunk_ids:
            return
        self.client.set_payload(
            collection_name=self.collection_name,
            payload=payload,
            points=[_point_id(c) for c in chunk_ids],
            wait=True,
        )

    def describe_stats(self) -> dict[str, int]:
        if not self.client.collection_exists(self.collection_name):
            return {"points": 0}
        count = self.client.count(collection_name=self.collection_name, exact=True).count
        return {"points": count}
