from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .formats import FormatTag


def ensure_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO timestamp or date string as stored in chunk payloads."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


class _UtcModel(BaseModel):
    @field_validator("modified_at", "created_at", "last_synced_at", mode="after", check_fields=False)
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)


class RepositoryEntry(_UtcModel):
    """One raw record returned by a repository listing call."""

    id: str
    name: str
    mime_type: str
    modified_at: datetime
    created_at: datetime | None = None
    size_bytes: int | None = None
    content_version: int | None = None
    content_digest: str | None = None
    parent_id: str | None = None
    is_container: bool = False
    is_link: bool = False
    link_target: "RepositoryEntry | None" = None   # populated when the listing knows the shortcut target
    external_link: str | None = None


RepositoryEntry.model_rebuild()


class SourceItem(_UtcModel):
    model_config = ConfigDict(frozen=True)

    id: str | None
    display_name: str
    format_tag: FormatTag
    mime_type: str = ""
    folder_path: str = ""
    modified_at: datetime
    created_at: datetime | None = None
    size_bytes: int | None = None
    content_version: int | None = None
    content_digest: str | None = None
    external_link: str | None = None
    is_link: bool = False


class IndexedDocument(_UtcModel):
    model_config = ConfigDict(frozen=True)

    id: str | None
    display_name: str
    modified_at: datetime | None = None
    last_synced_at: datetime | None = None
    content_version: int | None = None
    content_digest: str | None = None
    size_bytes: int | None = None
    chunk_ids: tuple[str, ...] = ()
    inconsistent: bool = False   # chunks disagree on identity/version metadata

    @property
    def is_legacy(self) -> bool:
        return self.id is None


class DocumentMetadata(_UtcModel):
    """Identity and version fields denormalized onto every chunk of a document."""

    document_id: str | None
    document_name: str
    folder_path: str = ""
    format: str = ""
    external_link: str | None = None
    modified_at: datetime | None = None
    created_at: datetime | None = None
    last_synced_at: datetime | None = None
    content_version: int | None = None
    content_digest: str | None = None
    size_bytes: int | None = None

    @classmethod
    def for_item(cls, item: SourceItem, synced_at: datetime) -> "DocumentMetadata":
        return cls(
            document_id=item.id,
            document_name=item.display_name,
            folder_path=item.folder_path,
            format=item.format_tag.value,
            external_link=item.external_link,
            modified_at=item.modified_at,
            created_at=item.created_at,
            last_synced_at=synced_at,
            content_version=item.content_version,
            content_digest=item.content_digest,
            size_bytes=item.size_bytes,
        )

    def to_payload(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_payload(cls, payload: dict) -> "DocumentMetadata":
        return cls(
            document_id=payload.get("document_id") or None,
            document_name=payload.get("document_name") or "",
            folder_path=payload.get("folder_path") or "",
            format=payload.get("format") or "",
            external_link=payload.get("external_link"),
            modified_at=parse_timestamp(payload.get("modified_at")),
            created_at=parse_timestamp(payload.get("created_at")),
            last_synced_at=parse_timestamp(payload.get("last_synced_at")),
            content_version=_int_or_none(payload.get("content_version")),
            content_digest=payload.get("content_digest") or None,
            size_bytes=_int_or_none(payload.get("size_bytes")),
        )


def _int_or_none(value: object) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class PositionRange(BaseModel):
    char_start: int
    char_end: int
    line_from: int
    line_to: int


class Chunk(BaseModel):
    index: int
    text: str
    position: PositionRange


class ChunkRecord(BaseModel):
    chunk_id: str
    document_id: str | None
    document_display_name: str
    text: str
    chunk_index: int = 0
    position: PositionRange
    document_metadata: DocumentMetadata
    vector: list[float] | None = None

    def to_payload(self) -> dict:
        payload = self.document_metadata.to_payload()
        payload.update(
            {
                "text": self.text,
                "chunk_index": self.chunk_index,
                **self.position.model_dump(),
            }
        )
        return payload

    @classmethod
    def from_payload(cls, chunk_id: str, payload: dict) -> "ChunkRecord":
        metadata = DocumentMetadata.from_payload(payload)
        return cls(
            chunk_id=chunk_id,
            document_id=metadata.document_id,
            document_display_name=metadata.document_name,
            text=payload.get("text") or "",
            chunk_index=_int_or_none(payload.get("chunk_index")) or 0,
            position=PositionRange(
                char_start=_int_or_none(payload.get("char_start")) or 0,
                char_end=_int_or_none(payload.get("char_end")) or 0,
                line_from=_int_or_none(payload.get("line_from")) or 0,
                line_to=_int_or_none(payload.get("line_to")) or 0,
            ),
            document_metadata=metadata,
        )


class IndexState(BaseModel):
    by_id: dict[str, IndexedDocument] = Field(default_factory=dict)
    by_name: dict[str, IndexedDocument] = Field(default_factory=dict)
    latest_synced_at: datetime | None = None

    @property
    def documents(self) -> list[IndexedDocument]:
        return [*self.by_id.values(), *self.by_name.values()]


class Action(str, Enum):
    NEW = "NEW"
    MODIFIED = "MODIFIED"
    RENAMED = "RENAMED"
    UNCHANGED = "UNCHANGED"
    DELETED = "DELETED"


class MatchKind(str, Enum):
    ID = "id"
    NAME = "name"
    FUZZY = "fuzzy"
    NONE = "none"


class ChangeSignals(BaseModel):
    version_changed: bool = False
    digest_changed: bool = False
    size_changed: bool = False
    date_changed: bool = False
    name_changed: bool = False
    id_changed: bool = False
    legacy: bool = False
    inconsistent_metadata: bool = False

    @property
    def content_changed(self) -> bool:
        return self.version_changed or self.digest_changed or self.size_changed or self.date_changed

    def active(self) -> list[str]:
        return [name for name, value in self.model_dump().items() if value]


class Classification(BaseModel):
    action: Action
    item: SourceItem | None = None
    document: IndexedDocument | None = None
    match: MatchKind = MatchKind.NONE
    signals: ChangeSignals = Field(default_factory=ChangeSignals)
    reason: str = ""

    @property
    def name(self) -> str:
        if self.item is not None:
            return self.item.display_name
        return self.document.display_name if self.document else ""

    @property
    def document_id(self) -> str | None:
        if self.item is not None:
            return self.item.id
        return self.document.id if self.document else None


class RejectReason(str, Enum):
    TEMPORARY = "temporary/copy"
    ARCHIVED = "archived"
    UNRESOLVED_SHORTCUT = "unresolved shortcut"
    UNSUPPORTED_FORMAT = "unsupported format"
    SUBORDINATE = "subordinate to master"
    DUPLICATE = "duplicate"


class Rejection(BaseModel):
    item: SourceItem
    reason: RejectReason
    detail: str = ""


class DuplicateGroup(BaseModel):
    key: str
    winner: SourceItem
    skipped: list[SourceItem] = Field(default_factory=list)


class ItemOutcome(BaseModel):
    action: Action
    item_id: str | None
    name: str
    ok: bool = True
    reason: str = ""
    chunks_written: int = 0
    chunks_deleted: int = 0
    chunk_ids: list[str] = Field(default_factory=list)


class ReconcileRequest(BaseModel):
    root: str                   # repository root folder id
    dry_run: bool = False


class ReconcileResult(BaseModel):
    counts: dict[str, int]
    failures: list[str]
    exit_code: int
