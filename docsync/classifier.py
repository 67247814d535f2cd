from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Literal

from loguru import logger

from .models import (
    Action,
    ChangeSignals,
    Classification,
    IndexedDocument,
    IndexState,
    MatchKind,
    SourceItem,
)
from .naming import FuzzyNameMatcher, NameMatcher


@dataclass
class ClassifierOptions:
    size_tolerance: int = 100
    lookback_days: int = 30
    cutoff_mode: Literal["global", "per_document"] = "global"
    now: datetime | None = None


@dataclass
class ClassificationResult:
    classifications: list[Classification] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cutoff: datetime | None = None

    def of(self, action: Action) -> list[Classification]:
        return [c for c in self.classifications if c.action == action]

    def counts(self) -> dict[str, int]:
        return {action.value: len(self.of(action)) for action in Action}


def _key(document: IndexedDocument) -> tuple[str, str]:
    return ("id", document.id) if document.id is not None else ("name", document.display_name)


class ChangeClassifier:
    """Resolves each winning item against the index state and tags it with an action."""

    def __init__(self, options: ClassifierOptions | None = None, matcher: NameMatcher | None = None):
        self.options = options or ClassifierOptions()
        self.matcher = matcher or FuzzyNameMatcher()

    def _lookback_cutoff(self, now: datetime) -> datetime:
        return now - timedelta(days=self.options.lookback_days)

    def classify(self, items: Sequence[SourceItem], state: IndexState) -> ClassificationResult:
        now = self.options.now or datetime.now(timezone.utc)
        result = ClassificationResult(cutoff=state.latest_synced_at or self._lookback_cutoff(now))
        if state.latest_synced_at is None:
            logger.info("No previous sync found, using {}-day lookback", self.options.lookback_days)

        claimed: set[tuple[str, str]] = set()
        matches: dict[int, tuple[IndexedDocument, MatchKind]] = {}

        # Exact ids first, so a name match can never steal a document another item owns.
        for pos, item in enumerate(items):
            document = state.by_id.get(item.id) if item.id is not None else None
            if document is not None:
                matches[pos] = (document, MatchKind.ID)
                claimed.add(_key(document))

        for pos, item in enumerate(items):
            if pos in matches:
                continue
            found = self._match_by_name(item, state, claimed, result)
            if found is not None:
                matches[pos] = found
                claimed.add(_key(found[0]))

        for pos, item in enumerate(items):
            if pos not in matches:
                result.classifications.append(
                    Classification(action=Action.NEW, item=item, reason="not found in index")
                )
                continue
            document, kind = matches[pos]
            result.classifications.append(self._compare(item, document, kind, result, now))

        for document in state.documents:
            if _key(document) not in claimed:
                result.classifications.append(
                    Classification(
                        action=Action.DELETED,
                        document=document,
                        reason="no longer in repository",
                    )
                )

        logger.info(
            "Classification: {}",
            ", ".join(f"{action} {count}" for action, count in result.counts().items()),
        )
        return result

    def _match_by_name(
        self,
        item: SourceItem,
        state: IndexState,
        claimed: set[tuple[str, str]],
        result: ClassificationResult,
    ) -> tuple[IndexedDocument, MatchKind] | None:
        legacy = state.by_name.get(item.display_name)
        if legacy is not None and _key(legacy) not in claimed:
            return legacy, MatchKind.NAME

        candidates = [
            document
            for document in state.documents
            if _key(document) not in claimed and self.matcher(item.display_name, document.display_name)
        ]
        if len(candidates) == 1:
            document = candidates[0]
            message = f"'{item.display_name}' matched '{document.display_name}' by fuzzy name only"
            logger.warning(message)
            result.warnings.append(message)
            return document, MatchKind.FUZZY
        if len(candidates) > 1:
            message = (
                f"'{item.display_name}' fuzzy-matches {len(candidates)} indexed documents; "
                "treating as no confident match"
            )
            logger.warning(message)
            result.warnings.append(message)
        return None

    def _compare(
        self,
        item: SourceItem,
        document: IndexedDocument,
        kind: MatchKind,
        result: ClassificationResult,
        now: datetime,
    ) -> Classification:
        def tag(action: Action, reason: str, signals: ChangeSignals | None = None) -> Classification:
            return Classification(
                action=action,
                item=item,
                document=document,
                match=kind,
                signals=signals or ChangeSignals(),
                reason=reason,
            )

        if document.inconsistent:
            message = f"'{document.display_name}' has chunks with inconsistent metadata; reindexing"
            result.warnings.append(message)
            return tag(Action.MODIFIED, "inconsistent chunk metadata", ChangeSignals(inconsistent_metadata=True))

        # A name match onto another id must move the chunks, however old the item is.
        if item.id is not None and document.id is not None and item.id != document.id:
            signals = self.signals(item, document)
            return tag(Action.MODIFIED, "changed: " + ", ".join(signals.active()), signals)

        if self.options.cutoff_mode == "per_document":
            cutoff = document.last_synced_at or self._lookback_cutoff(now)
        else:
            cutoff = result.cutoff
        if item.modified_at <= cutoff:
            return tag(Action.UNCHANGED, f"not modified since last sync ({cutoff.date().isoformat()})")

        if document.is_legacy:
            message = f"'{document.display_name}' is a legacy record without id"
            logger.warning(message)
            result.warnings.append(message)
            return tag(Action.MODIFIED, "legacy record needs id", ChangeSignals(legacy=True))

        signals = self.signals(item, document)
        if signals.content_changed or signals.id_changed:
            return tag(Action.MODIFIED, "changed: " + ", ".join(signals.active()), signals)
        if signals.name_changed:
            return tag(Action.RENAMED, f"renamed from '{document.display_name}'", signals)
        return tag(Action.UNCHANGED, "no changes detected", signals)

    def signals(self, item: SourceItem, document: IndexedDocument) -> ChangeSignals:
        return ChangeSignals(
            version_changed=(
                item.content_version is not None
                and document.content_version is not None
                and item.content_version > document.content_version
            ),
            digest_changed=(
                bool(item.content_digest)
                and bool(document.content_digest)
                and item.content_digest != document.content_digest
            ),
            size_changed=(
                item.size_bytes is not None
                and document.size_bytes is not None
                and abs(item.size_bytes - document.size_bytes) > self.options.size_tolerance
            ),
            date_changed=document.modified_at is not None and item.modified_at > document.modified_at,
            name_changed=item.display_name != document.display_name,
            id_changed=item.id is not None and document.id is not None and item.id != document.id,
        )
