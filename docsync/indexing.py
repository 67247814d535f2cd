import threading
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import TypeVar

from loguru import logger

from .classifier import ChangeClassifier, ClassifierOptions
from .config import SyncSettings
from .dedupe import resolve_duplicates
from .driver import IndexingDriver
from .embedder import Embedder, resolve_embedder
from .errors import ConfigError, DocumentLookupError, IndexReadError
from .extraction import Extractor, TextExtractor
from .filters import FilterRules, filter_items
from .index_state import load_index_state
from .local import ROOT_ID, LocalFolderListing
from .lock import RunLock
from .models import Action, Classification, ItemOutcome
from .naming import FuzzyNameMatcher, NameMatcher, normalize_name
from .report import RunReport
from .snapshot import RepositoryListing, build_snapshot
from .vector_index import QdrantIndex, VectorIndex

T = TypeVar("T")


def _driver(
    index: VectorIndex,
    settings: SyncSettings,
    extractor: Extractor | None,
    embedder: Embedder | None,
    synced_at: datetime,
    cancel: threading.Event | None = None,
) -> IndexingDriver:
    return IndexingDriver(
        index,
        extractor,
        embedder,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        min_content_chars=settings.min_content_chars,
        upsert_batch=settings.upsert_batch,
        retries=settings.retries,
        workers=settings.workers,
        synced_at=synced_at,
        cancel=cancel,
    )


def reconcile(
    listing: RepositoryListing,
    root_id: str,
    index: VectorIndex,
    settings: SyncSettings,
    *,
    extractor: Extractor | None = None,
    embedder: Embedder | None = None,
    rules: FilterRules | None = None,
    matcher: NameMatcher | None = None,
    dry_run: bool = False,
    now: datetime | None = None,
    cancel: threading.Event | None = None,
) -> RunReport:
    """Bring the index in line with the repository under `root_id`.

    Snapshot and index state are read first; either failing aborts the run before
    any mutation. With `dry_run` the report lists the planned actions and the
    index is left untouched.
    """
    started = now or datetime.now(timezone.utc)
    report = RunReport(root=root_id, started_at=started, dry_run=dry_run)

    snapshot = build_snapshot(listing, root_id, retries=settings.retries)
    state = load_index_state(index, retries=settings.retries)
    report.scanned = len(snapshot.items)

    filtered = filter_items(snapshot.items, rules)
    deduped = resolve_duplicates(filtered.kept)
    report.rejected = [*filtered.rejected, *deduped.duplicates]

    classifier = ChangeClassifier(
        ClassifierOptions(
            size_tolerance=settings.size_tolerance,
            lookback_days=settings.lookback_days,
            cutoff_mode=settings.cutoff_mode,
            now=started,
        ),
        matcher or FuzzyNameMatcher(settings.fuzzy_min_length),
    )
    result = classifier.classify(deduped.winners, state)
    report.classifications = result.classifications
    report.warnings = result.warnings
    report.cutoff = result.cutoff

    if dry_run:
        planned = sum(1 for c in result.classifications if c.action != Action.UNCHANGED)
        logger.info("Dry run: {} actions planned, index untouched", planned)
        report.finished_at = datetime.now(timezone.utc)
        return report

    if extractor is None or embedder is None:
        raise ValueError("extractor and embedder are required unless dry_run is set")
    driver = _driver(index, settings, extractor, embedder, started, cancel)
    report.outcomes = driver.run(result.classifications)
    report.finished_at = datetime.now(timezone.utc)
    logger.info(
        "Run finished: {} succeeded, {} failed",
        len(report.outcomes) - len(report.failures),
        len(report.failures),
    )
    return report


def _pick(name: str, candidates: Sequence[T], label: Callable[[T], str], matcher: NameMatcher) -> T:
    # Exact display name, then normalized name, then the fuzzy matcher.
    key = normalize_name(name)
    for rule in (
        lambda c: label(c) == name,
        lambda c: normalize_name(label(c)) == key,
        lambda c: matcher(name, label(c)),
    ):
        found = [c for c in candidates if rule(c)]
        if len(found) == 1:
            return found[0]
        if len(found) > 1:
            names = ", ".join(sorted(f"'{label(c)}'" for c in found))
            raise DocumentLookupError(f"'{name}' matches {len(found)} documents: {names}")
    raise DocumentLookupError(f"No document named '{name}'")


def index_document(
    listing: RepositoryListing,
    root_id: str,
    index: VectorIndex,
    settings: SyncSettings,
    name: str,
    *,
    extractor: Extractor,
    embedder: Embedder,
    rules: FilterRules | None = None,
    matcher: NameMatcher | None = None,
    now: datetime | None = None,
) -> ItemOutcome:
    """(Re)index the one repository document called `name`, whatever its dates say.

    The name is resolved among the items a full sync would keep. Chunks of the
    matching indexed document, if any, are replaced.
    """
    started = now or datetime.now(timezone.utc)
    matcher = matcher or FuzzyNameMatcher(settings.fuzzy_min_length)
    snapshot = build_snapshot(listing, root_id, retries=settings.retries)
    winners = resolve_duplicates(filter_items(snapshot.items, rules).kept).winners
    item = _pick(name, winners, lambda i: i.display_name, matcher)

    state = load_index_state(index, retries=settings.retries)
    classifier = ChangeClassifier(ClassifierOptions(now=started), matcher)
    [classification] = [c for c in classifier.classify([item], state).classifications if c.item is not None]
    if classification.document is not None:
        classification = classification.model_copy(update={"action": Action.MODIFIED, "reason": "reindex requested"})
    else:
        classification = Classification(action=Action.NEW, item=item, reason="index requested")

    outcome = _driver(index, settings, extractor, embedder, started).apply(classification)
    logger.info(
        "Single document {} '{}': {}",
        outcome.action.value,
        outcome.name,
        "ok" if outcome.ok else outcome.reason,
    )
    return outcome


def delete_document(
    index: VectorIndex,
    settings: SyncSettings,
    name: str,
    *,
    matcher: NameMatcher | None = None,
) -> ItemOutcome:
    """Remove every chunk of the indexed document called `name` (or with that id)."""
    state = load_index_state(index, retries=settings.retries)
    document = state.by_id.get(name) or _pick(
        name,
        state.documents,
        lambda d: d.display_name,
        matcher or FuzzyNameMatcher(settings.fuzzy_min_length),
    )
    classification = Classification(action=Action.DELETED, document=document, reason="delete requested")
    return _driver(index, settings, None, None, datetime.now(timezone.utc)).apply(classification)


def open_index(settings: SyncSettings, create: bool = False) -> QdrantIndex:
    dimensions = settings.embedding_dimensions if create else None
    try:
        index = QdrantIndex.connect(settings.qdrant_url, settings.collection, settings.timeout)
        if dimensions is not None:
            index.ensure_collection(dimensions)
    except Exception as e:
        raise IndexReadError(f"Cannot connect to Qdrant at {settings.qdrant_url}: {e}") from e
    return index


def run_sync(settings: SyncSettings, dry_run: bool = False, cancel: threading.Event | None = None) -> RunReport:
    """Reconcile the configured filesystem root against the configured Qdrant collection."""
    if not settings.root:
        raise ConfigError("No repository root configured (DOCSYNC_ROOT or --root)")

    listing = LocalFolderListing(settings.root)
    extractor = embedder = None
    if not dry_run:
        embedder = resolve_embedder(settings)
        extractor = TextExtractor(listing, ocr_threshold=settings.min_content_chars)
    index = open_index(settings, create=not dry_run)

    with RunLock(settings.lock_file):
        return reconcile(
            listing,
            ROOT_ID,
            index,
            settings,
            extractor=extractor,
            embedder=embedder,
            dry_run=dry_run,
            cancel=cancel,
        )


def run_index_document(settings: SyncSettings, name: str) -> ItemOutcome:
    if not settings.root:
        raise ConfigError("No repository root configured (DOCSYNC_ROOT or --root)")

    listing = LocalFolderListing(settings.root)
    embedder = resolve_embedder(settings)
    extractor = TextExtractor(listing, ocr_threshold=settings.min_content_chars)
    index = open_index(settings, create=True)
    with RunLock(settings.lock_file):
        return index_document(listing, ROOT_ID, index, settings, name, extractor=extractor, embedder=embedder)


def run_delete_document(settings: SyncSettings, name: str) -> ItemOutcome:
    index = open_index(settings)
    with RunLock(settings.lock_file):
        return delete_document(index, settings, name)
