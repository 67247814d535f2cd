class SyncError(Exception):
    """Base class for every error raised by docsync."""


class FatalSyncError(SyncError):
    """Aborts the whole run; nothing classified so far can be trusted."""


class ConfigError(FatalSyncError):
    pass


class RepositoryListingError(FatalSyncError):
    def __init__(self, folder_id: str, reason: str):
        super().__init__(f"Listing of folder '{folder_id}' failed: {reason}")
        self.folder_id = folder_id
        self.reason = reason


class IndexReadError(FatalSyncError):
    pass


class RunLockedError(FatalSyncError):
    pass


class DocumentLookupError(FatalSyncError):
    """A single-document command found no match, or more than one."""


class ItemError(SyncError):
    """A failure isolated to a single item. The run continues."""

    def __init__(self, item_id: str | None, name: str, reason: str):
        super().__init__(f"{name} ({item_id or 'no id'}): {reason}")
        self.item_id = item_id
        self.name = name
        self.reason = reason


class ExtractionError(ItemError):
    pass


class ContentTooShortError(ItemError):
    pass


class EmbeddingError(ItemError):
    pass


class IndexWriteError(ItemError):
    pass
