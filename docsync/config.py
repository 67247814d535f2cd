import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, model_validator

from .errors import ConfigError

MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "openai/text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "openai/text-embedding-3-large": 3072,
}

_ENV_FIELDS = {
    "root": "DOCSYNC_ROOT",
    "qdrant_url": "QDRANT_URL",
    "collection": "DOCSYNC_COLLECTION",
    "embedding_model": "EMBEDDING_MODEL",
    "embedding_api_base": "EMBEDDING_API_BASE",
    "chunk_size": "DOCSYNC_CHUNK_SIZE",
    "chunk_overlap": "DOCSYNC_CHUNK_OVERLAP",
    "min_content_chars": "DOCSYNC_MIN_CONTENT_CHARS",
    "size_tolerance": "DOCSYNC_SIZE_TOLERANCE",
    "lookback_days": "DOCSYNC_LOOKBACK_DAYS",
    "fuzzy_min_length": "DOCSYNC_FUZZY_MIN_LENGTH",
    "workers": "DOCSYNC_WORKERS",
    "retries": "DOCSYNC_RETRIES",
    "timeout": "DOCSYNC_TIMEOUT",
    "cutoff_mode": "DOCSYNC_CUTOFF_MODE",
    "upsert_batch": "DOCSYNC_UPSERT_BATCH",
    "lock_file": "DOCSYNC_LOCK_FILE",
    "log_level": "DOCSYNC_LOG_LEVEL",
    "log_file": "DOCSYNC_LOG_FILE",
}


class SyncSettings(BaseModel):
    root: str | None = None
    qdrant_url: str = "http://localhost:6333"
    collection: str = "documents"
    embedding_model: str = "text-embedding-3-large"
    embedding_api_base: str = "https://openrouter.ai/api/v1"
    api_key: str | None = None
    chunk_size: int = 1000
    chunk_overlap: int = 200
    min_content_chars: int = 50
    size_tolerance: int = 100
    lookback_days: int = 30
    fuzzy_min_length: int = 30
    workers: int = 4
    retries: int = 3
    timeout: float = 60.0
    cutoff_mode: Literal["global", "per_document"] = "global"
    upsert_batch: int = 100
    lock_file: str = ".docsync.lock"
    log_level: str = "INFO"
    log_file: str | None = None

    @model_validator(mode="after")
    def _check_limits(self) -> "SyncSettings":
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        if self.workers < 1:
            raise ValueError("workers must be at least 1")
        if self.retries < 1:
            raise ValueError("retries must be at least 1")
        if self.upsert_batch < 1:
            raise ValueError("upsert_batch must be at least 1")
        return self

    @property
    def embedding_dimensions(self) -> int:
        try:
            return MODEL_DIMENSIONS[self.embedding_model]
        except KeyError:
            raise ConfigError(
                f"Unknown model '{self.embedding_model}'. Supported: {', '.join(MODEL_DIMENSIONS)}"
            ) from None

    @classmethod
    def from_env(cls, **overrides) -> "SyncSettings":
        """Build settings from the environment (and a `.env` file), then apply overrides.

        Overrides set to None are ignored so CLI options can be passed through as-is.
        """
        load_dotenv()
        values: dict[str, object] = {}
        for field_name, env_name in _ENV_FIELDS.items():
            raw = os.environ.get(env_name)
            if raw not in (None, ""):
                values[field_name] = raw
        api_key = os.environ.get("OPENROUTER_API_KEY") or os.environ.get("OPENAI_API_KEY")
        if api_key:
            values["api_key"] = api_key
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
