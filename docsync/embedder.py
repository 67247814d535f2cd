from typing import Protocol

from llama_index.core.base.embeddings.base import BaseEmbedding
from llama_index.embeddings.openai import OpenAIEmbedding

from .config import SyncSettings
from .errors import ConfigError


class Embedder(Protocol):
    def embed(self, text: str) -> list[float]: ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


class LlamaIndexEmbedder:
    def __init__(self, model: BaseEmbedding):
        self.model = model

    def embed(self, text: str) -> list[float]:
        return self.model.get_text_embedding(text)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return self.model.get_text_embedding_batch(texts)


def resolve_embedder(settings: SyncSettings) -> LlamaIndexEmbedder:
    if not settings.api_key:
        raise ConfigError("OPENROUTER_API_KEY (or OPENAI_API_KEY) environment variable is not set")
    model = OpenAIEmbedding(
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        api_base=settings.embedding_api_base,
        api_key=settings.api_key,
        timeout=settings.timeout,
        max_retries=0,
        default_headers={
            "HTTP-Referer": "https://github.com/docsync",
            "X-Title": "docsync",
        },
    )
    return LlamaIndexEmbedder(model)
