import pytest

from docsync.config import SyncSettings
from docsync.embedder import LlamaIndexEmbedder, resolve_embedder
from docsync.errors import ConfigError


class StubModel:
    def get_text_embedding(self, text: str) -> list[float]:
        return [float(len(text))]

    def get_text_embedding_batch(self, texts: list[str]) -> list[list[float]]:
        return [[float(len(t))] for t in texts]


def test_wraps_llama_index_model() -> None:
    embedder = LlamaIndexEmbedder(StubModel())
    assert embedder.embed("abc") == [3.0]
    assert embedder.embed_batch(["a", "bb"]) == [[1.0], [2.0]]


def test_api_key_is_required() -> None:
    with pytest.raises(ConfigError, match="API_KEY"):
        resolve_embedder(SyncSettings(api_key=None))


def test_builds_openai_embedding() -> None:
    embedder = resolve_embedder(SyncSettings(api_key="sk-test", embedding_model="text-embedding-3-small"))
    assert embedder.model.model_name == "text-embedding-3-small"
    assert embedder.model.dimensions == 1536
