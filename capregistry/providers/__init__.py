"""Embedding providers"""

from capregistry.providers.embeddings import (
    EmbeddingProvider,
    NullEmbeddingProvider,
    OpenAIEmbeddingProvider,
    build_embedding_provider,
    cosine_similarity,
)

__all__ = [
    "EmbeddingProvider",
    "NullEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "build_embedding_provider",
    "cosine_similarity",
]
