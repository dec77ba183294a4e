"""
Embedding providers

The registry treats embeddings as a black box: text in, vector out.
Similarity is plain cosine similarity over those vectors.

Providers:
- OpenAIEmbeddingProvider: POST {base_url}/embeddings via httpx
- NullEmbeddingProvider: always returns an empty vector (search disabled)
"""

import logging
import math
from typing import List, Optional, Sequence

import httpx

from capregistry.core.exceptions import EmbeddingError

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-ada-002"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors

    Raises:
        ValueError: vectors have different dimensions

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero magnitude
    """
    if len(a) != len(b):
        raise ValueError(f"Vectors must have the same dimensions ({len(a)} != {len(b)})")

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))

    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class EmbeddingProvider:
    """Base class: turns text into a vector"""

    def generate_embedding(self, text: str) -> List[float]:
        raise NotImplementedError

    @property
    def enabled(self) -> bool:
        return True


class NullEmbeddingProvider(EmbeddingProvider):
    """Used when no API key is configured"""

    def generate_embedding(self, text: str) -> List[float]:
        return []

    @property
    def enabled(self) -> bool:
        return False


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embeddings endpoint over httpx"""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_EMBEDDING_MODEL,
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            api_key: OpenAI API key
            model: Embedding model name
            base_url: API root, e.g. https://api.openai.com/v1
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def generate_embedding(self, text: str) -> List[float]:
        """
        Embed one text

        Raises:
            EmbeddingError: request failed or the response has no embedding
        """
        endpoint = f"{self.base_url}/embeddings"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    endpoint,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"model": self.model, "input": text},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Embedding request timed out after {self.timeout}s")
            raise EmbeddingError(f"Failed to generate embedding: timeout after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Embedding request failed: HTTP {e.response.status_code}")
            raise EmbeddingError(f"Failed to generate embedding: HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error generating embedding: {e}")
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e

        try:
            return [float(x) for x in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingError("Failed to generate embedding: unexpected response shape") from e


def build_embedding_provider(
    api_key: Optional[str],
    model: str = DEFAULT_EMBEDDING_MODEL,
    base_url: str = DEFAULT_OPENAI_BASE_URL,
) -> EmbeddingProvider:
    """OpenAI provider when a key is configured, otherwise the null provider"""
    if not api_key:
        logger.warning("OPENAI_API_KEY not set. Semantic search is disabled.")
        return NullEmbeddingProvider()
    return OpenAIEmbeddingProvider(api_key=api_key, model=model, base_url=base_url)
