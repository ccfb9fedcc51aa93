"""
Embedding providers. Text in, fixed-dimension float vector out.
"""

import asyncio
import hashlib
from abc import ABC, abstractmethod
from typing import List, Sequence

from dvector.core.errors import EmbeddingUnavailable


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Identifier of the embedding space, stored with every snapshot."""
        pass

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""
        pass

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed several texts. Output order matches input order."""
        return [await self.embed(text) for text in texts]

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    Uses chained md5 digests of the text to fill every dimension, so the same
    text always maps to the same vector without any model dependency.
    """

    def __init__(self, dimension: int = 384):
        if dimension <= 0:
            raise ValueError(f"dimension must be > 0: {dimension}")
        self.dimension = dimension

    @property
    def model_id(self) -> str:
        return f"hash-md5-{self.dimension}"

    def embed_text(self, text: str) -> List[float]:
        """Synchronous embedding, used directly by scripts and tests."""
        vector = []
        block = 0
        while len(vector) < self.dimension:
            hex_dig = hashlib.md5(f"{block}:{text}".encode()).hexdigest()
            for i in range(0, len(hex_dig), 8):
                if len(vector) >= self.dimension:
                    break
                value = int(hex_dig[i:i + 8], 16)
                # Map to [-1, 1] for cosine similarity
                vector.append((value / (2**32)) * 2 - 1)
            block += 1

        return vector

    async def embed(self, text: str) -> List[float]:
        return self.embed_text(text)

    def get_dimension(self) -> int:
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    The model is loaded on first use; encoding runs in a worker thread so the
    event loop is not blocked.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model_id(self) -> str:
        return f"sentence-transformers/{self.model_name}"

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    async def embed(self, text: str) -> List[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            embeddings = await asyncio.to_thread(self.model.encode, list(texts), convert_to_tensor=False)
        except Exception as e:
            raise EmbeddingUnavailable(f"Embedding model {self.model_name} failed: {e}") from e
        return [embedding.tolist() for embedding in embeddings]

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension
