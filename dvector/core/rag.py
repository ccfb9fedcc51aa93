"""
Retrieval-augmented query engine.
Embeds the question, searches the local index, fetches the full source documents
from blob storage and asks the generation step for a grounded, cited answer.
"""

import asyncio
import time
from typing import List, Optional

from dvector.util.logging import logger
from dvector.vector.embeddings import IEmbeddingProvider
from dvector.vector.index import MetadataFilter, VectorIndex
from dvector.vector.types import SearchHit
from .blob_store import IBlobStore
from .errors import EmbeddingUnavailable, GenerationUnavailable
from .generation import IGenerator
from .schema import RAGMetadata, RAGResult, RAGSource

NO_DOCUMENTS_ANSWER = "I could not find any relevant documents to answer your question."
STORAGE_FAILURE_ANSWER = "I found relevant documents but could not retrieve them from storage."

SYSTEM_INSTRUCTION = (
    "You are a helpful assistant that answers questions based only on the provided context. "
    "Always cite which document(s) you used to answer. "
    "If the context does not contain enough information to answer the question, say so."
)


def build_context(sources: List[RAGSource]) -> str:
    """One labelled section per source, in the given order."""
    return "\n---\n\n".join(
        f"Document {i} ({source.filename}):\n{source.content}\n"
        for i, source in enumerate(sources, start=1)
    )


class QueryEngine:

    def __init__(self, index: VectorIndex, embedding_provider: IEmbeddingProvider, blob_store: IBlobStore,
                 generator: IGenerator, default_top_k: int = 4):
        self.index = index
        self.embedding_provider = embedding_provider
        self.blob_store = blob_store
        self.generator = generator
        self.default_top_k = default_top_k

    async def query(self, question: str, top_k: Optional[int] = None, filter: Optional[MetadataFilter] = None,
                    timeout: Optional[float] = None) -> RAGResult:
        """
        Answer a question from the indexed documents.

        Args:
            question: Natural-language question
            top_k: Number of chunks to retrieve (defaults to the engine's default)
            filter: Metadata predicate or mapping of metadata key -> value
            timeout: Seconds before giving up with the storage fallback answer

        Returns:
            RAGResult with the answer, sources in descending score order and timing metadata

        Raises:
            EmbeddingUnavailable: the question could not be embedded
            GenerationUnavailable: the generation step failed
        """
        if top_k is None:
            top_k = self.default_top_k
        if top_k <= 0:
            raise ValueError(f"top_k must be > 0: {top_k}")

        start_time = time.monotonic()

        if timeout is None:
            return await self._query(question, top_k, filter, start_time)

        try:
            return await asyncio.wait_for(self._query(question, top_k, filter, start_time), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Query timed out after {timeout}s")
            return self._result(STORAGE_FAILURE_ANSWER, [], start_time, question, top_k, status="timeout")

    async def _query(self, question: str, top_k: int, filter: Optional[MetadataFilter],
                     start_time: float) -> RAGResult:
        try:
            query_embedding = await self.embedding_provider.embed(question)
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            raise EmbeddingUnavailable(f"Failed to embed query: {e}") from e

        hits = self.index.search(query_embedding, top_k, filter)
        if not hits:
            return self._result(NO_DOCUMENTS_ANSWER, [], start_time, question, top_k)

        logger.info(f"Found {len(hits)} relevant chunks in vector store")

        fetched = await asyncio.gather(*(self._fetch_source(hit) for hit in hits))
        # Sources go out in descending score order
        sources = sorted((s for s in fetched if s is not None), key=lambda s: -s.score)

        if not sources:
            return self._result(STORAGE_FAILURE_ANSWER, [], start_time, question, top_k)

        context = build_context(sources)

        try:
            answer = await self.generator.generate(SYSTEM_INSTRUCTION, context, question)
        except GenerationUnavailable:
            raise
        except Exception as e:
            raise GenerationUnavailable(f"Answer generation failed: {e}") from e

        return self._result(answer, sources, start_time, question, top_k)

    async def _fetch_source(self, hit: SearchHit) -> Optional[RAGSource]:
        metadata = hit.entry.metadata
        try:
            content = await self.blob_store.get_text(metadata.blob_id)
        except Exception as e:
            # One unreadable source never fails the whole query
            logger.log_blob_fetch(metadata.blob_id, "failed", {"error": f"{type(e).__name__}: {e}"[:100]})
            return None

        logger.log_blob_fetch(metadata.blob_id, details={"filename": metadata.filename,
                                                          "score": round(hit.score, 3)})
        return RAGSource(
            blob_id=metadata.blob_id,
            filename=metadata.filename or "unknown",
            content=content,
            score=hit.score,
        )

    def _result(self, answer: str, sources: List[RAGSource], start_time: float, question: str,
                top_k: int, status: str = "success") -> RAGResult:
        processing_time_ms = max(0, int((time.monotonic() - start_time) * 1000))
        logger.log_query(question, top_k, len(sources), processing_time_ms, status)
        return RAGResult(
            answer=answer,
            sources=sources,
            metadata=RAGMetadata(processing_time_ms=processing_time_ms, documents_retrieved=len(sources)),
        )
