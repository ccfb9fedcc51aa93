"""
Composition root for the command-line scripts.
Reads configuration once and wires every component explicitly.
"""

import sys
from dataclasses import dataclass
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dvector.core import config
from dvector.core.blob_store import IBlobStore
from dvector.core.cache_manager import CacheManager
from dvector.core.heartbeat import Heartbeat
from dvector.core.ingestion import IngestionPipeline
from dvector.core.metadata_store import DocumentIndexStore, InMemoryKeyLookup
from dvector.core.rag import QueryEngine
from dvector.core.registry import InMemoryRegistry
from dvector.core.sync import SyncEngine
from dvector.util.logging import logger
from dvector.vector import IEmbeddingProvider, SnapshotCache, VectorIndex


@dataclass
class Components:
    embedding_provider: IEmbeddingProvider
    blob_store: IBlobStore
    registry: InMemoryRegistry
    index: VectorIndex
    cache: SnapshotCache
    sync_engine: SyncEngine
    cache_manager: CacheManager
    query_engine: QueryEngine
    pipeline: IngestionPipeline


def build_components(cache_path: str = None) -> Components:
    """Build the full object graph from the environment configuration."""
    issues = config.validate_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        sys.exit(1)

    cache_path = cache_path or config.VECTOR_CACHE_PATH
    config.ensure_cache_directory(cache_path)

    embedding_provider = config.get_embedding_provider()
    blob_store = config.get_blob_store()
    registry = InMemoryRegistry(owner=config.REGISTRY_OWNER)
    index = VectorIndex(embedding_model_id=embedding_provider.model_id)
    cache = SnapshotCache(cache_path)

    sync_engine = SyncEngine(index, registry, blob_store, cache, embedding_model_id=embedding_provider.model_id)
    cache_manager = CacheManager(
        sync_engine,
        registry,
        heartbeat=Heartbeat(),
        sync_interval_sec=config.SYNC_INTERVAL_SEC,
        auto_sync=config.AUTO_SYNC_ENABLED,
    )
    query_engine = QueryEngine(index, embedding_provider, blob_store, config.get_generator(),
                               default_top_k=config.RAG_TOP_K)
    pipeline = IngestionPipeline(
        index,
        embedding_provider,
        blob_store,
        registry,
        cache,
        chunk_size=config.CHUNK_SIZE,
        chunk_overlap=config.CHUNK_OVERLAP,
        owner=config.REGISTRY_OWNER,
        max_blob_bytes=config.MAX_VECTOR_BLOB_BYTES,
        document_index=DocumentIndexStore(blob_store, InMemoryKeyLookup()),
    )

    logger.info(f"Components ready (embeddings={embedding_provider.model_id}, blobs={config.BLOB_PROVIDER})")
    return Components(
        embedding_provider=embedding_provider,
        blob_store=blob_store,
        registry=registry,
        index=index,
        cache=cache,
        sync_engine=sync_engine,
        cache_manager=cache_manager,
        query_engine=query_engine,
        pipeline=pipeline,
    )


async def close_components(components: Components) -> None:
    await components.cache_manager.shutdown()
    aclose = getattr(components.blob_store, "aclose", None)
    if aclose is not None:
        await aclose()
