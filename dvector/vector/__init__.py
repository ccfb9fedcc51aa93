"""
Vector cache overlay - local, advisory copy of the registry's canonical document set.
"""

# Package initialization for vector module
from .index import IVectorIndex, VectorIndex, MetadataFilter
from .cache import SnapshotCache
from .types import EntryMetadata, VectorEntry, VectorIndexSnapshot, SearchHit
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding

__all__ = [
    'IVectorIndex',
    'VectorIndex',
    'MetadataFilter',
    'SnapshotCache',
    'EntryMetadata',
    'VectorEntry',
    'VectorIndexSnapshot',
    'SearchHit',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding'
]
