"""
Environment-driven configuration for the vector cache, sync and RAG components.
Factories here are meant to be called once by the composition root; the core never calls them itself.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Local snapshot cache
VECTOR_CACHE_PATH = os.getenv("VECTOR_CACHE_PATH", "./data/vector-store/memory-store.json")

# Embedding provider
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence_transformers
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-MiniLM-L6-v2")
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))

# Generation step
GENERATOR_PROVIDER = os.getenv("GENERATOR_PROVIDER", "ollama")  # ollama|mock
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2:latest")
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.3"))

# RAG parameters
RAG_TOP_K = int(os.getenv("RAG_TOP_K", "4"))
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))

# Background sync
SYNC_INTERVAL_SEC = int(os.getenv("SYNC_INTERVAL_SEC", "300"))
AUTO_SYNC_ENABLED = os.getenv("AUTO_SYNC_ENABLED", "true").lower() == "true"

# Blob store
BLOB_PROVIDER = os.getenv("BLOB_PROVIDER", "memory")  # memory|walrus
WALRUS_PUBLISHER_URL = os.getenv("WALRUS_PUBLISHER_URL", "https://publisher.walrus-testnet.walrus.space")
WALRUS_AGGREGATOR_URL = os.getenv("WALRUS_AGGREGATOR_URL", "https://aggregator.walrus-testnet.walrus.space")
WALRUS_EPOCHS = int(os.getenv("WALRUS_EPOCHS", "5"))
BLOB_TIMEOUT_SEC = float(os.getenv("BLOB_TIMEOUT_SEC", "30"))
MAX_VECTOR_BLOB_BYTES = int(os.getenv("MAX_VECTOR_BLOB_BYTES", str(10 * 1024 * 1024)))

# Registry
REGISTRY_OWNER = os.getenv("REGISTRY_OWNER", "local")

# Version string
VERSION = "0.1.0"


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    if EMBED_PROVIDER == "sentence_transformers":
        from dvector.vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(EMBED_MODEL_NAME)

    # Default to the deterministic provider for unknown providers
    from dvector.vector.embeddings import DeterministicHashEmbedding
    return DeterministicHashEmbedding(EMBED_DIM)


def get_generator():
    """Get configured generation step implementation."""
    if GENERATOR_PROVIDER == "mock":
        from dvector.core.generation import MockGenerator
        return MockGenerator()

    from dvector.core.generation import OllamaGenerator
    return OllamaGenerator(model_name=OLLAMA_MODEL, host=OLLAMA_HOST, temperature=GENERATION_TEMPERATURE)


def get_blob_store():
    """Get configured blob store implementation."""
    if BLOB_PROVIDER == "walrus":
        from dvector.core.blob_store import WalrusBlobStore
        return WalrusBlobStore(
            publisher_url=WALRUS_PUBLISHER_URL,
            aggregator_url=WALRUS_AGGREGATOR_URL,
            epochs=WALRUS_EPOCHS,
            timeout_sec=BLOB_TIMEOUT_SEC,
        )

    from dvector.core.blob_store import InMemoryBlobStore
    return InMemoryBlobStore()


def ensure_cache_directory(path: str = None):
    """Ensure the snapshot cache directory exists."""
    Path(path or VECTOR_CACHE_PATH).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if CHUNK_SIZE <= 0:
        issues.append(f"CHUNK_SIZE must be > 0 (got {CHUNK_SIZE})")

    if not 0 <= CHUNK_OVERLAP < CHUNK_SIZE:
        issues.append(f"CHUNK_OVERLAP must satisfy 0 <= overlap < CHUNK_SIZE (got {CHUNK_OVERLAP})")

    if RAG_TOP_K <= 0:
        issues.append(f"RAG_TOP_K must be > 0 (got {RAG_TOP_K})")

    if SYNC_INTERVAL_SEC < 1:
        issues.append(f"SYNC_INTERVAL_SEC must be >= 1 (got {SYNC_INTERVAL_SEC})")

    if EMBED_PROVIDER not in ["hash", "sentence_transformers"]:
        issues.append(f"EMBED_PROVIDER must be one of: hash, sentence_transformers (got {EMBED_PROVIDER})")

    if GENERATOR_PROVIDER not in ["ollama", "mock"]:
        issues.append(f"GENERATOR_PROVIDER must be one of: ollama, mock (got {GENERATOR_PROVIDER})")

    if BLOB_PROVIDER not in ["memory", "walrus"]:
        issues.append(f"BLOB_PROVIDER must be one of: memory, walrus (got {BLOB_PROVIDER})")

    return issues
