"""
Error taxonomy shared by the vector index, sync engine, ingestion and query paths.
"""


class DVectorError(Exception):
    """Base class for all errors raised by dvector."""


class DimensionMismatch(DVectorError, ValueError):
    """Embedding length does not match the index dimension."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Vector dimension {actual} does not match expected dimension {expected}")
        self.expected = expected
        self.actual = actual


class CorruptSnapshot(DVectorError):
    """A persisted snapshot or vector blob failed to parse or has the wrong shape."""


class StorageUnavailable(DVectorError):
    """Blob store unreachable or rejected the request."""


class BlobNotFound(StorageUnavailable):
    """Requested blob id does not exist in the blob store."""

    def __init__(self, blob_id: str):
        super().__init__(f"Blob not found: {blob_id}")
        self.blob_id = blob_id


class RegistryUnavailable(DVectorError):
    """Registry unreachable or rejected the request."""


class EmbeddingUnavailable(DVectorError):
    """Embedding provider failed."""


class GenerationUnavailable(DVectorError):
    """Generation step failed."""


class SyncError(DVectorError):
    """A resync aborted; the previous snapshot is still authoritative."""
