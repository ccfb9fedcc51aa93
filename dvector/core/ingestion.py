"""
Ingestion pipeline - onboards a document end to end:
blob store -> chunks -> embeddings -> vector blob -> local index -> registry.

A registry write failure is reported on the returned document but not rolled back;
the stored blobs and local entries stay, and the next resync reconciles the index
with whatever the registry holds.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dvector.util.logging import logger
from dvector.vector.cache import SnapshotCache
from dvector.vector.embeddings import IEmbeddingProvider
from dvector.vector.index import VectorIndex
from dvector.vector.serialization import DEFAULT_MAX_BLOB_BYTES, serialize_entries
from dvector.vector.types import EntryMetadata, VectorEntry, VectorIndexSnapshot
from .blob_store import IBlobStore
from .chunker import chunk
from .errors import EmbeddingUnavailable, RegistryUnavailable, StorageUnavailable
from .formats import ALL_SUPPORTED_EXTENSIONS, get_mime_type, is_supported_file
from .metadata_store import DocumentIndexStore, DocumentMetadata
from .registry import IRegistry, RegistryRecord
from .schema import StoredDocument


class IngestionPipeline:

    def __init__(self, index: VectorIndex, embedding_provider: IEmbeddingProvider, blob_store: IBlobStore,
                 registry: IRegistry, cache: SnapshotCache, chunk_size: int = 1000, chunk_overlap: int = 200,
                 owner: str = "", max_blob_bytes: int = DEFAULT_MAX_BLOB_BYTES,
                 document_index: Optional[DocumentIndexStore] = None):
        self.index = index
        self.embedding_provider = embedding_provider
        self.blob_store = blob_store
        self.registry = registry
        self.cache = cache
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.owner = owner
        self.max_blob_bytes = max_blob_bytes
        self.document_index = document_index

    async def ingest(self, content: str, filename: str, file_type: Optional[str] = None,
                     owner: Optional[str] = None) -> StoredDocument:
        """
        Ingest one document. The filename is the registry key; re-ingesting a
        filename supersedes its registry record.

        Raises:
            StorageUnavailable: the document or its vector blob could not be stored
            EmbeddingUnavailable: the chunks could not be embedded
        """
        file_type = file_type or get_mime_type(filename)
        owner = owner or self.owner
        logger.info(f"Ingesting document: {filename}")

        # Step 1: store raw content; nothing else is touched if this fails
        try:
            document_blob_id = await self.blob_store.put(content)
        except StorageUnavailable as e:
            logger.log_ingest(filename, "", 0, "failed", {"step": "store_document", "error": str(e)[:100]})
            raise
        uploaded_at = datetime.now(timezone.utc)

        # Step 2: chunk
        chunks = chunk(content, self.chunk_size, self.chunk_overlap)

        # Step 3: embed, order preserved
        try:
            embeddings = await self.embedding_provider.embed_batch(chunks)
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            raise EmbeddingUnavailable(f"Failed to embed {len(chunks)} chunks of {filename}: {e}") from e
        if len(embeddings) != len(chunks):
            raise EmbeddingUnavailable(f"Embedding provider returned {len(embeddings)} vectors for {len(chunks)} chunks")

        entries = [
            VectorEntry(
                text=text,
                embedding=embedding,
                metadata=EntryMetadata(
                    blob_id=document_blob_id,
                    filename=filename,
                    chunk_index=i,
                    total_chunks=len(chunks),
                    extra={"fileType": file_type, "uploadedAt": uploaded_at.isoformat()},
                ),
            )
            for i, (text, embedding) in enumerate(zip(chunks, embeddings))
        ]

        # Step 4: vector blob, the unit a resync downloads
        payload = serialize_entries(entries, self.embedding_provider.model_id, entries[0].dimension)
        try:
            if len(payload) > self.max_blob_bytes:
                raise StorageUnavailable(
                    f"Vector blob for {filename} is {len(payload)} bytes, limit is {self.max_blob_bytes}"
                )
            vector_blob_id = await self.blob_store.put(payload)
        except StorageUnavailable as e:
            logger.log_ingest(filename, document_blob_id, len(chunks), "failed",
                              {"step": "store_vectors", "error": str(e)[:100]})
            raise

        # Step 5: local index and durable cache
        self.index.add(entries)
        added = self.index.snapshot
        self.cache.save(added)

        # Step 6: registry
        record = RegistryRecord(
            document_key=filename,
            vector_blob_id=vector_blob_id,
            document_blob_id=document_blob_id,
            chunk_count=len(chunks),
            owner=owner,
        )
        registered = await self._register(record, added)

        stored = StoredDocument(
            id=document_blob_id,
            blob_id=document_blob_id,
            filename=filename,
            content=content,
            uploaded_at=uploaded_at,
            file_type=file_type,
            size=len(content.encode("utf-8")),
            vector_blob_id=vector_blob_id,
            chunk_count=len(chunks),
            registered=registered,
        )
        if self.document_index is not None:
            await self._record_metadata(stored, owner)

        logger.log_ingest(filename, document_blob_id, len(chunks), "success" if registered else "unregistered")
        return stored

    async def _register(self, record: RegistryRecord, added: VectorIndexSnapshot) -> bool:
        try:
            before = await self.registry.get_stats()
            previous = await self.registry.get_document(record.document_key)
            await self.registry.add_document(record)
            after = await self.registry.get_stats()
        except RegistryUnavailable as e:
            logger.error(f"Registry write failed for {record.document_key}, left for next resync: {e}")
            return False

        # Only a fresh key on an up-to-date index may adopt the new registry version.
        # A resync that swapped the index meanwhile may have dropped these entries.
        if previous is None and before.version == added.version and after.version == before.version + 1:
            if self.index.set_version(after.version, expected=added):
                self.cache.save(self.index.snapshot)
            else:
                logger.info(f"Index changed while registering {record.document_key}, left for next resync")

        return True

    async def _record_metadata(self, stored: StoredDocument, owner: str) -> None:
        metadata = DocumentMetadata(
            document_id=stored.filename,
            filename=stored.filename,
            file_type=stored.file_type,
            size=stored.size,
            blob_id=stored.blob_id,
            chunk_count=stored.chunk_count,
            owner=owner,
            vectors_blob_id=stored.vector_blob_id,
            uploaded_at=stored.uploaded_at.timestamp(),
        )
        try:
            await self.document_index.add_document(owner, metadata)
        except StorageUnavailable as e:
            logger.warning(f"Document list for {owner} not updated with {stored.filename}: {e}")

    async def remove(self, document_key: str, owner: Optional[str] = None) -> None:
        """Remove a document from the registry. The local index converges on the next resync."""
        await self.registry.remove_document(document_key)
        if self.document_index is not None:
            await self.document_index.delete_document(owner or self.owner, document_key)
        logger.log_operation("ingest.remove", "success", {"document_key": document_key})

    async def ingest_file(self, path, owner: Optional[str] = None) -> StoredDocument:
        """Read a supported text file and ingest it under its file name."""
        path = Path(path)
        if not is_supported_file(path.name):
            raise ValueError(
                f"File type \"{path.suffix}\" is not supported. Supported formats: {', '.join(ALL_SUPPORTED_EXTENSIONS)}"
            )

        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return await self.ingest(content, filename=path.name, file_type=get_mime_type(path.name), owner=owner)
