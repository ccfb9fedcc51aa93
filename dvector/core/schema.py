"""
Result records produced by the query and ingestion paths, and the wire models
used to validate persisted snapshots and vector blobs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, field_validator


@dataclass
class RAGSource:
    blob_id: str
    filename: str
    content: str
    score: float


@dataclass
class RAGMetadata:
    processing_time_ms: int = 0
    documents_retrieved: int = 0


@dataclass
class RAGResult:
    answer: str
    sources: List[RAGSource] = field(default_factory=list)
    metadata: RAGMetadata = field(default_factory=RAGMetadata)


@dataclass
class StoredDocument:
    id: str
    blob_id: str
    filename: str
    content: str
    uploaded_at: datetime
    file_type: str
    size: int
    vector_blob_id: str = ""
    chunk_count: int = 0
    registered: bool = True  # False when the registry write failed


# Wire models. Extra keys are ignored so newer writers stay readable.
# Numbers are strict; quoted numbers are rejected.

class EntryModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str
    embedding: List[StrictFloat]
    metadata: Dict[str, Any]

    @field_validator('metadata')
    @classmethod
    def metadata_must_have_required_keys(cls, v):
        if not isinstance(v.get('blobId'), str) or not isinstance(v.get('filename'), str):
            raise ValueError('metadata must include string blobId and filename')
        for key in ('chunkIndex', 'totalChunks'):
            if not isinstance(v.get(key), int) or isinstance(v.get(key), bool):
                raise ValueError(f'metadata must include integer {key}')
        return v


class SnapshotModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    formatVersion: str
    version: StrictInt
    embeddingModelId: str
    dimensions: StrictInt
    entries: List[EntryModel]
    createdAt: datetime

    @field_validator('version', 'dimensions')
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError('must be >= 0')
        return v


class VectorBlobModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    formatVersion: str
    embeddingModel: str
    dimensions: StrictInt
    vectors: List[EntryModel]
    createdAt: datetime

    @field_validator('dimensions')
    @classmethod
    def dimensions_must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError('dimensions must be >= 0')
        return v
