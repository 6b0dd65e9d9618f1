"""Persisted chunk records and the chunk store contract.

A record holds the embedded search text as ``content``, the vector (absent
until embedding succeeds) and a flat metadata object carrying everything
needed to rebuild the DocumentChunk.
"""

import json
import threading
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field, field_validator

from evidence_engine.core.embeddings import EmbeddedText
from evidence_engine.core.logging import get_logger
from evidence_engine.core.schemas_documents import ChunkFilters, DocumentChunk
from evidence_engine.core.schemas_evidence import Evidence, EvidenceCategory

logger = get_logger(__name__)


class ChunkMetadata(BaseModel):
    """Metadata stored beside each chunk vector."""

    type: Literal["evidence"] = "evidence"
    topic: str
    evidence_text: str
    structured_evidence: str = Field(default="[]", description="JSON-serialized Evidence list")
    source_file: str
    chunk_index: int
    has_scripture: bool = False
    has_tradition: bool = False
    has_scholar: bool = False
    evidence_count: int = 0
    embedding_model: str | None = None
    embedding_fallback: bool = False


class ChunkRecord(BaseModel):
    """Storage shape of one chunk."""

    id: str
    content: str = Field(..., description="Search text; the only embedded field")
    embedding: list[float] | None = None
    metadata: ChunkMetadata

    @field_validator("embedding", mode="before")
    @classmethod
    def _parse_vector_text(cls, value: Any) -> Any:
        # pgvector columns come back from PostgREST as '[0.1,0.2,...]'
        if isinstance(value, str):
            return json.loads(value)
        return value

    @property
    def has_vector(self) -> bool:
        return bool(self.embedding)


CATEGORY_FLAGS = {
    EvidenceCategory.SCRIPTURE: "has_scripture",
    EvidenceCategory.TRADITION: "has_tradition",
    EvidenceCategory.SCHOLAR: "has_scholar",
}


def to_record(chunk: DocumentChunk, embedded: EmbeddedText | None = None) -> ChunkRecord:
    """
    Build the storage record for a chunk.

    Args:
        chunk: Chunk to persist
        embedded: Vector for the chunk's search text, None when embedding failed

    Returns:
        ChunkRecord with evidence-category flags and counts
    """
    structured = [e.model_dump(mode="json") for e in chunk.structured_evidence]
    return ChunkRecord(
        id=chunk.id,
        content=chunk.search_text,
        embedding=embedded.vector if embedded else None,
        metadata=ChunkMetadata(
            topic=chunk.topic,
            evidence_text=chunk.evidence_text,
            structured_evidence=json.dumps(structured, ensure_ascii=False),
            source_file=chunk.source_file,
            chunk_index=chunk.chunk_index,
            has_scripture=chunk.has_category(EvidenceCategory.SCRIPTURE),
            has_tradition=chunk.has_category(EvidenceCategory.TRADITION),
            has_scholar=chunk.has_category(EvidenceCategory.SCHOLAR),
            evidence_count=len(chunk.structured_evidence),
            embedding_model=embedded.model if embedded else None,
            embedding_fallback=embedded.fallback if embedded else False,
        ),
    )


def from_record(record: ChunkRecord) -> DocumentChunk:
    """Rebuild a DocumentChunk from its storage record."""
    meta = record.metadata
    structured = [Evidence.model_validate(item) for item in json.loads(meta.structured_evidence or "[]")]
    return DocumentChunk(
        id=record.id,
        topic=meta.topic,
        search_text=record.content,
        evidence_text=meta.evidence_text,
        structured_evidence=tuple(structured),
        source_file=meta.source_file,
        chunk_index=meta.chunk_index,
    )


def record_matches(record: ChunkRecord, filters: ChunkFilters | None) -> bool:
    """Check a record's metadata against search filters."""
    if filters is None:
        return True
    meta = record.metadata
    if filters.topic and meta.topic.lower() != filters.topic.lower():
        return False
    if filters.source_file and meta.source_file != filters.source_file:
        return False
    if filters.category and not getattr(meta, CATEGORY_FLAGS[filters.category]):
        return False
    if filters.structured_only and meta.evidence_count <= 0:
        return False
    return True


class ChunkStore(Protocol):
    """Storage contract for chunk records. Upsert is atomic per record."""

    def upsert(self, record: ChunkRecord) -> None: ...

    def query(self, filters: ChunkFilters | None = None) -> list[ChunkRecord]: ...

    def delete_by_source(self, source_file: str) -> int: ...


class InMemoryChunkStore:
    """Dict-backed chunk store for tests and key-less local runs."""

    def __init__(self) -> None:
        self._records: dict[str, ChunkRecord] = {}
        self._lock = threading.Lock()

    def upsert(self, record: ChunkRecord) -> None:
        with self._lock:
            self._records[record.id] = record

    def query(self, filters: ChunkFilters | None = None) -> list[ChunkRecord]:
        with self._lock:
            records = list(self._records.values())
        matched = [r for r in records if record_matches(r, filters)]
        return sorted(matched, key=lambda r: (r.metadata.source_file, r.metadata.chunk_index))

    def delete_by_source(self, source_file: str) -> int:
        with self._lock:
            ids = [rid for rid, r in self._records.items() if r.metadata.source_file == source_file]
            for rid in ids:
                del self._records[rid]
        if ids:
            logger.info(f"Deleted {len(ids)} chunks", extra={"source_file": source_file})
        return len(ids)

    def __len__(self) -> int:
        return len(self._records)
