"""Tests for chunk records and the in-memory chunk store."""

import json

import pytest

from evidence_engine.core.embeddings import EmbeddedText
from evidence_engine.core.schemas_documents import ChunkFilters, DocumentChunk
from evidence_engine.core.schemas_evidence import Evidence, EvidenceCategory
from evidence_engine.db.chunk_store import (
    ChunkRecord,
    InMemoryChunkStore,
    from_record,
    record_matches,
    to_record,
)


def _chunk(source: str = "handbook.pdf", index: int = 0, topic: str = "Anger", evidence=None) -> DocumentChunk:
    if evidence is None:
        evidence = (
            Evidence(quote="Do not become angry", reference="Sahih Al-Bukhari 6116", category=EvidenceCategory.TRADITION),
        )
    return DocumentChunk(
        id=f"evidence-{source}-{index}",
        topic=topic,
        search_text=f"Topic: {topic}",
        evidence_text="Formatted evidence",
        structured_evidence=evidence,
        source_file=source,
        chunk_index=index,
    )


@pytest.fixture
def store():
    return InMemoryChunkStore()


def test_record_round_trip():
    chunk = _chunk()
    embedded = EmbeddedText(vector=[0.1, 0.2], model="text-embedding-3-small")

    record = to_record(chunk, embedded)

    assert record.content == chunk.search_text
    assert record.embedding == [0.1, 0.2]
    assert record.metadata.has_tradition is True
    assert record.metadata.has_scripture is False
    assert record.metadata.evidence_count == 1
    assert record.metadata.embedding_model == "text-embedding-3-small"
    assert from_record(record) == chunk


def test_record_without_vector():
    record = to_record(_chunk())

    assert record.has_vector is False
    assert record.metadata.embedding_model is None


def test_fallback_vector_is_tagged():
    record = to_record(_chunk(), EmbeddedText(vector=[1.0], model="deterministic-fallback-v1", fallback=True))

    assert record.metadata.embedding_fallback is True


def test_vector_text_is_parsed():
    """pgvector columns arrive as text."""
    row = to_record(_chunk()).model_dump(mode="json")
    row["embedding"] = "[0.5,0.25]"

    record = ChunkRecord.model_validate(row)

    assert record.embedding == [0.5, 0.25]


def test_structured_evidence_stored_as_json():
    record = to_record(_chunk())

    items = json.loads(record.metadata.structured_evidence)
    assert items[0]["reference"] == "Sahih Al-Bukhari 6116"


@pytest.mark.parametrize(
    "filters,expected",
    [
        (None, True),
        (ChunkFilters(topic="anger"), True),
        (ChunkFilters(topic="Envy"), False),
        (ChunkFilters(source_file="other.pdf"), False),
        (ChunkFilters(category=EvidenceCategory.TRADITION), True),
        (ChunkFilters(category=EvidenceCategory.SCRIPTURE), False),
        (ChunkFilters(structured_only=True), True),
    ],
)
def test_record_matches(filters, expected):
    assert record_matches(to_record(_chunk()), filters) is expected


def test_structured_only_excludes_raw_chunks():
    assert record_matches(to_record(_chunk(evidence=())), ChunkFilters(structured_only=True)) is False


def test_upsert_replaces_by_id(store):
    store.upsert(to_record(_chunk()))
    store.upsert(to_record(_chunk(topic="Rage")))

    records = store.query()

    assert len(records) == 1
    assert records[0].metadata.topic == "Rage"


def test_query_ordered_and_filtered(store):
    store.upsert(to_record(_chunk("b.pdf", 0)))
    store.upsert(to_record(_chunk("a.pdf", 1)))
    store.upsert(to_record(_chunk("a.pdf", 0, topic="Envy")))

    assert [r.id for r in store.query()] == ["evidence-a.pdf-0", "evidence-a.pdf-1", "evidence-b.pdf-0"]
    assert [r.id for r in store.query(ChunkFilters(topic="Envy"))] == ["evidence-a.pdf-0"]


def test_delete_by_source(store):
    store.upsert(to_record(_chunk("a.pdf", 0)))
    store.upsert(to_record(_chunk("a.pdf", 1)))
    store.upsert(to_record(_chunk("b.pdf", 0)))

    assert store.delete_by_source("a.pdf") == 2
    assert store.delete_by_source("a.pdf") == 0
    assert len(store) == 1
