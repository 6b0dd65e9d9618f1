"""Pydantic schemas for indexed document chunks and vector-search matches."""

from pydantic import BaseModel, ConfigDict, Field

from evidence_engine.core.schemas_evidence import Evidence, EvidenceCategory


class DocumentChunk(BaseModel):
    """An indexed unit: embeddable search text plus a richer return text."""

    model_config = ConfigDict(frozen=True)

    id: str
    topic: str = Field(..., description="Owning condition/topic label")
    search_text: str = Field(..., description="Topic + symptoms + paraphrases; the only embedded text")
    evidence_text: str = Field(..., description="Formatted evidence returned to callers, never embedded")
    structured_evidence: tuple[Evidence, ...] = Field(default=())
    source_file: str
    chunk_index: int = Field(..., ge=0)

    def has_category(self, category: EvidenceCategory) -> bool:
        """Whether any structured evidence item has the given category."""
        return any(e.category == category for e in self.structured_evidence)


class DocumentMatch(BaseModel):
    """A document chunk scored against a query."""

    model_config = ConfigDict(frozen=True)

    chunk: DocumentChunk
    similarity: float = Field(..., description="Cosine similarity of query and chunk vectors")
    relevance: float = Field(..., description="Blended relevance, or the similarity when not re-ranked")
    reranked: bool = Field(default=False, description="Whether a model relevance score was blended in")
    fallback_embedding: bool = Field(
        default=False, description="Whether similarity was computed in the fallback embedding space"
    )


class ChunkFilters(BaseModel):
    """Filters applied to stored chunks before scoring."""

    topic: str | None = None
    source_file: str | None = None
    category: EvidenceCategory | None = Field(
        default=None, description="Only chunks with at least one evidence item of this category"
    )
    structured_only: bool = Field(default=False, description="Only chunks with parsed evidence")

    def accepts(self, chunk: DocumentChunk) -> bool:
        """Check a chunk against every configured filter."""
        if self.topic and chunk.topic.lower() != self.topic.lower():
            return False
        if self.source_file and chunk.source_file != self.source_file:
            return False
        if self.category and not chunk.has_category(self.category):
            return False
        if self.structured_only and not chunk.structured_evidence:
            return False
        return True
