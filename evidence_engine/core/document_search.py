"""Vector search over stored evidence chunks.

Query and chunk vectors are only compared inside one embedding space. A chunk
embedded by the same hosted model as the query uses its stored vector; any
other pairing (query or chunk produced by the deterministic fallback, or by a
different model) is compared in the fallback space and the match is tagged
``fallback_embedding``. Chunks stored without a vector are skipped until
re-embedded.
"""

import asyncio

from evidence_engine.core.config import get_settings
from evidence_engine.core.embeddings import EmbeddedText, Embedder
from evidence_engine.core.logging import get_logger
from evidence_engine.core.reranker import RelevanceReranker
from evidence_engine.core.schemas_documents import ChunkFilters, DocumentMatch
from evidence_engine.core.similarity import rank_by_similarity
from evidence_engine.db.chunk_store import ChunkRecord, ChunkStore, from_record

logger = get_logger(__name__)

# Candidates fetched per requested result, for re-ranking
CANDIDATE_MULTIPLIER = 2


class DocumentSearchService:
    """Cosine search plus optional relevance re-ranking."""

    def __init__(
        self,
        store: ChunkStore,
        embedder: Embedder,
        reranker: RelevanceReranker | None = None,
    ):
        self.store = store
        self.embedder = embedder
        self.reranker = reranker

    async def search(
        self,
        query: str,
        limit: int | None = None,
        min_similarity: float | None = None,
        filters: ChunkFilters | None = None,
        rerank: bool = True,
    ) -> list[DocumentMatch]:
        """
        Search stored chunks.

        Args:
            query: Free-text query
            limit: Max matches returned (N); 2N candidates are re-ranked
            min_similarity: Cosine similarity floor (inclusive)
            filters: Metadata filters applied before scoring
            rerank: Blend in model relevance scores when a re-ranker is configured

        Returns:
            Matches, most relevant first
        """
        settings = get_settings()
        limit = limit if limit is not None else settings.SEARCH_LIMIT
        min_similarity = min_similarity if min_similarity is not None else settings.MIN_SIMILARITY
        if limit <= 0 or not query.strip():
            return []

        records = await asyncio.to_thread(self.store.query, filters)
        records = [r for r in records if r.has_vector]
        if not records:
            logger.info("No embedded chunks to search")
            return []

        embedded = await self.embedder.embed(query)
        same_space, other_space = self._partition(embedded, records)

        ranked: list[tuple[tuple[ChunkRecord, bool], float]] = []
        if same_space:
            ranked += rank_by_similarity(
                embedded.vector,
                [((r, False), r.embedding) for r in same_space],
                min_similarity=min_similarity,
            )
        if other_space:
            fallback_query = embedded.vector if embedded.fallback else self.embedder.fallback(query).vector
            ranked += rank_by_similarity(
                fallback_query,
                [((r, True), self._fallback_vector(r)) for r in other_space],
                min_similarity=min_similarity,
            )
        ranked.sort(key=lambda pair: pair[1], reverse=True)
        ranked = ranked[:limit * CANDIDATE_MULTIPLIER]

        matches = [
            DocumentMatch(
                chunk=from_record(record),
                similarity=similarity,
                relevance=similarity,
                fallback_embedding=fallback,
            )
            for (record, fallback), similarity in ranked
        ]
        logger.info(
            f"Vector search kept {len(matches)}/{len(records)} chunks",
            extra={"extra_data": {"fallback_chunks": len(other_space), "min_similarity": min_similarity}},
        )

        if rerank and self.reranker is not None and matches:
            matches = await self.reranker.rerank(query, matches)

        return matches[:limit]

    @staticmethod
    def _partition(
        embedded: EmbeddedText, records: list[ChunkRecord]
    ) -> tuple[list[ChunkRecord], list[ChunkRecord]]:
        """Split records into those sharing the query's hosted-model space and the rest."""
        same_space, other_space = [], []
        for record in records:
            meta = record.metadata
            if not embedded.fallback and not meta.embedding_fallback and meta.embedding_model == embedded.model:
                same_space.append(record)
            else:
                other_space.append(record)
        return same_space, other_space

    def _fallback_vector(self, record: ChunkRecord) -> list[float]:
        if record.metadata.embedding_fallback:
            return record.embedding
        return self.embedder.fallback(record.content).vector
