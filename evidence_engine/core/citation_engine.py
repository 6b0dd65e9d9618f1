"""Citation engine: the entry point for matching, ingestion and search.

Every collaborator is passed in through the constructor; ``from_settings``
wires the default adapters from configuration:

    engine = CitationEngine.from_settings()
    chunks = await engine.ingest(handbook_text, "handbook.pdf")
    result = await engine.hybrid_match("I get so angry at work", signal)
"""

import asyncio

from evidence_engine.core.config import Settings, get_settings
from evidence_engine.core.document_processing import ChunkBuilder, ManualSection
from evidence_engine.core.document_search import DocumentSearchService
from evidence_engine.core.embeddings import Embedder, EmbeddingProvider
from evidence_engine.core.hybrid_combiner import combine
from evidence_engine.core.ingestion import IngestionService
from evidence_engine.core.llm import AnthropicGenerator, TextGenerator
from evidence_engine.core.logging import get_logger
from evidence_engine.core.match_cache import (
    CITATION_PREFIX,
    HYBRID_PREFIX,
    InMemoryTTLCache,
    MatchCache,
    cache_key,
    read_cached,
    write_cached,
)
from evidence_engine.core.reranker import RelevanceReranker
from evidence_engine.core.schemas_citation import (
    CitationMatch,
    Condition,
    ConditionTaxonomy,
    EmotionalSignal,
    HybridCitationMatch,
    SourceClass,
    citation_match_adapter,
)
from evidence_engine.core.schemas_documents import ChunkFilters, DocumentChunk, DocumentMatch
from evidence_engine.core.taxonomy import default_taxonomy
from evidence_engine.core.trigger_matcher import TriggerMatcher
from evidence_engine.db.chunk_store import ChunkStore, InMemoryChunkStore

logger = get_logger(__name__)


class CitationEngine:
    """Hybrid evidence retrieval and citation matching."""

    def __init__(
        self,
        taxonomy: ConditionTaxonomy,
        store: ChunkStore,
        embedder: Embedder,
        generator: TextGenerator | None = None,
        cache: MatchCache | None = None,
        settings: Settings | None = None,
        chunk_builder: ChunkBuilder | None = None,
        ingest_allow_fallback: bool | None = None,
    ):
        self.settings = settings or get_settings()
        self.taxonomy = taxonomy
        self.store = store
        self.cache = cache
        self.matcher = TriggerMatcher(taxonomy)

        reranker = None
        if generator is not None:
            reranker = RelevanceReranker(
                generator,
                max_tokens=self.settings.RERANK_MAX_TOKENS,
                temperature=self.settings.RERANK_TEMPERATURE,
                concurrency=self.settings.EXTERNAL_CONCURRENCY,
            )
        self.search_service = DocumentSearchService(store, embedder, reranker)
        self.ingestion = IngestionService(
            store,
            embedder,
            builder=chunk_builder or ChunkBuilder(
                min_evidence_chars=self.settings.MIN_EVIDENCE_CHARS,
                min_document_evidence=self.settings.MIN_DOCUMENT_EVIDENCE,
            ),
            concurrency=self.settings.EXTERNAL_CONCURRENCY,
            allow_fallback=ingest_allow_fallback,
        )

    @classmethod
    def from_settings(
        cls,
        taxonomy: ConditionTaxonomy | None = None,
        settings: Settings | None = None,
    ) -> "CitationEngine":
        """
        Build an engine with the configured adapters.

        Without Supabase credentials chunks live in memory; without an
        Anthropic key re-ranking is disabled; without an OpenAI key every
        vector, stored or queried, comes from the deterministic fallback.
        """
        settings = settings or get_settings()

        if settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY:
            from evidence_engine.db.evidence_chunks import SupabaseChunkStore

            store: ChunkStore = SupabaseChunkStore(table=settings.CHUNK_TABLE)
        else:
            logger.info("Supabase not configured, using in-memory chunk store")
            store = InMemoryChunkStore()

        generator = None
        if settings.ANTHROPIC_API_KEY:
            generator = AnthropicGenerator(model=settings.RERANK_MODEL, api_key=settings.ANTHROPIC_API_KEY)
        else:
            logger.info("Anthropic not configured, relevance re-ranking disabled")

        return cls(
            taxonomy=taxonomy or default_taxonomy(),
            store=store,
            embedder=EmbeddingProvider(models=settings.embedding_models, dim=settings.EMBEDDING_DIM),
            generator=generator,
            cache=InMemoryTTLCache(),
            settings=settings,
            ingest_allow_fallback=settings.INGEST_ALLOW_FALLBACK_EMBEDDING or not settings.OPENAI_API_KEY,
        )

    # =========================================================================
    # Matching
    # =========================================================================

    async def match(self, message: str, signal: EmotionalSignal) -> CitationMatch:
        """
        Structured-only matching against the taxonomy.

        Args:
            message: Free-text user message
            signal: Emotional signal for the message

        Returns:
            CitationMatch variant for the first tier that matched
        """
        key = self._key(CITATION_PREFIX, message, signal)
        cached = await read_cached(self.cache, key)
        if cached is not None:
            try:
                return citation_match_adapter.validate_json(cached)
            except ValueError as e:
                logger.warning(f"Discarding unreadable cached match: {e}")

        result = self.matcher.match(message, signal)
        logger.info(f"Structured match: {result.tier} ({result.confidence:.2f})")

        await write_cached(
            self.cache, key, citation_match_adapter.dump_json(result).decode("utf-8"), self._ttl
        )
        return result

    async def hybrid_match(
        self,
        message: str,
        signal: EmotionalSignal,
        limit: int | None = None,
    ) -> HybridCitationMatch:
        """
        Structured match combined with vector-search document matches.

        A store or search failure degrades to the structured match alone.

        Args:
            message: Free-text user message
            signal: Emotional signal for the message
            limit: Document matches to combine (defaults to SEARCH_LIMIT)

        Returns:
            HybridCitationMatch
        """
        limit = limit if limit is not None else self.settings.SEARCH_LIMIT
        key = self._key(f"{HYBRID_PREFIX}{limit}:", message, signal)
        cached = await read_cached(self.cache, key)
        if cached is not None:
            try:
                return HybridCitationMatch.model_validate_json(cached)
            except ValueError as e:
                logger.warning(f"Discarding unreadable cached hybrid match: {e}")

        structured, (documents, search_ok) = await asyncio.gather(
            asyncio.to_thread(self.matcher.match, message, signal),
            self._search_for_match(message, limit),
        )

        result = combine(structured, documents)
        logger.info(
            f"Hybrid match: {result.tier.value} ({result.confidence:.2f}) from "
            f"{', '.join(s.value for s in result.sources)}",
            extra={"extra_data": {"structured_tier": result.structured_tier.value, "documents": len(documents)}},
        )

        # Degraded results are not cached
        if search_ok:
            await write_cached(self.cache, key, result.model_dump_json(), self._ttl)
        return result

    async def _search_for_match(self, message: str, limit: int) -> tuple[list[DocumentMatch], bool]:
        """Document matches and whether the search succeeded."""
        try:
            documents = await self.search_service.search(
                message, limit=limit, min_similarity=self.settings.MIN_SIMILARITY
            )
            return documents, True
        except Exception as e:
            logger.warning(f"Document search failed, using structured match only: {e}")
            return [], False

    # =========================================================================
    # Documents
    # =========================================================================

    async def ingest(
        self,
        text: str,
        source_file: str,
        manual_sections: list[ManualSection] | None = None,
    ) -> list[DocumentChunk]:
        """
        Chunk, embed and persist a document, replacing earlier chunks from it.

        Raises:
            IngestionError: If the document has no usable text and no manual sections
        """
        report = await self.ingestion.ingest(text, source_file, manual_sections)
        return report.chunks

    async def search(
        self,
        query: str,
        limit: int | None = None,
        min_similarity: float | None = None,
        filters: ChunkFilters | None = None,
    ) -> list[DocumentMatch]:
        """Raw vector search, without the structured or combining layers."""
        return await self.search_service.search(
            query,
            limit=limit if limit is not None else self.settings.SEARCH_LIMIT,
            min_similarity=min_similarity if min_similarity is not None else self.settings.MIN_SIMILARITY,
            filters=filters,
        )

    async def reembed_missing(self) -> int:
        """Re-embed stored chunks that have no vector; returns how many were repaired."""
        return await self.ingestion.reembed_missing()

    # =========================================================================
    # Taxonomy
    # =========================================================================

    def list_conditions(self) -> list[Condition]:
        return list(self.taxonomy.conditions)

    def get_condition(self, name: str) -> Condition | None:
        return self.taxonomy.get(name)

    @staticmethod
    def describe_sources(match: HybridCitationMatch) -> list[str]:
        """One readable line per source class that contributed to a match."""
        lines = []
        for source in match.sources:
            if source == SourceClass.STRUCTURED:
                name = match.condition.name if match.condition else "general guidance"
                lines.append(f"Curated taxonomy: {name} ({match.structured_tier.value})")
            elif source == SourceClass.DOCUMENTS and match.document_matches:
                top = match.document_matches[0].chunk
                suffix = " (fallback embedding)" if match.embedding_fallback else ""
                lines.append(f"Indexed documents: {top.topic} from {top.source_file}{suffix}")
            elif source == SourceClass.MODEL_KNOWLEDGE:
                lines.append("Model knowledge: general guidance from the language model")
        return lines

    # =========================================================================
    # Helpers
    # =========================================================================

    def _key(self, prefix: str, message: str, signal: EmotionalSignal) -> str:
        return cache_key(prefix, message, signal, self.settings.MATCH_CACHE_KEY_CHARS)

    @property
    def _ttl(self) -> int:
        return self.settings.MATCH_CACHE_TTL_SECONDS
