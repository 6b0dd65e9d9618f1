"""Tests for the citation engine entry points."""

from unittest.mock import patch

import pytest

from evidence_engine.core.citation_engine import CitationEngine
from evidence_engine.core.config import Settings
from evidence_engine.core.match_cache import CITATION_PREFIX, InMemoryTTLCache
from evidence_engine.core.schemas_citation import (
    CitationTier,
    EmotionalSignal,
    PerfectMatch,
    SourceClass,
)
from evidence_engine.db.chunk_store import InMemoryChunkStore
from tests.fakes.fake_providers import BrokenCache, BrokenStore, CountingEmbedder, CountingGenerator

ANGRY_MESSAGE = "I get so angry and furious at work"


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def angry_signal():
    return EmotionalSignal(primary_emotion="angry", intensity=0.8, triggers=("work",))


@pytest.fixture
def embedder():
    return CountingEmbedder()


@pytest.fixture
def engine(taxonomy, embedder, settings):
    return CitationEngine(
        taxonomy=taxonomy,
        store=InMemoryChunkStore(),
        embedder=embedder,
        cache=InMemoryTTLCache(),
        settings=settings,
    )


class TestMatch:
    @pytest.mark.asyncio
    async def test_structured_match(self, engine, angry_signal):
        result = await engine.match(ANGRY_MESSAGE, angry_signal)

        assert isinstance(result, PerfectMatch)
        assert result.condition.name == "Anger"

    @pytest.mark.asyncio
    async def test_cached_result_skips_matcher(self, engine, angry_signal):
        first = await engine.match(ANGRY_MESSAGE, angry_signal)

        with patch.object(engine.matcher, "match", wraps=engine.matcher.match) as spy:
            second = await engine.match(ANGRY_MESSAGE, angry_signal)

        assert second == first
        spy.assert_not_called()

    @pytest.mark.asyncio
    async def test_unreadable_cache_entry_is_recomputed(self, engine, angry_signal):
        engine.cache.set(engine._key(CITATION_PREFIX, ANGRY_MESSAGE, angry_signal), "not json", 60)

        result = await engine.match(ANGRY_MESSAGE, angry_signal)

        assert result.tier == "perfect_match"

    @pytest.mark.asyncio
    async def test_broken_cache_is_bypassed(self, taxonomy, embedder, settings, angry_signal):
        cache = BrokenCache()
        engine = CitationEngine(taxonomy, InMemoryChunkStore(), embedder, cache=cache, settings=settings)

        result = await engine.match(ANGRY_MESSAGE, angry_signal)

        assert result.tier == "perfect_match"
        assert cache.gets == 1
        assert cache.sets == 1


class TestHybridMatch:
    @pytest.mark.asyncio
    async def test_combines_documents(self, engine, embedder, sample_handbook, angry_signal):
        await engine.ingest(sample_handbook, "sample_handbook.txt")

        result = await engine.hybrid_match(ANGRY_MESSAGE, angry_signal)

        assert result.tier == CitationTier.PERFECT_MATCH
        assert result.condition.name == "Anger"
        assert result.document_topic == "Anger"
        assert result.sources == (SourceClass.STRUCTURED, SourceClass.DOCUMENTS, SourceClass.MODEL_KNOWLEDGE)
        assert 0 < len(result.evidence) <= 5
        assert result.embedding_fallback is False

    @pytest.mark.asyncio
    async def test_cached_hybrid_skips_external_calls(self, taxonomy, embedder, settings, sample_handbook, angry_signal):
        generator = CountingGenerator(reply="0.8")
        engine = CitationEngine(
            taxonomy, InMemoryChunkStore(), embedder, generator=generator, cache=InMemoryTTLCache(), settings=settings
        )
        await engine.ingest(sample_handbook, "sample_handbook.txt")

        first = await engine.hybrid_match(ANGRY_MESSAGE, angry_signal)
        embed_calls, prompts = len(embedder.calls), len(generator.prompts)
        second = await engine.hybrid_match(ANGRY_MESSAGE, angry_signal)

        assert second == first
        assert prompts > 0
        assert len(embedder.calls) == embed_calls
        assert len(generator.prompts) == prompts

    @pytest.mark.asyncio
    async def test_store_failure_degrades_to_structured(self, taxonomy, embedder, settings, angry_signal):
        engine = CitationEngine(taxonomy, BrokenStore(), embedder, settings=settings)

        result = await engine.hybrid_match(ANGRY_MESSAGE, angry_signal)

        assert result.tier == CitationTier.PERFECT_MATCH
        assert result.document_matches == ()
        assert result.sources == (SourceClass.STRUCTURED, SourceClass.MODEL_KNOWLEDGE)

    @pytest.mark.asyncio
    async def test_degraded_result_is_not_cached(self, taxonomy, embedder, settings, sample_handbook, angry_signal):
        cache = InMemoryTTLCache()
        down = CitationEngine(taxonomy, BrokenStore(), embedder, cache=cache, settings=settings)
        degraded = await down.hybrid_match(ANGRY_MESSAGE, angry_signal)
        assert degraded.document_matches == ()

        healthy = CitationEngine(taxonomy, InMemoryChunkStore(), embedder, cache=cache, settings=settings)
        await healthy.ingest(sample_handbook, "sample_handbook.txt")
        result = await healthy.hybrid_match(ANGRY_MESSAGE, angry_signal)

        assert result.document_matches
        assert SourceClass.DOCUMENTS in result.sources

    @pytest.mark.asyncio
    async def test_limit_is_part_of_cache_key(self, taxonomy, embedder, sample_handbook, angry_signal):
        settings = Settings(_env_file=None, MIN_SIMILARITY=0.0)
        engine = CitationEngine(taxonomy, InMemoryChunkStore(), embedder, cache=InMemoryTTLCache(), settings=settings)
        await engine.ingest(sample_handbook, "sample_handbook.txt")

        narrow = await engine.hybrid_match(ANGRY_MESSAGE, angry_signal, limit=1)
        wide = await engine.hybrid_match(ANGRY_MESSAGE, angry_signal, limit=5)

        assert len(narrow.document_matches) == 1
        assert len(wide.document_matches) > 1

    @pytest.mark.asyncio
    async def test_nothing_found(self, engine, neutral_signal):
        result = await engine.hybrid_match("ok", neutral_signal)

        assert result.tier == CitationTier.NO_DIRECT_MATCH
        assert result.evidence == ()
        assert result.sources == (SourceClass.MODEL_KNOWLEDGE,)


class TestDocuments:
    @pytest.mark.asyncio
    async def test_ingest_returns_chunks(self, engine, sample_handbook):
        chunks = await engine.ingest(sample_handbook, "sample_handbook.txt")

        assert [c.topic for c in chunks] == ["Anger", "Envy", "Hard-Heartedness"]
        assert len(engine.store) == 3

    @pytest.mark.asyncio
    async def test_search(self, engine, sample_handbook):
        await engine.ingest(sample_handbook, "sample_handbook.txt")

        matches = await engine.search("I am jealous when my friend succeeds", limit=1, min_similarity=0.05)

        assert [m.chunk.topic for m in matches] == ["Envy"]

    @pytest.mark.asyncio
    async def test_search_propagates_store_errors(self, taxonomy, embedder, settings):
        engine = CitationEngine(taxonomy, BrokenStore(), embedder, settings=settings)

        with pytest.raises(ConnectionError):
            await engine.search("anything")

    @pytest.mark.asyncio
    async def test_reembed_missing(self, taxonomy, settings, sample_handbook):
        embedder = CountingEmbedder(fail_on={"Topic: Anger"})
        engine = CitationEngine(taxonomy, InMemoryChunkStore(), embedder, settings=settings)
        await engine.ingest(sample_handbook, "sample_handbook.txt")

        embedder.fail_on = set()

        assert await engine.reembed_missing() == 1


class TestFromSettings:
    def test_keyless_defaults(self, settings):
        engine = CitationEngine.from_settings(settings=settings)

        assert isinstance(engine.store, InMemoryChunkStore)
        assert engine.search_service.reranker is None
        assert engine.ingestion.allow_fallback is True
        assert [c.name for c in engine.list_conditions()] == ["Anger", "Envy", "Hard-heartedness"]

    @pytest.mark.asyncio
    async def test_keyless_engine_searches_in_fallback_space(self, settings, sample_handbook):
        engine = CitationEngine.from_settings(settings=settings)
        await engine.ingest(sample_handbook, "sample_handbook.txt")

        matches = await engine.search("My heart feels empty and numb", limit=1, min_similarity=0.05)

        assert matches[0].chunk.topic == "Hard-Heartedness"
        assert matches[0].fallback_embedding is True


def test_get_condition(engine):
    assert engine.get_condition("envy").name == "Envy"
    assert engine.get_condition("pride") is None


@pytest.mark.asyncio
async def test_describe_sources(engine, sample_handbook, angry_signal):
    await engine.ingest(sample_handbook, "sample_handbook.txt")
    result = await engine.hybrid_match(ANGRY_MESSAGE, angry_signal)

    lines = CitationEngine.describe_sources(result)

    assert lines == [
        "Curated taxonomy: Anger (perfect_match)",
        "Indexed documents: Anger from sample_handbook.txt",
        "Model knowledge: general guidance from the language model",
    ]
