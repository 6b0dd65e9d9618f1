"""Relevance re-ranking of vector-search candidates via the generate capability.

Each candidate is scored independently, with a bounded number of calls in
flight. A candidate whose call fails keeps its cosine similarity.
"""

import asyncio

from evidence_engine.core.config import get_settings
from evidence_engine.core.llm import TextGenerator, parse_score
from evidence_engine.core.logging import get_logger
from evidence_engine.core.schemas_documents import DocumentMatch

logger = get_logger(__name__)

SIMILARITY_WEIGHT = 0.4
MODEL_SCORE_WEIGHT = 0.6
CANDIDATE_TEXT_CHARS = 1000


def build_relevance_prompt(query: str, candidate_text: str) -> str:
    """Prompt asking for a single 0-1 relevance score."""
    return (
        "Rate how relevant this passage is to the user's message.\n\n"
        f'User message: "{query}"\n\n'
        f"Passage:\n{candidate_text[:CANDIDATE_TEXT_CHARS]}\n\n"
        "Reply with ONLY a number between 0 and 1, where 1 means the passage "
        "directly addresses the message and 0 means it is unrelated."
    )


def blend_relevance(similarity: float, model_score: float) -> float:
    return SIMILARITY_WEIGHT * similarity + MODEL_SCORE_WEIGHT * model_score


class RelevanceReranker:
    """Blend model relevance scores into cosine-ranked matches."""

    def __init__(
        self,
        generator: TextGenerator | None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        concurrency: int | None = None,
    ):
        settings = get_settings()
        self.generator = generator
        self.max_tokens = max_tokens if max_tokens is not None else settings.RERANK_MAX_TOKENS
        self.temperature = temperature if temperature is not None else settings.RERANK_TEMPERATURE
        self.concurrency = max(1, concurrency or settings.EXTERNAL_CONCURRENCY)

    async def score(self, query: str, candidate_text: str) -> float:
        """
        Model relevance score for one candidate.

        Raises:
            GenerationUnavailableError: If the generator is not configured
            ValueError: If the reply holds no score
        """
        prompt = build_relevance_prompt(query, candidate_text)
        reply = await self.generator.generate(prompt, self.max_tokens, self.temperature)
        return parse_score(reply)

    async def rerank(self, query: str, matches: list[DocumentMatch]) -> list[DocumentMatch]:
        """
        Re-score matches and sort by relevance, most relevant first.

        Without a generator, matches keep their cosine relevance.
        """
        if not matches:
            return []
        if self.generator is None:
            return sorted(matches, key=lambda m: m.relevance, reverse=True)

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _rescore(match: DocumentMatch) -> DocumentMatch:
            async with semaphore:
                try:
                    model_score = await self.score(query, match.chunk.search_text)
                except Exception as e:
                    logger.warning(f"Re-rank failed for chunk {match.chunk.id}, keeping cosine score: {e}")
                    return match
            return match.model_copy(
                update={
                    "relevance": blend_relevance(match.similarity, model_score),
                    "reranked": True,
                }
            )

        rescored = await asyncio.gather(*(_rescore(m) for m in matches))
        reranked_count = sum(1 for m in rescored if m.reranked)
        logger.info(f"Re-ranked {reranked_count}/{len(matches)} candidates")

        return sorted(rescored, key=lambda m: m.relevance, reverse=True)
