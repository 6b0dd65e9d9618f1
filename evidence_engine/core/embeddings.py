"""OpenAI embeddings with ordered model fallback and a deterministic last resort."""

import asyncio
from dataclasses import dataclass
from typing import Protocol

from openai import OpenAI

from evidence_engine.core.config import get_settings
from evidence_engine.core.fallback_embedding import FALLBACK_MODEL, fallback_embedding
from evidence_engine.core.logging import get_logger

logger = get_logger(__name__)


class EmbeddingUnavailableError(Exception):
    """Every configured embedding model failed, or none is configured."""


@dataclass(frozen=True)
class EmbeddedText:
    """A vector plus the model space it lives in."""

    vector: list[float]
    model: str
    fallback: bool = False


class Embedder(Protocol):
    """Embedding capability consumed by search and ingestion."""

    async def embed(self, text: str, allow_fallback: bool = True) -> EmbeddedText: ...

    def fallback(self, text: str) -> EmbeddedText: ...


def _get_client() -> OpenAI:
    """Get OpenAI client instance."""
    settings = get_settings()
    return OpenAI(api_key=settings.OPENAI_API_KEY)


def embed_texts(texts: list[str], models: list[str] | None = None) -> tuple[str, list[list[float]]]:
    """
    Generate embeddings, trying each model in order until one succeeds.

    Args:
        texts: List of text strings to embed
        models: Model identifiers in preference order (defaults to config)

    Returns:
        (model that succeeded, embedding vectors)

    Raises:
        EmbeddingUnavailableError: If no API key is configured or every model fails
    """
    settings = get_settings()
    if not texts:
        return "", []
    if not settings.OPENAI_API_KEY:
        raise EmbeddingUnavailableError("OPENAI_API_KEY is not configured")

    models = models or settings.embedding_models
    client = _get_client()
    errors: list[str] = []

    for model in models:
        try:
            response = client.embeddings.create(model=model, input=texts)

            embeddings = []
            for i, embedding_obj in enumerate(response.data):
                embedding = embedding_obj.embedding

                # Validate dimension
                if len(embedding) != settings.EMBEDDING_DIM:
                    raise ValueError(
                        f"Embedding dimension mismatch for text {i}: "
                        f"expected {settings.EMBEDDING_DIM}, got {len(embedding)}"
                    )

                embeddings.append(embedding)

            logger.info(
                f"Generated {len(embeddings)} embeddings using {model}",
                extra={"extra_data": {"model": model, "count": len(embeddings)}},
            )
            return model, embeddings

        except Exception as e:
            logger.warning(f"Embedding model {model} failed: {e}")
            errors.append(f"{model}: {e}")

    raise EmbeddingUnavailableError("; ".join(errors) or "no embedding models configured")


async def embed_texts_async(
    texts: list[str], models: list[str] | None = None
) -> tuple[str, list[list[float]]]:
    """Async wrapper around embed_texts using thread pool."""
    return await asyncio.to_thread(embed_texts, texts, models)


class EmbeddingProvider:
    """
    Embed text with the hosted model, degrading to the deterministic fallback.

    Vectors produced by the fallback are tagged so callers never compare them
    against hosted-model vectors.
    """

    def __init__(self, models: list[str] | None = None, dim: int | None = None):
        settings = get_settings()
        self.models = models or settings.embedding_models
        self.dim = dim or settings.EMBEDDING_DIM

    async def embed(self, text: str, allow_fallback: bool = True) -> EmbeddedText:
        """
        Embed a single text.

        Args:
            text: Text to embed
            allow_fallback: Return a fallback vector instead of raising

        Raises:
            EmbeddingUnavailableError: If the hosted model fails and fallback is not allowed
        """
        try:
            model, vectors = await embed_texts_async([text], self.models)
            return EmbeddedText(vector=vectors[0], model=model)
        except EmbeddingUnavailableError as e:
            if not allow_fallback:
                raise
            logger.warning(f"Embedding service unavailable, using deterministic fallback: {e}")
            return self.fallback(text)

    def fallback(self, text: str) -> EmbeddedText:
        """Deterministic embedding in the fallback space."""
        return EmbeddedText(vector=fallback_embedding(text, self.dim), model=FALLBACK_MODEL, fallback=True)
