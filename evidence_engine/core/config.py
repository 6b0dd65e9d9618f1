"""Configuration management for the evidence engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    ENGINE_ENV: str = Field(default="dev", description="Environment: dev, test, prod")
    LOG_LEVEL: str | None = Field(default=None, description="Overrides the environment-derived log level")

    # External providers (all optional, the engine degrades without them)
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key for embeddings")
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key for re-ranking")
    SUPABASE_URL: str | None = Field(default=None, description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str | None = Field(default=None, description="Supabase service role key")

    # Embedding configuration
    EMBEDDING_MODELS: str = Field(
        default="text-embedding-3-small,text-embedding-ada-002",
        description="Comma-separated embedding models, tried in order",
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")

    # Relevance re-ranking
    RERANK_MODEL: str = Field(default="claude-haiku-4-5-20251001", description="Model for relevance scoring")
    RERANK_MAX_TOKENS: int = Field(default=10, description="Max tokens for a relevance score reply")
    RERANK_TEMPERATURE: float = Field(default=0.1, description="Temperature for relevance scoring")
    EXTERNAL_CONCURRENCY: int = Field(
        default=4, description="Max concurrent external calls per request or ingestion"
    )

    # Vector search
    SEARCH_LIMIT: int = Field(default=5, description="Document matches returned per query")
    MIN_SIMILARITY: float = Field(default=0.3, description="Cosine similarity floor")

    # Match cache
    MATCH_CACHE_TTL_SECONDS: int = Field(default=3600, description="Citation match cache TTL")
    MATCH_CACHE_KEY_CHARS: int = Field(default=50, description="Message prefix used in cache keys")

    # Ingestion
    MIN_EVIDENCE_CHARS: int = Field(default=100, description="Chunks with less evidence text are dropped")
    MIN_DOCUMENT_EVIDENCE: int = Field(
        default=10, description="Parsed evidence items below which a document uses raw evidence text"
    )
    INGEST_ALLOW_FALLBACK_EMBEDDING: bool = Field(
        default=False, description="Store fallback vectors when the embedding service fails at ingestion"
    )
    CHUNK_TABLE: str = Field(default="evidence_chunks", description="Supabase table for chunks")

    @property
    def embedding_models(self) -> list[str]:
        """Configured embedding models in preference order."""
        return [m.strip() for m in self.EMBEDDING_MODELS.split(",") if m.strip()]


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance
    """
    return Settings()
