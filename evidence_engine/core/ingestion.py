"""Document ingestion: chunk, embed, persist.

Chunks are embedded concurrently up to the external-call bound. A chunk whose
embedding fails is still stored, without a vector, and stays out of vector
search until ``reembed_missing`` repairs it. One chunk's failure never aborts
the rest of the document.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from evidence_engine.core.config import get_settings
from evidence_engine.core.document_processing import (
    ChunkBuilder,
    ManualSection,
    ManualSectionStrategy,
)
from evidence_engine.core.embeddings import EmbeddedText, Embedder, EmbeddingUnavailableError
from evidence_engine.core.logging import get_logger, log_with_context
from evidence_engine.core.schemas_documents import DocumentChunk
from evidence_engine.db.chunk_store import ChunkRecord, ChunkStore, from_record, to_record

logger = get_logger(__name__)


@dataclass
class IngestionReport:
    """Outcome of ingesting one document."""

    source_file: str
    chunks: list[DocumentChunk] = field(default_factory=list)
    embedded: int = 0
    fallback_embedded: int = 0
    unembedded: list[str] = field(default_factory=list)
    store_failures: list[str] = field(default_factory=list)
    replaced: int = 0


class IngestionService:
    """Batch pipeline: ChunkBuilder -> embedder -> chunk store."""

    def __init__(
        self,
        store: ChunkStore,
        embedder: Embedder,
        builder: ChunkBuilder | None = None,
        concurrency: int | None = None,
        allow_fallback: bool | None = None,
    ):
        settings = get_settings()
        self.store = store
        self.embedder = embedder
        self.builder = builder or ChunkBuilder()
        self.concurrency = max(1, concurrency or settings.EXTERNAL_CONCURRENCY)
        self.allow_fallback = (
            allow_fallback if allow_fallback is not None else settings.INGEST_ALLOW_FALLBACK_EMBEDDING
        )

    async def ingest(
        self,
        text: str,
        source_file: str,
        manual_sections: list[ManualSection] | None = None,
    ) -> IngestionReport:
        """
        Ingest a document, replacing any chunks previously stored for it.

        Args:
            text: Extracted document text
            source_file: Originating file name
            manual_sections: Sections that replace heuristic splitting

        Returns:
            IngestionReport

        Raises:
            IngestionError: If the document has no usable text and no manual sections
        """
        strategy = ManualSectionStrategy(manual_sections) if manual_sections else None
        chunks = self.builder.build(text, source_file, strategy)
        report = IngestionReport(source_file=source_file, chunks=chunks)

        report.replaced = await asyncio.to_thread(self.store.delete_by_source, source_file)

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _process(chunk: DocumentChunk) -> None:
            async with semaphore:
                embedded = await self._embed(chunk.id, chunk.search_text)
            if embedded is None:
                report.unembedded.append(chunk.id)
            elif embedded.fallback:
                report.fallback_embedded += 1
            else:
                report.embedded += 1
            try:
                await asyncio.to_thread(self.store.upsert, to_record(chunk, embedded))
            except Exception as e:
                logger.warning(f"Failed to store chunk {chunk.id}: {e}", extra={"source_file": source_file})
                report.store_failures.append(chunk.id)

        await asyncio.gather(*(_process(c) for c in chunks))

        log_with_context(
            logger,
            logging.INFO,
            f"Ingested {len(chunks)} chunks",
            source_file=source_file,
            embedded=report.embedded,
            fallback_embedded=report.fallback_embedded,
            unembedded=len(report.unembedded),
            store_failures=len(report.store_failures),
            replaced=report.replaced,
        )
        return report

    async def reembed_missing(self) -> int:
        """
        Embed stored chunks that have no vector.

        Returns:
            Number of chunks that now have a vector
        """
        records = await asyncio.to_thread(self.store.query, None)
        missing = [r for r in records if not r.has_vector]
        if not missing:
            return 0

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _repair(record: ChunkRecord) -> bool:
            async with semaphore:
                embedded = await self._embed(record.id, record.content)
            if embedded is None:
                return False
            try:
                await asyncio.to_thread(self.store.upsert, to_record(from_record(record), embedded))
                return True
            except Exception as e:
                logger.warning(f"Failed to store re-embedded chunk {record.id}: {e}")
                return False

        repaired = sum(await asyncio.gather(*(_repair(r) for r in missing)))
        logger.info(f"Re-embedded {repaired}/{len(missing)} chunks without vectors")
        return repaired

    async def _embed(self, chunk_id: str, text: str) -> EmbeddedText | None:
        try:
            return await self.embedder.embed(text, allow_fallback=self.allow_fallback)
        except EmbeddingUnavailableError as e:
            logger.warning(f"Embedding unavailable for chunk {chunk_id}, storing without vector: {e}")
            return None
        except Exception as e:
            logger.warning(f"Embedding failed for chunk {chunk_id}, storing without vector: {e}")
            return None
