"""Evidence chunk builder.

Turns a document into one DocumentChunk per topic section. The chunk's
search text (topic, symptoms, paraphrase variants) is what gets embedded;
its evidence text is what callers get back, and is never embedded.
"""

import logging
import re

from evidence_engine.core.config import get_settings
from evidence_engine.core.document_processing.base import (
    IngestionError,
    SectionParsingStrategy,
    TopicSection,
)
from evidence_engine.core.document_processing.evidence_parser import EvidenceParser, format_evidence
from evidence_engine.core.document_processing.strategies import HandbookRegexStrategy
from evidence_engine.core.document_processing.text_cleanup import clean_evidence_text, clean_symptoms
from evidence_engine.core.logging import get_logger, log_with_context
from evidence_engine.core.schemas_documents import DocumentChunk
from evidence_engine.core.schemas_evidence import Evidence

logger = get_logger(__name__)

MIN_SECTION_CHARS = 50
MAX_SYMPTOM_CHARS = 1000
MAX_KEYWORDS = 10

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "with", "from", "that",
    "this", "they", "them", "their", "there", "have", "been", "were", "when", "which", "what",
    "your", "will", "into", "about", "than", "then", "such", "also", "more", "most", "very",
    "symptoms", "signs",
})


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Distinct content words (length > 3, not stop words) in order of appearance."""
    keywords: list[str] = []
    for word in re.split(r"\W+", text.lower()):
        if len(word) > 3 and word not in STOP_WORDS and not word.isdigit() and word not in keywords:
            keywords.append(word)
            if len(keywords) == limit:
                break
    return keywords


def search_variations(topic: str, symptoms: str) -> list[str]:
    """Conversational paraphrases that widen vector recall."""
    name = topic.lower()
    variations = [
        f"How to deal with {name}",
        f"How to control {name}",
        f"Treatment for {name}",
        f"Cure for {name}",
    ]
    for keyword in extract_keywords(symptoms):
        variations.append(f"I feel {keyword}")
        variations.append(f"I have {keyword}")
    return variations


def build_search_text(topic: str, symptoms: str) -> str:
    """Embeddable text: topic label, cleaned symptoms, paraphrase variants."""
    parts = [f"Topic: {topic}", f"Symptoms: {symptoms}"]
    parts.extend(search_variations(topic, symptoms))
    return "\n\n".join(parts)


class ChunkBuilder:
    """Split documents into evidence chunks."""

    def __init__(
        self,
        parser: EvidenceParser | None = None,
        min_evidence_chars: int | None = None,
        min_document_evidence: int | None = None,
    ):
        settings = get_settings()
        self.parser = parser or EvidenceParser()
        self.min_evidence_chars = (
            min_evidence_chars if min_evidence_chars is not None else settings.MIN_EVIDENCE_CHARS
        )
        self.min_document_evidence = (
            min_document_evidence if min_document_evidence is not None else settings.MIN_DOCUMENT_EVIDENCE
        )

    def build(
        self,
        text: str,
        source_file: str,
        strategy: SectionParsingStrategy | None = None,
    ) -> list[DocumentChunk]:
        """
        Build chunks from document text.

        Args:
            text: Full extracted document text
            source_file: Originating file name
            strategy: Section splitter (defaults to the handbook regex strategy)

        Returns:
            Chunks in document order; empty when no section has usable evidence

        Raises:
            IngestionError: If the strategy needs text and the document has none
        """
        strategy = strategy or HandbookRegexStrategy()
        if strategy.requires_text and not (text or "").strip():
            raise IngestionError(f"Document {source_file} has no usable text", source_file=source_file)

        sections = [s for s in strategy.split(text or "") if self._usable(s)]
        parsed = [self.parser.parse(s.evidence_block, s.title) for s in sections]

        total_items = sum(len(items) for items in parsed)
        raw_mode = total_items < min(self.min_document_evidence, len(sections))
        log_with_context(
            logger,
            logging.INFO,
            f"Parsed {total_items} evidence items across {len(sections)} sections",
            source_file=source_file,
            strategy=strategy.name,
            raw_mode=raw_mode,
        )

        chunks: list[DocumentChunk] = []
        for section, items in zip(sections, parsed):
            evidence_text, structured = self._evidence_for(section, [] if raw_mode else items)
            if len(evidence_text) < self.min_evidence_chars:
                logger.warning(
                    f"Skipping '{section.title}': insufficient evidence text ({len(evidence_text)} chars)",
                    extra={"source_file": source_file},
                )
                continue

            symptoms = clean_symptoms(section.symptom_block)[:MAX_SYMPTOM_CHARS].strip()
            if not symptoms:
                symptoms = f"Symptoms of {section.title}"

            chunk_index = len(chunks)
            chunks.append(
                DocumentChunk(
                    id=f"evidence-{source_file}-{chunk_index}",
                    topic=section.title,
                    search_text=build_search_text(section.title, symptoms),
                    evidence_text=evidence_text,
                    structured_evidence=tuple(structured),
                    source_file=source_file,
                    chunk_index=chunk_index,
                )
            )
            logger.debug(f"Built chunk for '{section.title}' with {len(structured)} evidence items")

        if not chunks:
            logger.warning(
                f"No chunks produced from {source_file}: no section had usable evidence",
                extra={"source_file": source_file},
            )
        else:
            logger.info(f"Built {len(chunks)} evidence chunks", extra={"source_file": source_file})
        return chunks

    def _usable(self, section: TopicSection) -> bool:
        body = section.raw_text or section.evidence_block
        if len(body.strip()) < MIN_SECTION_CHARS:
            logger.debug(f"Skipping short section '{section.title}'")
            return False
        return True

    def _evidence_for(self, section: TopicSection, items: list[Evidence]) -> tuple[str, list[Evidence]]:
        """Formatted structured evidence, or the cleaned raw block when nothing parsed."""
        if items:
            return format_evidence(items), items
        return clean_evidence_text(section.evidence_block), []
