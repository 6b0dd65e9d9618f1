"""Document processing package: evidence parsing, section splitting and chunk building.

Usage:
    from evidence_engine.core.document_processing import (
        ChunkBuilder,
        EvidenceParser,
        ManualSection,
        ManualSectionStrategy,
    )
"""

from evidence_engine.core.document_processing.base import (
    IngestionError,
    ManualSection,
    SectionParsingStrategy,
    TopicSection,
)

from evidence_engine.core.document_processing.evidence_parser import (
    EvidenceParser,
    classify_reference,
    extract_locator,
    format_evidence,
)

from evidence_engine.core.document_processing.strategies import (
    HandbookRegexStrategy,
    ManualSectionStrategy,
)

from evidence_engine.core.document_processing.chunker import (
    ChunkBuilder,
    build_search_text,
)

__all__ = [
    # Base types
    "IngestionError",
    "ManualSection",
    "SectionParsingStrategy",
    "TopicSection",
    # Evidence parsing
    "EvidenceParser",
    "classify_reference",
    "extract_locator",
    "format_evidence",
    # Strategies
    "HandbookRegexStrategy",
    "ManualSectionStrategy",
    # Chunking
    "ChunkBuilder",
    "build_search_text",
]
