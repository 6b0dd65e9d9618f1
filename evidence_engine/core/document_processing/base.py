"""Section types and the parsing-strategy interface for evidence documents.

Every structural-parsing heuristic sits behind ``SectionParsingStrategy`` so a
different splitter (manual sections, layout-aware extraction) can replace the
regex one without touching chunk building, matching or combining.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class IngestionError(Exception):
    """Raised when a document has no usable text to ingest."""

    def __init__(self, message: str, source_file: str | None = None):
        super().__init__(message)
        self.source_file = source_file


@dataclass
class TopicSection:
    """One topic unit cut from a document, before evidence parsing."""

    title: str
    """Topic label, e.g. 'Anger'."""

    evidence_block: str
    """Raw text under the evidence heading; empty when none was found."""

    symptom_block: str = ""
    """Raw text under the symptom/description heading."""

    raw_text: str = ""
    """Full section text as split from the document."""

    recovered: bool = False
    """Whether the boundary came from the title heuristic instead of a marker."""


@dataclass
class ManualSection:
    """Caller-supplied section that bypasses heuristic splitting."""

    title: str
    evidence_text: str
    symptom_text: str = ""


class SectionParsingStrategy(ABC):
    """Turns document text into topic sections."""

    name: str = "base"

    @property
    def requires_text(self) -> bool:
        """Whether the strategy reads the document text at all."""
        return True

    @abstractmethod
    def split(self, text: str) -> list[TopicSection]:
        """Split text into topic sections.

        Args:
            text: Full document text

        Returns:
            Sections in document order
        """
        pass
