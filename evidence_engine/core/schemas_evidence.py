"""Pydantic schemas for quoted evidence."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EvidenceCategory(str, Enum):
    """Reference category, determined by the reference text."""

    SCRIPTURE = "scripture"
    TRADITION = "tradition"
    SCHOLAR = "scholar"


class EvidenceRole(str, Enum):
    """Role a curated quote plays for its condition."""

    SYMPTOM = "symptom"
    TREATMENT = "treatment"
    GENERAL = "general"


# Display order for grouped evidence
CATEGORY_ORDER: tuple[EvidenceCategory, ...] = (
    EvidenceCategory.SCRIPTURE,
    EvidenceCategory.TRADITION,
    EvidenceCategory.SCHOLAR,
)


class Evidence(BaseModel):
    """A quoted, sourced assertion usable as a citation."""

    model_config = ConfigDict(frozen=True)

    quote: str = Field(..., min_length=1, description="Quoted text, whitespace-normalized")
    reference: str = Field(..., description="Source reference, e.g. 'Luqman 31:19'")
    category: EvidenceCategory = Field(default=EvidenceCategory.SCHOLAR)
    role: EvidenceRole = Field(default=EvidenceRole.GENERAL)
    locator: str | None = Field(default=None, description="Page or section locator, e.g. 'p. 32'")
    scholar: str | None = Field(default=None, description="Named scholar, when the quote introduces one")

    def format_line(self) -> str:
        """Render as a single citation line."""
        line = f'"{self.quote}" [{self.reference}]'
        if self.scholar:
            line = f"{self.scholar}: {line}"
        return line
