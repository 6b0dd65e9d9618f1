"""Pydantic schemas for the condition taxonomy and citation match results.

Match results are a closed, versioned schema: one variant per citation tier,
discriminated on ``tier``. Serialize with ``model_dump_json`` and read back
with ``citation_match_adapter``.
"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from evidence_engine.core.schemas_documents import DocumentMatch
from evidence_engine.core.schemas_evidence import Evidence, EvidenceRole


class CitationTier(str, Enum):
    """Discrete citation confidence levels."""

    PERFECT_MATCH = "perfect_match"
    RELATED_THEME = "related_theme"
    GENERAL_GUIDANCE = "general_guidance"
    NO_DIRECT_MATCH = "no_direct_match"

    @property
    def rank(self) -> int:
        """Specificity rank: higher is more specific."""
        return _TIER_RANK[self]


_TIER_RANK = {
    CitationTier.NO_DIRECT_MATCH: 0,
    CitationTier.GENERAL_GUIDANCE: 1,
    CitationTier.RELATED_THEME: 2,
    CitationTier.PERFECT_MATCH: 3,
}


class SourceClass(str, Enum):
    """Source classes that can contribute to a hybrid match."""

    STRUCTURED = "structured"
    DOCUMENTS = "documents"
    MODEL_KNOWLEDGE = "model_knowledge"


# =============================================================================
# Taxonomy
# =============================================================================


class IntensityRule(BaseModel):
    """Score bonus applied when signal intensity crosses a threshold."""

    model_config = ConfigDict(frozen=True)

    above: float | None = Field(default=None, ge=0.0, le=1.0)
    below: float | None = Field(default=None, ge=0.0, le=1.0)
    bonus: float = Field(default=0.2, ge=0.0, le=1.0)

    def applies(self, intensity: float) -> bool:
        if self.above is None and self.below is None:
            return False
        if self.above is not None and not intensity > self.above:
            return False
        if self.below is not None and not intensity < self.below:
            return False
        return True


class Condition(BaseModel):
    """A named category in the curated taxonomy."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    display_name: str | None = Field(default=None, description="Localized display name")
    source_range: str | None = Field(default=None, description="Page range in the source, e.g. '30-42'")
    triggers: tuple[str, ...] = Field(default=())
    evidence: tuple[Evidence, ...] = Field(..., min_length=1)
    intensity_rules: tuple[IntensityRule, ...] = Field(default=())

    def evidence_for(self, *roles: EvidenceRole) -> list[Evidence]:
        """Evidence items with any of the given roles."""
        return [e for e in self.evidence if e.role in roles]


class ConditionTaxonomy(BaseModel):
    """Immutable curated taxonomy, loaded once and passed to the matcher."""

    model_config = ConfigDict(frozen=True)

    version: str = Field(default="taxonomy_v1")
    conditions: tuple[Condition, ...] = Field(default=())

    @model_validator(mode="after")
    def _unique_names(self) -> "ConditionTaxonomy":
        names = [c.name.lower() for c in self.conditions]
        if len(names) != len(set(names)):
            raise ValueError("condition names must be unique")
        return self

    def get(self, name: str) -> Condition | None:
        """Case-insensitive lookup by name."""
        wanted = name.strip().lower()
        for condition in self.conditions:
            if condition.name.lower() == wanted:
                return condition
        return None

    def all_evidence(self) -> list[Evidence]:
        """Every curated evidence item, in taxonomy order."""
        return [e for c in self.conditions for e in c.evidence]


class EmotionalSignal(BaseModel):
    """Emotion analysis supplied by an external collaborator."""

    model_config = ConfigDict(frozen=True)

    primary_emotion: str = Field(default="neutral")
    intensity: float = Field(default=0.0, ge=0.0, le=1.0)
    triggers: tuple[str, ...] = Field(default=())
    context: str = Field(default="")


# =============================================================================
# Structured match variants
# =============================================================================


class _MatchBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    schema_version: Literal["citation_v1"] = "citation_v1"
    confidence: float = Field(..., ge=0.0, le=1.0)


class PerfectMatch(_MatchBase):
    """A trigger keyword matched the message or the primary emotion."""

    tier: Literal["perfect_match"] = "perfect_match"
    condition: Condition
    evidence: tuple[Evidence, ...] = Field(..., min_length=1)


class RelatedThemeMatch(_MatchBase):
    """Fuzzy trigger overlap plus intensity bonuses cleared the threshold."""

    tier: Literal["related_theme"] = "related_theme"
    condition: Condition
    evidence: tuple[Evidence, ...] = Field(..., min_length=1)


class GeneralGuidanceMatch(_MatchBase):
    """Curated quotes share content words with the message."""

    tier: Literal["general_guidance"] = "general_guidance"
    condition: None = None
    evidence: tuple[Evidence, ...] = Field(..., min_length=1)


class NoDirectMatch(_MatchBase):
    """Nothing in the taxonomy supports the message."""

    tier: Literal["no_direct_match"] = "no_direct_match"
    condition: None = None
    evidence: tuple[Evidence, ...] = Field(default=(), max_length=0)


CitationMatch = Annotated[
    Union[PerfectMatch, RelatedThemeMatch, GeneralGuidanceMatch, NoDirectMatch],
    Field(discriminator="tier"),
]

citation_match_adapter: TypeAdapter[CitationMatch] = TypeAdapter(CitationMatch)


# =============================================================================
# Hybrid result
# =============================================================================


class HybridCitationMatch(BaseModel):
    """Structured match blended with vector-search document matches."""

    model_config = ConfigDict(frozen=True)

    schema_version: Literal["hybrid_citation_v1"] = "hybrid_citation_v1"
    tier: CitationTier
    condition: Condition | None = None
    document_topic: str | None = Field(default=None, description="Topic of the best document match")
    evidence: tuple[Evidence, ...] = Field(default=())
    confidence: float = Field(..., ge=0.0, le=1.0, description="Combined confidence")
    structured_tier: CitationTier
    structured_confidence: float = Field(..., ge=0.0, le=1.0)
    sources: tuple[SourceClass, ...] = Field(default=())
    document_matches: tuple[DocumentMatch, ...] = Field(default=())
    embedding_fallback: bool = Field(
        default=False, description="Document scores came from the deterministic fallback embedding"
    )

    @model_validator(mode="after")
    def _check_invariants(self) -> "HybridCitationMatch":
        if self.tier != CitationTier.NO_DIRECT_MATCH and not self.evidence:
            raise ValueError(f"evidence must not be empty for tier {self.tier.value}")
        if self.tier.rank < self.structured_tier.rank:
            raise ValueError("hybrid tier may not be lower than the structured tier")
        return self
