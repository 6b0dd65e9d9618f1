"""Blend a structured citation match with vector-search document matches.

The structured tier is a floor: document evidence can escalate it one step
(no_direct_match -> general_guidance, general_guidance -> related_theme) when
mean document relevance is high enough, and never lowers it.
"""

from evidence_engine.core.logging import get_logger
from evidence_engine.core.schemas_citation import (
    CitationMatch,
    CitationTier,
    HybridCitationMatch,
    SourceClass,
)
from evidence_engine.core.schemas_documents import DocumentMatch
from evidence_engine.core.schemas_evidence import Evidence, EvidenceCategory

logger = get_logger(__name__)

STRUCTURED_WEIGHT = 0.4
DOCUMENT_WEIGHT = 0.6
ESCALATE_TO_GENERAL_RELEVANCE = 0.7
ESCALATE_TO_RELATED_RELEVANCE = 0.8
MAX_EVIDENCE = 5
DOCUMENT_QUOTE_CHARS = 500


def mean_relevance(matches: list[DocumentMatch]) -> float:
    if not matches:
        return 0.0
    return sum(m.relevance for m in matches) / len(matches)


def escalate_tier(structured_tier: CitationTier, relevance: float) -> CitationTier:
    """One-step escalation toward higher specificity; never a downgrade."""
    if structured_tier == CitationTier.NO_DIRECT_MATCH and relevance > ESCALATE_TO_GENERAL_RELEVANCE:
        return CitationTier.GENERAL_GUIDANCE
    if structured_tier == CitationTier.GENERAL_GUIDANCE and relevance > ESCALATE_TO_RELATED_RELEVANCE:
        return CitationTier.RELATED_THEME
    return structured_tier


def combined_confidence(structured_confidence: float, matches: list[DocumentMatch]) -> float:
    if not matches:
        return structured_confidence
    blended = STRUCTURED_WEIGHT * structured_confidence + DOCUMENT_WEIGHT * mean_relevance(matches)
    return max(0.0, min(1.0, blended))


def _document_evidence(match: DocumentMatch) -> list[Evidence]:
    chunk = match.chunk
    if chunk.structured_evidence:
        return list(chunk.structured_evidence)
    # Raw-text chunks carry no parsed items; cite the evidence text itself
    return [
        Evidence(
            quote=chunk.evidence_text[:DOCUMENT_QUOTE_CHARS].strip(),
            reference=chunk.source_file,
            category=EvidenceCategory.SCHOLAR,
        )
    ]


def merge_evidence(structured: CitationMatch, matches: list[DocumentMatch]) -> list[Evidence]:
    """
    Structured evidence first, then document evidence, each scored (structured
    items by the structured confidence, document items by their match
    relevance); deduplicated, stable-sorted by score, capped at MAX_EVIDENCE.
    """
    scored: list[tuple[float, Evidence]] = [(structured.confidence, e) for e in structured.evidence]
    for match in matches:
        scored.extend((match.relevance, e) for e in _document_evidence(match))

    seen: set[tuple[str, str]] = set()
    unique: list[tuple[float, Evidence]] = []
    for score, evidence in scored:
        key = (evidence.quote, evidence.reference)
        if key in seen:
            continue
        seen.add(key)
        unique.append((score, evidence))

    unique.sort(key=lambda item: item[0], reverse=True)
    return [evidence for _, evidence in unique[:MAX_EVIDENCE]]


def combine(structured: CitationMatch, matches: list[DocumentMatch]) -> HybridCitationMatch:
    """
    Combine a structured match with document matches.

    Args:
        structured: Trigger matcher result
        matches: Document matches, most relevant first

    Returns:
        HybridCitationMatch with combined confidence and contributing sources
    """
    structured_tier = CitationTier(structured.tier)
    relevance = mean_relevance(matches)
    tier = escalate_tier(structured_tier, relevance) if matches else structured_tier

    sources = []
    if structured_tier != CitationTier.NO_DIRECT_MATCH:
        sources.append(SourceClass.STRUCTURED)
    if matches:
        sources.append(SourceClass.DOCUMENTS)
    sources.append(SourceClass.MODEL_KNOWLEDGE)

    if tier != structured_tier:
        logger.info(
            f"Escalated {structured_tier.value} -> {tier.value} on mean document relevance {relevance:.2f}"
        )

    return HybridCitationMatch(
        tier=tier,
        condition=structured.condition,
        document_topic=matches[0].chunk.topic if matches else None,
        evidence=tuple(merge_evidence(structured, matches)),
        confidence=combined_confidence(structured.confidence, matches),
        structured_tier=structured_tier,
        structured_confidence=structured.confidence,
        sources=tuple(sources),
        document_matches=tuple(matches),
        embedding_fallback=any(m.fallback_embedding for m in matches),
    )
