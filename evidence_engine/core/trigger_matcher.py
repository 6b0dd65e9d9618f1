"""Structured trigger matcher.

Four-tier policy over the curated taxonomy, evaluated in order; the first tier
that produces a result wins:

1. perfect_match    - a trigger keyword is a substring of the message or of
                      the primary emotion label
2. related_theme    - fuzzy trigger-word overlap plus intensity bonuses
                      clears RELATED_THEME_THRESHOLD
3. general_guidance - curated quotes sharing a content word with the message
4. no_direct_match  - nothing found

Exact lexical matches are trusted over fuzzy scores, and fuzzy scores over
generic keyword overlap.
"""

import re

from evidence_engine.core.logging import get_logger
from evidence_engine.core.schemas_citation import (
    CitationMatch,
    Condition,
    ConditionTaxonomy,
    EmotionalSignal,
    GeneralGuidanceMatch,
    NoDirectMatch,
    PerfectMatch,
    RelatedThemeMatch,
)
from evidence_engine.core.schemas_evidence import Evidence, EvidenceRole

logger = get_logger(__name__)

PERFECT_MATCH_CONFIDENCE = 0.9
RELATED_THEME_THRESHOLD = 0.6
TRIGGER_OVERLAP_WEIGHT = 0.3
GENERAL_GUIDANCE_CONFIDENCE = 0.4
GENERAL_GUIDANCE_LIMIT = 3
NO_MATCH_CONFIDENCE = 0.1

# Content words must be longer than this
CONTENT_WORD_MIN_EXCLUSIVE = 3
# Shortest word allowed to match another by containment
PARTIAL_MATCH_MIN_LEN = 3

_WORD_RE = re.compile(r"[\w']+")


def _words(text: str) -> list[str]:
    return _WORD_RE.findall(text.lower())


def _words_overlap(word: str, trigger_word: str) -> bool:
    if word == trigger_word:
        return True
    if min(len(word), len(trigger_word)) < PARTIAL_MATCH_MIN_LEN:
        return False
    return word in trigger_word or trigger_word in word


class TriggerMatcher:
    """Match messages against a frozen condition taxonomy."""

    def __init__(self, taxonomy: ConditionTaxonomy):
        self.taxonomy = taxonomy

    def match(self, message: str, signal: EmotionalSignal) -> CitationMatch:
        """
        Run the four-tier policy.

        Args:
            message: Free-text user message
            signal: Emotional signal for the message

        Returns:
            The first tier's match, or NoDirectMatch
        """
        message_lower = message.lower()
        primary = signal.primary_emotion.lower().strip()

        perfect = self._perfect_match(message_lower, primary)
        if perfect is not None:
            logger.debug(f"Perfect match on condition '{perfect.condition.name}'")
            return perfect

        related = self._related_theme(message_lower, signal)
        if related is not None:
            logger.debug(
                f"Related theme '{related.condition.name}' at confidence {related.confidence:.2f}"
            )
            return related

        general = self._general_guidance(message_lower)
        if general:
            logger.debug(f"General guidance with {len(general)} quotes")
            return GeneralGuidanceMatch(
                evidence=tuple(general),
                confidence=GENERAL_GUIDANCE_CONFIDENCE,
            )

        return NoDirectMatch(confidence=NO_MATCH_CONFIDENCE)

    def semantic_score(self, condition: Condition, message: str, intensity: float) -> float:
        """
        Fuzzy score of a message against one condition.

        Each trigger contributes its fraction of overlapping words times
        TRIGGER_OVERLAP_WEIGHT; intensity rules add fixed bonuses. Capped at 1.0.
        """
        message_words = _words(message)
        score = 0.0

        for trigger in condition.triggers:
            trigger_words = _words(trigger)
            if not trigger_words:
                continue
            matching = [
                tw for tw in trigger_words
                if any(_words_overlap(w, tw) for w in message_words)
            ]
            score += (len(matching) / len(trigger_words)) * TRIGGER_OVERLAP_WEIGHT

        for rule in condition.intensity_rules:
            if rule.applies(intensity):
                score += rule.bonus

        return min(score, 1.0)

    def _perfect_match(self, message_lower: str, primary: str) -> PerfectMatch | None:
        for condition in self.taxonomy.conditions:
            for trigger in condition.triggers:
                needle = trigger.lower().strip()
                if needle and (needle in message_lower or needle in primary):
                    return PerfectMatch(
                        condition=condition,
                        evidence=condition.evidence,
                        confidence=PERFECT_MATCH_CONFIDENCE,
                    )
        return None

    def _related_theme(self, message_lower: str, signal: EmotionalSignal) -> RelatedThemeMatch | None:
        best: Condition | None = None
        best_score = 0.0

        for condition in self.taxonomy.conditions:
            score = self.semantic_score(condition, message_lower, signal.intensity)
            if score > best_score:
                best, best_score = condition, score

        if best is None or best_score <= RELATED_THEME_THRESHOLD:
            return None

        evidence = best.evidence_for(EvidenceRole.SYMPTOM, EvidenceRole.TREATMENT) or list(best.evidence)
        return RelatedThemeMatch(
            condition=best,
            evidence=tuple(evidence),
            confidence=best_score,
        )

    def _general_guidance(self, message_lower: str) -> list[Evidence]:
        content_words = {w for w in _words(message_lower) if len(w) > CONTENT_WORD_MIN_EXCLUSIVE}
        if not content_words:
            return []

        scored: list[tuple[int, Evidence]] = []
        for evidence in self.taxonomy.all_evidence():
            quote_words = _words(evidence.quote)
            shared = {w for w in content_words if any(w in qw for qw in quote_words)}
            if shared:
                scored.append((len(shared), evidence))

        # Stable sort keeps taxonomy order among equal overlaps
        scored.sort(key=lambda item: item[0], reverse=True)
        return [evidence for _, evidence in scored[:GENERAL_GUIDANCE_LIMIT]]
