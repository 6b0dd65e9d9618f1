"""Extract quoted, referenced evidence from raw document text.

The primary pattern is universal: a quoted span of 15-500 characters followed
by a bracketed reference. The category comes from the reference alone.
Introduction-phrase patterns ("Allah says", "The Prophet said", "Imam X said")
are a secondary pass, used only when the primary pattern finds nothing.
"""

import re

from evidence_engine.core.document_processing.text_cleanup import fix_reference_glue, normalize_whitespace
from evidence_engine.core.logging import get_logger
from evidence_engine.core.schemas_evidence import CATEGORY_ORDER, Evidence, EvidenceCategory

logger = get_logger(__name__)

MIN_QUOTE_CHARS = 15
MAX_QUOTE_CHARS = 500

_OPEN_QUOTE = "\"“"
_CLOSE_QUOTE = "\"”"
_QUOTE_BODY = rf"[^\"“”]{{{MIN_QUOTE_CHARS},{MAX_QUOTE_CHARS}}}"

UNIVERSAL_PATTERN = re.compile(rf"[{_OPEN_QUOTE}]({_QUOTE_BODY})[{_CLOSE_QUOTE}]\s*\[([^\]]+)\]")

_OPTIONAL_REF = r"(?:\s*\[([^\]]+)\])?"
_SAYS = r"(?:says?|said)\s*[:,]?\s*(?:[o•]\s*)?"

SCRIPTURE_INTRO_PATTERN = re.compile(
    rf"(?:All[āa]h|God)\s+{_SAYS}[{_OPEN_QUOTE}]({_QUOTE_BODY})[{_CLOSE_QUOTE}]{_OPTIONAL_REF}",
    re.IGNORECASE,
)
TRADITION_INTRO_PATTERN = re.compile(
    rf"(?:The\s+)?Prophet(?:\s+Muhammad)?\s*(?:ﷺ|\(?peace be upon him\)?)?\s*{_SAYS}"
    rf"[{_OPEN_QUOTE}]({_QUOTE_BODY})[{_CLOSE_QUOTE}]{_OPTIONAL_REF}",
    re.IGNORECASE,
)
SCHOLAR_INTRO_PATTERN = re.compile(
    rf"(?:Im[āa]m|Shaykh|Scholar)\s+([A-Z][^\"“”\n:]{{1,60}}?)\s+{_SAYS}"
    rf"[{_OPEN_QUOTE}]({_QUOTE_BODY})[{_CLOSE_QUOTE}]{_OPTIONAL_REF}",
)

# Reference tokens, matched case-insensitively against the reference text.
# Prefixes match at a word start; book names must be whole words.
SCRIPTURE_PREFIXES = ("qur", "surah", "sūrah", "ankab")
SCRIPTURE_BOOKS = (
    "baqarah", "imran", "imrān", "nisa", "nisā", "ma'idah", "an'am", "a'raf", "anfal", "tawbah",
    "yunus", "yusuf", "ra'd", "ibrahim", "nahl", "isra", "kahf", "maryam", "taha", "anbiya", "hajj",
    "mu'minun", "nur", "furqan", "shu'ara", "naml", "qasas", "rum", "luqman", "ahzab", "saba",
    "fatir", "yasin", "zumar", "ghafir", "fussilat", "shura", "zukhruf", "hujurat", "rahman",
    "waqi'ah", "hadid", "hashr", "jumu'ah", "talaq", "mulk", "muzzammil", "insan", "naba", "a'la",
    "fajr", "shams", "duha", "sharh", "asr", "ikhlas", "falaq", "nas",
)
TRADITION_PREFIXES = (
    "sahih", "ṣaḥīḥ", "sunan", "musnad", "bukhari", "bukhārī", "muslim", "tirmidhi", "nasa",
    "dawud", "dāwūd", "ahmad", "majah", "muwatta", "hadith", "ḥadīth", "riyad",
)

_VERSE_RE = re.compile(r"\d+\s*:\s*\d+")
_LOCATOR_RE = re.compile(r"\bp{1,2}\.?\s*(\d+(?:\s*[-–]\s*\d+)?)", re.IGNORECASE)
_PREFIX_BOUNDARY = r"(?<![a-z]){}"
_WORD_BOUNDARY = r"(?<![a-z]){}(?![a-z])"


def _has_token(reference_lower: str, tokens: tuple[str, ...], boundary: str = _PREFIX_BOUNDARY) -> bool:
    return any(re.search(boundary.format(re.escape(t)), reference_lower) for t in tokens)


def classify_reference(reference: str) -> EvidenceCategory:
    """
    Classify a reference string.

    Scripture when it names a scripture book or has a chapter:verse locator,
    tradition when it names a tradition collection, scholar otherwise.
    """
    ref = reference.lower()
    if (
        _has_token(ref, SCRIPTURE_PREFIXES)
        or _has_token(ref, SCRIPTURE_BOOKS, _WORD_BOUNDARY)
        or _VERSE_RE.search(ref)
    ):
        return EvidenceCategory.SCRIPTURE
    if _has_token(ref, TRADITION_PREFIXES):
        return EvidenceCategory.TRADITION
    return EvidenceCategory.SCHOLAR


def extract_locator(reference: str) -> str | None:
    """Page locator ('p. 32') inside a reference, if any."""
    found = _LOCATOR_RE.search(reference)
    if not found:
        return None
    pages = re.sub(r"\s+", "", found.group(1))
    return f"p. {pages}"


def _clean_quote(text: str) -> str:
    text = normalize_whitespace(text)
    return text.replace("‘", "'").replace("’", "'")


def _clean_reference(text: str) -> str:
    return normalize_whitespace(text)


def format_evidence(evidence: list[Evidence] | tuple[Evidence, ...]) -> str:
    """
    Render evidence grouped scripture, tradition, scholar.

    One citation line per item, blank line between groups.
    """
    groups = []
    for category in CATEGORY_ORDER:
        lines = [e.format_line() for e in evidence if e.category == category]
        if lines:
            groups.append("\n".join(lines))
    return "\n\n".join(groups)


class EvidenceParser:
    """Find quote/reference pairs in text and classify them."""

    def parse(self, text: str, label: str = "") -> list[Evidence]:
        """
        Parse evidence items from a block of raw text.

        Never raises: on an unexpected error, returns what was collected so far.

        Args:
            text: Raw extracted text
            label: Owning topic, for logging

        Returns:
            Evidence items in document order
        """
        evidence: list[Evidence] = []
        if not text:
            return evidence

        try:
            text = fix_reference_glue(text)
            seen: set[tuple[str, str]] = set()

            for found in UNIVERSAL_PATTERN.finditer(text):
                quote = _clean_quote(found.group(1))
                reference = _clean_reference(found.group(2))
                if not quote or not reference or (quote, reference) in seen:
                    continue
                seen.add((quote, reference))
                evidence.append(
                    Evidence(
                        quote=quote,
                        reference=reference,
                        category=classify_reference(reference),
                        locator=extract_locator(reference),
                    )
                )

            if not evidence:
                evidence.extend(self._parse_introductions(text))
                if evidence:
                    logger.debug(f"Introduction patterns found {len(evidence)} items for '{label}'")

        except Exception as e:
            logger.warning(f"Evidence parsing failed for '{label}', keeping {len(evidence)} items: {e}")

        logger.debug(f"Parsed {len(evidence)} evidence items for '{label}'")
        return evidence

    def _parse_introductions(self, text: str) -> list[Evidence]:
        found_items: list[tuple[int, Evidence]] = []

        for found in SCRIPTURE_INTRO_PATTERN.finditer(text):
            reference = _clean_reference(found.group(2) or "Qur'an")
            found_items.append((
                found.start(),
                Evidence(
                    quote=_clean_quote(found.group(1)),
                    reference=reference,
                    category=EvidenceCategory.SCRIPTURE,
                    locator=extract_locator(reference),
                ),
            ))

        for found in TRADITION_INTRO_PATTERN.finditer(text):
            reference = _clean_reference(found.group(2) or "Prophetic tradition")
            found_items.append((
                found.start(),
                Evidence(
                    quote=_clean_quote(found.group(1)),
                    reference=reference,
                    category=EvidenceCategory.TRADITION,
                    locator=extract_locator(reference),
                ),
            ))

        for found in SCHOLAR_INTRO_PATTERN.finditer(text):
            scholar = normalize_whitespace(found.group(1))
            reference = _clean_reference(found.group(3) or f"Imam {scholar}")
            found_items.append((
                found.start(),
                Evidence(
                    quote=_clean_quote(found.group(2)),
                    reference=reference,
                    category=EvidenceCategory.SCHOLAR,
                    locator=extract_locator(reference),
                    scholar=scholar,
                ),
            ))

        found_items.sort(key=lambda item: item[0])
        return [e for _, e in found_items]
