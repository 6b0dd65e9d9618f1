"""Cleanup for text extracted from paginated, column-laid-out sources."""

import re

_PAGE_MARKER_RE = re.compile(r"\[p\.\s*\d+\]")
_PAGE_NUMBER_LINE_RE = re.compile(r"(?m)^[ \t]*\d{1,4}[ \t]*$")
_BULLET_RE = re.compile(r"(?m)^[ \t]*[-•*▪o][ \t]+")

# "F\norgetfulness" -> "Forgetfulness"
_CAPITAL_NEWLINE_SPLIT_RE = re.compile(r"\b([A-Z])\n([a-z])")
# "Y our" -> "Your"; "A", "I" and the vocative "O" are words on their own
_CAPITAL_SPACE_SPLIT_RE = re.compile(r"\b([B-HJ-NP-Z])[ \t]+([a-z]{2,})")
# "[A\nl-Baqarah" -> "[Al-Baqarah"
_BRACKET_GLUE_RE = re.compile(r"\[\s*A\s+l-")


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run to one space."""
    return re.sub(r"\s+", " ", text).strip()


def fix_reference_glue(text: str) -> str:
    """Repair bracketed references broken by extraction."""
    return _BRACKET_GLUE_RE.sub("[Al-", text)


def rejoin_split_words(text: str) -> str:
    """Re-join capital letters split from the rest of their word."""
    text = _CAPITAL_NEWLINE_SPLIT_RE.sub(r"\1\2", text)
    return _CAPITAL_SPACE_SPLIT_RE.sub(r"\1\2", text)


def strip_page_artifacts(text: str) -> str:
    """Remove [p. N] markers and lines holding only a page number."""
    text = _PAGE_MARKER_RE.sub("", text)
    return _PAGE_NUMBER_LINE_RE.sub("", text)


def clean_evidence_text(text: str) -> str:
    """
    Clean a raw evidence block for display.

    Single line breaks inside sentences become spaces; paragraph breaks
    (blank lines) are kept.
    """
    text = text.replace("\r\n", "\n")
    text = fix_reference_glue(text)
    text = rejoin_split_words(text)
    text = strip_page_artifacts(text)
    text = re.sub(r"\n[ \t]*\n[\s]*", "\n\n", text)
    text = re.sub(r"(?<!\n)\n(?!\n)", " ", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    paragraphs = [p.strip() for p in text.split("\n\n")]
    return "\n\n".join(p for p in paragraphs if p)


def clean_symptoms(text: str) -> str:
    """Flatten a symptom block into one line of plain text."""
    text = _BULLET_RE.sub("", text.replace("\r\n", "\n"))
    text = rejoin_split_words(text)
    text = strip_page_artifacts(text)
    return normalize_whitespace(text)
