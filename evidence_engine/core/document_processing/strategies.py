"""Section parsing strategies.

HandbookRegexStrategy splits extracted handbook text on chapter markers (or
markdown headings), then recovers sections whose chapter marker was lost in
extraction: an all-caps title line followed closely by a symptom cue starts
a new section, but only once the current section already had its own
symptom block. The recovery is approximate; ManualSectionStrategy is the
override when it mis-splits a document.
"""

import re

from evidence_engine.core.document_processing.base import (
    ManualSection,
    SectionParsingStrategy,
    TopicSection,
)
from evidence_engine.core.logging import get_logger

logger = get_logger(__name__)

CHAPTER_MARKER_RE = re.compile(r"(?m)^[ \t]*(?:CHAPTER|Chapter)\s+\d+\b")
MARKDOWN_HEADING_RE = re.compile(r"(?m)^#[ \t]+\S")

_HEADING_PREFIX = r"^[ \t]*(?:#+[ \t]*)?"
EVIDENCE_HEADING_RE = re.compile(
    _HEADING_PREFIX + r"(?:Qur['’‘ʾ]?[āa]nic|Prophetic|Scholarly|Evidence)\b[^\n\"“”]{0,80}$",
    re.IGNORECASE | re.MULTILINE,
)
SYMPTOM_HEADING_RE = re.compile(
    _HEADING_PREFIX + r"(?:Signs?\s*(?:&|and)\s*Symptoms?|Symptoms|Description)\b[^\n\"“”]{0,80}$",
    re.IGNORECASE | re.MULTILINE,
)
# Headings that close an evidence or symptom block
END_HEADING_RE = re.compile(
    _HEADING_PREFIX + r"(?:Academic|Treatments?|Cures?\b|Signs?\s*(?:&|and)\s*Symptoms?|CHAPTER\s+\d+)"
    r"|^#[ \t]+\S",
    re.IGNORECASE | re.MULTILINE,
)

TITLE_LINE_RE = re.compile(r"^[A-Z][A-Z \t&'’\-]*$")
TITLE_STOP_RE = re.compile(r"SIGNS|SYMPTOMS|EVIDENCE|QUR|PROPHETIC|ACADEMIC|TREATMENT|CHAPTER|DESCRIPTION")
ARABIC_RE = re.compile(r"[؀-ۿ]")
DIGITS_ONLY_RE = re.compile(r"^[\d\s]+$")
SPLIT_TITLE_LETTER_RE = re.compile(r"^([A-Z])[ \t]+([A-Z]{2,})")

# Lines scanned after a marker for the topic label
TITLE_SCAN_LINES = 10
# Lines after a title candidate that may hold its symptom cue
RECOVERY_LOOKAHEAD = 3
# Fragments this short are joined to the next without a space
FRAGMENT_MAX_CHARS = 3
MIN_RECOVERED_TITLE_CHARS = 4


def _block_after(text: str, heading_re: re.Pattern, closing: tuple[re.Pattern, ...]) -> str:
    """Text from the end of the first heading_re line to the nearest closing heading."""
    heading = heading_re.search(text)
    if not heading:
        return ""
    rest = text[heading.end():]
    ends = [m.start() for m in (pattern.search(rest) for pattern in closing) if m]
    return rest[:min(ends, default=len(rest))].strip()


def extract_evidence_block(section: str) -> str:
    """Raw text under the evidence heading, up to the next section heading."""
    return _block_after(section, EVIDENCE_HEADING_RE, (END_HEADING_RE,))


def extract_symptom_block(section: str) -> str:
    """Raw text under the symptom/description heading, up to the next heading."""
    return _block_after(section, SYMPTOM_HEADING_RE, (END_HEADING_RE, EVIDENCE_HEADING_RE))


def _join_title_fragments(fragments: list[str]) -> str:
    title = ""
    previous = ""
    for fragment in fragments:
        fragment = SPLIT_TITLE_LETTER_RE.sub(r"\1\2", fragment.strip())
        if not title:
            title = fragment
        elif (
            len(previous) <= FRAGMENT_MAX_CHARS
            or len(fragment) <= FRAGMENT_MAX_CHARS
            or previous.endswith("-")
        ):
            title += fragment
        else:
            title += " " + fragment
        previous = fragment
    return re.sub(r"\s+", " ", title).strip()


def extract_title(section: str) -> str | None:
    """
    Topic label from the first run of capitalized lines of a section.

    Skips the chapter marker line, blank lines, page numbers and Arabic text;
    stops at the first section heading. Short fragments broken across lines
    by extraction ('FA' + 'NTASIZING') are merged.
    """
    lines = section.splitlines()
    if not lines:
        return None

    first = lines[0].strip()
    if first.startswith("#"):
        return first.lstrip("#").strip() or None

    start = 1 if CHAPTER_MARKER_RE.match(lines[0]) else 0
    if start:
        remainder = CHAPTER_MARKER_RE.sub("", lines[0], count=1).strip(" \t:.-")
        if remainder:
            lines = [lines[0], remainder] + lines[1:]

    fragments: list[str] = []
    for line in lines[start:start + TITLE_SCAN_LINES + 1]:
        line = line.strip()
        if not line or DIGITS_ONLY_RE.match(line) or ARABIC_RE.search(line):
            continue
        if TITLE_LINE_RE.match(line):
            if TITLE_STOP_RE.search(line):
                break
            fragments.append(line)
        elif fragments:
            break

    if not fragments:
        return None
    return _join_title_fragments(fragments).title()


def _is_recovery_title(lines: list[str], idx: int) -> bool:
    line = lines[idx].strip()
    if len(line) < MIN_RECOVERED_TITLE_CHARS or not TITLE_LINE_RE.match(line) or TITLE_STOP_RE.search(line):
        return False
    following = [l for l in lines[idx + 1:] if l.strip()][:RECOVERY_LOOKAHEAD]
    return any(SYMPTOM_HEADING_RE.match(l) for l in following)


def recover_sections(section: str) -> list[str]:
    """
    Split a section where an all-caps title introduces a second topic.

    A title line only starts a new section when a symptom heading already
    appeared earlier in the current one.
    """
    lines = section.splitlines(keepends=True)
    parts: list[str] = []
    current: list[str] = []
    seen_symptoms = False

    for idx, line in enumerate(lines):
        if seen_symptoms and _is_recovery_title(lines, idx):
            parts.append("".join(current))
            current = []
            seen_symptoms = False
        if SYMPTOM_HEADING_RE.match(line.rstrip("\n")):
            seen_symptoms = True
        current.append(line)

    parts.append("".join(current))
    return [p for p in parts if p.strip()]


def _split_on(text: str, marker_re: re.Pattern) -> list[str]:
    starts = [m.start() for m in marker_re.finditer(text)]
    if not starts:
        return [text]
    bounds = starts + [len(text)]
    return [text[bounds[i]:bounds[i + 1]] for i in range(len(starts))]


class HandbookRegexStrategy(SectionParsingStrategy):
    """Regex splitter for extracted handbook text."""

    name = "handbook_regex"

    def split(self, text: str) -> list[TopicSection]:
        text = text.replace("\r\n", "\n")

        if CHAPTER_MARKER_RE.search(text):
            primary = _split_on(text, CHAPTER_MARKER_RE)
            mode = "chapter"
        elif MARKDOWN_HEADING_RE.search(text):
            primary = _split_on(text, MARKDOWN_HEADING_RE)
            mode = "markdown"
        else:
            primary = [text]
            mode = "single"

        sections: list[TopicSection] = []
        for part in primary:
            recovered = recover_sections(part)
            for i, raw in enumerate(recovered):
                sections.append(
                    TopicSection(
                        title=extract_title(raw) or f"Section {len(sections) + 1}",
                        evidence_block=extract_evidence_block(raw),
                        symptom_block=extract_symptom_block(raw),
                        raw_text=raw,
                        recovered=i > 0,
                    )
                )

        recovered_count = sum(1 for s in sections if s.recovered)
        logger.info(
            f"Split document into {len(sections)} sections ({mode} markers, {recovered_count} recovered)"
        )
        return sections


class ManualSectionStrategy(SectionParsingStrategy):
    """Use caller-supplied sections instead of heuristic splitting."""

    name = "manual"

    def __init__(self, sections: list[ManualSection]):
        self.sections = list(sections)

    @property
    def requires_text(self) -> bool:
        return False

    def split(self, text: str) -> list[TopicSection]:
        return [
            TopicSection(
                title=s.title.strip(),
                evidence_block=s.evidence_text,
                symptom_block=s.symptom_text,
                raw_text="\n\n".join(p for p in (s.title, s.symptom_text, s.evidence_text) if p),
            )
            for s in self.sections
        ]
