"""Tests for section parsing strategies."""

from evidence_engine.core.document_processing import (
    HandbookRegexStrategy,
    ManualSection,
    ManualSectionStrategy,
)
from evidence_engine.core.document_processing.strategies import (
    extract_evidence_block,
    extract_symptom_block,
    extract_title,
    recover_sections,
)


def test_split_handbook_recovers_missing_chapter_marker(sample_handbook):
    sections = HandbookRegexStrategy().split(sample_handbook)

    assert [s.title for s in sections] == ["Anger", "Envy", "Hard-Heartedness", "Fantasizing"]
    assert [s.recovered for s in sections] == [False, False, True, False]


def test_split_drops_preamble_before_first_chapter(sample_handbook):
    sections = HandbookRegexStrategy().split(sample_handbook)

    assert all("Notes on the diseases" not in s.raw_text for s in sections)


def test_extract_title_skips_arabic_and_page_numbers():
    section = "CHAPTER 1\nالغضب\n30\nANGER\nSigns & Symptoms\n- You shout"

    assert extract_title(section) == "Anger"


def test_extract_title_merges_broken_fragments():
    section = "CHAPTER 9\nFA\nNTASIZING\nSigns & Symptoms\n- You daydream"

    assert extract_title(section) == "Fantasizing"


def test_extract_title_keeps_multi_word_titles():
    section = "CHAPTER 3\nLOVE OF\nWEALTH\nDescription\nYou hoard money"

    assert extract_title(section) == "Love Of Wealth"


def test_extract_title_markdown_heading():
    assert extract_title("# Arrogance\n## Signs & Symptoms\n- Pride") == "Arrogance"


def test_extract_title_none_without_capitals():
    assert extract_title("CHAPTER 5\n\nsome lowercase prose only") is None


def test_evidence_block_ends_at_treatment_heading():
    section = (
        "ANGER\nSigns & Symptoms\nYou shout\n"
        "Qur'ānic, Prophetic & Scholarly Evidence\n"
        '"Restrain the anger and pardon" [Āl ʿImrān 3:134]\n'
        "Treatment\nStay silent"
    )

    assert extract_evidence_block(section) == '"Restrain the anger and pardon" [Āl ʿImrān 3:134]'
    assert extract_symptom_block(section) == "You shout"


def test_evidence_block_empty_without_heading():
    assert extract_evidence_block("ANGER\nSigns & Symptoms\nYou shout") == ""


def test_recover_sections_requires_prior_symptom_block():
    """A caps title before any symptom block is the section's own title."""
    text = "ENVY\nSigns & Symptoms\nBitterness\nEvidence\nquotes\nPRIDE\nSymptoms\nArrogance\n"

    parts = recover_sections(text)

    assert len(parts) == 2
    assert parts[0].startswith("ENVY")
    assert parts[1].startswith("PRIDE")


def test_recover_sections_ignores_title_without_symptom_cue():
    text = "ENVY\nSigns & Symptoms\nBitterness\nIMPORTANT NOTE\nread this twice\nmore text\nand more\n"

    assert len(recover_sections(text)) == 1


def test_markdown_sections():
    text = (
        "# Anger\n## Signs & Symptoms\nShouting at people\n## Evidence\n"
        '"Restrain the anger and pardon the people" [Āl ʿImrān 3:134]\n'
        "# Envy\n## Signs & Symptoms\nBitterness at others\n## Evidence\n"
        '"And from the evil of an envier when he envies" [Al-Falaq 113:5]\n'
    )

    sections = HandbookRegexStrategy().split(text)

    assert [s.title for s in sections] == ["Anger", "Envy"]
    assert "Al-Falaq" in sections[1].evidence_block
    assert "Al-Falaq" not in sections[0].evidence_block


def test_manual_strategy_bypasses_text():
    strategy = ManualSectionStrategy([
        ManualSection(title=" Greed ", evidence_text="quotes", symptom_text="wanting more"),
    ])

    sections = strategy.split("")

    assert strategy.requires_text is False
    assert len(sections) == 1
    assert sections[0].title == "Greed"
    assert sections[0].evidence_block == "quotes"
    assert sections[0].symptom_block == "wanting more"
