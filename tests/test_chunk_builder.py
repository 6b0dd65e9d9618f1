"""Tests for evidence chunk building."""

import pytest

from evidence_engine.core.document_processing import (
    ChunkBuilder,
    IngestionError,
    ManualSection,
    ManualSectionStrategy,
)
from evidence_engine.core.document_processing.chunker import extract_keywords, search_variations
from evidence_engine.core.schemas_evidence import EvidenceCategory


@pytest.fixture
def builder():
    return ChunkBuilder(min_evidence_chars=100, min_document_evidence=10)


def _section(n: int, title: str, quote_text: str) -> str:
    return (
        f"CHAPTER {n}\n{title}\n"
        "Signs & Symptoms\n"
        f"- You notice {title.lower()} shaping how you treat the people around you\n"
        "Qur'ānic, Prophetic & Scholarly Evidence\n"
        f"{quote_text}\n"
        "Treatment\nRemember Allah often.\n\n"
    )


def test_sample_handbook_builds_three_chunks(builder, sample_handbook):
    """Three sections with evidence become chunks; the 40-char evidence block is dropped."""
    chunks = builder.build(sample_handbook, "sample_handbook.txt")

    assert [c.topic for c in chunks] == ["Anger", "Envy", "Hard-Heartedness"]
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert chunks[0].id == "evidence-sample_handbook.txt-0"
    for chunk in chunks:
        assert chunk.search_text
        assert len(chunk.evidence_text) >= 100
        assert chunk.source_file == "sample_handbook.txt"


def test_structured_evidence_parsed_per_section(builder, sample_handbook):
    anger, envy, hard = builder.build(sample_handbook, "sample_handbook.txt")

    assert {e.category for e in anger.structured_evidence} == {
        EvidenceCategory.SCRIPTURE,
        EvidenceCategory.TRADITION,
        EvidenceCategory.SCHOLAR,
    }
    assert len(envy.structured_evidence) == 2
    assert hard.structured_evidence[0].reference == "Al-Baqarah 2:74"
    # Evidence text is the formatted citation list, scripture first
    assert anger.evidence_text.startswith('"And restrain the anger and pardon the people')


def test_search_text_built_from_topic_and_symptoms(builder, sample_handbook):
    anger = builder.build(sample_handbook, "sample_handbook.txt")[0]

    assert anger.search_text.startswith("Topic: Anger")
    assert "You raise your voice" in anger.search_text
    assert "How to deal with anger" in anger.search_text
    assert "Cure for anger" in anger.search_text
    assert "I feel irritated" in anger.search_text
    # Evidence is returned, never embedded
    assert "restrain the anger" not in anger.search_text


def test_raw_mode_when_document_has_too_few_parsed_items(builder):
    prose = (
        "The scholars taught that the cure of this disease lies in remembering death often, "
        "in keeping company with the righteous, and in reflecting on the blessings of Allah."
    )
    text = "".join(_section(i + 1, title, prose) for i, title in enumerate(["GREED", "PRIDE", "SLOTH"]))

    chunks = builder.build(text, "prose.txt")

    assert len(chunks) == 3
    assert all(c.structured_evidence == () for c in chunks)
    assert chunks[0].evidence_text == prose


def test_short_evidence_block_is_dropped(builder):
    long_quote = (
        '"Whoever suppresses his anger while able to act upon it, Allah will call him before all '
        'creation on the Day of Resurrection" [Sunan Abi Dawud 4777]'
    )
    text = (
        _section(1, "ANGER", long_quote)
        + _section(2, "ENVY", '"forty characters of evidence" [Book 1]')
    )

    chunks = builder.build(text, "mixed.txt")

    assert [c.topic for c in chunks] == ["Anger"]


def test_section_without_evidence_heading_is_skipped(builder):
    text = "CHAPTER 1\nANGER\nSigns & Symptoms\nYou shout at everyone around you every single day.\n"

    assert builder.build(text, "no_evidence.txt") == []


def test_empty_document_raises(builder):
    with pytest.raises(IngestionError) as exc_info:
        builder.build("   \n  ", "empty.pdf")

    assert exc_info.value.source_file == "empty.pdf"


def test_manual_sections_override_splitting(builder):
    strategy = ManualSectionStrategy([
        ManualSection(
            title="Greed",
            symptom_text="You always want more than you need",
            evidence_text=(
                '"Competition in worldly increase diverts you until you visit the graveyards. No! You are going to know" '
                "[At-Takathur 102:1-3]"
            ),
        ),
    ])

    chunks = builder.build("", "manual.txt", strategy)

    assert len(chunks) == 1
    assert chunks[0].topic == "Greed"
    assert chunks[0].structured_evidence[0].category == EvidenceCategory.SCRIPTURE


def test_missing_symptoms_use_topic_placeholder(builder):
    strategy = ManualSectionStrategy([
        ManualSection(title="Greed", evidence_text="x" * 120),
    ])

    chunk = builder.build("", "manual.txt", strategy)[0]

    assert "Symptoms: Symptoms of Greed" in chunk.search_text


def test_extract_keywords_filters_and_limits():
    keywords = extract_keywords("You feel that your heart is empty and numb, empty again " * 5, limit=3)

    assert keywords == ["feel", "heart", "empty"]


def test_search_variations():
    variations = search_variations("Anger", "shouting")

    assert variations == [
        "How to deal with anger",
        "How to control anger",
        "Treatment for anger",
        "Cure for anger",
        "I feel shouting",
        "I have shouting",
    ]
