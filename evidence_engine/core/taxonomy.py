"""Curated condition taxonomy.

The taxonomy is reference data: built once at startup, frozen, and handed to
the trigger matcher. ``default_taxonomy()`` returns the handbook conditions
that ship with the engine; ``load_taxonomy()`` reads a replacement from JSON.
"""

from pathlib import Path

from evidence_engine.core.logging import get_logger
from evidence_engine.core.schemas_citation import Condition, ConditionTaxonomy, IntensityRule
from evidence_engine.core.schemas_evidence import Evidence, EvidenceCategory, EvidenceRole

logger = get_logger(__name__)

HANDBOOK = "Handbook of Spiritual Medicine"


def _handbook_quote(page: int, quote: str, role: EvidenceRole) -> Evidence:
    return Evidence(
        quote=quote,
        reference=f"{HANDBOOK}, p. {page}",
        category=EvidenceCategory.SCHOLAR,
        role=role,
        locator=f"p. {page}",
    )


def _verse(page: int, verse: str, reference: str) -> Evidence:
    return Evidence(
        quote=verse,
        reference=reference,
        category=EvidenceCategory.SCRIPTURE,
        locator=f"p. {page}",
    )


def _tradition(page: int, text: str, source: str) -> Evidence:
    return Evidence(
        quote=text,
        reference=source,
        category=EvidenceCategory.TRADITION,
        locator=f"p. {page}",
    )


def default_taxonomy() -> ConditionTaxonomy:
    """Build the built-in handbook taxonomy."""
    anger = Condition(
        name="Anger",
        display_name="الغضب",
        source_range="30-42",
        triggers=("frustrated", "furious", "rage", "annoyed", "angry", "mad", "irritated"),
        evidence=(
            _handbook_quote(
                32,
                "Due to your anger, and that of another, a quarrel is stirred and heated "
                "to the point of conflict",
                EvidenceRole.SYMPTOM,
            ),
            _handbook_quote(
                33,
                "You repel or keep your anger under control by recognising that nothing "
                "takes place without the leave of Allah",
                EvidenceRole.TREATMENT,
            ),
            _verse(
                32,
                "Be moderate in your pace. And lower your voice, for the ugliest of all "
                "voices is certainly the braying of donkeys",
                "Luqman 31:19-20",
            ),
            _tradition(32, "Do not become angry", "Sahih Al-Bukhari 6116"),
        ),
        intensity_rules=(IntensityRule(above=0.7, bonus=0.2),),
    )

    envy = Condition(
        name="Envy",
        display_name="الحسد",
        source_range="80-87",
        triggers=("jealous", "envious", "why do they", "not fair", "i wish i had", "they have everything"),
        evidence=(
            _handbook_quote(
                82,
                "Envy is a fire that burns the good deeds as fire burns wood",
                EvidenceRole.SYMPTOM,
            ),
            _handbook_quote(
                84,
                "The remedy for envy is to constantly remember that Allah distributes His "
                "bounties according to His wisdom",
                EvidenceRole.TREATMENT,
            ),
            _verse(
                83,
                "And do not wish for that by which Allah has made some of you exceed others",
                "An-Nisa 4:32",
            ),
            _tradition(
                82,
                "Beware of envy because envy devours good deeds just as fire devours wood",
                "Sunan Abi Dawud 4903",
            ),
        ),
        intensity_rules=(IntensityRule(above=0.5, bonus=0.2),),
    )

    hard_heartedness = Condition(
        name="Hard-heartedness",
        display_name="قسوة القلب",
        source_range="133-143",
        triggers=("empty", "nothing matters", "lost motivation", "numb", "disconnected", "hopeless"),
        evidence=(
            _handbook_quote(
                135,
                "The heart becomes hard when it is distant from the remembrance of Allah "
                "and overwhelmed by worldly concerns",
                EvidenceRole.SYMPTOM,
            ),
            _handbook_quote(
                138,
                "Soften your heart through frequent recitation of the Quran and remembrance of death",
                EvidenceRole.TREATMENT,
            ),
            _verse(
                136,
                "Then your hearts became hardened after that, being like stones or even harder",
                "Al-Baqarah 2:74",
            ),
            _tradition(137, "Remember often the destroyer of pleasures - death", "Jami at-Tirmidhi 2307"),
        ),
        intensity_rules=(IntensityRule(below=0.3, bonus=0.2),),
    )

    return ConditionTaxonomy(conditions=(anger, envy, hard_heartedness))


def load_taxonomy(path: str | Path) -> ConditionTaxonomy:
    """
    Load a taxonomy from a JSON file.

    Args:
        path: Path to a JSON document shaped like ``ConditionTaxonomy``

    Returns:
        Validated, frozen taxonomy

    Raises:
        OSError: If the file cannot be read
        pydantic.ValidationError: If the document does not match the schema
    """
    raw = Path(path).read_text(encoding="utf-8")
    taxonomy = ConditionTaxonomy.model_validate_json(raw)
    logger.info(
        f"Loaded taxonomy {taxonomy.version} with {len(taxonomy.conditions)} conditions from {path}"
    )
    return taxonomy
