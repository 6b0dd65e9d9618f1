"""Deterministic pseudo-embedding used when the embedding service is down.

Tokens are hashed into a fixed-length vector. Tokens that belong to one of the
curated concept groups also land in that group's shared dimensions, with
weight decreasing by the term's rank inside the group, so texts about the
same concept cluster together. Other tokens scatter over the remaining
dimensions with a separate hash stride so they never collide with concept
dimensions. The result is L2-normalized.

Pure: the same text always yields the same vector. Vectors from this space
are only comparable with other fallback vectors.
"""

import hashlib
import re

import numpy as np

FALLBACK_MODEL = "deterministic-fallback-v1"
DEFAULT_DIM = 1536

# Dimensions per concept group; the first CONCEPT_SHARED of them are shared by
# every term of the group, the rest disambiguate individual terms.
CONCEPT_BLOCK = 48
CONCEPT_SHARED = 8
SCATTER_STRIDE = 7919
RANK_DECAY = 0.1

# Ordered by centrality: earlier terms carry more weight.
CONCEPT_GROUPS: dict[str, tuple[str, ...]] = {
    "identity": (
        "identity", "orientation", "sexuality", "gay", "lesbian", "bisexual",
        "transgender", "queer", "attraction", "gender",
    ),
    "family": (
        "family", "parent", "mother", "father", "mom", "dad", "brother", "sister",
        "husband", "wife", "marriage", "divorce", "children", "child", "son", "daughter",
    ),
    "mental_health_risk": (
        "suicide", "suicidal", "self-harm", "kill", "die", "overdose", "worthless",
        "hopeless", "depressed", "depression",
    ),
    "anger": (
        "anger", "angry", "rage", "furious", "frustrated", "irritated", "annoyed",
        "mad", "temper", "quarrel",
    ),
    "envy": ("envy", "envious", "jealous", "jealousy", "resent", "compare", "unfair"),
    "hardness": (
        "heart", "hard", "numb", "empty", "disconnected", "motivation", "meaningless", "cold",
    ),
    "anxiety": ("anxiety", "anxious", "fear", "afraid", "worried", "worry", "panic", "nervous", "scared"),
    "faith": (
        "faith", "prayer", "pray", "allah", "god", "quran", "remembrance", "worship", "doubt", "mosque",
    ),
    "sadness": ("sad", "sadness", "grief", "lonely", "cry", "lost", "loss", "hurt"),
}

_GROUP_INDEX = {name: i for i, name in enumerate(CONCEPT_GROUPS)}
CONCEPT_REGION = len(CONCEPT_GROUPS) * CONCEPT_BLOCK

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9'\-]*")


def _token_hash(token: str) -> int:
    return int.from_bytes(hashlib.sha1(token.encode("utf-8")).digest()[:8], "big")


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens; falls back to the raw text when it has none."""
    tokens = _TOKEN_RE.findall(text.lower())
    if not tokens and text:
        return [text]
    return tokens


def _concept_hits(token: str) -> list[tuple[int, int]]:
    """(group index, rank) for every group containing the token or its stem."""
    hits = []
    for name, terms in CONCEPT_GROUPS.items():
        for rank, term in enumerate(terms):
            if token == term or (len(term) > 3 and token.startswith(term)):
                hits.append((_GROUP_INDEX[name], rank))
                break
    return hits


def fallback_embedding(text: str, dim: int = DEFAULT_DIM) -> list[float]:
    """
    Embed text without any external service.

    Args:
        text: Text to embed
        dim: Vector dimension (must leave room after the concept region)

    Returns:
        L2-normalized vector; all zeros only for empty text
    """
    if dim <= CONCEPT_REGION:
        raise ValueError(f"dim ({dim}) must be greater than the concept region ({CONCEPT_REGION})")

    vec = np.zeros(dim, dtype=np.float64)
    scatter_span = dim - CONCEPT_REGION
    term_span = CONCEPT_BLOCK - CONCEPT_SHARED

    for token in tokenize(text):
        h = _token_hash(token)
        hits = _concept_hits(token)

        for group, rank in hits:
            weight = 1.0 / (1.0 + RANK_DECAY * rank)
            base = group * CONCEPT_BLOCK
            vec[base:base + CONCEPT_SHARED] += weight
            vec[base + CONCEPT_SHARED + h % term_span] += weight

        if not hits:
            vec[CONCEPT_REGION + h % scatter_span] += 1.0
            vec[CONCEPT_REGION + (h // scatter_span * SCATTER_STRIDE) % scatter_span] += 0.5

    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        return vec.tolist()
    return (vec / norm).tolist()
