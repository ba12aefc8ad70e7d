"""
Text Matching
=============

Pure functions for comparing free-text chat messages against vocabularies.

Every comparison runs on normalized text: accents and punctuation removed,
lowercase, trimmed. Similarity is Levenshtein-based and normalized by the
longer of the two strings.
"""

import re
import unicodedata
from typing import List

from rapidfuzz.distance import Levenshtein


_NON_WORD = re.compile(r"[^\w\s]|_")

SHORT_TOKEN_LENGTH = 3
SHORT_TOKEN_THRESHOLD = 0.9
DEFAULT_THRESHOLD = 0.8


def normalize(text: str) -> str:
    """
    Normalize text for matching.

    Example:
        >>> normalize("¡Hola, cómo estás?")
        'hola como estas'
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_WORD.sub("", stripped).lower().strip()


def tokenize(text: str) -> List[str]:
    """Split normalized text into distinct tokens, keeping first-seen order."""
    seen = []
    for token in normalize(text).split():
        if token not in seen:
            seen.append(token)
    return seen


def similarity(a: str, b: str) -> float:
    """
    Edit-distance similarity in [0, 1].

    1.0 means identical after normalization (including two empty strings).
    """
    norm_a = normalize(a)
    norm_b = normalize(b)
    max_len = max(len(norm_a), len(norm_b))
    if max_len == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(norm_a, norm_b) / max_len


def adaptive_threshold(a: str, b: str) -> float:
    """Short tokens need a near-exact match; everything else 0.8."""
    if max(len(normalize(a)), len(normalize(b))) <= SHORT_TOKEN_LENGTH:
        return SHORT_TOKEN_THRESHOLD
    return DEFAULT_THRESHOLD


def is_similar(a: str, b: str) -> bool:
    return similarity(a, b) >= adaptive_threshold(a, b)


def contains_term(normalized_text: str, term: str) -> bool:
    """True if ``term`` appears in the text on token boundaries."""
    norm_term = normalize(term)
    if not norm_term:
        return False
    padded = f" {' '.join(normalized_text.split())} "
    return f" {' '.join(norm_term.split())} " in padded


def contains_reference(normalized_text: str, term: str) -> bool:
    """
    True if ``term`` appears in the text on token boundaries.

    Terms longer than a short token also match their plural ("s" or
    "es"), so "mantenimiento" finds "mantenimientos". Short codes such as
    "it" must stand alone.
    """
    norm_term = " ".join(normalize(term).split())
    if not norm_term:
        return False
    plural = "" if len(norm_term) <= SHORT_TOKEN_LENGTH else "(?:e?s)?"
    pattern = rf"(?:^| ){re.escape(norm_term)}{plural}(?: |$)"
    return re.search(pattern, " ".join(normalized_text.split())) is not None
