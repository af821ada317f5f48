"""String similarity helpers for duplicate detection"""

import re

_SEPARATORS = re.compile(r"[-_]")
_ORDINALS = re.compile(r"(team|project)\d+")
_DIGITS = re.compile(r"\d+")
_NON_LETTERS = re.compile(r"[^a-z\s]")


def levenshtein_distance(str1: str, str2: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if str1 == str2:
        return 0
    if not str1:
        return len(str2)
    if not str2:
        return len(str1)

    previous = list(range(len(str2) + 1))
    for i, char1 in enumerate(str1, 1):
        current = [i]
        for j, char2 in enumerate(str2, 1):
            cost = 0 if char1 == char2 else 1
            current.append(min(previous[j - 1] + cost, previous[j] + 1, current[j - 1] + 1))
        previous = current
    return previous[-1]


def string_similarity(str1: str, str2: str) -> float:
    """
    Similarity ratio between two normalized keys

    Containment scores by length ratio; otherwise the edit distance is
    scaled by the longer string's length.

    Returns:
        Similarity ratio (0.0 to 1.0); 0.0 when either side is empty
    """
    if not str1 or not str2:
        return 0.0
    if str1 == str2:
        return 1.0

    longer, shorter = (str1, str2) if len(str1) > len(str2) else (str2, str1)
    if shorter in longer:
        return len(shorter) / len(longer)

    distance = levenshtein_distance(str1, str2)
    return (len(longer) - distance) / len(longer)


def jaccard_similarity(text1: str, text2: str) -> float:
    """Token-set overlap of two whitespace-separated, case-folded strings."""
    if not text1 or not text2:
        return 0.0
    if text1 == text2:
        return 1.0

    tokens1 = set(text1.lower().split())
    tokens2 = set(text2.lower().split())
    union = tokens1 | tokens2
    if not union:
        return 0.0
    return len(tokens1 & tokens2) / len(union)


def normalize_repo_name(name: str) -> str:
    """Name key with separators, team/project ordinals and numbers removed."""
    key = _SEPARATORS.sub("", (name or "").lower())
    key = _ORDINALS.sub("", key)
    return _DIGITS.sub("", key)


def normalize_description(description: str, max_words: int = 10) -> str:
    """Letters-only description key built from the first words."""
    words = _NON_LETTERS.sub("", (description or "").lower()).split()
    return " ".join(words[:max_words])
