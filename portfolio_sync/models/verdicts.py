"""Ephemeral decisions produced during a sync run."""

from __future__ import annotations

from dataclasses import dataclass

SOURCE_LLM = "llm"
SOURCE_HEURISTIC = "heuristic"
SOURCE_EXISTING = "existing"


@dataclass(frozen=True, slots=True)
class RelevanceVerdict:
    is_relevant: bool
    reason: str
    source: str = SOURCE_HEURISTIC


@dataclass(frozen=True, slots=True)
class DuplicateVerdict:
    is_duplicate: bool
    confidence: float
    reason: str
    source: str = SOURCE_HEURISTIC


@dataclass(frozen=True, slots=True)
class EnhancedText:
    title: str
    description: str
    source: str = SOURCE_HEURISTIC
